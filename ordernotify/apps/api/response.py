from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


API_VERSION = "v1"
REQUEST_ID_HEADER = "X-Request-Id"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class FailureBody(BaseModel):
    # Storefront clients already parse this shape from the order endpoints.
    success: bool = False
    message: str


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)
    if not request_id:
        request_id = str(uuid4())
    request.state.request_id = request_id
    return request_id


def is_versioned_request(request: Request) -> bool:
    return request.url.path.startswith(f"/{API_VERSION}/")


def success_response(*, request: Request, data: Any) -> Any:
    # Versioned routes get the envelope; unversioned ones return the bare payload.
    if not is_versioned_request(request):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    meta = ResponseMeta(request_id=get_request_id(request))
    return {"data": data, "meta": meta.model_dump()}


def failure_response(
    *,
    request: Request,
    status_code: int,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    response = JSONResponse(
        content=FailureBody(message=message).model_dump(),
        status_code=status_code,
        headers=headers,
    )
    response.headers.setdefault(REQUEST_ID_HEADER, get_request_id(request))
    return response
