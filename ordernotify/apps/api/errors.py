from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ordernotify.apps.api.response import failure_response, get_request_id


logger = logging.getLogger(__name__)

ROUTE_NOT_FOUND = "Route not found."


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        logger.warning("route_not_found method=%s path=%s", request.method, request.url.path)
        return failure_response(request=request, status_code=404, message=ROUTE_NOT_FOUND)
    return failure_response(
        request=request,
        status_code=exc.status_code,
        message=str(exc.detail),
        headers=exc.headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Stack traces go to the log, never into the response body.
    logger.error(
        "request_failed method=%s path=%s request_id=%s",
        request.method,
        request.url.path,
        get_request_id(request),
        exc_info=exc,
    )
    return failure_response(request=request, status_code=500, message="Internal Server Error")
