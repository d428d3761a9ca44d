from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ordernotify.apps.api.response import SuccessEnvelope, success_response


router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    # Empty until the lifespan has built the transport chain, or when email is disabled.
    email_transports: list[str]


# Mounted twice: bare at /health for uptime checks, enveloped under /v1.
@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request) -> dict:
    # Liveness never depends on the context; a process still starting up reports ok.
    context = getattr(request.app.state, "context", None)
    kinds = [kind.value for kind in context.chain.kinds] if context is not None else []
    payload = HealthResponse(status="ok", email_transports=kinds)
    return success_response(request=request, data=payload)
