from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ordernotify.apps.api.context import AppContext
from ordernotify.apps.api.deps import get_context
from ordernotify.apps.api.response import SuccessEnvelope, success_response
from ordernotify.services.telemetry import counters_snapshot, delivery_summary


router = APIRouter(prefix="/ops", tags=["ops"])


class NotificationOpsResponse(BaseModel):
    # Delivery history is not persisted; this is the in-memory view since process start.
    transports: list[str]
    sender: str
    pending_dispatches: int
    deliveries: dict[str, dict[str, Any]]
    counters: dict[str, int]
    supervisor: dict[str, Any]


@router.get("/notifications", response_model=SuccessEnvelope[NotificationOpsResponse])
async def notifications_status(request: Request, context: AppContext = Depends(get_context)) -> dict:
    payload = NotificationOpsResponse(
        transports=[kind.value for kind in context.chain.kinds],
        sender=context.chain.sender,
        pending_dispatches=context.notifier.pending,
        deliveries=delivery_summary(),
        counters=counters_snapshot(),
        supervisor=context.supervisor.snapshot(),
    )
    return success_response(request=request, data=payload)
