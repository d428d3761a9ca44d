from __future__ import annotations

from fastapi import HTTPException, Request

from ordernotify.apps.api.context import AppContext
from ordernotify.services.notifications.notifier import Notifier


def get_context(request: Request) -> AppContext:
    # The lifespan stores the process context on app.state; handlers never reach for globals.
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return context


def get_notifier(request: Request) -> Notifier:
    return get_context(request).notifier
