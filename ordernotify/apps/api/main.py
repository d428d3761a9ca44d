from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
import time
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ordernotify.apps.api.context import AppContext, build_context, start_background_tasks
from ordernotify.apps.api.errors import http_exception_handler, unhandled_exception_handler
from ordernotify.apps.api.response import API_VERSION, REQUEST_ID_HEADER, get_request_id
from ordernotify.apps.api.routes.health import router as health_router
from ordernotify.apps.api.routes.ops import router as ops_router
from ordernotify.core.config import Settings, get_settings
from ordernotify.services.maintenance import CleanupRoutine


logger = logging.getLogger(__name__)


def create_app(
    context: AppContext | None = None,
    *,
    settings: Settings | None = None,
    cleanup: CleanupRoutine | None = None,
) -> FastAPI:
    settings = settings or (context.settings if context is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ctx = context or await build_context(settings)
        ctx.notifier.bind_loop(asyncio.get_running_loop())
        app.state.context = ctx
        start_background_tasks(ctx, cleanup=cleanup)
        logger.info(
            "app_started name=%s env=%s transports=%s",
            settings.app_name,
            settings.app_env,
            ",".join(kind.value for kind in ctx.chain.kinds) or "none",
        )
        try:
            yield
        finally:
            await ctx.aclose()
            app.state.context = None

    app = FastAPI(title="Order Notification API", lifespan=lifespan)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = get_request_id(request)
        start = time.monotonic()
        response = await call_next(request)
        logger.debug(
            "request_completed method=%s path=%s status=%s request_id=%s latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
            (time.monotonic() - start) * 1000.0,
        )
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root() -> str:
        return "Order notification API is running"

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(ops_router, prefix=f"/{API_VERSION}")
    # Unversioned health stays for load balancers and uptime pings.
    app.include_router(health_router, include_in_schema=False)

    return app
