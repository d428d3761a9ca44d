from __future__ import annotations

import asyncio
from contextlib import contextmanager
import logging
from typing import Iterator

import uvicorn

from ordernotify.apps.api.context import build_context
from ordernotify.apps.api.main import create_app
from ordernotify.core.config import Settings, get_settings
from ordernotify.core.logging import configure_logging
from ordernotify.services.guardian import ProcessGuardian
from ordernotify.services.maintenance import CleanupRoutine


logger = logging.getLogger(__name__)


class GuardedServer(uvicorn.Server):
    # Signals belong to the process guardian; uvicorn must not install its own.
    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class UvicornInbound:
    def __init__(self, server: uvicorn.Server) -> None:
        self._server = server
        self._serve_task: asyncio.Task | None = None

    def bind(self, serve_task: asyncio.Task) -> None:
        self._serve_task = serve_task

    def stop_accepting(self) -> None:
        # uvicorn closes its listeners, then waits for open connections and runs lifespan shutdown.
        self._server.should_exit = True

    async def wait_closed(self) -> None:
        if self._serve_task is not None:
            await asyncio.shield(self._serve_task)


async def serve(settings: Settings | None = None, *, cleanup: CleanupRoutine | None = None) -> None:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    context = await build_context(settings)
    app = create_app(context, cleanup=cleanup)

    grace_s = settings.shutdown_grace_ms / 1000.0
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=int(grace_s),
    )
    server = GuardedServer(config)
    inbound = UvicornInbound(server)
    guardian = ProcessGuardian(
        context.supervisor,
        server=inbound,
        notifier=context.notifier,
        grace_period_s=grace_s,
        fatal_exit_delay_s=settings.fatal_exit_delay_ms / 1000.0,
    )
    guardian.install()
    logger.info(
        "server_starting name=%s env=%s host=%s port=%s",
        settings.app_name,
        settings.app_env,
        settings.host,
        settings.port,
    )
    serve_task = asyncio.create_task(server.serve(), name="uvicorn")
    inbound.bind(serve_task)
    try:
        await serve_task
    finally:
        guardian.uninstall()
        await context.aclose()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
