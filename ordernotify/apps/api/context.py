from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

from ordernotify.core.config import Settings, get_settings
from ordernotify.providers.email.base import EmailTransport
from ordernotify.providers.email.factory import build_transport_chain
from ordernotify.services.health_probe import HEALTH_PROBE_TASK, make_health_probe
from ordernotify.services.maintenance import CLEANUP_SWEEP_TASK, CleanupRoutine, make_cleanup_sweep
from ordernotify.services.notifications.chain import TransportChain
from ordernotify.services.notifications.notifier import Notifier
from ordernotify.services.supervisor import BackgroundTaskSupervisor


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    # One per process, built by the entry point and passed down; nothing here is a module global.
    settings: Settings
    chain: TransportChain
    notifier: Notifier
    supervisor: BackgroundTaskSupervisor
    closed: bool = False

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        grace_s = self.settings.shutdown_grace_ms / 1000.0
        self.supervisor.stop_all()
        await self.supervisor.wait_idle(timeout_s=grace_s)
        await self.notifier.drain(timeout_s=grace_s)
        await self.chain.aclose()
        logger.info("app_context_closed")


async def build_context(
    settings: Settings | None = None,
    *,
    transports: list[EmailTransport] | None = None,
) -> AppContext:
    settings = settings or get_settings()
    chain = await build_transport_chain(settings, transports=transports)
    notifier = Notifier(chain, loop=asyncio.get_running_loop())
    return AppContext(
        settings=settings,
        chain=chain,
        notifier=notifier,
        supervisor=BackgroundTaskSupervisor(),
    )


def start_background_tasks(context: AppContext, *, cleanup: CleanupRoutine | None = None) -> list[str]:
    # Both standing tasks are optional; missing configuration means the task is never started.
    settings = context.settings
    supervisor = context.supervisor
    started: list[str] = []

    if cleanup is not None:
        supervisor.start(
            CLEANUP_SWEEP_TASK,
            interval_s=settings.cleanup_interval_ms / 1000.0,
            timeout_s=settings.cleanup_timeout_ms / 1000.0,
            run_fn=make_cleanup_sweep(cleanup),
        )
        started.append(CLEANUP_SWEEP_TASK)
    else:
        logger.info("cleanup_sweep_disabled reason=no cleanup routine supplied")

    if settings.health_route:
        timeout_s = settings.health_timeout_ms / 1000.0
        supervisor.start(
            HEALTH_PROBE_TASK,
            interval_s=settings.health_interval_ms / 1000.0,
            # Request timeout plus a little slack so the probe logs its own failure first.
            timeout_s=timeout_s + 1.0,
            run_fn=make_health_probe(settings.health_route, timeout_s=timeout_s),
            run_immediately=True,
        )
        started.append(HEALTH_PROBE_TASK)
    else:
        logger.info("health_probe_disabled reason=HEALTH_ROUTE not set")
    return started
