from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from ordernotify.domain.models import RunFn


logger = logging.getLogger(__name__)

CLEANUP_SWEEP_TASK = "cleanup-sweep"

# Purges stale unverified accounts; owned by the account store, not by this package.
CleanupRoutine = Callable[[], Awaitable[Any]]


def make_cleanup_sweep(cleanup: CleanupRoutine) -> RunFn:
    async def _sweep() -> Any:
        logger.info("cleanup_sweep_started")
        result = await cleanup()
        # Routines that report a count get it logged; anything else is opaque.
        if isinstance(result, int):
            logger.info("cleanup_sweep_finished removed=%d", result)
        else:
            logger.info("cleanup_sweep_finished")
        return result

    return _sweep
