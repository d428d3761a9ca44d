from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
import time
from typing import Any

from ordernotify.core.errors import ConfigurationError, SupervisorDrainedError, TaskTimeoutError
from ordernotify.domain.models import BackgroundTask, RunFn, TaskRunStatus, TaskState
from ordernotify.services.telemetry import record_task_run


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _cancel(handle: asyncio.Task) -> None:
    # stop_all may run from sys.excepthook or a signal on another thread.
    loop = handle.get_loop()
    if loop.is_closed():
        return
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop or not loop.is_running():
        handle.cancel()
    else:
        loop.call_soon_threadsafe(handle.cancel)


class BackgroundTaskSupervisor:
    """Owns the recurring background tasks of one process.

    Each task is a scheduling loop that spawns one invocation per tick.
    Invocations are bounded by the task timeout and never overlap: a tick
    that finds the previous invocation still running is recorded as skipped.
    Stopping cancels the scheduling loop only; an invocation already in
    flight finishes or times out on its own. ``stop_all`` is terminal.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, BackgroundTask] = {}
        self._drained = False

    @property
    def drained(self) -> bool:
        return self._drained

    def get(self, name: str) -> BackgroundTask | None:
        return self._tasks.get(name)

    def is_running(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and task.state is TaskState.RUNNING

    def tasks(self) -> list[BackgroundTask]:
        return list(self._tasks.values())

    def start(
        self,
        name: str,
        *,
        interval_s: float,
        timeout_s: float,
        run_fn: RunFn,
        run_immediately: bool = False,
    ) -> BackgroundTask:
        if self._drained:
            raise SupervisorDrainedError(f"Supervisor is shut down; cannot start {name!r}")
        if self.is_running(name):
            raise ConfigurationError(f"Background task {name!r} is already running")
        if interval_s <= 0 or timeout_s <= 0:
            raise ConfigurationError(f"Background task {name!r} needs a positive interval and timeout")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise ConfigurationError(f"Background task {name!r} must be started from a running event loop") from exc

        # A restart always gets a fresh record; released handles are never reused.
        task = BackgroundTask(name=name, interval_s=interval_s, timeout_s=timeout_s, run_fn=run_fn)
        previous = self._tasks.get(name)
        if previous is not None and previous.in_flight is not None and not previous.in_flight.done():
            # The stopped record's invocation still counts; new ticks skip until it finishes.
            task.in_flight = previous.in_flight
        task.handle = loop.create_task(self._schedule(task, run_immediately), name=f"supervisor:{name}")
        self._tasks[name] = task
        logger.info(
            "background_task_started name=%s interval_s=%s timeout_s=%s",
            name,
            interval_s,
            timeout_s,
        )
        return task

    async def _schedule(self, task: BackgroundTask, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(task.interval_s)
        while task.state is TaskState.RUNNING:
            self._tick(task)
            await asyncio.sleep(task.interval_s)

    def _tick(self, task: BackgroundTask) -> None:
        if task.in_flight is not None and not task.in_flight.done():
            task.last_run_status = TaskRunStatus.SKIPPED
            record_task_run(task=task.name, status=TaskRunStatus.SKIPPED.value, duration_ms=0.0)
            logger.warning("background_task_tick_skipped name=%s reason=previous_run_in_flight", task.name)
            return
        task.in_flight = asyncio.get_running_loop().create_task(
            self._run_once(task),
            name=f"supervisor:{task.name}:run",
        )

    async def _run_once(self, task: BackgroundTask) -> TaskRunStatus:
        start = time.monotonic()
        task.last_run_at = _utc_now()
        error: str | None = None
        try:
            # Cancellation is cooperative: a run_fn that swallows CancelledError
            # keeps running past the deadline and is recorded as timed out when it returns.
            async with asyncio.timeout(task.timeout_s) as deadline:
                await task.run_fn()
            status = TaskRunStatus.TIMED_OUT if deadline.expired() else TaskRunStatus.OK
        except TimeoutError:
            status = TaskRunStatus.TIMED_OUT
        except Exception as exc:  # noqa: BLE001 - task errors are absorbed per tick
            status = TaskRunStatus.FAILED
            error = str(exc) or exc.__class__.__name__
            logger.exception("background_task_failed name=%s", task.name)
        if status is TaskRunStatus.TIMED_OUT:
            error = str(TaskTimeoutError(f"{task.name} exceeded {task.timeout_s}s"))

        duration_ms = (time.monotonic() - start) * 1000.0
        task.runs += 1
        task.last_run_status = status
        task.last_error = error
        record_task_run(task=task.name, status=status.value, duration_ms=duration_ms)
        if status is TaskRunStatus.TIMED_OUT:
            logger.warning("background_task_timed_out name=%s duration_ms=%.1f", task.name, duration_ms)
        else:
            logger.info("background_task_tick name=%s status=%s duration_ms=%.1f", task.name, status.value, duration_ms)
        return status

    def stop(self, name: str) -> None:
        task = self._tasks.get(name)
        if task is None or task.state is TaskState.STOPPED:
            return
        task.state = TaskState.STOPPED
        handle, task.handle = task.handle, None
        if handle is not None and not handle.done():
            _cancel(handle)
        logger.info("background_task_stopped name=%s runs=%d", name, task.runs)

    def stop_all(self) -> None:
        # Refuse new tasks first so nothing can slip in while draining.
        self._drained = True
        stopped = 0
        for name in list(self._tasks):
            try:
                if self.is_running(name):
                    self.stop(name)
                    stopped += 1
            except Exception:  # noqa: BLE001 - shutdown keeps stopping the remaining tasks
                logger.exception("background_task_stop_failed name=%s", name)
        logger.info("supervisor_drained stopped=%d", stopped)

    async def wait_idle(self, timeout_s: float) -> bool:
        # Let in-flight invocations finish after stop_all; True when none is left running.
        in_flight = [task.in_flight for task in self._tasks.values() if task.in_flight and not task.in_flight.done()]
        if not in_flight:
            return True
        _done, pending = await asyncio.wait(in_flight, timeout=timeout_s)
        return not pending

    def snapshot(self) -> dict[str, Any]:
        return {
            "drained": self._drained,
            "tasks": [task.as_dict() for task in self._tasks.values()],
        }
