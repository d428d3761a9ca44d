from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
import time
from types import TracebackType
from typing import Any, Callable, Iterable, Protocol

from ordernotify.core.errors import FatalProcessError
from ordernotify.services.notifications.notifier import Notifier
from ordernotify.services.supervisor import BackgroundTaskSupervisor


logger = logging.getLogger(__name__)

ExitFn = Callable[[int], None]

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InboundServer(Protocol):
    def stop_accepting(self) -> None:
        ...

    async def wait_closed(self) -> None:
        ...


def hard_exit(code: int) -> None:
    # Flush handlers before leaving; os._exit skips interpreter teardown that could hang on stuck tasks.
    logging.shutdown()
    os._exit(code)


class ProcessGuardian:
    """Turns fatal errors and termination signals into an ordered shutdown.

    Fatal errors (unretrieved task exceptions, failing loop callbacks,
    exceptions escaping the main thread or worker threads) stop every
    background task and exit with status 1 after a short delay for log
    output. SIGINT/SIGTERM stop background tasks, stop accepting inbound
    connections, wait for in-flight work within the grace period and exit 0,
    or 1 when the grace period runs out.
    """

    def __init__(
        self,
        supervisor: BackgroundTaskSupervisor,
        *,
        server: InboundServer | None = None,
        notifier: Notifier | None = None,
        grace_period_s: float = 10.0,
        fatal_exit_delay_s: float = 0.1,
        exit_fn: ExitFn | None = None,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    ) -> None:
        self._supervisor = supervisor
        self._server = server
        self._notifier = notifier
        self._grace_period_s = grace_period_s
        self._fatal_exit_delay_s = fatal_exit_delay_s
        self._exit = exit_fn or hard_exit
        self._signals = tuple(signals)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed_signals: list[signal.Signals] = []
        self._previous_loop_handler: Any = None
        self._previous_excepthook: Any = None
        self._previous_thread_hook: Any = None
        self._fatal_started = False
        self._shutdown_task: asyncio.Task | None = None

    @property
    def shutting_down(self) -> bool:
        return self._fatal_started or self._shutdown_task is not None

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        self._loop = loop
        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_uncaught
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._on_thread_exception
        for sig in self._signals:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Loops without add_signal_handler (Windows) or off the main thread.
                signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(self._on_signal, signum))
            self._installed_signals.append(sig)
        logger.info("process_guardian_installed signals=%s", ",".join(sig.name for sig in self._installed_signals))

    def uninstall(self) -> None:
        loop = self._loop
        if loop is None:
            return
        if not loop.is_closed():
            loop.set_exception_handler(self._previous_loop_handler)
            for sig in self._installed_signals:
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    signal.signal(sig, signal.SIG_DFL)
        self._installed_signals.clear()
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if self._previous_thread_hook is not None:
            threading.excepthook = self._previous_thread_hook
        self._loop = None

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if not isinstance(exc, BaseException):
            exc = FatalProcessError(context.get("message") or "unhandled event loop error")
        if self._fatal_started:
            logger.error("fatal_error_during_shutdown message=%s", exc)
            return
        loop.create_task(self.handle_fatal(exc, source="event_loop"))

    def _on_uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            hook = self._previous_excepthook or sys.__excepthook__
            hook(exc_type, exc, tb)
            return
        self.handle_fatal_sync(exc, source="uncaught")

    def _on_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit or args.exc_value is None:
            return
        thread_name = args.thread.name if args.thread is not None else "unknown"
        self.handle_fatal_sync(args.exc_value, source=f"thread:{thread_name}")

    def _log_fatal(self, exc: BaseException, source: str) -> None:
        logger.critical(
            "fatal_error source=%s message=%s",
            source,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )

    def _stop_tasks(self) -> None:
        try:
            self._supervisor.stop_all()
        except Exception:  # noqa: BLE001 - shutdown continues even if stopping tasks fails
            logger.exception("shutdown_step_failed step=stop_background_tasks")

    async def handle_fatal(self, exc: BaseException, *, source: str = "event_loop") -> None:
        if self._fatal_started:
            return
        self._fatal_started = True
        self._log_fatal(exc, source)
        self._stop_tasks()
        await asyncio.sleep(self._fatal_exit_delay_s)
        logger.critical("process_exit status=1 reason=fatal_error")
        self._exit(1)

    def handle_fatal_sync(self, exc: BaseException, *, source: str) -> None:
        if self._fatal_started:
            return
        self._fatal_started = True
        self._log_fatal(exc, source)
        self._stop_tasks()
        time.sleep(self._fatal_exit_delay_s)
        logger.critical("process_exit status=1 reason=fatal_error")
        self._exit(1)

    def _on_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        if self._shutdown_task is not None or self._fatal_started:
            logger.warning("shutdown_already_in_progress signal=%s", name)
            return
        loop = self._loop or asyncio.get_running_loop()
        self._shutdown_task = loop.create_task(self.shutdown(name))

    async def _wait_in_flight(self) -> None:
        if self._server is not None:
            await self._server.wait_closed()
            logger.info("shutdown_step step=inbound_drained")
        if self._notifier is not None:
            await self._notifier.drain(timeout_s=self._grace_period_s)
            logger.info("shutdown_step step=notifications_drained")

    async def shutdown(self, signal_name: str) -> None:
        logger.warning("shutdown_signal_received signal=%s", signal_name)
        self._stop_tasks()
        logger.info("shutdown_step step=background_tasks_stopped")
        try:
            if self._server is not None:
                self._server.stop_accepting()
                logger.info("shutdown_step step=inbound_closed")
            await asyncio.wait_for(self._wait_in_flight(), timeout=self._grace_period_s)
        except asyncio.TimeoutError:
            logger.warning(
                "shutdown_grace_elapsed grace_s=%s could not close connections in time, forcing exit",
                self._grace_period_s,
            )
            self._exit(1)
            return
        except Exception:  # noqa: BLE001 - a broken teardown still has to end the process
            logger.exception("shutdown_failed")
            self._exit(1)
            return
        logger.info("shutdown_complete status=0")
        self._exit(0)
