from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import Union

from ordernotify.domain.models import DeliveryOutcome, Message
from ordernotify.services.notifications.chain import TransportChain


logger = logging.getLogger(__name__)

_Pending = Union[asyncio.Task, concurrent.futures.Future]


class Notifier:
    """Fire-and-forget facade over the transport chain.

    ``notify`` only schedules delivery and returns immediately. Delivery runs
    as its own task and every outcome, success or failure, ends up in the
    log. Nothing raised on the delivery path reaches the caller, so a failed
    email can never fail the order operation that triggered it.
    """

    def __init__(self, chain: TransportChain, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._chain = chain
        self._loop = loop
        # Strong references keep spawned tasks alive until they finish.
        self._pending: set[_Pending] = set()

    @property
    def chain(self) -> TransportChain:
        return self._chain

    @property
    def pending(self) -> int:
        return len(self._pending)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        # Lets threadpool callers hand work to the serving loop.
        self._loop = loop

    def notify(
        self,
        recipient: str | None,
        subject: str,
        html: str,
        *,
        correlation_id: str | None = None,
    ) -> None:
        try:
            if not recipient or not recipient.strip():
                logger.warning(
                    "notification_skipped reason=missing_recipient subject=%r correlation_id=%s",
                    subject,
                    correlation_id,
                )
                return
            message = Message(
                recipient=recipient.strip(),
                subject=subject,
                html=html,
                correlation_id=correlation_id,
            )
            self._schedule(message)
        except Exception:  # noqa: BLE001 - notify never raises into business logic
            logger.exception("notification_schedule_failed subject=%r correlation_id=%s", subject, correlation_id)

    def _schedule(self, message: Message) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self.dispatch(message), name=f"notify:{message.recipient}")
            self._track(task)
            return

        target = self._loop
        if target is None or target.is_closed() or not target.is_running():
            logger.error(
                "notification_dropped reason=no_event_loop recipient=%s correlation_id=%s",
                message.recipient,
                message.correlation_id,
            )
            return
        future = asyncio.run_coroutine_threadsafe(self.dispatch(message), target)
        self._track(future)

    def _track(self, pending: _Pending) -> None:
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)

    async def dispatch(self, message: Message) -> DeliveryOutcome | None:
        try:
            outcome = await self._chain.deliver(message)
        except Exception:  # noqa: BLE001 - delivery failures are a logged side effect only
            logger.exception(
                "notification_failed recipient=%s correlation_id=%s",
                message.recipient,
                message.correlation_id,
            )
            return None
        self._log_outcome(message, outcome)
        return outcome

    def _log_outcome(self, message: Message, outcome: DeliveryOutcome) -> None:
        if outcome.success:
            logger.info(
                "notification_sent recipient=%s subject=%r transport=%s external_id=%s "
                "correlation_id=%s latency_ms=%.1f",
                message.recipient,
                message.subject,
                outcome.transport.value if outcome.transport else None,
                outcome.external_id,
                message.correlation_id,
                outcome.latency_ms or 0.0,
            )
            return
        logger.warning(
            "notification_not_sent recipient=%s subject=%r attempted=%s correlation_id=%s error=%s",
            message.recipient,
            message.subject,
            ",".join(kind.value for kind in outcome.attempted) or "none",
            message.correlation_id,
            outcome.error,
        )

    async def drain(self, timeout_s: float) -> bool:
        # Shutdown waits for in-flight dispatches; True means nothing was left behind.
        if not self._pending:
            return True
        waiters = [
            asyncio.wrap_future(item) if isinstance(item, concurrent.futures.Future) else item
            for item in list(self._pending)
        ]
        _done, not_done = await asyncio.wait(waiters, timeout=timeout_s)
        if not_done:
            logger.warning("notification_drain_incomplete pending=%d", len(not_done))
        return not not_done
