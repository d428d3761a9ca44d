from __future__ import annotations

import logging
from typing import Iterable

from ordernotify.domain.models import DeliveryOutcome, Message, TransportKind
from ordernotify.providers.email.base import EmailTransport


logger = logging.getLogger(__name__)

NO_TRANSPORT_AVAILABLE = "no transport available"


class TransportChain:
    """Ordered fallback over the transports that passed their readiness check.

    Exactly one transport delivers a message when any succeeds; later
    transports are only tried after an earlier one fails. The transport list
    is fixed at construction and shared read-only by concurrent deliveries.
    """

    def __init__(self, transports: Iterable[EmailTransport], *, sender: str) -> None:
        ready = [transport for transport in transports if transport.ready]
        self._transports: tuple[EmailTransport, ...] = tuple(sorted(ready, key=lambda item: item.priority))
        self._sender = sender

    @property
    def transports(self) -> tuple[EmailTransport, ...]:
        return self._transports

    @property
    def kinds(self) -> list[TransportKind]:
        return [transport.kind for transport in self._transports]

    @property
    def sender(self) -> str:
        return self._sender

    def __len__(self) -> int:
        return len(self._transports)

    async def deliver(self, message: Message) -> DeliveryOutcome:
        if not self._transports:
            return DeliveryOutcome(transport=None, success=False, error=NO_TRANSPORT_AVAILABLE)

        attempted: list[TransportKind] = []
        last: DeliveryOutcome | None = None
        for transport in self._transports:
            attempted.append(transport.kind)
            try:
                outcome = await transport.attempt(message, sender=self._sender)
            except Exception as exc:  # noqa: BLE001 - a misbehaving transport must not break the chain
                outcome = DeliveryOutcome(transport=transport.kind, success=False, error=str(exc) or repr(exc))
            if outcome.success:
                return DeliveryOutcome(
                    transport=transport.kind,
                    success=True,
                    external_id=outcome.external_id,
                    attempted=tuple(attempted),
                    latency_ms=outcome.latency_ms,
                )
            logger.warning(
                "email_transport_failed transport=%s recipient=%s correlation_id=%s error=%s",
                transport.kind.value,
                message.recipient,
                message.correlation_id,
                outcome.error,
            )
            last = outcome

        return DeliveryOutcome(
            transport=last.transport if last else None,
            success=False,
            error=(last.error if last else None) or NO_TRANSPORT_AVAILABLE,
            attempted=tuple(attempted),
            latency_ms=last.latency_ms if last else None,
        )

    async def aclose(self) -> None:
        for transport in self._transports:
            try:
                await transport.aclose()
            except Exception:  # noqa: BLE001 - shutdown keeps closing the remaining transports
                logger.warning("email_transport_close_failed transport=%s", transport.kind.value, exc_info=True)
