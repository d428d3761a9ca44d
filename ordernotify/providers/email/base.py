from __future__ import annotations

from typing import Protocol

from ordernotify.domain.models import DeliveryOutcome, Message, TransportKind


class EmailTransport(Protocol):
    kind: TransportKind
    priority: int
    ready: bool

    async def verify(self) -> bool:
        ...

    async def attempt(self, message: Message, *, sender: str) -> DeliveryOutcome:
        ...

    async def aclose(self) -> None:
        ...
