from __future__ import annotations

from uuid import uuid4

from ordernotify.domain.models import DeliveryOutcome, Message, TransportKind


class FakeEmailTransport:
    def __init__(
        self,
        *,
        kind: TransportKind = TransportKind.FAKE,
        priority: int = 0,
        fail_with: str | None = None,
        ready: bool = True,
    ) -> None:
        # Keep sends in memory so tests can assert on them without a mail server.
        self.kind = kind
        self.priority = priority
        self.fail_with = fail_with
        self.ready = ready
        self.sent: list[tuple[str, Message]] = []
        self.attempts = 0
        self.closed = False

    async def verify(self) -> bool:
        return self.ready

    async def attempt(self, message: Message, *, sender: str) -> DeliveryOutcome:
        self.attempts += 1
        if self.fail_with is not None:
            return DeliveryOutcome(transport=self.kind, success=False, error=self.fail_with, attempted=(self.kind,))
        self.sent.append((sender, message))
        return DeliveryOutcome(
            transport=self.kind,
            success=True,
            external_id=f"fake-{uuid4().hex}",
            attempted=(self.kind,),
            latency_ms=0.0,
        )

    async def aclose(self) -> None:
        self.closed = True
