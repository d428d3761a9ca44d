from __future__ import annotations

import asyncio
from email.message import EmailMessage


class FakeSmtpClient:
    def __init__(
        self,
        *,
        fail_connect: Exception | None = None,
        fail_send: Exception | None = None,
        refused: dict[str, tuple[int, str]] | None = None,
        hang_connect: bool = False,
    ) -> None:
        self.fail_connect = fail_connect
        self.fail_send = fail_send
        self.refused = refused or {}
        self.hang_connect = hang_connect
        self.is_connected = False
        self.connects = 0
        self.quits = 0
        self.closes = 0
        self.sent: list[EmailMessage] = []

    async def connect(self) -> None:
        self.connects += 1
        if self.hang_connect:
            await asyncio.sleep(3600)
        if self.fail_connect is not None:
            raise self.fail_connect
        self.is_connected = True

    async def send_message(self, message: EmailMessage) -> tuple[dict[str, tuple[int, str]], str]:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(message)
        return self.refused, "250 OK"

    async def quit(self) -> None:
        self.quits += 1
        self.is_connected = False

    def close(self) -> None:
        self.closes += 1
        self.is_connected = False


class FakeSmtpFactory:
    # Hands out prepared clients in order, then fresh healthy ones.
    def __init__(self, *clients: FakeSmtpClient) -> None:
        self._queue = list(clients)
        self.created: list[FakeSmtpClient] = []

    def __call__(self) -> FakeSmtpClient:
        client = self._queue.pop(0) if self._queue else FakeSmtpClient()
        self.created.append(client)
        return client
