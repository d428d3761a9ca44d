from __future__ import annotations

import asyncio
import logging
import time
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Callable

import aiosmtplib

from ordernotify.core.config import Settings, get_settings
from ordernotify.core.errors import TransportConfigError, TransportError
from ordernotify.domain.models import DeliveryOutcome, Message, TransportKind
from ordernotify.services.telemetry import record_delivery_attempt


logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Any]


class SmtpTransport:
    """SMTP delivery over a single reused connection.

    The connection is opened lazily on first send and kept for later
    messages. Concurrent sends are serialized by a lock because one SMTP
    session cannot interleave transactions. Any failure drops the connection
    so the next attempt starts from a fresh handshake.
    """

    kind = TransportKind.SMTP

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
        priority: int = 1,
    ) -> None:
        self._settings = settings or get_settings()
        if not self._settings.smtp_configured:
            raise TransportConfigError("SMTP_HOST, SMTP_PORT, SMTP_USER and SMTP_PASS are required for SMTP")
        self._client_factory = client_factory or self._build_client
        self._client: Any | None = None
        self._lock = asyncio.Lock()
        self.priority = priority
        self.ready = False

    @property
    def use_tls(self) -> bool:
        return self._settings.smtp_use_tls

    @property
    def _connect_timeout_s(self) -> float:
        # Greeting is read as part of connect, so both bounds apply to that one call.
        settings = self._settings
        return (settings.smtp_connection_timeout_ms + settings.smtp_greeting_timeout_ms) / 1000.0

    def _build_client(self) -> aiosmtplib.SMTP:
        settings = self._settings
        return aiosmtplib.SMTP(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            use_tls=self.use_tls,
            start_tls=False if self.use_tls else None,
            timeout=settings.smtp_connection_timeout_ms / 1000.0,
            validate_certs=settings.smtp_tls_reject_unauthorized,
        )

    async def _connect(self) -> Any:
        client = self._client_factory()
        try:
            await asyncio.wait_for(client.connect(), timeout=self._connect_timeout_s)
        except asyncio.TimeoutError as exc:
            _close_quietly(client)
            raise TransportError(
                f"SMTP connect to {self._settings.smtp_host}:{self._settings.smtp_port} timed out"
            ) from exc
        except Exception:
            _close_quietly(client)
            raise
        return client

    async def verify(self) -> bool:
        # Handshake once at startup; failure excludes the transport without halting the process.
        async with self._lock:
            try:
                client = await self._connect()
                await client.quit()
            except Exception as exc:  # noqa: BLE001 - readiness failures are logged, not raised
                self.ready = False
                logger.warning(
                    "email_transport_not_ready transport=smtp host=%s port=%s error=%s",
                    self._settings.smtp_host,
                    self._settings.smtp_port,
                    exc,
                )
                return False
        self.ready = True
        logger.info(
            "email_transport_ready transport=smtp host=%s port=%s tls=%s",
            self._settings.smtp_host,
            self._settings.smtp_port,
            self.use_tls,
        )
        return True

    def _build_email(self, message: Message, *, sender: str) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = sender
        email["To"] = message.recipient
        email["Message-ID"] = make_msgid()
        email.set_content(message.html, subtype="html")
        return email

    async def _send(self, email: EmailMessage) -> None:
        async with self._lock:
            if self._client is None or not self._client.is_connected:
                self._client = await self._connect()
            try:
                refused, _response = await self._client.send_message(email)
            except Exception:
                self._drop_connection()
                raise
        if refused:
            raise TransportError(f"SMTP server refused recipients: {', '.join(sorted(refused))}")

    def _drop_connection(self) -> None:
        if self._client is not None:
            _close_quietly(self._client)
            self._client = None

    async def attempt(self, message: Message, *, sender: str) -> DeliveryOutcome:
        start = time.monotonic()
        try:
            email = self._build_email(message, sender=sender)
            await self._send(email)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a failed outcome
            latency_ms = (time.monotonic() - start) * 1000.0
            record_delivery_attempt(transport=self.kind.value, latency_ms=latency_ms, success=False)
            return DeliveryOutcome(
                transport=self.kind,
                success=False,
                error=str(exc) or exc.__class__.__name__,
                attempted=(self.kind,),
                latency_ms=latency_ms,
            )
        latency_ms = (time.monotonic() - start) * 1000.0
        record_delivery_attempt(transport=self.kind.value, latency_ms=latency_ms, success=True)
        return DeliveryOutcome(
            transport=self.kind,
            success=True,
            external_id=email["Message-ID"],
            attempted=(self.kind,),
            latency_ms=latency_ms,
        )

    async def aclose(self) -> None:
        async with self._lock:
            client = self._client
            self._client = None
            if client is None or not client.is_connected:
                return
            try:
                await client.quit()
            except (aiosmtplib.SMTPException, OSError):
                _close_quietly(client)


def _close_quietly(client: Any) -> None:
    try:
        client.close()
    except Exception:  # noqa: BLE001 - closing a broken socket is best-effort
        logger.debug("smtp_close_failed", exc_info=True)
