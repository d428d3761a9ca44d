from __future__ import annotations

import logging
import time

import httpx

from ordernotify.core.config import Settings, get_settings
from ordernotify.core.errors import TransportConfigError, TransportError
from ordernotify.domain.models import DeliveryOutcome, Message, TransportKind
from ordernotify.services.telemetry import record_delivery_attempt


logger = logging.getLogger(__name__)


class ResendApiTransport:
    kind = TransportKind.API

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        priority: int = 0,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self.priority = priority
        self.ready = False
        self._closed = False

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per transport for connection pooling.
        timeout_s = self._settings.email_api_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def verify(self) -> bool:
        # The hosted API has no handshake; a key is all it takes to be usable.
        self.ready = bool(self._settings.resend_api_key)
        if not self.ready:
            logger.warning("email_transport_not_ready transport=api reason=missing_api_key")
        return self.ready

    async def _send(self, message: Message, *, sender: str) -> str | None:
        if self._closed:
            # A late dispatch during shutdown must not open a fresh client.
            raise TransportError("transport closed")
        api_key = self._settings.resend_api_key
        if not api_key:
            raise TransportConfigError("RESEND_API_KEY is required for the API transport")
        payload = {
            "from": sender,
            "to": [message.recipient],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        try:
            response = await self._get_client().post(self._settings.resend_api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"Resend request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(
                f"Resend responded with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        return body.get("id") if isinstance(body, dict) else None

    async def attempt(self, message: Message, *, sender: str) -> DeliveryOutcome:
        start = time.monotonic()
        try:
            external_id = await self._send(message, sender=sender)
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
            external_id=external_id,
            attempted=(self.kind,),
            latency_ms=latency_ms,
        )

    async def aclose(self) -> None:
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._client = None
