from __future__ import annotations

import logging

from ordernotify.core.config import Settings, get_settings
from ordernotify.core.errors import ConfigurationError
from ordernotify.providers.email.base import EmailTransport
from ordernotify.providers.email.fake import FakeEmailTransport
from ordernotify.providers.email.resend_api import ResendApiTransport
from ordernotify.providers.email.smtp import SmtpTransport
from ordernotify.services.notifications.chain import TransportChain


logger = logging.getLogger(__name__)

_TRANSPORT_MODES = {"auto", "fake", "none"}


def configured_transports(settings: Settings) -> list[EmailTransport]:
    # API first, SMTP second; anything with incomplete configuration is left out.
    mode = (settings.email_transport or "auto").lower()
    if mode not in _TRANSPORT_MODES:
        raise ConfigurationError(f"Unsupported EMAIL_TRANSPORT: {mode}")
    if mode == "none":
        logger.info("email_disabled reason=EMAIL_TRANSPORT=none")
        return []
    if mode == "fake":
        return [FakeEmailTransport()]

    transports: list[EmailTransport] = []
    if settings.resend_api_key:
        transports.append(ResendApiTransport(settings=settings, priority=0))
        logger.info("email_transport_configured transport=api")
    else:
        logger.info("email_transport_skipped transport=api reason=RESEND_API_KEY not set")
    if settings.smtp_configured:
        transports.append(SmtpTransport(settings=settings, priority=1))
        logger.info("email_transport_configured transport=smtp")
    else:
        logger.info("email_transport_skipped transport=smtp reason=SMTP settings incomplete")
    return transports


async def build_transport_chain(
    settings: Settings | None = None,
    *,
    transports: list[EmailTransport] | None = None,
) -> TransportChain:
    settings = settings or get_settings()
    candidates = transports if transports is not None else configured_transports(settings)
    for transport in candidates:
        # verify() logs its own warning and never raises into startup.
        try:
            await transport.verify()
        except Exception:  # noqa: BLE001 - readiness checks must not halt startup
            transport.ready = False
            logger.warning("email_transport_verify_failed transport=%s", transport.kind.value, exc_info=True)
    chain = TransportChain(candidates, sender=settings.sender_address)
    if not len(chain):
        logger.warning("email_chain_empty notifications will not be delivered")
    else:
        logger.info(
            "email_chain_ready transports=%s sender=%s",
            ",".join(kind.value for kind in chain.kinds),
            chain.sender,
        )
    return chain
