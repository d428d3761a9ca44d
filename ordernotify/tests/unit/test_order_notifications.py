from __future__ import annotations

import logging

import pytest

from ordernotify.providers.email.fake import FakeEmailTransport
from ordernotify.services.notifications.chain import TransportChain
from ordernotify.services.notifications.notifier import Notifier
from ordernotify.services.notifications.orders import notify_order_event, order_subject


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        ("created", "Order Confirmation — 123"),
        ("updated", "Order Update — 123"),
        ("deleted", "Order Deleted — 123"),
    ],
)
def test_subject_per_order_event(event, expected) -> None:  # noqa: ANN001
    assert order_subject(event, "123") == expected


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(ValueError):
        order_subject("refunded", "1")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_order_event_is_delivered_with_correlation_id() -> None:
    transport = FakeEmailTransport()
    notifier = Notifier(TransportChain([transport], sender="shop@example.com"))

    notify_order_event(notifier, event="created", order_id="123", recipient="buyer@example.com", html="<p>thanks</p>")
    await notifier.drain(timeout_s=1.0)

    sender, message = transport.sent[0]
    assert sender == "shop@example.com"
    assert message.subject == "Order Confirmation — 123"
    assert message.recipient == "buyer@example.com"
    assert message.correlation_id == "123"


@pytest.mark.asyncio
async def test_order_without_recipient_is_skipped(caplog) -> None:  # noqa: ANN001
    transport = FakeEmailTransport()
    notifier = Notifier(TransportChain([transport], sender="shop@example.com"))

    with caplog.at_level(logging.WARNING):
        notify_order_event(notifier, event="deleted", order_id="9", recipient=None, html="<p>gone</p>")
    await notifier.drain(timeout_s=1.0)

    assert transport.attempts == 0
    assert "order_notification_skipped reason=no_recipient event=deleted order_id=9" in caplog.text


@pytest.mark.asyncio
async def test_unknown_event_is_logged_not_raised(caplog) -> None:  # noqa: ANN001
    transport = FakeEmailTransport()
    notifier = Notifier(TransportChain([transport], sender="shop@example.com"))

    with caplog.at_level(logging.ERROR):
        notify_order_event(
            notifier,
            event="refunded",  # type: ignore[arg-type]
            order_id="4",
            recipient="buyer@example.com",
            html="<p>x</p>",
        )

    assert transport.attempts == 0
    assert "order_notification_skipped order_id=4" in caplog.text
