from __future__ import annotations

import logging
from typing import Literal

from ordernotify.services.notifications.notifier import Notifier


logger = logging.getLogger(__name__)

OrderEvent = Literal["created", "updated", "deleted"]

_SUBJECTS: dict[str, str] = {
    "created": "Order Confirmation — {order_id}",
    "updated": "Order Update — {order_id}",
    "deleted": "Order Deleted — {order_id}",
}


def order_subject(event: OrderEvent, order_id: str) -> str:
    template = _SUBJECTS.get(event)
    if template is None:
        raise ValueError(f"Unknown order event: {event}")
    return template.format(order_id=order_id)


def notify_order_event(
    notifier: Notifier,
    *,
    event: OrderEvent,
    order_id: str,
    recipient: str | None,
    html: str,
) -> None:
    # Call after the order response has been sent; the return value is never meaningful.
    try:
        subject = order_subject(event, order_id)
    except ValueError:
        logger.exception("order_notification_skipped order_id=%s", order_id)
        return
    if not recipient:
        logger.warning("order_notification_skipped reason=no_recipient event=%s order_id=%s", event, order_id)
        return
    notifier.notify(recipient, subject, html, correlation_id=str(order_id))
