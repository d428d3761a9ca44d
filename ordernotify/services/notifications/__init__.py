from ordernotify.services.notifications.chain import NO_TRANSPORT_AVAILABLE, TransportChain
from ordernotify.services.notifications.notifier import Notifier
from ordernotify.services.notifications.orders import OrderEvent, notify_order_event, order_subject

__all__ = [
    "NO_TRANSPORT_AVAILABLE",
    "TransportChain",
    "Notifier",
    "OrderEvent",
    "notify_order_event",
    "order_subject",
]
