"""Live mail channels and notification delivery."""

from .connections import ConnectionManager, Subscription
from .dispatcher import DeliveryStatus, NotificationDispatcher

__all__ = ["ConnectionManager", "Subscription", "DeliveryStatus", "NotificationDispatcher"]
