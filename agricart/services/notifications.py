# agricart/services/notifications.py
"""
Per-user realtime notifications.

Every authenticated socket joins a room named after its user id
(see agricart.sockets), so a notification is an emit into that room.
Callers emit only after their transaction has committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app

from ..extensions import socketio

NEW_ORDER = "newOrder"
ORDER_PAID = "orderPaid"
ORDER_SHIPPED = "orderShipped"
ORDER_DELIVERED = "orderDelivered"
ORDER_CANCELLED = "orderCancelled"
FARMER_ORDER_CANCELLED = "farmerOrderCancelled"


@dataclass(frozen=True)
class Notification:
    user_id: int
    event: str
    payload: dict[str, Any] = field(default_factory=dict)


def room_for(user_id) -> str:
    return str(user_id)


def notify(user_id, event: str, payload: dict[str, Any]) -> None:
    try:
        socketio.emit(event, payload, to=room_for(user_id))
    except Exception:
        # Delivery is best effort; the state change has already committed.
        current_app.logger.exception("Notification %s to user %s failed", event, user_id)


def dispatch(notifications: Iterable[Notification]) -> None:
    for n in notifications:
        notify(n.user_id, n.event, n.payload)
