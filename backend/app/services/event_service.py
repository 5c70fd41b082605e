# Overview: Outbound port for sale outcome events (notifications, printing, KDS).

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from flask import current_app

from app.time_utils import utcnow
"""
Sale Event Port

- The engine publishes "sale.completed" and "sale.voided" only after the
  owning transaction has committed.
- Delivery is fire-and-forget: a failing subscriber is logged and never
  propagates into the sale operation.
- Subscribers live on app.extensions["sale_event_subscribers"], so nothing
  here depends on which clients are connected.
"""

SALE_COMPLETED = "sale.completed"
SALE_VOIDED = "sale.voided"

Subscriber = Callable[["SaleEvent"], None]


@dataclass(frozen=True)
class SaleEvent:
    event_type: str
    business_id: int
    sale_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


def _subscribers() -> list[Subscriber]:
    return current_app.extensions.setdefault("sale_event_subscribers", [])


def subscribe(handler: Subscriber) -> Subscriber:
    """Register a handler; returns it so this can be used as a decorator."""
    _subscribers().append(handler)
    return handler


def unsubscribe(handler: Subscriber) -> None:
    subscribers = _subscribers()
    if handler in subscribers:
        subscribers.remove(handler)


def publish(event: SaleEvent) -> None:
    for handler in list(_subscribers()):
        try:
            handler(event)
        except Exception:
            current_app.logger.exception(
                "Sale event subscriber failed: event=%s sale=%s", event.event_type, event.sale_id
            )
