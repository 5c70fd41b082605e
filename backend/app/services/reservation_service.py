# Overview: Service-layer operations for stock reservations held by in-progress sales.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import StockReservation
from app.time_utils import utcnow
from .inventory_service import get_inventory
"""
Stock Reservation Ledger Invariants (authoritative)

- available = committed stock - SUM(active reservation quantities)
- A reservation is active while expire_at > now; expired rows never count.
- At most one row per (sale, product): updates overwrite quantity and reset
  expiry, they never insert a second row.
- For any (product, business): SUM(active quantities) <= committed stock.
  Every reserve/update locks the inventory row first, which serializes
  cashiers racing on the same product.
- Release is an unconditional delete and is idempotent.
- Expiry only deletes rows, so the sweep may run concurrently with all of
  the above.
"""


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("RESERVATION_TTL_HOURS", 4))


def _expiry_from(now: datetime) -> datetime:
    return now + _ttl()


def get_reserved_stock(product_id: int, business_id: int, *, now: datetime | None = None) -> int:
    """Total active reserved quantity for a product."""
    now = now or utcnow()
    total = db.session.query(
        func.coalesce(func.sum(StockReservation.quantity), 0)
    ).filter(
        StockReservation.product_id == product_id,
        StockReservation.business_id == business_id,
        StockReservation.expire_at > now,
    ).scalar()
    return int(total or 0)


def get_raw_available(product_id: int, business_id: int, *, lock: bool = False) -> int:
    """
    committed - active reserved, unclamped.

    Write paths use this value; a negative result means over-reservation
    already happened and is logged as a consistency violation.
    """
    inv = get_inventory(product_id, business_id, lock=lock)
    raw = inv.current_stock - get_reserved_stock(product_id, business_id)
    if raw < 0:
        current_app.logger.warning(
            "Reservation ledger inconsistent: product=%s business=%s committed=%s available=%s",
            product_id, business_id, inv.current_stock, raw,
        )
    return raw


def get_available_stock(product_id: int, business_id: int) -> int:
    """Available stock for reporting, floored at zero."""
    return max(get_raw_available(product_id, business_id), 0)


def get_reservation(sale_id: int, product_id: int) -> StockReservation | None:
    return db.session.query(StockReservation).filter_by(sale_id=sale_id, product_id=product_id).first()


def get_active_reserved_quantity(sale_id: int, product_id: int) -> int:
    reservation = get_reservation(sale_id, product_id)
    if reservation is None or reservation.expire_at <= utcnow():
        return 0
    return reservation.quantity


def get_reservations_by_sale(sale_id: int) -> list[StockReservation]:
    return (
        db.session.query(StockReservation)
        .filter_by(sale_id=sale_id)
        .order_by(StockReservation.id.asc())
        .all()
    )


def reserve_stock(
    sale_id: int,
    product_id: int,
    business_id: int,
    cashier_id: int | None,
    quantity: int,
) -> StockReservation:
    """
    Reserve stock for a draft/held sale.

    An active reservation for the same (sale, product) is updated in place;
    an expired one is overwritten as if it were new.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero")

    now = utcnow()
    existing = get_reservation(sale_id, product_id)
    if existing is not None and existing.expire_at > now:
        return update_reservation_quantity(sale_id, product_id, quantity)

    available = get_raw_available(product_id, business_id, lock=True)
    if available < quantity:
        raise InsufficientStockError(
            "Insufficient stock available for reservation",
            details={"product_id": product_id, "available": max(available, 0), "requested": quantity},
        )

    if existing is None:
        existing = StockReservation(
            product_id=product_id,
            business_id=business_id,
            sale_id=sale_id,
        )
        db.session.add(existing)

    existing.quantity = quantity
    existing.cashier_id = cashier_id
    existing.expire_at = _expiry_from(now)
    db.session.flush()
    return existing


def update_reservation_quantity(sale_id: int, product_id: int, new_quantity: int) -> StockReservation | None:
    """
    Overwrite the reserved quantity for (sale, product) and reset its expiry.

    Availability is checked as if the existing reservation were released
    first: available + old_quantity >= new_quantity. A quantity of zero
    releases the reservation and returns None.
    """
    if new_quantity < 0:
        raise ValidationError("quantity cannot be negative")

    if new_quantity == 0:
        release_reservation(sale_id, product_id)
        return None

    reservation = get_reservation(sale_id, product_id)
    if reservation is None:
        raise NotFoundError(
            "Reservation not found",
            details={"sale_id": sale_id, "product_id": product_id},
        )

    now = utcnow()
    old_quantity = reservation.quantity if reservation.expire_at > now else 0
    available = get_raw_available(product_id, reservation.business_id, lock=True)
    if available + old_quantity < new_quantity:
        raise InsufficientStockError(
            "Insufficient stock available for new quantity",
            details={
                "product_id": product_id,
                "available": max(available + old_quantity, 0),
                "requested": new_quantity,
            },
        )

    reservation.quantity = new_quantity
    reservation.expire_at = _expiry_from(now)
    db.session.flush()
    return reservation


def release_reservation(sale_id: int, product_id: int) -> int:
    """Delete the reservation for (sale, product). Releasing nothing is not an error."""
    deleted = db.session.query(StockReservation).filter_by(
        sale_id=sale_id, product_id=product_id
    ).delete(synchronize_session="fetch")
    db.session.flush()
    return deleted


def release_all_reservations(sale_id: int) -> int:
    deleted = db.session.query(StockReservation).filter_by(
        sale_id=sale_id
    ).delete(synchronize_session="fetch")
    db.session.flush()
    return deleted


def extend_reservations(sale_id: int) -> int:
    """Reset expiry of every reservation on a sale to now + TTL."""
    expire_at = _expiry_from(utcnow())
    reservations = get_reservations_by_sale(sale_id)
    for reservation in reservations:
        reservation.expire_at = expire_at
    db.session.flush()
    return len(reservations)


def reassign_reservations(from_sale_id: int, to_sale_id: int) -> None:
    """
    Move a sale's reservations onto another sale (bill merge).

    Rows for a product the target already reserves are folded into the
    target row, keeping one reservation per (sale, product). Quantities are
    only moved, so availability does not change.
    """
    now = utcnow()
    for reservation in get_reservations_by_sale(from_sale_id):
        target = get_reservation(to_sale_id, reservation.product_id)
        if target is None:
            reservation.sale_id = to_sale_id
            continue

        moved = reservation.quantity if reservation.expire_at > now else 0
        kept = target.quantity if target.expire_at > now else 0
        target.quantity = kept + moved
        target.expire_at = _expiry_from(now)
        db.session.delete(reservation)
    db.session.flush()


def clean_expired_reservations(now: datetime | None = None) -> int:
    """
    Delete reservations past expire_at. Intended for a scheduled job.

    Commits its own work; returns the number of rows removed.
    """
    now = now or utcnow()
    deleted = db.session.query(StockReservation).filter(
        StockReservation.expire_at <= now
    ).delete(synchronize_session=False)
    db.session.commit()
    if deleted:
        current_app.logger.info("Cleaned %d expired stock reservations", deleted)
    return deleted
