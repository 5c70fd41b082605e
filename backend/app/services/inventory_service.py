# Overview: Service-layer operations for committed stock; encapsulates business logic and database work.

# backend/app/services/inventory_service.py

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Inventory, Product
from app.time_utils import utcnow
from .concurrency import atomic, lock_for_update
"""
Inventory Ledger Invariants (authoritative)

- Committed stock lives in one Inventory row per (product, business).
- current_stock is mutated only through adjust_stock(); delta may be negative.
- Over-deduction is rejected with InsufficientStockError, never clamped to
  zero: clamping would hide a stock-out behind a successful sale.
- Sale completion decrements, void of a completed sale restores.
- Callers own the transaction; functions here flush but never commit
  (except the restock/set_stock entry points used by receiving and seeding).
"""


def get_inventory(product_id: int, business_id: int, *, lock: bool = False) -> Inventory:
    query = db.session.query(Inventory).filter_by(product_id=product_id, business_id=business_id)
    if lock:
        query = lock_for_update(query)
    inv = query.first()
    if inv is None:
        raise NotFoundError(
            "Product not found in inventory",
            details={"product_id": product_id, "business_id": business_id},
        )
    return inv


def adjust_stock(product_id: int, business_id: int, delta: int) -> Inventory:
    """
    Atomically apply a signed delta to committed stock.

    Locks the inventory row for the rest of the caller's transaction.
    Positive deltas stamp last_restocked.
    """
    inv = get_inventory(product_id, business_id, lock=True)

    new_stock = inv.current_stock + delta
    if new_stock < 0:
        raise InsufficientStockError(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "available": inv.current_stock,
                "requested": -delta,
            },
        )

    inv.current_stock = new_stock
    if delta > 0:
        inv.last_restocked = utcnow()
    db.session.flush()
    return inv


def set_stock(
    product_id: int,
    business_id: int,
    quantity: int,
    *,
    low_stock_alert: int | None = None,
) -> Inventory:
    """Create or overwrite the inventory row for a product (receiving / seeding)."""
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")

    with atomic():
        product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        inv = lock_for_update(
            db.session.query(Inventory).filter_by(product_id=product_id, business_id=business_id)
        ).first()
        if inv is None:
            inv = Inventory(
                product_id=product_id,
                business_id=business_id,
                low_stock_alert=current_app.config.get("LOW_STOCK_DEFAULT", 10),
            )
            db.session.add(inv)

        inv.current_stock = quantity
        inv.last_restocked = utcnow()
        if low_stock_alert is not None:
            inv.low_stock_alert = low_stock_alert
    return inv


def restock(product_id: int, business_id: int, quantity: int) -> Inventory:
    """Add received units to committed stock in its own transaction."""
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero")
    with atomic():
        inv = adjust_stock(product_id, business_id, quantity)
    return inv


def list_low_stock(business_id: int) -> list[Inventory]:
    return (
        db.session.query(Inventory)
        .filter(
            Inventory.business_id == business_id,
            Inventory.current_stock <= Inventory.low_stock_alert,
        )
        .order_by(Inventory.current_stock.asc(), Inventory.id.asc())
        .all()
    )


def list_inventory(business_id: int) -> list[Inventory]:
    return (
        db.session.query(Inventory)
        .filter_by(business_id=business_id)
        .order_by(Inventory.product_id.asc())
        .all()
    )
