"""
Sale Orchestrator - draft, item, hold/resume, completion and void use cases

WHY: Every sale mutation touches several records (sale, items,
reservations, inventory, shift, activity log). Each public function here is
one database transaction: all of those writes commit together or none do.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import InsufficientPaymentError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Business, Product, Sale, SaleItem
from app.time_utils import business_day, to_utc_z, utcnow
from . import activity_log_service as activity
from . import event_service, inventory_service, reservation_service, sale_state, shift_service
from .concurrency import atomic, lock_for_update
from .context import RequestContext
from .sequence_service import format_receipt_number, next_daily_sequence


@dataclass
class SaleResult:
    sale: Sale
    items: list[SaleItem]

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "editable": sale_state.is_editable(self.sale.status),
        }


@dataclass
class SaleReceipt:
    sale: Sale
    items: list[SaleItem]
    change_cents: int
    receipt_number: str
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "change_cents": self.change_cents,
            "receipt_number": self.receipt_number,
            "generated_at": to_utc_z(self.generated_at),
        }


# =============================================================================
# INTERNAL HELPERS (run inside the caller's transaction)
# =============================================================================

def _validate_quantity(quantity, *, allow_zero: bool = False) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError("quantity must be greater than zero")
    return quantity


def _get_sale(ctx: RequestContext, sale_id: int, *, lock: bool = True) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id, business_id=ctx.business_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def _get_items(sale_id: int) -> list[SaleItem]:
    return (
        db.session.query(SaleItem)
        .filter_by(sale_id=sale_id)
        .order_by(SaleItem.id.asc())
        .all()
    )


def _get_product(ctx: RequestContext, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, business_id=ctx.business_id).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.is_active:
        raise ValidationError("Product is inactive", details={"product_id": product_id})
    return product


def _tax_rate_bps(business_id: int) -> int:
    rate = db.session.query(Business.tax_rate_bps).filter_by(id=business_id).scalar()
    return int(rate or 0)


def recalculate_sale_totals(sale: Sale) -> list[SaleItem]:
    """Recompute the sale's totals from its persisted items; returns the items."""
    db.session.flush()
    items = _get_items(sale.id)
    sale.recalculate_totals(items, _tax_rate_bps(sale.business_id))
    db.session.flush()
    return items


def _add_item_locked(
    ctx: RequestContext,
    sale: Sale,
    product_id: int,
    quantity: int,
    *,
    log: bool = True,
) -> SaleItem:
    """
    Upsert a line and its reservation for a sale the caller already locked.

    The availability check treats this sale's own active reservation as
    available to it: available + current_reserved >= new_total.
    """
    quantity = _validate_quantity(quantity)
    product = _get_product(ctx, product_id)

    item = db.session.query(SaleItem).filter_by(sale_id=sale.id, product_id=product.id).first()
    current_reserved = reservation_service.get_active_reserved_quantity(sale.id, product.id)
    new_total = (item.quantity if item else 0) + quantity

    available = reservation_service.get_raw_available(product.id, ctx.business_id, lock=True)
    if available + current_reserved < new_total:
        raise InsufficientStockError(
            "Insufficient stock available for reservation",
            details={
                "product_id": product.id,
                "available": max(available + current_reserved, 0),
                "requested": new_total,
            },
        )

    if item is None:
        item = SaleItem(sale_id=sale.id, product_id=product.id)
        db.session.add(item)
    item.product_name = product.name
    item.unit_price_cents = product.price_cents
    item.set_quantity(new_total)

    if current_reserved > 0:
        reservation_service.update_reservation_quantity(sale.id, product.id, new_total)
    else:
        reservation_service.reserve_stock(sale.id, product.id, ctx.business_id, ctx.cashier_id, new_total)

    db.session.flush()
    if not log:
        return item
    activity.log_activity(
        sale_id=sale.id,
        business_id=ctx.business_id,
        performed_by=ctx.cashier_id,
        action_type=activity.ACTION_ITEM_ADDED,
        details=activity.ItemAddedDetails(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
        ),
    )
    return item


def _remove_item_locked(ctx: RequestContext, sale: Sale, item: SaleItem, *, release_reservation: bool) -> None:
    if release_reservation:
        reservation_service.release_reservation(sale.id, item.product_id)

    details = activity.ItemRemovedDetails(
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=item.quantity,
        reservation_released=release_reservation,
    )
    db.session.delete(item)
    db.session.flush()

    activity.log_activity(
        sale_id=sale.id,
        business_id=ctx.business_id,
        performed_by=ctx.cashier_id,
        action_type=activity.ACTION_ITEM_REMOVED,
        details=details,
    )


# =============================================================================
# DRAFT LIFECYCLE
# =============================================================================

def create_draft(
    ctx: RequestContext,
    *,
    table_id: int | None = None,
    table_number: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    order_type: str | None = None,
    items: list[dict] | None = None,
) -> SaleResult:
    """
    Start a DRAFT sale, optionally with initial items.

    Initial items go through the same reservation-checked path as add_item;
    an unknown product or a stock shortfall aborts the whole draft. The
    operation writes a single `created` activity row that lists the initial
    lines.
    """
    with atomic():
        sale = Sale(
            business_id=ctx.business_id,
            tenant_id=ctx.tenant_id,
            status=sale_state.DRAFT,
            cashier_id=ctx.cashier_id,
            shift_id=ctx.shift_id,
            table_id=table_id,
            table_number=table_number,
            customer_name=customer_name,
            customer_phone=customer_phone,
            order_type=order_type or "dine-in",
            sale_date=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        initial = []
        for entry in items or []:
            if not isinstance(entry, dict):
                raise ValidationError("items must be objects with product_id and quantity")
            item = _add_item_locked(ctx, sale, entry.get("product_id"), entry.get("quantity"), log=False)
            initial.append({
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": entry.get("quantity"),
            })

        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_CREATED,
            details=activity.CreatedDetails(
                table_number=table_number,
                order_type=sale.order_type,
                items=initial,
            ),
        )

        sale_items = recalculate_sale_totals(sale)
    return SaleResult(sale=sale, items=sale_items)


def add_item(ctx: RequestContext, sale_id: int, product_id: int, quantity: int) -> SaleResult:
    """Add `quantity` units of a product to a DRAFT/HELD sale, reserving stock."""
    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "add items to")
        _add_item_locked(ctx, sale, product_id, quantity)
        items = recalculate_sale_totals(sale)
    return SaleResult(sale=sale, items=items)


def update_item_quantity(ctx: RequestContext, sale_id: int, item_id: int, quantity: int) -> SaleResult:
    """
    Set a line to an absolute quantity.

    Zero removes the line and releases its reservation.
    """
    quantity = _validate_quantity(quantity, allow_zero=True)

    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "update items on")

        item = db.session.query(SaleItem).filter_by(id=item_id, sale_id=sale.id).first()
        if not item:
            raise NotFoundError("Item not found", details={"sale_id": sale_id, "item_id": item_id})

        if quantity == 0:
            _remove_item_locked(ctx, sale, item, release_reservation=True)
        else:
            old_quantity = item.quantity
            if reservation_service.get_active_reserved_quantity(sale.id, item.product_id) > 0:
                reservation_service.update_reservation_quantity(sale.id, item.product_id, quantity)
            else:
                reservation_service.reserve_stock(
                    sale.id, item.product_id, ctx.business_id, ctx.cashier_id, quantity
                )
            item.set_quantity(quantity)
            db.session.flush()

            activity.log_activity(
                sale_id=sale.id,
                business_id=ctx.business_id,
                performed_by=ctx.cashier_id,
                action_type=activity.ACTION_UPDATED,
                details=activity.ItemUpdatedDetails(
                    product_id=item.product_id,
                    old_quantity=old_quantity,
                    new_quantity=quantity,
                ),
            )

        items = recalculate_sale_totals(sale)
    return SaleResult(sale=sale, items=items)


def remove_item(
    ctx: RequestContext,
    sale_id: int,
    item_id: int,
    *,
    release_reservation: bool = True,
) -> SaleResult:
    """
    Delete a line from a DRAFT/HELD sale and recalculate totals.

    release_reservation=False leaves the product's reservation in place for
    the void/delete path to drop later.
    """
    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "remove items from")

        item = db.session.query(SaleItem).filter_by(id=item_id, sale_id=sale.id).first()
        if not item:
            raise NotFoundError("Item not found", details={"sale_id": sale_id, "item_id": item_id})

        _remove_item_locked(ctx, sale, item, release_reservation=release_reservation)
        items = recalculate_sale_totals(sale)
    return SaleResult(sale=sale, items=items)


def hold_sale(ctx: RequestContext, sale_id: int) -> Sale:
    """Park a DRAFT sale. Reservations stay in place until they expire."""
    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale.status = sale_state.ensure_transition(sale, "hold")
        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_HELD,
            details=activity.HeldDetails(),
        )
    return sale


def resume_sale(ctx: RequestContext, sale_id: int) -> SaleResult:
    """Bring a HELD (or idle DRAFT) sale back to DRAFT and extend its reservations."""
    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale.status = sale_state.ensure_transition(sale, "resume")
        extended = reservation_service.extend_reservations(sale.id)
        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_RESUMED,
            details=activity.ResumedDetails(reservations_extended=extended),
        )
        items = _get_items(sale.id)
    return SaleResult(sale=sale, items=items)


def delete_draft(ctx: RequestContext, sale_id: int) -> None:
    """Delete a DRAFT/HELD sale with its items and reservations."""
    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "delete")
        previous_status = sale.status

        reservation_service.release_all_reservations(sale.id)
        db.session.query(SaleItem).filter_by(sale_id=sale.id).delete(synchronize_session="fetch")

        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_DELETED,
            details=activity.DeletedDetails(previous_status=previous_status),
        )
        db.session.delete(sale)


# =============================================================================
# COMPLETION & VOID
# =============================================================================

def complete_sale(
    ctx: RequestContext,
    sale_id: int,
    *,
    payment_method: str,
    amount_paid_cents: int,
    discount_cents: int = 0,
) -> SaleReceipt:
    """
    Finalize a DRAFT/HELD sale.

    One transaction: payment check, per-item reservation release and strict
    inventory deduction, daily sequence, status, shift totals, activity log.
    Any failure (including a single item short of stock) rolls back all of it.
    """
    if not payment_method or not str(payment_method).strip():
        raise ValidationError("payment_method required")
    if isinstance(amount_paid_cents, bool) or not isinstance(amount_paid_cents, int) or amount_paid_cents < 0:
        raise ValidationError("amount_paid_cents must be a non-negative integer")
    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int) or discount_cents < 0:
        raise ValidationError("discount_cents must be a non-negative integer")

    payment_method = str(payment_method).strip().upper()

    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "complete")

        items = _get_items(sale.id)
        if not items:
            raise ValidationError("Cannot complete a sale with no items", details={"sale_id": sale.id})

        subtotal = sum(item.total_price_cents for item in items)
        if discount_cents > subtotal:
            raise ValidationError(
                "discount cannot exceed subtotal",
                details={"discount_cents": discount_cents, "subtotal_cents": subtotal},
            )

        sale.discount_cents = discount_cents
        items = recalculate_sale_totals(sale)
        net_amount = sale.net_amount_cents

        if amount_paid_cents < net_amount:
            raise InsufficientPaymentError(
                "Insufficient payment",
                details={"amount_due_cents": net_amount, "amount_paid_cents": amount_paid_cents},
            )

        for item in items:
            released = reservation_service.release_reservation(sale.id, item.product_id)
            if not released:
                current_app.logger.info(
                    "No reservation to release for sale=%s product=%s (expired or swept)",
                    sale.id, item.product_id,
                )

            available = reservation_service.get_raw_available(item.product_id, ctx.business_id, lock=True)
            if available < item.quantity:
                raise InsufficientStockError(
                    "Insufficient stock to complete sale",
                    details={
                        "product_id": item.product_id,
                        "available": max(available, 0),
                        "requested": item.quantity,
                    },
                )
            inventory_service.adjust_stock(item.product_id, ctx.business_id, -item.quantity)

        # Reservations kept for lines removed earlier are dropped as well
        reservation_service.release_all_reservations(sale.id)

        now = utcnow()
        day = business_day(now)
        sequence = next_daily_sequence(ctx.business_id, day)

        sale.status = sale_state.COMPLETED
        sale.payment_method = payment_method
        sale.amount_paid_cents = amount_paid_cents
        sale.change_due_cents = amount_paid_cents - net_amount
        sale.daily_sequence = sequence
        sale.receipt_number = format_receipt_number(day, sequence)
        sale.completed_at = now
        sale.synced_at = now

        shift_id = sale.shift_id or ctx.shift_id
        if shift_id:
            shift_service.get_shift(shift_id, ctx.business_id)
            sale.shift_id = shift_id
            shift_service.adjust_shift_totals(shift_id, net_amount, 1, payment_method)

        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_COMPLETED,
            details=activity.CompletedDetails(
                payment_method=payment_method,
                amount_paid_cents=amount_paid_cents,
                daily_sequence=sequence,
            ),
        )

    receipt = SaleReceipt(
        sale=sale,
        items=items,
        change_cents=sale.change_due_cents,
        receipt_number=sale.receipt_number,
    )
    event_service.publish(event_service.SaleEvent(
        event_type=event_service.SALE_COMPLETED,
        business_id=sale.business_id,
        sale_id=sale.id,
        payload={
            "cashier_id": sale.cashier_id,
            "total_cents": sale.total_cents,
            "amount_paid_cents": sale.amount_paid_cents,
            "change_cents": sale.change_due_cents,
            "receipt_number": sale.receipt_number,
            "items": [item.to_dict() for item in items],
        },
    ))
    return receipt


def void_sale(ctx: RequestContext, sale_id: int, reason: str) -> Sale:
    """
    Void a sale.

    COMPLETED: restock every line and subtract the net amount from the shift,
    mirroring completion exactly. DRAFT/HELD: committed stock is untouched.
    Every reservation the sale still holds is dropped in both cases.
    """
    reason = (reason or "").strip()
    min_length = current_app.config.get("VOID_REASON_MIN_LENGTH", 5)
    if len(reason) < min_length:
        raise ValidationError(
            f"reason must be at least {min_length} characters",
            details={"min_length": min_length},
        )

    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "void")
        previous_status = sale.status

        if previous_status == sale_state.COMPLETED:
            for item in _get_items(sale.id):
                inventory_service.adjust_stock(item.product_id, ctx.business_id, item.quantity)
            if sale.shift_id:
                shift_service.adjust_shift_totals(
                    sale.shift_id, -sale.net_amount_cents, -1, sale.payment_method
                )
        reservation_service.release_all_reservations(sale.id)

        sale.status = sale_state.VOIDED
        sale.voided_by_user_id = ctx.cashier_id
        sale.voided_at = utcnow()
        sale.void_reason = reason

        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_VOIDED,
            details=activity.VoidedDetails(reason=reason, previous_status=previous_status),
        )

    event_service.publish(event_service.SaleEvent(
        event_type=event_service.SALE_VOIDED,
        business_id=sale.business_id,
        sale_id=sale.id,
        payload={
            "voided_by_user_id": sale.voided_by_user_id,
            "reason": reason,
            "previous_status": previous_status,
            "total_cents": sale.total_cents,
        },
    ))
    return sale


# =============================================================================
# READ MODELS
# =============================================================================

def get_sale_details(ctx: RequestContext, sale_id: int) -> SaleResult:
    sale = _get_sale(ctx, sale_id, lock=False)
    return SaleResult(sale=sale, items=_get_items(sale.id))


def list_held_sales(ctx: RequestContext, *, cashier_only: bool = True) -> list[SaleResult]:
    query = db.session.query(Sale).filter_by(business_id=ctx.business_id, status=sale_state.HELD)
    if cashier_only:
        query = query.filter_by(cashier_id=ctx.cashier_id)
    sales = query.order_by(Sale.updated_at.desc(), Sale.id.desc()).all()
    return [SaleResult(sale=sale, items=_get_items(sale.id)) for sale in sales]


def list_sales(
    ctx: RequestContext,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[Sale]:
    query = db.session.query(Sale).filter_by(business_id=ctx.business_id)
    if status:
        query = query.filter(Sale.status == status.upper())
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method.upper())
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date < end)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()
