# Overview: Table-service bill operations: moving a bill between tables and merging bills.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationError
from ..models import Sale, SaleItem
from . import activity_log_service as activity
from . import reservation_service, sale_state
from .concurrency import atomic
from .context import RequestContext
from .sales_service import SaleResult, _get_items, _get_sale, recalculate_sale_totals


def transfer_bill(
    ctx: RequestContext,
    sale_id: int,
    to_table_number: str,
    to_table_id: int | None = None,
) -> Sale:
    """Move an open bill to another table."""
    if not to_table_number or not str(to_table_number).strip():
        raise ValidationError("to_table_number required")

    with atomic():
        sale = _get_sale(ctx, sale_id)
        sale_state.ensure_transition(sale, "transfer")

        from_table = sale.table_number
        sale.table_number = str(to_table_number).strip()
        sale.table_id = to_table_id

        activity.log_activity(
            sale_id=sale.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_TRANSFERRED,
            details=activity.TransferredDetails(from_table=from_table, to_table=sale.table_number),
        )
    return sale


def merge_bills(
    ctx: RequestContext,
    primary_sale_id: int,
    secondary_sale_ids: list[int],
    *,
    target_table_id: int | None = None,
    target_table_number: str | None = None,
) -> SaleResult:
    """
    Fold one or more open bills into a primary bill.

    Items and reservations move to the primary; a product present on both
    sides ends up as one line (and one reservation) with the summed
    quantity. Secondary sales are deleted. Totals are recalculated once at
    the end, so the merged value equals the sum of the inputs.
    """
    if not secondary_sale_ids or not isinstance(secondary_sale_ids, list):
        raise ValidationError("secondary_sale_ids must be a non-empty list")
    if any(isinstance(s, bool) or not isinstance(s, int) for s in secondary_sale_ids):
        raise ValidationError("secondary_sale_ids must contain integer sale ids")
    if primary_sale_id in secondary_sale_ids:
        raise ValidationError("Cannot merge a sale into itself", details={"sale_id": primary_sale_id})
    if len(set(secondary_sale_ids)) != len(secondary_sale_ids):
        raise ValidationError("secondary_sale_ids contains duplicates")

    with atomic():
        primary = _get_sale(ctx, primary_sale_id)
        sale_state.ensure_transition(primary, "merge")

        for secondary_id in secondary_sale_ids:
            secondary = _get_sale(ctx, secondary_id)
            sale_state.ensure_transition(secondary, "merge")

            for item in _get_items(secondary.id):
                existing = (
                    db.session.query(SaleItem)
                    .filter_by(sale_id=primary.id, product_id=item.product_id)
                    .first()
                )
                if existing is None:
                    item.sale_id = primary.id
                else:
                    existing.set_quantity(existing.quantity + item.quantity)
                    db.session.delete(item)
                db.session.flush()

            reservation_service.reassign_reservations(secondary.id, primary.id)
            db.session.flush()
            db.session.delete(secondary)
            db.session.flush()

        if target_table_number is not None:
            primary.table_number = target_table_number
        if target_table_id is not None:
            primary.table_id = target_table_id

        items = recalculate_sale_totals(primary)

        activity.log_activity(
            sale_id=primary.id,
            business_id=ctx.business_id,
            performed_by=ctx.cashier_id,
            action_type=activity.ACTION_MERGED,
            details=activity.MergedDetails(merged_from=list(secondary_sale_ids)),
        )
    return SaleResult(sale=primary, items=items)
