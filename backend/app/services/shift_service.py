"""
Shift Ledger Service

WHY: Per-cashier running totals. Completing a sale adds its net amount and
one transaction to the linked shift; voiding a completed sale subtracts
exactly the same amounts.

DESIGN PRINCIPLES:
- One open shift per user per business
- Running totals change only through adjust_shift_totals, a single
  UPDATE ... SET col = col + :delta inside the caller's transaction
- Closed shifts keep their totals; late voids still adjust them
"""

from sqlalchemy import update

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import Shift
from app.time_utils import utcnow
from .concurrency import atomic, lock_for_update

CASH = "CASH"


def get_shift(shift_id: int, business_id: int | None = None) -> Shift:
    query = db.session.query(Shift).filter_by(id=shift_id)
    if business_id is not None:
        query = query.filter_by(business_id=business_id)
    shift = query.first()
    if not shift:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


def get_open_shift(business_id: int, user_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(
        business_id=business_id,
        user_id=user_id,
        status="open",
    ).first()


def open_shift(business_id: int, user_id: int, start_cash_cents: int = 0) -> Shift:
    """Start a shift for a cashier; a second open shift is rejected."""
    if start_cash_cents < 0:
        raise ValidationError("start_cash_cents cannot be negative")

    with atomic():
        if get_open_shift(business_id, user_id):
            raise ValidationError("User already has an open shift", details={"user_id": user_id})

        shift = Shift(
            business_id=business_id,
            user_id=user_id,
            status="open",
            start_cash_cents=start_cash_cents,
            opened_at=utcnow(),
        )
        db.session.add(shift)
    return shift


def close_shift(shift_id: int, business_id: int, end_cash_cents: int) -> Shift:
    """
    Close a shift and calculate cash variance.

    expected = start cash + cash sales; variance = counted - expected.
    """
    if end_cash_cents < 0:
        raise ValidationError("end_cash_cents cannot be negative")

    with atomic():
        shift = lock_for_update(
            db.session.query(Shift).filter_by(id=shift_id, business_id=business_id)
        ).first()
        if not shift:
            raise NotFoundError("Shift not found", details={"shift_id": shift_id})
        if shift.status == "closed":
            raise InvalidStateError("close", "closed")

        shift.end_cash_cents = end_cash_cents
        shift.expected_cash_cents = shift.start_cash_cents + shift.total_cash_sales_cents
        shift.cash_variance_cents = end_cash_cents - shift.expected_cash_cents
        shift.status = "closed"
        shift.closed_at = utcnow()
    return shift


def adjust_shift_totals(
    shift_id: int,
    delta_cents: int,
    delta_count: int,
    payment_method: str | None = None,
) -> None:
    """
    Atomically adjust a shift's running totals by the given deltas.

    Runs in the caller's transaction. A missing shift raises NotFoundError so
    the surrounding completion/void rolls back.
    """
    values = {
        "total_sales_cents": Shift.total_sales_cents + delta_cents,
        "transaction_count": Shift.transaction_count + delta_count,
    }
    if payment_method == CASH:
        values["total_cash_sales_cents"] = Shift.total_cash_sales_cents + delta_cents

    result = db.session.execute(
        update(Shift)
        .where(Shift.id == shift_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})

    # Refresh any loaded instance so readers in this session see the new totals
    shift = db.session.get(Shift, shift_id)
    if shift is not None:
        db.session.refresh(shift)
