# Overview: Atomic per-business daily sequence allocation for receipt numbering.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..extensions import db
from ..errors import ValidationError
from ..models import DailySequence
from app.time_utils import business_day


def _ensure_sequence_row(business_id: int, day: date) -> None:
    """Insert the (business, day) counter at zero unless it already exists."""
    dialect = db.engine.dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(DailySequence).values(business_id=business_id, sequence_date=day, last_value=0)
    elif dialect == "sqlite":
        stmt = sqlite_insert(DailySequence).values(business_id=business_id, sequence_date=day, last_value=0)
    else:
        exists = db.session.query(DailySequence.id).filter_by(
            business_id=business_id, sequence_date=day
        ).first()
        if not exists:
            db.session.add(DailySequence(business_id=business_id, sequence_date=day, last_value=0))
            db.session.flush()
        return

    db.session.execute(
        stmt.on_conflict_do_nothing(index_elements=["business_id", "sequence_date"])
    )


def next_daily_sequence(business_id: int, day: date | None = None) -> int:
    """
    Atomically allocate the next daily sequence number for a business.

    The UPDATE takes the row lock on (business_id, day) and holds it until the
    caller's transaction ends, so concurrent completions never share a number.
    Must run inside the caller's transaction.
    """
    if not business_id:
        raise ValidationError("business_id is required")

    day = day or business_day()
    _ensure_sequence_row(business_id, day)

    db.session.execute(
        update(DailySequence)
        .where(
            DailySequence.business_id == business_id,
            DailySequence.sequence_date == day,
        )
        .values(last_value=DailySequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    return int(
        db.session.query(DailySequence.last_value)
        .filter_by(business_id=business_id, sequence_date=day)
        .scalar()
    )


def format_receipt_number(day: date, sequence: int) -> str:
    """YYYYMMDD-NNN, e.g. 20260201-001."""
    return f"{day.strftime('%Y%m%d')}-{sequence:03d}"
