# Overview: Append-only sale activity log with typed, per-action detail payloads.

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Optional, Union

from ..extensions import db
from ..models import SaleActivityLog
from app.time_utils import utcnow
"""
Sale Activity Log Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- Exactly one row per state-changing orchestrator operation, written in the
  same DB transaction as the change it records.
- The stored JSON carries only the fields of the variant matching
  action_type; decode_details() rebuilds that variant.
- Read paths return every row, newest first; nothing is filtered or compacted.
"""

ACTION_CREATED = "created"
ACTION_ITEM_ADDED = "item_added"
ACTION_ITEM_REMOVED = "item_removed"
ACTION_UPDATED = "updated"
ACTION_HELD = "held"
ACTION_RESUMED = "resumed"
ACTION_TRANSFERRED = "transferred"
ACTION_MERGED = "merged"
ACTION_COMPLETED = "completed"
ACTION_VOIDED = "voided"
ACTION_DELETED = "deleted"


@dataclass(frozen=True)
class CreatedDetails:
    table_number: Optional[str] = None
    order_type: Optional[str] = None
    # initial lines: {product_id, product_name, quantity}
    items: list = field(default_factory=list)


@dataclass(frozen=True)
class ItemAddedDetails:
    product_id: int
    product_name: str
    quantity: int


@dataclass(frozen=True)
class ItemRemovedDetails:
    product_id: int
    product_name: str
    quantity: int
    reservation_released: bool = True


@dataclass(frozen=True)
class ItemUpdatedDetails:
    product_id: int
    old_quantity: int
    new_quantity: int


@dataclass(frozen=True)
class HeldDetails:
    pass


@dataclass(frozen=True)
class ResumedDetails:
    reservations_extended: int = 0


@dataclass(frozen=True)
class TransferredDetails:
    from_table: Optional[str]
    to_table: Optional[str]


@dataclass(frozen=True)
class MergedDetails:
    merged_from: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedDetails:
    payment_method: str
    amount_paid_cents: int
    daily_sequence: int


@dataclass(frozen=True)
class VoidedDetails:
    reason: str
    previous_status: str


@dataclass(frozen=True)
class DeletedDetails:
    previous_status: str


ActivityDetails = Union[
    CreatedDetails,
    ItemAddedDetails,
    ItemRemovedDetails,
    ItemUpdatedDetails,
    HeldDetails,
    ResumedDetails,
    TransferredDetails,
    MergedDetails,
    CompletedDetails,
    VoidedDetails,
    DeletedDetails,
]

DETAIL_TYPES: dict[str, type] = {
    ACTION_CREATED: CreatedDetails,
    ACTION_ITEM_ADDED: ItemAddedDetails,
    ACTION_ITEM_REMOVED: ItemRemovedDetails,
    ACTION_UPDATED: ItemUpdatedDetails,
    ACTION_HELD: HeldDetails,
    ACTION_RESUMED: ResumedDetails,
    ACTION_TRANSFERRED: TransferredDetails,
    ACTION_MERGED: MergedDetails,
    ACTION_COMPLETED: CompletedDetails,
    ACTION_VOIDED: VoidedDetails,
    ACTION_DELETED: DeletedDetails,
}


def encode_details(action_type: str, details: ActivityDetails) -> dict:
    expected = DETAIL_TYPES.get(action_type)
    if expected is None:
        raise ValueError(f"unknown activity action_type: {action_type}")
    if not isinstance(details, expected):
        raise TypeError(
            f"{action_type} expects {expected.__name__}, got {type(details).__name__}"
        )
    return asdict(details)


def decode_details(action_type: str, payload: dict | None) -> ActivityDetails:
    detail_cls = DETAIL_TYPES.get(action_type)
    if detail_cls is None:
        raise ValueError(f"unknown activity action_type: {action_type}")
    known = {f.name for f in fields(detail_cls)}
    return detail_cls(**{k: v for k, v in (payload or {}).items() if k in known})


def log_activity(
    *,
    sale_id: int,
    business_id: int,
    performed_by: int | None,
    action_type: str,
    details: ActivityDetails,
) -> SaleActivityLog:
    """
    Append one activity row inside the caller's transaction.

    - No deletes/updates of existing rows.
    - Flushes so the row id is assigned; the caller commits.
    """
    entry = SaleActivityLog(
        sale_id=sale_id,
        business_id=business_id,
        performed_by=performed_by,
        action_type=action_type,
        details=encode_details(action_type, details),
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_sale_history(sale_id: int, business_id: int) -> list[SaleActivityLog]:
    return (
        db.session.query(SaleActivityLog)
        .filter_by(sale_id=sale_id, business_id=business_id)
        .order_by(SaleActivityLog.created_at.desc(), SaleActivityLog.id.desc())
        .all()
    )


def get_recent_activity(business_id: int, limit: int = 50) -> list[SaleActivityLog]:
    if limit <= 0:
        limit = 50
    return (
        db.session.query(SaleActivityLog)
        .filter_by(business_id=business_id)
        .order_by(SaleActivityLog.created_at.desc(), SaleActivityLog.id.desc())
        .limit(limit)
        .all()
    )
