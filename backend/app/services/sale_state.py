# Overview: Sale status machine; single source of truth for legal transitions.

from __future__ import annotations

from ..errors import InvalidStateError

DRAFT = "DRAFT"
HELD = "HELD"
COMPLETED = "COMPLETED"
VOIDED = "VOIDED"

EDITABLE_STATUSES = frozenset({DRAFT, HELD})

# operation -> statuses it may start from
ALLOWED_FROM: dict[str, frozenset[str]] = {
    "add items to": EDITABLE_STATUSES,
    "update items on": EDITABLE_STATUSES,
    "remove items from": EDITABLE_STATUSES,
    "hold": frozenset({DRAFT}),
    "resume": EDITABLE_STATUSES,
    "transfer": EDITABLE_STATUSES,
    "merge": EDITABLE_STATUSES,
    "complete": EDITABLE_STATUSES,
    "void": frozenset({DRAFT, HELD, COMPLETED}),
    "delete": EDITABLE_STATUSES,
}

# operation -> resulting status (None: row removed or status unchanged)
RESULTING_STATUS: dict[str, str | None] = {
    "hold": HELD,
    "resume": DRAFT,
    "complete": COMPLETED,
    "void": VOIDED,
}


def is_editable(status: str) -> bool:
    return status in EDITABLE_STATUSES


def ensure_transition(sale, operation: str) -> str | None:
    """
    Raise InvalidStateError unless `operation` is legal from sale.status.

    Returns the status the sale moves to, or None when the operation keeps
    the status (item mutation, transfer, merge) or deletes the sale.
    """
    allowed = ALLOWED_FROM.get(operation)
    if allowed is None:
        raise ValueError(f"unknown sale operation: {operation}")
    if sale.status not in allowed:
        raise InvalidStateError(operation, sale.status, details={"sale_id": sale.id})
    return RESULTING_STATUS.get(operation)
