from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Shift(db.Model):
    """
    Cashier shift with running sales totals.

    WHY: Cashier accountability. Completed sales add their net amount to
    total_sales_cents and bump transaction_count; voiding a completed sale
    subtracts exactly the same amounts.

    LIFECYCLE:
    - open: accepting sales
    - closed: cash counted, variance calculated
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index("ix_shifts_business_user_status", "business_id", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    # Cash tracking (all amounts in cents)
    start_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    end_cash_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)  # start + cash sales
    cash_variance_cents = db.Column(db.Integer, nullable=True)  # end - expected

    # Running totals, adjusted only through shift_service.adjust_shift_totals
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "status": self.status,
            "start_cash_cents": self.start_cash_cents,
            "end_cash_cents": self.end_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "cash_variance_cents": self.cash_variance_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_cash_sales_cents": self.total_cash_sales_cents,
            "transaction_count": self.transaction_count,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }
