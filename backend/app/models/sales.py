from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Sale(db.Model):
    """
    Sale header: the aggregate root for line items, totals and status.

    LIFECYCLE:
    - DRAFT: editable, created by a cashier
    - HELD: parked draft, editable once resumed (or directly)
    - COMPLETED: paid; inventory deducted; daily_sequence assigned
    - VOIDED: terminal

    INVARIANT (after every mutation):
    - subtotal_cents == sum(item.total_price_cents)
    - total_cents == subtotal_cents - discount_cents + tax_cents
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_business_status_created", "business_id", "status", "created_at"),
        db.Index("ix_sales_business_sale_date", "business_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    tenant_id = db.Column(db.String(8), nullable=True, index=True)

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=True)
    change_due_cents = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(32), nullable=True)  # CASH, CARD, TRANSFER, ...

    # Table management
    table_id = db.Column(db.Integer, nullable=True, index=True)
    table_number = db.Column(db.String(32), nullable=True)  # Snapshot for history
    order_type = db.Column(db.String(20), nullable=False, default="dine-in")  # dine-in, takeaway, delivery

    # Attribution
    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    # Receipt numbering (assigned on completion only)
    daily_sequence = db.Column(db.Integer, nullable=True)
    receipt_number = db.Column(db.String(32), nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_amount_cents(self) -> int:
        """Amount due after discount and tax; the value applied to shift totals."""
        return self.total_cents

    def recalculate_totals(self, items: list["SaleItem"], tax_rate_bps: int = 0) -> None:
        """
        Recompute subtotal/tax/total from the given line items.

        Tax is a flat rate on the discounted subtotal, rounded half-up to the cent.
        """
        subtotal = sum(item.total_price_cents for item in items)
        discount = self.discount_cents or 0
        taxable = max(subtotal - discount, 0)
        tax = (taxable * tax_rate_bps + 5000) // 10000 if tax_rate_bps else 0

        self.subtotal_cents = subtotal
        self.tax_cents = tax
        self.total_cents = subtotal - discount + tax

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "tenant_id": self.tenant_id,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_due_cents": self.change_due_cents,
            "payment_method": self.payment_method,
            "table_id": self.table_id,
            "table_number": self.table_number,
            "order_type": self.order_type,
            "cashier_id": self.cashier_id,
            "shift_id": self.shift_id,
            "daily_sequence": self.daily_sequence,
            "receipt_number": self.receipt_number,
            "sale_date": to_utc_z(self.sale_date),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

class SaleItem(db.Model):
    """Line item on a sale. Name and unit price are snapshots taken at mutation time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", name="uq_sale_items_sale_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def set_quantity(self, quantity: int) -> None:
        self.quantity = quantity
        self.total_price_cents = self.unit_price_cents * quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "created_at": to_utc_z(self.created_at),
        }

class SaleActivityLog(db.Model):
    """
    Append-only audit trail of every state change on a sale.

    IMMUTABLE: Records are never updated or deleted. sale_id is not a foreign
    key so history survives draft deletion and bill merges.
    """
    __tablename__ = "sale_activity_logs"
    __table_args__ = (
        db.Index("ix_sale_activity_sale_created", "sale_id", "created_at"),
        db.Index("ix_sale_activity_business_created", "business_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, nullable=False)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)

    action_type = db.Column(db.String(50), nullable=False, index=True)
    performed_by = db.Column(db.Integer, nullable=True)

    # Encoded from the typed detail variant for action_type
    details = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "business_id": self.business_id,
            "action_type": self.action_type,
            "performed_by": self.performed_by,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }

class DailySequence(db.Model):
    """
    Atomic per-business, per-day receipt counter.

    Incremented with a single UPDATE ... SET last_value = last_value + 1 so
    concurrent completions serialize on this row.
    """
    __tablename__ = "daily_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sequence_date", name="uq_daily_sequences_business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    sequence_date = db.Column(db.Date, nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sequence_date": self.sequence_date.isoformat(),
            "last_value": self.last_value,
        }
