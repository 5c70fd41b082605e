from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Product(db.Model):
    """
    Product catalog entry.

    MULTI-TENANT: Products are scoped to a business via business_id.
    The sale engine only reads name and price_cents, and snapshots both onto
    SaleItem rows at mutation time.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.Index("ix_products_business_active", "business_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Inventory(db.Model):
    """
    Committed stock per (product, business).

    INVARIANTS:
    - current_stock is never negative; every write goes through
      inventory_service.adjust_stock, which rejects over-deduction.
    - Decremented only by sale completion, restored only by void (or restock).
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "business_id", name="uq_inventory_product_business"),
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=False, default=10)
    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "business_id": self.business_id,
            "current_stock": self.current_stock,
            "low_stock_alert": self.low_stock_alert,
            "last_restocked": to_utc_z(self.last_restocked) if self.last_restocked else None,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockReservation(db.Model):
    """
    Time-bounded hold against committed stock for an in-progress sale.

    LIFECYCLE:
    - Created when an item is first added to a DRAFT/HELD sale
    - Quantity overwritten (never duplicated) as the line changes
    - Deleted on completion, void, draft deletion, or by the expiry sweep

    A reservation is active while expire_at > now. Expired rows are ignored by
    availability math even before the sweep deletes them.
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", name="uq_reservations_sale_product"),
        db.Index("ix_reservations_product_business", "product_id", "business_id"),
        db.Index("ix_reservations_expire_at", "expire_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cashier_id = db.Column(db.Integer, nullable=True)

    expire_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "business_id": self.business_id,
            "sale_id": self.sale_id,
            "quantity": self.quantity,
            "cashier_id": self.cashier_id,
            "expire_at": to_utc_z(self.expire_at),
            "created_at": to_utc_z(self.created_at),
        }
