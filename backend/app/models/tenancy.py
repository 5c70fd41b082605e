from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Business(db.Model):
    """
    Multi-tenant root: every sale, product and stock row belongs to a business.

    DESIGN:
    - All engine queries are scoped by business_id
    - tenant_id is the short external identifier supplied by the auth layer
    - tax_rate_bps is the single flat tax rate applied to sale totals
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    tenant_id = db.Column(db.String(8), nullable=True, index=True)

    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (e.g., 750 = 7.5%)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "tenant_id": self.tenant_id,
            "timezone": self.timezone,
            "tax_rate_bps": self.tax_rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
