from __future__ import annotations

from ..extensions import db
from ledger.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every account, movement and session belongs to one tenant.

    DESIGN:
    - tenant_id is part of every uniqueness and lookup key below it
    - child tables reference (id, tenant_id) pairs so a row can never point
      at another tenant's parent
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Location(db.Model):
    """Point of sale location (branch). Cash register sessions are scoped to one."""
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_locations_tenant_name"),
        db.UniqueConstraint("id", "tenant_id", name="uq_locations_id_tenant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
