from __future__ import annotations

from ..extensions import db
from ..money import MoneyType, ZERO
from ledger.time_utils import to_utc_z
from .accounts import MovementMixin, register_append_only


SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"


class MovementType(db.Model):
    """
    Tenant-defined category for manual register transactions.

    transaction_type decides the direction: INCOME adds cash to the drawer,
    EXPENSE takes it out. System types (is_system) are created by the
    application itself (e.g. transfers to treasury) and cannot be edited.
    """
    __tablename__ = "movement_types"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_movement_types_tenant_name"),
        db.UniqueConstraint("id", "tenant_id", name="uq_movement_types_id_tenant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    transaction_type = db.Column(db.String(16), nullable=False)  # INCOME, EXPENSE
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "transaction_type": self.transaction_type,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CashRegisterSession(db.Model):
    """
    Cash register shift.

    LIFECYCLE:
    - OPEN: accepts sale receipts and manual INCOME/EXPENSE transactions
    - CLOSED: declared cash recorded, expected balance and discrepancy frozen

    The session is itself a ledger account: balance is the running cash in
    the drawer, seeded with opening_balance. It is a cache for display; the
    expected balance at close is recomputed from the movement list.

    UNIQUENESS: open_scope_key is set while OPEN and cleared on close, and
    (tenant_id, open_scope_key) is unique, so the database itself refuses a
    second OPEN session for the same scope. NULLs never collide.

    IMMUTABLE: Once closed, session cannot be reopened or modified.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "open_scope_key", name="uq_register_sessions_open_scope"),
        db.UniqueConstraint("id", "tenant_id", name="uq_register_sessions_id_tenant"),
        db.ForeignKeyConstraint(["location_id", "tenant_id"], ["locations.id", "locations.tenant_id"]),
        db.Index("ix_register_sessions_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    operator_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)
    open_scope_key = db.Column(db.String(64), nullable=True)

    opening_balance = db.Column(MoneyType(), nullable=False, default=ZERO)
    balance = db.Column(MoneyType(), nullable=False, default=ZERO)
    movement_count = db.Column(db.Integer, nullable=False, default=0)

    # Set when closing
    closing_balance_declared = db.Column(MoneyType(), nullable=True)
    expected_balance = db.Column(MoneyType(), nullable=True)
    discrepancy = db.Column(MoneyType(), nullable=True)  # declared - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_actor_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "operator_id": self.operator_id,
            "status": self.status,
            "opening_balance": str(self.opening_balance),
            "balance": str(self.balance),
            "movement_count": self.movement_count,
            "closing_balance_declared": str(self.closing_balance_declared) if self.closing_balance_declared is not None else None,
            "expected_balance": str(self.expected_balance) if self.expected_balance is not None else None,
            "discrepancy": str(self.discrepancy) if self.discrepancy is not None else None,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_actor_id": self.closed_by_actor_id,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashRegisterMovement(MovementMixin, db.Model):
    """
    Append-only cash movement inside a register session.

    TYPES:
    - RECEIVED: cash leg of a sale
    - INCOME: manual cash in (categorised by movement_type_id)
    - EXPENSE: manual cash out, including transfers to treasury
    """
    __tablename__ = "cash_register_movements"
    __table_args__ = (
        db.UniqueConstraint("account_id", "sequence", name="uq_register_movements_session_seq"),
        db.ForeignKeyConstraint(["account_id", "tenant_id"], ["cash_register_sessions.id", "cash_register_sessions.tenant_id"]),
        db.ForeignKeyConstraint(["movement_type_id", "tenant_id"], ["movement_types.id", "movement_types.tenant_id"]),
        db.Index("ix_register_movements_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    movement_type_id = db.Column(db.Integer, nullable=True, index=True)

    session_id = db.synonym("account_id")

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["session_id"] = self.account_id
        d["movement_type_id"] = self.movement_type_id
        return d


register_append_only(CashRegisterMovement)


class CashWithdrawal(db.Model):
    """
    Cash taken out of an OPEN drawer, with who received it and why.

    The drawer side is the EXPENSE movement in register_movement_id. When the
    cash goes to a treasury envelope, destination_account_id and transfer_id
    tie it to the matching TRANSFER_IN.
    """
    __tablename__ = "cash_withdrawals"
    __table_args__ = (
        db.ForeignKeyConstraint(["session_id", "tenant_id"], ["cash_register_sessions.id", "cash_register_sessions.tenant_id"]),
        db.ForeignKeyConstraint(["destination_account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
        db.Index("ix_cash_withdrawals_tenant_withdrawn", "tenant_id", "withdrawn_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, nullable=False, index=True)
    register_movement_id = db.Column(db.Integer, db.ForeignKey("cash_register_movements.id"), nullable=False, unique=True)
    destination_account_id = db.Column(db.Integer, nullable=True)

    amount = db.Column(MoneyType(), nullable=False)
    reason = db.Column(db.String(24), nullable=False, index=True)  # BANK_DEPOSIT, PETTY_CASH, OWNER_DRAW, EXPENSE, OTHER
    recipient_name = db.Column(db.String(120), nullable=False)
    concept = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    transfer_id = db.Column(db.String(64), nullable=True)

    actor_id = db.Column(db.Integer, nullable=False)
    withdrawn_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "session_id": self.session_id,
            "register_movement_id": self.register_movement_id,
            "destination_account_id": self.destination_account_id,
            "amount": str(self.amount),
            "reason": self.reason,
            "recipient_name": self.recipient_name,
            "concept": self.concept,
            "reference": self.reference,
            "transfer_id": self.transfer_id,
            "actor_id": self.actor_id,
            "withdrawn_at": to_utc_z(self.withdrawn_at),
        }


register_append_only(CashWithdrawal)
