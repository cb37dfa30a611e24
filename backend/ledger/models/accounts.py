from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..errors import LedgerError
from ..money import MoneyType, ZERO
from ledger.time_utils import to_utc_z


class LedgerAccountMixin:
    """
    Shape shared by every balance-carrying account table.

    INVARIANT: balance is exactly the seed plus the sum of the account's
    movement amounts in sequence order. Only ledger_service writes it.
    movement_count doubles as the per-account sequence counter.
    """

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def tenant_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    balance = db.Column(MoneyType(), nullable=False, default=ZERO)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    movement_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "balance": str(self.balance),
            "is_active": self.is_active,
            "movement_count": self.movement_count,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MovementMixin:
    """
    Shape shared by every append-only movement table.

    amount is signed: balance_after == balance_before + amount.
    (account_id, sequence) is unique and gives the commit order per account.
    """

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    account_id = db.Column(db.Integer, nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    movement_type = db.Column("type", db.String(16), nullable=False, index=True)
    amount = db.Column(MoneyType(), nullable=False)
    balance_before = db.Column(MoneyType(), nullable=False)
    balance_after = db.Column(MoneyType(), nullable=False)

    # Audit annotations, kept as opaque text
    concept = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.Integer, nullable=False, index=True)

    # Originating business document (sale, invoice, register session, ...)
    document_type = db.Column(db.String(32), nullable=True)
    document_id = db.Column(db.String(64), nullable=True, index=True)

    # Both halves of a transfer share transfer_id and point at each other's account
    transfer_id = db.Column(db.String(64), nullable=True, index=True)
    related_account_id = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(32), nullable=True)
    register_session_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "account_id": self.account_id,
            "sequence": self.sequence,
            "type": self.movement_type,
            "amount": str(self.amount),
            "balance_before": str(self.balance_before),
            "balance_after": str(self.balance_after),
            "concept": self.concept,
            "reference": self.reference,
            "actor_id": self.actor_id,
            "document_type": self.document_type,
            "document_id": self.document_id,
            "transfer_id": self.transfer_id,
            "related_account_id": self.related_account_id,
            "payment_method": self.payment_method,
            "register_session_id": self.register_session_id,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# CUSTOMER CURRENT ACCOUNTS
# =============================================================================

class CustomerAccount(LedgerAccountMixin, db.Model):
    """
    Customer current-account.

    SIGN: negative balance = the customer owes the business.
    credit_limit: 0 means unlimited; otherwise balance may not drop below -credit_limit.
    """
    __tablename__ = "customer_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "customer_id", name="uq_customer_accounts_tenant_customer"),
        db.UniqueConstraint("id", "tenant_id", name="uq_customer_accounts_id_tenant"),
        db.ForeignKeyConstraint(["customer_id", "tenant_id"], ["customers.id", "customers.tenant_id"]),
        {"sqlite_autoincrement": True},
    )

    customer_id = db.Column(db.Integer, nullable=False, index=True)
    credit_limit = db.Column(MoneyType(), nullable=False, default=ZERO)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({
            "kind": "customer",
            "customer_id": self.customer_id,
            "credit_limit": str(self.credit_limit),
        })
        return d


class CustomerAccountMovement(MovementMixin, db.Model):
    """Append-only: CHARGE, PAYMENT, CREDIT, ADJUSTMENT."""
    __tablename__ = "customer_account_movements"
    __table_args__ = (
        db.UniqueConstraint("account_id", "sequence", name="uq_customer_movements_account_seq"),
        db.ForeignKeyConstraint(["account_id", "tenant_id"], ["customer_accounts.id", "customer_accounts.tenant_id"]),
        db.Index("ix_customer_movements_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )


# =============================================================================
# SUPPLIER CURRENT ACCOUNTS
# =============================================================================

class SupplierAccount(LedgerAccountMixin, db.Model):
    """
    Supplier current-account.

    SIGN: positive balance = the business owes the supplier. Never negative.
    Created lazily by the first invoice or payment.
    """
    __tablename__ = "supplier_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "supplier_id", name="uq_supplier_accounts_tenant_supplier"),
        db.UniqueConstraint("id", "tenant_id", name="uq_supplier_accounts_id_tenant"),
        db.ForeignKeyConstraint(["supplier_id", "tenant_id"], ["suppliers.id", "suppliers.tenant_id"]),
        {"sqlite_autoincrement": True},
    )

    supplier_id = db.Column(db.Integer, nullable=False, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({
            "kind": "supplier",
            "supplier_id": self.supplier_id,
        })
        return d


class SupplierAccountMovement(MovementMixin, db.Model):
    """Append-only: CHARGE (invoice), PAYMENT, CREDIT (credit note), ADJUSTMENT."""
    __tablename__ = "supplier_account_movements"
    __table_args__ = (
        db.UniqueConstraint("account_id", "sequence", name="uq_supplier_movements_account_seq"),
        db.ForeignKeyConstraint(["account_id", "tenant_id"], ["supplier_accounts.id", "supplier_accounts.tenant_id"]),
        db.Index("ix_supplier_movements_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )


# =============================================================================
# CASH ACCOUNTS ("envelopes": treasury cash, bank, petty cash, ...)
# =============================================================================

class CashAccount(LedgerAccountMixin, db.Model):
    """
    Internal cash envelope. Balance is cash-on-hand and never negative.
    """
    __tablename__ = "cash_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_cash_accounts_tenant_name"),
        db.UniqueConstraint("id", "tenant_id", name="uq_cash_accounts_id_tenant"),
        {"sqlite_autoincrement": True},
    )

    name = db.Column(db.String(120), nullable=False)
    account_type = db.Column(db.String(32), nullable=False, default="CASH", index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({
            "kind": "cash",
            "name": self.name,
            "account_type": self.account_type,
        })
        return d


class CashAccountMovement(MovementMixin, db.Model):
    """Append-only: RECEIVED, PAID, TRANSFER_IN, TRANSFER_OUT, ADJUSTMENT."""
    __tablename__ = "cash_account_movements"
    __table_args__ = (
        db.UniqueConstraint("account_id", "sequence", name="uq_cash_movements_account_seq"),
        db.ForeignKeyConstraint(["account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
        db.Index("ix_cash_movements_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )


# =============================================================================
# PAYMENT METHOD -> CASH ACCOUNT MAPPING
# =============================================================================

class PaymentMethodAccount(db.Model):
    """
    Which cash account receives each payment method (card settlements land
    in the bank envelope, QR in the wallet envelope, ...).
    A method without a row is "unmapped" and produces no ledger effect.
    """
    __tablename__ = "payment_method_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "payment_method", name="uq_payment_method_accounts_tenant_method"),
        db.ForeignKeyConstraint(["cash_account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=False)
    cash_account_id = db.Column(db.Integer, nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "payment_method": self.payment_method,
            "cash_account_id": self.cash_account_id,
            "created_at": to_utc_z(self.created_at),
        }


def _reject_movement_mutation(mapper, connection, target):
    raise LedgerError(
        "Movements are append-only; post an offsetting ADJUSTMENT instead",
        movement_id=target.id,
    )


def register_append_only(*movement_models) -> None:
    for model in movement_models:
        event.listen(model, "before_update", _reject_movement_mutation)
        event.listen(model, "before_delete", _reject_movement_mutation)


register_append_only(CustomerAccountMovement, SupplierAccountMovement, CashAccountMovement)
