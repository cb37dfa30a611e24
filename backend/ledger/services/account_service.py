# Overview: Service-layer operations for customer, supplier and cash accounts.

"""
Account Service

Owns account lifecycle (lazy creation, settings, deletion) and the
multi-account business operations built on the ledger engine:
customer payments, supplier invoices/payments and envelope transfers.

Each public write is one run_in_transaction() unit; every movement inside it
is posted through ledger_service._post_locked so the whole operation commits
or rolls back together.
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AccountHasMovements, AccountNotFound, ValidationError
from ..extensions import db
from ..models import (
    CashAccount,
    Customer,
    CustomerAccount,
    PaymentMethodAccount,
    Supplier,
    SupplierAccount,
)
from ..money import ZERO, to_money, to_positive_money
from . import ledger_service
from .account_kinds import (
    ADJUSTMENT,
    CASH_KIND,
    CHARGE,
    CUSTOMER_KIND,
    PAID,
    PAYMENT,
    RECEIVED,
    SUPPLIER_KIND,
    TRANSFER_IN,
    TRANSFER_OUT,
)
from .concurrency import run_in_transaction


def new_transfer_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# LAZY CREATION
# =============================================================================

def _ensure_owned_account(model, owner_model, owner_field: str, tenant_id: int, owner_id: int, owner_label: str):
    """
    Return the owner's account, creating it on first need.

    Creation commits on its own so the posting transaction that follows can
    lock the row. A concurrent creator loses on the unique (tenant, owner)
    constraint and simply re-reads the winner's row.
    """
    owner = db.session.query(owner_model).filter_by(id=owner_id, tenant_id=tenant_id).first()
    if not owner:
        raise AccountNotFound(f"{owner_label.capitalize()} {owner_id} not found", **{owner_field: owner_id})

    account = db.session.query(model).filter_by(tenant_id=tenant_id, **{owner_field: owner_id}).first()
    if account:
        return account

    account = model(tenant_id=tenant_id, balance=ZERO, **{owner_field: owner_id})
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        account = db.session.query(model).filter_by(tenant_id=tenant_id, **{owner_field: owner_id}).first()
        if account is None:
            raise
        return account

    current_app.logger.info("Created %s account %s for %s %s", owner_label, account.id, owner_label, owner_id)
    return account


def ensure_customer_account(tenant_id: int, customer_id: int) -> CustomerAccount:
    return _ensure_owned_account(CustomerAccount, Customer, "customer_id", tenant_id, customer_id, "customer")


def ensure_supplier_account(tenant_id: int, supplier_id: int) -> SupplierAccount:
    return _ensure_owned_account(SupplierAccount, Supplier, "supplier_id", tenant_id, supplier_id, "supplier")


def find_customer_account(tenant_id: int, customer_id: int) -> CustomerAccount | None:
    return db.session.query(CustomerAccount).filter_by(tenant_id=tenant_id, customer_id=customer_id).first()


def find_supplier_account(tenant_id: int, supplier_id: int) -> SupplierAccount | None:
    return db.session.query(SupplierAccount).filter_by(tenant_id=tenant_id, supplier_id=supplier_id).first()


# =============================================================================
# CASH ACCOUNTS
# =============================================================================

def create_cash_account(
    tenant_id: int,
    name: str,
    *,
    account_type: str = "CASH",
    notes: str | None = None,
) -> CashAccount:
    """Create a cash envelope (treasury, bank, wallet, ...). Names are unique per tenant."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    existing = db.session.query(CashAccount).filter_by(tenant_id=tenant_id, name=name).first()
    if existing:
        raise ValidationError(f"Cash account '{name}' already exists", cash_account_id=existing.id)

    account = CashAccount(
        tenant_id=tenant_id,
        name=name,
        account_type=(account_type or "CASH").strip().upper(),
        notes=notes,
        balance=ZERO,
    )
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Cash account '{name}' already exists")
    return account


def list_cash_accounts(tenant_id: int, *, include_inactive: bool = False) -> list[CashAccount]:
    query = db.session.query(CashAccount).filter_by(tenant_id=tenant_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(CashAccount.name).all()


# =============================================================================
# SETTINGS
# =============================================================================

def update_customer_account_settings(
    tenant_id: int,
    account_id: int,
    *,
    credit_limit=None,
    is_active: bool | None = None,
    notes: str | None = None,
) -> CustomerAccount:
    """
    Change credit limit, active flag or notes. Never touches the balance.

    Lowering the limit below the current debt is allowed; it only blocks
    further charges.
    """
    if credit_limit is not None:
        credit_limit = to_money(credit_limit, field="credit_limit")
        if credit_limit < ZERO:
            raise ValidationError("credit_limit must be zero (unlimited) or positive", credit_limit=credit_limit)

    def _op():
        account = ledger_service.load_account_locked(CUSTOMER_KIND, tenant_id, account_id)
        if credit_limit is not None:
            account.credit_limit = credit_limit
        if is_active is not None:
            account.is_active = bool(is_active)
        if notes is not None:
            account.notes = notes
        return account

    return run_in_transaction(_op)


def update_cash_account(
    tenant_id: int,
    account_id: int,
    *,
    name: str | None = None,
    is_active: bool | None = None,
    notes: str | None = None,
) -> CashAccount:
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name cannot be empty")
        clash = db.session.query(CashAccount).filter(
            CashAccount.tenant_id == tenant_id,
            CashAccount.name == name,
            CashAccount.id != account_id,
        ).first()
        if clash:
            raise ValidationError(f"Cash account '{name}' already exists", cash_account_id=clash.id)

    def _op():
        account = ledger_service.load_account_locked(CASH_KIND, tenant_id, account_id)
        if name is not None:
            account.name = name
        if is_active is not None:
            account.is_active = bool(is_active)
        if notes is not None:
            account.notes = notes
        return account

    return run_in_transaction(_op)


def delete_account(kind, tenant_id: int, account_id: int) -> None:
    """
    Hard-delete an account that has never moved.

    Raises:
        AccountHasMovements: any movement references the account
    """
    kind = ledger_service.resolve_kind(kind)
    if kind.session_bound:
        raise ValidationError("Cash register sessions cannot be deleted", session_id=account_id)

    def _op():
        account = ledger_service.load_account_locked(kind, tenant_id, account_id)
        count = ledger_service.count_movements(kind, tenant_id, account_id)
        if count or account.movement_count:
            raise AccountHasMovements(
                f"{kind.label.capitalize()} {account_id} has {count} movements and cannot be deleted",
                account_id=account_id,
                kind=kind.code,
                movement_count=count,
            )
        if kind is CASH_KIND:
            db.session.query(PaymentMethodAccount).filter_by(
                tenant_id=tenant_id,
                cash_account_id=account_id,
            ).delete(synchronize_session=False)
        db.session.delete(account)

    run_in_transaction(_op)


# =============================================================================
# CUSTOMER OPERATIONS
# =============================================================================

def charge_customer(
    tenant_id: int,
    customer_id: int,
    amount,
    *,
    actor_id: int,
    concept: str | None = None,
    reference: str | None = None,
    document_type: str | None = None,
    document_id: str | None = None,
):
    """Charge a customer's current account (subject to the credit policy)."""
    amount = to_positive_money(amount)
    account = ensure_customer_account(tenant_id, customer_id)
    return ledger_service.post(
        tenant_id=tenant_id,
        kind=CUSTOMER_KIND,
        account_id=account.id,
        amount=-amount,
        movement_type=CHARGE,
        concept=concept or "Account charge",
        actor_id=actor_id,
        reference=reference,
        document_type=document_type,
        document_id=document_id,
    )


def receive_customer_payment(
    tenant_id: int,
    customer_id: int,
    amount,
    *,
    actor_id: int,
    cash_account_id: int | None = None,
    payment_method: str = "CASH",
    concept: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Customer pays down their balance.

    PAYMENT on the customer account and, when cash_account_id is given,
    RECEIVED on that cash account, in one transaction. Inactive accounts
    still accept payments.
    """
    amount = to_positive_money(amount)
    account = ensure_customer_account(tenant_id, customer_id)
    concept = concept or "Customer account payment"

    def _op():
        payment = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=CUSTOMER_KIND,
            account_id=account.id,
            amount=amount,
            movement_type=PAYMENT,
            concept=concept,
            actor_id=actor_id,
            reference=reference,
            payment_method=payment_method,
            related_account_id=cash_account_id,
        )
        received = None
        if cash_account_id is not None:
            received = ledger_service._post_locked(
                tenant_id=tenant_id,
                kind=CASH_KIND,
                account_id=cash_account_id,
                amount=amount,
                movement_type=RECEIVED,
                concept=concept,
                actor_id=actor_id,
                reference=reference,
                document_type="CUSTOMER_PAYMENT",
                document_id=str(payment.id),
                payment_method=payment_method,
                related_account_id=account.id,
            )
        return {"customer_movement": payment, "cash_movement": received}

    return run_in_transaction(_op)


# =============================================================================
# SUPPLIER OPERATIONS
# =============================================================================

def post_supplier_invoice(
    tenant_id: int,
    supplier_id: int,
    amount,
    *,
    actor_id: int,
    document_id: str | None = None,
    concept: str | None = None,
    reference: str | None = None,
):
    """Record a supplier invoice: CHARGE raises what the business owes."""
    amount = to_positive_money(amount)
    account = ensure_supplier_account(tenant_id, supplier_id)
    return ledger_service.post(
        tenant_id=tenant_id,
        kind=SUPPLIER_KIND,
        account_id=account.id,
        amount=amount,
        movement_type=CHARGE,
        concept=concept or "Supplier invoice",
        actor_id=actor_id,
        reference=reference,
        document_type="SUPPLIER_INVOICE" if document_id else None,
        document_id=document_id,
    )


def pay_supplier(
    tenant_id: int,
    supplier_id: int,
    amount,
    *,
    actor_id: int,
    cash_account_id: int | None = None,
    payment_method: str = "CASH",
    concept: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Pay a supplier.

    PAYMENT on the supplier account and, when cash_account_id is given, PAID
    from that cash account, in one transaction. Fails with InsufficientFunds
    when paying more than is owed or more than the envelope holds.
    """
    amount = to_positive_money(amount)
    account = ensure_supplier_account(tenant_id, supplier_id)
    concept = concept or "Supplier payment"

    def _op():
        payment = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=SUPPLIER_KIND,
            account_id=account.id,
            amount=-amount,
            movement_type=PAYMENT,
            concept=concept,
            actor_id=actor_id,
            reference=reference,
            payment_method=payment_method,
            related_account_id=cash_account_id,
        )
        paid = None
        if cash_account_id is not None:
            paid = ledger_service._post_locked(
                tenant_id=tenant_id,
                kind=CASH_KIND,
                account_id=cash_account_id,
                amount=-amount,
                movement_type=PAID,
                concept=concept,
                actor_id=actor_id,
                reference=reference,
                document_type="SUPPLIER_PAYMENT",
                document_id=str(payment.id),
                payment_method=payment_method,
                related_account_id=account.id,
            )
        return {"supplier_movement": payment, "cash_movement": paid}

    return run_in_transaction(_op)


# =============================================================================
# CASH ACCOUNT OPERATIONS
# =============================================================================

def transfer_between_cash_accounts(
    tenant_id: int,
    from_account_id: int,
    to_account_id: int,
    amount,
    *,
    actor_id: int,
    concept: str | None = None,
) -> dict:
    """
    Move money between two envelopes.

    TRANSFER_OUT / TRANSFER_IN share one transfer_id and point at each other.
    Both rows are locked in id order so two opposite transfers cannot deadlock.
    """
    if from_account_id == to_account_id:
        raise ValidationError("Source and destination accounts must differ", account_id=from_account_id)
    amount = to_positive_money(amount)
    concept = concept or "Transfer between cash accounts"
    transfer_id = new_transfer_id()

    def _op():
        for account_id in sorted((from_account_id, to_account_id)):
            ledger_service.load_account_locked(CASH_KIND, tenant_id, account_id)

        out = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=CASH_KIND,
            account_id=from_account_id,
            amount=-amount,
            movement_type=TRANSFER_OUT,
            concept=concept,
            actor_id=actor_id,
            transfer_id=transfer_id,
            related_account_id=to_account_id,
        )
        incoming = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=CASH_KIND,
            account_id=to_account_id,
            amount=amount,
            movement_type=TRANSFER_IN,
            concept=concept,
            actor_id=actor_id,
            transfer_id=transfer_id,
            related_account_id=from_account_id,
        )
        return {"transfer_id": transfer_id, "out": out, "in": incoming}

    return run_in_transaction(_op)


def record_cash_movement(
    tenant_id: int,
    cash_account_id: int,
    movement_type: str,
    amount,
    *,
    actor_id: int,
    concept: str,
    reference: str | None = None,
):
    """
    Manual envelope movement.

    RECEIVED and PAID take a positive amount (the direction comes from the
    type); ADJUSTMENT takes a signed amount.
    """
    movement_type = (movement_type or "").strip().upper()
    if movement_type in (RECEIVED, PAID):
        signed = CASH_KIND.signed(movement_type, to_positive_money(amount))
    elif movement_type == ADJUSTMENT:
        signed = to_money(amount)
    else:
        raise ValidationError(
            "movement type must be RECEIVED, PAID or ADJUSTMENT",
            movement_type=movement_type,
        )

    return ledger_service.post(
        tenant_id=tenant_id,
        kind=CASH_KIND,
        account_id=cash_account_id,
        amount=signed,
        movement_type=movement_type,
        concept=concept,
        actor_id=actor_id,
        reference=reference,
    )
