# Overview: Payment method -> cash account mapping (the allocator's default resolver).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import PaymentMethodAccount
from . import ledger_service
from .account_kinds import CASH_KIND

# Methods settled into a cash envelope
CASH = "CASH"
DEBIT_CARD = "DEBIT_CARD"
CREDIT_CARD = "CREDIT_CARD"
TRANSFER = "TRANSFER"
QR = "QR"
CHECK = "CHECK"
# Method charged to the customer's current account
ACCOUNT = "ACCOUNT"

ENVELOPE_METHODS = (CASH, DEBIT_CARD, CREDIT_CARD, TRANSFER, QR, CHECK)
PAYMENT_METHODS = ENVELOPE_METHODS + (ACCOUNT,)


def normalize_method(method: str, *, allow_account: bool = True) -> str:
    if method is not None and not isinstance(method, str):
        raise ValidationError("payment method must be a string", method=str(method))
    method = (method or "").strip().upper()
    allowed = PAYMENT_METHODS if allow_account else ENVELOPE_METHODS
    if method not in allowed:
        raise ValidationError(
            f"Invalid payment method {method!r}. Must be one of {list(allowed)}",
            method=method,
        )
    return method


def resolve(tenant_id: int, method: str) -> int | None:
    """Cash account id that receives `method` for this tenant, or None if unmapped."""
    row = db.session.query(PaymentMethodAccount.cash_account_id).filter_by(
        tenant_id=tenant_id,
        payment_method=(method or "").strip().upper(),
    ).first()
    return row[0] if row else None


def map_method(tenant_id: int, method: str, cash_account_id: int) -> PaymentMethodAccount:
    """Point a payment method at a cash account, replacing any previous mapping."""
    method = normalize_method(method, allow_account=False)
    account = ledger_service.get_account(CASH_KIND, tenant_id, cash_account_id)
    if not account.is_active:
        raise ValidationError(
            f"Cash account {cash_account_id} is inactive",
            cash_account_id=cash_account_id,
        )

    mapping = db.session.query(PaymentMethodAccount).filter_by(
        tenant_id=tenant_id,
        payment_method=method,
    ).first()
    if mapping:
        mapping.cash_account_id = cash_account_id
    else:
        mapping = PaymentMethodAccount(
            tenant_id=tenant_id,
            payment_method=method,
            cash_account_id=cash_account_id,
        )
        db.session.add(mapping)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Payment method {method} is already mapped", method=method)
    return mapping


def unmap_method(tenant_id: int, method: str) -> bool:
    method = normalize_method(method, allow_account=False)
    deleted = db.session.query(PaymentMethodAccount).filter_by(
        tenant_id=tenant_id,
        payment_method=method,
    ).delete(synchronize_session=False)
    db.session.commit()
    return bool(deleted)


def list_mappings(tenant_id: int) -> list[PaymentMethodAccount]:
    return db.session.query(PaymentMethodAccount).filter_by(
        tenant_id=tenant_id,
    ).order_by(PaymentMethodAccount.payment_method).all()
