# Overview: The ledger engine; the only code path that changes an account balance.

"""
Ledger Engine

WHY: Customer, supplier, cash and register balances are money. A lost update
or a movement without its balance change is real financial damage, so every
balance change goes through post() and nothing else.

INVARIANTS (authoritative):
- Movements are append-only; corrections are new ADJUSTMENT movements.
- balance_after == balance_before + amount for every movement.
- Replaying an account's movements in sequence order from its seed
  reproduces the stored balance exactly (see verify_chain).
- The balance is re-read under a row lock inside the transaction, never
  taken from a value read before it began.
- A movement and its balance update commit together or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..errors import (
    AccountInactive,
    AccountNotFound,
    InsufficientCredit,
    InsufficientFunds,
    InvalidAmount,
    SessionAlreadyClosed,
    SessionNotFound,
    ValidationError,
)
from ..extensions import db
from ..money import MAX_AMOUNT, ZERO, format_money, is_zero, quantize, to_money
from ledger.time_utils import utcnow
from . import credit_policy
from .account_kinds import AccountKind, get_kind
from .concurrency import lock_for_update, run_in_transaction

MAX_CONCEPT_LENGTH = 255


def resolve_kind(kind: AccountKind | str) -> AccountKind:
    if isinstance(kind, AccountKind):
        return kind
    return get_kind(kind)


# =============================================================================
# POSTING
# =============================================================================

def post(
    *,
    tenant_id: int,
    kind: AccountKind | str,
    account_id: int,
    amount,
    movement_type: str,
    concept: str,
    actor_id: int,
    reference: str | None = None,
    document_type: str | None = None,
    document_id: str | None = None,
    transfer_id: str | None = None,
    related_account_id: int | None = None,
    payment_method: str | None = None,
    register_session_id: int | None = None,
    movement_type_id: int | None = None,
):
    """
    Post one signed movement to one account, atomically.

    Args:
        tenant_id: Tenant of the caller; the account must belong to it
        kind: Account kind (code or AccountKind)
        account_id: Target account
        amount: Signed, non-zero amount; its sign must match movement_type
        movement_type: One of the kind's movement types
        concept: Required audit text
        actor_id: Who posted it

    Returns:
        The committed movement; its balance_after equals the account's
        post-commit balance.

    Raises:
        AccountNotFound, AccountInactive, InsufficientCredit,
        InsufficientFunds, InvalidAmount, ValidationError,
        SessionAlreadyClosed, ConcurrencyConflict
    """
    def _op():
        return _post_locked(
            tenant_id=tenant_id,
            kind=kind,
            account_id=account_id,
            amount=amount,
            movement_type=movement_type,
            concept=concept,
            actor_id=actor_id,
            reference=reference,
            document_type=document_type,
            document_id=document_id,
            transfer_id=transfer_id,
            related_account_id=related_account_id,
            payment_method=payment_method,
            register_session_id=register_session_id,
            movement_type_id=movement_type_id,
        )

    return run_in_transaction(_op)


def _post_locked(
    *,
    tenant_id: int,
    kind: AccountKind | str,
    account_id: int,
    amount,
    movement_type: str,
    concept: str,
    actor_id: int,
    reference: str | None = None,
    document_type: str | None = None,
    document_id: str | None = None,
    transfer_id: str | None = None,
    related_account_id: int | None = None,
    payment_method: str | None = None,
    register_session_id: int | None = None,
    movement_type_id: int | None = None,
):
    """
    Post inside the caller's transaction (no commit).

    Used by post() and by services that must post several movements as one
    unit (allocation, transfers, register open/close). The caller owns the
    transaction boundary.
    """
    kind = resolve_kind(kind)

    concept = (concept or "").strip()
    if not concept:
        raise ValidationError("concept is required", account_id=account_id, kind=kind.code)
    if len(concept) > MAX_CONCEPT_LENGTH:
        raise ValidationError(f"concept must be at most {MAX_CONCEPT_LENGTH} characters", account_id=account_id)

    amount = to_money(amount)
    if is_zero(amount):
        raise InvalidAmount("Movement amount must be non-zero", account_id=account_id, kind=kind.code)
    kind.validate_movement(movement_type, amount)

    # 1. Fresh balance, under lock
    account = load_account_locked(kind, tenant_id, account_id)

    if kind.session_bound:
        if not account.is_open:
            raise SessionAlreadyClosed(
                f"Cash register session {account_id} is closed",
                session_id=account_id,
            )
    elif not account.is_active and not kind.accepts_while_inactive(movement_type):
        raise AccountInactive(
            f"{kind.label.capitalize()} {account_id} is inactive; {movement_type} not allowed",
            account_id=account_id,
            kind=kind.code,
            movement_type=movement_type,
        )

    # 2. Prospective balance
    balance_before = account.balance
    balance_after = quantize(balance_before + amount)
    if balance_after.copy_abs() > MAX_AMOUNT:
        raise InvalidAmount(
            f"{kind.label.capitalize()} {account_id} balance would exceed the maximum of {MAX_AMOUNT}",
            account_id=account_id,
            kind=kind.code,
            balance=balance_before,
            attempted=amount,
        )

    # 3. Credit policy
    if kind.uses_credit_policy:
        decision = credit_policy.evaluate(account, balance_after, movement_type)
        if not decision.allowed:
            raise InsufficientCredit(
                f"{kind.label.capitalize()} {account_id}: {decision.reason}",
                account_id=account_id,
                kind=kind.code,
                available=decision.available,
                attempted=-amount,
            )

    # 4. Non-negative kinds
    if kind.forbids_negative and amount < ZERO and balance_after < ZERO:
        raise InsufficientFunds(
            f"Insufficient funds in {kind.label} {account_id}: "
            f"available {format_money(balance_before)}, attempted {format_money(-amount)}",
            account_id=account_id,
            kind=kind.code,
            available=balance_before,
            attempted=-amount,
        )

    # 5. Balance row first: a stale version fails here, before any movement row exists
    sequence = (account.movement_count or 0) + 1
    account.balance = balance_after
    account.movement_count = sequence
    db.session.flush()

    # 6. Movement with before/after snapshots
    extra = {}
    if movement_type_id is not None:
        extra["movement_type_id"] = movement_type_id
    movement = kind.movement_model(
        tenant_id=tenant_id,
        account_id=account.id,
        sequence=sequence,
        movement_type=movement_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        concept=concept,
        reference=reference,
        actor_id=actor_id,
        document_type=document_type,
        document_id=str(document_id) if document_id is not None else None,
        transfer_id=transfer_id,
        related_account_id=related_account_id,
        payment_method=payment_method,
        register_session_id=register_session_id,
        created_at=utcnow(),
        **extra,
    )
    db.session.add(movement)
    db.session.flush()

    current_app.logger.debug(
        "Posted %s %s to %s %s (%s -> %s)",
        movement_type, amount, kind.code, account.id, balance_before, balance_after,
    )
    return movement


# =============================================================================
# LOOKUPS
# =============================================================================

def _not_found(kind: AccountKind, account_id: int):
    if kind.session_bound:
        return SessionNotFound(f"Cash register session {account_id} not found", session_id=account_id)
    return AccountNotFound(
        f"{kind.label.capitalize()} {account_id} not found",
        account_id=account_id,
        kind=kind.code,
    )


def load_account_locked(kind: AccountKind | str, tenant_id: int, account_id: int):
    """Re-read an account row under lock, scoped to the tenant."""
    kind = resolve_kind(kind)
    model = kind.account_model
    account = lock_for_update(
        db.session.query(model).filter_by(id=account_id, tenant_id=tenant_id)
    ).first()
    if not account:
        raise _not_found(kind, account_id)
    return account


def get_account(kind: AccountKind | str, tenant_id: int, account_id: int):
    kind = resolve_kind(kind)
    account = db.session.query(kind.account_model).filter_by(id=account_id, tenant_id=tenant_id).first()
    if not account:
        raise _not_found(kind, account_id)
    return account


def get_balance(kind: AccountKind | str, tenant_id: int, account_id: int) -> dict:
    """
    Current balance with its policy.

    Returns:
        {"balance", "credit_limit", "available_credit", "is_active"}
        credit_limit is "0.00" for kinds without a credit policy;
        available_credit is None when credit is unlimited or not applicable.
    """
    kind = resolve_kind(kind)
    account = get_account(kind, tenant_id, account_id)

    credit_limit = ZERO
    available = None
    if kind.uses_credit_policy:
        credit_limit = account.credit_limit
        available = credit_policy.available_credit(account)

    if kind.session_bound:
        is_active = account.is_open
    else:
        is_active = account.is_active

    return {
        "kind": kind.code,
        "account_id": account.id,
        "balance": str(account.balance),
        "credit_limit": str(credit_limit),
        "available_credit": str(available) if available is not None else None,
        "is_active": is_active,
    }


def list_movements(
    kind: AccountKind | str,
    tenant_id: int,
    account_id: int,
    *,
    limit: int | None = None,
    offset: int = 0,
    newest_first: bool = False,
) -> list:
    kind = resolve_kind(kind)
    get_account(kind, tenant_id, account_id)
    model = kind.movement_model
    order = model.sequence.desc() if newest_first else model.sequence.asc()
    query = db.session.query(model).filter_by(
        tenant_id=tenant_id,
        account_id=account_id,
    ).order_by(order)
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def count_movements(kind: AccountKind | str, tenant_id: int, account_id: int) -> int:
    kind = resolve_kind(kind)
    return db.session.query(kind.movement_model).filter_by(
        tenant_id=tenant_id,
        account_id=account_id,
    ).count()


# =============================================================================
# CHAIN VERIFICATION
# =============================================================================

@dataclass
class ChainReport:
    kind: str
    account_id: int
    seed: Decimal
    stored_balance: Decimal
    replayed_balance: Decimal
    movement_count: int
    breaks: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.breaks and self.replayed_balance == self.stored_balance

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "account_id": self.account_id,
            "ok": self.ok,
            "seed": str(self.seed),
            "stored_balance": str(self.stored_balance),
            "replayed_balance": str(self.replayed_balance),
            "movement_count": self.movement_count,
            "breaks": self.breaks,
        }


def verify_chain(kind: AccountKind | str, tenant_id: int, account_id: int) -> ChainReport:
    """
    Replay an account's movements from its seed.

    A break is recorded when a movement's balance_before does not match the
    running balance, when balance_after != balance_before + amount, or when
    sequence numbers skip.
    """
    kind = resolve_kind(kind)
    account = get_account(kind, tenant_id, account_id)
    movements = list_movements(kind, tenant_id, account_id)

    seed = kind.seed(account)
    running = seed
    breaks = []
    for expected_sequence, movement in enumerate(movements, start=1):
        if movement.sequence != expected_sequence:
            breaks.append({
                "movement_id": movement.id,
                "sequence": movement.sequence,
                "problem": f"expected sequence {expected_sequence}",
            })
        if movement.balance_before != running:
            breaks.append({
                "movement_id": movement.id,
                "sequence": movement.sequence,
                "problem": f"balance_before {movement.balance_before} != running balance {running}",
            })
        if quantize(movement.balance_before + movement.amount) != movement.balance_after:
            breaks.append({
                "movement_id": movement.id,
                "sequence": movement.sequence,
                "problem": "balance_after != balance_before + amount",
            })
        running = quantize(running + movement.amount)

    report = ChainReport(
        kind=kind.code,
        account_id=account.id,
        seed=seed,
        stored_balance=account.balance,
        replayed_balance=running,
        movement_count=len(movements),
        breaks=breaks,
    )
    if not report.ok:
        current_app.logger.error("Ledger chain broken for %s %s: %s", kind.code, account.id, breaks)
    return report
