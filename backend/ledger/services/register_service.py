# Overview: Cash register session lifecycle, drawer transactions and reconciliation.

"""
Cash Register Sessions

WHY: Each session is a period of cash accountability for one drawer. At
close, the counted cash is compared with what the ledger says should be in
the drawer; the difference is the discrepancy.

LIFECYCLE: OPEN --close--> CLOSED. There is no other transition; a closed
session can never be reopened or posted to.

DESIGN:
- The session is itself a register ledger account seeded with its opening
  balance, so every drawer change is a movement posted by the ledger engine.
- One OPEN session per scope (tenant + location, or tenant + operator per
  CASH_REGISTER_SCOPE) is enforced by a unique open_scope_key column, not
  by a check-then-insert.
- The expected balance is always recomputed from the movement list.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    InvalidAmount,
    SessionAlreadyClosed,
    SessionAlreadyOpen,
    ValidationError,
    WithdrawalLimitExceeded,
)
from ..extensions import db
from ..models import (
    CashAccountMovement,
    CashRegisterMovement,
    CashRegisterSession,
    CashWithdrawal,
    CustomerAccountMovement,
    Location,
    SESSION_CLOSED,
    SESSION_OPEN,
)
from ..money import ZERO, quantize, to_money, to_positive_money
from ledger.time_utils import utcnow
from . import ledger_service, movement_type_service
from .account_kinds import CASH_KIND, CHARGE, EXPENSE, INCOME, RECEIVED, REGISTER_KIND, TRANSFER_IN, TRANSFER_OUT
from .account_service import new_transfer_id
from .concurrency import run_in_transaction

SCOPE_LOCATION = "LOCATION"
SCOPE_OPERATOR = "OPERATOR"

REGISTER_DOCUMENT = "REGISTER_SESSION"

WITHDRAWAL_REASONS = ("BANK_DEPOSIT", "PETTY_CASH", "OWNER_DRAW", "EXPENSE", "OTHER")


def _scope_mode() -> str:
    mode = (current_app.config.get("CASH_REGISTER_SCOPE") or SCOPE_LOCATION).upper()
    if mode not in (SCOPE_LOCATION, SCOPE_OPERATOR):
        raise ValidationError(f"CASH_REGISTER_SCOPE must be {SCOPE_LOCATION} or {SCOPE_OPERATOR}", scope=mode)
    return mode


def scope_key(location_id: int, operator_id: int) -> str:
    if _scope_mode() == SCOPE_OPERATOR:
        return f"operator:{operator_id}"
    return f"location:{location_id}"


# =============================================================================
# OPEN
# =============================================================================

def open_session(
    tenant_id: int,
    location_id: int,
    operator_id: int,
    opening_balance,
    *,
    actor_id: int | None = None,
    funding_account_id: int | None = None,
    notes: str | None = None,
) -> CashRegisterSession:
    """
    Open a register session.

    Args:
        opening_balance: Cash in the drawer at open (>= 0)
        funding_account_id: Optional treasury cash account the opening cash
            is drawn from (TRANSFER_OUT in the same transaction)

    Raises:
        SessionAlreadyOpen: the scope already has an OPEN session
        InsufficientFunds: the funding account cannot cover the opening cash
    """
    opening_balance = to_money(opening_balance, field="opening_balance")
    if opening_balance < ZERO:
        raise InvalidAmount("opening_balance cannot be negative", opening_balance=opening_balance)

    location = db.session.query(Location).filter_by(id=location_id, tenant_id=tenant_id).first()
    if not location:
        raise ValidationError(f"Location {location_id} not found", location_id=location_id)

    key = scope_key(location_id, operator_id)
    actor_id = actor_id if actor_id is not None else operator_id

    existing = db.session.query(CashRegisterSession).filter_by(
        tenant_id=tenant_id,
        open_scope_key=key,
    ).first()
    if existing:
        raise SessionAlreadyOpen(
            f"A cash register session is already open for {key} (session {existing.id})",
            session_id=existing.id,
            scope=key,
        )

    def _op():
        session = CashRegisterSession(
            tenant_id=tenant_id,
            location_id=location_id,
            operator_id=operator_id,
            status=SESSION_OPEN,
            open_scope_key=key,
            opening_balance=opening_balance,
            balance=opening_balance,
            movement_count=0,
            opened_at=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        if funding_account_id is not None and opening_balance > ZERO:
            ledger_service._post_locked(
                tenant_id=tenant_id,
                kind=CASH_KIND,
                account_id=funding_account_id,
                amount=-opening_balance,
                movement_type=TRANSFER_OUT,
                concept=f"Opening cash for register session {session.id}",
                actor_id=actor_id,
                document_type=REGISTER_DOCUMENT,
                document_id=str(session.id),
                register_session_id=session.id,
            )
        return session

    try:
        session = run_in_transaction(_op)
    except IntegrityError as exc:
        # Lost the race on uq_register_sessions_open_scope
        raise SessionAlreadyOpen(
            f"A cash register session is already open for {key}",
            scope=key,
        ) from exc

    current_app.logger.info(
        "Opened register session %s (%s) with %s",
        session.id, key, session.opening_balance,
    )
    return session


# =============================================================================
# DRAWER TRANSACTIONS
# =============================================================================

def record_transaction(
    tenant_id: int,
    session_id: int,
    movement_type_id: int,
    amount,
    *,
    actor_id: int,
    concept: str | None = None,
    reference: str | None = None,
) -> CashRegisterMovement:
    """Manual INCOME / EXPENSE; the category's transaction_type gives the direction."""
    amount = to_positive_money(amount)
    category = movement_type_service.get_movement_type(tenant_id, movement_type_id)
    if not category.is_active:
        raise ValidationError(f"Movement type '{category.name}' is inactive", movement_type_id=movement_type_id)

    movement_type = INCOME if category.transaction_type == movement_type_service.INCOME else EXPENSE
    return ledger_service.post(
        tenant_id=tenant_id,
        kind=REGISTER_KIND,
        account_id=session_id,
        amount=REGISTER_KIND.signed(movement_type, amount),
        movement_type=movement_type,
        concept=concept or category.name,
        actor_id=actor_id,
        reference=reference,
        register_session_id=session_id,
        movement_type_id=category.id,
    )


def record_cash_receipt(
    tenant_id: int,
    session_id: int,
    amount,
    *,
    actor_id: int,
    concept: str = "Cash sale",
    document_type: str | None = None,
    document_id: str | None = None,
) -> CashRegisterMovement:
    """Cash leg of a sale received into the drawer."""
    return ledger_service.post(
        tenant_id=tenant_id,
        kind=REGISTER_KIND,
        account_id=session_id,
        amount=to_positive_money(amount),
        movement_type=RECEIVED,
        concept=concept,
        actor_id=actor_id,
        document_type=document_type,
        document_id=document_id,
        payment_method="CASH",
        register_session_id=session_id,
    )


def transfer_to_treasury(
    tenant_id: int,
    session_id: int,
    treasury_account_id: int,
    amount,
    *,
    actor_id: int,
    notes: str | None = None,
) -> dict:
    """
    Move cash from an OPEN drawer to a treasury cash account.

    EXPENSE on the session (system category "Transfer to treasury") and
    TRANSFER_IN on the cash account, sharing one transfer_id.
    """
    amount = to_positive_money(amount)
    category = movement_type_service.ensure_treasury_transfer_type(tenant_id)
    transfer_id = new_transfer_id()

    def _op():
        expense = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=REGISTER_KIND,
            account_id=session_id,
            amount=-amount,
            movement_type=EXPENSE,
            concept=notes or category.name,
            actor_id=actor_id,
            transfer_id=transfer_id,
            related_account_id=treasury_account_id,
            register_session_id=session_id,
            movement_type_id=category.id,
        )
        incoming = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=CASH_KIND,
            account_id=treasury_account_id,
            amount=amount,
            movement_type=TRANSFER_IN,
            concept=f"Transfer from register session {session_id}",
            actor_id=actor_id,
            document_type=REGISTER_DOCUMENT,
            document_id=str(session_id),
            transfer_id=transfer_id,
            register_session_id=session_id,
        )
        return {"transfer_id": transfer_id, "register_movement": expense, "cash_movement": incoming}

    return run_in_transaction(_op)


def _withdrawal_limit(role: str | None) -> Decimal | None:
    if role is None:
        return None
    limits = current_app.config.get("REGISTER_WITHDRAWAL_LIMITS") or {}
    limit = limits.get(role.upper())
    if limit is None:
        return None
    return to_money(limit, field="REGISTER_WITHDRAWAL_LIMITS")


def record_withdrawal(
    tenant_id: int,
    session_id: int,
    amount,
    *,
    reason: str,
    recipient_name: str,
    actor_id: int,
    role: str | None = None,
    concept: str | None = None,
    destination_account_id: int | None = None,
    reference: str | None = None,
) -> CashWithdrawal:
    """
    Take cash out of an OPEN drawer for a named recipient.

    Args:
        reason: One of WITHDRAWAL_REASONS
        role: Caller's role, checked against REGISTER_WITHDRAWAL_LIMITS;
            None skips the check (internal callers)
        destination_account_id: Optional treasury cash account that receives
            the cash (TRANSFER_IN sharing the withdrawal's transfer_id)

    Raises:
        WithdrawalLimitExceeded, InsufficientFunds, SessionAlreadyClosed,
        ValidationError
    """
    amount = to_positive_money(amount)
    reason = (reason or "").strip().upper()
    if reason not in WITHDRAWAL_REASONS:
        raise ValidationError(f"reason must be one of {list(WITHDRAWAL_REASONS)}", reason=reason)
    recipient_name = (recipient_name or "").strip()
    if not recipient_name:
        raise ValidationError("recipient_name is required")
    if len(recipient_name) > 120:
        raise ValidationError("recipient_name must be at most 120 characters")

    limit = _withdrawal_limit(role)
    if limit is not None and amount > limit:
        raise WithdrawalLimitExceeded(
            f"Withdrawal of {amount} exceeds the {role} limit of {limit}; manager approval required",
            session_id=session_id,
            role=role,
            limit=limit,
            attempted=amount,
        )

    category = movement_type_service.ensure_withdrawal_type(tenant_id)
    concept = (concept or "").strip() or f"{reason.replace('_', ' ').capitalize()}: {recipient_name}"
    transfer_id = new_transfer_id() if destination_account_id is not None else None

    def _op():
        expense = ledger_service._post_locked(
            tenant_id=tenant_id,
            kind=REGISTER_KIND,
            account_id=session_id,
            amount=-amount,
            movement_type=EXPENSE,
            concept=concept,
            actor_id=actor_id,
            reference=reference,
            transfer_id=transfer_id,
            related_account_id=destination_account_id,
            register_session_id=session_id,
            movement_type_id=category.id,
        )
        if destination_account_id is not None:
            ledger_service._post_locked(
                tenant_id=tenant_id,
                kind=CASH_KIND,
                account_id=destination_account_id,
                amount=amount,
                movement_type=TRANSFER_IN,
                concept=f"Withdrawal from register session {session_id}: {recipient_name}",
                actor_id=actor_id,
                reference=reference,
                document_type=REGISTER_DOCUMENT,
                document_id=str(session_id),
                transfer_id=transfer_id,
                register_session_id=session_id,
            )

        withdrawal = CashWithdrawal(
            tenant_id=tenant_id,
            session_id=session_id,
            register_movement_id=expense.id,
            destination_account_id=destination_account_id,
            amount=amount,
            reason=reason,
            recipient_name=recipient_name,
            concept=concept,
            reference=reference,
            transfer_id=transfer_id,
            actor_id=actor_id,
            withdrawn_at=utcnow(),
        )
        db.session.add(withdrawal)
        db.session.flush()
        return withdrawal

    withdrawal = run_in_transaction(_op)
    current_app.logger.info(
        "Withdrew %s from register session %s (%s, to %s)",
        withdrawal.amount, session_id, reason, recipient_name,
    )
    return withdrawal


def list_withdrawals(
    tenant_id: int,
    *,
    session_id: int | None = None,
    reason: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 50,
) -> list[CashWithdrawal]:
    """Newest first."""
    query = db.session.query(CashWithdrawal).filter_by(tenant_id=tenant_id)
    if session_id is not None:
        query = query.filter_by(session_id=session_id)
    if reason:
        query = query.filter_by(reason=reason.strip().upper())
    if since is not None:
        query = query.filter(CashWithdrawal.withdrawn_at >= since)
    if until is not None:
        query = query.filter(CashWithdrawal.withdrawn_at <= until)
    return query.order_by(CashWithdrawal.withdrawn_at.desc(), CashWithdrawal.id.desc()).limit(limit).all()


# =============================================================================
# RECONCILIATION
# =============================================================================

def compute_expected_balance(session: CashRegisterSession) -> Decimal:
    """Opening balance plus every movement of the session."""
    amounts = db.session.query(CashRegisterMovement.amount).filter_by(
        tenant_id=session.tenant_id,
        account_id=session.id,
    ).all()
    total = session.opening_balance
    for (amount,) in amounts:
        total += amount
    return quantize(total)


def close_session(
    tenant_id: int,
    session_id: int,
    declared_balance,
    *,
    actor_id: int,
    notes: str | None = None,
    deposit_account_id: int | None = None,
) -> CashRegisterSession:
    """
    Close a session and freeze its reconciliation.

    discrepancy = declared - expected (positive = surplus, negative = shortage).

    Args:
        declared_balance: Cash physically counted in the drawer (>= 0)
        deposit_account_id: Optional treasury cash account that receives the
            counted cash (TRANSFER_IN in the same transaction)

    Raises:
        SessionAlreadyClosed: never silently idempotent
    """
    declared_balance = to_money(declared_balance, field="declared_balance")
    if declared_balance < ZERO:
        raise InvalidAmount("declared_balance cannot be negative", declared_balance=declared_balance)

    def _op():
        session = ledger_service.load_account_locked(REGISTER_KIND, tenant_id, session_id)
        if not session.is_open:
            raise SessionAlreadyClosed(
                f"Cash register session {session_id} is already closed",
                session_id=session_id,
                closed_at=session.closed_at.isoformat() if session.closed_at else None,
            )

        expected = compute_expected_balance(session)
        session.status = SESSION_CLOSED
        session.open_scope_key = None
        session.closing_balance_declared = declared_balance
        session.expected_balance = expected
        session.discrepancy = quantize(declared_balance - expected)
        session.closed_at = utcnow()
        session.closed_by_actor_id = actor_id
        if notes is not None:
            session.notes = notes
        db.session.flush()

        if deposit_account_id is not None and declared_balance > ZERO:
            ledger_service._post_locked(
                tenant_id=tenant_id,
                kind=CASH_KIND,
                account_id=deposit_account_id,
                amount=declared_balance,
                movement_type=TRANSFER_IN,
                concept=f"Closing deposit from register session {session_id}",
                actor_id=actor_id,
                document_type=REGISTER_DOCUMENT,
                document_id=str(session_id),
                register_session_id=session_id,
            )
        return session

    session = run_in_transaction(_op)
    log = current_app.logger.warning if session.discrepancy != ZERO else current_app.logger.info
    log(
        "Closed register session %s: expected %s, declared %s, discrepancy %s",
        session.id, session.expected_balance, session.closing_balance_declared, session.discrepancy,
    )
    return session


# =============================================================================
# QUERIES
# =============================================================================

def get_session(tenant_id: int, session_id: int) -> CashRegisterSession:
    return ledger_service.get_account(REGISTER_KIND, tenant_id, session_id)


def get_open_session(
    tenant_id: int,
    *,
    location_id: int | None = None,
    operator_id: int | None = None,
) -> CashRegisterSession | None:
    """The OPEN session for a scope, if any. The scope is explicit, never inferred."""
    if _scope_mode() == SCOPE_OPERATOR:
        if operator_id is None:
            raise ValidationError("operator_id is required to find the open session")
        key = f"operator:{operator_id}"
    else:
        if location_id is None:
            raise ValidationError("location_id is required to find the open session")
        key = f"location:{location_id}"
    return db.session.query(CashRegisterSession).filter_by(
        tenant_id=tenant_id,
        open_scope_key=key,
    ).first()


def list_sessions(
    tenant_id: int,
    *,
    status: str | None = None,
    location_id: int | None = None,
    limit: int = 50,
) -> list[CashRegisterSession]:
    query = db.session.query(CashRegisterSession).filter_by(tenant_id=tenant_id)
    if status:
        query = query.filter_by(status=status.upper())
    if location_id:
        query = query.filter_by(location_id=location_id)
    return query.order_by(CashRegisterSession.opened_at.desc(), CashRegisterSession.id.desc()).limit(limit).all()


def list_stale_sessions(older_than: datetime) -> list[CashRegisterSession]:
    """OPEN sessions across all tenants opened before older_than."""
    return db.session.query(CashRegisterSession).filter(
        CashRegisterSession.status == SESSION_OPEN,
        CashRegisterSession.opened_at < older_than,
    ).order_by(CashRegisterSession.opened_at).all()


def session_summary(tenant_id: int, session_id: int) -> dict:
    """
    Shift summary.

    Returns:
        - Session details
        - Cash sales, incomes and expenses recorded in the drawer
        - Withdrawals (already included in expenses)
        - Per payment method breakdown of everything allocated through the
          session (drawer cash, envelope receipts and account charges)
        - Expected balance recomputed from the movements
    """
    session = get_session(tenant_id, session_id)
    movements = ledger_service.list_movements(REGISTER_KIND, tenant_id, session_id)

    sales_cash = ZERO
    incomes = ZERO
    expenses = ZERO
    breakdown = defaultdict(lambda: {"count": 0, "total": ZERO})

    for movement in movements:
        if movement.movement_type == RECEIVED:
            sales_cash += movement.amount
            breakdown[movement.payment_method or "CASH"]["count"] += 1
            breakdown[movement.payment_method or "CASH"]["total"] += movement.amount
        elif movement.movement_type == INCOME:
            incomes += movement.amount
        elif movement.movement_type == EXPENSE:
            expenses += -movement.amount

    envelope_receipts = db.session.query(CashAccountMovement).filter_by(
        tenant_id=tenant_id,
        register_session_id=session_id,
        movement_type=RECEIVED,
    ).all()
    for movement in envelope_receipts:
        method = movement.payment_method or "UNKNOWN"
        breakdown[method]["count"] += 1
        breakdown[method]["total"] += movement.amount

    account_charges = db.session.query(CustomerAccountMovement).filter_by(
        tenant_id=tenant_id,
        register_session_id=session_id,
        movement_type=CHARGE,
    ).all()
    for movement in account_charges:
        method = movement.payment_method or "ACCOUNT"
        breakdown[method]["count"] += 1
        breakdown[method]["total"] += -movement.amount

    withdrawn = [
        amount for (amount,) in db.session.query(CashWithdrawal.amount).filter_by(
            tenant_id=tenant_id,
            session_id=session_id,
        ).all()
    ]

    return {
        "session": session.to_dict(),
        "movement_count": len(movements),
        "sales_cash": str(quantize(sales_cash)),
        "incomes": str(quantize(incomes)),
        "expenses": str(quantize(expenses)),
        "withdrawals": {"count": len(withdrawn), "total": str(quantize(sum(withdrawn, ZERO)))},
        "expected_balance": str(compute_expected_balance(session)),
        "payment_breakdown": {
            method: {"count": values["count"], "total": str(quantize(values["total"]))}
            for method, values in sorted(breakdown.items())
        },
        "is_closed": session.status == SESSION_CLOSED,
        "discrepancy": str(session.discrepancy) if session.discrepancy is not None else None,
    }
