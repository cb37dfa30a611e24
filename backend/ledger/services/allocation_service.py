# Overview: Multi-method payment allocation; splits a total due across payment legs atomically.

"""
Payment Allocation

WHY: A checkout can be settled with several methods at once (cash + card +
customer account). Every ledger effect of those legs must land together or
not at all: a denied account charge must also undo the cash already posted
for the same checkout.

DESIGN:
- Validation happens before anything is posted: legs present, each positive,
  sum == total_due within PAYMENT_TOLERANCE.
- CASH goes to the open register session when one is given, otherwise it is
  resolved like any other envelope method.
- DEBIT_CARD, CREDIT_CARD, TRANSFER, QR, CHECK are resolved to a cash account
  through the payment-method mapping. Unmapped legs are accepted and
  reported (degraded mode), never blocking checkout.
- ACCOUNT charges the customer's current account through the credit policy.
- A given register session must exist and be OPEN; every leg references it.
- All postings share one run_in_transaction() unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from flask import current_app

from ..errors import SessionAlreadyClosed, UnbalancedPayment, ValidationError
from ..money import ZERO, quantize, to_money
from . import account_service, ledger_service, payment_method_service
from .account_kinds import CASH_KIND, CHARGE, CUSTOMER_KIND, RECEIVED, REGISTER_KIND
from .concurrency import run_in_transaction
from .payment_method_service import ACCOUNT, CASH

Resolver = Callable[[int, str], "int | None"]


@dataclass(frozen=True)
class PaymentLeg:
    method: str
    amount: Decimal
    reference: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentLeg":
        if not isinstance(data, dict):
            raise ValidationError("each payment leg must be an object")
        method = data.get("method")
        if not isinstance(method, str):
            raise ValidationError("each payment leg needs a method name", method=None if method is None else str(method))
        return cls(
            method=method,
            amount=to_money(data.get("amount")),
            reference=data.get("reference"),
        )


@dataclass
class AllocationContext:
    tenant_id: int
    actor_id: int
    customer_id: int | None = None
    register_session_id: int | None = None
    document_type: str | None = None
    document_id: str | None = None
    concept: str | None = None


@dataclass
class AllocationResult:
    total_due: Decimal
    total_paid: Decimal
    movements: list = field(default_factory=list)  # (kind code, movement)
    unmapped_legs: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_due": str(self.total_due),
            "total_paid": str(self.total_paid),
            "movements": [
                {"kind": kind, **movement.to_dict()}
                for kind, movement in self.movements
            ],
            "unmapped_legs": self.unmapped_legs,
        }


def _tolerance() -> Decimal:
    return to_money(current_app.config.get("PAYMENT_TOLERANCE", "0.01"), field="PAYMENT_TOLERANCE")


def validate_legs(total_due, legs: list[PaymentLeg]) -> tuple[Decimal, list[PaymentLeg], Decimal]:
    """
    Normalize and balance-check the legs. Posts nothing.

    Returns:
        (total_due, normalized legs, sum of legs)

    Raises:
        UnbalancedPayment: no legs, a non-positive leg, or a sum off by more
        than the tolerance
    """
    total_due = to_money(total_due, field="total_due")
    if total_due <= ZERO:
        raise UnbalancedPayment("total_due must be greater than zero", total_due=total_due)
    if not legs:
        raise UnbalancedPayment("At least one payment leg is required", total_due=total_due)

    normalized = []
    for index, leg in enumerate(legs):
        method = payment_method_service.normalize_method(leg.method)
        amount = to_money(leg.amount, field=f"legs[{index}].amount")
        if amount <= ZERO:
            raise UnbalancedPayment(
                f"Payment leg {index} ({method}) must be greater than zero",
                leg=index,
                method=method,
                amount=amount,
            )
        normalized.append(PaymentLeg(method=method, amount=amount, reference=leg.reference))

    paid = quantize(sum((leg.amount for leg in normalized), ZERO))
    if abs(paid - total_due) > _tolerance():
        raise UnbalancedPayment(
            f"Payment legs sum to {paid} but {total_due} is due",
            total_due=total_due,
            total_paid=paid,
            difference=quantize(paid - total_due),
        )
    return total_due, normalized, paid


def allocate(
    total_due,
    legs: list[PaymentLeg],
    context: AllocationContext,
    *,
    resolver: Resolver | None = None,
) -> AllocationResult:
    """
    Post every ledger-affecting leg of a checkout as one transaction.

    Args:
        total_due: Amount the checkout must collect
        legs: Payment legs (method, amount)
        context: Tenant, actor and optional customer / register session
        resolver: callable(tenant_id, method) -> cash account id | None;
            defaults to the PaymentMethodAccount mapping

    Returns:
        AllocationResult with one movement per ledger-affecting leg and the
        legs that had no mapping.

    Raises:
        UnbalancedPayment, InvalidAmount, ValidationError, InsufficientCredit,
        AccountInactive, AccountNotFound, SessionAlreadyClosed,
        ConcurrencyConflict. Nothing is committed on any error.
    """
    total_due, legs, paid = validate_legs(total_due, legs)
    resolver = resolver or payment_method_service.resolve

    customer_account_id = None
    if any(leg.method == ACCOUNT for leg in legs):
        if context.customer_id is None:
            raise ValidationError("ACCOUNT payments require a customer", method=ACCOUNT)
        customer_account_id = account_service.ensure_customer_account(context.tenant_id, context.customer_id).id

    concept = context.concept or "Payment"
    tenant_id = context.tenant_id

    def _op():
        if context.register_session_id is not None:
            # Every leg is stamped with the session, not only the CASH leg
            session = ledger_service.load_account_locked(REGISTER_KIND, tenant_id, context.register_session_id)
            if not session.is_open:
                raise SessionAlreadyClosed(
                    f"Cash register session {session.id} is closed",
                    session_id=session.id,
                )

        result = AllocationResult(total_due=total_due, total_paid=paid)
        for index, leg in enumerate(legs):
            common = dict(
                tenant_id=tenant_id,
                concept=concept,
                actor_id=context.actor_id,
                reference=leg.reference,
                document_type=context.document_type,
                document_id=context.document_id,
                payment_method=leg.method,
                register_session_id=context.register_session_id,
            )

            if leg.method == ACCOUNT:
                movement = ledger_service._post_locked(
                    kind=CUSTOMER_KIND,
                    account_id=customer_account_id,
                    amount=-leg.amount,
                    movement_type=CHARGE,
                    **common,
                )
                result.movements.append((CUSTOMER_KIND.code, movement))
                continue

            if leg.method == CASH and context.register_session_id is not None:
                movement = ledger_service._post_locked(
                    kind=REGISTER_KIND,
                    account_id=context.register_session_id,
                    amount=leg.amount,
                    movement_type=RECEIVED,
                    **common,
                )
                result.movements.append((REGISTER_KIND.code, movement))
                continue

            cash_account_id = resolver(tenant_id, leg.method)
            if cash_account_id is None:
                current_app.logger.warning(
                    "Payment method %s has no cash account mapped for tenant %s; leg of %s not posted",
                    leg.method, tenant_id, leg.amount,
                )
                result.unmapped_legs.append({
                    "leg": index,
                    "method": leg.method,
                    "amount": str(leg.amount),
                    "reason": "no cash account mapped for this payment method",
                })
                continue

            movement = ledger_service._post_locked(
                kind=CASH_KIND,
                account_id=cash_account_id,
                amount=leg.amount,
                movement_type=RECEIVED,
                **common,
            )
            result.movements.append((CASH_KIND.code, movement))
        return result

    return run_in_transaction(_op)
