# Overview: Credit limit rule for customer current-accounts.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..money import ZERO, format_money, quantize
from .account_kinds import CHARGE


@dataclass(frozen=True)
class CreditDecision:
    allowed: bool
    reason: str | None = None
    available: Decimal | None = None

    @classmethod
    def allow(cls, available: Decimal | None = None) -> "CreditDecision":
        return cls(True, None, available)

    @classmethod
    def deny(cls, reason: str, available: Decimal | None = None) -> "CreditDecision":
        return cls(False, reason, available)


def available_credit(account) -> Decimal | None:
    """
    Remaining credit: credit_limit + balance (balance is negative when indebted).

    None means unlimited (credit_limit == 0).
    """
    if account.credit_limit == ZERO:
        return None
    return quantize(account.credit_limit + account.balance)


def evaluate(account, prospective_balance: Decimal, movement_type: str = CHARGE) -> CreditDecision:
    """
    Decide whether a movement may take the account to prospective_balance.

    - Only CHARGE is subject to the policy; PAYMENT, CREDIT and ADJUSTMENT
      are always allowed so debts can be settled or corrected.
    - Inactive accounts deny every CHARGE.
    - credit_limit == 0 means unlimited credit.
    - Otherwise the balance may not drop below -credit_limit.
    """
    if movement_type != CHARGE:
        return CreditDecision.allow(available_credit(account))

    if not account.is_active:
        return CreditDecision.deny("account is inactive")

    available = available_credit(account)
    if available is None:
        return CreditDecision.allow()

    if prospective_balance >= -account.credit_limit:
        return CreditDecision.allow(available)

    attempted = quantize(account.balance - prospective_balance)
    return CreditDecision.deny(
        f"insufficient credit: available {format_money(max(available, ZERO))}, attempted {format_money(attempted)}",
        available,
    )
