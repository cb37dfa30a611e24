"""
Account kinds: the policy object the ledger engine is parameterised by.

One generic engine posts to four kinds of account. Everything that differs
between them lives here, so the engine itself has no per-kind branches:

- which movement types exist and which direction each one moves the balance
- whether the balance may go negative
- whether the credit policy is consulted
- which types an inactive account still accepts
- where balance replay starts (0, or a register session's opening balance)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..errors import InvalidAmount, ValidationError
from ..models import (
    CashAccount,
    CashAccountMovement,
    CashRegisterMovement,
    CashRegisterSession,
    CustomerAccount,
    CustomerAccountMovement,
    SupplierAccount,
    SupplierAccountMovement,
)
from ..money import ZERO

# Movement types
CHARGE = "CHARGE"
PAYMENT = "PAYMENT"
CREDIT = "CREDIT"
ADJUSTMENT = "ADJUSTMENT"
RECEIVED = "RECEIVED"
PAID = "PAID"
TRANSFER_IN = "TRANSFER_IN"
TRANSFER_OUT = "TRANSFER_OUT"
INCOME = "INCOME"
EXPENSE = "EXPENSE"

# Direction of each type: +1 raises the balance, -1 lowers it, 0 either way
INCREASE = 1
DECREASE = -1
EITHER = 0

KIND_CUSTOMER = "customer"
KIND_SUPPLIER = "supplier"
KIND_CASH = "cash"
KIND_REGISTER = "register"


@dataclass(frozen=True)
class AccountKind:
    code: str
    label: str
    account_model: type
    movement_model: type
    directions: dict[str, int]
    forbids_negative: bool = False
    uses_credit_policy: bool = False
    inactive_allowed: frozenset[str] = field(default_factory=frozenset)
    session_bound: bool = False

    @property
    def movement_types(self) -> list[str]:
        return sorted(self.directions)

    def validate_movement(self, movement_type: str, amount: Decimal) -> None:
        """Reject unknown types and amounts whose sign contradicts the type."""
        if movement_type not in self.directions:
            raise ValidationError(
                f"Invalid movement type {movement_type!r} for {self.label}. Must be one of {self.movement_types}",
                movement_type=movement_type,
                kind=self.code,
            )
        direction = self.directions[movement_type]
        if direction == INCREASE and amount < ZERO:
            raise InvalidAmount(
                f"{movement_type} must increase the {self.label} balance",
                movement_type=movement_type,
                amount=amount,
            )
        if direction == DECREASE and amount > ZERO:
            raise InvalidAmount(
                f"{movement_type} must decrease the {self.label} balance",
                movement_type=movement_type,
                amount=amount,
            )

    def signed(self, movement_type: str, magnitude: Decimal) -> Decimal:
        """Apply a type's direction to a positive magnitude."""
        direction = self.directions.get(movement_type)
        if direction is None:
            raise ValidationError(
                f"Invalid movement type {movement_type!r} for {self.label}",
                movement_type=movement_type,
                kind=self.code,
            )
        if direction == EITHER:
            raise ValidationError(
                f"{movement_type} needs an explicit sign",
                movement_type=movement_type,
            )
        return magnitude if direction == INCREASE else -magnitude

    def accepts_while_inactive(self, movement_type: str) -> bool:
        return movement_type in self.inactive_allowed

    def seed(self, account) -> Decimal:
        """Balance before the first movement."""
        if self.session_bound:
            return account.opening_balance
        return ZERO


CUSTOMER_KIND = AccountKind(
    code=KIND_CUSTOMER,
    label="customer account",
    account_model=CustomerAccount,
    movement_model=CustomerAccountMovement,
    directions={
        CHARGE: DECREASE,
        PAYMENT: INCREASE,
        CREDIT: INCREASE,
        ADJUSTMENT: EITHER,
    },
    uses_credit_policy=True,
    inactive_allowed=frozenset({PAYMENT, CREDIT, ADJUSTMENT}),
)

SUPPLIER_KIND = AccountKind(
    code=KIND_SUPPLIER,
    label="supplier account",
    account_model=SupplierAccount,
    movement_model=SupplierAccountMovement,
    directions={
        CHARGE: INCREASE,
        PAYMENT: DECREASE,
        CREDIT: DECREASE,
        ADJUSTMENT: EITHER,
    },
    forbids_negative=True,
    inactive_allowed=frozenset({PAYMENT, CREDIT, ADJUSTMENT}),
)

CASH_KIND = AccountKind(
    code=KIND_CASH,
    label="cash account",
    account_model=CashAccount,
    movement_model=CashAccountMovement,
    directions={
        RECEIVED: INCREASE,
        PAID: DECREASE,
        TRANSFER_IN: INCREASE,
        TRANSFER_OUT: DECREASE,
        ADJUSTMENT: EITHER,
    },
    forbids_negative=True,
    inactive_allowed=frozenset({ADJUSTMENT}),
)

REGISTER_KIND = AccountKind(
    code=KIND_REGISTER,
    label="cash register session",
    account_model=CashRegisterSession,
    movement_model=CashRegisterMovement,
    directions={
        RECEIVED: INCREASE,
        INCOME: INCREASE,
        EXPENSE: DECREASE,
    },
    forbids_negative=True,
    session_bound=True,
)

KINDS = {
    kind.code: kind
    for kind in (CUSTOMER_KIND, SUPPLIER_KIND, CASH_KIND, REGISTER_KIND)
}


def get_kind(code: str) -> AccountKind:
    kind = KINDS.get((code or "").lower())
    if kind is None:
        raise ValidationError(
            f"Unknown account kind {code!r}. Must be one of {sorted(KINDS)}",
            kind=code,
        )
    return kind
