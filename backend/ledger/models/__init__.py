from .tenancy import Tenant, Location
from .parties import Customer, Supplier
from .accounts import (
    CustomerAccount, CustomerAccountMovement,
    SupplierAccount, SupplierAccountMovement,
    CashAccount, CashAccountMovement,
    PaymentMethodAccount,
)
from .registers import (
    MovementType, CashRegisterSession, CashRegisterMovement, CashWithdrawal,
    SESSION_OPEN, SESSION_CLOSED,
)

__all__ = [
    'Tenant', 'Location',
    'Customer', 'Supplier',
    'CustomerAccount', 'CustomerAccountMovement',
    'SupplierAccount', 'SupplierAccountMovement',
    'CashAccount', 'CashAccountMovement',
    'PaymentMethodAccount',
    'MovementType', 'CashRegisterSession', 'CashRegisterMovement', 'CashWithdrawal',
    'SESSION_OPEN', 'SESSION_CLOSED',
]
