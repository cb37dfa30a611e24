# Overview: Tenant-scoped categories for manual cash register transactions.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import MovementType

INCOME = "INCOME"
EXPENSE = "EXPENSE"
TRANSACTION_TYPES = (INCOME, EXPENSE)

TREASURY_TRANSFER_TYPE = "Transfer to treasury"
WITHDRAWAL_TYPE = "Cash withdrawal"

# (name, description, transaction_type, is_system)
DEFAULT_MOVEMENT_TYPES = (
    ("General income", "Cash added to the drawer", INCOME, True),
    ("General expense", "Cash taken from the drawer", EXPENSE, True),
    ("Supplier payment", "Payment to a supplier from the drawer", EXPENSE, False),
    ("Bank withdrawal", "Cash withdrawn for a bank deposit", EXPENSE, False),
    ("Miscellaneous expenses", "Miscellaneous business expenses", EXPENSE, False),
    ("Cash sales income", "Cash sales recorded manually", INCOME, False),
)


def _normalize_transaction_type(value: str) -> str:
    value = (value or "").strip().upper()
    if value not in TRANSACTION_TYPES:
        raise ValidationError(
            f"transaction_type must be one of {list(TRANSACTION_TYPES)}",
            transaction_type=value,
        )
    return value


def create_movement_type(
    tenant_id: int,
    name: str,
    transaction_type: str,
    *,
    description: str | None = None,
    is_system: bool = False,
) -> MovementType:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    transaction_type = _normalize_transaction_type(transaction_type)

    existing = db.session.query(MovementType).filter_by(tenant_id=tenant_id, name=name).first()
    if existing:
        raise ValidationError(f"Movement type '{name}' already exists", movement_type_id=existing.id)

    movement_type = MovementType(
        tenant_id=tenant_id,
        name=name,
        description=description,
        transaction_type=transaction_type,
        is_system=is_system,
        is_active=True,
    )
    db.session.add(movement_type)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Movement type '{name}' already exists")
    return movement_type


def update_movement_type(
    tenant_id: int,
    movement_type_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> MovementType:
    """System types are managed by the application and cannot be edited."""
    movement_type = get_movement_type(tenant_id, movement_type_id)
    if movement_type.is_system:
        raise ValidationError("System movement types cannot be modified", movement_type_id=movement_type_id)

    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name cannot be empty")
        movement_type.name = name
    if description is not None:
        movement_type.description = description
    if is_active is not None:
        movement_type.is_active = bool(is_active)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"Movement type '{name}' already exists")
    return movement_type


def get_movement_type(tenant_id: int, movement_type_id: int) -> MovementType:
    movement_type = db.session.query(MovementType).filter_by(id=movement_type_id, tenant_id=tenant_id).first()
    if not movement_type:
        raise ValidationError(f"Movement type {movement_type_id} not found", movement_type_id=movement_type_id)
    return movement_type


def list_movement_types(
    tenant_id: int,
    *,
    transaction_type: str | None = None,
    include_inactive: bool = False,
) -> list[MovementType]:
    query = db.session.query(MovementType).filter_by(tenant_id=tenant_id)
    if transaction_type:
        query = query.filter_by(transaction_type=_normalize_transaction_type(transaction_type))
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(MovementType.transaction_type, MovementType.name).all()


def seed_default_movement_types(tenant_id: int) -> list[MovementType]:
    """Create the default set for a tenant. Idempotent: existing names are left alone."""
    existing = {
        name for (name,) in db.session.query(MovementType.name).filter_by(tenant_id=tenant_id).all()
    }
    created = []
    for name, description, transaction_type, is_system in DEFAULT_MOVEMENT_TYPES:
        if name in existing:
            continue
        movement_type = MovementType(
            tenant_id=tenant_id,
            name=name,
            description=description,
            transaction_type=transaction_type,
            is_system=is_system,
            is_active=True,
        )
        db.session.add(movement_type)
        created.append(movement_type)
    db.session.commit()
    if created:
        current_app.logger.info("Seeded %d movement types for tenant %s", len(created), tenant_id)
    return created


def ensure_system_type(tenant_id: int, name: str, transaction_type: str, description: str | None = None) -> MovementType:
    """Find or create a system movement type (commits on creation)."""
    movement_type = db.session.query(MovementType).filter_by(tenant_id=tenant_id, name=name).first()
    if movement_type:
        return movement_type

    movement_type = MovementType(
        tenant_id=tenant_id,
        name=name,
        description=description,
        transaction_type=_normalize_transaction_type(transaction_type),
        is_system=True,
        is_active=True,
    )
    db.session.add(movement_type)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        movement_type = db.session.query(MovementType).filter_by(tenant_id=tenant_id, name=name).first()
        if movement_type is None:
            raise
    return movement_type


def ensure_treasury_transfer_type(tenant_id: int) -> MovementType:
    return ensure_system_type(
        tenant_id,
        TREASURY_TRANSFER_TYPE,
        EXPENSE,
        "Cash moved from the register to treasury",
    )


def ensure_withdrawal_type(tenant_id: int) -> MovementType:
    return ensure_system_type(
        tenant_id,
        WITHDRAWAL_TYPE,
        EXPENSE,
        "Cash taken out of the register for a named recipient",
    )
