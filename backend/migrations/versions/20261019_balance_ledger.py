"""Balance ledger schema: tenants, owners, ledger accounts, movements, register sessions

Revision ID: 20261019_balance_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_balance_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _account_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("movement_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
    ]


def _movement_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("concept", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=True),
        sa.Column("document_id", sa.String(64), nullable=True),
        sa.Column("transfer_id", sa.String(64), nullable=True),
        sa.Column("related_account_id", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("register_session_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _movement_indexes(table: str, prefix: str):
    for column in ("tenant_id", "account_id", "type", "actor_id", "document_id", "transfer_id", "register_session_id", "created_at"):
        op.create_index(f"ix_{table}_{column}", table, [column], unique=False)
    op.create_index(f"ix_{prefix}_tenant_created", table, ["tenant_id", "created_at"], unique=False)


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tenants_code", "tenants", ["code"], unique=True)
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"], unique=False)

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_locations_tenant_name"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_locations_id_tenant"),
    )
    op.create_index("ix_locations_tenant_id", "locations", ["tenant_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("id", "tenant_id", name="uq_customers_id_tenant"),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"], unique=False)
    op.create_index("ix_customers_tenant_active", "customers", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tax_id", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("id", "tenant_id", name="uq_suppliers_id_tenant"),
    )
    op.create_index("ix_suppliers_tenant_id", "suppliers", ["tenant_id"], unique=False)
    op.create_index("ix_suppliers_tenant_active", "suppliers", ["tenant_id", "is_active"], unique=False)

    # Customer current accounts
    op.create_table(
        "customer_accounts",
        *_account_columns(),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("credit_limit", sa.BigInteger(), nullable=False, server_default="0"),
        sa.UniqueConstraint("tenant_id", "customer_id", name="uq_customer_accounts_tenant_customer"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_customer_accounts_id_tenant"),
        sa.ForeignKeyConstraint(["customer_id", "tenant_id"], ["customers.id", "customers.tenant_id"]),
    )
    op.create_index("ix_customer_accounts_tenant_id", "customer_accounts", ["tenant_id"], unique=False)
    op.create_index("ix_customer_accounts_customer_id", "customer_accounts", ["customer_id"], unique=False)
    op.create_index("ix_customer_accounts_is_active", "customer_accounts", ["is_active"], unique=False)

    op.create_table(
        "customer_account_movements",
        *_movement_columns(),
        sa.UniqueConstraint("account_id", "sequence", name="uq_customer_movements_account_seq"),
        sa.ForeignKeyConstraint(["account_id", "tenant_id"], ["customer_accounts.id", "customer_accounts.tenant_id"]),
    )
    _movement_indexes("customer_account_movements", "customer_movements")

    # Supplier current accounts
    op.create_table(
        "supplier_accounts",
        *_account_columns(),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tenant_id", "supplier_id", name="uq_supplier_accounts_tenant_supplier"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_supplier_accounts_id_tenant"),
        sa.ForeignKeyConstraint(["supplier_id", "tenant_id"], ["suppliers.id", "suppliers.tenant_id"]),
    )
    op.create_index("ix_supplier_accounts_tenant_id", "supplier_accounts", ["tenant_id"], unique=False)
    op.create_index("ix_supplier_accounts_supplier_id", "supplier_accounts", ["supplier_id"], unique=False)
    op.create_index("ix_supplier_accounts_is_active", "supplier_accounts", ["is_active"], unique=False)

    op.create_table(
        "supplier_account_movements",
        *_movement_columns(),
        sa.UniqueConstraint("account_id", "sequence", name="uq_supplier_movements_account_seq"),
        sa.ForeignKeyConstraint(["account_id", "tenant_id"], ["supplier_accounts.id", "supplier_accounts.tenant_id"]),
    )
    _movement_indexes("supplier_account_movements", "supplier_movements")

    # Cash envelopes
    op.create_table(
        "cash_accounts",
        *_account_columns(),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("account_type", sa.String(32), nullable=False, server_default="CASH"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_cash_accounts_tenant_name"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_cash_accounts_id_tenant"),
    )
    op.create_index("ix_cash_accounts_tenant_id", "cash_accounts", ["tenant_id"], unique=False)
    op.create_index("ix_cash_accounts_account_type", "cash_accounts", ["account_type"], unique=False)
    op.create_index("ix_cash_accounts_is_active", "cash_accounts", ["is_active"], unique=False)

    op.create_table(
        "cash_account_movements",
        *_movement_columns(),
        sa.UniqueConstraint("account_id", "sequence", name="uq_cash_movements_account_seq"),
        sa.ForeignKeyConstraint(["account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
    )
    _movement_indexes("cash_account_movements", "cash_movements")

    op.create_table(
        "payment_method_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("cash_account_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "payment_method", name="uq_payment_method_accounts_tenant_method"),
        sa.ForeignKeyConstraint(["cash_account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
    )
    op.create_index("ix_payment_method_accounts_tenant_id", "payment_method_accounts", ["tenant_id"], unique=False)
    op.create_index("ix_payment_method_accounts_cash_account_id", "payment_method_accounts", ["cash_account_id"], unique=False)

    # Cash register
    op.create_table(
        "movement_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_movement_types_tenant_name"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_movement_types_id_tenant"),
    )
    op.create_index("ix_movement_types_tenant_id", "movement_types", ["tenant_id"], unique=False)
    op.create_index("ix_movement_types_is_active", "movement_types", ["is_active"], unique=False)

    op.create_table(
        "cash_register_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="OPEN"),
        sa.Column("open_scope_key", sa.String(64), nullable=True),
        sa.Column("opening_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("movement_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("closing_balance_declared", sa.BigInteger(), nullable=True),
        sa.Column("expected_balance", sa.BigInteger(), nullable=True),
        sa.Column("discrepancy", sa.BigInteger(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by_actor_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("tenant_id", "open_scope_key", name="uq_register_sessions_open_scope"),
        sa.UniqueConstraint("id", "tenant_id", name="uq_register_sessions_id_tenant"),
        sa.ForeignKeyConstraint(["location_id", "tenant_id"], ["locations.id", "locations.tenant_id"]),
    )
    op.create_index("ix_cash_register_sessions_tenant_id", "cash_register_sessions", ["tenant_id"], unique=False)
    op.create_index("ix_cash_register_sessions_location_id", "cash_register_sessions", ["location_id"], unique=False)
    op.create_index("ix_cash_register_sessions_operator_id", "cash_register_sessions", ["operator_id"], unique=False)
    op.create_index("ix_cash_register_sessions_status", "cash_register_sessions", ["status"], unique=False)
    op.create_index("ix_cash_register_sessions_opened_at", "cash_register_sessions", ["opened_at"], unique=False)
    op.create_index("ix_register_sessions_tenant_status", "cash_register_sessions", ["tenant_id", "status"], unique=False)

    op.create_table(
        "cash_register_movements",
        *_movement_columns(),
        sa.Column("movement_type_id", sa.Integer(), nullable=True),
        sa.UniqueConstraint("account_id", "sequence", name="uq_register_movements_session_seq"),
        sa.ForeignKeyConstraint(["account_id", "tenant_id"], ["cash_register_sessions.id", "cash_register_sessions.tenant_id"]),
        sa.ForeignKeyConstraint(["movement_type_id", "tenant_id"], ["movement_types.id", "movement_types.tenant_id"]),
    )
    _movement_indexes("cash_register_movements", "register_movements")
    op.create_index("ix_cash_register_movements_movement_type_id", "cash_register_movements", ["movement_type_id"], unique=False)


def downgrade():
    for table in (
        "cash_register_movements",
        "cash_register_sessions",
        "movement_types",
        "payment_method_accounts",
        "cash_account_movements",
        "cash_accounts",
        "supplier_account_movements",
        "supplier_accounts",
        "customer_account_movements",
        "customer_accounts",
        "suppliers",
        "customers",
        "locations",
        "tenants",
    ):
        op.drop_table(table)
