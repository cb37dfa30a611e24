"""Register withdrawals: reason and recipient for cash taken out of a drawer

Revision ID: 20261019_register_withdrawals
Revises: 20261019_balance_ledger
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_register_withdrawals"
down_revision = "20261019_balance_ledger"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("register_movement_id", sa.Integer(), sa.ForeignKey("cash_register_movements.id"), nullable=False),
        sa.Column("destination_account_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.String(24), nullable=False),
        sa.Column("recipient_name", sa.String(120), nullable=False),
        sa.Column("concept", sa.String(255), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("transfer_id", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("register_movement_id", name="uq_cash_withdrawals_register_movement_id"),
        sa.ForeignKeyConstraint(["session_id", "tenant_id"], ["cash_register_sessions.id", "cash_register_sessions.tenant_id"]),
        sa.ForeignKeyConstraint(["destination_account_id", "tenant_id"], ["cash_accounts.id", "cash_accounts.tenant_id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_withdrawals_tenant_id", "cash_withdrawals", ["tenant_id"], unique=False)
    op.create_index("ix_cash_withdrawals_session_id", "cash_withdrawals", ["session_id"], unique=False)
    op.create_index("ix_cash_withdrawals_reason", "cash_withdrawals", ["reason"], unique=False)
    op.create_index("ix_cash_withdrawals_tenant_withdrawn", "cash_withdrawals", ["tenant_id", "withdrawn_at"], unique=False)


def downgrade():
    op.drop_table("cash_withdrawals")
