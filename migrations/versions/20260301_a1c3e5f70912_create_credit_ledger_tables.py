"""create credit ledger tables

Revision ID: a1c3e5f70912
Revises:
Create Date: 2026-03-01 10:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70912"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Balances, one row per user
    op.create_table(
        "user_credits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("daily_credits", sa.Integer(), nullable=False),
        sa.Column("used_credits", sa.Integer(), nullable=False),
        sa.Column("bonus_credits", sa.Integer(), nullable=False),
        sa.Column("remaining_credits", sa.Integer(), nullable=False),
        sa.Column("last_reset_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_credits_earned", sa.Integer(), nullable=False),
        sa.Column("total_credits_spent", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "remaining_credits = daily_credits + bonus_credits - used_credits",
            name=op.f("ck_user_credits_remaining_matches_balance"),
        ),
        sa.CheckConstraint(
            "remaining_credits >= 0", name=op.f("ck_user_credits_remaining_non_negative")
        ),
        sa.CheckConstraint("used_credits >= 0", name=op.f("ck_user_credits_used_non_negative")),
        sa.CheckConstraint(
            "bonus_credits >= 0", name=op.f("ck_user_credits_bonus_non_negative")
        ),
        sa.CheckConstraint(
            "daily_credits >= 0", name=op.f("ck_user_credits_daily_non_negative")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_credits")),
    )
    op.create_index(
        op.f("ix_user_credits_user_id"), "user_credits", ["user_id"], unique=True
    )
    op.create_index(
        op.f("ix_user_credits_last_reset_date"), "user_credits", ["last_reset_date"]
    )

    # Append-only ledger
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("api_endpoint", sa.String(length=255), nullable=False),
        sa.Column("credit_cost", sa.Integer(), nullable=False),
        sa.Column("operation_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("request_data", postgresql.JSONB(), nullable=True),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("refunded_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["user_credits.user_id"],
            name=op.f("fk_credit_transactions_user_id_user_credits"),
        ),
        sa.ForeignKeyConstraint(
            ["refunded_transaction_id"],
            ["credit_transactions.id"],
            name=op.f("fk_credit_transactions_refunded_transaction_id_credit_transactions"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_credit_transactions")),
        sa.UniqueConstraint(
            "refunded_transaction_id",
            name=op.f("uq_credit_transactions_refunded_transaction_id"),
        ),
    )
    for column in ("user_id", "api_endpoint", "operation_type", "status", "created_at"):
        op.create_index(
            op.f(f"ix_credit_transactions_{column}"), "credit_transactions", [column]
        )
    op.create_index(
        "uq_credit_transactions_user_idempotency_key",
        "credit_transactions",
        ["user_id", "idempotency_key"],
        unique=True,
    )
    op.create_index(
        "idx_credit_transactions_user_recent",
        "credit_transactions",
        ["user_id", "created_at"],
    )

    # Price list, one row per endpoint + method
    op.create_table(
        "api_credit_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("credit_cost", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "credit_cost >= 0", name=op.f("ck_api_credit_configs_credit_cost_non_negative")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_api_credit_configs")),
        sa.UniqueConstraint(
            "endpoint", "method", name="uq_api_credit_configs_endpoint_method"
        ),
    )
    op.create_index(
        op.f("ix_api_credit_configs_endpoint"), "api_credit_configs", ["endpoint"]
    )
    op.create_index(
        op.f("ix_api_credit_configs_is_enabled"), "api_credit_configs", ["is_enabled"]
    )


def downgrade() -> None:
    op.drop_table("api_credit_configs")
    op.drop_table("credit_transactions")
    op.drop_table("user_credits")
