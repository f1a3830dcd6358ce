"""Database module for PostgreSQL with SQLAlchemy async support."""

from creditledger.db.catalog import (
    get_api_credit_config,
    insert_missing_api_credit_configs,
    list_api_credit_configs,
    upsert_api_credit_config,
)
from creditledger.db.credits import (
    add_user_credits,
    create_user_credits,
    deduct_user_credits,
    get_refund,
    get_transaction,
    get_transaction_by_idempotency_key,
    get_user_credits_row,
    get_user_transactions,
    refund_user_credits,
    reset_user_credits,
)
from creditledger.db.session import DatabaseManager

__all__ = [
    # Session management
    "DatabaseManager",
    # Balance queries
    "get_user_credits_row",
    "create_user_credits",
    "reset_user_credits",
    # Credit operations
    "deduct_user_credits",
    "add_user_credits",
    "refund_user_credits",
    # Transaction queries
    "get_transaction",
    "get_refund",
    "get_transaction_by_idempotency_key",
    "get_user_transactions",
    # Cost rules
    "get_api_credit_config",
    "list_api_credit_configs",
    "upsert_api_credit_config",
    "insert_missing_api_credit_configs",
]
