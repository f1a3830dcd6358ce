"""SQLAlchemy models for the credit ledger."""

from creditledger.models.api_credit_config import ApiCreditConfig
from creditledger.models.base import Base, TimestampMixin
from creditledger.models.credit_transaction import (
    ADMIN_ENDPOINT,
    SYSTEM_ENDPOINT,
    CreditTransaction,
)
from creditledger.models.enums import HttpMethod, OperationType, TransactionStatus
from creditledger.models.user_credits import DEFAULT_DAILY_CREDITS, UserCredits

__all__ = [
    "Base",
    "TimestampMixin",
    "UserCredits",
    "DEFAULT_DAILY_CREDITS",
    "CreditTransaction",
    "ApiCreditConfig",
    "ADMIN_ENDPOINT",
    "SYSTEM_ENDPOINT",
    # Enums
    "OperationType",
    "TransactionStatus",
    "HttpMethod",
]
