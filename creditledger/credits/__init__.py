"""Credit ledger for billable API operations.

Provides:
- Credit service for checking/consuming/granting credits
- Daily reset policy
- Billing guard for request handlers
- Types for credit operations
"""

from creditledger.credits.defaults import DEFAULT_API_CREDIT_CONFIGS
from creditledger.credits.guard import BilledCall, billed_call
from creditledger.credits.reset import DailyResetPolicy
from creditledger.credits.service import CreditService, parse_method
from creditledger.credits.types import (
    ApiCreditConfigInput,
    CreditCheckResult,
    CreditStatus,
    HttpMethod,
    OperationType,
    TransactionStatus,
)
from creditledger.errors import (
    CreditError,
    ImmutableTransactionError,
    InsufficientCreditsError,
    InvalidCreditConfigError,
    InvalidRefundError,
    StorageError,
    TransactionNotFoundError,
)

__all__ = [
    # Service
    "CreditService",
    "DailyResetPolicy",
    "parse_method",
    # Guard
    "BilledCall",
    "billed_call",
    # Catalogue
    "DEFAULT_API_CREDIT_CONFIGS",
    # Types
    "ApiCreditConfigInput",
    "CreditCheckResult",
    "CreditStatus",
    "HttpMethod",
    "OperationType",
    "TransactionStatus",
    # Errors
    "CreditError",
    "InsufficientCreditsError",
    "InvalidCreditConfigError",
    "InvalidRefundError",
    "ImmutableTransactionError",
    "TransactionNotFoundError",
    "StorageError",
]
