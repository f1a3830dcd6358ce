"""Errors raised by the credit ledger."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

# Persistence failures are not wrapped. Mutations are atomic, so the
# caller can retry the whole operation after catching one.
StorageError = SQLAlchemyError


class CreditError(Exception):
    """Base class for credit ledger errors."""


class InsufficientCreditsError(CreditError):
    """The balance can't cover the requested spend."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits. Required: {required}, Available: {available}"
        )


class InvalidCreditConfigError(CreditError, ValueError):
    """A cost rule has a negative cost or an unsupported method."""


class TransactionNotFoundError(CreditError, LookupError):
    def __init__(self, transaction_id: UUID) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Credit transaction {transaction_id} not found")


class InvalidRefundError(CreditError):
    """Only completed API call spends can be refunded."""


class ImmutableTransactionError(CreditError):
    """A completed or failed ledger entry was modified."""
