"""Closed value sets stored in ledger tables."""

from enum import StrEnum


class OperationType(StrEnum):
    """Kinds of balance mutation recorded in the ledger."""

    API_CALL = "api_call"  # Spent on a billable API operation
    ADMIN_GRANT = "admin_grant"  # Granted manually by an admin
    DAILY_RESET = "daily_reset"  # Allowance restored (or first issued)
    REFUND = "refund"  # Returned after a failed operation


class TransactionStatus(StrEnum):
    """Lifecycle of a ledger entry. Completed and failed are terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
