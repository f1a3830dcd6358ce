"""Types for credit operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from creditledger.models.enums import HttpMethod, OperationType, TransactionStatus


class CreditStatus(StrEnum):
    SUFFICIENT = "sufficient"
    INSUFFICIENT = "insufficient"


@dataclass(frozen=True, slots=True)
class CreditCheckResult:
    """Result of checking whether a user can afford an operation.

    Advisory only: the authoritative check happens again when the
    credits are actually consumed.
    """

    status: CreditStatus
    current_credits: int
    required_credits: int
    can_proceed: bool
    message: str

    @classmethod
    def evaluate(cls, current: int, required: int) -> CreditCheckResult:
        if current >= required:
            return cls(
                status=CreditStatus.SUFFICIENT,
                current_credits=current,
                required_credits=required,
                can_proceed=True,
                message="Sufficient credits",
            )
        return cls(
            status=CreditStatus.INSUFFICIENT,
            current_credits=current,
            required_credits=required,
            can_proceed=False,
            message=f"Insufficient credits. Required: {required}, Available: {current}",
        )

    @property
    def shortfall(self) -> int:
        """Credits missing to proceed (0 when sufficient)."""
        return max(0, self.required_credits - self.current_credits)


@dataclass(frozen=True, slots=True)
class ApiCreditConfigInput:
    """Desired state of a cost rule, as submitted by an admin."""

    endpoint: str
    method: HttpMethod | str
    credit_cost: int
    description: str | None = None
    is_enabled: bool = True


__all__ = [
    "ApiCreditConfigInput",
    "CreditCheckResult",
    "CreditStatus",
    "HttpMethod",
    "OperationType",
    "TransactionStatus",
]
