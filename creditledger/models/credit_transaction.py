"""Credit transaction model for audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text, event, inspect
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from creditledger.errors import ImmutableTransactionError
from creditledger.models.base import Base, utcnow
from creditledger.models.enums import OperationType, TransactionStatus


# Ledger endpoint values for entries that don't come from an API call
ADMIN_ENDPOINT = "admin"
SYSTEM_ENDPOINT = "system"


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class CreditTransaction(Base):
    """Append-only log of every balance mutation.

    Records every credit movement:
    - API call spends (negative cost)
    - Admin grants (positive cost)
    - Daily resets and the initial allowance (positive cost)
    - Refunds of failed API calls (positive cost)

    Rows are written ``pending`` and finalized in the same database
    transaction as the balance change they document. Terminal rows are
    immutable.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        # History pages: newest first per user
        Index("idx_credit_transactions_user_recent", "user_id", "created_at"),
        # Caller-chosen idempotency keys, unique per user
        Index(
            "uq_credit_transactions_user_idempotency_key",
            "user_id",
            "idempotency_key",
            unique=True,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("user_credits.user_id"), index=True
    )

    # Billed endpoint, or "admin"/"system" for non-API entries
    api_endpoint: Mapped[str] = mapped_column(String(255), index=True)

    # Signed: negative for spends, positive for grants, resets and refunds
    credit_cost: Mapped[int] = mapped_column()

    operation_type: Mapped[OperationType] = mapped_column(
        Enum(
            OperationType,
            name="credit_operation_type",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        index=True,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(
            TransactionStatus,
            name="credit_transaction_status",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        default=TransactionStatus.PENDING,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Request context captured by the caller (method, query, body, ...)
    request_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    # Remaining credits right after this entry was applied
    balance_after: Mapped[int] = mapped_column()

    # For idempotency: prevent double-charging on retried spends
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # For refunds: the API call being reversed, refunded at most once
    refunded_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("credit_transactions.id"), nullable=True, unique=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def complete(self, balance_after: int) -> None:
        """Finalize a pending entry once its balance change is applied."""
        self.balance_after = balance_after
        self.status = TransactionStatus.COMPLETED
        self.completed_at = utcnow()

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction(type={self.operation_type!r}, cost={self.credit_cost}, "
            f"user_id={self.user_id!r}, status={self.status!r})>"
        )


@event.listens_for(CreditTransaction, "before_update")
def _reject_terminal_updates(mapper, connection, target: CreditTransaction) -> None:
    status_history = inspect(target).attrs.status.history
    previous = status_history.deleted[0] if status_history.deleted else target.status
    if previous is not None and TransactionStatus(previous).is_terminal:
        raise ImmutableTransactionError(
            f"Credit transaction {target.id} is {previous} and can't be modified"
        )
