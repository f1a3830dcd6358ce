"""Per-user credit balance."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from creditledger.models.base import Base, TimestampMixin

# Allowance a new balance starts with unless configured otherwise
DEFAULT_DAILY_CREDITS = 100


class UserCredits(TimestampMixin, Base):
    """Spendable balance of one user.

    The balance is made of the daily allowance plus bonus credits (admin
    grants and refunds not yet spent) minus what was used this period.
    The identity is enforced by a CHECK constraint.
    """

    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint(
            "remaining_credits = daily_credits + bonus_credits - used_credits",
            name="remaining_matches_balance",
        ),
        CheckConstraint("remaining_credits >= 0", name="remaining_non_negative"),
        CheckConstraint("used_credits >= 0", name="used_non_negative"),
        CheckConstraint("bonus_credits >= 0", name="bonus_non_negative"),
        CheckConstraint("daily_credits >= 0", name="daily_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)

    # Allowance per reset period
    daily_credits: Mapped[int] = mapped_column(default=DEFAULT_DAILY_CREDITS)

    # Spent since the last reset
    used_credits: Mapped[int] = mapped_column(default=0)

    # Granted or refunded on top of the allowance, survives resets until spent
    bonus_credits: Mapped[int] = mapped_column(default=0)

    remaining_credits: Mapped[int] = mapped_column(default=DEFAULT_DAILY_CREDITS)

    last_reset_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True
    )

    # Lifetime counters, never decrease
    total_credits_earned: Mapped[int] = mapped_column(default=0)
    total_credits_spent: Mapped[int] = mapped_column(default=0)

    def __repr__(self) -> str:
        return (
            f"<UserCredits(user_id={self.user_id!r}, remaining={self.remaining_credits}, "
            f"used={self.used_credits}, daily={self.daily_credits})>"
        )
