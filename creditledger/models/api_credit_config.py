"""Credit cost rules for billable API endpoints."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Enum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from creditledger.models.base import Base, TimestampMixin
from creditledger.models.enums import HttpMethod


class ApiCreditConfig(TimestampMixin, Base):
    """What one call to an endpoint costs.

    Keyed by (endpoint, method). Rules are disabled rather than deleted.
    """

    __tablename__ = "api_credit_configs"
    __table_args__ = (
        UniqueConstraint("endpoint", "method", name="uq_api_credit_configs_endpoint_method"),
        CheckConstraint("credit_cost >= 0", name="credit_cost_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    endpoint: Mapped[str] = mapped_column(String(255), index=True)
    method: Mapped[HttpMethod] = mapped_column(
        Enum(
            HttpMethod,
            name="http_method",
            native_enum=False,
            length=10,
            values_callable=lambda cls: [member.value for member in cls],
        )
    )
    credit_cost: Mapped[int] = mapped_column(default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(default=True, index=True)

    @property
    def key(self) -> str:
        return f"{self.method} {self.endpoint}"

    def __repr__(self) -> str:
        return (
            f"<ApiCreditConfig({self.key!r}, cost={self.credit_cost}, "
            f"enabled={self.is_enabled})>"
        )
