"""Daily reset policy.

A balance is refreshed once per calendar day of the configured reference
time zone. The policy only looks at the clock value and the stored reset
timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, time, tzinfo
from zoneinfo import ZoneInfo


@dataclass(frozen=True, slots=True)
class DailyResetPolicy:
    """Decides whether a balance is due for its daily refill."""

    timezone: tzinfo = field(default=UTC)

    @classmethod
    def from_name(cls, name: str) -> DailyResetPolicy:
        """Build a policy from an IANA zone name such as ``Asia/Shanghai``."""
        if name.upper() == "UTC":
            return cls(UTC)
        return cls(ZoneInfo(name))

    def period_start(self, now: datetime) -> datetime:
        """Start of the reset period containing ``now`` (local midnight)."""
        local = _aware(now).astimezone(self.timezone)
        return datetime.combine(local.date(), time.min, tzinfo=self.timezone)

    def is_due(self, now: datetime, last_reset: datetime) -> bool:
        """True if ``last_reset`` falls before the current period started."""
        return _aware(last_reset) < self.period_start(now)

    def now(self) -> datetime:
        return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    # Naive timestamps are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
