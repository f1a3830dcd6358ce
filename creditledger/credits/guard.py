"""Billing guard for request handlers.

Wraps one billable operation in the ledger protocol: price the endpoint,
check the balance before doing any work, and consume credits only when
the operation finished without raising.

Usage:
    async with billed_call(service, user_id, "/api/v1/generate-image", "POST") as call:
        image = await generate_image(...)
    # call.transaction holds the ledger entry (None for free endpoints)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import logfire

from creditledger.errors import InsufficientCreditsError

if TYPE_CHECKING:
    from creditledger.credits.service import CreditService
    from creditledger.credits.types import CreditCheckResult
    from creditledger.models import CreditTransaction, HttpMethod


@dataclass(slots=True)
class BilledCall:
    """State of one guarded operation."""

    user_id: str
    endpoint: str
    cost: int
    check: CreditCheckResult | None = None
    request_data: dict[str, Any] | None = None
    transaction: CreditTransaction | None = None

    @property
    def is_free(self) -> bool:
        return self.cost == 0


@asynccontextmanager
async def billed_call(
    service: CreditService,
    user_id: str,
    endpoint: str,
    method: HttpMethod | str,
    *,
    request_data: dict[str, Any] | None = None,
    idempotency_key: str | None = None,
) -> AsyncIterator[BilledCall]:
    """Guard a billable operation.

    Raises:
        InsufficientCreditsError: Before the body runs if the advisory check
            fails, or after it if a concurrent spend drained the balance.
    """
    cost = await service.get_required_cost(endpoint, method)
    call = BilledCall(
        user_id=user_id, endpoint=endpoint, cost=cost, request_data=request_data
    )

    if call.is_free:
        yield call
        return

    call.check = await service.check_credits(user_id, cost)
    if not call.check.can_proceed:
        logfire.info(
            "billed_call_rejected",
            user_id=user_id,
            endpoint=endpoint,
            required=cost,
            available=call.check.current_credits,
        )
        raise InsufficientCreditsError(cost, call.check.current_credits)

    # Exceptions from the body propagate and nothing is charged
    yield call

    call.transaction = await service.consume_credits(
        user_id,
        endpoint,
        cost,
        request_data=request_data,
        idempotency_key=idempotency_key,
    )
