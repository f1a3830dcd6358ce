"""Concurrent access to one balance.

Each task runs the service call in its own session, the same way parallel
requests would.
"""

from __future__ import annotations

import asyncio

import pytest

from creditledger.credits import InsufficientCreditsError, OperationType


def _assert_consistent(credits) -> None:
    assert credits.remaining_credits >= 0
    assert credits.remaining_credits == (
        credits.daily_credits + credits.bonus_credits - credits.used_credits
    )


async def _count(service, user_id: str, operation_type: OperationType) -> int:
    history = await service.get_credit_history(user_id, limit=100)
    return sum(1 for t in history if t.operation_type is operation_type)


class TestConcurrentSpends:
    @pytest.mark.asyncio
    async def test_no_overspend(self, credit_service, user_id):
        await credit_service.get_user_credits(user_id)

        results = await asyncio.gather(
            *(
                credit_service.consume_credits(user_id, "/api/v1/generate-image", 15)
                for _ in range(10)
            ),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, InsufficientCreditsError)]
        assert len(succeeded) == 6
        assert len(rejected) == 4

        credits = await credit_service.get_user_credits(user_id)
        assert credits.remaining_credits == 10
        assert credits.used_credits == 90
        _assert_consistent(credits)
        assert await _count(credit_service, user_id, OperationType.API_CALL) == 6

    @pytest.mark.asyncio
    async def test_balances_are_sequential(self, credit_service, user_id):
        """Every spend sees the balance left by the previous one."""
        await credit_service.get_user_credits(user_id)

        transactions = await asyncio.gather(
            *(credit_service.consume_credits(user_id, "/api/test", 7) for _ in range(10))
        )

        assert sorted(t.balance_after for t in transactions) == list(range(30, 100, 7))

    @pytest.mark.asyncio
    async def test_same_key_charges_once(self, credit_service, user_id):
        await credit_service.get_user_credits(user_id)

        await asyncio.gather(
            *(
                credit_service.consume_credits(
                    user_id, "/api/test", 10, idempotency_key="retry-1"
                )
                for _ in range(5)
            ),
            return_exceptions=True,
        )

        credits = await credit_service.get_user_credits(user_id)
        assert credits.remaining_credits == 90
        assert await _count(credit_service, user_id, OperationType.API_CALL) == 1

    @pytest.mark.asyncio
    async def test_grants_and_spends_interleave(self, credit_service, user_id):
        await credit_service.get_user_credits(user_id)

        await asyncio.gather(
            *(credit_service.grant_credits(user_id, 10) for _ in range(5)),
            *(credit_service.consume_credits(user_id, "/api/test", 10) for _ in range(5)),
        )

        credits = await credit_service.get_user_credits(user_id)
        assert credits.remaining_credits == 100
        assert credits.bonus_credits == 50
        assert credits.total_credits_earned == 150
        assert credits.total_credits_spent == 50
        _assert_consistent(credits)


class TestConcurrentLifecycle:
    @pytest.mark.asyncio
    async def test_first_access_creates_once(self, credit_service, user_id):
        balances = await asyncio.gather(
            *(credit_service.get_user_credits(user_id) for _ in range(10))
        )

        assert {b.remaining_credits for b in balances} == {100}
        assert await _count(credit_service, user_id, OperationType.DAILY_RESET) == 1

    @pytest.mark.asyncio
    async def test_reset_applies_once(
        self, credit_service, user_id, set_balance, two_days_ago
    ):
        await credit_service.get_user_credits(user_id)
        await set_balance(user_id, used=50, last_reset=two_days_ago)

        balances = await asyncio.gather(
            *(credit_service.get_user_credits(user_id) for _ in range(10))
        )

        assert {b.used_credits for b in balances} == {0}
        assert {b.remaining_credits for b in balances} == {100}

        history = await credit_service.get_credit_history(user_id)
        resets = [t for t in history if t.operation_type is OperationType.DAILY_RESET]
        # Initial allowance plus exactly one reset
        assert len(resets) == 2
        assert resets[0].credit_cost == 50

        credits = await credit_service.get_user_credits(user_id)
        assert credits.total_credits_earned == 150
        _assert_consistent(credits)

    @pytest.mark.asyncio
    async def test_reset_races_with_spends(
        self, credit_service, user_id, set_balance, two_days_ago
    ):
        await credit_service.get_user_credits(user_id)
        await set_balance(user_id, used=100, last_reset=two_days_ago)

        await asyncio.gather(
            *(credit_service.consume_credits(user_id, "/api/test", 10) for _ in range(5))
        )

        credits = await credit_service.get_user_credits(user_id)
        assert credits.used_credits == 50
        assert credits.remaining_credits == 50
        _assert_consistent(credits)
