"""Credit-specific database queries.

Provides atomic operations for credit management with proper locking
to prevent race conditions and double-spending. Every function here runs
inside the caller's session; the caller owns commit and rollback, so a
balance change and the ledger entry documenting it land together or not
at all.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import logfire
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.errors import InsufficientCreditsError
from creditledger.models import (
    ADMIN_ENDPOINT,
    SYSTEM_ENDPOINT,
    CreditTransaction,
    OperationType,
    TransactionStatus,
    UserCredits,
)


# -----------------------------------------------------------------------------
# Balance Queries
# -----------------------------------------------------------------------------


async def get_user_credits_row(
    session: AsyncSession,
    user_id: str,
    *,
    for_update: bool = False,
) -> UserCredits | None:
    """Load the balance row, bypassing stale identity-map state.

    With ``for_update`` the row stays locked until the session's
    transaction ends.
    """
    stmt = (
        select(UserCredits)
        .where(UserCredits.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user_credits(
    session: AsyncSession,
    user_id: str,
    daily_credits: int,
    now: datetime,
) -> bool:
    """Create the balance row with a full allowance.

    Concurrent first requests for the same user race on the unique key;
    only the inserting caller records the initial grant.

    Returns:
        True if this call created the row.
    """
    with logfire.span("db.create_user_credits", user_id=user_id, daily=daily_credits):
        result = await session.execute(
            insert(UserCredits)
            .values(
                user_id=user_id,
                daily_credits=daily_credits,
                used_credits=0,
                bonus_credits=0,
                remaining_credits=daily_credits,
                last_reset_date=now,
                total_credits_earned=daily_credits,
                total_credits_spent=0,
            )
            .on_conflict_do_nothing(index_elements=[UserCredits.user_id])
            .returning(UserCredits.id)
        )
        if result.scalar_one_or_none() is None:
            return False

        await _record(
            session,
            user_id=user_id,
            api_endpoint=SYSTEM_ENDPOINT,
            credit_cost=daily_credits,
            operation_type=OperationType.DAILY_RESET,
            description=f"Initial daily credits: {daily_credits}",
            balance_after=daily_credits,
        )
        return True


async def reset_user_credits(
    session: AsyncSession,
    current: UserCredits,
    now: datetime,
) -> bool:
    """Restore the daily allowance if nobody else did it first.

    The row is locked only while ``last_reset_date`` still holds the value
    read by the caller, so racing resets converge on a single one. The
    restored amount comes from the locked row, which includes spends that
    landed after the caller's read.
    Bonus credits spent during the period (usage beyond the allowance) are
    gone; the unspent part is kept.

    Returns:
        True if this call performed the reset.
    """
    with logfire.span("db.reset_user_credits", user_id=current.user_id) as span:
        result = await session.execute(
            select(UserCredits)
            .where(
                UserCredits.user_id == current.user_id,
                UserCredits.last_reset_date == current.last_reset_date,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        locked = result.scalar_one_or_none()
        if locked is None:
            return False

        restored = min(locked.used_credits, locked.daily_credits)
        spent_bonus = max(locked.used_credits - locked.daily_credits, 0)
        span.set_attribute("used", locked.used_credits)
        span.set_attribute("restored", restored)

        result = await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == current.user_id)
            .values(
                used_credits=0,
                bonus_credits=UserCredits.bonus_credits - spent_bonus,
                remaining_credits=UserCredits.remaining_credits + restored,
                last_reset_date=now,
                total_credits_earned=UserCredits.total_credits_earned + restored,
            )
            .returning(UserCredits.remaining_credits)
            .execution_options(synchronize_session=False)
        )
        remaining = result.scalar_one()

        await _record(
            session,
            user_id=current.user_id,
            api_endpoint=SYSTEM_ENDPOINT,
            credit_cost=restored,
            operation_type=OperationType.DAILY_RESET,
            description=f"Daily reset: {restored} credits restored",
            balance_after=remaining,
        )
        return True


# -----------------------------------------------------------------------------
# Credit Operations (with locking)
# -----------------------------------------------------------------------------


async def deduct_user_credits(
    session: AsyncSession,
    user_id: str,
    amount: int,
    api_endpoint: str,
    *,
    description: str | None = None,
    request_data: dict[str, Any] | None = None,
    idempotency_key: str | None = None,
) -> CreditTransaction:
    """Spend credits atomically.

    Uses FOR UPDATE to lock the row, so two concurrent spends can't both
    act on the same balance.

    Returns:
        The completed ledger entry.

    Raises:
        InsufficientCreditsError: If the balance can't cover ``amount``.
    """
    with logfire.span(
        "db.deduct_user_credits",
        user_id=user_id,
        amount=amount,
        endpoint=api_endpoint,
    ):
        current = await _lock(session, user_id)
        if current.remaining_credits < amount:
            raise InsufficientCreditsError(amount, current.remaining_credits)

        transaction = await _begin(
            session,
            user_id=user_id,
            api_endpoint=api_endpoint,
            credit_cost=-amount,
            operation_type=OperationType.API_CALL,
            description=description or f"API call: {api_endpoint}",
            balance_after=current.remaining_credits,
            request_data=request_data,
            idempotency_key=idempotency_key,
        )

        result = await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                used_credits=UserCredits.used_credits + amount,
                remaining_credits=UserCredits.remaining_credits - amount,
                total_credits_spent=UserCredits.total_credits_spent + amount,
            )
            .returning(UserCredits.remaining_credits)
            .execution_options(synchronize_session=False)
        )
        transaction.complete(result.scalar_one())
        await session.flush()
        return transaction


async def add_user_credits(
    session: AsyncSession,
    user_id: str,
    amount: int,
    *,
    description: str,
) -> CreditTransaction:
    """Grant bonus credits on top of the daily allowance.

    Returns:
        The completed ledger entry.
    """
    with logfire.span("db.add_user_credits", user_id=user_id, amount=amount):
        current = await _lock(session, user_id)

        transaction = await _begin(
            session,
            user_id=user_id,
            api_endpoint=ADMIN_ENDPOINT,
            credit_cost=amount,
            operation_type=OperationType.ADMIN_GRANT,
            description=description,
            balance_after=current.remaining_credits,
        )

        result = await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                bonus_credits=UserCredits.bonus_credits + amount,
                remaining_credits=UserCredits.remaining_credits + amount,
                total_credits_earned=UserCredits.total_credits_earned + amount,
            )
            .returning(UserCredits.remaining_credits)
            .execution_options(synchronize_session=False)
        )
        transaction.complete(result.scalar_one())
        await session.flush()
        return transaction


async def refund_user_credits(
    session: AsyncSession,
    original: CreditTransaction,
    *,
    description: str,
) -> CreditTransaction:
    """Give back the cost of a completed API call.

    The refund first cancels usage of the current period; whatever exceeds
    it (the spend happened before the last reset) becomes bonus credits.

    Returns:
        The completed ledger entry.
    """
    amount = -original.credit_cost

    with logfire.span(
        "db.refund_user_credits",
        user_id=original.user_id,
        amount=amount,
        original_id=str(original.id),
    ):
        current = await _lock(session, original.user_id)
        released = min(current.used_credits, amount)

        transaction = await _begin(
            session,
            user_id=original.user_id,
            api_endpoint=original.api_endpoint,
            credit_cost=amount,
            operation_type=OperationType.REFUND,
            description=description,
            balance_after=current.remaining_credits,
            refunded_transaction_id=original.id,
        )

        result = await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == original.user_id)
            .values(
                used_credits=UserCredits.used_credits - released,
                bonus_credits=UserCredits.bonus_credits + (amount - released),
                remaining_credits=UserCredits.remaining_credits + amount,
            )
            .returning(UserCredits.remaining_credits)
            .execution_options(synchronize_session=False)
        )
        transaction.complete(result.scalar_one())
        await session.flush()
        return transaction


# -----------------------------------------------------------------------------
# Transaction Queries
# -----------------------------------------------------------------------------


async def get_transaction(
    session: AsyncSession,
    transaction_id: UUID,
) -> CreditTransaction | None:
    return await session.get(CreditTransaction, transaction_id)


async def get_transaction_by_idempotency_key(
    session: AsyncSession,
    user_id: str,
    idempotency_key: str,
    operation_type: OperationType = OperationType.API_CALL,
) -> CreditTransaction | None:
    """Find the user's entry of this type recorded under the key."""
    result = await session.execute(
        select(CreditTransaction).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.idempotency_key == idempotency_key,
            CreditTransaction.operation_type == operation_type,
        )
    )
    return result.scalar_one_or_none()


async def get_refund(
    session: AsyncSession,
    original_id: UUID,
) -> CreditTransaction | None:
    """Get the refund of an API call, if it was refunded already."""
    result = await session.execute(
        select(CreditTransaction).where(
            CreditTransaction.refunded_transaction_id == original_id,
            CreditTransaction.operation_type == OperationType.REFUND,
        )
    )
    return result.scalar_one_or_none()


async def get_user_transactions(
    session: AsyncSession,
    user_id: str,
    limit: int = 20,
    offset: int = 0,
) -> list[CreditTransaction]:
    """Get a page of a user's transactions, newest first."""
    result = await session.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


async def _lock(session: AsyncSession, user_id: str) -> UserCredits:
    current = await get_user_credits_row(session, user_id, for_update=True)
    if current is None:
        msg = f"No credit balance for user {user_id}"
        raise LookupError(msg)
    return current


async def _begin(session: AsyncSession, **values: Any) -> CreditTransaction:
    """Insert a pending ledger entry; the caller completes it."""
    transaction = CreditTransaction(status=TransactionStatus.PENDING, **values)
    session.add(transaction)
    await session.flush()
    return transaction


async def _record(session: AsyncSession, **values: Any) -> CreditTransaction:
    """Insert an entry whose balance change was already applied."""
    transaction = await _begin(session, **values)
    transaction.complete(values["balance_after"])
    await session.flush()
    return transaction
