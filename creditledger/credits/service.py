"""Credit service for checking and consuming credits.

This is the main entry point for credit operations. It handles:
- Lazy balance creation and the daily reset
- Advisory affordability checks
- Atomic credit consumption after successful operations
- Admin grants and refunds of failed calls
- The per-endpoint cost catalogue
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import logfire

from creditledger.credits.defaults import DEFAULT_API_CREDIT_CONFIGS
from creditledger.credits.reset import DailyResetPolicy
from creditledger.credits.types import ApiCreditConfigInput, CreditCheckResult
from creditledger.db.catalog import (
    get_api_credit_config,
    insert_missing_api_credit_configs,
    list_api_credit_configs,
    upsert_api_credit_config,
)
from creditledger.db.credits import (
    add_user_credits,
    create_user_credits,
    deduct_user_credits,
    get_refund,
    get_transaction,
    get_transaction_by_idempotency_key,
    get_user_credits_row,
    get_user_transactions,
    refund_user_credits,
    reset_user_credits,
)
from creditledger.errors import (
    InsufficientCreditsError,
    InvalidCreditConfigError,
    InvalidRefundError,
    TransactionNotFoundError,
)
from creditledger.models import (
    DEFAULT_DAILY_CREDITS,
    ApiCreditConfig,
    CreditTransaction,
    HttpMethod,
    OperationType,
    TransactionStatus,
    UserCredits,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from creditledger.config import Settings
    from creditledger.db.session import DatabaseManager


class CreditService:
    """Service for managing credits and access control.

    Build one instance at startup and share it between requests. Each
    mutating call runs in its own database transaction, which is the only
    synchronization used: row locks serialize spends on the same balance.

    Usage:
        service = CreditService(db)

        cost = await service.get_required_cost("/api/v1/generate-image", "POST")
        result = await service.check_credits(user_id, cost)
        if result.can_proceed:
            # Run the operation
            ...
            # Consume credits after success
            await service.consume_credits(user_id, "/api/v1/generate-image", cost)
    """

    def __init__(
        self,
        db: DatabaseManager,
        *,
        daily_credits: int = DEFAULT_DAILY_CREDITS,
        reset_policy: DailyResetPolicy | None = None,
        history_max_limit: int = 100,
    ) -> None:
        self.db = db
        self.daily_credits = daily_credits
        self.reset_policy = reset_policy or DailyResetPolicy()
        self.history_max_limit = history_max_limit

    @classmethod
    def from_settings(cls, db: DatabaseManager, settings: Settings) -> CreditService:
        return cls(
            db,
            daily_credits=settings.credits_default_daily_credits,
            reset_policy=DailyResetPolicy.from_name(settings.credits_reset_timezone),
            history_max_limit=settings.credits_history_max_limit,
        )

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def get_user_credits(self, user_id: str) -> UserCredits:
        """Get the user's balance, creating or resetting it when needed.

        A zero balance is returned as is; whether it is enough for anything
        is for the caller to decide.
        """
        async with self.db.session() as session:
            return await self._refresh(session, user_id)

    async def check_credits(self, user_id: str, required_cost: int) -> CreditCheckResult:
        """Check whether the user can afford ``required_cost``.

        Advisory only: a concurrent spend may invalidate the answer right
        away. ``consume_credits`` checks again under a row lock.
        """
        if required_cost < 0:
            raise ValueError(f"Required cost can't be negative: {required_cost}")

        credits = await self.get_user_credits(user_id)
        result = CreditCheckResult.evaluate(credits.remaining_credits, required_cost)

        logfire.debug(
            "credits_checked",
            user_id=user_id,
            required=required_cost,
            available=credits.remaining_credits,
            status=result.status.value,
        )
        return result

    async def consume_credits(
        self,
        user_id: str,
        api_endpoint: str,
        cost: int,
        *,
        request_data: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> CreditTransaction:
        """Spend credits for a completed operation.

        Call this ONLY after the operation has succeeded. Uses
        idempotency_key to prevent double-charging on retries.

        Args:
            user_id: User being charged.
            api_endpoint: Endpoint that was billed.
            cost: Credits to spend, zero or more.
            request_data: Optional request context stored with the entry.
            idempotency_key: Optional key to prevent duplicate charges,
                scoped to ``user_id``.

        Returns:
            The completed ledger entry (the existing one for a repeated key).

        Raises:
            InsufficientCreditsError: If the balance can't cover the cost.
                Nothing is changed in that case.
        """
        if cost < 0:
            raise ValueError(f"Credit cost can't be negative: {cost}")

        async with self.db.session() as session:
            if idempotency_key:
                existing = await get_transaction_by_idempotency_key(
                    session, user_id, idempotency_key
                )
                if existing:
                    logfire.info(
                        "consume_skipped_idempotent",
                        user_id=user_id,
                        idempotency_key=idempotency_key,
                        endpoint=api_endpoint,
                    )
                    return existing

            await self._refresh(session, user_id)
            try:
                transaction = await deduct_user_credits(
                    session,
                    user_id,
                    cost,
                    api_endpoint,
                    request_data=request_data,
                    idempotency_key=idempotency_key,
                )
            except InsufficientCreditsError as exc:
                logfire.info(
                    "credits_insufficient",
                    user_id=user_id,
                    endpoint=api_endpoint,
                    required=exc.required,
                    available=exc.available,
                )
                raise

        logfire.info(
            "credits_consumed",
            user_id=user_id,
            endpoint=api_endpoint,
            amount=cost,
            balance=transaction.balance_after,
        )
        return transaction

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        reason: str | None = None,
    ) -> CreditTransaction:
        """Grant bonus credits. The daily allowance itself is unchanged."""
        if amount <= 0:
            raise ValueError(f"Granted amount must be positive: {amount}")

        async with self.db.session() as session:
            await self._refresh(session, user_id)
            transaction = await add_user_credits(
                session,
                user_id,
                amount,
                description=reason or f"Admin grant: {amount} credits",
            )

        logfire.info(
            "credits_granted",
            user_id=user_id,
            amount=amount,
            balance=transaction.balance_after,
        )
        return transaction

    async def refund_credits(
        self,
        transaction_id: UUID,
        reason: str | None = None,
    ) -> CreditTransaction:
        """Reverse a completed API call spend.

        Refunding the same spend twice returns the first refund.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist.
            InvalidRefundError: If it isn't a completed API call.
        """
        async with self.db.session() as session:
            original = await get_transaction(session, transaction_id)
            if original is None:
                logfire.warn("refund_failed_not_found", transaction_id=str(transaction_id))
                raise TransactionNotFoundError(transaction_id)

            if (
                original.operation_type is not OperationType.API_CALL
                or original.status is not TransactionStatus.COMPLETED
            ):
                logfire.warn(
                    "refund_failed_not_refundable",
                    transaction_id=str(transaction_id),
                    type=original.operation_type.value,
                    status=original.status.value,
                )
                raise InvalidRefundError(
                    f"Transaction {transaction_id} is a {original.status} "
                    f"{original.operation_type}, only completed API calls can be refunded"
                )

            existing = await get_refund(session, original.id)
            if existing:
                logfire.info("refund_already_processed", transaction_id=str(transaction_id))
                return existing

            await self._refresh(session, original.user_id)
            transaction = await refund_user_credits(
                session,
                original,
                description=reason or f"Refund for failed API call: {original.api_endpoint}",
            )

        logfire.info(
            "credits_refunded",
            user_id=original.user_id,
            transaction_id=str(transaction_id),
            amount=transaction.credit_cost,
        )
        return transaction

    async def get_credit_history(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[CreditTransaction]:
        """Get a page of the user's ledger, newest first."""
        if not 1 <= limit <= self.history_max_limit:
            raise ValueError(f"limit must be between 1 and {self.history_max_limit}")
        if offset < 0:
            raise ValueError("offset can't be negative")

        async with self.db.read_session() as session:
            return await get_user_transactions(session, user_id, limit, offset)

    # -------------------------------------------------------------------------
    # Cost catalogue
    # -------------------------------------------------------------------------

    async def get_api_credit_config(
        self,
        endpoint: str,
        method: HttpMethod | str,
    ) -> ApiCreditConfig | None:
        """Get the enabled cost rule for an endpoint, None if there is none."""
        async with self.db.read_session() as session:
            return await get_api_credit_config(session, endpoint, parse_method(method))

    async def get_required_cost(self, endpoint: str, method: HttpMethod | str) -> int:
        """Credits one call costs. Endpoints without an enabled rule are free."""
        config = await self.get_api_credit_config(endpoint, method)
        if config is None:
            logfire.debug("endpoint_unpriced", endpoint=endpoint, method=str(method))
            return 0
        return config.credit_cost

    async def upsert_api_credit_config(
        self,
        config: ApiCreditConfigInput,
    ) -> ApiCreditConfig:
        """Create or update the cost rule for (endpoint, method)."""
        if config.credit_cost < 0:
            raise InvalidCreditConfigError(
                f"Credit cost can't be negative: {config.credit_cost}"
            )
        if not config.endpoint:
            raise InvalidCreditConfigError("Endpoint is required")

        method = parse_method(config.method)
        async with self.db.session() as session:
            saved = await upsert_api_credit_config(
                session,
                endpoint=config.endpoint,
                method=method,
                credit_cost=config.credit_cost,
                description=config.description,
                is_enabled=config.is_enabled,
            )

        logfire.info(
            "api_credit_config_saved",
            endpoint=saved.endpoint,
            method=saved.method.value,
            cost=saved.credit_cost,
            enabled=saved.is_enabled,
        )
        return saved

    async def list_api_credit_configs(
        self,
        *,
        include_disabled: bool = False,
    ) -> list[ApiCreditConfig]:
        async with self.db.read_session() as session:
            return await list_api_credit_configs(
                session, include_disabled=include_disabled
            )

    async def seed_default_api_credit_configs(
        self,
        configs: Iterable[ApiCreditConfigInput] = DEFAULT_API_CREDIT_CONFIGS,
    ) -> int:
        """Insert the default price list without touching existing rules.

        Returns:
            Number of rules inserted.
        """
        rows = [
            {
                "endpoint": config.endpoint,
                "method": parse_method(config.method),
                "credit_cost": config.credit_cost,
                "description": config.description,
                "is_enabled": config.is_enabled,
            }
            for config in configs
        ]
        async with self.db.session() as session:
            inserted = await insert_missing_api_credit_configs(session, rows)

        logfire.info("api_credit_configs_seeded", inserted=inserted, total=len(rows))
        return inserted

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _refresh(
        self,
        session: AsyncSession,
        user_id: str,
        now: datetime | None = None,
    ) -> UserCredits:
        """Load the balance inside ``session``, creating or resetting it first."""
        now = now or self.reset_policy.now()

        credits = await get_user_credits_row(session, user_id)
        if credits is None:
            if await create_user_credits(session, user_id, self.daily_credits, now):
                logfire.info(
                    "user_credits_created", user_id=user_id, daily=self.daily_credits
                )
        elif self.reset_policy.is_due(now, credits.last_reset_date):
            if await reset_user_credits(session, credits, now):
                logfire.info(
                    "daily_credits_reset",
                    user_id=user_id,
                    previous_reset=credits.last_reset_date.isoformat(),
                )
        else:
            return credits

        # Someone changed the row (possibly us); read what is stored now
        credits = await get_user_credits_row(session, user_id)
        if credits is None:
            raise RuntimeError(f"Credit balance for user {user_id} vanished")
        return credits


def parse_method(method: HttpMethod | str) -> HttpMethod:
    """Normalize an HTTP method name (case-insensitive)."""
    try:
        return HttpMethod(str(method).upper())
    except ValueError:
        raise InvalidCreditConfigError(f"Unsupported HTTP method: {method}") from None
