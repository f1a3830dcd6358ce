"""Queries for API credit cost rules."""

from __future__ import annotations

import logfire
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.models import ApiCreditConfig, HttpMethod


async def get_api_credit_config(
    session: AsyncSession,
    endpoint: str,
    method: HttpMethod,
) -> ApiCreditConfig | None:
    """Get the enabled rule for an endpoint, if any."""
    result = await session.execute(
        select(ApiCreditConfig).where(
            ApiCreditConfig.endpoint == endpoint,
            ApiCreditConfig.method == method,
            ApiCreditConfig.is_enabled.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def list_api_credit_configs(
    session: AsyncSession,
    *,
    include_disabled: bool = False,
) -> list[ApiCreditConfig]:
    stmt = select(ApiCreditConfig).order_by(
        ApiCreditConfig.endpoint, ApiCreditConfig.method
    )
    if not include_disabled:
        stmt = stmt.where(ApiCreditConfig.is_enabled.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_api_credit_config(
    session: AsyncSession,
    *,
    endpoint: str,
    method: HttpMethod,
    credit_cost: int,
    description: str | None,
    is_enabled: bool,
) -> ApiCreditConfig:
    """Create the rule or update cost, description and flag in place.

    A single INSERT .. ON CONFLICT keeps (endpoint, method) unique even when
    two admins save the same rule at once.
    """
    with logfire.span(
        "db.upsert_api_credit_config",
        endpoint=endpoint,
        method=method.value,
        cost=credit_cost,
        enabled=is_enabled,
    ):
        stmt = insert(ApiCreditConfig).values(
            endpoint=endpoint,
            method=method,
            credit_cost=credit_cost,
            description=description,
            is_enabled=is_enabled,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_api_credit_configs_endpoint_method",
            set_={
                "credit_cost": stmt.excluded.credit_cost,
                "description": stmt.excluded.description,
                "is_enabled": stmt.excluded.is_enabled,
                "updated_at": func.now(),
            },
        ).returning(ApiCreditConfig)

        result = await session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()


async def insert_missing_api_credit_configs(
    session: AsyncSession,
    configs: list[dict],
) -> int:
    """Insert rules that don't exist yet, leaving existing ones untouched.

    Returns:
        Number of rules inserted.
    """
    if not configs:
        return 0

    result = await session.execute(
        insert(ApiCreditConfig)
        .values(configs)
        .on_conflict_do_nothing(constraint="uq_api_credit_configs_endpoint_method")
        .returning(ApiCreditConfig.id)
    )
    return len(result.scalars().all())
