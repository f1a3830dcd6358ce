"""Admin entry point for the credit ledger.

Usage:
    python -m creditledger status <user_id>
    python -m creditledger grant <user_id> <amount> [--reason TEXT]
    python -m creditledger history <user_id> [--limit N] [--offset N]
    python -m creditledger refund <transaction_id> [--reason TEXT]
    python -m creditledger config list [--all]
    python -m creditledger config set <method> <endpoint> <cost> [--description TEXT] [--disabled]
    python -m creditledger seed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from uuid import UUID

import logfire

from creditledger.config import settings
from creditledger.credits import (
    ApiCreditConfigInput,
    CreditError,
    CreditService,
)
from creditledger.db import DatabaseManager

logger = logging.getLogger("creditledger")


def configure_logging() -> None:
    logfire.configure(
        token=settings.logfire_token,
        service_name=settings.app_name,
        environment=settings.environment,
        send_to_logfire="if-token-present",
        console=False,
    )
    logfire.instrument_pydantic(record="failure")

    logging.basicConfig(
        level=logging.INFO if settings.is_dev else logging.WARNING,
        format="[%(asctime)s][%(name)s][%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logfire.LogfireLoggingHandler(),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="creditledger", description=__doc__.split("\n")[0])
    commands = parser.add_subparsers(dest="command", required=True)

    status = commands.add_parser("status", help="Show a user's balance")
    status.add_argument("user_id")

    grant = commands.add_parser("grant", help="Grant bonus credits to a user")
    grant.add_argument("user_id")
    grant.add_argument("amount", type=int)
    grant.add_argument("--reason")

    history = commands.add_parser("history", help="Show a user's transactions")
    history.add_argument("user_id")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--offset", type=int, default=0)

    refund = commands.add_parser("refund", help="Refund an API call spend")
    refund.add_argument("transaction_id", type=UUID)
    refund.add_argument("--reason")

    config = commands.add_parser("config", help="Manage endpoint prices")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    config_list = config_commands.add_parser("list")
    config_list.add_argument("--all", action="store_true", help="Include disabled rules")
    config_set = config_commands.add_parser("set")
    config_set.add_argument("method")
    config_set.add_argument("endpoint")
    config_set.add_argument("cost", type=int)
    config_set.add_argument("--description")
    config_set.add_argument("--disabled", action="store_true")

    commands.add_parser("seed", help="Insert the default price list")

    return parser


async def run(args: argparse.Namespace, service: CreditService) -> None:
    match args.command:
        case "status":
            credits = await service.get_user_credits(args.user_id)
            print(
                f"{credits.user_id}: {credits.remaining_credits} remaining "
                f"({credits.used_credits}/{credits.daily_credits} used today, "
                f"{credits.bonus_credits} bonus), last reset {credits.last_reset_date:%Y-%m-%d %H:%M}"
            )
        case "grant":
            transaction = await service.grant_credits(args.user_id, args.amount, args.reason)
            print(
                f"Granted {args.amount} credits to {args.user_id}. "
                f"New balance: {transaction.balance_after}"
            )
        case "history":
            for transaction in await service.get_credit_history(
                args.user_id, args.limit, args.offset
            ):
                print(
                    f"{transaction.created_at:%Y-%m-%d %H:%M:%S} "
                    f"{transaction.operation_type:<12} {transaction.credit_cost:>+6} "
                    f"{transaction.balance_after:>6}  {transaction.api_endpoint}"
                )
        case "refund":
            transaction = await service.refund_credits(args.transaction_id, args.reason)
            print(f"Refunded {transaction.credit_cost} credits to {transaction.user_id}")
        case "config" if args.config_command == "list":
            for config in await service.list_api_credit_configs(include_disabled=args.all):
                state = "" if config.is_enabled else " (disabled)"
                print(f"{config.key:<50} {config.credit_cost:>5}{state}")
        case "config":
            config = await service.upsert_api_credit_config(
                ApiCreditConfigInput(
                    endpoint=args.endpoint,
                    method=args.method,
                    credit_cost=args.cost,
                    description=args.description,
                    is_enabled=not args.disabled,
                )
            )
            print(f"Saved {config.key}: {config.credit_cost} credits")
        case "seed":
            inserted = await service.seed_default_api_credit_configs()
            print(f"Inserted {inserted} default price rules")


async def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    db = DatabaseManager(settings.database_url, echo=False)
    service = CreditService.from_settings(db, settings)
    try:
        await run(args, service)
    except (CreditError, ValueError) as exc:
        logger.warning("Command failed: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await db.disconnect()
    return 0


def cli() -> None:
    configure_logging()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
