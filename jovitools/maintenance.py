"""
Portal Maintenance - scheduled housekeeping for cron.

Usage:
    # Apply pending migrations (--dry-run only reports whether any are pending)
    jovitools-maintenance migrate

    # See how many expired users would be deleted
    jovitools-maintenance purge-expired --dry-run

    # Delete users whose access flag is off
    jovitools-maintenance purge-no-access

    # Refill every coin ledger to the ceiling
    jovitools-maintenance reset-coins

    # Mark active invites past their expiry as expired
    jovitools-maintenance expire-invites
"""

import argparse
import asyncio
import sys

from structlog import get_logger

from jovitools.db.migration_runner import check_migrations_status, run_migrations
from jovitools.db.session import close_engines, get_write_session
from jovitools.observability import log_context, metrics, setup_logging
from jovitools.services.access import AccessService
from jovitools.services.coins import CoinLedgerService
from jovitools.services.invites import InviteService

logger = get_logger(__name__)

COMMANDS = ("migrate", "purge-expired", "purge-no-access", "reset-coins", "expire-invites")


async def run_command(command: str, dry_run: bool = False) -> int:
    """Run one maintenance command. Returns the number of rows affected."""
    if command == "migrate":
        if dry_run:
            status = await asyncio.to_thread(check_migrations_status)
            logger.info(
                "migration_status",
                current=status.current_revision,
                head=status.head_revision,
                pending=status.pending,
            )
            return int(status.pending)
        await asyncio.to_thread(run_migrations)
        return 0

    try:
        async with get_write_session() as session:
            if command == "purge-expired":
                count = await AccessService(session).purge_expired(dry_run=dry_run)
            elif command == "purge-no-access":
                count = await AccessService(session).purge_without_access(dry_run=dry_run)
            elif command == "reset-coins":
                if dry_run:
                    raise ValueError("reset-coins has no dry run")
                count = await CoinLedgerService(session).reset_all()
                metrics.coin_resets_total.inc(count)
            elif command == "expire-invites":
                if dry_run:
                    raise ValueError("expire-invites has no dry run")
                count = await InviteService(session).mark_expired()
            else:
                raise ValueError(f"Unknown command: {command}")
    finally:
        await close_engines()

    logger.info("maintenance_command_complete", command=command, count=count, dry_run=dry_run)
    return count


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="JoviTools portal maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument(
        "--dry-run", action="store_true", help="Count affected rows without changing anything"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        with log_context(command=args.command, dry_run=args.dry_run):
            count = asyncio.run(run_command(args.command, dry_run=args.dry_run))
    except ValueError as e:
        logger.error("maintenance_command_rejected", command=args.command, error=str(e))
        return 2
    except Exception as e:
        logger.error(
            "maintenance_command_failed", command=args.command, error=str(e), exc_info=True
        )
        return 1

    print(f"{args.command}: {count}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
