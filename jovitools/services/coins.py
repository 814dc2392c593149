"""
Coin Ledger Service - per-user AI generation credits.

Each profile has one counter restored to the ceiling once the reset period
has elapsed since the last reset. Every mutation is a single conditional
statement (INSERT ... ON CONFLICT DO NOTHING / UPDATE ... WHERE ... RETURNING),
so concurrent requests from the same user can never drive the counter below
zero or double-initialize it.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import ColumnElement, case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.config import settings
from jovitools.db.models import CoinLedger
from jovitools.models.domain import DeductionResult
from jovitools.observability.metrics import metrics
from jovitools.observability.tracing import trace_operation

logger = get_logger(__name__)

INSUFFICIENT_COINS_MESSAGE = "insufficient coins"
DEDUCTED_MESSAGE = "coin deducted"

# Display thresholds
LOW_COINS = 5
CRITICAL_COINS = 2


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class CoinLedgerService:
    """Coin ledger operations - all atomic at the database."""

    def __init__(
        self,
        session: AsyncSession,
        ceiling: int | None = None,
        reset_period: timedelta | None = None,
    ) -> None:
        self.session = session
        self.ceiling = ceiling if ceiling is not None else settings.coins_ceiling
        self.reset_period = reset_period or timedelta(hours=settings.coins_reset_period_hours)

    def _reset_due(self, now: datetime) -> ColumnElement[bool]:
        return CoinLedger.last_reset_at <= now - self.reset_period

    async def get_or_init_coins(self, profile_id: UUID) -> int:
        """Read the counter, creating it at the ceiling if absent."""
        await self._ensure_ledger(profile_id, _utc_now())
        coins = await self._read_coins(profile_id)
        await self.session.commit()
        return coins

    async def check_and_reset_if_due(self, profile_id: UUID, now: datetime | None = None) -> int:
        """
        Return the current balance, restoring it to the ceiling first when the
        reset period has elapsed. Never charges.
        """
        now = now or _utc_now()
        created = await self._ensure_ledger(profile_id, now)
        if created is not None:
            await self.session.commit()
            return created

        stmt = (
            update(CoinLedger)
            .where(CoinLedger.profile_id == profile_id, self._reset_due(now))
            .values(coins=self.ceiling, last_reset_at=now)
            .returning(CoinLedger.coins)
        )
        reset_to = (await self.session.execute(stmt)).scalar_one_or_none()
        if reset_to is not None:
            metrics.coin_resets_total.inc()
            logger.info("coins_reset", profile_id=str(profile_id), coins=reset_to)
            coins = reset_to
        else:
            coins = await self._read_coins(profile_id)

        await self.session.commit()
        return coins

    async def deduct_one(self, profile_id: UUID, now: datetime | None = None) -> DeductionResult:
        """
        Charge one coin.

        One UPDATE both applies a due reset and decrements, and only matches
        when a reset is due or coins > 0. A concurrent request that finds the
        counter already at zero matches no row and is refused.
        """
        now = now or _utc_now()
        with trace_operation("coin_deduction", profile_id=profile_id) as span:
            remaining = await self._conditional_decrement(profile_id, now)

            if remaining is None:
                # No ledger yet, or it was empty. A concurrent first use may have
                # created the row after our UPDATE, so retry once either way.
                await self._ensure_ledger(profile_id, now)
                remaining = await self._conditional_decrement(profile_id, now)

            if remaining is None:
                current = await self._read_coins(profile_id)
                await self.session.commit()
                metrics.record_coin_deduction(success=False)
                span.set_attribute("success", False)
                logger.info("coin_deduction_refused", profile_id=str(profile_id), coins=current)
                return DeductionResult(
                    success=False,
                    remaining_coins=current,
                    message=INSUFFICIENT_COINS_MESSAGE,
                )

            await self.session.commit()
            metrics.record_coin_deduction(success=True)
            span.set_attribute("success", True)
            logger.info("coin_deducted", profile_id=str(profile_id), remaining=remaining)
            return DeductionResult(
                success=True, remaining_coins=remaining, message=DEDUCTED_MESSAGE
            )

    async def refund_one(self, profile_id: UUID) -> int:
        """Give back one coin after a failed billable action, capped at the ceiling."""
        stmt = (
            update(CoinLedger)
            .where(CoinLedger.profile_id == profile_id)
            .values(coins=func.least(CoinLedger.coins + 1, self.ceiling))
            .returning(CoinLedger.coins)
        )
        coins = (await self.session.execute(stmt)).scalar_one_or_none()
        await self.session.commit()
        logger.info("coin_refunded", profile_id=str(profile_id), coins=coins)
        return coins if coins is not None else 0

    async def reset_all(self, now: datetime | None = None) -> int:
        """Restore every ledger to the ceiling. Returns the number of ledgers touched."""
        now = now or _utc_now()
        result = await self.session.execute(
            update(CoinLedger).values(coins=self.ceiling, last_reset_at=now)
        )
        await self.session.commit()
        logger.info("coins_reset_all", count=result.rowcount, coins=self.ceiling)
        return result.rowcount

    async def peek(self, profile_id: UUID) -> int | None:
        """Current stored balance without creating or resetting anything."""
        result = await self.session.execute(
            select(CoinLedger.coins).where(CoinLedger.profile_id == profile_id)
        )
        return result.scalar_one_or_none()

    def is_low(self, coins: int) -> bool:
        return coins <= LOW_COINS

    def is_critical(self, coins: int) -> bool:
        return coins <= CRITICAL_COINS

    async def _conditional_decrement(self, profile_id: UUID, now: datetime) -> int | None:
        due = self._reset_due(now)
        stmt = (
            update(CoinLedger)
            .where(CoinLedger.profile_id == profile_id, or_(due, CoinLedger.coins > 0))
            .values(
                coins=case((due, self.ceiling - 1), else_=CoinLedger.coins - 1),
                last_reset_at=case((due, now), else_=CoinLedger.last_reset_at),
            )
            .returning(CoinLedger.coins)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _ensure_ledger(self, profile_id: UUID, now: datetime) -> int | None:
        """Insert the ledger at the ceiling if absent. Returns the coins when it was created."""
        stmt = (
            pg_insert(CoinLedger)
            .values(profile_id=profile_id, coins=self.ceiling, last_reset_at=now)
            .on_conflict_do_nothing(index_elements=[CoinLedger.profile_id])
            .returning(CoinLedger.coins)
        )
        created = (await self.session.execute(stmt)).scalar_one_or_none()
        if created is not None:
            logger.info("coin_ledger_created", profile_id=str(profile_id), coins=created)
        return created

    async def _read_coins(self, profile_id: UUID) -> int:
        result = await self.session.execute(
            select(CoinLedger.coins).where(CoinLedger.profile_id == profile_id)
        )
        return result.scalar_one()
