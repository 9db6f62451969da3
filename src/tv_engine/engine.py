"""ValuationEngine — stateful orchestrator for every write to an entity's valuation.

Each mutation is one read-then-write transaction against the entity row:
  1. per-entity asyncio.Lock (in-process serialization)
  2. SELECT ... FOR UPDATE on the entity row(s)
  3. pure planning (settlement / trade algorithms)
  4. append ledger event(s), compare-and-swap the cached market cap
  5. commit, or roll back everything

Lost races (CAS miss, serialization failure, deadlock, unique-trigger clash)
are retried with exponential backoff; only exhaustion reaches the caller.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack, aclosing, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, settings
from src.tv_common.datetime_utils import as_utc, utc_now
from src.tv_common.enums import (
    MATCH_EVENT_TYPES,
    TRADE_EVENT_TYPES,
    LedgerEventType,
    SettlementStatus,
    TransferBasis,
)
from src.tv_common.errors import (
    ConcurrencyConflictError,
    ConflictError,
    EntityNotFoundError,
    InternalError,
    InvalidMatchError,
    InvalidTradeDateError,
    MissingValuationError,
)
from src.tv_ledger.domain.models import Entity, LedgerEvent, NewLedgerEvent
from src.tv_ledger.domain.repository import EntityRepositoryProtocol, LedgerStoreProtocol
from src.tv_ledger.domain.timeline import dedupe_events
from src.tv_ledger.infrastructure.persistence import EntityRepository, LedgerEventStore
from src.tv_valuation.domain.positions import aggregate_position
from src.tv_valuation.domain.settlement import MatchResult, plan_match_settlement
from src.tv_valuation.domain.trade import TradeOrder, plan_trade
from src.tv_valuation.domain.valuation import compute_share_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure and deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


@dataclass(frozen=True)
class EngineConfig:
    transfer_rate_bps: int = 1000
    transfer_basis: TransferBasis = TransferBasis.LOSER
    min_market_cap: int = 1000
    default_shares_outstanding: int = 1000
    default_launch_price: int = 2000
    max_order_quantity: int = 10_000
    price_tolerance: int | None = None
    percent_epsilon: Decimal = Decimal("0.01")
    max_retries: int = 3
    backoff_seconds: float = 0.05

    @classmethod
    def from_settings(cls, s: Settings) -> "EngineConfig":
        return cls(
            transfer_rate_bps=s.MATCH_TRANSFER_RATE_BPS,
            transfer_basis=TransferBasis(s.MATCH_TRANSFER_BASIS),
            min_market_cap=s.MIN_MARKET_CAP_CENTS,
            default_shares_outstanding=s.DEFAULT_SHARES_OUTSTANDING,
            default_launch_price=s.DEFAULT_LAUNCH_PRICE_CENTS,
            max_order_quantity=s.MAX_ORDER_QUANTITY,
            price_tolerance=s.TRADE_PRICE_TOLERANCE_CENTS,
            percent_epsilon=s.PERCENT_EPSILON,
            max_retries=s.CONCURRENCY_MAX_RETRIES,
            backoff_seconds=s.CONCURRENCY_BACKOFF_SECONDS,
        )


@dataclass(frozen=True)
class SettlementOutcome:
    status: SettlementStatus
    match_id: str
    transfer: int
    home_event: LedgerEvent
    away_event: LedgerEvent


@dataclass(frozen=True)
class TradeOutcome:
    status: SettlementStatus
    event: LedgerEvent


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class ValuationEngine:
    def __init__(
        self,
        store: LedgerStoreProtocol | None = None,
        entities: EntityRepositoryProtocol | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._store: LedgerStoreProtocol = store or LedgerEventStore()
        self._entities: EntityRepositoryProtocol = entities or EntityRepository()
        self._config = config or EngineConfig.from_settings(settings)
        self._entity_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, entity_ids: list[str]) -> AsyncIterator[None]:
        """Acquire per-entity locks in sorted order so two-sided writes never deadlock."""
        async with AsyncExitStack() as stack:
            for entity_id in sorted(set(entity_ids)):
                await stack.enter_async_context(self._entity_locks[entity_id])
            yield

    async def _run_in_transaction(
        self,
        db: AsyncSession,
        operation: Callable[[], Awaitable[T]],
        label: str,
    ) -> T:
        attempt = 0
        while True:
            try:
                result = await operation()
                await db.commit()
                return result
            except ConcurrencyConflictError as exc:
                await db.rollback()
                reason = exc.message
            except DBAPIError as exc:
                await db.rollback()
                if _sqlstate(exc) not in _RETRYABLE_SQLSTATES:
                    raise
                reason = f"sqlstate {_sqlstate(exc)}"
            except BaseException:
                # Includes CancelledError: nothing is committed before the final commit
                await db.rollback()
                raise

            if attempt >= self._config.max_retries:
                logger.error("%s: gave up after %d retries (%s)", label, attempt, reason)
                raise ConcurrencyConflictError(
                    f"{label} could not be applied after {attempt + 1} attempts: {reason}"
                )
            delay = self._config.backoff_seconds * (2**attempt)
            attempt += 1
            logger.warning(
                "%s: concurrency conflict (%s), retry %d/%d in %.3fs",
                label, reason, attempt, self._config.max_retries, delay,
            )
            await asyncio.sleep(delay)

    async def _lock_entity(self, db: AsyncSession, entity_id: str) -> Entity:
        entity = await self._entities.get_for_update(db, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    async def _apply(self, db: AsyncSession, entity: Entity, event: NewLedgerEvent) -> LedgerEvent:
        """Append one event and move the cached snapshot to its market_cap_after."""
        if event.market_cap_before != entity.market_cap:
            raise InternalError(
                f"Event for {entity.id} computed against stale cap "
                f"{event.market_cap_before} != {entity.market_cap}"
            )
        appended = await self._store.append(db, event)
        await self._entities.update_market_cap(db, entity, event.market_cap_after)
        return appended

    async def _season_start(self, db: AsyncSession, entity_id: str) -> datetime | None:
        """event_date of the latest initial_state, where every replay begins."""
        newest_first = self._store.query(
            db, entity_id, event_types={LedgerEventType.INITIAL_STATE}, order="desc"
        )
        async with aclosing(newest_first) as events:  # type: ignore[type-var]
            async for event in events:
                return event.event_date
        return None

    async def _predates_season(
        self, db: AsyncSession, entity_id: str, event_date: datetime
    ) -> bool:
        start = await self._season_start(db, entity_id)
        return start is not None and as_utc(event_date) < as_utc(start)

    # ------------------------------------------------------------------
    # Season seeding
    # ------------------------------------------------------------------

    async def seed_entity(
        self,
        db: AsyncSession,
        entity_id: str,
        name: str,
        market_cap: int | None = None,
        shares_outstanding: int | None = None,
        event_date: datetime | None = None,
    ) -> tuple[Entity, LedgerEvent]:
        """Create an entity together with its initial_state event."""
        shares = (
            self._config.default_shares_outstanding
            if shares_outstanding is None
            else shares_outstanding
        )
        if shares < 0:
            raise ValueError(f"shares_outstanding must be >= 0, got {shares}")
        cap = self._config.default_launch_price * shares if market_cap is None else market_cap
        if cap < 0:
            raise ValueError(f"market_cap must be >= 0, got {cap}")
        metrics = compute_share_metrics(cap, shares, self._config.default_launch_price)

        async def _seed() -> tuple[Entity, LedgerEvent]:
            entity = await self._entities.create(
                db,
                Entity(
                    id=entity_id,
                    name=name,
                    shares_outstanding=shares,
                    market_cap=cap,
                    initial_market_cap=cap,
                    launch_price=metrics.share_price,
                ),
            )
            event = await self._store.append(db, self._initial_event(entity, event_date))
            return entity, event

        async with self._locked([entity_id]):
            entity, event = await self._run_in_transaction(db, _seed, f"seed {entity_id}")
        logger.info(
            "Seeded entity %s: cap=%d shares=%d price=%d",
            entity_id, cap, shares, metrics.share_price,
        )
        return entity, event

    def _initial_event(self, entity: Entity, event_date: datetime | None) -> NewLedgerEvent:
        metrics = compute_share_metrics(
            entity.market_cap, entity.shares_outstanding, self._config.default_launch_price
        )
        return NewLedgerEvent(
            entity_id=entity.id,
            event_type=LedgerEventType.INITIAL_STATE,
            trigger_event_id=None,
            trigger_event_type=None,
            event_date=event_date or utc_now(),
            market_cap_before=entity.market_cap,
            market_cap_after=entity.market_cap,
            share_price_before=metrics.share_price,
            share_price_after=metrics.share_price,
            shares_outstanding=entity.shares_outstanding,
            description=f"Initial state for {entity.name}",
        )

    # ------------------------------------------------------------------
    # Match settlement
    # ------------------------------------------------------------------

    async def settle_match(self, db: AsyncSession, match: MatchResult) -> SettlementOutcome:
        """Apply a concluded match to both clubs atomically; idempotent per match id."""
        if as_utc(match.event_date) > utc_now():
            raise InvalidMatchError(f"{match.match_id} is dated in the future")

        async def _settle() -> SettlementOutcome:
            participants = {match.home_entity_id, match.away_entity_id}
            existing = [
                e
                for e in await self._store.find_by_trigger(db, match.match_id, MATCH_EVENT_TYPES)
                if e.entity_id in participants
            ]
            if existing:
                return self._already_settled(match, dedupe_events(existing))

            locked: dict[str, Entity | None] = {}
            for entity_id in sorted(participants):
                locked[entity_id] = await self._entities.get_for_update(db, entity_id)
            plan = plan_match_settlement(
                match,
                locked[match.home_entity_id],
                locked[match.away_entity_id],
                rate_bps=self._config.transfer_rate_bps,
                min_market_cap=self._config.min_market_cap,
                default_price=self._config.default_launch_price,
                basis=self._config.transfer_basis,
            )
            for entity_id in sorted(participants):
                if await self._predates_season(db, entity_id, match.event_date):
                    raise InvalidMatchError(
                        f"{match.match_id} predates the current valuation of {entity_id}"
                    )
            try:
                home_event = await self._apply(
                    db, locked[match.home_entity_id], plan.home_event  # type: ignore[arg-type]
                )
                away_event = await self._apply(
                    db, locked[match.away_entity_id], plan.away_event  # type: ignore[arg-type]
                )
            except ConflictError as exc:
                # Another settlement of this match committed first; re-read on retry
                raise ConcurrencyConflictError(exc.message) from exc
            return SettlementOutcome(
                status=SettlementStatus.APPLIED,
                match_id=match.match_id,
                transfer=plan.transfer,
                home_event=home_event,
                away_event=away_event,
            )

        label = f"settle match {match.match_id}"
        async with self._locked([match.home_entity_id, match.away_entity_id]):
            outcome = await self._run_in_transaction(db, _settle, label)

        if outcome.status == SettlementStatus.APPLIED:
            logger.info(
                "Settled match %s (%s): %s %+d, %s %+d",
                match.match_id,
                match.outcome.value,
                match.home_entity_id,
                outcome.home_event.price_impact,
                match.away_entity_id,
                outcome.away_event.price_impact,
            )
        else:
            logger.warning("Match %s already settled; returning existing events", match.match_id)
        return outcome

    def _already_settled(
        self, match: MatchResult, existing: list[LedgerEvent]
    ) -> SettlementOutcome:
        by_entity = {e.entity_id: e for e in existing}
        home = by_entity.get(match.home_entity_id)
        away = by_entity.get(match.away_entity_id)
        if home is None or away is None:
            logger.error(
                "Match %s has a one-sided settlement: %s", match.match_id, sorted(by_entity)
            )
            raise InternalError(f"Match {match.match_id} is only partially settled")
        return SettlementOutcome(
            status=SettlementStatus.ALREADY_APPLIED,
            match_id=match.match_id,
            transfer=max(home.price_impact, away.price_impact),
            home_event=home,
            away_event=away,
        )

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    async def execute_trade(self, db: AsyncSession, order: TradeOrder) -> TradeOutcome:
        """Apply one validated buy/sell order; replaying the same order id is a no-op."""
        if as_utc(order.event_date) > utc_now():
            raise InvalidTradeDateError(f"{order.order_id} is dated in the future")

        async def _trade() -> TradeOutcome:
            entity = await self._lock_entity(db, order.entity_id)
            previous = [
                e
                for e in await self._store.find_by_trigger(db, order.order_id, TRADE_EVENT_TYPES)
                if e.entity_id == order.entity_id
            ]
            if previous:
                return TradeOutcome(SettlementStatus.ALREADY_APPLIED, previous[-1])
            if await self._predates_season(db, order.entity_id, order.event_date):
                raise InvalidTradeDateError(
                    f"{order.order_id} predates the current valuation of {order.entity_id}"
                )

            held = aggregate_position(
                order.holder_id,
                order.entity_id,
                dedupe_events(
                    await self._store.list_holder_trades(db, order.holder_id, order.entity_id)
                ),
                current_share_price=0,
            ).quantity
            event = plan_trade(
                order,
                entity,
                held_quantity=held,
                max_order_quantity=self._config.max_order_quantity,
                default_price=self._config.default_launch_price,
                price_tolerance=self._config.price_tolerance,
            )
            return TradeOutcome(SettlementStatus.APPLIED, await self._apply(db, entity, event))

        label = f"{order.side.value} order {order.order_id}"
        async with self._locked([order.entity_id]):
            outcome = await self._run_in_transaction(db, _trade, label)

        if outcome.status == SettlementStatus.APPLIED:
            logger.info(
                "Executed %s: %s %d x %d on %s, cap %d -> %d",
                order.order_id,
                order.side.value,
                order.quantity,
                order.price_per_share,
                order.entity_id,
                outcome.event.market_cap_before,
                outcome.event.market_cap_after,
            )
        else:
            logger.warning("Order %s already executed; returning existing event", order.order_id)
        return outcome

    # ------------------------------------------------------------------
    # Administrative reset
    # ------------------------------------------------------------------

    async def reset_entity(
        self,
        db: AsyncSession,
        entity_id: str,
        market_cap: int | None = None,
        shares_outstanding: int | None = None,
    ) -> tuple[Entity, LedgerEvent, int]:
        """Truncate an entity's ledger and re-seed initial_state.

        The only path that deletes ledger rows or changes shares_outstanding.
        Returns (entity, initial event, number of rows removed).
        """

        async def _reset() -> tuple[Entity, LedgerEvent, int]:
            entity = await self._lock_entity(db, entity_id)
            shares = entity.shares_outstanding if shares_outstanding is None else shares_outstanding
            cap = entity.initial_market_cap if market_cap is None else market_cap
            if shares < 0 or cap < 0:
                raise ValueError("market_cap and shares_outstanding must be >= 0")
            removed = await self._store.truncate(db, entity_id)
            launch = compute_share_metrics(cap, shares, self._config.default_launch_price)
            entity = await self._entities.reset(
                db, entity, market_cap=cap, shares_outstanding=shares,
                launch_price=launch.share_price,
            )
            event = await self._store.append(db, self._initial_event(entity, None))
            return entity, event, removed

        async with self._locked([entity_id]):
            entity, event, removed = await self._run_in_transaction(
                db, _reset, f"reset {entity_id}"
            )
        logger.warning(
            "Reset entity %s: removed %d ledger rows, cap=%d shares=%d",
            entity_id, removed, entity.market_cap, entity.shares_outstanding,
        )
        return entity, event, removed

    async def require_valuation(self, db: AsyncSession, entity_id: str) -> Entity:
        """Current snapshot of an entity, or MissingValuationError."""
        entity = await self._entities.get(db, entity_id)
        if entity is None:
            raise MissingValuationError(entity_id)
        return entity
