"""ValuationQueryService — read-only views over snapshots and the ledger.

No commit/rollback: the caller (router) passes the db session and every
method only reads. Timelines and point-in-time states are reduced from the
ledger on each call; current valuations come from the snapshot cache.
"""

from collections import defaultdict
from contextlib import aclosing
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.tv_common.datetime_utils import as_utc, utc_now
from src.tv_common.enums import MATCH_EVENT_TYPES
from src.tv_common.errors import EntityNotFoundError
from src.tv_ledger.domain.models import Entity, LedgerEvent
from src.tv_ledger.domain.repository import EntityRepositoryProtocol, LedgerStoreProtocol
from src.tv_ledger.domain.timeline import dedupe_events, reconstruct, state_at, visible_events
from src.tv_ledger.infrastructure.persistence import EntityRepository, LedgerEventStore
from src.tv_market.application.schemas import (
    EntityStateOut,
    LedgerEventOut,
    PortfolioResponse,
    PositionOut,
    PricePointOut,
    TimelineResponse,
    TransactionListResponse,
    ValuationListResponse,
    ValuationOut,
)
from src.tv_valuation.domain.positions import aggregate_position, summarize_portfolio
from src.tv_valuation.domain.valuation import (
    compute_share_metrics,
    lifetime_change_percent,
    matchday_change_percent,
)


class ValuationQueryService:
    def __init__(
        self,
        store: LedgerStoreProtocol | None = None,
        entities: EntityRepositoryProtocol | None = None,
        default_price: int | None = None,
        epsilon: Decimal | None = None,
    ) -> None:
        self._store: LedgerStoreProtocol = store or LedgerEventStore()
        self._entities: EntityRepositoryProtocol = entities or EntityRepository()
        self._default_price = (
            settings.DEFAULT_LAUNCH_PRICE_CENTS if default_price is None else default_price
        )
        self._epsilon = settings.PERCENT_EPSILON if epsilon is None else epsilon

    async def _require_entity(self, db: AsyncSession, entity_id: str) -> Entity:
        entity = await self._entities.get(db, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    def _share_price(self, entity: Entity) -> int:
        return compute_share_metrics(
            entity.market_cap, entity.shares_outstanding, self._default_price
        ).share_price

    async def _collect(
        self,
        db: AsyncSession,
        entity_id: str,
        to_date: datetime | None = None,
    ) -> list[LedgerEvent]:
        return [e async for e in self._store.query(db, entity_id, to_date=to_date)]

    async def _last_match(self, db: AsyncSession, entity_id: str) -> LedgerEvent | None:
        newest_first = self._store.query(
            db, entity_id, event_types=MATCH_EVENT_TYPES, to_date=utc_now(), order="desc"
        )
        async with aclosing(newest_first) as events:  # type: ignore[type-var]
            async for event in events:
                return event
        return None

    # ------------------------------------------------------------------
    # Valuations
    # ------------------------------------------------------------------

    async def get_current_valuation(self, db: AsyncSession, entity_id: str) -> ValuationOut:
        entity = await self._require_entity(db, entity_id)
        price = self._share_price(entity)
        last_match = await self._last_match(db, entity_id)
        matchday = None
        if last_match is not None:
            matchday = matchday_change_percent(
                last_match.share_price_after, last_match.share_price_before, self._epsilon
            )
        return ValuationOut.from_domain(
            entity,
            share_price=price,
            lifetime_change=lifetime_change_percent(price, entity.launch_price, self._epsilon),
            matchday_change=matchday,
        )

    async def list_valuations(self, db: AsyncSession) -> ValuationListResponse:
        """All entities, largest market cap first."""
        items = []
        for entity in await self._entities.list_all(db):
            price = self._share_price(entity)
            items.append(
                ValuationOut.from_domain(
                    entity,
                    share_price=price,
                    lifetime_change=lifetime_change_percent(
                        price, entity.launch_price, self._epsilon
                    ),
                )
            )
        return ValuationListResponse(items=items)

    # ------------------------------------------------------------------
    # Ledger reductions
    # ------------------------------------------------------------------

    async def get_timeline(
        self,
        db: AsyncSession,
        entity_id: str,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> TimelineResponse:
        """Price history since the latest initial_state, optionally windowed.

        The window is applied after reconstruction so change percentages are
        always relative to the true previous point, not the window edge.
        """
        await self._require_entity(db, entity_id)
        now = utc_now() if to_date is None else min(as_utc(to_date), utc_now())
        points = reconstruct(
            await self._collect(db, entity_id, now), entity_id, now,
            self._default_price, self._epsilon,
        )
        if from_date is not None:
            start = as_utc(from_date)
            points = [p for p in points if as_utc(p.event_date) >= start]
        return TimelineResponse(
            entity_id=entity_id,
            points=[PricePointOut.from_domain(p) for p in points],
        )

    async def get_state_at(
        self, db: AsyncSession, entity_id: str, at: datetime
    ) -> EntityStateOut:
        await self._require_entity(db, entity_id)
        cutoff = min(as_utc(at), utc_now())
        events = await self._collect(db, entity_id, cutoff)
        return EntityStateOut.from_domain(
            state_at(events, entity_id, cutoff, self._default_price)
        )

    # ------------------------------------------------------------------
    # Holdings
    # ------------------------------------------------------------------

    async def _holder_trades(
        self, db: AsyncSession, holder_id: str, entity_id: str | None = None
    ) -> list[LedgerEvent]:
        trades = await self._store.list_holder_trades(db, holder_id, entity_id)
        return visible_events(dedupe_events(trades), utc_now())

    async def get_position(
        self, db: AsyncSession, holder_id: str, entity_id: str
    ) -> PositionOut:
        entity = await self._require_entity(db, entity_id)
        position = aggregate_position(
            holder_id,
            entity_id,
            await self._holder_trades(db, holder_id, entity_id),
            current_share_price=self._share_price(entity),
            epsilon=self._epsilon,
        )
        return PositionOut.from_domain(position)

    async def get_portfolio(self, db: AsyncSession, holder_id: str) -> PortfolioResponse:
        by_entity: dict[str, list[LedgerEvent]] = defaultdict(list)
        for trade in await self._holder_trades(db, holder_id):
            by_entity[trade.entity_id].append(trade)

        positions = []
        for entity_id in sorted(by_entity):
            entity = await self._entities.get(db, entity_id)
            # reset deletes trades along with the ledger; None means no snapshot row
            price = self._share_price(entity) if entity is not None else 0
            positions.append(
                aggregate_position(
                    holder_id, entity_id, by_entity[entity_id], price, self._epsilon
                )
            )
        return PortfolioResponse.from_domain(
            summarize_portfolio(holder_id, positions, self._epsilon)
        )

    async def get_transactions_by_holder_and_entity(
        self, db: AsyncSession, holder_id: str, entity_id: str
    ) -> TransactionListResponse:
        """The holder's trades in one entity, newest first."""
        await self._require_entity(db, entity_id)
        trades = await self._holder_trades(db, holder_id, entity_id)
        return TransactionListResponse(
            holder_id=holder_id,
            entity_id=entity_id,
            items=[LedgerEventOut.from_domain(e) for e in reversed(trades)],
        )
