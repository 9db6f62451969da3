"""Admin application service: season seeding, reset and reconciliation.

Seeding and reset are writes and go through the shared ValuationEngine so
they take the same per-entity locks as settlements and trades.
Reconciliation is read-only.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_common.errors import EntityNotFoundError
from src.tv_engine.engine import ValuationEngine
from src.tv_ledger.domain.models import Entity
from src.tv_ledger.domain.repository import EntityRepositoryProtocol, LedgerStoreProtocol
from src.tv_ledger.domain.timeline import replay_market_cap
from src.tv_ledger.infrastructure.persistence import EntityRepository, LedgerEventStore
from src.tv_market.application.schemas import LedgerEventOut, ValuationOut
from src.tv_valuation.domain.valuation import compute_share_metrics, lifetime_change_percent

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        engine: ValuationEngine,
        store: LedgerStoreProtocol | None = None,
        entities: EntityRepositoryProtocol | None = None,
    ) -> None:
        self._engine = engine
        self._store: LedgerStoreProtocol = store or LedgerEventStore()
        self._entities: EntityRepositoryProtocol = entities or EntityRepository()

    def _valuation(self, entity: Entity) -> dict[str, Any]:
        config = self._engine.config
        price = compute_share_metrics(
            entity.market_cap, entity.shares_outstanding, config.default_launch_price
        ).share_price
        return ValuationOut.from_domain(
            entity,
            share_price=price,
            lifetime_change=lifetime_change_percent(
                price, entity.launch_price, config.percent_epsilon
            ),
        ).model_dump()

    async def seed_entity(
        self,
        db: AsyncSession,
        entity_id: str,
        name: str,
        market_cap: int | None = None,
        shares_outstanding: int | None = None,
        event_date: datetime | None = None,
    ) -> dict[str, Any]:
        entity, event = await self._engine.seed_entity(
            db,
            entity_id,
            name,
            market_cap=market_cap,
            shares_outstanding=shares_outstanding,
            event_date=event_date,
        )
        return {
            "entity": self._valuation(entity),
            "initial_event": LedgerEventOut.from_domain(event).model_dump(),
        }

    async def reset_entity(
        self,
        db: AsyncSession,
        entity_id: str,
        market_cap: int | None = None,
        shares_outstanding: int | None = None,
    ) -> dict[str, Any]:
        entity, event, removed = await self._engine.reset_entity(
            db, entity_id, market_cap=market_cap, shares_outstanding=shares_outstanding
        )
        return {
            "entity": self._valuation(entity),
            "initial_event": LedgerEventOut.from_domain(event).model_dump(),
            "events_removed": removed,
        }

    async def reconcile_entity(self, db: AsyncSession, entity_id: str) -> dict[str, Any]:
        """Replay the ledger and compare against the cached snapshot."""
        entity = await self._entities.get(db, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        events = [e async for e in self._store.query(db, entity_id)]
        replayed = replay_market_cap(events, entity_id)
        drift = entity.market_cap - replayed
        if drift:
            logger.warning(
                "Snapshot drift for %s: cached=%d replayed=%d (drift %+d)",
                entity_id, entity.market_cap, replayed, drift,
            )
        else:
            logger.debug("Snapshot for %s matches ledger replay (%d)", entity_id, replayed)
        return {
            "entity_id": entity_id,
            "cached_market_cap_cents": entity.market_cap,
            "replayed_market_cap_cents": replayed,
            "drift_cents": drift,
            "consistent": drift == 0,
            "event_count": len(events),
        }
