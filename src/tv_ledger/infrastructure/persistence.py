"""LedgerEventStore and EntityRepository — concrete implementations of the Protocols.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.

Transaction ownership: the CALLER (ValuationEngine or an application service)
starts and commits the transaction. Nothing here commits.
"""

from collections.abc import AsyncIterator, Collection
from datetime import datetime
from typing import Literal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_common.enums import (
    TRADE_EVENT_TYPES,
    UNIQUE_TRIGGER_EVENT_TYPES,
    LedgerEventType,
    TriggerEventType,
)
from src.tv_common.errors import ConcurrencyConflictError, ConflictError, EntityExistsError
from src.tv_ledger.domain.models import Entity, LedgerEvent, NewLedgerEvent

# ---------------------------------------------------------------------------
# SQL: ledger_events
# ---------------------------------------------------------------------------

_EVENT_COLUMNS = """
    id, entity_id, event_type, trigger_event_id, trigger_event_type, event_date,
    market_cap_before, market_cap_after, share_price_before, share_price_after,
    shares_outstanding, price_impact, quantity, trade_amount,
    holder_id, opponent_entity_id, description, created_at
"""

# The partial unique index uq_ledger_events_trigger turns a duplicate
# match/initial row into "no row returned" instead of an aborted transaction.
_INSERT_EVENT_SQL = text(f"""
    INSERT INTO ledger_events
        (entity_id, event_type, trigger_event_id, trigger_event_type, event_date,
         market_cap_before, market_cap_after, share_price_before, share_price_after,
         shares_outstanding, price_impact, quantity, trade_amount,
         holder_id, opponent_entity_id, description)
    VALUES
        (:entity_id, :event_type, :trigger_event_id, :trigger_event_type, :event_date,
         :market_cap_before, :market_cap_after, :share_price_before, :share_price_after,
         :shares_outstanding, :price_impact, :quantity, :trade_amount,
         :holder_id, :opponent_entity_id, :description)
    ON CONFLICT DO NOTHING
    RETURNING {_EVENT_COLUMNS}
""")

_EXISTS_TRIGGER_SQL = text("""
    SELECT 1 FROM ledger_events
    WHERE entity_id = :entity_id
      AND trigger_event_id = :trigger_event_id
      AND event_type = ANY(CAST(:event_types AS TEXT[]))
    LIMIT 1
""")

_QUERY_FILTER = """
    FROM ledger_events
    WHERE entity_id = :entity_id
      AND (CAST(:event_types AS TEXT[]) IS NULL
           OR event_type = ANY(CAST(:event_types AS TEXT[])))
      AND (CAST(:from_date AS TIMESTAMPTZ) IS NULL
           OR event_date >= CAST(:from_date AS TIMESTAMPTZ))
      AND (CAST(:to_date AS TIMESTAMPTZ) IS NULL
           OR event_date <= CAST(:to_date AS TIMESTAMPTZ))
"""

_QUERY_ASC_SQL = text(
    f"SELECT {_EVENT_COLUMNS} {_QUERY_FILTER} ORDER BY event_date ASC, id ASC"
)
_QUERY_DESC_SQL = text(
    f"SELECT {_EVENT_COLUMNS} {_QUERY_FILTER} ORDER BY event_date DESC, id DESC"
)

_FIND_BY_TRIGGER_SQL = text(f"""
    SELECT {_EVENT_COLUMNS}
    FROM ledger_events
    WHERE trigger_event_id = :trigger_event_id
      AND event_type = ANY(CAST(:event_types AS TEXT[]))
    ORDER BY id ASC
""")

_LIST_HOLDER_TRADES_SQL = text(f"""
    SELECT {_EVENT_COLUMNS}
    FROM ledger_events
    WHERE holder_id = :holder_id
      AND (CAST(:entity_id AS TEXT) IS NULL OR entity_id = CAST(:entity_id AS TEXT))
      AND event_type = ANY(CAST(:event_types AS TEXT[]))
    ORDER BY event_date ASC, id ASC
""")

_TRUNCATE_SQL = text("DELETE FROM ledger_events WHERE entity_id = :entity_id")

# ---------------------------------------------------------------------------
# SQL: entities
# ---------------------------------------------------------------------------

_ENTITY_COLUMNS = """
    id, name, shares_outstanding, market_cap, initial_market_cap, launch_price,
    version, created_at, updated_at
"""

_GET_ENTITY_SQL = text(f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE id = :entity_id")

_GET_ENTITY_FOR_UPDATE_SQL = text(
    f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE id = :entity_id FOR UPDATE"
)

_LIST_ENTITIES_SQL = text(
    f"SELECT {_ENTITY_COLUMNS} FROM entities ORDER BY market_cap DESC, id ASC"
)

_INSERT_ENTITY_SQL = text(f"""
    INSERT INTO entities
        (id, name, shares_outstanding, market_cap, initial_market_cap, launch_price)
    VALUES
        (:id, :name, :shares_outstanding, :market_cap, :initial_market_cap, :launch_price)
    ON CONFLICT (id) DO NOTHING
    RETURNING {_ENTITY_COLUMNS}
""")

# Compare-and-swap on version: 0 rows means another writer got there first.
_UPDATE_MARKET_CAP_SQL = text(f"""
    UPDATE entities
    SET market_cap = :market_cap,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :entity_id AND version = :expected_version
    RETURNING {_ENTITY_COLUMNS}
""")

_RESET_ENTITY_SQL = text(f"""
    UPDATE entities
    SET market_cap = :market_cap,
        initial_market_cap = :market_cap,
        shares_outstanding = :shares_outstanding,
        launch_price = :launch_price,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :entity_id AND version = :expected_version
    RETURNING {_ENTITY_COLUMNS}
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_event(row: object) -> LedgerEvent:
    trigger_type = row.trigger_event_type  # type: ignore[attr-defined]
    return LedgerEvent(
        id=row.id,  # type: ignore[attr-defined]
        entity_id=row.entity_id,  # type: ignore[attr-defined]
        event_type=LedgerEventType(row.event_type),  # type: ignore[attr-defined]
        trigger_event_id=row.trigger_event_id,  # type: ignore[attr-defined]
        trigger_event_type=TriggerEventType(trigger_type) if trigger_type else None,
        event_date=row.event_date,  # type: ignore[attr-defined]
        market_cap_before=row.market_cap_before,  # type: ignore[attr-defined]
        market_cap_after=row.market_cap_after,  # type: ignore[attr-defined]
        share_price_before=row.share_price_before,  # type: ignore[attr-defined]
        share_price_after=row.share_price_after,  # type: ignore[attr-defined]
        shares_outstanding=row.shares_outstanding,  # type: ignore[attr-defined]
        price_impact=row.price_impact,  # type: ignore[attr-defined]
        quantity=row.quantity,  # type: ignore[attr-defined]
        trade_amount=row.trade_amount,  # type: ignore[attr-defined]
        holder_id=row.holder_id,  # type: ignore[attr-defined]
        opponent_entity_id=row.opponent_entity_id,  # type: ignore[attr-defined]
        description=row.description or "",  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_entity(row: object) -> Entity:
    return Entity(
        id=row.id,  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        shares_outstanding=row.shares_outstanding,  # type: ignore[attr-defined]
        market_cap=row.market_cap,  # type: ignore[attr-defined]
        initial_market_cap=row.initial_market_cap,  # type: ignore[attr-defined]
        launch_price=row.launch_price,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _type_values(event_types: Collection[LedgerEventType] | None) -> list[str] | None:
    if event_types is None:
        return None
    return sorted(t.value for t in event_types)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class LedgerEventStore:
    """Append-only event log. Rows are never updated; only `truncate` deletes."""

    async def append(self, db: AsyncSession, event: NewLedgerEvent) -> LedgerEvent:
        if event.event_type in UNIQUE_TRIGGER_EVENT_TYPES and event.trigger_event_id is not None:
            exists = await db.execute(
                _EXISTS_TRIGGER_SQL,
                {
                    "entity_id": event.entity_id,
                    "trigger_event_id": event.trigger_event_id,
                    "event_types": _type_values(UNIQUE_TRIGGER_EVENT_TYPES),
                },
            )
            if exists.fetchone() is not None:
                raise ConflictError(event.entity_id, event.trigger_event_id)

        result = await db.execute(
            _INSERT_EVENT_SQL,
            {
                "entity_id": event.entity_id,
                "event_type": event.event_type.value,
                "trigger_event_id": event.trigger_event_id,
                "trigger_event_type": (
                    event.trigger_event_type.value if event.trigger_event_type else None
                ),
                "event_date": event.event_date,
                "market_cap_before": event.market_cap_before,
                "market_cap_after": event.market_cap_after,
                "share_price_before": event.share_price_before,
                "share_price_after": event.share_price_after,
                "shares_outstanding": event.shares_outstanding,
                "price_impact": event.price_impact,
                "quantity": event.quantity,
                "trade_amount": event.trade_amount,
                "holder_id": event.holder_id,
                "opponent_entity_id": event.opponent_entity_id,
                "description": event.description,
            },
        )
        row = result.fetchone()
        if row is None:
            # Lost a race with a concurrent writer on the unique trigger index
            raise ConflictError(event.entity_id, event.trigger_event_id)
        return _row_to_event(row)

    async def query(
        self,
        db: AsyncSession,
        entity_id: str,
        event_types: Collection[LedgerEventType] | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        order: Literal["asc", "desc"] = "asc",
    ) -> AsyncIterator[LedgerEvent]:
        """Stream an entity's events ordered by (event_date, id)."""
        sql = _QUERY_ASC_SQL if order == "asc" else _QUERY_DESC_SQL
        result = await db.stream(
            sql,
            {
                "entity_id": entity_id,
                "event_types": _type_values(event_types),
                "from_date": from_date,
                "to_date": to_date,
            },
        )
        try:
            async for row in result:
                yield _row_to_event(row)
        finally:
            await result.close()

    async def find_by_trigger(
        self,
        db: AsyncSession,
        trigger_event_id: str,
        event_types: Collection[LedgerEventType],
    ) -> list[LedgerEvent]:
        result = await db.execute(
            _FIND_BY_TRIGGER_SQL,
            {"trigger_event_id": trigger_event_id, "event_types": _type_values(event_types)},
        )
        return [_row_to_event(row) for row in result.fetchall()]

    async def list_holder_trades(
        self, db: AsyncSession, holder_id: str, entity_id: str | None = None
    ) -> list[LedgerEvent]:
        result = await db.execute(
            _LIST_HOLDER_TRADES_SQL,
            {
                "holder_id": holder_id,
                "entity_id": entity_id,
                "event_types": _type_values(TRADE_EVENT_TYPES),
            },
        )
        return [_row_to_event(row) for row in result.fetchall()]

    async def truncate(self, db: AsyncSession, entity_id: str) -> int:
        result = await db.execute(_TRUNCATE_SQL, {"entity_id": entity_id})
        return result.rowcount  # type: ignore[attr-defined, no-any-return]


class EntityRepository:
    """Mutable snapshot cache of each entity's market cap."""

    async def get(self, db: AsyncSession, entity_id: str) -> Entity | None:
        result = await db.execute(_GET_ENTITY_SQL, {"entity_id": entity_id})
        row = result.fetchone()
        return _row_to_entity(row) if row else None

    async def get_for_update(self, db: AsyncSession, entity_id: str) -> Entity | None:
        result = await db.execute(_GET_ENTITY_FOR_UPDATE_SQL, {"entity_id": entity_id})
        row = result.fetchone()
        return _row_to_entity(row) if row else None

    async def list_all(self, db: AsyncSession) -> list[Entity]:
        result = await db.execute(_LIST_ENTITIES_SQL)
        return [_row_to_entity(row) for row in result.fetchall()]

    async def create(self, db: AsyncSession, entity: Entity) -> Entity:
        result = await db.execute(
            _INSERT_ENTITY_SQL,
            {
                "id": entity.id,
                "name": entity.name,
                "shares_outstanding": entity.shares_outstanding,
                "market_cap": entity.market_cap,
                "initial_market_cap": entity.initial_market_cap,
                "launch_price": entity.launch_price,
            },
        )
        row = result.fetchone()
        if row is None:
            raise EntityExistsError(entity.id)
        return _row_to_entity(row)

    async def update_market_cap(
        self, db: AsyncSession, entity: Entity, market_cap: int
    ) -> Entity:
        result = await db.execute(
            _UPDATE_MARKET_CAP_SQL,
            {
                "entity_id": entity.id,
                "market_cap": market_cap,
                "expected_version": entity.version,
            },
        )
        row = result.fetchone()
        if row is None:
            raise ConcurrencyConflictError(
                f"Entity {entity.id} changed since version {entity.version}"
            )
        return _row_to_entity(row)

    async def reset(
        self,
        db: AsyncSession,
        entity: Entity,
        market_cap: int,
        shares_outstanding: int,
        launch_price: int,
    ) -> Entity:
        result = await db.execute(
            _RESET_ENTITY_SQL,
            {
                "entity_id": entity.id,
                "market_cap": market_cap,
                "shares_outstanding": shares_outstanding,
                "launch_price": launch_price,
                "expected_version": entity.version,
            },
        )
        row = result.fetchone()
        if row is None:
            raise ConcurrencyConflictError(
                f"Entity {entity.id} changed since version {entity.version}"
            )
        return _row_to_entity(row)
