"""Repository Protocols — dependency inversion for testability.

Unit tests inject a mock or in-memory fake that conforms to these Protocols.
Infrastructure layer provides the real implementation.
"""

from collections.abc import AsyncIterator, Collection
from datetime import datetime
from typing import Literal, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_common.enums import LedgerEventType
from src.tv_ledger.domain.models import Entity, LedgerEvent, NewLedgerEvent


class LedgerStoreProtocol(Protocol):
    async def append(self, db: AsyncSession, event: NewLedgerEvent) -> LedgerEvent: ...

    def query(
        self,
        db: AsyncSession,
        entity_id: str,
        event_types: Collection[LedgerEventType] | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        order: Literal["asc", "desc"] = "asc",
    ) -> AsyncIterator[LedgerEvent]: ...

    async def find_by_trigger(
        self,
        db: AsyncSession,
        trigger_event_id: str,
        event_types: Collection[LedgerEventType],
    ) -> list[LedgerEvent]: ...

    async def list_holder_trades(
        self, db: AsyncSession, holder_id: str, entity_id: str | None = None
    ) -> list[LedgerEvent]: ...

    async def truncate(self, db: AsyncSession, entity_id: str) -> int: ...


class EntityRepositoryProtocol(Protocol):
    async def get(self, db: AsyncSession, entity_id: str) -> Entity | None: ...

    async def get_for_update(self, db: AsyncSession, entity_id: str) -> Entity | None: ...

    async def list_all(self, db: AsyncSession) -> list[Entity]: ...

    async def create(self, db: AsyncSession, entity: Entity) -> Entity: ...

    async def update_market_cap(
        self, db: AsyncSession, entity: Entity, market_cap: int
    ) -> Entity: ...

    async def reset(
        self,
        db: AsyncSession,
        entity: Entity,
        market_cap: int,
        shares_outstanding: int,
        launch_price: int,
    ) -> Entity: ...
