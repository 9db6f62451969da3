"""Domain models for tv_ledger — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.tv_common.enums import (
    MATCH_EVENT_TYPES,
    TRADE_EVENT_TYPES,
    UNIQUE_TRIGGER_EVENT_TYPES,
    LedgerEventType,
    TriggerEventType,
)


@dataclass
class Entity:
    """Snapshot cache of one tradable club. Re-derivable from its ledger."""

    id: str
    name: str
    shares_outstanding: int
    market_cap: int            # cents
    initial_market_cap: int    # cents
    launch_price: int          # cents per share
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class NewLedgerEvent:
    """A computed event awaiting append. Every money field is in cents."""

    entity_id: str
    event_type: LedgerEventType
    trigger_event_id: str | None
    trigger_event_type: TriggerEventType | None
    event_date: datetime
    market_cap_before: int
    market_cap_after: int
    share_price_before: int
    share_price_after: int
    shares_outstanding: int
    price_impact: int = 0
    quantity: int = 0           # + purchase, - sale, 0 otherwise
    trade_amount: int = 0
    holder_id: str | None = None
    opponent_entity_id: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.trigger_event_id is None and self.event_type != LedgerEventType.INITIAL_STATE:
            raise ValueError(f"{self.event_type.value} events require a trigger_event_id")
        if self.market_cap_after < 0:
            raise ValueError(f"market_cap_after must be >= 0, got {self.market_cap_after}")
        if self.event_type == LedgerEventType.SHARE_PURCHASE and self.quantity <= 0:
            raise ValueError("share_purchase quantity must be positive")
        if self.event_type == LedgerEventType.SHARE_SALE and self.quantity >= 0:
            raise ValueError("share_sale quantity must be negative")
        if self.event_type not in TRADE_EVENT_TYPES and (self.quantity or self.trade_amount):
            raise ValueError(f"{self.event_type.value} events carry no quantity or trade amount")


@dataclass(frozen=True)
class LedgerEvent:
    """An appended, immutable ledger row."""

    id: int
    entity_id: str
    event_type: LedgerEventType
    trigger_event_id: str | None
    trigger_event_type: TriggerEventType | None
    event_date: datetime
    market_cap_before: int
    market_cap_after: int
    share_price_before: int
    share_price_after: int
    shares_outstanding: int
    price_impact: int
    quantity: int
    trade_amount: int
    holder_id: str | None
    opponent_entity_id: str | None
    description: str
    created_at: datetime

    @property
    def market_cap_delta(self) -> int:
        return self.market_cap_after - self.market_cap_before

    @property
    def is_match(self) -> bool:
        return self.event_type in MATCH_EVENT_TYPES

    @property
    def is_trade(self) -> bool:
        return self.event_type in TRADE_EVENT_TYPES

    @property
    def requires_unique_trigger(self) -> bool:
        return self.event_type in UNIQUE_TRIGGER_EVENT_TYPES

    @property
    def signed_trade_amount(self) -> int:
        """Cash into the position: + for purchases, - for sale proceeds."""
        if self.event_type == LedgerEventType.SHARE_PURCHASE:
            return self.trade_amount
        if self.event_type == LedgerEventType.SHARE_SALE:
            return -self.trade_amount
        return 0


@dataclass(frozen=True)
class PricePoint:
    """One point on an entity's valuation timeline."""

    event_id: int
    event_date: datetime
    event_type: LedgerEventType
    trigger_event_id: str | None
    market_cap: int
    share_price: int
    price_impact: int
    quantity: int
    change_percent: Decimal
    lifetime_change_percent: Decimal


@dataclass(frozen=True)
class EntityState:
    """Point-in-time state of an entity, reduced from its ledger."""

    entity_id: str
    market_cap: int
    shares_outstanding: int
    share_price: int
    event_type: LedgerEventType
    effective_at: datetime
