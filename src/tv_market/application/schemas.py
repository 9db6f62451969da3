"""Pydantic schemas for tv_market API responses.

Every money field is exposed twice: `<name>_cents` (int, exact) and
`<name>_display` ("$1,234.56"). Percentages leave the engine as Decimal and
are converted to float only here.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.tv_common.cents import cents_to_display
from src.tv_ledger.domain.models import Entity, EntityState, LedgerEvent, PricePoint
from src.tv_valuation.domain.positions import PortfolioSummary, Position


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------


class ValuationOut(BaseModel):
    entity_id: str
    name: str
    market_cap_cents: int
    market_cap_display: str
    shares_outstanding: int
    share_price_cents: int
    share_price_display: str
    launch_price_cents: int
    launch_price_display: str
    lifetime_change_percent: float
    matchday_change_percent: float | None = None
    updated_at: str | None

    @classmethod
    def from_domain(
        cls,
        e: Entity,
        share_price: int,
        lifetime_change: Decimal,
        matchday_change: Decimal | None = None,
    ) -> "ValuationOut":
        return cls(
            entity_id=e.id,
            name=e.name,
            market_cap_cents=e.market_cap,
            market_cap_display=cents_to_display(e.market_cap),
            shares_outstanding=e.shares_outstanding,
            share_price_cents=share_price,
            share_price_display=cents_to_display(share_price),
            launch_price_cents=e.launch_price,
            launch_price_display=cents_to_display(e.launch_price),
            lifetime_change_percent=float(lifetime_change),
            matchday_change_percent=None if matchday_change is None else float(matchday_change),
            updated_at=_iso(e.updated_at),
        )


class ValuationListResponse(BaseModel):
    items: list[ValuationOut]


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class PricePointOut(BaseModel):
    event_id: int
    event_date: str
    event_type: str
    trigger_event_id: str | None
    market_cap_cents: int
    share_price_cents: int
    share_price_display: str
    price_impact_cents: int
    quantity: int
    change_percent: float
    lifetime_change_percent: float

    @classmethod
    def from_domain(cls, p: PricePoint) -> "PricePointOut":
        return cls(
            event_id=p.event_id,
            event_date=p.event_date.isoformat(),
            event_type=p.event_type.value,
            trigger_event_id=p.trigger_event_id,
            market_cap_cents=p.market_cap,
            share_price_cents=p.share_price,
            share_price_display=cents_to_display(p.share_price),
            price_impact_cents=p.price_impact,
            quantity=p.quantity,
            change_percent=float(p.change_percent),
            lifetime_change_percent=float(p.lifetime_change_percent),
        )


class TimelineResponse(BaseModel):
    entity_id: str
    points: list[PricePointOut]


class EntityStateOut(BaseModel):
    entity_id: str
    market_cap_cents: int
    market_cap_display: str
    shares_outstanding: int
    share_price_cents: int
    share_price_display: str
    last_event_type: str
    effective_at: str

    @classmethod
    def from_domain(cls, s: EntityState) -> "EntityStateOut":
        return cls(
            entity_id=s.entity_id,
            market_cap_cents=s.market_cap,
            market_cap_display=cents_to_display(s.market_cap),
            shares_outstanding=s.shares_outstanding,
            share_price_cents=s.share_price,
            share_price_display=cents_to_display(s.share_price),
            last_event_type=s.event_type.value,
            effective_at=s.effective_at.isoformat(),
        )


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


class PositionOut(BaseModel):
    holder_id: str
    entity_id: str
    quantity: int
    net_invested_cents: int
    net_invested_display: str
    average_cost: str              # exact Decimal, serialized as string
    average_cost_cents: int
    current_share_price_cents: int
    market_value_cents: int
    market_value_display: str
    unrealized_pnl_cents: int
    unrealized_pnl_display: str
    pnl_percent: float
    total_bought_cents: int
    total_sold_cents: int
    trade_count: int

    @classmethod
    def from_domain(cls, p: Position) -> "PositionOut":
        return cls(
            holder_id=p.holder_id,
            entity_id=p.entity_id,
            quantity=p.quantity,
            net_invested_cents=p.net_invested,
            net_invested_display=cents_to_display(p.net_invested),
            average_cost=str(p.average_cost),
            average_cost_cents=p.average_cost_cents,
            current_share_price_cents=p.current_share_price,
            market_value_cents=p.market_value,
            market_value_display=cents_to_display(p.market_value),
            unrealized_pnl_cents=p.unrealized_pnl,
            unrealized_pnl_display=cents_to_display(p.unrealized_pnl),
            pnl_percent=float(p.pnl_percent),
            total_bought_cents=p.total_bought,
            total_sold_cents=p.total_sold,
            trade_count=p.trade_count,
        )


class PortfolioResponse(BaseModel):
    holder_id: str
    positions: list[PositionOut]
    total_invested_cents: int
    total_market_value_cents: int
    total_pnl_cents: int
    total_pnl_display: str
    pnl_percent: float

    @classmethod
    def from_domain(cls, s: PortfolioSummary) -> "PortfolioResponse":
        return cls(
            holder_id=s.holder_id,
            positions=[PositionOut.from_domain(p) for p in s.positions],
            total_invested_cents=s.total_invested,
            total_market_value_cents=s.total_market_value,
            total_pnl_cents=s.total_pnl,
            total_pnl_display=cents_to_display(s.total_pnl),
            pnl_percent=float(s.pnl_percent),
        )


# ---------------------------------------------------------------------------
# Ledger rows
# ---------------------------------------------------------------------------


class LedgerEventOut(BaseModel):
    id: int
    entity_id: str
    event_type: str
    trigger_event_id: str | None
    trigger_event_type: str | None
    event_date: str
    market_cap_before_cents: int
    market_cap_after_cents: int
    share_price_before_cents: int
    share_price_after_cents: int
    shares_outstanding: int
    price_impact_cents: int
    quantity: int
    trade_amount_cents: int
    trade_amount_display: str
    holder_id: str | None
    opponent_entity_id: str | None
    description: str
    created_at: str

    @classmethod
    def from_domain(cls, e: LedgerEvent) -> "LedgerEventOut":
        return cls(
            id=e.id,
            entity_id=e.entity_id,
            event_type=e.event_type.value,
            trigger_event_id=e.trigger_event_id,
            trigger_event_type=e.trigger_event_type.value if e.trigger_event_type else None,
            event_date=e.event_date.isoformat(),
            market_cap_before_cents=e.market_cap_before,
            market_cap_after_cents=e.market_cap_after,
            share_price_before_cents=e.share_price_before,
            share_price_after_cents=e.share_price_after,
            shares_outstanding=e.shares_outstanding,
            price_impact_cents=e.price_impact,
            quantity=e.quantity,
            trade_amount_cents=e.trade_amount,
            trade_amount_display=cents_to_display(e.trade_amount),
            holder_id=e.holder_id,
            opponent_entity_id=e.opponent_entity_id,
            description=e.description,
            created_at=e.created_at.isoformat(),
        )


class TransactionListResponse(BaseModel):
    holder_id: str
    entity_id: str
    items: list[LedgerEventOut]
