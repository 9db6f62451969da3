# src/tv_engine/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, field_validator

from src.tv_common.datetime_utils import utc_now
from src.tv_common.enums import MatchOutcome, OrderSide
from src.tv_engine.engine import SettlementOutcome, TradeOutcome
from src.tv_market.application.schemas import LedgerEventOut
from src.tv_valuation.domain.settlement import MatchResult
from src.tv_valuation.domain.trade import TradeOrder


def _no_whitespace(v: str, field: str) -> str:
    if not v or v != v.strip() or " " in v:
        raise ValueError(f"{field} must not contain whitespace")
    return v


class MatchSettleRequest(BaseModel):
    match_id: str
    home_entity_id: str
    away_entity_id: str
    outcome: MatchOutcome
    event_date: datetime
    score: str | None = None

    @field_validator("match_id")
    @classmethod
    def match_id_no_whitespace(cls, v: str) -> str:
        return _no_whitespace(v, "match_id")

    def to_domain(self) -> MatchResult:
        return MatchResult(
            match_id=self.match_id,
            home_entity_id=self.home_entity_id,
            away_entity_id=self.away_entity_id,
            outcome=self.outcome,
            event_date=self.event_date,
            score=self.score,
        )


class SettlementResponse(BaseModel):
    match_id: str
    status: str
    transfer_cents: int
    events: list[LedgerEventOut]

    @classmethod
    def from_outcome(cls, outcome: SettlementOutcome) -> "SettlementResponse":
        return cls(
            match_id=outcome.match_id,
            status=outcome.status.value,
            transfer_cents=outcome.transfer,
            events=[
                LedgerEventOut.from_domain(outcome.home_event),
                LedgerEventOut.from_domain(outcome.away_event),
            ],
        )


class OrderRequest(BaseModel):
    """Order already accepted by order intake (window, cash and auth checked upstream)."""

    order_id: str | None = None
    holder_id: str
    entity_id: str
    side: OrderSide
    quantity: int
    price_cents: int
    event_date: datetime | None = None

    @field_validator("order_id")
    @classmethod
    def order_id_no_whitespace(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _no_whitespace(v, "order_id")

    def to_domain(self, order_id: str) -> TradeOrder:
        return TradeOrder(
            order_id=order_id,
            holder_id=self.holder_id,
            entity_id=self.entity_id,
            side=self.side,
            quantity=self.quantity,
            price_per_share=self.price_cents,
            event_date=self.event_date or utc_now(),
        )


class TradeResultResponse(BaseModel):
    order_id: str
    status: str
    event: LedgerEventOut

    @classmethod
    def from_outcome(cls, outcome: TradeOutcome) -> "TradeResultResponse":
        return cls(
            order_id=outcome.event.trigger_event_id or "",
            status=outcome.status.value,
            event=LedgerEventOut.from_domain(outcome.event),
        )
