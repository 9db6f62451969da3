"""Match settlement — zero-sum market cap transfer between two clubs.

transfer = basis_cap * rate_bps // 10000 (integer, truncating)
  basis_cap = loser's pre-match cap (LOSER basis) or winner's (WINNER basis)

The loser never falls below `min_market_cap`: the transfer is capped at
max(0, loser_cap - min_market_cap) instead of flooring the loser's cap, so
the winner always gains exactly what the loser loses.
"""

from dataclasses import dataclass
from datetime import datetime

from src.tv_common.cents import apply_bps, cents_to_display
from src.tv_common.enums import LedgerEventType, MatchOutcome, TransferBasis, TriggerEventType
from src.tv_common.errors import InvalidMatchError, MissingValuationError
from src.tv_ledger.domain.models import Entity, NewLedgerEvent
from src.tv_valuation.domain.valuation import compute_share_metrics


@dataclass(frozen=True)
class MatchResult:
    """Inbound trigger from the fixture data source."""

    match_id: str
    home_entity_id: str
    away_entity_id: str
    outcome: MatchOutcome
    event_date: datetime
    score: str | None = None


@dataclass(frozen=True)
class SettlementPlan:
    transfer: int                  # cents moved from loser to winner
    home_event: NewLedgerEvent
    away_event: NewLedgerEvent

    @property
    def events(self) -> tuple[NewLedgerEvent, NewLedgerEvent]:
        return self.home_event, self.away_event


def compute_transfer(
    winner_cap: int,
    loser_cap: int,
    rate_bps: int,
    min_market_cap: int,
    basis: TransferBasis = TransferBasis.LOSER,
) -> int:
    """Cents the loser pays the winner. Never takes the loser below the floor."""
    if not (0 <= rate_bps <= 10000):
        raise ValueError(f"rate_bps must be in [0, 10000], got {rate_bps}")
    basis_cap = loser_cap if basis == TransferBasis.LOSER else winner_cap
    transfer = apply_bps(basis_cap, rate_bps)
    headroom = max(0, loser_cap - min_market_cap)
    return min(transfer, headroom)


def _match_event(
    entity: Entity,
    opponent: Entity,
    match: MatchResult,
    event_type: LedgerEventType,
    price_impact: int,
    default_price: int,
) -> NewLedgerEvent:
    before = compute_share_metrics(entity.market_cap, entity.shares_outstanding, default_price)
    after = compute_share_metrics(
        entity.market_cap + price_impact, entity.shares_outstanding, default_price
    )
    if event_type == LedgerEventType.MATCH_WIN:
        description = f"Match win: Gained {cents_to_display(price_impact)} from {opponent.name}"
    elif event_type == LedgerEventType.MATCH_LOSS:
        description = f"Match loss: Lost {cents_to_display(-price_impact)} to {opponent.name}"
    else:
        description = f"Draw vs {opponent.name}: No market cap transfer"
    if match.score:
        description = f"{description} ({match.score})"
    return NewLedgerEvent(
        entity_id=entity.id,
        event_type=event_type,
        trigger_event_id=match.match_id,
        trigger_event_type=TriggerEventType.FIXTURE,
        event_date=match.event_date,
        market_cap_before=before.market_cap,
        market_cap_after=after.market_cap,
        share_price_before=before.share_price,
        share_price_after=after.share_price,
        shares_outstanding=entity.shares_outstanding,
        price_impact=price_impact,
        opponent_entity_id=opponent.id,
        description=description,
    )


def plan_match_settlement(
    match: MatchResult,
    home: Entity | None,
    away: Entity | None,
    rate_bps: int,
    min_market_cap: int,
    default_price: int,
    basis: TransferBasis = TransferBasis.LOSER,
) -> SettlementPlan:
    """Build both ledger events for a concluded match, or raise without building either."""
    if match.home_entity_id == match.away_entity_id:
        raise InvalidMatchError(f"{match.match_id} pits {match.home_entity_id} against itself")
    if home is None:
        raise MissingValuationError(match.home_entity_id)
    if away is None:
        raise MissingValuationError(match.away_entity_id)

    if match.outcome == MatchOutcome.DRAW:
        return SettlementPlan(
            transfer=0,
            home_event=_match_event(home, away, match, LedgerEventType.MATCH_DRAW, 0, default_price),
            away_event=_match_event(away, home, match, LedgerEventType.MATCH_DRAW, 0, default_price),
        )

    home_won = match.outcome == MatchOutcome.HOME_WIN
    winner, loser = (home, away) if home_won else (away, home)
    transfer = compute_transfer(
        winner.market_cap, loser.market_cap, rate_bps, min_market_cap, basis
    )
    win_event = _match_event(
        winner, loser, match, LedgerEventType.MATCH_WIN, transfer, default_price
    )
    loss_event = _match_event(
        loser, winner, match, LedgerEventType.MATCH_LOSS, -transfer, default_price
    )
    return SettlementPlan(
        transfer=transfer,
        home_event=win_event if home_won else loss_event,
        away_event=loss_event if home_won else win_event,
    )
