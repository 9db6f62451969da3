"""Tests for tv_valuation.domain.settlement — zero-sum match transfer."""

from datetime import UTC, datetime
from typing import Any

import pytest

from src.tv_common.enums import LedgerEventType, MatchOutcome, TransferBasis, TriggerEventType
from src.tv_common.errors import InvalidMatchError, MissingValuationError
from src.tv_ledger.domain.models import Entity
from src.tv_valuation.domain.settlement import (
    MatchResult,
    compute_transfer,
    plan_match_settlement,
)

KICKOFF = datetime(2025, 3, 1, 15, 0, tzinfo=UTC)


def _make_entity(**kwargs: Any) -> Entity:
    defaults: dict[str, Any] = {
        "id": "club-a",
        "name": "Club A",
        "shares_outstanding": 5,
        "market_cap": 10000,
        "initial_market_cap": 10000,
        "launch_price": 2000,
    }
    defaults.update(kwargs)
    return Entity(**defaults)


def _match(outcome: MatchOutcome, **kwargs: Any) -> MatchResult:
    defaults: dict[str, Any] = {
        "match_id": "fx-1",
        "home_entity_id": "club-a",
        "away_entity_id": "club-b",
        "outcome": outcome,
        "event_date": KICKOFF,
    }
    defaults.update(kwargs)
    return MatchResult(**defaults)


def _plan(match: MatchResult, home: Entity | None, away: Entity | None, **kwargs: Any):  # type: ignore[no-untyped-def]
    params: dict[str, Any] = {
        "rate_bps": 1000,
        "min_market_cap": 1000,
        "default_price": 2000,
        "basis": TransferBasis.LOSER,
    }
    params.update(kwargs)
    return plan_match_settlement(match, home, away, **params)


class TestComputeTransfer:
    def test_loser_basis(self) -> None:
        assert compute_transfer(20000, 10000, 1000, 1000, TransferBasis.LOSER) == 1000

    def test_winner_basis(self) -> None:
        assert compute_transfer(20000, 10000, 1000, 1000, TransferBasis.WINNER) == 2000

    def test_integer_truncation(self) -> None:
        assert compute_transfer(50000, 9999, 1000, 0, TransferBasis.LOSER) == 999

    def test_floor_caps_transfer(self) -> None:
        # loser at 1500 can only give up 500 before hitting the $10 floor
        assert compute_transfer(100000, 1500, 1000, 1000, TransferBasis.WINNER) == 500

    def test_loser_at_floor_transfers_nothing(self) -> None:
        assert compute_transfer(100000, 1000, 1000, 1000, TransferBasis.LOSER) == 0

    def test_loser_below_floor_transfers_nothing(self) -> None:
        assert compute_transfer(100000, 800, 1000, 1000, TransferBasis.LOSER) == 0

    def test_rate_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            compute_transfer(20000, 10000, 10001, 1000)
        with pytest.raises(ValueError):
            compute_transfer(20000, 10000, -1, 1000)


class TestPlanMatchSettlement:
    def test_home_win_is_zero_sum(self) -> None:
        home = _make_entity(id="club-a", market_cap=10000)
        away = _make_entity(id="club-b", name="Club B", market_cap=20000)
        plan = _plan(_match(MatchOutcome.HOME_WIN), home, away)

        assert plan.transfer == 2000  # loser (away) cap 20000 * 10%
        assert plan.home_event.event_type == LedgerEventType.MATCH_WIN
        assert plan.away_event.event_type == LedgerEventType.MATCH_LOSS
        assert plan.home_event.price_impact == 2000
        assert plan.away_event.price_impact == -2000
        assert plan.home_event.price_impact + plan.away_event.price_impact == 0

    def test_loss_scenario_with_winner_basis(self) -> None:
        # cap 10000 / 5 shares loses to an opponent at 20000 with r = 10%
        home = _make_entity(id="club-a", market_cap=10000, shares_outstanding=5)
        away = _make_entity(id="club-b", name="Club B", market_cap=20000)
        plan = _plan(_match(MatchOutcome.AWAY_WIN), home, away, basis=TransferBasis.WINNER)

        loss = plan.home_event
        assert loss.price_impact == -2000
        assert loss.market_cap_before == 10000
        assert loss.market_cap_after == 8000
        assert loss.share_price_before == 2000
        assert loss.share_price_after == 1600
        assert plan.away_event.market_cap_after == 22000

    def test_events_share_trigger_and_reference_opponent(self) -> None:
        home = _make_entity(id="club-a")
        away = _make_entity(id="club-b", name="Club B")
        plan = _plan(_match(MatchOutcome.AWAY_WIN, match_id="fx-42"), home, away)

        for event in plan.events:
            assert event.trigger_event_id == "fx-42"
            assert event.trigger_event_type == TriggerEventType.FIXTURE
            assert event.event_date == KICKOFF
        assert plan.home_event.opponent_entity_id == "club-b"
        assert plan.away_event.opponent_entity_id == "club-a"

    def test_descriptions(self) -> None:
        home = _make_entity(id="club-a", name="Club A")
        away = _make_entity(id="club-b", name="Club B", market_cap=20000)
        plan = _plan(_match(MatchOutcome.HOME_WIN, score="2-1"), home, away)

        assert plan.home_event.description == "Match win: Gained $20.00 from Club B (2-1)"
        assert plan.away_event.description == "Match loss: Lost $20.00 to Club A (2-1)"

    def test_draw_changes_nothing(self) -> None:
        home = _make_entity(id="club-a", market_cap=10000)
        away = _make_entity(id="club-b", market_cap=20000)
        plan = _plan(_match(MatchOutcome.DRAW), home, away)

        assert plan.transfer == 0
        for event in plan.events:
            assert event.event_type == LedgerEventType.MATCH_DRAW
            assert event.price_impact == 0
            assert event.market_cap_before == event.market_cap_after

    def test_loser_never_below_floor(self) -> None:
        home = _make_entity(id="club-a", market_cap=1200)
        away = _make_entity(id="club-b", market_cap=500000)
        plan = _plan(_match(MatchOutcome.AWAY_WIN), home, away, basis=TransferBasis.WINNER)

        assert plan.home_event.market_cap_after == 1000
        assert plan.away_event.price_impact == 200
        assert plan.home_event.price_impact + plan.away_event.price_impact == 0

    def test_self_match_rejected(self) -> None:
        entity = _make_entity(id="club-a")
        with pytest.raises(InvalidMatchError):
            _plan(_match(MatchOutcome.DRAW, away_entity_id="club-a"), entity, entity)

    def test_missing_home_valuation(self) -> None:
        with pytest.raises(MissingValuationError) as exc:
            _plan(_match(MatchOutcome.HOME_WIN), None, _make_entity(id="club-b"))
        assert exc.value.entity_id == "club-a"

    def test_missing_away_valuation(self) -> None:
        with pytest.raises(MissingValuationError) as exc:
            _plan(_match(MatchOutcome.HOME_WIN), _make_entity(id="club-a"), None)
        assert exc.value.entity_id == "club-b"
