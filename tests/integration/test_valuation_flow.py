# tests/integration/test_valuation_flow.py
"""Integration tests for the full valuation flow against PostgreSQL:
seed → settle → trade → query → reset.

Each test seeds its own uniquely named clubs so runs never collide with
earlier data left in the database.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio(loop_scope="session")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uid() -> str:
    return uuid.uuid4().hex[:8]


async def _seed(client: AsyncClient, cap: int, shares: int = 5) -> str:
    entity_id = f"club-{_uid()}"
    resp = await client.post(
        "/api/v1/admin/entities",
        json={
            "entity_id": entity_id,
            "name": entity_id,
            "market_cap_cents": cap,
            "shares_outstanding": shares,
            "event_date": (datetime.now(UTC) - timedelta(days=30)).isoformat(),
        },
    )
    assert resp.status_code == 200, resp.text
    return entity_id


def _match(home: str, away: str, outcome: str, match_id: str | None = None) -> dict[str, str]:
    return {
        "match_id": match_id or f"fx-{_uid()}",
        "home_entity_id": home,
        "away_entity_id": away,
        "outcome": outcome,
        "event_date": (datetime.now(UTC) - timedelta(days=1)).isoformat(),
    }


async def _cap(client: AsyncClient, entity_id: str) -> int:
    resp = await client.get(f"/api/v1/entities/{entity_id}")
    return resp.json()["data"]["market_cap_cents"]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestSettlementFlow:
    async def test_settle_moves_both_caps(self, client: AsyncClient) -> None:
        home = await _seed(client, 10000)
        away = await _seed(client, 20000)

        resp = await client.post("/api/v1/matches/settle", json=_match(home, away, "away_win"))

        assert resp.status_code == 200
        assert resp.json()["data"]["transfer_cents"] == 1000
        assert await _cap(client, home) == 9000
        assert await _cap(client, away) == 21000

    async def test_settle_is_idempotent(self, client: AsyncClient) -> None:
        home = await _seed(client, 10000)
        away = await _seed(client, 20000)
        body = _match(home, away, "home_win")

        first = await client.post("/api/v1/matches/settle", json=body)
        second = await client.post("/api/v1/matches/settle", json=body)

        assert first.json()["data"]["status"] == "APPLIED"
        assert second.json()["data"]["status"] == "ALREADY_APPLIED"
        assert await _cap(client, away) == 18000

    async def test_concurrent_duplicate_settlements(self, client: AsyncClient) -> None:
        home = await _seed(client, 10000)
        away = await _seed(client, 20000)
        body = _match(home, away, "home_win")

        results = await asyncio.gather(
            *(client.post("/api/v1/matches/settle", json=body) for _ in range(4))
        )

        statuses = sorted(r.json()["data"]["status"] for r in results)
        assert statuses == ["ALREADY_APPLIED"] * 3 + ["APPLIED"]
        assert await _cap(client, home) == 12000

        reconcile = await client.get(f"/api/v1/admin/entities/{home}/reconcile")
        assert reconcile.json()["data"]["consistent"] is True


class TestTradeFlow:
    async def test_buy_sell_position(self, client: AsyncClient) -> None:
        club = await _seed(client, 10000)
        holder = f"holder-{_uid()}"

        buy = await client.post(
            "/api/v1/orders",
            json={"holder_id": holder, "entity_id": club, "side": "buy",
                  "quantity": 2, "price_cents": 500},
        )
        assert buy.status_code == 200
        sell = await client.post(
            "/api/v1/orders",
            json={"holder_id": holder, "entity_id": club, "side": "sell",
                  "quantity": 1, "price_cents": 2200},
        )
        assert sell.status_code == 200

        position = await client.get(f"/api/v1/holders/{holder}/positions/{club}")
        data = position.json()["data"]
        assert data["quantity"] == 1
        assert data["net_invested_cents"] == 1000 - 2200

        history = await client.get(f"/api/v1/holders/{holder}/entities/{club}/transactions")
        assert [t["event_type"] for t in history.json()["data"]["items"]] == [
            "share_sale",
            "share_purchase",
        ]

    async def test_concurrent_buys_all_land(self, client: AsyncClient) -> None:
        club = await _seed(client, 10000)
        orders = [
            {"holder_id": f"holder-{_uid()}", "entity_id": club, "side": "buy",
             "quantity": 1, "price_cents": 100}
            for _ in range(5)
        ]

        results = await asyncio.gather(*(client.post("/api/v1/orders", json=o) for o in orders))

        assert all(r.status_code == 200 for r in results)
        assert await _cap(client, club) == 10500


class TestTimelineAndReset:
    async def test_timeline_then_reset(self, client: AsyncClient) -> None:
        home = await _seed(client, 10000)
        away = await _seed(client, 10000)
        await client.post("/api/v1/matches/settle", json=_match(home, away, "draw"))

        timeline = await client.get(f"/api/v1/entities/{home}/timeline")
        assert [p["event_type"] for p in timeline.json()["data"]["points"]] == [
            "initial_state",
            "match_draw",
        ]

        reset = await client.post(f"/api/v1/admin/entities/{home}/reset", json={})
        assert reset.json()["data"]["events_removed"] == 2

        timeline = await client.get(f"/api/v1/entities/{home}/timeline")
        assert len(timeline.json()["data"]["points"]) == 1
