# tests/unit/test_api.py
"""HTTP-level tests: routing, response envelope and error mapping."""
from datetime import timedelta

from httpx import AsyncClient

from src.tv_common.datetime_utils import utc_now
from src.tv_common.errors import ConcurrencyConflictError
from tests.fakes import FakeLedgerStore

SEASON_START = (utc_now() - timedelta(days=30)).isoformat()
MATCH_DAY = (utc_now() - timedelta(days=1)).isoformat()


async def _seed_pair(client: AsyncClient) -> None:
    for entity_id, cap in (("club-a", 10000), ("club-b", 20000)):
        resp = await client.post(
            "/api/v1/admin/entities",
            json={
                "entity_id": entity_id,
                "name": entity_id.replace("-", " ").title(),
                "market_cap_cents": cap,
                "shares_outstanding": 5,
                "event_date": SEASON_START,
            },
        )
        assert resp.status_code == 200


def _match(**overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "match_id": "fx-1",
        "home_entity_id": "club-a",
        "away_entity_id": "club-b",
        "outcome": "away_win",
        "event_date": MATCH_DAY,
        "score": "0-2",
    }
    body.update(overrides)
    return body


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_caller_request_id_is_kept(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/entities", headers={"X-Request-ID": "feed-retry-42"})
        assert resp.headers["X-Request-ID"] == "feed-retry-42"
        assert resp.json()["request_id"] == "feed-retry-42"

    async def test_malformed_request_id_is_replaced(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/entities", headers={"X-Request-ID": "bad id\twith spaces"})
        assert resp.headers["X-Request-ID"].startswith("req_")


class TestAdminEndpoints:
    async def test_seed_envelope(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/admin/entities",
            json={"entity_id": "club-a", "name": "Club A", "market_cap_cents": 10000, "shares_outstanding": 5},
        )
        body = resp.json()

        assert body["code"] == 0
        assert body["retryable"] is False
        assert body["data"]["entity"]["share_price_display"] == "$20.00"
        assert resp.headers["X-Request-ID"].startswith("req_")

    async def test_seed_duplicate(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post(
            "/api/v1/admin/entities", json={"entity_id": "club-a", "name": "Club A"}
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == 1002

    async def test_negative_capital_rejected(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/admin/entities",
            json={"entity_id": "club-a", "name": "Club A", "market_cap_cents": -1},
        )
        assert resp.status_code == 422

    async def test_reset_and_reconcile(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        await client.post("/api/v1/matches/settle", json=_match())

        reconcile = await client.get("/api/v1/admin/entities/club-b/reconcile")
        assert reconcile.json()["data"]["consistent"] is True
        assert reconcile.json()["data"]["replayed_market_cap_cents"] == 21000

        reset = await client.post("/api/v1/admin/entities/club-b/reset", json={})
        assert reset.json()["data"]["events_removed"] == 2
        assert reset.json()["data"]["entity"]["market_cap_cents"] == 20000


class TestSettleEndpoint:
    async def test_settle_then_replay(self, client: AsyncClient) -> None:
        await _seed_pair(client)

        first = await client.post("/api/v1/matches/settle", json=_match())
        data = first.json()["data"]
        assert first.status_code == 200
        assert data["status"] == "APPLIED"
        assert data["transfer_cents"] == 1000
        assert [e["event_type"] for e in data["events"]] == ["match_loss", "match_win"]
        assert first.json()["request_id"] == first.headers["X-Request-ID"]

        replay = await client.post("/api/v1/matches/settle", json=_match())
        assert replay.status_code == 200
        assert replay.json()["data"]["status"] == "ALREADY_APPLIED"
        assert replay.json()["data"]["events"][0]["id"] == data["events"][0]["id"]

    async def test_unvalued_entity(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post("/api/v1/matches/settle", json=_match(away_entity_id="club-x"))
        assert resp.status_code == 422
        assert resp.json()["code"] == 2002
        assert resp.json()["data"] is None

    async def test_self_match(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post("/api/v1/matches/settle", json=_match(away_entity_id="club-a"))
        assert resp.status_code == 422
        assert resp.json()["code"] == 4001

    async def test_bad_outcome_is_validation_error(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/matches/settle", json=_match(outcome="abandoned"))
        assert resp.status_code == 422

    async def test_whitespace_match_id(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/matches/settle", json=_match(match_id="fx 1"))
        assert resp.status_code == 422

    async def test_contention_is_retryable(
        self, client: AsyncClient, store: FakeLedgerStore
    ) -> None:
        await _seed_pair(client)

        async def _always_conflict(event: object) -> None:
            raise ConcurrencyConflictError("row moved")

        store.before_append = _always_conflict
        resp = await client.post("/api/v1/matches/settle", json=_match())

        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "1"
        assert resp.json()["code"] == 9001
        assert resp.json()["retryable"] is True


class TestOrderEndpoint:
    async def test_buy_generates_order_id(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post(
            "/api/v1/orders",
            json={
                "holder_id": "holder-1",
                "entity_id": "club-a",
                "side": "buy",
                "quantity": 2,
                "price_cents": 500,
            },
        )
        data = resp.json()["data"]

        assert resp.status_code == 200
        assert data["status"] == "APPLIED"
        assert data["order_id"]
        assert data["event"]["market_cap_after_cents"] == 11000
        assert data["event"]["quantity"] == 2

    async def test_replayed_order(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        order = {
            "order_id": "ord-1",
            "holder_id": "holder-1",
            "entity_id": "club-a",
            "side": "buy",
            "quantity": 1,
            "price_cents": 2000,
        }
        await client.post("/api/v1/orders", json=order)
        replay = await client.post("/api/v1/orders", json=order)

        assert replay.json()["data"]["status"] == "ALREADY_APPLIED"
        entity = await client.get("/api/v1/entities/club-a")
        assert entity.json()["data"]["market_cap_cents"] == 12000

    async def test_overdraft(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post(
            "/api/v1/orders",
            json={
                "holder_id": "holder-1",
                "entity_id": "club-a",
                "side": "sell",
                "quantity": 1,
                "price_cents": 2000,
            },
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 3003
        assert resp.json()["retryable"] is False

    async def test_future_dated_order(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        resp = await client.post(
            "/api/v1/orders",
            json={
                "holder_id": "holder-1",
                "entity_id": "club-a",
                "side": "buy",
                "quantity": 1,
                "price_cents": 2000,
                "event_date": (utc_now() + timedelta(days=7)).isoformat(),
            },
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 3007

        entity = await client.get("/api/v1/entities/club-a")
        assert entity.json()["data"]["market_cap_cents"] == 10000


class TestQueryEndpoints:
    async def test_list_and_detail(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        await client.post("/api/v1/matches/settle", json=_match())

        listing = await client.get("/api/v1/entities")
        assert [v["entity_id"] for v in listing.json()["data"]["items"]] == ["club-b", "club-a"]

        detail = await client.get("/api/v1/entities/club-a")
        assert detail.json()["data"]["share_price_cents"] == 1800
        assert detail.json()["data"]["matchday_change_percent"] == -10.0

    async def test_unknown_entity(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/entities/club-x")
        assert resp.status_code == 404
        assert resp.json()["code"] == 1001

    async def test_timeline_and_state(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        await client.post("/api/v1/matches/settle", json=_match())

        timeline = await client.get("/api/v1/entities/club-a/timeline")
        points = timeline.json()["data"]["points"]
        assert [p["share_price_cents"] for p in points] == [2000, 1800]

        windowed = await client.get(
            "/api/v1/entities/club-a/timeline",
            params={"from": (utc_now() - timedelta(days=2)).isoformat()},
        )
        assert len(windowed.json()["data"]["points"]) == 1

        state = await client.get(
            "/api/v1/entities/club-a/state",
            params={"at": (utc_now() - timedelta(days=2)).isoformat()},
        )
        assert state.json()["data"]["market_cap_cents"] == 10000

    async def test_holder_views(self, client: AsyncClient) -> None:
        await _seed_pair(client)
        await client.post(
            "/api/v1/orders",
            json={
                "order_id": "ord-1",
                "holder_id": "holder-1",
                "entity_id": "club-a",
                "side": "buy",
                "quantity": 2,
                "price_cents": 500,
            },
        )

        position = await client.get("/api/v1/holders/holder-1/positions/club-a")
        assert position.json()["data"]["quantity"] == 2
        assert position.json()["data"]["market_value_cents"] == 2 * 2200

        portfolio = await client.get("/api/v1/holders/holder-1/positions")
        assert portfolio.json()["data"]["total_invested_cents"] == 1000

        history = await client.get("/api/v1/holders/holder-1/entities/club-a/transactions")
        assert [t["trigger_event_id"] for t in history.json()["data"]["items"]] == ["ord-1"]
