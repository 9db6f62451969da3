"""Timeline reconstruction and idempotency layer.

Pure functions over an entity's ledger rows. Readers never assume insertion
order equals event order: every function sorts by (event_date, id) itself.

Dedup rule: rows sharing (entity_id, trigger) are collapsed to the most
recently created one, tie-broken by the highest id, so a settlement retried
after a partial failure is still seen once by every consumer.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from src.tv_common.cents import percent_change
from src.tv_common.datetime_utils import as_utc
from src.tv_common.enums import LedgerEventType
from src.tv_common.errors import MissingValuationError
from src.tv_ledger.domain.models import EntityState, LedgerEvent, PricePoint
from src.tv_valuation.domain.valuation import compute_share_metrics


def _sort_key(event: LedgerEvent) -> tuple[datetime, int]:
    return as_utc(event.event_date), event.id


def _dedupe_key(event: LedgerEvent) -> tuple[str, str | None]:
    return event.entity_id, event.trigger_event_id


def chronological(events: Iterable[LedgerEvent]) -> list[LedgerEvent]:
    return sorted(events, key=_sort_key)


def dedupe_events(events: Iterable[LedgerEvent]) -> list[LedgerEvent]:
    """Collapse rows sharing a trigger to the latest one; result is chronological."""
    survivors: dict[tuple[str, str | None], LedgerEvent] = {}
    untriggered: list[LedgerEvent] = []
    for event in events:
        if event.trigger_event_id is None:
            untriggered.append(event)
            continue
        key = _dedupe_key(event)
        current = survivors.get(key)
        if current is None or (as_utc(event.created_at), event.id) > (
            as_utc(current.created_at),
            current.id,
        ):
            survivors[key] = event
    return chronological([*untriggered, *survivors.values()])


def visible_events(events: Iterable[LedgerEvent], now: datetime) -> list[LedgerEvent]:
    """Drop future-dated rows (e.g. a fixture recorded ahead of kickoff)."""
    cutoff = as_utc(now)
    return [e for e in events if as_utc(e.event_date) <= cutoff]


def since_latest_initial_state(events: list[LedgerEvent], entity_id: str) -> list[LedgerEvent]:
    """Slice a chronological list from its latest initial_state onward."""
    for index in range(len(events) - 1, -1, -1):
        if events[index].event_type == LedgerEventType.INITIAL_STATE:
            return events[index:]
    raise MissingValuationError(entity_id)


def reconstruct(
    events: Iterable[LedgerEvent],
    entity_id: str,
    now: datetime,
    default_price: int,
    epsilon: Decimal = Decimal("0.01"),
) -> list[PricePoint]:
    """Chronological price points starting at initial_state, excluding the future.

    Prices are derived from the replayed cap rather than each row's stored
    share_price_after, which reflects commit order, not event order.
    """
    ordered = since_latest_initial_state(
        visible_events(dedupe_events(events), now), entity_id
    )
    initial = ordered[0]
    market_cap = initial.market_cap_after
    launch_price = compute_share_metrics(
        market_cap, initial.shares_outstanding, default_price
    ).share_price
    points: list[PricePoint] = []
    previous_price = launch_price
    for event in ordered:
        if event is not initial:
            market_cap += event.market_cap_delta
        share_price = compute_share_metrics(
            market_cap, event.shares_outstanding, default_price
        ).share_price
        points.append(
            PricePoint(
                event_id=event.id,
                event_date=event.event_date,
                event_type=event.event_type,
                trigger_event_id=event.trigger_event_id,
                market_cap=market_cap,
                share_price=share_price,
                price_impact=event.price_impact,
                quantity=event.quantity,
                change_percent=percent_change(share_price, previous_price, epsilon),
                lifetime_change_percent=percent_change(share_price, launch_price, epsilon),
            )
        )
        previous_price = share_price
    return points


def replay_market_cap(
    events: Iterable[LedgerEvent], entity_id: str, until: datetime | None = None
) -> int:
    """Replay from the latest initial_state applying each row's cap delta."""
    ordered = dedupe_events(events)
    if until is not None:
        ordered = visible_events(ordered, until)
    ordered = since_latest_initial_state(ordered, entity_id)
    market_cap = ordered[0].market_cap_after
    for event in ordered[1:]:
        market_cap += event.market_cap_delta
    return market_cap


def state_at(
    events: Iterable[LedgerEvent],
    entity_id: str,
    at: datetime,
    default_price: int,
) -> EntityState:
    """Entity state as of `at`, reduced from the ledger."""
    ordered = since_latest_initial_state(
        visible_events(dedupe_events(events), at), entity_id
    )
    market_cap = replay_market_cap(ordered, entity_id)
    last = ordered[-1]
    return EntityState(
        entity_id=entity_id,
        market_cap=market_cap,
        shares_outstanding=last.shares_outstanding,
        share_price=compute_share_metrics(
            market_cap, last.shares_outstanding, default_price
        ).share_price,
        event_type=last.event_type,
        effective_at=last.event_date,
    )
