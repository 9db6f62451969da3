"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class LedgerEventType(str, Enum):
    INITIAL_STATE = "initial_state"
    SHARE_PURCHASE = "share_purchase"
    SHARE_SALE = "share_sale"
    MATCH_WIN = "match_win"
    MATCH_LOSS = "match_loss"
    MATCH_DRAW = "match_draw"


# Event types that must be unique per (entity_id, trigger_event_id)
UNIQUE_TRIGGER_EVENT_TYPES = frozenset(
    {
        LedgerEventType.INITIAL_STATE,
        LedgerEventType.MATCH_WIN,
        LedgerEventType.MATCH_LOSS,
        LedgerEventType.MATCH_DRAW,
    }
)

MATCH_EVENT_TYPES = frozenset(
    {LedgerEventType.MATCH_WIN, LedgerEventType.MATCH_LOSS, LedgerEventType.MATCH_DRAW}
)

TRADE_EVENT_TYPES = frozenset({LedgerEventType.SHARE_PURCHASE, LedgerEventType.SHARE_SALE})


class TriggerEventType(str, Enum):
    FIXTURE = "fixture"
    ORDER = "order"
    MANUAL = "manual"


class MatchOutcome(str, Enum):
    HOME_WIN = "home_win"
    AWAY_WIN = "away_win"
    DRAW = "draw"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TransferBasis(str, Enum):
    """Which participant's pre-match cap the transfer rate applies to."""

    LOSER = "loser"
    WINNER = "winner"


class SettlementStatus(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
