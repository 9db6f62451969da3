"""Trade execution — capital injection (buy) and withdrawal (sell).

Shares are claims on a fixed-denominator NAV pool: a buy adds the trade
amount to the club's market cap and leaves shares_outstanding unchanged, so
the NAV of every holder of that club rises, not just the buyer's.
"""

from dataclasses import dataclass
from datetime import datetime

from src.tv_common.cents import cents_to_display
from src.tv_common.enums import LedgerEventType, OrderSide, TriggerEventType
from src.tv_common.errors import (
    InsufficientCapitalError,
    InvalidPriceError,
    InvalidQuantityError,
    OrderLimitExceededError,
    OverdraftError,
    PriceMismatchError,
)
from src.tv_ledger.domain.models import Entity, NewLedgerEvent
from src.tv_valuation.domain.valuation import compute_share_metrics


@dataclass(frozen=True)
class TradeOrder:
    """Validated order from order intake (trading window and cash already checked)."""

    order_id: str
    holder_id: str
    entity_id: str
    side: OrderSide
    quantity: int
    price_per_share: int     # cents, agreed at order time
    event_date: datetime


def validate_quantity(
    side: OrderSide, quantity: object, held_quantity: int, max_order_quantity: int
) -> int:
    """Raise unless quantity is an int in [1, max] (buy) or [1, held] (sell)."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity)
    if side == OrderSide.BUY:
        if quantity > max_order_quantity:
            raise OrderLimitExceededError(quantity, max_order_quantity)
    elif quantity > held_quantity:
        raise OverdraftError(quantity, held_quantity)
    return quantity


def check_price(agreed: int, nav: int, tolerance: int | None) -> None:
    """Reject orders priced away from NAV by more than `tolerance` cents."""
    if tolerance is not None and abs(agreed - nav) > tolerance:
        raise PriceMismatchError(agreed, nav)


def plan_trade(
    order: TradeOrder,
    entity: Entity,
    held_quantity: int,
    max_order_quantity: int,
    default_price: int,
    price_tolerance: int | None = None,
) -> NewLedgerEvent:
    """Build the ledger event for one order against the entity's current snapshot."""
    quantity = validate_quantity(order.side, order.quantity, held_quantity, max_order_quantity)
    if order.price_per_share <= 0:
        raise InvalidPriceError(order.price_per_share)

    before = compute_share_metrics(entity.market_cap, entity.shares_outstanding, default_price)
    check_price(order.price_per_share, before.share_price, price_tolerance)

    trade_amount = quantity * order.price_per_share
    if order.side == OrderSide.BUY:
        cap_after = before.market_cap + trade_amount
        event_type = LedgerEventType.SHARE_PURCHASE
        signed_quantity = quantity
        verb = "Bought"
    else:
        cap_after = before.market_cap - trade_amount
        if cap_after < 0:
            raise InsufficientCapitalError(trade_amount, before.market_cap)
        event_type = LedgerEventType.SHARE_SALE
        signed_quantity = -quantity
        verb = "Sold"

    after = compute_share_metrics(cap_after, entity.shares_outstanding, default_price)
    return NewLedgerEvent(
        entity_id=entity.id,
        event_type=event_type,
        trigger_event_id=order.order_id,
        trigger_event_type=TriggerEventType.ORDER,
        event_date=order.event_date,
        market_cap_before=before.market_cap,
        market_cap_after=after.market_cap,
        share_price_before=before.share_price,
        share_price_after=after.share_price,
        shares_outstanding=entity.shares_outstanding,
        price_impact=after.market_cap - before.market_cap,
        quantity=signed_quantity,
        trade_amount=trade_amount,
        holder_id=order.holder_id,
        description=(
            f"{verb} {quantity} shares of {entity.name} at "
            f"{cents_to_display(order.price_per_share)}"
        ),
    )
