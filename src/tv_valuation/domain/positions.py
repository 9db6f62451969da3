"""Position & P&L aggregation over a holder's trade events.

quantity      = sum of signed quantities
net_invested  = sum of purchase amounts - sum of sale proceeds
average_cost  = net_invested / quantity   (exact Decimal, 0 when flat)
unrealized    = quantity * current_price - net_invested

Sale proceeds reduce net_invested, so realized gains from partial sells are
folded into the single P&L figure; no separate realized balance is kept.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from src.tv_common.cents import normalize_percent
from src.tv_common.enums import LedgerEventType
from src.tv_ledger.domain.models import LedgerEvent

_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class Position:
    holder_id: str
    entity_id: str
    quantity: int
    net_invested: int          # cents
    total_bought: int          # cents spent on purchases
    total_sold: int            # cents received from sales
    trade_count: int
    current_share_price: int   # cents
    pnl_percent: Decimal

    @property
    def average_cost(self) -> Decimal:
        """Exact cost per share in cents; round(average_cost * quantity) == net_invested."""
        if self.quantity == 0:
            return Decimal(0)
        return Decimal(self.net_invested) / Decimal(self.quantity)

    @property
    def average_cost_cents(self) -> int:
        """Average cost rounded to the cent, for display only."""
        return int(self.average_cost.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    @property
    def market_value(self) -> int:
        return self.quantity * self.current_share_price

    @property
    def unrealized_pnl(self) -> int:
        return self.market_value - self.net_invested


@dataclass(frozen=True)
class PortfolioSummary:
    holder_id: str
    positions: list[Position]
    total_invested: int
    total_market_value: int
    total_pnl: int
    pnl_percent: Decimal


def pnl_percent(pnl: int, invested: int, epsilon: Decimal) -> Decimal:
    """P&L relative to net invested; 0 when nothing is at risk."""
    if invested <= 0:
        return Decimal("0.00")
    raw = Decimal(pnl) * 100 / Decimal(invested)
    return normalize_percent(raw, epsilon).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def aggregate_position(
    holder_id: str,
    entity_id: str,
    trades: Iterable[LedgerEvent],
    current_share_price: int,
    epsilon: Decimal = _TWO_PLACES,
) -> Position:
    """Reduce a holder's trade events in one entity into a Position."""
    quantity = 0
    total_bought = 0
    total_sold = 0
    count = 0
    for event in trades:
        if event.entity_id != entity_id or event.holder_id != holder_id:
            continue
        if event.event_type == LedgerEventType.SHARE_PURCHASE:
            total_bought += event.trade_amount
        elif event.event_type == LedgerEventType.SHARE_SALE:
            total_sold += event.trade_amount
        else:
            continue
        quantity += event.quantity
        count += 1

    net_invested = total_bought - total_sold
    pnl = quantity * current_share_price - net_invested
    return Position(
        holder_id=holder_id,
        entity_id=entity_id,
        quantity=quantity,
        net_invested=net_invested,
        total_bought=total_bought,
        total_sold=total_sold,
        trade_count=count,
        current_share_price=current_share_price,
        pnl_percent=pnl_percent(pnl, net_invested, epsilon),
    )


def summarize_portfolio(
    holder_id: str, positions: Iterable[Position], epsilon: Decimal = _TWO_PLACES
) -> PortfolioSummary:
    held = [p for p in positions if p.quantity != 0 or p.trade_count]
    invested = sum(p.net_invested for p in held)
    value = sum(p.market_value for p in held)
    return PortfolioSummary(
        holder_id=holder_id,
        positions=held,
        total_invested=invested,
        total_market_value=value,
        total_pnl=value - invested,
        pnl_percent=pnl_percent(value - invested, invested, epsilon),
    )
