"""Share price (NAV) metrics — pure, no I/O.

Fixed-shares model: sharePrice = marketCap / sharesOutstanding, rounded half
up to the cent. Used by settlement and trades as the last step before an
event is built, and by every read path, so the rounding point is the same
everywhere.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.tv_common.cents import div_round_half_up, percent_change


@dataclass(frozen=True)
class SharePrice:
    market_cap: int          # cents
    shares_outstanding: int
    share_price: int         # cents per share


def compute_share_metrics(
    market_cap: int, shares_outstanding: int, default_price: int
) -> SharePrice:
    """NAV per share; default_price when there are no shares to divide by."""
    if shares_outstanding > 0:
        price = div_round_half_up(market_cap, shares_outstanding)
    else:
        price = default_price
    return SharePrice(
        market_cap=market_cap,
        shares_outstanding=shares_outstanding,
        share_price=price,
    )


def price_impact_percent(
    market_cap_before: int, market_cap_after: int, epsilon: Decimal
) -> Decimal:
    """Market cap move of a single event, as a percentage."""
    return percent_change(market_cap_after, market_cap_before, epsilon)


def lifetime_change_percent(current_price: int, launch_price: int, epsilon: Decimal) -> Decimal:
    """Gain/loss since launch, the headline figure on every club card."""
    return percent_change(current_price, launch_price, epsilon)


def matchday_change_percent(
    price_after_last_match: int, price_after_previous_match: int, epsilon: Decimal
) -> Decimal:
    return percent_change(price_after_last_match, price_after_previous_match, epsilon)
