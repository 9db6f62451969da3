"""Integer arithmetic utilities for cents-based valuations.

All market caps, share prices and trade amounts are int (cents). Decimal is
only used at the I/O boundary (to_cents / from_cents) and for exact ratios
such as average cost and percentages. Floats never enter a computation.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_HUNDRED = Decimal(100)
_TWO_PLACES = Decimal("0.01")


def to_cents(amount: Decimal | str | int) -> int:
    """Convert a major-unit amount to cents, rounding half up: '12.345' -> 1235."""
    if isinstance(amount, bool) or isinstance(amount, float):
        raise TypeError(f"Monetary amounts must be Decimal, str or int, got {type(amount).__name__}")
    try:
        value = Decimal(amount)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Not a monetary amount: {amount!r}")
    return int((value * _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert cents to an exact major-unit Decimal: 1235 -> Decimal('12.35')."""
    return (Decimal(cents) / _HUNDRED).quantize(_TWO_PLACES)


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"


def div_round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero: 7 / 2 -> 4, -7 / 2 -> -4."""
    if denominator == 0:
        raise ZeroDivisionError("division by zero")
    sign = -1 if (numerator < 0) != (denominator < 0) else 1
    n, d = abs(numerator), abs(denominator)
    return sign * ((2 * n + d) // (2 * d))


def apply_bps(cents: int, bps: int) -> int:
    """Take bps basis points of an amount, truncating: cents * bps // 10000."""
    if cents < 0 or bps < 0:
        raise ValueError(f"apply_bps expects non-negative inputs, got {cents}, {bps}")
    return cents * bps // 10000


def normalize_percent(value: Decimal, epsilon: Decimal) -> Decimal:
    """Clamp near-zero percentages to exactly 0.00 so rounding noise never shows."""
    if abs(value) < epsilon:
        return Decimal(0)
    return value


def percent_change(current: int, previous: int, epsilon: Decimal = _TWO_PLACES) -> Decimal:
    """Percent change from previous to current, 2 places, 0 when previous <= 0."""
    if previous <= 0:
        return Decimal("0.00")
    raw = Decimal(current - previous) * _HUNDRED / Decimal(previous)
    return normalize_percent(raw, epsilon).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
