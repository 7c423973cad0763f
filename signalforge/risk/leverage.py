"""Leverage tiers and take-profit ladders — pure math, no I/O."""

from signalforge.analysis.models import Direction
from signalforge.errors import DegenerateRiskError

# Hard ceiling, applied after any configured maximum.
MAX_LEVERAGE = 10

# (minimum confidence, leverage), highest first.
LEVERAGE_TIERS = (
    (85.0, 5),
    (75.0, 4),
    (65.0, 3),
    (55.0, 2),
)

TAKE_PROFIT_SCALES = (0.8, 1.0, 1.2)


def leverage_for_confidence(confidence: float, max_leverage: int = 5) -> int:
    """Map a confidence score to a leverage multiplier.

    Monotonic in *confidence*; the result is at least 1 and never exceeds
    *max_leverage* or ``MAX_LEVERAGE``.

    Raises:
        ValueError: If *max_leverage* is below 1.
    """
    if max_leverage < 1:
        raise ValueError(f"max_leverage must be at least 1, got {max_leverage}")

    leverage = 1
    for threshold, tier in LEVERAGE_TIERS:
        if confidence >= threshold:
            leverage = tier
            break
    return min(leverage, max_leverage, MAX_LEVERAGE)


def scale_take_profits(
    entry: float,
    take_profit: float,
    direction: Direction,
    scales: tuple[float, ...] = TAKE_PROFIT_SCALES,
) -> tuple[float, ...]:
    """Scale the single target distance into a ladder of take-profits.

    Raises:
        DegenerateRiskError: If any rung of the ladder is non-positive.
        ValueError: If *direction* is NEUTRAL or unknown.
    """
    if direction not in ("LONG", "SHORT"):
        raise ValueError(f"direction must be 'LONG' or 'SHORT', got '{direction}'")
    distance = abs(take_profit - entry)
    sign = 1.0 if direction == "LONG" else -1.0
    ladder = tuple(entry + sign * distance * scale for scale in scales)
    if min(ladder) <= 0:
        raise DegenerateRiskError(
            f"Take-profit ladder reaches a non-positive price: {ladder}"
        )
    return ladder
