"""Stop-loss, take-profit and risk/reward calculation — pure math, no I/O.

Offsets are ATR multiples chosen by trend strength:

    strong trend (ADX ≥ 25):  stop 2.0 × ATR, target 3.5 × ATR
    weak trend:               stop 1.5 × ATR, target 2.25 × ATR

A NEUTRAL direction has no levels at all.
"""

from dataclasses import dataclass
from typing import Optional

from signalforge.analysis.models import Direction
from signalforge.analysis.trend import STRONG_TREND_ADX
from signalforge.errors import DegenerateRiskError

STRONG_STOP_ATR_MULT = 2.0
STRONG_TARGET_ATR_MULT = 3.5
WEAK_STOP_ATR_MULT = 1.5
WEAK_TARGET_ATR_MULT = 2.25


@dataclass
class RiskLevels:
    """Computed stop-loss, take-profit and their ratio for one signal."""
    stop_loss: float
    take_profit: float
    risk_reward_ratio: float
    trend_strength: str  # "strong" or "weak"


def calculate_risk_reward(
    entry: float,
    stop_loss: float,
    take_profit: float,
    direction: Direction,
) -> float:
    """Return ``|target − entry| / |entry − stop|``.

    Raises:
        DegenerateRiskError: If the stop or target is non-positive, if
            the stop sits on or beyond the entry, or if the target is not
            on the profit side.
        ValueError: If *direction* is NEUTRAL or unknown.
    """
    if direction == "LONG":
        risk = entry - stop_loss
        reward = take_profit - entry
    elif direction == "SHORT":
        risk = stop_loss - entry
        reward = entry - take_profit
    else:
        raise ValueError(f"direction must be 'LONG' or 'SHORT', got '{direction}'")

    if stop_loss <= 0:
        raise DegenerateRiskError(f"stop_loss must be positive, got {stop_loss}")
    if take_profit <= 0:
        raise DegenerateRiskError(f"take_profit must be positive, got {take_profit}")
    if risk <= 0:
        raise DegenerateRiskError(
            f"Risk distance must be positive: entry={entry}, stop_loss={stop_loss}, "
            f"direction={direction}"
        )
    if reward <= 0:
        raise DegenerateRiskError(
            f"Reward distance must be positive: entry={entry}, "
            f"take_profit={take_profit}, direction={direction}"
        )
    return reward / risk


def calculate_atr_levels(
    entry: float,
    direction: Direction,
    atr: float,
    adx: Optional[float],
    strong_trend_adx: float = STRONG_TREND_ADX,
) -> Optional[RiskLevels]:
    """Place stop and target at ATR multiples from *entry*.

    Args:
        entry: Entry price (the current price).
        direction: ``"LONG"``, ``"SHORT"`` or ``"NEUTRAL"``.
        atr: Current ATR value.
        adx: Current ADX, or ``None`` when it could not be computed
            (treated as a weak trend).

    Returns:
        ``RiskLevels``, or ``None`` for a NEUTRAL direction.

    Raises:
        DegenerateRiskError: If the resulting stop is non-positive or the
            ATR gives no risk distance.
    """
    if direction == "NEUTRAL":
        return None

    if adx is not None and adx >= strong_trend_adx:
        stop_mult, target_mult, strength = STRONG_STOP_ATR_MULT, STRONG_TARGET_ATR_MULT, "strong"
    else:
        stop_mult, target_mult, strength = WEAK_STOP_ATR_MULT, WEAK_TARGET_ATR_MULT, "weak"

    if direction == "LONG":
        stop_loss = entry - stop_mult * atr
        take_profit = entry + target_mult * atr
    else:
        stop_loss = entry + stop_mult * atr
        take_profit = entry - target_mult * atr

    ratio = calculate_risk_reward(entry, stop_loss, take_profit, direction)
    return RiskLevels(
        stop_loss=stop_loss,
        take_profit=take_profit,
        risk_reward_ratio=ratio,
        trend_strength=strength,
    )
