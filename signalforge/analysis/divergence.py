"""Price/oscillator divergence detection — pure functions, no I/O.

Price pivots are 5-candle fractals (a low/high beyond its two neighbours on
each side).  Each of the two most recent price pivots is matched with an
oscillator pivot no more than ``tolerance`` candles away:

* bullish: price makes a lower low while the oscillator makes a higher low
* bearish: price makes a higher high while the oscillator makes a lower high
"""

import math
from typing import Optional, Sequence

from signalforge.analysis.indicators import calculate_macd, calculate_rsi
from signalforge.analysis.levels import find_swing_highs, find_swing_lows
from signalforge.analysis.models import Candle, PatternFormation
from signalforge.errors import InsufficientDataError

MIN_DIVERGENCE_CANDLES = 30
FRACTAL_WINDOW = 2


def _is_fractal(values: Sequence[float], i: int, window: int, cmp) -> bool:
    centre = values[i]
    if math.isnan(centre):
        return False
    for j in range(1, window + 1):
        left, right = values[i - j], values[i + j]
        if math.isnan(left) or math.isnan(right):
            return False
        if not (cmp(centre, left) and cmp(centre, right)):
            return False
    return True


def find_fractal_highs(values: Sequence[float], window: int = FRACTAL_WINDOW) -> list[int]:
    """Indices whose value is strictly above *window* neighbours on each side."""
    return [
        i for i in range(window, len(values) - window)
        if _is_fractal(values, i, window, lambda a, b: a > b)
    ]


def find_fractal_lows(values: Sequence[float], window: int = FRACTAL_WINDOW) -> list[int]:
    """Indices whose value is strictly below *window* neighbours on each side."""
    return [
        i for i in range(window, len(values) - window)
        if _is_fractal(values, i, window, lambda a, b: a < b)
    ]


def _nearest(indices: list[int], target: int, tolerance: int) -> Optional[int]:
    """Closest index to *target* within *tolerance*, earliest on ties."""
    close = [i for i in indices if abs(i - target) <= tolerance]
    if not close:
        return None
    return min(close, key=lambda i: (abs(i - target), i))


def _reliability(
    price_a: float,
    price_b: float,
    osc_a: float,
    osc_b: float,
    osc_range: float,
    spacing: int,
) -> float:
    """Score a divergence from its measurable size and pivot spacing."""
    price_move_pct = abs(price_b - price_a) / price_a * 100.0
    osc_move = abs(osc_b - osc_a) / osc_range if osc_range > 0 else 0.0
    spacing_score = 1.0 if 5 <= spacing <= 30 else 0.5
    score = (
        30.0
        + 30.0 * min(1.0, osc_move * 4.0)
        + 25.0 * min(1.0, price_move_pct / 5.0)
        + 15.0 * spacing_score
    )
    return round(min(100.0, score), 1)


def _oscillator_divergences(
    candles: list[Candle],
    oscillator: Sequence[float],
    label: str,
    tolerance: int,
    recency: int,
) -> list[PatternFormation]:
    n = len(candles)
    valid = [v for v in oscillator if not math.isnan(v)]
    osc_range = (max(valid) - min(valid)) if valid else 0.0
    found: list[PatternFormation] = []

    price_lows = find_swing_lows(candles, window=FRACTAL_WINDOW)
    if len(price_lows) >= 2 and price_lows[-1] >= n - recency:
        p1, p2 = price_lows[-2], price_lows[-1]
        osc_lows = find_fractal_lows(oscillator)
        o1 = _nearest(osc_lows, p1, tolerance)
        o2 = _nearest(osc_lows, p2, tolerance)
        if (
            o1 is not None and o2 is not None and o1 != o2
            and candles[p2].low < candles[p1].low
            and oscillator[o2] > oscillator[o1]
        ):
            found.append(PatternFormation(
                name=f"{label.lower()}_bullish_divergence",
                direction="bullish",
                reliability=_reliability(
                    candles[p1].low, candles[p2].low,
                    oscillator[o1], oscillator[o2], osc_range, p2 - p1,
                ),
                projected_price=max(c.high for c in candles[p1 : p2 + 1]),
                description=(
                    f"Bullish {label} divergence: price low {candles[p1].low:.4f} → "
                    f"{candles[p2].low:.4f}, {label} {oscillator[o1]:.2f} → {oscillator[o2]:.2f}"
                ),
                index=p2,
            ))

    price_highs = find_swing_highs(candles, window=FRACTAL_WINDOW)
    if len(price_highs) >= 2 and price_highs[-1] >= n - recency:
        p1, p2 = price_highs[-2], price_highs[-1]
        osc_highs = find_fractal_highs(oscillator)
        o1 = _nearest(osc_highs, p1, tolerance)
        o2 = _nearest(osc_highs, p2, tolerance)
        if (
            o1 is not None and o2 is not None and o1 != o2
            and candles[p2].high > candles[p1].high
            and oscillator[o2] < oscillator[o1]
        ):
            found.append(PatternFormation(
                name=f"{label.lower()}_bearish_divergence",
                direction="bearish",
                reliability=_reliability(
                    candles[p1].high, candles[p2].high,
                    oscillator[o1], oscillator[o2], osc_range, p2 - p1,
                ),
                projected_price=min(c.low for c in candles[p1 : p2 + 1]),
                description=(
                    f"Bearish {label} divergence: price high {candles[p1].high:.4f} → "
                    f"{candles[p2].high:.4f}, {label} {oscillator[o1]:.2f} → {oscillator[o2]:.2f}"
                ),
                index=p2,
            ))

    return found


def detect_divergences(
    candles: list[Candle],
    rsi_period: int = 14,
    tolerance: int = 2,
    recency: int = 10,
) -> list[PatternFormation]:
    """Detect RSI and MACD divergences over the candle window.

    Args:
        candles: Candle history, oldest-first (at least 30).
        rsi_period: RSI lookback.
        tolerance: Maximum index distance between a price pivot and its
            oscillator pivot.
        recency: The later price pivot must sit within this many candles
            of the end of the window.

    MACD divergences are only checked once the window covers the MACD
    lookback.
    """
    if len(candles) < MIN_DIVERGENCE_CANDLES:
        raise InsufficientDataError(
            "divergence", MIN_DIVERGENCE_CANDLES, len(candles)
        )

    closes = [c.close for c in candles]
    found = _oscillator_divergences(
        candles, calculate_rsi(closes, rsi_period), "RSI", tolerance, recency,
    )
    try:
        macd = calculate_macd(closes)
    except InsufficientDataError:
        return found
    found.extend(
        _oscillator_divergences(candles, macd.macd, "MACD", tolerance, recency)
    )
    return found
