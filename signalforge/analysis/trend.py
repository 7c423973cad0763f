"""Trend detection — EMA-based directional bias and market regime.

Provides two readings:
- ``detect_trend()``: Classical dual-EMA crossover with price position.
- ``classify_regime()``: trending / ranging / volatile, from ADX strength
  and Bollinger bandwidth.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from signalforge.analysis.indicators import calculate_ema
from signalforge.analysis.models import Candle, Regime


@dataclass(frozen=True)
class TrendState:
    """Snapshot of the current trend direction and EMA values."""

    direction: Literal["bullish", "bearish", "flat"]
    ema_fast_value: float
    ema_slow_value: float
    slope: float  # ema_fast - ema_slow (positive = bullish bias)


def detect_trend(
    candles: list[Candle],
    ema_fast: int = 21,
    ema_slow: int = 50,
) -> TrendState:
    """Classify trend direction using dual-EMA crossover and price position.

    Args:
        candles: Candle history, oldest-first.  Must hold at least
            *ema_slow* candles, otherwise ``InsufficientDataError`` is
            raised by the EMA.
        ema_fast: Fast EMA period (default 21).
        ema_slow: Slow EMA period (default 50).

    Rules:
        - **Bullish**: EMA(fast) > EMA(slow) AND price > EMA(fast).
        - **Bearish**: EMA(fast) < EMA(slow) AND price < EMA(fast).
        - **Flat**: everything else (EMAs crossing, price between EMAs).
    """
    closes = [c.close for c in candles]
    slow_values = calculate_ema(closes, ema_slow)
    fast_values = calculate_ema(closes, ema_fast)

    ema_f = fast_values[-1]
    ema_s = slow_values[-1]
    price = closes[-1]
    slope = ema_f - ema_s

    if ema_f > ema_s and price > ema_f:
        direction = "bullish"
    elif ema_f < ema_s and price < ema_f:
        direction = "bearish"
    else:
        direction = "flat"

    return TrendState(
        direction=direction,
        ema_fast_value=ema_f,
        ema_slow_value=ema_s,
        slope=slope,
    )


STRONG_TREND_ADX = 25.0
VOLATILE_BANDWIDTH = 0.10


def classify_regime(
    adx: Optional[float],
    bandwidth: Optional[float],
    strong_trend_adx: float = STRONG_TREND_ADX,
    volatile_bandwidth: float = VOLATILE_BANDWIDTH,
) -> Regime:
    """Classify the market regime.

    ``bandwidth`` is (upper − lower) / middle of the Bollinger Bands.
    A wide band wins over trend strength; ADX at or above
    *strong_trend_adx* is trending; everything else (including missing
    readings) is ranging.
    """
    if bandwidth is not None and bandwidth >= volatile_bandwidth:
        return "volatile"
    if adx is not None and adx >= strong_trend_adx:
        return "trending"
    return "ranging"
