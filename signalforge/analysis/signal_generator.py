"""Per-timeframe signal generation — pure functions, no I/O.

One call turns a validated candle series for a single (symbol, timeframe)
into a ``TimeframeSignal``:

1. Validate the series and its freshness.
2. Collect indicator votes.  An indicator whose lookback is not covered
   by the series is skipped, never approximated.
3. Weighted vote → direction; confidence from vote agreement.
4. ATR-scaled stop/target and risk/reward for LONG/SHORT.
5. Support/resistance (swing clusters + Fibonacci) and market regime.
"""

import math
from datetime import datetime, timezone
from typing import Callable, Optional

from signalforge.analysis.candles import check_freshness, validate_candles
from signalforge.analysis.divergence import detect_divergences
from signalforge.analysis.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    fibonacci_from_candles,
)
from signalforge.analysis.levels import detect_sr_levels, split_levels
from signalforge.analysis.models import (
    Candle,
    IndicatorResult,
    PatternFormation,
    SRLevel,
    Strength,
    TimeframeSignal,
    get_timeframe,
)
from signalforge.analysis.patterns import detect_candlestick_patterns
from signalforge.analysis.trend import classify_regime, detect_trend
from signalforge.errors import InsufficientDataError, InvalidCandleError
from signalforge.risk.levels import calculate_atr_levels
from signalforge.scoring.confidence import compute_confidence, decide_direction

MIN_INDICATORS = 3
VOLUME_SURGE_RATIO = 1.5
FIB_LEVEL_KEYS = (38.2, 50.0, 61.8)


# ── Trend votes ──────────────────────────────────────────────────────────


def _ema_cross(candles: list[Candle]) -> IndicatorResult:
    trend = detect_trend(candles, ema_fast=21, ema_slow=50)
    price = candles[-1].close
    gap_pct = abs(trend.slope) / price * 100.0
    if gap_pct >= 1.0:
        strength: Strength = "STRONG"
    elif gap_pct >= 0.3:
        strength = "MODERATE"
    else:
        strength = "WEAK"
    signal = {"bullish": "BUY", "bearish": "SELL"}.get(trend.direction, "NEUTRAL")
    return IndicatorResult(
        name="EMA_CROSS",
        category="trend",
        value=trend.slope,
        signal=signal,
        strength=strength,
        detail=(
            f"EMA21 {trend.ema_fast_value:.4f} vs EMA50 {trend.ema_slow_value:.4f} "
            f"({trend.direction})"
        ),
    )


def _ema_200(candles: list[Candle]) -> IndicatorResult:
    closes = [c.close for c in candles]
    ema = calculate_ema(closes, 200)[-1]
    distance_pct = (closes[-1] - ema) / ema * 100.0
    if abs(distance_pct) >= 3.0:
        strength: Strength = "STRONG"
    elif abs(distance_pct) >= 1.0:
        strength = "MODERATE"
    else:
        strength = "WEAK"
    if distance_pct > 0:
        signal = "BUY"
    elif distance_pct < 0:
        signal = "SELL"
    else:
        signal = "NEUTRAL"
    return IndicatorResult(
        name="EMA_200",
        category="trend",
        value=ema,
        signal=signal,
        strength=strength,
        detail=f"Price {distance_pct:+.2f}% from EMA200",
    )


def _macd(candles: list[Candle]) -> IndicatorResult:
    result = calculate_macd([c.close for c in candles])
    hist, prev_hist = result.histogram[-1], result.histogram[-2]
    line = result.macd[-1]
    if hist > 0:
        signal = "BUY"
    elif hist < 0:
        signal = "SELL"
    else:
        signal = "NEUTRAL"

    crossed = (
        not math.isnan(prev_hist)
        and hist != 0
        and (hist > 0) != (prev_hist > 0)
    )
    if crossed:
        strength: Strength = "STRONG"
    elif (line > 0) == (hist > 0):
        strength = "MODERATE"
    else:
        strength = "WEAK"
    return IndicatorResult(
        name="MACD",
        category="trend",
        value=hist,
        signal=signal,
        strength=strength,
        detail=f"MACD {line:.4f}, histogram {hist:+.4f}" + (" (fresh cross)" if crossed else ""),
    )


def _adx(candles: list[Candle]) -> IndicatorResult:
    adx, plus_di, minus_di = calculate_adx(candles)
    value, plus, minus = adx[-1], plus_di[-1], minus_di[-1]
    if value >= 40:
        strength: Strength = "STRONG"
    elif value >= 25:
        strength = "MODERATE"
    else:
        strength = "WEAK"
    if value < 20 or plus == minus:
        signal = "NEUTRAL"
    else:
        signal = "BUY" if plus > minus else "SELL"
    return IndicatorResult(
        name="ADX",
        category="trend",
        value=value,
        signal=signal,
        strength=strength,
        detail=f"ADX {value:.1f}, +DI {plus:.1f} / -DI {minus:.1f}",
    )


# ── Momentum votes ───────────────────────────────────────────────────────


def _rsi(candles: list[Candle]) -> IndicatorResult:
    value = calculate_rsi([c.close for c in candles])[-1]
    if value <= 20:
        signal, strength, note = "BUY", "STRONG", "deeply oversold"
    elif value <= 30:
        signal, strength, note = "BUY", "MODERATE", "oversold"
    elif value >= 80:
        signal, strength, note = "SELL", "STRONG", "deeply overbought"
    elif value >= 70:
        signal, strength, note = "SELL", "MODERATE", "overbought"
    elif value > 55:
        signal, strength, note = "BUY", "WEAK", "bullish momentum"
    elif value < 45:
        signal, strength, note = "SELL", "WEAK", "bearish momentum"
    else:
        signal, strength, note = "NEUTRAL", "WEAK", "neutral"
    return IndicatorResult(
        name="RSI",
        category="momentum",
        value=value,
        signal=signal,
        strength=strength,
        detail=f"RSI {value:.1f} ({note})",
    )


def _stochastic(candles: list[Candle]) -> IndicatorResult:
    k_values, d_values = calculate_stochastic(candles)
    k, d = k_values[-1], d_values[-1]
    if k < 20:
        signal, strength = "BUY", ("STRONG" if k > d else "MODERATE")
    elif k > 80:
        signal, strength = "SELL", ("STRONG" if k < d else "MODERATE")
    elif k > d:
        signal, strength = "BUY", "WEAK"
    elif k < d:
        signal, strength = "SELL", "WEAK"
    else:
        signal, strength = "NEUTRAL", "WEAK"
    return IndicatorResult(
        name="STOCHASTIC",
        category="momentum",
        value=k,
        signal=signal,
        strength=strength,
        detail=f"%K {k:.1f}, %D {d:.1f}",
    )


# ── Volatility / volume votes ────────────────────────────────────────────


def _bollinger(candles: list[Candle]) -> IndicatorResult:
    upper, middle, lower = calculate_bollinger([c.close for c in candles])
    price = candles[-1].close
    width = upper[-1] - lower[-1]
    percent_b = 0.5 if width == 0 else (price - lower[-1]) / width
    if percent_b <= 0:
        signal, strength = "BUY", "STRONG"
    elif percent_b < 0.2:
        signal, strength = "BUY", "MODERATE"
    elif percent_b >= 1:
        signal, strength = "SELL", "STRONG"
    elif percent_b > 0.8:
        signal, strength = "SELL", "MODERATE"
    else:
        signal, strength = "NEUTRAL", "WEAK"
    return IndicatorResult(
        name="BOLLINGER",
        category="volatility",
        value=percent_b,
        signal=signal,
        strength=strength,
        detail=f"%B {percent_b:.2f}, bandwidth {width / middle[-1]:.3f}",
    )


def _volume(candles: list[Candle]) -> IndicatorResult:
    volumes = [c.volume for c in candles]
    average = calculate_sma(volumes, 20)[-1]
    last = candles[-1]
    ratio = last.volume / average if average > 0 else 0.0
    if ratio >= VOLUME_SURGE_RATIO and last.close != last.open:
        signal = "BUY" if last.close > last.open else "SELL"
        strength: Strength = "STRONG" if ratio >= 2.5 else "MODERATE"
    else:
        signal, strength = "NEUTRAL", "WEAK"
    return IndicatorResult(
        name="VOLUME",
        category="volume",
        value=ratio,
        signal=signal,
        strength=strength,
        detail=f"Volume {ratio:.2f}x its 20-bar average",
    )


_INDICATOR_VOTES: tuple[Callable[[list[Candle]], IndicatorResult], ...] = (
    _ema_cross,
    _ema_200,
    _macd,
    _adx,
    _rsi,
    _stochastic,
    _bollinger,
    _volume,
)


# ── Pattern votes ────────────────────────────────────────────────────────


def _pattern_vote(pattern: PatternFormation) -> IndicatorResult:
    if pattern.reliability >= 75:
        strength: Strength = "STRONG"
    elif pattern.reliability >= 50:
        strength = "MODERATE"
    else:
        strength = "WEAK"
    signal = {"bullish": "BUY", "bearish": "SELL"}.get(pattern.direction, "NEUTRAL")
    return IndicatorResult(
        name=pattern.name.upper(),
        category="pattern",
        value=pattern.reliability,
        signal=signal,
        strength=strength,
        detail=pattern.description,
    )


def detect_formations(candles: list[Candle]) -> list[PatternFormation]:
    """Candlestick formations and divergences the window is long enough for."""
    formations: list[PatternFormation] = []
    for detector in (detect_candlestick_patterns, detect_divergences):
        try:
            formations.extend(detector(candles))
        except InsufficientDataError:
            continue
    return formations


def collect_indicators(candles: list[Candle]) -> list[IndicatorResult]:
    """Every indicator vote whose lookback the series covers."""
    results: list[IndicatorResult] = []
    for vote in _INDICATOR_VOTES:
        try:
            results.append(vote(candles))
        except InsufficientDataError:
            continue
    return results


# ── Levels / regime ──────────────────────────────────────────────────────


def _price_levels(candles: list[Candle]) -> list[SRLevel]:
    levels = detect_sr_levels(candles)
    try:
        fib = fibonacci_from_candles(candles)
    except InsufficientDataError:
        return levels
    for key in FIB_LEVEL_KEYS:
        levels.append(SRLevel(level_type="fibonacci", price=fib.retracements[key], strength=1))
    return levels


def _latest_adx(candles: list[Candle]) -> Optional[float]:
    try:
        return calculate_adx(candles)[0][-1]
    except InsufficientDataError:
        return None


def _latest_bandwidth(candles: list[Candle]) -> Optional[float]:
    try:
        upper, middle, lower = calculate_bollinger([c.close for c in candles])
    except InsufficientDataError:
        return None
    return (upper[-1] - lower[-1]) / middle[-1]


# ── Public entry point ───────────────────────────────────────────────────


def generate_signal(
    symbol: str,
    timeframe: str,
    candles: list[Candle],
    current_price: float,
    utc_now: Optional[datetime] = None,
    stale_after_bars: int = 3,
) -> TimeframeSignal:
    """Compute the signal for one (symbol, timeframe).

    Args:
        symbol: Instrument symbol, e.g. ``"BTCUSDT"``.
        timeframe: Timeframe name from the hierarchy table.
        candles: Candle series, oldest-first.
        current_price: Latest reference price, used as the entry.
        utc_now: Clock for the freshness check and the signal timestamp.
        stale_after_bars: Freshness threshold in candle intervals.

    Raises:
        KeyError: Unknown timeframe.
        InvalidCandleError: The series breaks an OHLC or ordering rule,
            or *current_price* is not positive.
        StaleDataError: The newest candle is too old.
        InsufficientDataError: Fewer than ``MIN_INDICATORS`` indicators
            could be computed, or the ATR window is not covered.
        DegenerateRiskError: The ATR offsets give no usable risk distance.
    """
    tf = get_timeframe(timeframe)
    if utc_now is None:
        utc_now = datetime.now(timezone.utc)
    if current_price <= 0:
        raise InvalidCandleError(f"current_price must be positive, got {current_price}")

    validate_candles(candles)
    check_freshness(candles, tf, utc_now, stale_after_bars)

    formations = detect_formations(candles)
    indicators = collect_indicators(candles)
    indicators.extend(_pattern_vote(p) for p in formations)
    if len(indicators) < MIN_INDICATORS:
        raise InsufficientDataError("signal indicators", MIN_INDICATORS, len(indicators))

    atr = calculate_atr(candles)
    adx = _latest_adx(candles)

    direction = decide_direction(indicators)
    confidence = compute_confidence(indicators, direction)
    risk = calculate_atr_levels(current_price, direction, atr, adx)

    supports, resistances = split_levels(_price_levels(candles), current_price)

    return TimeframeSignal(
        symbol=symbol,
        timeframe=tf.name,
        direction=direction,
        confidence=confidence,
        raw_direction=direction,
        raw_confidence=confidence,
        entry_price=current_price,
        stop_loss=risk.stop_loss if risk else None,
        take_profit=risk.take_profit if risk else None,
        risk_reward_ratio=risk.risk_reward_ratio if risk else None,
        atr=atr,
        regime=classify_regime(adx, _latest_bandwidth(candles)),
        indicators=tuple(indicators),
        patterns=tuple(formations),
        support_levels=supports,
        resistance_levels=resistances,
        timestamp=utc_now,
    )
