"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger, Stochastic, ADX, ATR,
Fibonacci.  Pure functions, no I/O.

Series functions return a list the same length as their input, with
``float('nan')`` in the positions before the indicator is ready.  A series
shorter than the indicator's lookback raises ``InsufficientDataError``;
nothing is ever estimated from a partial window.
"""

import math
from dataclasses import dataclass
from typing import Callable, Sequence

from signalforge.analysis.models import Candle
from signalforge.errors import InsufficientDataError

NAN = float("nan")


def _check_period(name: str, period: int) -> None:
    if period < 1:
        raise ValueError(f"{name} period must be positive, got {period}")


def _require(name: str, required: int, got: int) -> None:
    if got < required:
        raise InsufficientDataError(name, required, got)


def _on_valid_tail(
    values: Sequence[float],
    period: int,
    fn: Callable[[Sequence[float], int], list[float]],
) -> list[float]:
    """Apply *fn* to the part of *values* after its leading NaNs, re-pad."""
    start = 0
    while start < len(values) and math.isnan(values[start]):
        start += 1
    return [NAN] * start + fn(values[start:], period)


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(values: Sequence[float], period: int) -> list[float]:
    """Simple moving average.  Requires at least *period* values."""
    _check_period("SMA", period)
    _require(f"SMA({period})", period, len(values))

    sma: list[float] = [NAN] * len(values)
    window_sum = sum(values[:period])
    sma[period - 1] = window_sum / period
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        sma[i] = window_sum / period
    return sma


def calculate_ema(values: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    values.  Requires at least *period* values.
    """
    _check_period("EMA", period)
    _require(f"EMA({period})", period, len(values))

    k = 2.0 / (period + 1)
    ema: list[float] = [NAN] * len(values)

    # Seed: SMA of first *period* values
    ema[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(closes: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    Requires at least ``period + 1`` closes.  The first *period* entries
    are ``nan``.
    """
    _check_period("RSI", period)
    _require(f"RSI({period})", period + 1, len(closes))

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [NAN] * len(closes)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            # No losses: fully overbought, or flat when there were no gains either
            return 50.0 if ag == 0 else 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # Index in rsi is i+1 because deltas are offset by 1
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MACDResult:
    """MACD line, signal line and histogram, each aligned to the input."""

    macd: list[float]
    signal: list[float]
    histogram: list[float]


def calculate_macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult:
    """Calculate MACD = EMA(fast) − EMA(slow), its signal-line EMA and the
    histogram (MACD − signal).

    Requires at least ``slow + signal - 1`` closes.
    """
    _check_period("MACD signal", signal)
    if fast >= slow:
        raise ValueError(f"MACD fast period ({fast}) must be below slow ({slow})")
    name = f"MACD({fast},{slow},{signal})"
    _require(name, slow + signal - 1, len(closes))

    fast_ema = calculate_ema(closes, fast)
    slow_ema = calculate_ema(closes, slow)
    macd_line = [
        f - s if not math.isnan(s) else NAN
        for f, s in zip(fast_ema, slow_ema)
    ]
    signal_line = _on_valid_tail(macd_line, signal, calculate_ema)
    histogram = [
        m - s if not math.isnan(s) else NAN
        for m, s in zip(macd_line, signal_line)
    ]
    return MACDResult(macd=macd_line, signal=signal_line, histogram=histogram)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    closes: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    Requires at least *period* closes.

    Returns ``(upper, middle, lower)``.
    """
    _check_period("Bollinger", period)
    _require(f"Bollinger({period})", period, len(closes))

    n = len(closes)
    upper: list[float] = [NAN] * n
    middle: list[float] = [NAN] * n
    lower: list[float] = [NAN] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        sma = sum(window) / period
        variance = sum((x - sma) ** 2 for x in window) / period
        sigma = math.sqrt(variance)

        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(
    candles: Sequence[Candle],
    period: int = 14,
    smooth_k: int = 3,
    smooth_d: int = 3,
) -> tuple[list[float], list[float]]:
    """Calculate the slow Stochastic oscillator.

    raw %K = 100 × (close − lowest low) / (highest high − lowest low)
    %K     = SMA(*smooth_k*) of raw %K
    %D     = SMA(*smooth_d*) of %K

    A window with no range (highest high == lowest low) reads 50.
    Requires at least ``period + smooth_k + smooth_d - 2`` candles.

    Returns ``(k, d)``.
    """
    _check_period("Stochastic", period)
    _check_period("Stochastic %K smoothing", smooth_k)
    _check_period("Stochastic %D smoothing", smooth_d)
    _require(
        f"Stochastic({period},{smooth_k},{smooth_d})",
        period + smooth_k + smooth_d - 2,
        len(candles),
    )

    raw_k: list[float] = [NAN] * len(candles)
    for i in range(period - 1, len(candles)):
        window = candles[i - period + 1 : i + 1]
        highest = max(c.high for c in window)
        lowest = min(c.low for c in window)
        if highest == lowest:
            raw_k[i] = 50.0
        else:
            raw_k[i] = 100.0 * (candles[i].close - lowest) / (highest - lowest)

    k = _on_valid_tail(raw_k, smooth_k, calculate_sma)
    d = _on_valid_tail(k, smooth_d, calculate_sma)
    return k, d


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(
    candles: Sequence[Candle],
    period: int = 14,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate the Average Directional Index with its +DI / −DI lines.

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. +DI = 100 × smoothed_+DM / smoothed_TR
        4. -DI = 100 × smoothed_-DM / smoothed_TR
        5. DX = 100 × |+DI − −DI| / (+DI + −DI)
        6. ADX = Wilder-smoothed DX over *period*.

    Requires at least ``2 × period + 1`` candles.

    Returns ``(adx, plus_di, minus_di)``, each the same length as
    *candles*.
    """
    _check_period("ADX", period)
    _require(f"ADX({period})", 2 * period + 1, len(candles))

    n = len(candles)

    plus_dm_raw: list[float] = [0.0]
    minus_dm_raw: list[float] = [0.0]
    tr_raw: list[float] = [0.0]

    for i in range(1, n):
        high = candles[i].high
        low = candles[i].low
        prev_high = candles[i - 1].high
        prev_low = candles[i - 1].low
        prev_close = candles[i - 1].close

        up_move = high - prev_high
        down_move = prev_low - low

        pdm = up_move if (up_move > down_move and up_move > 0) else 0.0
        mdm = down_move if (down_move > up_move and down_move > 0) else 0.0
        tr = max(high - low, abs(high - prev_close), abs(low - prev_close))

        plus_dm_raw.append(pdm)
        minus_dm_raw.append(mdm)
        tr_raw.append(tr)

    # Wilder sums seeded over indices 1..period
    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    plus_di: list[float] = [NAN] * n
    minus_di: list[float] = [NAN] * n
    dx_values: list[float] = []

    def _record(i: int, s_pdm: float, s_mdm: float, s_tr: float) -> None:
        if s_tr == 0:
            p, m = 0.0, 0.0
        else:
            p = 100.0 * s_pdm / s_tr
            m = 100.0 * s_mdm / s_tr
        plus_di[i] = p
        minus_di[i] = m
        di_sum = p + m
        dx_values.append(0.0 if di_sum == 0 else 100.0 * abs(p - m) / di_sum)

    _record(period, smoothed_plus_dm, smoothed_minus_dm, smoothed_tr)

    for i in range(period + 1, n):
        smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
        smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
        smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]
        _record(i, smoothed_plus_dm, smoothed_minus_dm, smoothed_tr)

    # dx_values[0] belongs to candle index *period*; the ADX seed averages
    # the first *period* DX values and lands on candle index 2*period - 1.
    adx: list[float] = [NAN] * n
    adx_prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = adx_prev

    for j in range(period, len(dx_values)):
        adx_prev = (adx_prev * (period - 1) + dx_values[j]) / period
        adx[period + j] = adx_prev

    return adx, plus_di, minus_di


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_true_ranges(candles: Sequence[Candle]) -> list[float]:
    """True range of every candle after the first.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    return [
        max(
            candles[i].high - candles[i].low,
            abs(candles[i].high - candles[i - 1].close),
            abs(candles[i].low - candles[i - 1].close),
        )
        for i in range(1, len(candles))
    ]


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Calculate the Wilder-smoothed Average True Range.

    The seed is the mean of the first *period* true ranges; each later
    true range is blended in as ``(atr × (period-1) + tr) / period``.

    Requires at least ``period + 1`` candles (need a previous close for TR).
    Returns the latest ATR value.
    """
    _check_period("ATR", period)
    _require(f"ATR({period})", period + 1, len(candles))

    true_ranges = calculate_true_ranges(candles)
    atr = sum(true_ranges[:period]) / period
    for tr in true_ranges[period:]:
        atr = (atr * (period - 1) + tr) / period
    return atr


# ── Fibonacci ────────────────────────────────────────────────────────────

FIB_RETRACEMENT_RATIOS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
FIB_EXTENSION_RATIOS = (1.272, 1.618, 2.618)


@dataclass(frozen=True)
class FibonacciLevels:
    """Retracement and extension prices keyed by percentage (e.g. ``61.8``)."""

    high: float
    low: float
    trend: str  # "up" (low came first) or "down" (high came first)
    retracements: dict[float, float]
    extensions: dict[float, float]


def calculate_fibonacci_levels(high: float, low: float, trend: str = "up") -> FibonacciLevels:
    """Return Fibonacci retracement and extension prices for a swing.

    For an **up** swing, 0% sits at the high and 100% at the low, and
    extensions project above the high.  For a **down** swing the levels
    mirror: 0% at the low, extensions below it.

    Raises ``ValueError`` for non-positive prices, ``high < low`` or an
    unknown *trend*.
    """
    if high <= 0 or low <= 0:
        raise ValueError(f"Fibonacci prices must be positive, got high={high}, low={low}")
    if high < low:
        raise ValueError(f"Fibonacci high ({high}) is below low ({low})")
    if trend not in ("up", "down"):
        raise ValueError(f"trend must be 'up' or 'down', got '{trend}'")

    span = high - low
    if trend == "up":
        retracements = {round(r * 100, 1): high - span * r for r in FIB_RETRACEMENT_RATIOS}
        extensions = {round(r * 100, 1): low + span * r for r in FIB_EXTENSION_RATIOS}
    else:
        retracements = {round(r * 100, 1): low + span * r for r in FIB_RETRACEMENT_RATIOS}
        extensions = {round(r * 100, 1): high - span * r for r in FIB_EXTENSION_RATIOS}

    return FibonacciLevels(
        high=high,
        low=low,
        trend=trend,
        retracements=retracements,
        extensions=extensions,
    )


def fibonacci_from_candles(candles: Sequence[Candle], lookback: int = 50) -> FibonacciLevels:
    """Fibonacci levels for the swing spanned by the last *lookback* candles.

    The swing is up when the lowest low precedes the highest high.
    """
    _require(f"Fibonacci({lookback})", lookback, len(candles))
    window = candles[-lookback:]
    high_idx = max(range(len(window)), key=lambda i: window[i].high)
    low_idx = min(range(len(window)), key=lambda i: window[i].low)
    trend = "up" if low_idx <= high_idx else "down"
    return calculate_fibonacci_levels(window[high_idx].high, window[low_idx].low, trend)
