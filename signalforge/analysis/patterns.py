"""Candlestick formation detection — pure functions, no I/O.

Every rule is a geometric comparison between candle bodies and wicks.
Reliability is derived from the measured geometry (body-to-range ratio,
how decisively the rule is met) and volume confirmation, so the same window
always yields the same formations and scores.
"""

from signalforge.analysis.models import Candle, PatternFormation
from signalforge.errors import InsufficientDataError

MIN_PATTERN_CANDLES = 5

# A doji body is at most this fraction of the candle range.
DOJI_BODY_RATIO = 0.1


def _body(c: Candle) -> float:
    return abs(c.close - c.open)


def _range(c: Candle) -> float:
    return c.high - c.low


def _upper_wick(c: Candle) -> float:
    return c.high - max(c.open, c.close)


def _lower_wick(c: Candle) -> float:
    return min(c.open, c.close) - c.low


def _is_bullish(c: Candle) -> bool:
    return c.close > c.open


def _is_bearish(c: Candle) -> bool:
    return c.close < c.open


def _prior_trend(candles: list[Candle], i: int, span: int = 3) -> str:
    """Direction of the *span* closes leading into candle *i*."""
    start = i - 1 - span
    if start < 0:
        return "flat"
    change = candles[i - 1].close - candles[start].close
    if change > 0:
        return "up"
    if change < 0:
        return "down"
    return "flat"


def _volume_confirmation(candles: list[Candle], i: int, lookback: int = 5) -> float:
    """Volume of candle *i* against the mean of the previous *lookback*.

    Returns a score in [0, 1]: 0.5 at average volume, 1.0 at twice the
    average or more.  Without prior volume the score is 0.5.
    """
    prior = candles[max(0, i - lookback) : i]
    if not prior:
        return 0.5
    avg = sum(c.volume for c in prior) / len(prior)
    if avg <= 0:
        return 0.5
    return min(1.0, candles[i].volume / avg / 2.0)


def _reliability(geometry: float, volume: float) -> float:
    """Combine a geometry score and a volume score (both 0–1) into 0–100."""
    geometry = max(0.0, min(1.0, geometry))
    score = 30.0 + 50.0 * geometry + 20.0 * volume
    return round(max(0.0, min(100.0, score)), 1)


# ── Single-candle formations ─────────────────────────────────────────────


def _doji(candles: list[Candle], i: int) -> list[PatternFormation]:
    c = candles[i]
    rng = _range(c)
    if rng <= 0 or _body(c) > DOJI_BODY_RATIO * rng:
        return []
    geometry = 1.0 - _body(c) / (DOJI_BODY_RATIO * rng)
    return [PatternFormation(
        name="doji",
        direction="neutral",
        reliability=_reliability(geometry, _volume_confirmation(candles, i)),
        projected_price=c.close,
        description=f"Doji: body {_body(c) / rng:.0%} of range, indecision",
        index=i,
    )]


def _hammer_and_star(candles: list[Candle], i: int) -> list[PatternFormation]:
    c = candles[i]
    rng = _range(c)
    body = _body(c)
    if rng <= 0 or body <= DOJI_BODY_RATIO * rng:
        return []

    found: list[PatternFormation] = []
    trend = _prior_trend(candles, i)
    volume = _volume_confirmation(candles, i)

    if (
        trend == "down"
        and _lower_wick(c) >= 2 * body
        and _upper_wick(c) <= 0.5 * body
    ):
        found.append(PatternFormation(
            name="hammer",
            direction="bullish",
            reliability=_reliability(_lower_wick(c) / (3 * body), volume),
            projected_price=c.close + rng,
            description=(
                f"Hammer after decline: lower wick {_lower_wick(c) / body:.1f}x body"
            ),
            index=i,
        ))

    if (
        trend == "up"
        and _upper_wick(c) >= 2 * body
        and _lower_wick(c) <= 0.5 * body
    ):
        found.append(PatternFormation(
            name="shooting_star",
            direction="bearish",
            reliability=_reliability(_upper_wick(c) / (3 * body), volume),
            projected_price=c.close - rng,
            description=(
                f"Shooting star after advance: upper wick {_upper_wick(c) / body:.1f}x body"
            ),
            index=i,
        ))

    return found


# ── Multi-candle formations ──────────────────────────────────────────────


def _engulfing(candles: list[Candle], i: int) -> list[PatternFormation]:
    if i < 1:
        return []
    prev, cur = candles[i - 1], candles[i]
    prev_body = _body(prev)
    cur_body = _body(cur)
    if prev_body == 0 or _range(cur) <= 0:
        return []

    height = max(cur.high, prev.high) - min(cur.low, prev.low)
    excess = min(1.0, cur_body / prev_body - 1.0)
    geometry = 0.5 * excess + 0.5 * (cur_body / _range(cur))
    volume = _volume_confirmation(candles, i)

    if (
        _is_bearish(prev)
        and _is_bullish(cur)
        and cur.open <= prev.close
        and cur.close >= prev.open
        and cur_body > prev_body
    ):
        return [PatternFormation(
            name="bullish_engulfing",
            direction="bullish",
            reliability=_reliability(geometry, volume),
            projected_price=cur.close + height,
            description=(
                f"Bullish engulfing: body {cur_body / prev_body:.1f}x prior bearish body"
            ),
            index=i,
        )]

    if (
        _is_bullish(prev)
        and _is_bearish(cur)
        and cur.open >= prev.close
        and cur.close <= prev.open
        and cur_body > prev_body
    ):
        return [PatternFormation(
            name="bearish_engulfing",
            direction="bearish",
            reliability=_reliability(geometry, volume),
            projected_price=cur.close - height,
            description=(
                f"Bearish engulfing: body {cur_body / prev_body:.1f}x prior bullish body"
            ),
            index=i,
        )]

    return []


def _stars(candles: list[Candle], i: int) -> list[PatternFormation]:
    if i < 2:
        return []
    first, middle, last = candles[i - 2], candles[i - 1], candles[i]
    first_body = _body(first)
    if _range(first) <= 0 or first_body < 0.5 * _range(first):
        return []
    if _body(middle) > 0.3 * first_body:
        return []

    midpoint = (first.open + first.close) / 2
    height = max(c.high for c in (first, middle, last)) - min(c.low for c in (first, middle, last))
    volume = _volume_confirmation(candles, i)

    if _is_bearish(first) and _is_bullish(last) and last.close > midpoint:
        return [PatternFormation(
            name="morning_star",
            direction="bullish",
            reliability=_reliability((last.close - first.close) / first_body, volume),
            projected_price=last.close + height,
            description="Morning star: recovery past the midpoint of the bearish candle",
            index=i,
        )]

    if _is_bullish(first) and _is_bearish(last) and last.close < midpoint:
        return [PatternFormation(
            name="evening_star",
            direction="bearish",
            reliability=_reliability((first.close - last.close) / first_body, volume),
            projected_price=last.close - height,
            description="Evening star: decline past the midpoint of the bullish candle",
            index=i,
        )]

    return []


_DETECTORS = (_engulfing, _stars, _hammer_and_star, _doji)


def detect_candlestick_patterns(
    candles: list[Candle],
    lookback: int = 3,
) -> list[PatternFormation]:
    """Detect formations completing on any of the last *lookback* candles.

    Requires at least ``MIN_PATTERN_CANDLES`` candles.

    Returns:
        Formations ordered by completion index, then name.
    """
    if len(candles) < MIN_PATTERN_CANDLES:
        raise InsufficientDataError(
            "candlestick patterns", MIN_PATTERN_CANDLES, len(candles)
        )

    found: list[PatternFormation] = []
    for i in range(max(0, len(candles) - lookback), len(candles)):
        for detector in _DETECTORS:
            found.extend(detector(candles, i))

    found.sort(key=lambda p: (p.index, p.name))
    return found
