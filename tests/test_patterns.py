"""Tests for candlestick formations and indicator divergences."""

from datetime import datetime, timedelta, timezone

import pytest

from signalforge.analysis.divergence import (
    detect_divergences,
    find_fractal_highs,
    find_fractal_lows,
)
from signalforge.analysis.models import Candle
from signalforge.analysis.patterns import detect_candlestick_patterns
from signalforge.errors import InsufficientDataError


# ── Helpers ──────────────────────────────────────────────────────────────

_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _make_candle(i: int, o: float, h: float, l: float, c: float, volume: float = 1000.0) -> Candle:
    return Candle(
        open_time=_T0 + timedelta(hours=i),
        open=o,
        high=h,
        low=l,
        close=c,
        volume=volume,
    )


def _declining_prefix() -> list[Candle]:
    return [
        _make_candle(0, 110.0, 111.0, 108.0, 109.0),
        _make_candle(1, 109.0, 110.0, 106.0, 107.0),
        _make_candle(2, 107.0, 108.0, 104.0, 105.0),
    ]


def _rising_prefix() -> list[Candle]:
    return [
        _make_candle(0, 100.0, 101.5, 99.5, 101.0),
        _make_candle(1, 101.0, 103.5, 100.5, 103.0),
        _make_candle(2, 103.0, 105.5, 102.5, 105.0),
    ]


def _from_closes(closes: list[float]) -> list[Candle]:
    """Gapless candles: down candles wick 0.1 below the close, up candles
    have no lower wick, every candle wicks 0.1 above its body."""
    candles = []
    for i, close in enumerate(closes):
        open_ = closes[i - 1] if i else close
        low = close - 0.1 if close < open_ else min(open_, close)
        high = max(open_, close) + 0.1
        candles.append(_make_candle(i, open_, high, low, close))
    return candles


def _mirror(candles: list[Candle], axis: float = 200.0) -> list[Candle]:
    """Reflect prices around *axis*: lows become highs and rallies declines."""
    return [
        Candle(
            open_time=c.open_time,
            open=axis - c.open,
            high=axis - c.low,
            low=axis - c.high,
            close=axis - c.close,
            volume=c.volume,
        )
        for c in candles
    ]


def _rsi_divergence_closes() -> list[float]:
    """Sharp drop to a low, rally, then a gentler slide to a lower low."""
    return (
        [100.0 if i % 2 == 0 else 100.5 for i in range(20)]
        + [98.0, 96.0, 94.0, 92.0, 90.0]                    # swing low at 24
        + [91.5, 93.0, 94.5, 96.0, 97.5, 99.0, 100.0]
        + [99.0, 98.0, 97.0, 96.0, 94.0, 92.0, 89.5]        # lower low at 38
        + [91.0, 92.5, 94.0]
    )


def _macd_divergence_closes() -> list[float]:
    """Steep fall to a low at 44, rally, then a long shallow slide to a
    lower low at 120 while MACD bottoms far higher."""
    return (
        [100.0 if i % 2 == 0 else 100.5 for i in range(30)]
        + [98.0 - 2.0 * i for i in range(15)]               # 98 .. 70
        + [72.0 + 2.0 * i for i in range(15)]               # 72 .. 100
        + [99.5 - 0.5 * i for i in range(61)]               # 99.5 .. 69.5
        + [71.5, 73.5, 75.5, 77.5]
    )


# ── Candlestick formations ───────────────────────────────────────────────


class TestCandlestickPatterns:
    def test_requires_five_candles(self):
        with pytest.raises(InsufficientDataError, match="candlestick patterns"):
            detect_candlestick_patterns(_declining_prefix())

    def test_bullish_engulfing(self):
        candles = _declining_prefix() + [
            _make_candle(3, 105.0, 105.5, 99.5, 100.0),   # bearish, body 5
            _make_candle(4, 99.5, 106.5, 99.0, 106.0),    # bullish, body 6.5
        ]
        found = [p for p in detect_candlestick_patterns(candles) if p.name == "bullish_engulfing"]
        assert len(found) == 1
        pattern = found[0]
        assert pattern.direction == "bullish"
        assert pattern.index == 4
        # Combined height 106.5 - 99.0 projected from the close
        assert pattern.projected_price == pytest.approx(113.5)
        assert 0 < pattern.reliability <= 100

    def test_hammer_after_decline(self):
        candles = _declining_prefix() + [
            _make_candle(3, 105.0, 105.5, 101.0, 102.0),
            _make_candle(4, 100.0, 100.6, 98.5, 100.5),
        ]
        names = {p.name for p in detect_candlestick_patterns(candles)}
        assert "hammer" in names
        assert "shooting_star" not in names

    def test_bearish_engulfing(self):
        candles = _rising_prefix() + [
            _make_candle(3, 105.0, 110.5, 104.5, 110.0),   # bullish, body 5
            _make_candle(4, 110.5, 111.0, 103.5, 104.0),   # bearish, body 6.5
        ]
        found = [p for p in detect_candlestick_patterns(candles) if p.name == "bearish_engulfing"]
        assert len(found) == 1
        assert found[0].direction == "bearish"
        assert found[0].index == 4
        # Combined height 111.0 - 103.5 projected below the close
        assert found[0].projected_price == pytest.approx(96.5)

    def test_shooting_star_after_advance(self):
        candles = _rising_prefix() + [
            _make_candle(3, 105.0, 108.5, 104.5, 108.0),
            _make_candle(4, 110.0, 112.0, 109.4, 109.5),
        ]
        found = [p for p in detect_candlestick_patterns(candles) if p.name == "shooting_star"]
        assert len(found) == 1
        assert found[0].direction == "bearish"
        assert found[0].projected_price == pytest.approx(109.5 - 2.6)
        assert "hammer" not in {p.name for p in detect_candlestick_patterns(candles)}

    def test_morning_star(self):
        candles = _declining_prefix()[:2] + [
            _make_candle(2, 108.0, 108.5, 101.5, 102.0),   # long bearish
            _make_candle(3, 101.5, 102.0, 100.5, 101.0),   # small body
            _make_candle(4, 101.5, 106.5, 101.0, 106.0),   # closes past the midpoint
        ]
        found = [p for p in detect_candlestick_patterns(candles) if p.name == "morning_star"]
        assert len(found) == 1
        assert found[0].direction == "bullish"
        assert found[0].index == 4
        assert found[0].projected_price == pytest.approx(106.0 + 8.0)

    def test_evening_star(self):
        candles = _rising_prefix()[:2] + [
            _make_candle(2, 103.0, 109.5, 102.5, 109.0),   # long bullish
            _make_candle(3, 109.5, 110.5, 109.0, 110.0),   # small body
            _make_candle(4, 109.5, 110.0, 103.5, 104.0),   # closes past the midpoint
        ]
        found = [p for p in detect_candlestick_patterns(candles) if p.name == "evening_star"]
        assert len(found) == 1
        assert found[0].direction == "bearish"
        assert found[0].index == 4
        assert found[0].projected_price == pytest.approx(104.0 - 8.0)

    def test_star_needs_small_middle_candle(self):
        candles = _declining_prefix()[:2] + [
            _make_candle(2, 108.0, 108.5, 101.5, 102.0),
            _make_candle(3, 102.0, 102.5, 97.5, 98.0),     # body 4, not a star
            _make_candle(4, 98.5, 106.5, 98.0, 106.0),
        ]
        names = {p.name for p in detect_candlestick_patterns(candles)}
        assert "morning_star" not in names

    def test_doji(self):
        candles = _declining_prefix() + [
            _make_candle(3, 105.0, 105.5, 101.0, 102.0),
            _make_candle(4, 100.0, 101.0, 99.0, 100.0),
        ]
        doji = [p for p in detect_candlestick_patterns(candles) if p.name == "doji"]
        assert len(doji) == 1
        assert doji[0].direction == "neutral"

    def test_volume_raises_reliability(self):
        base = _declining_prefix() + [_make_candle(3, 105.0, 105.5, 99.5, 100.0)]
        quiet = base + [_make_candle(4, 99.5, 106.5, 99.0, 106.0, volume=1000.0)]
        loud = base + [_make_candle(4, 99.5, 106.5, 99.0, 106.0, volume=3000.0)]

        def _score(candles):
            return next(
                p.reliability for p in detect_candlestick_patterns(candles)
                if p.name == "bullish_engulfing"
            )

        assert _score(loud) > _score(quiet)

    def test_same_window_same_result(self):
        candles = _declining_prefix() + [
            _make_candle(3, 105.0, 105.5, 99.5, 100.0),
            _make_candle(4, 99.5, 106.5, 99.0, 106.0),
        ]
        assert detect_candlestick_patterns(candles) == detect_candlestick_patterns(candles)


# ── Fractals ─────────────────────────────────────────────────────────────


class TestFractals:
    def test_strict_extremes_only(self):
        values = [5.0, 4.0, 3.0, 4.0, 5.0, 4.0, 4.0, 6.0, 4.0, 4.0]
        assert find_fractal_lows(values) == [2]
        assert find_fractal_highs(values) == [4, 7]

    def test_nan_neighbours_are_skipped(self):
        nan = float("nan")
        values = [nan, nan, 1.0, 2.0, 3.0, 2.0, 1.0]
        assert find_fractal_highs(values) == [4]
        assert find_fractal_lows(values) == []


# ── Divergences ──────────────────────────────────────────────────────────


class TestDivergences:
    def test_requires_thirty_candles(self):
        with pytest.raises(InsufficientDataError, match="divergence"):
            detect_divergences(_from_closes([100.0] * 29))

    def test_bullish_rsi_divergence(self):
        """Price makes a lower low while RSI makes a higher low."""
        candles = _from_closes(_rsi_divergence_closes())

        found = [p for p in detect_divergences(candles) if p.name == "rsi_bullish_divergence"]
        assert len(found) == 1
        divergence = found[0]
        assert divergence.direction == "bullish"
        assert divergence.index == 38
        assert divergence.projected_price > candles[-1].close
        assert 0 < divergence.reliability <= 100

    def test_monotonic_series_has_none(self):
        candles = _from_closes([100.0 + i for i in range(60)])
        assert detect_divergences(candles) == []

    def test_bearish_rsi_divergence(self):
        """Price makes a higher high while RSI makes a lower high."""
        candles = _mirror(_from_closes(_rsi_divergence_closes()))

        found = [p for p in detect_divergences(candles) if p.name == "rsi_bearish_divergence"]
        assert len(found) == 1
        divergence = found[0]
        assert divergence.direction == "bearish"
        assert divergence.index == 38
        assert divergence.projected_price < candles[-1].close

    def test_bullish_macd_divergence(self):
        candles = _from_closes(_macd_divergence_closes())

        found = [p for p in detect_divergences(candles) if p.name == "macd_bullish_divergence"]
        assert len(found) == 1
        divergence = found[0]
        assert divergence.direction == "bullish"
        assert divergence.index == 120
        # highest high between the two lows, the top of the rally
        assert divergence.projected_price == pytest.approx(100.1)
        assert "MACD" in divergence.description

    def test_bearish_macd_divergence(self):
        candles = _mirror(_from_closes(_macd_divergence_closes()))

        found = [p for p in detect_divergences(candles) if p.name == "macd_bearish_divergence"]
        assert len(found) == 1
        assert found[0].direction == "bearish"
        assert found[0].index == 120
        assert found[0].projected_price == pytest.approx(99.9)
