"""Tests for trade recommendations and the CLI summary."""

from datetime import datetime, timezone

import pytest

from signalforge.analysis.hierarchy import align_signals
from signalforge.analysis.models import IndicatorResult, PatternFormation, TimeframeSignal
from signalforge.analysis.recommendation import build_recommendation, select_signal
from signalforge.cli.dashboard import print_summary

_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_signal(timeframe: str, direction: str, confidence: float, **overrides) -> TimeframeSignal:
    if direction == "LONG":
        stop, target, ratio = 96.0, 107.0, 1.75
    elif direction == "SHORT":
        stop, target, ratio = 104.0, 93.0, 1.75
    else:
        stop, target, ratio = None, None, None
    defaults = dict(
        symbol="BTCUSDT",
        timeframe=timeframe,
        direction=direction,
        confidence=confidence,
        raw_direction=direction,
        raw_confidence=confidence,
        entry_price=100.0,
        stop_loss=stop,
        take_profit=target,
        risk_reward_ratio=ratio,
        atr=2.0,
        regime="trending",
        indicators=(),
        patterns=(),
        support_levels=(95.0,),
        resistance_levels=(105.0,),
        timestamp=_NOW,
    )
    defaults.update(overrides)
    return TimeframeSignal(**defaults)


def _make_indicator(name: str, signal: str, category: str = "trend") -> IndicatorResult:
    return IndicatorResult(
        name=name,
        category=category,
        value=1.0,
        signal=signal,
        strength="STRONG",
        detail=f"{name} detail",
    )


# ── Selection ────────────────────────────────────────────────────────────


class TestSelectSignal:
    def test_highest_weight_directional(self):
        aligned = align_signals("BTCUSDT", {
            "1w": _make_signal("1w", "NEUTRAL", 40),
            "1d": _make_signal("1d", "LONG", 80),
            "1h": _make_signal("1h", "LONG", 60),
        })
        assert select_signal(aligned).timeframe == "1d"

    def test_requested_timeframe(self):
        aligned = align_signals("BTCUSDT", {
            "1d": _make_signal("1d", "LONG", 80),
            "1h": _make_signal("1h", "LONG", 60),
        })
        assert select_signal(aligned, "1h").timeframe == "1h"

    def test_requested_neutral_or_missing(self):
        aligned = align_signals(
            "BTCUSDT",
            {"1d": _make_signal("1d", "LONG", 80), "1h": _make_signal("1h", "NEUTRAL", 60)},
            timeframes=["1d", "1h", "15m"],
        )
        assert select_signal(aligned, "1h") is None
        assert select_signal(aligned, "15m") is None
        assert select_signal(aligned, "4h") is None


# ── Recommendation ───────────────────────────────────────────────────────


class TestBuildRecommendation:
    def test_long_recommendation(self):
        aligned = align_signals("BTCUSDT", {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
        })
        rec = build_recommendation(aligned)

        assert rec.timeframe == "1w"
        assert rec.direction == "LONG"
        assert rec.entry == 100.0
        assert rec.stop_loss == 96.0
        assert rec.take_profits == pytest.approx((105.6, 107.0, 108.4))
        assert rec.leverage == 4
        assert rec.risk_reward_ratio == 1.75

    def test_leverage_respects_configured_max(self):
        aligned = align_signals("BTCUSDT", {"1d": _make_signal("1d", "LONG", 90)})
        assert build_recommendation(aligned, max_leverage=2).leverage == 2

    def test_demoted_timeframe_has_no_recommendation(self):
        aligned = align_signals("BTCUSDT", {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "15m": _make_signal("15m", "SHORT", 50),
        })
        assert build_recommendation(aligned, timeframe="15m") is None

    def test_ladder_below_zero_has_no_recommendation(self):
        aligned = align_signals("BTCUSDT", {
            "1w": _make_signal("1w", "SHORT", 80, take_profit=10.0),
            "1d": _make_signal("1d", "SHORT", 80),
        })
        assert build_recommendation(aligned, timeframe="1w") is None
        assert build_recommendation(aligned, timeframe="1d").take_profits == pytest.approx(
            (94.4, 93.0, 91.6)
        )

    def test_all_neutral(self):
        aligned = align_signals("BTCUSDT", {"1d": _make_signal("1d", "NEUTRAL", 50)})
        assert build_recommendation(aligned) is None

    def test_rationale_uses_agreeing_evidence(self):
        pattern = PatternFormation(
            name="bullish_engulfing",
            direction="bullish",
            reliability=72.0,
            projected_price=110.0,
            description="Bullish engulfing: body 1.3x prior bearish body",
            index=249,
        )
        opposing = PatternFormation(
            name="shooting_star",
            direction="bearish",
            reliability=60.0,
            projected_price=95.0,
            description="Shooting star after advance",
            index=248,
        )
        signal = _make_signal(
            "1d", "LONG", 80,
            indicators=(
                _make_indicator("EMA_CROSS", "BUY"),
                _make_indicator("RSI", "SELL", "momentum"),
                _make_indicator("BULLISH_ENGULFING", "BUY", "pattern"),
            ),
            patterns=(pattern, opposing),
        )
        aligned = align_signals("BTCUSDT", {"1w": _make_signal("1w", "LONG", 80), "1d": signal})

        rationale = build_recommendation(aligned, timeframe="1d").rationale
        text = "\n".join(rationale)

        assert "EMA_CROSS" in text
        assert "RSI" not in text
        assert "Bullish engulfing" in text
        assert "Shooting star" not in text
        assert "Agrees with 1w/1d anchor (LONG)" in text
        assert rationale[-1] == "Market regime: trending"

    def test_rationale_mentions_penalty(self):
        aligned = align_signals("BTCUSDT", {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "SHORT", 80),
        })
        rationale = build_recommendation(aligned, timeframe="4h").rationale
        assert "Against 1w/1d anchor (LONG)" in rationale
        assert "Confidence reduced by 15.0 for hierarchy conflict" in rationale


# ── CLI summary ──────────────────────────────────────────────────────────


class TestPrintSummary:
    def test_summary_lists_every_timeframe(self, capsys):
        aligned = align_signals(
            "BTCUSDT",
            {
                "1w": _make_signal("1w", "LONG", 80),
                "1d": _make_signal("1d", "LONG", 80),
                "15m": _make_signal("15m", "SHORT", 50),
            },
            timeframes=["1w", "1d", "1h", "15m"],
        )
        output = print_summary(aligned, build_recommendation(aligned))

        assert "BTCUSDT Signals" in output
        assert "no signal (no data for timeframe)" in output
        assert "demoted from SHORT" in output
        assert "Recommendation: LONG on 1w" in output
        assert output in capsys.readouterr().out

    def test_summary_without_recommendation(self):
        aligned = align_signals("BTCUSDT", {"1d": _make_signal("1d", "NEUTRAL", 50)})
        assert "Recommendation: none" in print_summary(aligned)
