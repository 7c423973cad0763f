"""Tests for timeframe hierarchy alignment and confluence."""

from datetime import datetime, timezone

import pytest

from signalforge.analysis.hierarchy import (
    align_signals,
    find_anchor,
    summarize_confluence,
)
from signalforge.analysis.models import NoSignal, TimeframeSignal

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
        support_levels=(),
        resistance_levels=(),
        timestamp=_NOW,
    )
    defaults.update(overrides)
    return TimeframeSignal(**defaults)


# ── Anchor ───────────────────────────────────────────────────────────────


class TestAnchor:
    def test_top_two_agree(self):
        entries = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 70),
            "1h": _make_signal("1h", "SHORT", 60),
        }
        assert find_anchor(entries, ["1w", "1d", "1h"]) == ("LONG", ("1w", "1d"))

    def test_top_two_disagree(self):
        entries = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "SHORT", 70),
        }
        assert find_anchor(entries, ["1w", "1d"]) == ("NEUTRAL", ())

    def test_neutral_and_missing_are_skipped(self):
        entries = {
            "1w": NoSignal("1w", "no data for timeframe"),
            "1d": _make_signal("1d", "NEUTRAL", 50),
            "4h": _make_signal("4h", "SHORT", 70),
            "1h": _make_signal("1h", "SHORT", 65),
        }
        assert find_anchor(entries, ["1w", "1d", "4h", "1h"]) == ("SHORT", ("4h", "1h"))


# ── Alignment ────────────────────────────────────────────────────────────


class TestAlignSignals:
    def test_conflicting_low_timeframe_is_demoted(self):
        """1d+1w LONG at 80, 15m SHORT at 50: penalty 5 × (9 − 3) = 30."""
        signals = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "15m": _make_signal("15m", "SHORT", 50),
        }
        aligned = align_signals("BTCUSDT", signals)

        assert aligned.anchor_direction == "LONG"
        assert aligned.anchor_timeframes == ("1w", "1d")
        demoted = aligned.entries["15m"]
        assert demoted.confidence == pytest.approx(20.0)
        assert demoted.alignment_penalty == pytest.approx(30.0)
        assert demoted.direction == "NEUTRAL"
        assert demoted.demoted is True
        assert demoted.stop_loss is None
        assert demoted.take_profit is None
        assert demoted.risk_reward_ratio is None
        assert demoted.raw_direction == "SHORT"
        assert demoted.raw_confidence == 50

    def test_mild_conflict_keeps_direction(self):
        signals = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "SHORT", 80),
        }
        entry = align_signals("BTCUSDT", signals).entries["4h"]
        assert entry.direction == "SHORT"
        assert entry.confidence == pytest.approx(65.0)
        assert entry.demoted is False
        assert entry.stop_loss == 104.0

    def test_agreeing_signals_untouched(self):
        signals = {
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "LONG", 70),
            "1h": _make_signal("1h", "LONG", 40),
        }
        aligned = align_signals("BTCUSDT", signals)
        assert aligned.entries["1h"].confidence == 40
        assert aligned.entries["1h"].alignment_penalty == 0.0

    def test_no_anchor_leaves_conflicts_alone(self):
        signals = {
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "SHORT", 70),
            "15m": _make_signal("15m", "SHORT", 30),
        }
        aligned = align_signals("BTCUSDT", signals)
        assert aligned.anchor_direction == "NEUTRAL"
        assert aligned.entries["15m"].direction == "SHORT"
        assert aligned.entries["15m"].confidence == 30

    def test_missing_timeframe_becomes_no_signal(self):
        aligned = align_signals(
            "BTCUSDT",
            {"1h": _make_signal("1h", "LONG", 60)},
            timeframes=["15m", "1h", "4h"],
        )
        assert set(aligned.entries) == {"15m", "1h", "4h"}
        assert isinstance(aligned.entries["4h"], NoSignal)
        assert aligned.entries["4h"].reason == "no data for timeframe"

    def test_realigning_is_idempotent(self):
        signals = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "SHORT", 80),
            "15m": _make_signal("15m", "SHORT", 50),
            "1h": NoSignal("1h", "fetch failed", error="RuntimeError"),
        }
        once = align_signals("BTCUSDT", signals)
        twice = align_signals("BTCUSDT", once.entries)
        assert twice == once

    def test_entries_ordered_by_weight(self):
        signals = {
            "15m": _make_signal("15m", "LONG", 60),
            "1w": _make_signal("1w", "LONG", 60),
            "1h": _make_signal("1h", "LONG", 60),
        }
        aligned = align_signals("BTCUSDT", signals)
        assert list(aligned.entries) == ["1w", "1h", "15m"]
        assert [s.timeframe for s in aligned.signals()] == ["1w", "1h", "15m"]

    def test_computed_at_defaults_to_newest_signal(self):
        later = datetime(2024, 6, 1, 13, 0, tzinfo=timezone.utc)
        aligned = align_signals("BTCUSDT", {
            "1d": _make_signal("1d", "LONG", 60),
            "1h": _make_signal("1h", "LONG", 60, timestamp=later),
        })
        assert aligned.computed_at == later


# ── Confluence ───────────────────────────────────────────────────────────


class TestConfluence:
    def test_full_agreement(self):
        signals = {
            tf: _make_signal(tf, "LONG", 70)
            for tf in ("15m", "1h", "4h", "1d", "1w")
        }
        summary = summarize_confluence(align_signals("BTCUSDT", signals))

        assert summary.dominant_direction == "LONG"
        assert summary.agreement_level == "STRONG"
        assert summary.agreement_pct == 100.0
        assert summary.conflict_penalty == 0.0
        assert summary.consensus_bonus == 35.0
        assert summary.base_score == pytest.approx(70.0)
        assert summary.confluence_score == 100.0

    def test_opposition_costs_points(self):
        signals = {
            "1w": _make_signal("1w", "LONG", 80),
            "1d": _make_signal("1d", "LONG", 80),
            "4h": _make_signal("4h", "SHORT", 80),
        }
        summary = summarize_confluence(align_signals("BTCUSDT", signals))
        assert summary.dominant_direction == "LONG"
        # One medium-cluster opposer plus medium/long cluster disagreement
        assert summary.conflict_penalty == pytest.approx(18.0)

    def test_cluster_tie_is_neutral(self):
        signals = {
            "1h": _make_signal("1h", "LONG", 60),
            "4h": _make_signal("4h", "SHORT", 60),
        }
        summary = summarize_confluence(align_signals("BTCUSDT", signals))
        medium = next(c for c in summary.clusters if c.name == "medium")
        assert medium.direction == "NEUTRAL"
        assert medium.signal_count == 2

    def test_empty_set(self):
        aligned = align_signals("BTCUSDT", {}, timeframes=["1h"], computed_at=_NOW)
        summary = summarize_confluence(aligned)
        assert summary.dominant_direction == "NEUTRAL"
        assert summary.confluence_score == 0.0
