"""Timeframe hierarchy alignment and cross-timeframe confluence.

``align_signals()`` reconciles one cycle's per-timeframe signals in a single
pass.  The two highest-weight timeframes with a directional raw signal set
the anchor when they agree; lower timeframes pointing the other way lose
confidence in proportion to their distance from the primary anchor and
fall back to NEUTRAL below the demotion floor.

Alignment always starts from the ``raw_*`` fields, so feeding an aligned
set back in gives the same result.

``summarize_confluence()`` is a read-only digest of an aligned set grouped
into short / medium / long clusters.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Mapping, Optional

from signalforge.analysis.models import (
    AlignedSignalSet,
    Direction,
    NoSignal,
    SignalEntry,
    TimeframeSignal,
    get_timeframe,
)

DEFAULT_PENALTY_PER_WEIGHT = 5.0
DEFAULT_DEMOTION_FLOOR = 35.0


def _weight(timeframe: str) -> int:
    return get_timeframe(timeframe).weight


def _reset(signal: TimeframeSignal) -> TimeframeSignal:
    """The signal as the generator produced it."""
    return replace(
        signal,
        direction=signal.raw_direction,
        confidence=signal.raw_confidence,
        alignment_penalty=0.0,
        demoted=False,
    )


def find_anchor(
    entries: Mapping[str, SignalEntry],
    ordered: list[str],
) -> tuple[Direction, tuple[str, ...]]:
    """Anchor direction and the timeframes that set it.

    *ordered* lists timeframe names by weight, highest first.  Returns
    ``("NEUTRAL", ())`` when fewer than two directional signals exist or
    the top two disagree.
    """
    directional = [
        tf for tf in ordered
        if isinstance(entries.get(tf), TimeframeSignal)
        and entries[tf].raw_direction != "NEUTRAL"
    ]
    if len(directional) < 2:
        return "NEUTRAL", ()
    first, second = directional[0], directional[1]
    if entries[first].raw_direction != entries[second].raw_direction:
        return "NEUTRAL", ()
    return entries[first].raw_direction, (first, second)


def align_signals(
    symbol: str,
    signals: Mapping[str, SignalEntry],
    timeframes: Optional[list[str]] = None,
    penalty_per_weight: float = DEFAULT_PENALTY_PER_WEIGHT,
    demotion_floor: float = DEFAULT_DEMOTION_FLOOR,
    computed_at: Optional[datetime] = None,
) -> AlignedSignalSet:
    """Reconcile per-timeframe signals against the timeframe hierarchy.

    Args:
        symbol: Symbol the signals belong to.
        signals: Timeframe name → ``TimeframeSignal`` or ``NoSignal``.
        timeframes: Timeframes the set must cover (default: the keys of
            *signals*).  Any without an entry become ``NoSignal``.
        penalty_per_weight: Confidence lost per unit of weight gap between
            the primary anchor and a conflicting timeframe.
        demotion_floor: Conflicting signals whose penalised confidence
            falls below this become NEUTRAL without stop or target.
        computed_at: Timestamp of the set (default: the newest signal
            timestamp, or now when there are no signals).

    Returns:
        ``AlignedSignalSet`` with an entry for every requested timeframe.
    """
    requested = list(timeframes) if timeframes is not None else list(signals.keys())
    ordered = sorted(requested, key=_weight, reverse=True)

    entries: dict[str, SignalEntry] = {}
    for tf in ordered:
        entry = signals.get(tf)
        if entry is None:
            entries[tf] = NoSignal(timeframe=tf, reason="no data for timeframe")
        elif isinstance(entry, TimeframeSignal):
            entries[tf] = _reset(entry)
        else:
            entries[tf] = entry

    anchor, anchor_tfs = find_anchor(entries, ordered)

    if anchor != "NEUTRAL":
        primary_weight = _weight(anchor_tfs[0])
        for tf in ordered:
            signal = entries[tf]
            if not isinstance(signal, TimeframeSignal) or tf in anchor_tfs:
                continue
            if signal.raw_direction in ("NEUTRAL", anchor):
                continue

            gap = primary_weight - _weight(tf)
            penalised = max(0.0, signal.raw_confidence - penalty_per_weight * gap)
            penalty = signal.raw_confidence - penalised
            if penalised < demotion_floor:
                entries[tf] = replace(
                    signal,
                    direction="NEUTRAL",
                    confidence=penalised,
                    stop_loss=None,
                    take_profit=None,
                    risk_reward_ratio=None,
                    alignment_penalty=penalty,
                    demoted=True,
                )
            else:
                entries[tf] = replace(
                    signal,
                    confidence=penalised,
                    alignment_penalty=penalty,
                )

    if computed_at is None:
        stamps = [e.timestamp for e in entries.values() if isinstance(e, TimeframeSignal)]
        computed_at = max(stamps) if stamps else datetime.now(timezone.utc)

    return AlignedSignalSet(
        symbol=symbol,
        anchor_direction=anchor,
        anchor_timeframes=anchor_tfs,
        entries=entries,
        computed_at=computed_at,
    )


# ── Confluence summary ───────────────────────────────────────────────────

CLUSTERS: dict[str, tuple[str, ...]] = {
    "short": ("1m", "5m", "15m"),
    "medium": ("30m", "1h", "4h"),
    "long": ("1d", "3d", "1w", "1M"),
}

# Points lost per signal opposing the dominant direction, by cluster.
OPPOSITION_PENALTY = {"long": 15.0, "medium": 8.0, "short": 3.0}
CLUSTER_DISAGREEMENT_PENALTY = 10.0
MAX_CONFLICT_PENALTY = 50.0

ALL_CLUSTERS_AGREE_BONUS = 15.0
MAX_CONSENSUS_BONUS = 35.0

DOMINANT_BAND = 15.0


@dataclass(frozen=True)
class ClusterConsensus:
    """Confidence-weighted majority within one timeframe cluster."""
    name: str
    timeframes: tuple[str, ...]
    direction: Direction
    consensus: float  # share of confidence behind ``direction``, 0–100
    signal_count: int


@dataclass(frozen=True)
class ConfluenceSummary:
    symbol: str
    dominant_direction: Direction
    agreement_level: str  # STRONG / MODERATE / WEAK / CONFLICTED
    agreement_pct: float
    conflict_penalty: float
    consensus_bonus: float
    base_score: float
    confluence_score: float
    clusters: tuple[ClusterConsensus, ...]


def _cluster_consensus(name: str, signals: list[TimeframeSignal]) -> ClusterConsensus:
    timeframes = tuple(s.timeframe for s in signals)
    totals: dict[str, float] = {"NEUTRAL": 0.0, "LONG": 0.0, "SHORT": 0.0}
    for s in signals:
        totals[s.direction] += s.confidence
    total = sum(totals.values())
    if not signals or total <= 0:
        return ClusterConsensus(name, timeframes, "NEUTRAL", 0.0, len(signals))
    best = max(totals.values())
    leaders = [d for d, v in totals.items() if v == best]
    # Any tie for the lead is NEUTRAL.
    direction = leaders[0] if len(leaders) == 1 else "NEUTRAL"
    return ClusterConsensus(
        name=name,
        timeframes=timeframes,
        direction=direction,
        consensus=totals[direction] / total * 100.0,
        signal_count=len(signals),
    )


def _dominant_direction(signals: list[TimeframeSignal]) -> Direction:
    sign = {"LONG": 1.0, "SHORT": -1.0, "NEUTRAL": 0.0}
    total_weight = sum(_weight(s.timeframe) for s in signals)
    if total_weight == 0:
        return "NEUTRAL"
    score = sum(
        s.confidence * _weight(s.timeframe) * sign[s.direction] for s in signals
    ) / total_weight
    if score > DOMINANT_BAND:
        return "LONG"
    if score < -DOMINANT_BAND:
        return "SHORT"
    return "NEUTRAL"


def _agreement(signals: list[TimeframeSignal], dominant: Direction) -> tuple[str, float]:
    if not signals:
        return "WEAK", 0.0
    pct = sum(1 for s in signals if s.direction == dominant) / len(signals) * 100.0
    if pct >= 80:
        level = "STRONG"
    elif pct >= 60:
        level = "MODERATE"
    elif pct >= 40:
        level = "WEAK"
    else:
        level = "CONFLICTED"
    return level, pct


def summarize_confluence(aligned: AlignedSignalSet) -> ConfluenceSummary:
    """Cross-timeframe confluence digest of an aligned signal set.

    The score is the weight-averaged confidence of the valid signals plus
    a consensus bonus minus a conflict penalty, clamped to [0, 100].
    """
    signals = aligned.signals()
    grouped = {
        name: [s for s in signals if s.timeframe in members]
        for name, members in CLUSTERS.items()
    }
    clusters = tuple(_cluster_consensus(name, grouped[name]) for name in CLUSTERS)

    dominant = _dominant_direction(signals)
    level, pct = _agreement(signals, dominant)

    penalty = 0.0
    for name, members in grouped.items():
        opposing = [
            s for s in members
            if s.direction != "NEUTRAL" and s.direction != dominant
        ]
        penalty += OPPOSITION_PENALTY[name] * len(opposing)
    directional = {c.direction for c in clusters if c.direction != "NEUTRAL"}
    if len(directional) >= 2:
        penalty += CLUSTER_DISAGREEMENT_PENALTY
    penalty = min(penalty, MAX_CONFLICT_PENALTY)

    bonus = 0.0
    for cluster in clusters:
        if cluster.consensus >= 80:
            bonus += 8.0
        elif cluster.consensus >= 60:
            bonus += 4.0
    directional_clusters = [c for c in clusters if c.direction != "NEUTRAL"]
    if len(directional) == 1 and len(directional_clusters) >= 2:
        bonus += ALL_CLUSTERS_AGREE_BONUS
    bonus = min(bonus, MAX_CONSENSUS_BONUS)

    total_weight = sum(_weight(s.timeframe) for s in signals)
    base = (
        sum(s.confidence * _weight(s.timeframe) for s in signals) / total_weight
        if total_weight else 0.0
    )
    score = max(0.0, min(100.0, base + bonus - penalty))

    return ConfluenceSummary(
        symbol=aligned.symbol,
        dominant_direction=dominant,
        agreement_level=level,
        agreement_pct=round(pct, 1),
        conflict_penalty=penalty,
        consensus_bonus=bonus,
        base_score=round(base, 2),
        confluence_score=round(score, 2),
        clusters=clusters,
    )
