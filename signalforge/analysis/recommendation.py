"""Trade recommendation building — pure functions, no I/O."""

import logging
from typing import Optional

from signalforge.analysis.models import (
    VOTE_FOR_DIRECTION,
    AlignedSignalSet,
    TimeframeSignal,
    TradeRecommendation,
)
from signalforge.errors import DegenerateRiskError
from signalforge.risk.leverage import leverage_for_confidence, scale_take_profits

logger = logging.getLogger("signalforge.recommendation")

_PATTERN_SIDE = {"LONG": "bullish", "SHORT": "bearish"}


def select_signal(
    aligned: AlignedSignalSet,
    timeframe: Optional[str] = None,
) -> Optional[TimeframeSignal]:
    """Pick the signal a recommendation is built from.

    With *timeframe*, that entry is used as long as it is a directional
    signal.  Without it, the highest-weight directional signal wins.
    Returns ``None`` when nothing qualifies.
    """
    if timeframe is not None:
        entry = aligned.get(timeframe)
        if isinstance(entry, TimeframeSignal) and entry.direction != "NEUTRAL":
            return entry
        return None

    for signal in aligned.signals():
        if signal.direction != "NEUTRAL":
            return signal
    return None


def build_rationale(signal: TimeframeSignal, aligned: AlignedSignalSet) -> tuple[str, ...]:
    """Explain a recommendation using only the data behind the signal."""
    vote = VOTE_FOR_DIRECTION[signal.direction]
    lines: list[str] = []

    for result in signal.indicators:
        if result.category != "pattern" and result.signal == vote:
            lines.append(f"{result.name} ({result.strength.lower()}): {result.detail}")

    side = _PATTERN_SIDE[signal.direction]
    for pattern in signal.patterns:
        if pattern.direction == side:
            lines.append(
                f"{pattern.description} (reliability {pattern.reliability:.0f})"
            )

    if aligned.anchor_direction == signal.direction:
        lines.append(
            f"Agrees with {'/'.join(aligned.anchor_timeframes)} anchor ({aligned.anchor_direction})"
        )
    elif aligned.anchor_direction == "NEUTRAL":
        lines.append("No higher-timeframe anchor")
    else:
        lines.append(
            f"Against {'/'.join(aligned.anchor_timeframes)} anchor ({aligned.anchor_direction})"
        )

    if signal.alignment_penalty > 0:
        lines.append(
            f"Confidence reduced by {signal.alignment_penalty:.1f} for hierarchy conflict"
        )

    lines.append(f"Market regime: {signal.regime}")
    return tuple(lines)


def build_recommendation(
    aligned: AlignedSignalSet,
    timeframe: Optional[str] = None,
    max_leverage: int = 5,
) -> Optional[TradeRecommendation]:
    """Build a trade recommendation from an aligned signal set.

    Args:
        aligned: The symbol's current aligned signal set.
        timeframe: User-selected timeframe, or ``None`` to use the
            highest-weight directional signal.
        max_leverage: Configured leverage ceiling.

    Returns:
        ``TradeRecommendation``, or ``None`` when the chosen timeframe has
        no directional signal (or none exists at all), or when its
        take-profit ladder would reach a non-positive price.
    """
    signal = select_signal(aligned, timeframe)
    if signal is None or signal.stop_loss is None or signal.take_profit is None:
        return None

    try:
        take_profits = scale_take_profits(signal.entry_price, signal.take_profit, signal.direction)
    except DegenerateRiskError as exc:
        logger.warning("%s %s: no recommendation: %s", aligned.symbol, signal.timeframe, exc)
        return None

    return TradeRecommendation(
        symbol=aligned.symbol,
        timeframe=signal.timeframe,
        direction=signal.direction,
        confidence=signal.confidence,
        entry=signal.entry_price,
        stop_loss=signal.stop_loss,
        take_profits=take_profits,
        leverage=leverage_for_confidence(signal.confidence, max_leverage),
        risk_reward_ratio=signal.risk_reward_ratio,
        rationale=build_rationale(signal, aligned),
    )
