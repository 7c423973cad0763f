"""CLI dashboard — prints a symbol's aligned signals to the console."""

from typing import Optional

from signalforge.analysis.models import AlignedSignalSet, TimeframeSignal, TradeRecommendation


def _format_entry(tf: str, entry) -> str:
    if not isinstance(entry, TimeframeSignal):
        return f"  {tf:<4} no signal ({entry.reason})"
    flag = ""
    if entry.demoted:
        flag = f"  demoted from {entry.raw_direction}"
    elif entry.alignment_penalty > 0:
        flag = f"  -{entry.alignment_penalty:.1f}"
    rr = f"R:R {entry.risk_reward_ratio:.2f}" if entry.risk_reward_ratio is not None else "R:R N/A"
    return (
        f"  {tf:<4} {entry.direction:<7} {entry.confidence:5.1f}%  "
        f"{rr:<10} {entry.regime}{flag}"
    )


def print_summary(
    aligned: AlignedSignalSet,
    recommendation: Optional[TradeRecommendation] = None,
) -> str:
    """Format and print an aligned signal set.

    Args:
        aligned: The symbol's aligned signal set.
        recommendation: Optional recommendation to append.

    Returns:
        The formatted string (also printed to stdout).
    """
    anchors = "/".join(aligned.anchor_timeframes) or "none"
    lines = [
        f"──────────────── {aligned.symbol} Signals ────────────────",
        f"  Computed:  {aligned.computed_at.isoformat()}",
        f"  Anchor:    {aligned.anchor_direction} ({anchors})",
    ]
    lines.extend(_format_entry(tf, entry) for tf, entry in aligned.entries.items())

    if recommendation is None:
        lines.append("  Recommendation: none")
    else:
        tps = ", ".join(f"{tp:,.2f}" for tp in recommendation.take_profits)
        lines.extend([
            f"  Recommendation: {recommendation.direction} on {recommendation.timeframe}"
            f" @ {recommendation.entry:,.2f}",
            f"    Stop:      {recommendation.stop_loss:,.2f}",
            f"    Targets:   {tps}",
            f"    Leverage:  {recommendation.leverage}x",
        ])
    lines.append("─" * 52)

    output = "\n".join(lines)
    print(output)
    return output
