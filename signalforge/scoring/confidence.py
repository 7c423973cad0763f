"""Weighted indicator voting and confidence scoring — pure functions."""

from dataclasses import dataclass
from typing import Literal

from signalforge.analysis.models import (
    VOTE_FOR_DIRECTION,
    Category,
    Direction,
    IndicatorResult,
    Strength,
)

CATEGORY_WEIGHTS: dict[Category, float] = {
    "trend": 3.0,
    "momentum": 2.0,
    "pattern": 1.5,
    "volatility": 1.0,
    "volume": 1.0,
}

STRENGTH_FACTORS: dict[Strength, float] = {
    "WEAK": 0.5,
    "MODERATE": 0.75,
    "STRONG": 1.0,
}

# The winning side must lead by this share of the total vote weight.
DIRECTION_MARGIN = 0.10

ConfidenceBucket = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class VoteTally:
    """Weighted vote totals across a set of indicator results."""
    buy: float
    sell: float
    neutral: float

    @property
    def total(self) -> float:
        return self.buy + self.sell + self.neutral


def vote_weight(result: IndicatorResult) -> float:
    """Category weight × strength factor for one indicator result."""
    return CATEGORY_WEIGHTS[result.category] * STRENGTH_FACTORS[result.strength]


def tally_votes(indicators: list[IndicatorResult]) -> VoteTally:
    buy = sell = neutral = 0.0
    for result in indicators:
        weight = vote_weight(result)
        if result.signal == "BUY":
            buy += weight
        elif result.signal == "SELL":
            sell += weight
        else:
            neutral += weight
    return VoteTally(buy=buy, sell=sell, neutral=neutral)


def decide_direction(
    indicators: list[IndicatorResult],
    margin: float = DIRECTION_MARGIN,
) -> Direction:
    """Pick LONG/SHORT when one side leads by *margin* of the total weight.

    Anything closer, or no votes at all, is NEUTRAL.
    """
    tally = tally_votes(indicators)
    if tally.total <= 0:
        return "NEUTRAL"
    lead = abs(tally.buy - tally.sell)
    if lead < margin * tally.total:
        return "NEUTRAL"
    return "LONG" if tally.buy > tally.sell else "SHORT"


def _category_votes(indicators: list[IndicatorResult]) -> dict[str, str]:
    """Net vote per category present in *indicators*."""
    nets: dict[str, float] = {}
    for result in indicators:
        weight = vote_weight(result)
        net = nets.setdefault(result.category, 0.0)
        if result.signal == "BUY":
            nets[result.category] = net + weight
        elif result.signal == "SELL":
            nets[result.category] = net - weight
    votes: dict[str, str] = {}
    for category, net in nets.items():
        if net > 0:
            votes[category] = "BUY"
        elif net < 0:
            votes[category] = "SELL"
        else:
            votes[category] = "NEUTRAL"
    return votes


def compute_confidence(indicators: list[IndicatorResult], direction: Direction) -> float:
    """Confidence in [0, 100] for *direction* given the indicator votes.

    ``agreement`` is the weighted share of votes matching the direction
    (NEUTRAL votes match a NEUTRAL direction).  ``concurrence`` is the share
    of categories whose net vote matches it.  The score is::

        100 × agreement × (0.5 + 0.5 × concurrence)
    """
    tally = tally_votes(indicators)
    if tally.total <= 0:
        return 0.0

    wanted = VOTE_FOR_DIRECTION[direction]
    matching = {"BUY": tally.buy, "SELL": tally.sell, "NEUTRAL": tally.neutral}[wanted]
    agreement = matching / tally.total

    categories = _category_votes(indicators)
    concurrence = sum(1 for v in categories.values() if v == wanted) / len(categories)

    score = 100.0 * agreement * (0.5 + 0.5 * concurrence)
    return round(max(0.0, min(100.0, score)), 2)


def confidence_bucket(confidence: float) -> ConfidenceBucket:
    if confidence < 40:
        return "low"
    if confidence < 70:
        return "medium"
    return "high"
