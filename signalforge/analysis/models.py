"""Analysis data models — typed representations for the signal pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Union

Direction = Literal["LONG", "SHORT", "NEUTRAL"]
Vote = Literal["BUY", "SELL", "NEUTRAL"]
Strength = Literal["WEAK", "MODERATE", "STRONG"]
Category = Literal["trend", "momentum", "volatility", "volume", "pattern"]
PatternDirection = Literal["bullish", "bearish", "neutral"]
Regime = Literal["trending", "ranging", "volatile"]

VOTE_FOR_DIRECTION: dict[str, str] = {
    "LONG": "BUY",
    "SHORT": "SELL",
    "NEUTRAL": "NEUTRAL",
}


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``open_time`` is timezone-aware UTC."""

    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


# ── Timeframe table ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Timeframe:
    """A candle sampling interval and its place in the hierarchy."""

    name: str
    weight: int  # coarser = higher
    seconds: int
    max_hold_seconds: int  # pending accuracy records expire after this


_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

TIMEFRAMES: dict[str, Timeframe] = {
    "1m": Timeframe("1m", 1, _MINUTE, 5 * _MINUTE),
    "5m": Timeframe("5m", 2, 5 * _MINUTE, 25 * _MINUTE),
    "15m": Timeframe("15m", 3, 15 * _MINUTE, 75 * _MINUTE),
    "30m": Timeframe("30m", 4, 30 * _MINUTE, 150 * _MINUTE),
    "1h": Timeframe("1h", 5, _HOUR, 6 * _HOUR),
    "4h": Timeframe("4h", 6, 4 * _HOUR, _DAY),
    "1d": Timeframe("1d", 7, _DAY, 7 * _DAY),
    "3d": Timeframe("3d", 8, 3 * _DAY, 21 * _DAY),
    "1w": Timeframe("1w", 9, 7 * _DAY, 60 * _DAY),
    "1M": Timeframe("1M", 10, 30 * _DAY, 180 * _DAY),
}


def get_timeframe(name: str) -> Timeframe:
    """Look up a timeframe by name.

    Raises ``KeyError`` if the timeframe is not in the table.
    """
    if name not in TIMEFRAMES:
        raise KeyError(
            f"Unknown timeframe '{name}'. "
            f"Available: {', '.join(TIMEFRAMES.keys())}"
        )
    return TIMEFRAMES[name]


# ── Derived per-cycle records ────────────────────────────────────────────


@dataclass(frozen=True)
class IndicatorResult:
    """One indicator's reading and its vote."""

    name: str
    category: Category
    value: float
    signal: Vote
    strength: Strength
    detail: str = ""


@dataclass(frozen=True)
class PatternFormation:
    """A candlestick formation or an indicator divergence."""

    name: str
    direction: PatternDirection
    reliability: float  # 0–100
    projected_price: float
    description: str
    index: int  # candle index the formation completes on


@dataclass(frozen=True)
class SRLevel:
    """A clustered support or resistance price."""

    level_type: str  # "support" or "resistance"
    price: float
    strength: int  # number of swing points in the cluster


@dataclass(frozen=True)
class TimeframeSignal:
    """The signal for one (symbol, timeframe) in one calculation cycle.

    ``raw_direction`` / ``raw_confidence`` are the generator's output and
    never change; ``direction`` / ``confidence`` are what remains after
    hierarchy alignment.  NEUTRAL signals carry no stop, target or ratio.
    """

    symbol: str
    timeframe: str
    direction: Direction
    confidence: float
    raw_direction: Direction
    raw_confidence: float
    entry_price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    risk_reward_ratio: Optional[float]
    atr: float
    regime: Regime
    indicators: tuple[IndicatorResult, ...]
    patterns: tuple[PatternFormation, ...]
    support_levels: tuple[float, ...]
    resistance_levels: tuple[float, ...]
    timestamp: datetime
    alignment_penalty: float = 0.0
    demoted: bool = False


@dataclass(frozen=True)
class NoSignal:
    """Explicit "no signal available" entry for a timeframe."""

    timeframe: str
    reason: str
    error: Optional[str] = None  # exception class name, if one was raised


SignalEntry = Union[TimeframeSignal, NoSignal]


@dataclass(frozen=True)
class AlignedSignalSet:
    """All requested timeframes of one symbol after hierarchy reconciliation."""

    symbol: str
    anchor_direction: Direction
    anchor_timeframes: tuple[str, ...]
    entries: dict[str, SignalEntry]
    computed_at: datetime

    def get(self, timeframe: str) -> Optional[SignalEntry]:
        return self.entries.get(timeframe)

    def signals(self) -> list[TimeframeSignal]:
        """Valid signals ordered by hierarchy weight, highest first."""
        valid = [e for e in self.entries.values() if isinstance(e, TimeframeSignal)]
        valid.sort(key=lambda s: get_timeframe(s.timeframe).weight, reverse=True)
        return valid


@dataclass(frozen=True)
class TradeRecommendation:
    """One actionable recommendation derived from a single aligned signal."""

    symbol: str
    timeframe: str
    direction: Direction
    confidence: float
    entry: float
    stop_loss: float
    take_profits: tuple[float, float, float]
    leverage: int
    risk_reward_ratio: float
    rationale: tuple[str, ...] = field(default_factory=tuple)
