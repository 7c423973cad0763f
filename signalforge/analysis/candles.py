"""Candle series validation — pure functions, no I/O."""

from datetime import datetime, timedelta

from signalforge.analysis.models import Candle, Timeframe
from signalforge.errors import InvalidCandleError, StaleDataError


def validate_candle(candle: Candle) -> None:
    """Check the OHLC invariants of a single candle.

    Raises ``InvalidCandleError`` naming the violated rule.
    """
    prices = (candle.open, candle.high, candle.low, candle.close)
    if any(p <= 0 for p in prices):
        raise InvalidCandleError(
            f"Non-positive price in candle at {candle.open_time.isoformat()}"
        )
    if candle.volume < 0:
        raise InvalidCandleError(
            f"Negative volume in candle at {candle.open_time.isoformat()}"
        )
    if candle.high < max(candle.open, candle.close):
        raise InvalidCandleError(
            f"High below body in candle at {candle.open_time.isoformat()}"
        )
    if candle.low > min(candle.open, candle.close):
        raise InvalidCandleError(
            f"Low above body in candle at {candle.open_time.isoformat()}"
        )


def validate_candles(candles: list[Candle]) -> None:
    """Validate every candle and the strict ordering of ``open_time``.

    The whole series is rejected on the first violation.
    """
    for i, candle in enumerate(candles):
        validate_candle(candle)
        if i > 0 and candle.open_time <= candles[i - 1].open_time:
            raise InvalidCandleError(
                f"open_time not strictly increasing at index {i} "
                f"({candle.open_time.isoformat()})"
            )


def check_freshness(
    candles: list[Candle],
    timeframe: Timeframe,
    utc_now: datetime,
    stale_after_bars: int = 3,
) -> None:
    """Raise ``StaleDataError`` if the newest candle is too old.

    The newest candle must have opened within ``stale_after_bars`` candle
    intervals of *utc_now*.
    """
    if not candles:
        return
    age = utc_now - candles[-1].open_time
    limit = timedelta(seconds=timeframe.seconds * stale_after_bars)
    if age > limit:
        raise StaleDataError(
            f"Newest {timeframe.name} candle is {age} old "
            f"(limit {limit})"
        )
