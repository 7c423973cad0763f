"""Market-data feed protocol.

Defines the interface the calculation cycle consumes candles and prices
through.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from signalforge.analysis.models import Candle


@runtime_checkable
class CandleFeed(Protocol):
    """Source of candle series and reference prices."""

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """Return up to *limit* candles, oldest-first, deduplicated by open time."""
        ...

    async def fetch_price(self, symbol: str) -> float:
        """Return the current reference price of *symbol*."""
        ...


def dedupe_candles(candles: list[Candle]) -> list[Candle]:
    """Sort by open time and keep the last candle seen for each open time."""
    by_time: dict = {}
    for candle in candles:
        by_time[candle.open_time] = candle
    return [by_time[t] for t in sorted(by_time)]
