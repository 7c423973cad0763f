"""In-process candle feed for replays and tests."""

from typing import Optional

from signalforge.analysis.models import Candle
from signalforge.feed.base import dedupe_candles


class InMemoryCandleFeed:
    """Serves candle series and prices loaded with ``set_candles``/``set_price``.

    A missing series is returned as an empty list; a missing price falls
    back to the close of the newest candle of any loaded series.
    """

    def __init__(self) -> None:
        self._candles: dict[tuple[str, str], list[Candle]] = {}
        self._prices: dict[str, float] = {}
        self._failures: dict[tuple[str, str], Exception] = {}

    def set_candles(self, symbol: str, timeframe: str, candles: list[Candle]) -> None:
        self._candles[(symbol, timeframe)] = dedupe_candles(list(candles))

    def set_price(self, symbol: str, price: float) -> None:
        self._prices[symbol] = price

    def fail(self, symbol: str, timeframe: str, exc: Exception) -> None:
        """Make ``fetch_candles`` raise *exc* for one series."""
        self._failures[(symbol, timeframe)] = exc

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int = 250) -> list[Candle]:
        exc = self._failures.get((symbol, timeframe))
        if exc is not None:
            raise exc
        return list(self._candles.get((symbol, timeframe), []))[-limit:]

    async def fetch_price(self, symbol: str) -> float:
        if symbol in self._prices:
            return self._prices[symbol]
        latest: Optional[Candle] = None
        for (sym, _), candles in self._candles.items():
            if sym == symbol and candles and (latest is None or candles[-1].open_time > latest.open_time):
                latest = candles[-1]
        if latest is None:
            raise KeyError(f"No price for symbol '{symbol}'")
        return latest.close
