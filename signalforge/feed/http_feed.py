"""Market-data service async client.

Fetches candle series and reference prices over HTTP:

    GET {base}/candles?symbol=BTCUSDT&timeframe=1h&limit=250
        → [{"openTime": <ms>, "open": .., "high": .., "low": .., "close": .., "volume": ..}, ...]
    GET {base}/price?symbol=BTCUSDT
        → {"price": ..}
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from signalforge.analysis.models import Candle
from signalforge.feed.base import dedupe_candles

logger = logging.getLogger("signalforge.feed")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


def _parse_candle(raw: dict) -> Candle:
    return Candle(
        open_time=datetime.fromtimestamp(int(raw["openTime"]) / 1000, tz=timezone.utc),
        open=float(raw["open"]),
        high=float(raw["high"]),
        low=float(raw["low"]),
        close=float(raw["close"]),
        volume=float(raw["volume"]),
    )


class HttpCandleFeed:
    """Async client for the market-data service.

    Args:
        base_url: Service root, e.g. ``"http://localhost:9000"``.
        transport: Optional httpx transport (tests pass a ``MockTransport``).
        retry_base_delay: First retry delay in seconds; doubles each attempt.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._retry_base_delay = retry_base_delay

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _get_with_retry(self, path: str, params: dict) -> httpx.Response:
        """GET with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        url = f"{self._base_url}{path}"
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            delay = self._retry_base_delay * (2 ** attempt)
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    resp = await client.get(url, params=params, timeout=30.0)

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    logger.warning(
                        "GET %s returned %d — retry %d/%d in %.1fs",
                        url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                logger.warning(
                    "GET %s transport error (%s) — retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        # All retries exhausted, raise the last error
        raise last_exc  # type: ignore[misc]

    # ── Market data ──────────────────────────────────────────────────────

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int = 250) -> list[Candle]:
        """Fetch up to *limit* candles, oldest-first, deduplicated."""
        resp = await self._get_with_retry(
            "/candles",
            {"symbol": symbol, "timeframe": timeframe, "limit": limit},
        )
        candles = [_parse_candle(raw) for raw in resp.json()]
        return dedupe_candles(candles)[-limit:]

    async def fetch_price(self, symbol: str) -> float:
        resp = await self._get_with_retry("/price", {"symbol": symbol})
        return float(resp.json()["price"])
