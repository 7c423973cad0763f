"""SignalEngine — one calculation cycle for one symbol.

A cycle fetches the reference price and every configured timeframe
concurrently, runs the signal generator for each timeframe in a worker
thread, and waits for all of them before reconciling.  Only a complete
snapshot reaches the aligner.  If the symbol state was invalidated while
the cycle ran, the whole result is thrown away.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from signalforge.analysis.hierarchy import align_signals
from signalforge.analysis.models import (
    AlignedSignalSet,
    Candle,
    NoSignal,
    SignalEntry,
    get_timeframe,
)
from signalforge.analysis.signal_generator import generate_signal
from signalforge.config import Config
from signalforge.errors import SignalError
from signalforge.events import EventBus, SignalSetChanged, diff_aligned_sets
from signalforge.feed.base import CandleFeed
from signalforge.scoring.accuracy import AccuracyTracker

logger = logging.getLogger("signalforge.engine")


@dataclass
class SymbolState:
    """Everything the scheduler keeps per symbol.

    ``generation`` is bumped to invalidate in-flight cycles.  ``aligned`` is
    only ever replaced whole, by the cycle holding ``lock``.
    """

    symbol: str
    generation: int = 0
    cycle_count: int = 0
    last_cycle_at: Optional[datetime] = None
    aligned: Optional[AlignedSignalSet] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class SignalEngine:
    """Runs calculation cycles against a candle feed.

    Args:
        config: Global ``Config``.
        feed: Market-data source.
        tracker: Accuracy tracker fed with every directional signal of a completed cycle.
        events: Bus that receives ``SignalSetChanged`` events.
    """

    def __init__(
        self,
        config: Config,
        feed: CandleFeed,
        tracker: AccuracyTracker,
        events: EventBus,
    ) -> None:
        self._config = config
        self._feed = feed
        self._tracker = tracker
        self._events = events

    @property
    def timeframes(self) -> tuple[str, ...]:
        return self._config.timeframes

    # ── Per-timeframe work ───────────────────────────────────────────────

    async def _compute_timeframe(
        self,
        symbol: str,
        timeframe: str,
        current_price: float,
        utc_now: datetime,
    ) -> tuple[SignalEntry, list[Candle]]:
        """Signal (or ``NoSignal``) for one timeframe, plus the candles used."""
        try:
            candles = await self._feed.fetch_candles(
                symbol, timeframe, self._config.candle_limit
            )
        except Exception as exc:
            logger.warning("%s %s: candle fetch failed: %s", symbol, timeframe, exc)
            return NoSignal(
                timeframe=timeframe,
                reason=f"candle fetch failed: {exc}",
                error=type(exc).__name__,
            ), []

        if not candles:
            return NoSignal(timeframe=timeframe, reason="no candles"), []

        try:
            signal = await asyncio.to_thread(
                generate_signal,
                symbol,
                timeframe,
                candles,
                current_price,
                utc_now,
                self._config.stale_after_bars,
            )
        except SignalError as exc:
            logger.warning("%s %s: no signal (%s): %s", symbol, timeframe, type(exc).__name__, exc)
            return NoSignal(timeframe=timeframe, reason=str(exc), error=type(exc).__name__), candles
        except Exception as exc:
            logger.exception("%s %s: signal generation failed", symbol, timeframe)
            return NoSignal(
                timeframe=timeframe,
                reason=f"signal generation failed: {exc}",
                error=type(exc).__name__,
            ), candles
        return signal, candles

    # ── Accuracy bookkeeping ─────────────────────────────────────────────

    def _resolve_accuracy(
        self,
        state: SymbolState,
        price: Optional[float],
        candles_by_tf: dict[str, list[Candle]],
        utc_now: datetime,
    ) -> int:
        """Resolve pending records with this cycle's market data."""
        resolved = 0
        finest = min(
            (tf for tf, candles in candles_by_tf.items() if candles),
            key=lambda tf: get_timeframe(tf).weight,
            default=None,
        )
        if finest is not None:
            candles = candles_by_tf[finest]
            if state.last_cycle_at is None:
                fresh = candles[-1:]
            else:
                since = state.last_cycle_at - timedelta(seconds=get_timeframe(finest).seconds)
                fresh = [c for c in candles if c.open_time >= since]
            for candle in fresh:
                resolved += len(self._tracker.observe_candle(state.symbol, candle))
        if price is not None:
            resolved += len(self._tracker.observe_price(state.symbol, price, utc_now))
        resolved += len(self._tracker.expire(utc_now, state.symbol))
        return resolved

    def _record_signals(self, aligned: AlignedSignalSet) -> int:
        """Record every directional signal of a completed cycle."""
        recorded = 0
        for signal in aligned.signals():
            if self._tracker.record_signal(signal) is not None:
                recorded += 1
        return recorded

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_cycle(
        self,
        state: SymbolState,
        utc_now: Optional[datetime] = None,
    ) -> dict:
        """Execute one calculation cycle for *state*'s symbol.

        The caller must hold ``state.lock``.

        Returns a dict describing the outcome:

        - ``{"action": "completed", ...}``
        - ``{"action": "discarded", "reason": "invalidated"}``
        """
        if utc_now is None:
            utc_now = datetime.now(timezone.utc)
        symbol = state.symbol
        generation = state.generation
        timeframes = list(self._config.timeframes)

        try:
            price: Optional[float] = await self._feed.fetch_price(symbol)
        except Exception as exc:
            logger.error("%s: price fetch failed: %s", symbol, exc)
            price = None
            entries: dict[str, SignalEntry] = {
                tf: NoSignal(timeframe=tf, reason=f"price fetch failed: {exc}", error=type(exc).__name__)
                for tf in timeframes
            }
            candles_by_tf: dict[str, list[Candle]] = {}
        else:
            results = await asyncio.gather(*(
                self._compute_timeframe(symbol, tf, price, utc_now) for tf in timeframes
            ))
            entries = {tf: entry for tf, (entry, _) in zip(timeframes, results)}
            candles_by_tf = {tf: candles for tf, (_, candles) in zip(timeframes, results)}

        if state.generation != generation:
            logger.info("%s: cycle discarded, state invalidated", symbol)
            return {"action": "discarded", "symbol": symbol, "reason": "invalidated"}

        aligned = align_signals(
            symbol,
            entries,
            timeframes=timeframes,
            penalty_per_weight=self._config.penalty_per_weight,
            demotion_floor=self._config.demotion_floor,
            computed_at=utc_now,
        )

        resolved = self._resolve_accuracy(state, price, candles_by_tf, utc_now)
        previous = state.aligned
        recorded = self._record_signals(aligned)

        state.aligned = aligned
        state.cycle_count += 1
        state.last_cycle_at = utc_now

        changes = diff_aligned_sets(previous, aligned)
        if changes:
            self._events.publish(SignalSetChanged(
                symbol=symbol,
                computed_at=utc_now,
                anchor_direction=aligned.anchor_direction,
                changes=tuple(changes),
            ))

        valid = len(aligned.signals())
        return {
            "action": "completed",
            "symbol": symbol,
            "anchor_direction": aligned.anchor_direction,
            "signals": valid,
            "no_signal": len(timeframes) - valid,
            "changes": len(changes),
            "recorded": recorded,
            "resolved": resolved,
        }
