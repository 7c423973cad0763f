"""SignalScheduler — owns per-symbol state and decides when cycles run.

At most one cycle is in flight per symbol.  A manual trigger waits for the
running cycle and then runs its own; a background (timer) trigger that
finds a cycle in flight is dropped.  Symbols never share mutable state.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from signalforge.analysis.models import AlignedSignalSet, TradeRecommendation
from signalforge.analysis.recommendation import build_recommendation
from signalforge.config import Config
from signalforge.engine import SignalEngine, SymbolState
from signalforge.scoring.accuracy import AccuracyMetric, AccuracyRecord, AccuracyTracker

logger = logging.getLogger("signalforge.scheduler")


class SignalScheduler:
    """Lifecycle manager for the tracked symbols.

    Args:
        config:  Global ``Config``.
        engine:  The ``SignalEngine`` that runs cycles.
        tracker: Accuracy tracker shared with the engine.
        symbols: Symbols to track (default: ``config.symbols``).
    """

    def __init__(
        self,
        config: Config,
        engine: SignalEngine,
        tracker: AccuracyTracker,
        symbols: Optional[list[str]] = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._tracker = tracker
        self._states: dict[str, SymbolState] = {
            s: SymbolState(symbol=s) for s in (symbols or config.symbols)
        }
        self._running = False

    # ── State ────────────────────────────────────────────────────────────

    @property
    def symbols(self) -> list[str]:
        return list(self._states.keys())

    @property
    def running(self) -> bool:
        return self._running

    def get_state(self, symbol: str) -> Optional[SymbolState]:
        return self._states.get(symbol)

    def add_symbol(self, symbol: str) -> SymbolState:
        """Start tracking *symbol* (no-op if already tracked)."""
        if symbol not in self._states:
            self._states[symbol] = SymbolState(symbol=symbol)
            logger.info("Tracking symbol '%s'.", symbol)
        return self._states[symbol]

    def switch_symbol(self, old: str, new: str) -> SymbolState:
        """Replace *old* with *new*, invalidating *old*'s in-flight work.

        Raises:
            KeyError: If *old* is not tracked.
        """
        state = self._states.pop(old)
        state.generation += 1
        logger.info("Switched symbol '%s' → '%s'; in-flight work discarded.", old, new)
        return self.add_symbol(new)

    # ── Triggers ─────────────────────────────────────────────────────────

    async def trigger(
        self,
        symbol: str,
        manual: bool = True,
        utc_now: Optional[datetime] = None,
    ) -> dict:
        """Run a cycle for *symbol*.

        Manual triggers queue behind an in-flight cycle; background
        triggers are dropped instead.

        Returns the cycle's result dict, or one of:

        - ``{"action": "dropped", "reason": "cycle_in_flight"}``
        - ``{"action": "discarded", "reason": "invalidated"}``
        - ``{"action": "error", "reason": "Unknown symbol: ..."}``
        """
        state = self._states.get(symbol)
        if state is None:
            return {"action": "error", "symbol": symbol, "reason": f"Unknown symbol: {symbol}"}

        if not manual and state.lock.locked():
            logger.info("%s: cycle in flight, background trigger dropped", symbol)
            return {"action": "dropped", "symbol": symbol, "reason": "cycle_in_flight"}

        generation = state.generation
        async with state.lock:
            if state.generation != generation or self._states.get(symbol) is not state:
                logger.info("%s: trigger discarded, state invalidated while queued", symbol)
                return {"action": "discarded", "symbol": symbol, "reason": "invalidated"}
            result = await self._engine.run_cycle(state, utc_now)

        logger.info("%s cycle %d: %s", symbol, state.cycle_count, result.get("action", "unknown"))
        return result

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run background cycles for every symbol until stopped.

        Args:
            poll_interval: Seconds between rounds.  Defaults to
                ``config.poll_interval_seconds``.
            max_cycles: Stop after this many rounds (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.poll_interval_seconds
        self._running = True
        results: list[dict] = []
        rounds = 0

        while self._running:
            rounds += 1
            symbols = self.symbols
            outcomes = await asyncio.gather(
                *(self.trigger(s, manual=False) for s in symbols),
                return_exceptions=True,
            )
            for symbol, outcome in zip(symbols, outcomes):
                if isinstance(outcome, Exception):
                    logger.error("%s: cycle error: %s", symbol, outcome)
                    results.append({"action": "error", "symbol": symbol, "reason": str(outcome)})
                else:
                    results.append(outcome)

            if max_cycles > 0 and rounds >= max_cycles:
                break

            # Interruptible sleep, checks _running every second
            for _ in range(poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        return results

    def stop(self) -> None:
        """Signal the loop to stop after the current round."""
        self._running = False

    # ── Outputs ──────────────────────────────────────────────────────────

    def get_aligned_signal_set(self, symbol: str) -> Optional[AlignedSignalSet]:
        """Latest aligned set, or ``None`` before the first completed cycle."""
        state = self._states.get(symbol)
        return state.aligned if state is not None else None

    def get_trade_recommendation(
        self,
        symbol: str,
        timeframe: Optional[str] = None,
    ) -> Optional[TradeRecommendation]:
        aligned = self.get_aligned_signal_set(symbol)
        if aligned is None:
            return None
        return build_recommendation(aligned, timeframe, self._config.max_leverage)

    def get_accuracy(self, symbol: str, timeframe: str) -> Optional[AccuracyMetric]:
        """Rolling hit rate, or ``None`` for "no data"."""
        return self._tracker.get_accuracy(symbol, timeframe)

    def observe_price(
        self,
        symbol: str,
        price: float,
        observed_at: Optional[datetime] = None,
    ) -> list[AccuracyRecord]:
        """Feed an out-of-cycle price tick to the accuracy tracker."""
        if observed_at is None:
            observed_at = datetime.now(timezone.utc)
        return self._tracker.observe_price(symbol, price, observed_at)

    def get_status(self, symbol: Optional[str] = None) -> dict:
        """Return aggregated or per-symbol status."""
        def _one(state: SymbolState) -> dict:
            return {
                "symbol": state.symbol,
                "cycle_count": state.cycle_count,
                "last_cycle_at": state.last_cycle_at.isoformat() if state.last_cycle_at else None,
                "in_flight": state.lock.locked(),
                "anchor_direction": state.aligned.anchor_direction if state.aligned else None,
            }

        if symbol is not None:
            state = self._states.get(symbol)
            if state is None:
                return {"error": f"Unknown symbol: {symbol}"}
            return _one(state)

        return {
            "running": self._running,
            "symbols": {s: _one(st) for s, st in self._states.items()},
        }
