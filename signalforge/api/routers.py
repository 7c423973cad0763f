"""Internal API routers — /status, /signals, /recommendation, /accuracy, /cycles, /prices, /events.

No business logic, no DB access. Delegates to the scheduler and shared state.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Query

from signalforge.analysis.hierarchy import summarize_confluence
from signalforge.analysis.models import TIMEFRAMES, AlignedSignalSet, TimeframeSignal
from signalforge.events import SignalSetChanged

logger = logging.getLogger("signalforge.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_scheduler = None  # Set via configure_routers()
_events: list = []  # Recent change events (max 50 entries)


def configure_routers(scheduler=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        scheduler: A ``SignalScheduler`` instance (or duck-type for tests).
    """
    global _scheduler  # noqa: PLW0603
    _scheduler = scheduler
    _events.clear()


def record_event(event: SignalSetChanged) -> None:
    """Append a change event to the ring buffer (max 50).

    Subscribed to the ``EventBus`` at startup.
    """
    _events.append(event.to_dict())
    # Cap at 50 entries
    if len(_events) > 50:
        del _events[0]


# ── Serialisation ────────────────────────────────────────────────────────


def _entry_to_dict(entry) -> dict:
    if isinstance(entry, TimeframeSignal):
        return {"available": True, **asdict(entry)}
    return {"available": False, **asdict(entry)}


def _aligned_to_dict(aligned: AlignedSignalSet) -> dict:
    return {
        "symbol": aligned.symbol,
        "anchor_direction": aligned.anchor_direction,
        "anchor_timeframes": list(aligned.anchor_timeframes),
        "computed_at": aligned.computed_at.isoformat(),
        "entries": {tf: _entry_to_dict(e) for tf, e in aligned.entries.items()},
    }


def _unknown_symbol(symbol: str) -> Optional[dict]:
    if _scheduler is None:
        return {"error": "Scheduler not configured"}
    if symbol not in _scheduler.symbols:
        return {"error": f"Unknown symbol: {symbol}"}
    return None


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return scheduler status for all symbols."""
    if _scheduler is None:
        return {"running": False, "symbols": {}}
    return _scheduler.get_status()


@router.get("/signals/{symbol}")
async def get_signals(symbol: str):
    """Return the latest aligned signal set for a symbol."""
    error = _unknown_symbol(symbol)
    if error:
        return error
    aligned = _scheduler.get_aligned_signal_set(symbol)
    if aligned is None:
        return {"error": f"No completed cycle for {symbol}"}
    return _aligned_to_dict(aligned)


@router.get("/signals/{symbol}/confluence")
async def get_confluence(symbol: str):
    """Return the cross-timeframe confluence summary for a symbol."""
    error = _unknown_symbol(symbol)
    if error:
        return error
    aligned = _scheduler.get_aligned_signal_set(symbol)
    if aligned is None:
        return {"error": f"No completed cycle for {symbol}"}
    return asdict(summarize_confluence(aligned))


@router.get("/recommendation/{symbol}")
async def get_recommendation(
    symbol: str,
    timeframe: Optional[str] = Query(default=None),
):
    """Return the trade recommendation, or ``null`` when none applies."""
    error = _unknown_symbol(symbol)
    if error:
        return error
    if timeframe is not None and timeframe not in TIMEFRAMES:
        return {"error": f"Unknown timeframe: {timeframe}"}
    rec = _scheduler.get_trade_recommendation(symbol, timeframe)
    return {
        "symbol": symbol,
        "timeframe": timeframe,
        "recommendation": asdict(rec) if rec is not None else None,
    }


@router.get("/accuracy/{symbol}/{timeframe}")
async def get_accuracy(symbol: str, timeframe: str):
    """Return the rolling hit rate, or ``"no data"`` when nothing resolved."""
    error = _unknown_symbol(symbol)
    if error:
        return error
    if timeframe not in TIMEFRAMES:
        return {"error": f"Unknown timeframe: {timeframe}"}
    metric = _scheduler.get_accuracy(symbol, timeframe)
    if metric is None:
        return {"symbol": symbol, "timeframe": timeframe, "status": "no data"}
    return {"symbol": symbol, "timeframe": timeframe, "status": "ok", **asdict(metric)}


@router.post("/cycles/{symbol}")
async def trigger_cycle(symbol: str):
    """Run a manual cycle for a symbol (queued behind any in-flight cycle)."""
    error = _unknown_symbol(symbol)
    if error:
        return error
    logger.info("Manual cycle requested for %s", symbol)
    return await _scheduler.trigger(symbol, manual=True)


@router.post("/prices/{symbol}")
async def post_price(symbol: str, body: dict):
    """Feed an out-of-cycle price tick to the accuracy tracker.

    Resolves the symbol's pending records whose stop or target the price
    has touched.
    """
    error = _unknown_symbol(symbol)
    if error:
        return error
    try:
        price = float(body["price"])
    except (KeyError, TypeError, ValueError):
        return {"status": "error", "errors": ["price must be a number"]}
    if not price > 0:
        return {"status": "error", "errors": ["price must be positive"]}

    resolved = _scheduler.observe_price(symbol, price)
    if resolved:
        logger.info("%s: price tick %.4f resolved %d record(s)", symbol, price, len(resolved))
    return {"status": "ok", "symbol": symbol, "price": price, "resolved": len(resolved)}


@router.get("/events")
async def get_events(limit: int = Query(default=20, ge=1, le=50)):
    """Return the most recent change events, newest first."""
    return {"events": list(reversed(_events[-limit:]))}
