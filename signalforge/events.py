"""Change events for the presentational layer.

A ``SignalSetChanged`` is published when a completed cycle differs
materially from the previous one: some timeframe changed direction,
confidence bucket, or availability.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from signalforge.analysis.models import AlignedSignalSet, SignalEntry, TimeframeSignal
from signalforge.scoring.confidence import confidence_bucket

logger = logging.getLogger("signalforge.events")


@dataclass(frozen=True)
class TimeframeChange:
    """``None`` direction/bucket means no signal was available."""
    timeframe: str
    previous_direction: Optional[str]
    direction: Optional[str]
    previous_bucket: Optional[str]
    bucket: Optional[str]


@dataclass(frozen=True)
class SignalSetChanged:
    symbol: str
    computed_at: datetime
    anchor_direction: str
    changes: tuple[TimeframeChange, ...]

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "computed_at": self.computed_at.isoformat(),
            "anchor_direction": self.anchor_direction,
            "changes": [
                {
                    "timeframe": c.timeframe,
                    "previous_direction": c.previous_direction,
                    "direction": c.direction,
                    "previous_bucket": c.previous_bucket,
                    "bucket": c.bucket,
                }
                for c in self.changes
            ],
        }


def _snapshot(entry: Optional[SignalEntry]) -> tuple[Optional[str], Optional[str]]:
    if isinstance(entry, TimeframeSignal):
        return entry.direction, confidence_bucket(entry.confidence)
    return None, None


def diff_aligned_sets(
    previous: Optional[AlignedSignalSet],
    current: AlignedSignalSet,
) -> list[TimeframeChange]:
    """Timeframes whose direction, bucket or availability changed."""
    changes: list[TimeframeChange] = []
    for tf, entry in current.entries.items():
        before = _snapshot(previous.get(tf) if previous is not None else None)
        after = _snapshot(entry)
        if before != after:
            changes.append(TimeframeChange(
                timeframe=tf,
                previous_direction=before[0],
                direction=after[0],
                previous_bucket=before[1],
                bucket=after[1],
            ))
    return changes


Listener = Callable[[SignalSetChanged], None]


class EventBus:
    """Synchronous publish/subscribe for ``SignalSetChanged`` events."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: SignalSetChanged) -> None:
        """Deliver *event* to every listener.

        A failing listener is logged and does not stop delivery to the rest.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed for %s", listener, event.symbol)
