"""Signal accuracy tracking.

Every directional signal becomes a pending ``AccuracyRecord``.  Price and
candle observations resolve pending records for their symbol:

* target touched first → correct
* stop touched first → incorrect
* both inside one candle → incorrect (the order cannot be known)
* pending past the timeframe's maximum lifetime → incorrect (expired)

The hit rate covers the last ``window`` resolved records per
(symbol, timeframe).  With nothing resolved there is no metric at all.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Literal, Optional, Protocol

from signalforge.analysis.models import Candle, Direction, TimeframeSignal, get_timeframe

logger = logging.getLogger("signalforge.accuracy")

Outcome = Literal["pending", "correct", "incorrect"]
ResolutionReason = Literal["target", "stop", "expired"]


@dataclass(frozen=True)
class AccuracyRecord:
    """One emitted signal and how it played out."""

    id: Optional[int]
    symbol: str
    timeframe: str
    predicted_direction: Direction
    predicted_at: datetime
    entry_price_at_prediction: float
    stop_loss: float
    take_profit: float
    confidence: float
    resolved_outcome: Outcome = "pending"
    resolved_at: Optional[datetime] = None
    exit_price: Optional[float] = None
    resolution_reason: Optional[ResolutionReason] = None


@dataclass(frozen=True)
class AccuracyMetric:
    hit_rate: float  # correct / resolved, 0–1
    resolved_count: int
    correct: int
    incorrect: int


class AccuracyStore(Protocol):
    """Append/resolve-only storage for accuracy records."""

    def add(self, record: AccuracyRecord) -> AccuracyRecord:
        ...

    def pending(self, symbol: Optional[str] = None) -> list[AccuracyRecord]:
        ...

    def resolve(
        self,
        record_id: int,
        outcome: Outcome,
        resolved_at: datetime,
        exit_price: Optional[float],
        reason: ResolutionReason,
    ) -> bool:
        ...

    def resolved(self, symbol: str, timeframe: str, limit: int) -> list[AccuracyRecord]:
        ...


class InMemoryAccuracyStore:
    """Lock-protected in-process store.

    ``resolve`` only succeeds on a still-pending record, so overlapping
    resolution passes never resolve a record twice.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, AccuracyRecord] = {}
        self._ids = itertools.count(1)

    def add(self, record: AccuracyRecord) -> AccuracyRecord:
        with self._lock:
            stored = replace(record, id=next(self._ids))
            self._records[stored.id] = stored
            return stored

    def pending(self, symbol: Optional[str] = None) -> list[AccuracyRecord]:
        with self._lock:
            return [
                r for r in self._records.values()
                if r.resolved_outcome == "pending"
                and (symbol is None or r.symbol == symbol)
            ]

    def resolve(
        self,
        record_id: int,
        outcome: Outcome,
        resolved_at: datetime,
        exit_price: Optional[float],
        reason: ResolutionReason,
    ) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.resolved_outcome != "pending":
                return False
            self._records[record_id] = replace(
                record,
                resolved_outcome=outcome,
                resolved_at=resolved_at,
                exit_price=exit_price,
                resolution_reason=reason,
            )
            return True

    def resolved(self, symbol: str, timeframe: str, limit: int) -> list[AccuracyRecord]:
        """Most recently resolved records first."""
        with self._lock:
            done = [
                r for r in self._records.values()
                if r.symbol == symbol
                and r.timeframe == timeframe
                and r.resolved_outcome != "pending"
            ]
        done.sort(key=lambda r: (r.resolved_at, r.id), reverse=True)
        return done[:limit]


def _is_expired(record: AccuracyRecord, at: datetime) -> bool:
    lifetime = timedelta(seconds=get_timeframe(record.timeframe).max_hold_seconds)
    return at - record.predicted_at > lifetime


class AccuracyTracker:
    """Records signals and resolves them against later prices.

    Args:
        store: Where records live (in-memory or SQLite).
        window: Number of most recent resolved records in the hit rate.
    """

    def __init__(self, store: AccuracyStore, window: int = 50) -> None:
        if window < 1:
            raise ValueError(f"window must be at least 1, got {window}")
        self._store = store
        self._window = window

    def record_signal(self, signal: TimeframeSignal) -> Optional[AccuracyRecord]:
        """Append a pending record for a directional signal.

        NEUTRAL signals (and any without stop/target) are not recorded.
        """
        if (
            signal.direction == "NEUTRAL"
            or signal.stop_loss is None
            or signal.take_profit is None
        ):
            return None
        return self._store.add(AccuracyRecord(
            id=None,
            symbol=signal.symbol,
            timeframe=signal.timeframe,
            predicted_direction=signal.direction,
            predicted_at=signal.timestamp,
            entry_price_at_prediction=signal.entry_price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            confidence=signal.confidence,
        ))

    def _finish(
        self,
        record: AccuracyRecord,
        outcome: Outcome,
        at: datetime,
        exit_price: Optional[float],
        reason: ResolutionReason,
        resolved: list[AccuracyRecord],
    ) -> None:
        if self._store.resolve(record.id, outcome, at, exit_price, reason):
            logger.info(
                "Resolved %s %s %s signal #%s: %s (%s)",
                record.symbol, record.timeframe, record.predicted_direction,
                record.id, outcome, reason,
            )
            resolved.append(replace(
                record,
                resolved_outcome=outcome,
                resolved_at=at,
                exit_price=exit_price,
                resolution_reason=reason,
            ))

    def observe_price(
        self,
        symbol: str,
        price: float,
        observed_at: datetime,
    ) -> list[AccuracyRecord]:
        """Resolve pending records of *symbol* against a price tick.

        Returns the records resolved by this observation.
        """
        resolved: list[AccuracyRecord] = []
        for record in self._store.pending(symbol):
            if observed_at < record.predicted_at:
                continue
            if _is_expired(record, observed_at):
                self._finish(record, "incorrect", observed_at, price, "expired", resolved)
                continue

            if record.predicted_direction == "LONG":
                hit_target = price >= record.take_profit
                hit_stop = price <= record.stop_loss
            else:
                hit_target = price <= record.take_profit
                hit_stop = price >= record.stop_loss

            if hit_stop:
                self._finish(record, "incorrect", observed_at, price, "stop", resolved)
            elif hit_target:
                self._finish(record, "correct", observed_at, price, "target", resolved)
        return resolved

    def observe_candle(self, symbol: str, candle: Candle) -> list[AccuracyRecord]:
        """Resolve pending records of *symbol* against a candle's range.

        Only candles opening at or after a record's prediction time count
        for it.  A candle touching both levels resolves as incorrect.
        """
        resolved: list[AccuracyRecord] = []
        at = candle.open_time
        for record in self._store.pending(symbol):
            if at < record.predicted_at:
                continue
            if _is_expired(record, at):
                self._finish(record, "incorrect", at, candle.open, "expired", resolved)
                continue

            if record.predicted_direction == "LONG":
                hit_target = candle.high >= record.take_profit
                hit_stop = candle.low <= record.stop_loss
            else:
                hit_target = candle.low <= record.take_profit
                hit_stop = candle.high >= record.stop_loss

            if hit_stop:
                self._finish(record, "incorrect", at, record.stop_loss, "stop", resolved)
            elif hit_target:
                self._finish(record, "correct", at, record.take_profit, "target", resolved)
        return resolved

    def expire(self, utc_now: datetime, symbol: Optional[str] = None) -> list[AccuracyRecord]:
        """Resolve pending records past their lifetime as incorrect.

        Only *symbol*'s records are considered when a symbol is given.
        """
        resolved: list[AccuracyRecord] = []
        for record in self._store.pending(symbol):
            if _is_expired(record, utc_now):
                self._finish(record, "incorrect", utc_now, None, "expired", resolved)
        return resolved

    def get_accuracy(self, symbol: str, timeframe: str) -> Optional[AccuracyMetric]:
        """Hit rate over the last ``window`` resolved records.

        Returns ``None`` when no record has been resolved yet.
        """
        records = self._store.resolved(symbol, timeframe, self._window)
        if not records:
            return None
        correct = sum(1 for r in records if r.resolved_outcome == "correct")
        return AccuracyMetric(
            hit_rate=correct / len(records),
            resolved_count=len(records),
            correct=correct,
            incorrect=len(records) - correct,
        )
