"""Accuracy repository — SQLite storage for the accuracy_records table."""

import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Optional

from signalforge.repos.db import get_connection
from signalforge.scoring.accuracy import AccuracyRecord, Outcome, ResolutionReason


def _row_to_record(row: sqlite3.Row) -> AccuracyRecord:
    return AccuracyRecord(
        id=row["id"],
        symbol=row["symbol"],
        timeframe=row["timeframe"],
        predicted_direction=row["predicted_direction"],
        predicted_at=datetime.fromisoformat(row["predicted_at"]),
        entry_price_at_prediction=row["entry_price_at_prediction"],
        stop_loss=row["stop_loss"],
        take_profit=row["take_profit"],
        confidence=row["confidence"],
        resolved_outcome=row["resolved_outcome"],
        resolved_at=(
            datetime.fromisoformat(row["resolved_at"]) if row["resolved_at"] else None
        ),
        exit_price=row["exit_price"],
        resolution_reason=row["resolution_reason"],
    )


class AccuracyRepo:
    """Data access layer for accuracy records.

    Each call opens its own connection, so resolution passes for
    different symbols can run from different threads.  ``init_db`` must
    have been run on *db_path*.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def add(self, record: AccuracyRecord) -> AccuracyRecord:
        """Insert a pending record and return it with its ``id``."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO accuracy_records
                    (symbol, timeframe, predicted_direction, predicted_at,
                     entry_price_at_prediction, stop_loss, take_profit,
                     confidence)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.symbol, record.timeframe, record.predicted_direction,
                    record.predicted_at.isoformat(), record.entry_price_at_prediction,
                    record.stop_loss, record.take_profit, record.confidence,
                ),
            )
            conn.commit()
            record_id = cur.lastrowid
        finally:
            conn.close()
        return replace(record, id=record_id)

    def resolve(
        self,
        record_id: int,
        outcome: Outcome,
        resolved_at: datetime,
        exit_price: Optional[float],
        reason: ResolutionReason,
    ) -> bool:
        """Resolve a pending record.  Returns ``False`` if it was not pending."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                UPDATE accuracy_records
                SET resolved_outcome = ?, resolved_at = ?, exit_price = ?,
                    resolution_reason = ?
                WHERE id = ? AND resolved_outcome = 'pending'
                """,
                (outcome, resolved_at.isoformat(), exit_price, reason, record_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def pending(self, symbol: Optional[str] = None) -> list[AccuracyRecord]:
        conn = get_connection(self._db_path)
        try:
            if symbol is None:
                rows = conn.execute(
                    "SELECT * FROM accuracy_records WHERE resolved_outcome = 'pending' "
                    "ORDER BY id"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM accuracy_records "
                    "WHERE resolved_outcome = 'pending' AND symbol = ? ORDER BY id",
                    (symbol,),
                ).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            conn.close()

    def resolved(self, symbol: str, timeframe: str, limit: int) -> list[AccuracyRecord]:
        """Most recently resolved records first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                """
                SELECT * FROM accuracy_records
                WHERE symbol = ? AND timeframe = ? AND resolved_outcome != 'pending'
                ORDER BY resolved_at DESC, id DESC
                LIMIT ?
                """,
                (symbol, timeframe, limit),
            ).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            conn.close()
