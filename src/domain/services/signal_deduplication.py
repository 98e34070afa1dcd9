"""
Signal Deduplication Service - Cooldown, per-hour cap and duplicate-bar tracking.

Keeps one lightweight DeduplicationRecord per emitted signal. The store is
explicitly constructed and injected into the scanner; nothing here is a
module-level singleton.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from ..entities.composite_signal import CompositeSignal, DeduplicationRecord

logger = logging.getLogger(__name__)


def generate_bar_time_key(
    symbol: str, detector_type: str, instant: datetime, bar_interval_minutes: int = 5
) -> str:
    """
    Key identifying the bar a detection belongs to.

    The instant is floored to the start of its ``bar_interval_minutes`` bucket
    in UTC, so two scans inside the same bar share a key.

    Returns:
        ``"{symbol}:{detector_type}:{bucket_start_iso}"``
    """
    moment = instant if instant.tzinfo else instant.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    bucket_seconds = bar_interval_minutes * 60
    epoch = int(moment.timestamp())
    bucket_start = datetime.fromtimestamp(epoch - epoch % bucket_seconds, tz=UTC)
    return f"{symbol}:{detector_type}:{bucket_start.isoformat()}"


class DeduplicationStore:
    """
    Thread-safe record of recent emissions keyed by symbol.

    ``symbol_lock`` serialises the check-then-record sequence of one scan so
    two concurrent scans of the same symbol cannot both pass the duplicate-bar
    or cap checks. Internal bookkeeping is additionally guarded by a store-wide
    lock.
    """

    MAX_RECORDS_PER_SYMBOL = 100
    MAX_HISTORY_SIZE = 1000
    MIN_RETENTION_MINUTES = 60

    def __init__(
        self,
        max_records_per_symbol: int = MAX_RECORDS_PER_SYMBOL,
        max_history_size: int = MAX_HISTORY_SIZE,
    ) -> None:
        """Initialize the store and its locks."""
        self._records: dict[str, list[DeduplicationRecord]] = {}
        self._keys: set[tuple[str, str, str]] = set()
        self._lock = threading.Lock()
        self._symbol_locks: dict[str, threading.RLock] = {}
        self._lock_holders: defaultdict[str, int] = defaultdict(int)
        self._max_records_per_symbol = max_records_per_symbol
        self._max_history_size = max_history_size

    @contextmanager
    def symbol_lock(self, symbol: str) -> Iterator[None]:
        """Hold the per-symbol lock for the duration of the block."""
        with self._lock:
            lock = self._symbol_locks.setdefault(symbol, threading.RLock())
            self._lock_holders[symbol] += 1
        try:
            with lock:
                yield
        finally:
            with self._lock:
                self._lock_holders[symbol] -= 1
                if not self._lock_holders[symbol]:
                    del self._lock_holders[symbol]
                    if symbol not in self._records:
                        del self._symbol_locks[symbol]

    def _drop_idle_locks(self) -> None:
        # Caller holds self._lock
        for symbol in list(self._symbol_locks):
            if symbol not in self._records and symbol not in self._lock_holders:
                del self._symbol_locks[symbol]

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_signal(self, signal: CompositeSignal) -> DeduplicationRecord:
        """
        Append a record for an emitted signal.

        Args:
            signal: The signal that was just emitted

        Returns:
            The stored record
        """
        record = DeduplicationRecord(
            symbol=signal.symbol,
            detector_type=signal.detector_type,
            bar_time_key=signal.bar_time_key,
            emitted_at=signal.detected_at,
            composite_score=signal.composite_score,
        )
        self.record(record)
        return record

    def record(self, record: DeduplicationRecord) -> None:
        with self._lock:
            if record.key in self._keys:
                logger.warning(
                    "Ignoring duplicate dedup record for %s %s at %s",
                    record.symbol,
                    record.detector_type,
                    record.bar_time_key,
                )
                return

            history = self._records.setdefault(record.symbol, [])
            history.append(record)
            self._keys.add(record.key)

            while len(history) > self._max_records_per_symbol:
                self._keys.discard(history.pop(0).key)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_duplicate(self, symbol: str, detector_type: str, bar_time_key: str) -> bool:
        """Whether a signal was already emitted for this symbol, detector and bar."""
        with self._lock:
            return (symbol, detector_type, bar_time_key) in self._keys

    def get_last_emission(self, symbol: str, detector_type: str) -> datetime | None:
        """Timestamp of the most recent emission for a symbol and detector type."""
        with self._lock:
            history = self._records.get(symbol, [])
            times = [r.emitted_at for r in history if r.detector_type == detector_type]
        return max(times) if times else None

    def is_in_cooldown(
        self, symbol: str, detector_type: str, now: datetime, cooldown_minutes: float
    ) -> bool:
        """Whether the last emission of this detector is younger than the cooldown."""
        last = self.get_last_emission(symbol, detector_type)
        if last is None:
            return False
        return now - last < timedelta(minutes=cooldown_minutes)

    def count_in_window(
        self,
        symbol: str,
        detector_type: str | None = None,
        window: timedelta = timedelta(hours=1),
        now: datetime | None = None,
    ) -> int:
        """
        Count emissions inside a trailing window.

        Args:
            symbol: Symbol to count for
            detector_type: Restrict to one detector, or ``None`` for all
            window: Trailing window length
            now: Window end; defaults to the newest record's timestamp

        Returns:
            Number of records with ``now - window <= emitted_at <= now``
        """
        with self._lock:
            history = list(self._records.get(symbol, []))

        if detector_type is not None:
            history = [r for r in history if r.detector_type == detector_type]
        if not history:
            return 0

        end = now or max(r.emitted_at for r in history)
        start = end - window
        return sum(1 for r in history if start <= r.emitted_at <= end)

    def get_recent_signals(
        self, symbol: str, now: datetime, max_age: timedelta = timedelta(hours=1)
    ) -> list[DeduplicationRecord]:
        cutoff = now - max_age
        with self._lock:
            return [r for r in self._records.get(symbol, []) if r.emitted_at >= cutoff]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._keys.clear()
            self._drop_idle_locks()
        logger.info("Cleared signal deduplication history")

    def clear_symbol(self, symbol: str) -> None:
        with self._lock:
            for record in self._records.pop(symbol, []):
                self._keys.discard(record.key)
            self._drop_idle_locks()

    def prune(self, now: datetime, cooldown_minutes: float = 0) -> int:
        """
        Drop records no longer needed for cooldown or cap checks.

        Records older than ``max(cooldown_minutes, 60)`` minutes are removed,
        then the oldest records overall are dropped until the global history
        cap is respected.

        Args:
            now: Reference time
            cooldown_minutes: Longest cooldown currently configured

        Returns:
            Number of records removed
        """
        retention = timedelta(minutes=max(cooldown_minutes, self.MIN_RETENTION_MINUTES))
        cutoff = now - retention
        removed = 0

        with self._lock:
            for symbol in list(self._records):
                history = self._records[symbol]
                kept = [r for r in history if r.emitted_at >= cutoff]
                for record in history:
                    if record.emitted_at < cutoff:
                        self._keys.discard(record.key)
                removed += len(history) - len(kept)
                if kept:
                    self._records[symbol] = kept
                else:
                    del self._records[symbol]

            total = sum(len(history) for history in self._records.values())
            if total > self._max_history_size:
                oldest = sorted(
                    (r for history in self._records.values() for r in history),
                    key=lambda r: r.emitted_at,
                )[: total - self._max_history_size]
                for record in oldest:
                    history = self._records[record.symbol]
                    history.remove(record)
                    self._keys.discard(record.key)
                    if not history:
                        del self._records[record.symbol]
                removed += len(oldest)

            self._drop_idle_locks()

        if removed:
            logger.debug("Pruned %d deduplication records", removed)
        return removed

    def get_stats(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Summary of the stored history.

        Ages are in seconds relative to ``now`` (or the newest record when
        omitted) and are 0 when the store is empty.
        """
        with self._lock:
            records = [r for history in self._records.values() for r in history]
            unique_symbols = len(self._records)

        if not records:
            return {
                "total_signals": 0,
                "unique_symbols": 0,
                "oldest_signal_age": 0.0,
                "newest_signal_age": 0.0,
            }

        oldest = min(r.emitted_at for r in records)
        newest = max(r.emitted_at for r in records)
        reference = now or newest
        return {
            "total_signals": len(records),
            "unique_symbols": unique_symbols,
            "oldest_signal_age": (reference - oldest).total_seconds(),
            "newest_signal_age": (reference - newest).total_seconds(),
        }

    def __len__(self) -> int:
        with self._lock:
            return sum(len(history) for history in self._records.values())
