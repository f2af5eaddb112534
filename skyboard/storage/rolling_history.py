"""
Rolling history store - per-entity time-series with file persistence.

This is the analytical backbone for "today" statistics. Every refresh
of the live cache appends one snapshot per entity here, which lets us
derive figures the upstream feed never provides:
- Distinct flights seen in the last 24 hours
- Peak airborne count and when it happened
- Day-over-day change against a stored baseline

Storage model:
- In memory: dict of identifier -> time-ordered list of snapshots
- On disk: one JSON document holding the mapping plus auxiliary
  counters (peaks, baseline, cached delay totals)
- Archives: gzip-compressed copies of the same document, named by date,
  written before the live file is shrunk

Retention is bounded by age (7 days on disk by default) and the file is
bounded by size. Rotation never drops data silently: the pre-rotation
content is archived first, and if archiving fails nothing is pruned.

Concurrency:
- _lock guards the mapping and counters (append, prune, reads)
- _io_lock serializes file writes; it is always taken before _lock
- persist() serializes under _lock but writes outside it, so appends
  from the refresh thread never wait on disk I/O
- rotation holds both locks for its whole duration
"""

import bisect
import gzip
import json
import logging
import os
import queue
import threading
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from skyboard.analytics.daily_stats import (
    derive_daily_statistics,
    ms_to_iso,
    percent_change,
)
from skyboard.models import DailyStatistics, EntitySnapshot

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_PERSIST = object()
_STOP = object()


class PersistWorker:
    """
    Background writer for fire-and-forget persistence.

    Requests go through a queue of size one. A request that arrives
    while another is pending is coalesced: the pending write will
    serialize the latest state anyway. This bounds the backlog at a
    single write no matter how fast appends arrive.
    """

    def __init__(self, store: 'RollingHistoryStore'):
        self._store = store
        self._queue: 'queue.Queue[object]' = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self.submitted = 0
        self.coalesced = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running:
            logger.warning('Persist worker already running')
            return

        self._thread = threading.Thread(
            target=self._run,
            name='history-persist',
            daemon=True,
        )
        self._thread.start()
        logger.info('History persist worker started')

    def submit(self) -> bool:
        """Queue a write. Returns False when coalesced into a pending one."""
        try:
            self._queue.put_nowait(_PERSIST)
        except queue.Full:
            self.coalesced += 1
            return False
        self.submitted += 1
        return True

    def stop(self, timeout: float = 5.0) -> None:
        if not self.is_running:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning('Persist worker busy; not waiting for it to stop')
            return
        self._thread.join(timeout=timeout)
        logger.info('History persist worker stopped')

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            try:
                self._store.persist()
            except Exception as e:
                self.failures += 1
                logger.error(f'History persist worker error: {e}')


class RollingHistoryStore:
    """
    Append-only, age-bounded history of entity snapshots.

    Appends never deduplicate: readers use "latest snapshot per
    identifier" semantics. Sequences are kept ordered by timestamp, and
    a sequence emptied by pruning is removed entirely.
    """

    def __init__(
        self,
        data_file: str,
        archive_dir: str,
        retention_days: int = 7,
        stats_window_hours: int = 24,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            data_file: Path of the durable JSON document
            archive_dir: Directory for gzip archives written on rotation
            retention_days: Age bound for stored snapshots
            stats_window_hours: Window for "today" statistics
            clock: Seconds since epoch; injectable for tests
        """
        self.data_file = data_file
        self.archive_dir = archive_dir
        self.retention = timedelta(days=retention_days)
        self.stats_window = timedelta(hours=stats_window_hours)
        self._clock = clock

        self._history: Dict[str, List[EntitySnapshot]] = {}
        self._lock = threading.RLock()
        self._io_lock = threading.Lock()

        # Auxiliary counters persisted alongside the mapping
        self._peak_flights = 0
        self._peak_time: Optional[str] = None
        self._current_delays = 0
        self._current_cancellations = 0
        self._yesterday_stats: Optional[DailyStatistics] = None
        self._baseline_date: Optional[str] = None

        self._persister = PersistWorker(self)

        # Statistics
        self._persist_count = 0
        self._persist_failures = 0
        self._last_persist_error: Optional[str] = None
        self._rotations = 0
        self._last_archive: Optional[str] = None

    @classmethod
    def from_config(cls, history_config, clock: Callable[[], float] = time.time) -> 'RollingHistoryStore':
        """Create a store from HistoryConfig."""
        return cls(
            data_file=history_config.data_file,
            archive_dir=history_config.archive_dir,
            retention_days=history_config.retention_days,
            stats_window_hours=history_config.stats_window_hours,
            clock=clock,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def append(self, snapshots: Iterable[EntitySnapshot]) -> int:
        """
        Append one batch of snapshots (normally one live refresh).

        Also updates the peak airborne counter from the batch and
        requests a background write.

        Returns count of snapshots appended.
        """
        snapshots = list(snapshots)
        if not snapshots:
            return 0

        with self._lock:
            for snap in snapshots:
                sequence = self._history.setdefault(snap.id, [])
                if not sequence or sequence[-1].timestamp <= snap.timestamp:
                    sequence.append(snap)
                else:
                    # Late observation: keep the sequence time-ordered
                    position = bisect.bisect_right([s.timestamp for s in sequence], snap.timestamp)
                    sequence.insert(position, snap)

            flying = sum(1 for s in snapshots if s.is_active)
            if flying > self._peak_flights:
                self._peak_flights = flying
                self._peak_time = ms_to_iso(self._now_ms())

        self.request_persist()
        return len(snapshots)

    def prune(self, retention: Optional[timedelta] = None) -> int:
        """
        Drop snapshots older than now - retention.

        Sequences left empty are removed. Returns count of snapshots
        dropped.
        """
        retention = retention if retention is not None else self.retention
        with self._lock:
            removed, emptied = self._prune_locked(retention)

        if removed:
            logger.info(f'Pruned {removed} snapshots, {emptied} entities expired')
        return removed

    def _prune_locked(self, retention: timedelta) -> Tuple[int, int]:
        cutoff = self._now_ms() - int(retention.total_seconds() * 1000)
        removed = 0
        emptied = 0

        for entity_id in list(self._history):
            sequence = self._history[entity_id]
            keep_from = bisect.bisect_left([s.timestamp for s in sequence], cutoff)
            if keep_from == 0:
                continue

            removed += keep_from
            if keep_from >= len(sequence):
                del self._history[entity_id]
                emptied += 1
            else:
                self._history[entity_id] = sequence[keep_from:]

        return removed, emptied

    def set_delay_totals(self, delays: int, cancellations: int) -> None:
        """Record authoritative delay/cancellation totals from the status feed."""
        with self._lock:
            changed = (delays, cancellations) != (self._current_delays, self._current_cancellations)
            self._current_delays = int(delays)
            self._current_cancellations = int(cancellations)

        if changed:
            self.request_persist()

    @property
    def delay_totals(self) -> Tuple[int, int]:
        """Last recorded (delays, cancellations) totals."""
        with self._lock:
            return self._current_delays, self._current_cancellations

    # -------------------------------------------------------------------------
    # Derived statistics
    # -------------------------------------------------------------------------

    def derive_daily_statistics(self, current: Sequence[EntitySnapshot]) -> DailyStatistics:
        """Statistics for the last stats_window, given the live snapshot."""
        with self._lock:
            history = {k: list(v) for k, v in self._history.items()}
            peak_flights = self._peak_flights
            peak_time = self._peak_time

        return derive_daily_statistics(
            history,
            current,
            now_ms=self._now_ms(),
            window_ms=int(self.stats_window.total_seconds() * 1000),
            peak_flights=peak_flights,
            peak_time=peak_time,
        )

    @property
    def yesterday_stats(self) -> Optional[DailyStatistics]:
        with self._lock:
            return self._yesterday_stats

    def change_from_yesterday(self, current: Sequence[EntitySnapshot]) -> float:
        """
        Percent change in distinct flights against the stored baseline.

        Returns 0.0 until a baseline has been captured.
        """
        baseline = self.yesterday_stats
        if baseline is None:
            return 0.0

        today = self.derive_daily_statistics(current)
        return percent_change(today.total_unique_flights, baseline.total_unique_flights)

    def save_yesterday_stats(self, current: Sequence[EntitySnapshot]) -> DailyStatistics:
        """
        Store the current statistics as the day-over-day baseline.

        Resets the peak counters, which track a single day.
        """
        stats = self.derive_daily_statistics(current)
        with self._lock:
            self._yesterday_stats = stats
            self._peak_flights = 0
            self._peak_time = None

        logger.info(
            f'Saved daily baseline: {stats.total_unique_flights} unique flights, '
            f'peak {stats.peak_flights}'
        )
        self.request_persist()
        return stats

    def capture_daily_baseline(
        self,
        current: Sequence[EntitySnapshot],
        today: Optional[date] = None,
    ) -> bool:
        """
        Save the baseline once per wall-clock date.

        The first call only records the date; the baseline is captured
        when the date next changes, so it describes a full day.

        Returns True when a baseline was captured.
        """
        today = today or datetime.fromtimestamp(self._clock()).date()
        key = today.isoformat()

        with self._lock:
            previous = self._baseline_date
            if previous == key:
                return False
            self._baseline_date = key

        if previous is None:
            logger.debug(f'Baseline date initialised to {key}')
            self.request_persist()
            return False

        self.save_yesterday_stats(current)
        return True

    # -------------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------------

    def get_history(self, entity_id: str) -> Tuple[EntitySnapshot, ...]:
        with self._lock:
            return tuple(self._history.get(entity_id, ()))

    def entity_ids(self) -> List[str]:
        with self._lock:
            return list(self._history)

    def total_snapshots(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._history.values())

    def serialized_size(self) -> int:
        """Size in bytes of the document persist() would write."""
        with self._lock:
            return len(self._serialize_locked().encode('utf-8'))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _payload_locked(self, history_entries: Optional[list] = None) -> dict:
        if history_entries is None:
            history_entries = [
                [entity_id, [s.to_dict() for s in sequence]]
                for entity_id, sequence in self._history.items()
            ]

        return {
            'version': FORMAT_VERSION,
            'flight_history': history_entries,
            'yesterday_stats': self._yesterday_stats.to_dict() if self._yesterday_stats else None,
            'baseline_date': self._baseline_date,
            'peak_flights': self._peak_flights,
            'peak_time': self._peak_time,
            'current_delays': self._current_delays,
            'current_cancellations': self._current_cancellations,
            'saved_at': self._now_ms(),
        }

    def _serialize_locked(self) -> str:
        return json.dumps(self._payload_locked(), separators=(',', ':'))

    def _write_atomic(self, payload: str) -> None:
        """Write via a temp file and rename, creating the directory if absent."""
        directory = os.path.dirname(self.data_file) or '.'
        os.makedirs(directory, exist_ok=True)

        tmp_path = f'{self.data_file}.tmp'
        try:
            with open(tmp_path, 'w', encoding='utf-8') as fh:
                fh.write(payload)
            os.replace(tmp_path, self.data_file)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def request_persist(self) -> None:
        """
        Fire-and-forget write.

        Goes through the background worker when it is running, otherwise
        writes synchronously.
        """
        if self._persister.is_running:
            self._persister.submit()
        else:
            self.persist()

    def persist(self) -> bool:
        """
        Write the full mapping and counters to the durable file.

        Failures are logged and swallowed; the in-memory state stays
        authoritative. Returns True on success.
        """
        with self._io_lock:
            with self._lock:
                payload = self._serialize_locked()

            try:
                self._write_atomic(payload)
            except OSError as e:
                self._persist_failures += 1
                self._last_persist_error = str(e)
                logger.error(f'Failed to persist flight history to {self.data_file}: {e}')
                return False

        self._persist_count += 1
        logger.debug(f'Persisted flight history ({len(payload)} bytes)')
        return True

    def load(self) -> bool:
        """
        Restore state from the durable file.

        Snapshots older than the retention window are discarded. A
        missing or corrupt file is a cold start, not an error.

        Returns True when prior data was restored.
        """
        if not os.path.exists(self.data_file):
            logger.info(f'No flight history at {self.data_file}, starting empty')
            return False

        cutoff = self._now_ms() - int(self.retention.total_seconds() * 1000)

        try:
            with open(self.data_file, 'r', encoding='utf-8') as fh:
                data = json.load(fh)

            history: Dict[str, List[EntitySnapshot]] = {}
            for entity_id, raw_snapshots in data.get('flight_history') or []:
                recent = [
                    snap for snap in (EntitySnapshot.from_dict(r) for r in raw_snapshots)
                    if snap.timestamp >= cutoff
                ]
                if recent:
                    recent.sort(key=lambda s: s.timestamp)
                    history[str(entity_id)] = recent

            yesterday = data.get('yesterday_stats')
            yesterday_stats = DailyStatistics.from_dict(yesterday) if yesterday else None
            peak_flights = int(data.get('peak_flights') or 0)
            current_delays = int(data.get('current_delays') or 0)
            current_cancellations = int(data.get('current_cancellations') or 0)

        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f'Flight history at {self.data_file} unreadable, starting empty: {e}')
            return False

        with self._lock:
            self._history = history
            self._yesterday_stats = yesterday_stats
            self._baseline_date = data.get('baseline_date')
            self._peak_flights = peak_flights
            self._peak_time = data.get('peak_time')
            self._current_delays = current_delays
            self._current_cancellations = current_cancellations

        logger.info(
            f'Loaded flight history: {len(history)} entities, '
            f'{sum(len(v) for v in history.values())} snapshots'
        )
        return True

    # -------------------------------------------------------------------------
    # Rotation
    # -------------------------------------------------------------------------

    def _archive_path(self) -> str:
        day = datetime.fromtimestamp(self._clock()).strftime('%Y-%m-%d')
        path = os.path.join(self.archive_dir, f'flight-history-{day}.json.gz')
        suffix = 1
        while os.path.exists(path):
            path = os.path.join(self.archive_dir, f'flight-history-{day}-{suffix}.json.gz')
            suffix += 1
        return path

    def _write_archive(self, payload: str) -> str:
        os.makedirs(self.archive_dir, exist_ok=True)
        path = self._archive_path()
        with gzip.open(path, 'wt', encoding='utf-8') as fh:
            fh.write(payload)
        return path

    def _compact_locked(self, max_bytes: int) -> None:
        """
        Shrink the mapping until its serialized form fits max_bytes.

        Steps, each only when the previous was not enough:
        1. Prune to the statistics window
        2. Keep only the latest snapshot per entity
        3. Keep the most recently seen entities that fit
        """
        self._prune_locked(self.stats_window)
        if len(self._serialize_locked().encode('utf-8')) <= max_bytes:
            return

        self._history = {k: v[-1:] for k, v in self._history.items()}
        if len(self._serialize_locked().encode('utf-8')) <= max_bytes:
            return

        base = len(json.dumps(self._payload_locked([]), separators=(',', ':')).encode('utf-8'))
        by_recency = sorted(
            self._history.items(),
            key=lambda item: item[1][-1].timestamp,
            reverse=True,
        )

        kept = set()
        total = base
        for entity_id, sequence in by_recency:
            entry = json.dumps([entity_id, [s.to_dict() for s in sequence]], separators=(',', ':'))
            cost = len(entry.encode('utf-8')) + (1 if kept else 0)
            if total + cost > max_bytes:
                break
            kept.add(entity_id)
            total += cost

        dropped = len(self._history) - len(kept)
        self._history = {k: v for k, v in self._history.items() if k in kept}
        logger.warning(f'Rotation evicted {dropped} least-recent entities to fit {max_bytes} bytes')

    def rotate_if_oversized(self, max_bytes: int) -> Optional[str]:
        """
        Archive and shrink the history when it exceeds max_bytes.

        The current document is gzip-compressed to a dated archive
        before anything is pruned; if archiving fails, nothing is
        pruned. The live file is then rewritten from the compacted
        state.

        Returns the archive path, or None when no rotation happened.
        """
        with self._io_lock, self._lock:
            payload = self._serialize_locked()
            size = len(payload.encode('utf-8'))
            if os.path.exists(self.data_file):
                try:
                    size = max(size, os.path.getsize(self.data_file))
                except OSError:
                    pass

            if size <= max_bytes:
                return None

            logger.info(f'Flight history is {size} bytes (limit {max_bytes}), rotating')

            try:
                archive_path = self._write_archive(payload)
            except OSError as e:
                logger.error(f'Failed to archive flight history, rotation skipped: {e}')
                return None

            before = sum(len(v) for v in self._history.values())
            self._compact_locked(max_bytes)
            after = sum(len(v) for v in self._history.values())

            self._rotations += 1
            self._last_archive = archive_path

            try:
                self._write_atomic(self._serialize_locked())
            except OSError as e:
                self._persist_failures += 1
                self._last_persist_error = str(e)
                logger.error(f'Failed to rewrite flight history after rotation: {e}')

        logger.info(f'Archived to {archive_path}; snapshots {before} -> {after}')
        return archive_path

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_persist_worker(self) -> None:
        self._persister.start()

    def stop(self) -> None:
        """Stop the background writer and flush a final copy to disk."""
        self._persister.stop()
        self.persist()

    @property
    def stats(self) -> dict:
        """Get store statistics."""
        with self._lock:
            entities = len(self._history)
            snapshots = sum(len(v) for v in self._history.values())
            peak = self._peak_flights
            peak_time = self._peak_time

        return {
            'entities': entities,
            'snapshots': snapshots,
            'peak_flights': peak,
            'peak_time': peak_time,
            'has_baseline': self.yesterday_stats is not None,
            'persist_count': self._persist_count,
            'persist_failures': self._persist_failures,
            'persist_pending_coalesced': self._persister.coalesced,
            'persist_worker_errors': self._persister.failures,
            'last_persist_error': self._last_persist_error,
            'rotations': self._rotations,
            'last_archive': self._last_archive,
            'data_file': self.data_file,
        }
