# -*- coding: utf-8 -*-
"""
Thread-safe import statistics.

ImportStats is updated by the accumulator threads and every dispatch worker;
snapshot() returns an immutable StatsSnapshot that can be logged, written to
JSON or checked at the end of a run. StatsReporter logs a snapshot every few
seconds while an import is running.

No-loss invariant, checked at the end of every run:
    records_read == rows_succeeded + rows_failed

Example:
    stats = ImportStats()
    stats.record_read()
    stats.record_compiled()
    stats.record_attempt(latency=0.02)
    stats.record_batch_success(rows=1)
    stats.snapshot().rows_accounted  # True
"""
# Standard library
import threading
import time
from dataclasses import asdict, dataclass
from typing import Dict, Optional

# Local
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the import counters."""
    records_read: int = 0
    records_compiled: int = 0
    compile_failures: int = 0
    rows_rejected: int = 0
    batches_dispatched: int = 0
    batches_succeeded: int = 0
    batches_failed: int = 0
    submit_attempts: int = 0
    retries: int = 0
    rows_succeeded: int = 0
    rows_failed: int = 0
    submit_latency_sec: float = 0.0
    elapsed_sec: float = 0.0

    @property
    def rows_accounted(self) -> bool:
        """Every row read either succeeded or sits in a failure sink."""
        return self.records_read == self.rows_succeeded + self.rows_failed

    @property
    def avg_latency_sec(self) -> float:
        return self.submit_latency_sec / self.submit_attempts if self.submit_attempts else 0.0

    @property
    def rows_per_sec(self) -> float:
        return self.rows_succeeded / self.elapsed_sec if self.elapsed_sec > 0 else 0.0

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['avg_latency_sec'] = round(self.avg_latency_sec, 6)
        data['rows_per_sec'] = round(self.rows_per_sec, 1)
        return data

    def summary(self) -> str:
        return (
            f"read {self.records_read}, "
            f"imported {self.rows_succeeded}, "
            f"failed {self.rows_failed} "
            f"(compile {self.compile_failures}, rejected {self.rows_rejected}), "
            f"batches {self.batches_succeeded}/{self.batches_dispatched} ok, "
            f"{self.batches_failed} failed, "
            f"{self.retries} retries, "
            f"avg latency {self.avg_latency_sec * 1000:.1f}ms"
        )


class ImportStats:
    """
    Thread-safe counters for one import run.

    All updates take a single lock; counters are plain ints so the critical
    sections stay tiny.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._start = time.monotonic()

        self._records_read = 0
        self._records_compiled = 0
        self._compile_failures = 0
        self._rows_rejected = 0
        self._batches_dispatched = 0
        self._batches_succeeded = 0
        self._batches_failed = 0
        self._submit_attempts = 0
        self._retries = 0
        self._rows_succeeded = 0
        self._rows_failed = 0
        self._submit_latency = 0.0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def record_read(self, count: int = 1):
        with self._lock:
            self._records_read += count

    def record_compiled(self, count: int = 1):
        with self._lock:
            self._records_compiled += count

    def record_compile_failure(self):
        """A row was read but could not be compiled (and was sunk)."""
        with self._lock:
            self._compile_failures += 1
            self._rows_failed += 1

    def record_rejected(self):
        """A row was rejected by the row source itself (and was sunk)."""
        with self._lock:
            self._records_read += 1
            self._rows_rejected += 1
            self._rows_failed += 1

    def record_rows_failed(self, rows: int):
        """Rows sunk outside a dispatch attempt (e.g. cancelled before enqueue)."""
        with self._lock:
            self._rows_failed += rows

    def record_dispatched(self):
        with self._lock:
            self._batches_dispatched += 1

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def record_attempt(self, latency: float, retry: bool = False):
        """One submit call finished (successfully or not)."""
        with self._lock:
            self._submit_attempts += 1
            self._submit_latency += float(latency)
            if retry:
                self._retries += 1

    def record_batch_success(self, rows: int):
        with self._lock:
            self._batches_succeeded += 1
            self._rows_succeeded += rows

    def record_batch_failure(self, rows: int):
        with self._lock:
            self._batches_failed += 1
            self._rows_failed += rows

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                records_read=self._records_read,
                records_compiled=self._records_compiled,
                compile_failures=self._compile_failures,
                rows_rejected=self._rows_rejected,
                batches_dispatched=self._batches_dispatched,
                batches_succeeded=self._batches_succeeded,
                batches_failed=self._batches_failed,
                submit_attempts=self._submit_attempts,
                retries=self._retries,
                rows_succeeded=self._rows_succeeded,
                rows_failed=self._rows_failed,
                submit_latency_sec=self._submit_latency,
                elapsed_sec=time.monotonic() - self._start,
            )


class StatsReporter:
    """
    Background thread logging a stats snapshot every `interval` seconds.

    Usage:
        with StatsReporter(stats, interval=5.0):
            run_import()
    """

    def __init__(self, stats: ImportStats, interval: float = 5.0):
        self.stats = stats
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self.interval <= 0:
            return
        self._thread = threading.Thread(target=self._run, name="stats-reporter", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval):
            logger.info(f"Progress: {self.stats.snapshot().summary()}")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
