# -*- coding: utf-8 -*-
"""
Dispatch pool: fixed set of database workers behind one bounded queue.

W workers (W = clientSettings.concurrency) each hold one persistent client and
read batches from a single queue.Queue of capacity channelBufferSize, fed by
one BatchAccumulator per input file. Producers block in put() while the queue
is full, so batches are never dropped under load.

Per-batch state machine:
    dequeue -> submit -> success                          (stats, done)
                      -> TransientDispatchError -> retry  (up to `retry` more times)
                      -> FatalDispatchError / retries exhausted / unexpected error
                                                 -> failure sink (stats, done)

Shutdown:
    join()    after every producer finished: one sentinel per worker, wait for
              all workers, re-raise a SinkWriteError captured by any worker
    cancel()  cooperative: in-flight submits finish, batches still queued or
              waiting for a retry go to the failure sink with a "cancelled"
              reason, producers blocked in put() get ImportCancelled
    worker error  anything escaping the state machine (e.g. a sink raising a
              non-OSError) sinks the batch if possible and cancels the pool,
              so producers are always released

Ordering: batches of one source are enqueued in row order. With more than one
worker, batches from the same source may be applied out of relative order;
only concurrency = 1 guarantees end-to-end order.

Example:
    pool = DispatchPool(client_factory, concurrency=4, buffer_size=64, retry=2, stats=stats)
    pool.register_sink("files[0]:data/student.csv", sink)
    pool.start()
    BatchAccumulator(..., emit=pool.put, ...).run(records)
    pool.join()
"""
# Standard library
import time
from concurrent.futures import ThreadPoolExecutor
from queue import Full, Queue
from threading import Event, Lock
from typing import Callable, Dict, List, Optional

# Local
from graph_importer.graph.graph_client import GraphClient
from graph_importer.utils.dataclasses import Batch
from graph_importer.utils.errors import (
    FatalDispatchError,
    ImportCancelled,
    SinkWriteError,
    TransientDispatchError,
)
from graph_importer.utils.failure_sink import FailureSink
from graph_importer.utils.logger import get_logger
from graph_importer.utils.stats import ImportStats

logger = get_logger(__name__)

# Tells a worker to exit once everything queued before it is processed
_SENTINEL = object()

BatchListener = Callable[[Batch, bool], None]


class DispatchPool:
    """
    Concurrent batch dispatcher with retry, backpressure and failure capture.

    Features:
    - Fixed worker count, one client per worker for the worker's lifetime
    - Bounded queue shared by all producers
    - Transient failures retried with linear backoff
    - Exhausted/fatal batches routed to the source's failure sink
    - Per-batch outcome listeners (progress bars, metrics)
    """

    def __init__(
        self,
        client_factory: Callable[[], GraphClient],
        concurrency: int = 10,
        buffer_size: int = 128,
        retry: int = 1,
        stats: Optional[ImportStats] = None,
        retry_backoff: float = 0.2,
        poll_interval: float = 0.1
    ):
        """
        Initialize dispatch pool.

        Args:
            client_factory: Called once per worker to open its client
            concurrency: Number of workers
            buffer_size: Queue capacity in batches
            retry: Extra attempts for transiently failing batches
            stats: Shared run statistics (a fresh one if None)
            retry_backoff: Sleep before retry n is retry_backoff * n seconds
            poll_interval: How often a blocked producer re-checks cancellation
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")
        if retry < 0:
            raise ValueError(f"retry must be >= 0, got {retry}")

        self.client_factory = client_factory
        self.concurrency = concurrency
        self.buffer_size = buffer_size
        self.retry = retry
        self.stats = stats or ImportStats()
        self.retry_backoff = retry_backoff
        self.poll_interval = poll_interval

        self.queue: Queue = Queue(maxsize=buffer_size)
        self._cancel = Event()
        self._sinks: Dict[str, FailureSink] = {}
        self._listeners: List[BatchListener] = []

        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures = []

        self._error_lock = Lock()
        self._fatal_error: Optional[SinkWriteError] = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def register_sink(self, source: str, sink: FailureSink):
        """Route failed batches of `source` to `sink`. Call before start()."""
        self._sinks[source] = sink

    def add_listener(self, listener: BatchListener):
        """Call listener(batch, succeeded) when a batch reaches a terminal state."""
        self._listeners.append(listener)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def fatal_error(self) -> Optional[SinkWriteError]:
        with self._error_lock:
            return self._fatal_error

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._executor is not None:
            raise RuntimeError("DispatchPool already started")

        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="dispatch"
        )
        self._futures = [
            self._executor.submit(self._worker_loop, worker_id)
            for worker_id in range(self.concurrency)
        ]
        logger.info(
            f"Started {self.concurrency} dispatch workers "
            f"(buffer {self.buffer_size}, retry {self.retry})"
        )

    def put(self, batch: Batch):
        """
        Enqueue a batch, blocking while the queue is full.

        Raises:
            ImportCancelled: The pool was cancelled; the batch was not enqueued
        """
        while True:
            if self._cancel.is_set():
                raise ImportCancelled(f"dispatch pool cancelled, batch {batch.sequence} of {batch.source} not enqueued")
            try:
                self.queue.put(batch, timeout=self.poll_interval)
                return
            except Full:
                continue

    def cancel(self):
        """Request cooperative shutdown."""
        if not self._cancel.is_set():
            logger.warning("Dispatch pool cancellation requested")
        self._cancel.set()

    def join(self):
        """
        Wait until every queued and in-flight batch reached a terminal state.

        Call only after all producers finished emitting.

        Raises:
            SinkWriteError: A worker could not record failed rows
        """
        if self._executor is None:
            raise RuntimeError("DispatchPool was never started")

        for _ in range(self.concurrency):
            self.queue.put(_SENTINEL)

        for future in self._futures:
            future.result()
        self._executor.shutdown(wait=True)
        self._executor = None
        logger.info("All dispatch workers finished")

        if self.fatal_error is not None:
            raise self.fatal_error

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.cancel()
        self.join()
        return False

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker_loop(self, worker_id: int):
        client = None
        try:
            client = self.client_factory()
        except Exception as e:
            # Keep draining so producers never deadlock; every batch is sunk
            logger.error(f"Worker {worker_id}: cannot open database client: {e}")
            self.cancel()
            connect_error = e
        else:
            connect_error = None

        try:
            while True:
                batch = self.queue.get()
                try:
                    if batch is _SENTINEL:
                        return
                    if connect_error is not None:
                        self._fail(batch, f"no database connection: {connect_error}")
                    else:
                        self._process(client, batch)
                except SinkWriteError as e:
                    self._set_fatal(e)
                except Exception as e:
                    logger.exception(
                        f"Worker {worker_id}: unexpected error on {batch.source} batch {batch.sequence}"
                    )
                    self._abort(batch, e)
                finally:
                    self.queue.task_done()
        finally:
            if client is not None:
                try:
                    client.close()
                except Exception as e:
                    logger.warning(f"Worker {worker_id}: error closing client: {e}")

    def _process(self, client: GraphClient, batch: Batch):
        max_attempts = self.retry + 1
        attempt = 0

        while True:
            if self._cancel.is_set():
                self._fail(batch, "cancelled before submit")
                return

            attempt += 1
            start = time.monotonic()
            try:
                client.submit(batch)
            except TransientDispatchError as e:
                self.stats.record_attempt(time.monotonic() - start, retry=attempt > 1)
                if attempt >= max_attempts:
                    self._fail(batch, f"retries exhausted after {attempt} attempts: {e}")
                    return
                logger.warning(
                    f"{batch.source} batch {batch.sequence}: attempt {attempt}/{max_attempts} failed, retrying: {e}"
                )
                if self._cancel.wait(self.retry_backoff * attempt):
                    self._fail(batch, f"cancelled while retrying: {e}")
                    return
                continue
            except FatalDispatchError as e:
                self.stats.record_attempt(time.monotonic() - start, retry=attempt > 1)
                self._fail(batch, str(e))
                return
            except Exception as e:
                self.stats.record_attempt(time.monotonic() - start, retry=attempt > 1)
                logger.exception(f"{batch.source} batch {batch.sequence}: unexpected submit error")
                self._fail(batch, f"unexpected error: {e}")
                return

            self.stats.record_attempt(time.monotonic() - start, retry=attempt > 1)
            self.stats.record_batch_success(len(batch))
            logger.debug(f"{batch.source} batch {batch.sequence}: {len(batch)} rows imported")
            self._notify(batch, True)
            return

    def _fail(self, batch: Batch, reason: str):
        sink = self._sinks.get(batch.source)
        if sink is None:
            raise SinkWriteError(f"No failure sink registered for {batch.source}")

        logger.warning(f"{batch.source} batch {batch.sequence}: {len(batch)} rows failed: {reason}")
        sink.record_many(batch.records, reason)
        self.stats.record_batch_failure(len(batch))
        self._notify(batch, False)

    def _notify(self, batch: Batch, succeeded: bool):
        for listener in self._listeners:
            try:
                listener(batch, succeeded)
            except Exception:
                # The batch already reached its terminal state
                logger.exception(f"Batch listener failed on {batch.source} batch {batch.sequence}")

    def _abort(self, batch: Batch, error: Exception):
        """Unexpected worker error: sink the batch and stop the import."""
        self.cancel()
        try:
            self._fail(batch, f"worker error: {error}")
        except Exception as sink_error:
            self._set_fatal(SinkWriteError(
                f"Cannot record batch {batch.sequence} of {batch.source} "
                f"after worker error: {sink_error}"
            ))

    def _set_fatal(self, error: SinkWriteError):
        with self._error_lock:
            if self._fatal_error is None:
                self._fatal_error = error
        logger.error(f"Failure sink unwritable, aborting import: {error}")
        self.cancel()
