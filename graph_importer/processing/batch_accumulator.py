# -*- coding: utf-8 -*-
"""
Batch accumulator: one producer per input file.

Compiles records in source order and groups the fragments into batches of at
most `batch_size` statements. A record that fails to compile goes straight to
the file's failure sink and the rest of the batch carries on. The final
partial batch is emitted at end of input, so no compiled row is ever dropped
by flush timing. Rows are never reordered.

`emit` is normally DispatchPool.put, which blocks while the queue is full
(backpressure). If the pool is shutting down it raises ImportCancelled; the
accumulator then sinks the batch it was holding and stops reading.

Example:
    accumulator = BatchAccumulator(
        source="files[0]:data/student.csv", space="school", schema=schema,
        batch_size=128, emit=pool.put, sink=sink, stats=stats
    )
    batches = accumulator.run(reader)
"""
# Standard library
import csv
from typing import Callable, Iterable, List

# Local
from graph_importer.graph.statement_compiler import compile_record
from graph_importer.utils.dataclasses import Batch, CompiledStatement, Record, Schema
from graph_importer.utils.errors import CompilationError, ImportCancelled
from graph_importer.utils.failure_sink import FailureSink
from graph_importer.utils.logger import get_logger
from graph_importer.utils.stats import ImportStats

logger = get_logger(__name__)


class BatchAccumulator:
    """Sequentially compiles one source's records into bounded batches."""

    def __init__(
        self,
        source: str,
        space: str,
        schema: Schema,
        batch_size: int,
        emit: Callable[[Batch], None],
        sink: FailureSink,
        stats: ImportStats,
        in_order: bool = False
    ):
        """
        Args:
            source: Source identity (entry index and input path) stamped on every batch
            space: Target space stamped on every batch
            schema: Resolved schema shared with the dispatch workers
            batch_size: Maximum statements per batch (>= 1)
            emit: Receives each full batch, may block
            sink: Failure sink of this source
            stats: Shared run statistics
            in_order: Source requested strict ordering (informational here)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.source = source
        self.space = space
        self.schema = schema
        self.batch_size = batch_size
        self.emit = emit
        self.sink = sink
        self.stats = stats
        self.in_order = in_order

        self._pending: List[CompiledStatement] = []
        self._sequence = 0

    def run(self, records: Iterable[Record]) -> int:
        """
        Consume all records and emit their batches.

        Args:
            records: Lazy, finite record sequence

        Returns:
            Number of batches emitted

        Raises:
            SinkWriteError: A failed row could not be recorded
            OSError, ValueError, csv.Error: The source could not be read further
        """
        try:
            try:
                for record in records:
                    self.stats.record_read()
                    self.add(record)
            except (OSError, ValueError, csv.Error):
                # Rows compiled before the read error still go out
                self.flush()
                raise
            self.flush()
        except ImportCancelled:
            logger.warning(f"{self.source}: import cancelled after {self._sequence} batches")

        return self._sequence

    def add(self, record: Record):
        """Compile one record and emit the batch if it is full."""
        try:
            statement = compile_record(self.schema, record)
        except CompilationError as e:
            self.sink.record(record, str(e))
            self.stats.record_compile_failure()
            logger.debug(f"{self.source}: rejected row {list(record)}: {e}")
            return

        self.stats.record_compiled()
        self._pending.append(statement)
        if len(self._pending) >= self.batch_size:
            self._emit_pending()

    def flush(self):
        """Emit the final partial batch, if any."""
        if self._pending:
            self._emit_pending()

    def _emit_pending(self):
        batch = Batch(
            source=self.source,
            space=self.space,
            schema=self.schema,
            statements=tuple(self._pending),
            sequence=self._sequence,
        )
        self._pending = []

        try:
            self.emit(batch)
        except ImportCancelled:
            self.sink.record_many(batch.records, "cancelled before dispatch")
            self.stats.record_rows_failed(len(batch))
            raise

        self._sequence += 1
        self.stats.record_dispatched()
