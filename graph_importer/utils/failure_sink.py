# -*- coding: utf-8 -*-
"""
Failure sink: durable, append-only store of rows that never made it in.

One sink per input file. Every failed row is written twice:
    <path>                 the raw cells, in the source's delimited format, so
                           the file can be fed straight back to the importer
    <path>.errors.jsonl    one JSON line per row with the failure reason

Writers from the accumulator thread and every dispatch worker are serialized
with a lock, and each write is flushed before the lock is released. Files are
created lazily on the first failure. Any I/O problem is raised as
SinkWriteError: a failure that cannot be recorded is silent data loss, so the
run must stop.

Example:
    sink = FailureSink(Path("err/student.csv"), header=[":VID", "student.name:string"])
    sink.record(("101", "Mary"), "column index 2 out of range for record of length 2")
    sink.count  # 1
"""
# Standard library
import csv
import json
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Iterable, List, Optional, Sequence

# Local
from graph_importer.ingestion.csv_reader import LABEL_INSERT
from graph_importer.utils.dataclasses import Record
from graph_importer.utils.errors import SinkWriteError
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)


class FailureSink:
    """
    Thread-safe failed-row store for one source file.

    Files managed:
    - <path>: failed rows (re-importable, optional header row first)
    - <path>.errors.jsonl: failure reasons, one line per failed row
    """

    def __init__(
        self,
        path: Path,
        delimiter: str = ",",
        header: Optional[Sequence[str]] = None,
        source: Optional[str] = None,
        with_label: bool = False
    ):
        """
        Initialize failure sink.

        Args:
            path: Failed-data file path (parent directories are created on demand)
            delimiter: Delimiter of the source file
            header: Header row written once before the first failed row
            source: Originating file, recorded with every reason entry
            with_label: Prefix every row with its operation label, as in the source
        """
        self.path = Path(path)
        self.errors_path = self.path.with_name(self.path.name + ".errors.jsonl")
        self.delimiter = delimiter
        self.header = list(header) if header else None
        self.source = source or str(self.path)
        self.with_label = with_label

        self._lock = Lock()
        self._count = 0
        self._opened = False

    @property
    def count(self) -> int:
        """Number of rows recorded so far."""
        with self._lock:
            return self._count

    def record(self, record: Record, reason: str, label: str = LABEL_INSERT) -> None:
        """Append one failed row."""
        self.record_many([record], reason, label)

    def record_many(self, records: Iterable[Record], reason: str, label: str = LABEL_INSERT) -> None:
        """
        Append failed rows sharing one reason (e.g. a whole rejected batch).

        Raises:
            SinkWriteError: The data or reason file cannot be written
        """
        if self.with_label:
            records = [[label] + list(r) for r in records]
        else:
            records = [list(r) for r in records]
        if not records:
            return

        timestamp = datetime.now().isoformat()
        with self._lock:
            try:
                self._append(records, reason, timestamp)
            except OSError as e:
                logger.error(f"Failed to write {len(records)} failed rows to {self.path}: {e}")
                raise SinkWriteError(f"Cannot write failure sink {self.path}: {e}") from e
            self._count += len(records)

        logger.debug(f"Sunk {len(records)} rows from {self.source}: {reason}")

    def _append(self, records: List[List[str]], reason: str, timestamp: str) -> None:
        if not self._opened:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Truncate leftovers from a previous run of the same file
            with open(self.path, 'w', encoding='utf-8', newline='') as f:
                if self.header:
                    csv.writer(f, delimiter=self.delimiter).writerow(self.header)
            with open(self.errors_path, 'w', encoding='utf-8'):
                pass
            self._opened = True
            logger.info(f"Writing failed rows of {self.source} to {self.path}")

        with open(self.path, 'a', encoding='utf-8', newline='') as f:
            writer = csv.writer(f, delimiter=self.delimiter)
            writer.writerows(records)
            f.flush()

        with open(self.errors_path, 'a', encoding='utf-8') as f:
            for row in records:
                entry = {
                    'source': self.source,
                    'row': row,
                    'reason': reason,
                    'timestamp': timestamp
                }
                f.write(json.dumps(entry, ensure_ascii=False) + '\n')
            f.flush()

    def load_errors(self) -> List[dict]:
        """
        Load recorded failure reasons for inspection.

        Returns:
            List of reason entries (empty if nothing failed)
        """
        if not self.errors_path.exists():
            return []

        entries = []
        with open(self.errors_path, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip():
                    entries.append(json.loads(line))
        return entries
