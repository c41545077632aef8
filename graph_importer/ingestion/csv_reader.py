# -*- coding: utf-8 -*-
"""
CSV row source.

Streams records from one delimited file with the stdlib csv module (quoting,
embedded delimiters and newlines handled there, not in the compiler). The
reader is restartable: every iteration reopens the file.

Options:
    with_header  first row is a header and is skipped
    with_label   first column is an operation label; "+" rows are imported
                 with the label stripped, any other label (e.g. "-" deletes)
                 is handed to on_reject(cells, reason, label) and not yielded
    limit        maximum number of data rows to read

Example:
    reader = CSVReader(Path("data/student.csv"), with_header=True, limit=100)
    for record in reader:
        print(record)   # ('101', 'Mary', '19')
"""
# Standard library
import csv
import glob
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

# Local
from graph_importer.utils.dataclasses import Record
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)

LABEL_INSERT = "+"

RejectHandler = Callable[[Record, str, str], None]


def expand_paths(path: Union[str, Path]) -> List[Path]:
    """
    Expand a configured input path into the files it names.

    A file gives itself, a directory gives its files (not recursive), anything
    else is treated as a glob pattern. Results are sorted for a stable order.
    """
    path = Path(path)
    if path.is_file():
        return [path]
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.is_file())
    return sorted(Path(p) for p in glob.glob(str(path)) if Path(p).is_file())


class CSVReader:
    """Lazy, finite record source for one CSV file."""

    def __init__(
        self,
        path: Union[str, Path],
        delimiter: str = ",",
        with_header: bool = False,
        with_label: bool = False,
        limit: Optional[int] = None,
        on_reject: Optional[RejectHandler] = None
    ):
        """
        Args:
            path: Input file
            delimiter: Single-character field delimiter
            with_header: Skip the first row
            with_label: First column holds an operation label
            limit: Stop after this many data rows (None reads everything)
            on_reject: Receives (cells, reason, label) for rows with unsupported labels
        """
        self.path = Path(path)
        self.delimiter = delimiter
        self.with_header = with_header
        self.with_label = with_label
        self.limit = limit
        self.on_reject = on_reject

        self.header: Optional[List[str]] = None

    def __iter__(self) -> Iterator[Record]:
        rows_read = 0

        with open(self.path, 'r', encoding='utf-8-sig', newline='') as f:
            reader = csv.reader(f, delimiter=self.delimiter)

            if self.with_header:
                self.header = next(reader, None)

            for row in reader:
                if self.limit is not None and rows_read >= self.limit:
                    break
                # Blank lines are not rows
                if not row:
                    continue
                rows_read += 1

                if self.with_label:
                    label, cells = row[0].strip(), tuple(row[1:])
                    if label != LABEL_INSERT:
                        self._reject(cells, label)
                        continue
                    yield cells
                else:
                    yield tuple(row)

        logger.info(f"Read {rows_read} rows from {self.path}")

    def _reject(self, cells: Record, label: str):
        reason = f"unsupported label '{label}', only '{LABEL_INSERT}' (insert) is supported"
        if self.on_reject is None:
            raise ValueError(f"{self.path}: {reason}")
        self.on_reject(cells, reason, label)
