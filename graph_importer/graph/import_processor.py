# -*- coding: utf-8 -*-
"""
Graph import orchestrator and command-line entry point.

Wires the pipeline for one YAML config: one failure sink and one
BatchAccumulator (producer thread) per input file of each files[i] entry,
all feeding a single DispatchPool whose workers submit to the graph database.
Sources are keyed "files[i]:<path>", so two entries reading the same file
keep separate batches, failure sinks and counts. The run completes
only after every producer reached end of input, the queue drained and every
in-flight batch (retries included) reached a terminal state.

Only configuration errors (ResolutionError) and an unwritable failure sink
(SinkWriteError) abort a run. Everything else ends up in the statistics and
the failed-data files, ready for re-import.

Examples:
    # Import into the database configured in the YAML file
    # graph-importer --config examples/import.yaml

    # Render statements to a file instead of submitting them
    # graph-importer --config examples/import.yaml --dry-run out/statements.ngql

    # Python API usage
    from graph_importer.graph.import_processor import ImportProcessor
    from graph_importer.graph.graph_client import Neo4jClientFactory
    from graph_importer.utils.config import load_config

    config = load_config("import.yaml")
    conn = config.client_settings.connection
    factory = Neo4jClientFactory(conn.uri, conn.user, conn.password)
    result = ImportProcessor(config, factory).run()
    print(result.success, result.stats.summary())
"""
# Standard library
import argparse
import csv
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

# Third-party
from tqdm import tqdm

# Local
from graph_importer.graph.graph_client import DryRunGraphClient, GraphClient, Neo4jClientFactory
from graph_importer.graph.statement_compiler import describe_columns
from graph_importer.ingestion.csv_reader import CSVReader
from graph_importer.processing.batch_accumulator import BatchAccumulator
from graph_importer.processing.dispatch_pool import DispatchPool
from graph_importer.utils.config import FileConfig, ImportConfig, load_config
from graph_importer.utils.errors import ResolutionError, SinkWriteError
from graph_importer.utils.failure_sink import FailureSink
from graph_importer.utils.logger import get_logger, setup_logging
from graph_importer.utils.stats import ImportStats, StatsReporter, StatsSnapshot

logger = get_logger(__name__)

LABEL_COLUMN = ":LABEL"

EXIT_OK = 0
EXIT_ROWS_FAILED = 1
EXIT_FATAL = 2


@dataclass
class ImportResult:
    """Completion signal of one run."""
    success: bool
    stats: StatsSnapshot
    failed_rows: Dict[str, int] = field(default_factory=dict)
    fatal_error: Optional[str] = None
    source_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        if not self.success:
            return EXIT_FATAL
        if self.stats.rows_failed:
            return EXIT_ROWS_FAILED
        return EXIT_OK


def source_key(index: int, path: Path) -> str:
    """Identity of one input file of one `files[i]` entry."""
    return f"files[{index}]:{path}"


@dataclass
class _Source:
    key: str
    path: Path
    file_config: FileConfig
    sink: FailureSink


class ImportProcessor:
    """
    Runs one import: every file of a config through one dispatch pool.

    Handles:
    - Failure sink per input file (with a self-describing header if the
      source has one)
    - One producer thread per input file
    - Progress bar and periodic stats logging
    - Cooperative cancellation on Ctrl-C
    """

    def __init__(
        self,
        config: ImportConfig,
        client_factory: Callable[[], GraphClient],
        stats: Optional[ImportStats] = None,
        show_progress: bool = True,
        report_interval: float = 5.0,
        retry_backoff: float = 0.2
    ):
        """
        Initialize import processor.

        Args:
            config: Validated import configuration
            client_factory: Opens one database client per dispatch worker
            stats: Statistics aggregator (a fresh one if None)
            show_progress: Display a tqdm progress bar
            report_interval: Seconds between progress log lines (0 disables)
            retry_backoff: Base backoff between retries of a batch
        """
        self.config = config
        self.client_factory = client_factory
        self.stats = stats or ImportStats()
        self.show_progress = show_progress
        self.report_interval = report_interval

        settings = config.client_settings
        self.pool = DispatchPool(
            client_factory=client_factory,
            concurrency=settings.concurrency,
            buffer_size=settings.channel_buffer_size,
            retry=settings.retry,
            stats=self.stats,
            retry_backoff=retry_backoff,
        )
        self.sources = self._build_sources()

    def _build_sources(self) -> List[_Source]:
        sources = []
        concurrency = self.config.client_settings.concurrency

        for index, file_config in enumerate(self.config.files):
            header = None
            if file_config.csv.with_header:
                header = describe_columns(file_config.schema)
                if file_config.csv.with_label:
                    header = [LABEL_COLUMN] + header

            if file_config.in_order and concurrency > 1:
                logger.warning(
                    f"{file_config.path}: inOrder requested with concurrency {concurrency}; "
                    f"batches are enqueued in row order but may be applied out of order "
                    f"across workers. Set clientSettings.concurrency to 1 for strict ordering"
                )

            for path in file_config.paths:
                # Several entries may read the same file (vertices and edges)
                key = source_key(index, path)
                sink = FailureSink(
                    file_config.fail_path_for(path),
                    delimiter=file_config.csv.delimiter,
                    header=header,
                    source=key,
                    with_label=file_config.csv.with_label,
                )
                self.pool.register_sink(key, sink)
                sources.append(_Source(key=key, path=path, file_config=file_config, sink=sink))

        return sources

    def run(self) -> ImportResult:
        """
        Import every source and wait for completion.

        Returns:
            ImportResult with final statistics and per-file failed row counts
        """
        fatal_error: Optional[str] = None
        source_errors: Dict[str, str] = {}

        logger.info(
            f"Importing {len(self.sources)} files into space '{self.config.client_settings.space}'"
        )

        with tqdm(desc="Importing", unit="batch", disable=not self.show_progress) as pbar:
            self.pool.add_listener(lambda batch, ok: pbar.update(1))

            with StatsReporter(self.stats, self.report_interval):
                self.pool.start()
                source_errors, fatal_error = self._run_producers()

                try:
                    self.pool.join()
                except SinkWriteError as e:
                    fatal_error = fatal_error or str(e)

        if self.pool.cancelled and fatal_error is None:
            fatal_error = "import cancelled before all input was read"

        snapshot = self.stats.snapshot()
        failed_rows = {s.sink.source: s.sink.count for s in self.sources if s.sink.count}
        result = ImportResult(
            success=fatal_error is None and not source_errors,
            stats=snapshot,
            failed_rows=failed_rows,
            fatal_error=fatal_error,
            source_errors=source_errors,
        )
        self._log_summary(result)
        return result

    def _run_producers(self):
        source_errors: Dict[str, str] = {}
        fatal_error: Optional[str] = None

        with ThreadPoolExecutor(
            max_workers=len(self.sources),
            thread_name_prefix="producer"
        ) as executor:
            futures = {
                executor.submit(self._run_source, source): source
                for source in self.sources
            }

            try:
                for future in as_completed(futures):
                    source = futures[future]
                    try:
                        batches = future.result()
                        logger.info(f"{source.key}: {batches} batches enqueued")
                    except SinkWriteError as e:
                        logger.error(f"{source.key}: {e}")
                        fatal_error = fatal_error or str(e)
                        self.pool.cancel()
                    except (OSError, ValueError) as e:
                        logger.error(f"{source.key}: failed to read input: {e}")
                        source_errors[source.key] = str(e)
            except KeyboardInterrupt:
                # Producers stop at their next put(); queued batches are sunk
                logger.warning("Interrupted, flushing pending batches to failure files")
                self.pool.cancel()
                fatal_error = "interrupted"

        return source_errors, fatal_error

    def _run_source(self, source: _Source) -> int:
        file_config = source.file_config

        def on_reject(cells, reason, label):
            source.sink.record(cells, reason, label)
            self.stats.record_rejected()

        reader = CSVReader(
            source.path,
            delimiter=file_config.csv.delimiter,
            with_header=file_config.csv.with_header,
            with_label=file_config.csv.with_label,
            limit=file_config.limit,
            on_reject=on_reject,
        )
        accumulator = BatchAccumulator(
            source=source.key,
            space=self.config.client_settings.space,
            schema=file_config.schema,
            batch_size=file_config.batch_size,
            emit=self.pool.put,
            sink=source.sink,
            stats=self.stats,
            in_order=file_config.in_order,
        )

        try:
            return accumulator.run(reader)
        except csv.Error as e:
            raise ValueError(f"malformed CSV: {e}") from e

    def _log_summary(self, result: ImportResult):
        stats = result.stats
        logger.info("=" * 60)
        logger.info("IMPORT COMPLETE" if result.success else "IMPORT FAILED")
        logger.info("=" * 60)
        logger.info(f"Summary: {stats.summary()}")
        logger.info(f"Elapsed: {stats.elapsed_sec:.1f}s ({stats.rows_per_sec:.1f} rows/s)")
        for source, count in sorted(result.failed_rows.items()):
            sink = next(s.sink for s in self.sources if s.sink.source == source)
            logger.warning(f"{count} failed rows of {source} preserved in {sink.path}")
        for source, error in result.source_errors.items():
            logger.error(f"{source}: {error}")
        if result.fatal_error:
            logger.error(f"Fatal error: {result.fatal_error}")
        if not stats.rows_accounted:
            logger.error(
                f"Row accounting mismatch: read {stats.records_read}, "
                f"imported {stats.rows_succeeded}, failed {stats.rows_failed}"
            )


# ============================================================================
# CLI
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import CSV files into a graph database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0  every row imported
  1  some rows failed (see the failed-data files)
  2  fatal error (bad config, unwritable failure file, interrupted)
        """
    )
    parser.add_argument('--config', '-c', type=Path, required=True,
                        help='Import YAML configuration file')
    parser.add_argument('--dry-run', type=Path, default=None, metavar='OUT',
                        help='Write rendered statements to OUT instead of the database')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    parser.add_argument('--stats-out', type=Path, default=None,
                        help='Write final statistics as JSON to this file')
    parser.add_argument('--report-interval', type=float, default=5.0,
                        help='Seconds between progress log lines, 0 to disable (default: 5)')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = getattr(logging, args.log_level)
    setup_logging(level=level)

    try:
        config = load_config(args.config)
    except ResolutionError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    setup_logging(level=level, log_file=str(config.log_path), force=True)

    if args.dry_run is not None:
        client_factory = DryRunGraphClient(args.dry_run)
        closer = client_factory.close
    else:
        conn = config.client_settings.connection
        client_factory = Neo4jClientFactory(conn.uri, conn.user, conn.password)
        closer = client_factory.close

    try:
        processor = ImportProcessor(
            config,
            client_factory,
            show_progress=not args.no_progress,
            report_interval=args.report_interval,
        )
        result = processor.run()
    finally:
        closer()

    if args.stats_out is not None:
        args.stats_out.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            'success': result.success,
            'fatal_error': result.fatal_error,
            'failed_rows': result.failed_rows,
            'source_errors': result.source_errors,
            'stats': result.stats.to_dict(),
        }
        with open(args.stats_out, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved statistics to {args.stats_out}")

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
