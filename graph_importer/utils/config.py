# -*- coding: utf-8 -*-
"""
Import configuration: YAML file + .env credentials -> validated ImportConfig.

Layout of the YAML file:

    version: v1rc2
    description: example
    clientSettings:
      retry: 3
      concurrency: 4
      channelBufferSize: 128
      space: school
      connection:
        user: neo4j
        password: secret
        address: bolt://127.0.0.1:7687
    logPath: ./err/import.log
    files:
      - path: ./student.csv
        failDataPath: ./err/student.csv
        batchSize: 128
        limit: 10
        inOrder: false
        type: csv
        csv: {withHeader: false, withLabel: false, delimiter: ","}
        schema:
          type: vertex
          vertex:
            vid: {index: 0}
            tags:
              - name: student
                props:
                  - {name: name, type: string}
                  - {name: age, type: int}

Missing optional settings are filled with defaults (and a warning, so a run
never silently uses a value nobody chose). Connection fields fall back to the
GRAPH_ADDRESS / GRAPH_USER / GRAPH_PASSWORD environment variables (.env is
loaded) before the hard defaults. Relative paths are resolved against the YAML
file's directory. Every schema is resolved here, so a malformed config aborts
before any dispatch begins.

Example:
    config = load_config("import.yaml")
    for file_config in config.files:
        print(file_config.paths, file_config.schema)
"""
# Standard library
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

# Third-party
import yaml
from dotenv import load_dotenv

# Local
from graph_importer.ingestion.csv_reader import expand_paths
from graph_importer.schema.schema_resolver import resolve_schema
from graph_importer.utils.dataclasses import Schema
from graph_importer.utils.errors import ResolutionError
from graph_importer.utils.logger import get_logger

# Load .env file
load_dotenv()

logger = get_logger(__name__)

# ============================================================================
# DEFAULTS
# ============================================================================

SUPPORTED_VERSION = "v1rc2"

DEFAULT_RETRY = 1
DEFAULT_CONCURRENCY = 10
DEFAULT_CHANNEL_BUFFER_SIZE = 128
DEFAULT_BATCH_SIZE = 128
DEFAULT_LOG_PATH = "/tmp/graph-importer.log"

DEFAULT_ADDRESS = "bolt://127.0.0.1:7687"
DEFAULT_USER = "neo4j"
DEFAULT_PASSWORD = "password"


# ============================================================================
# RESOLVED CONFIG
# ============================================================================

@dataclass(frozen=True)
class Connection:
    address: str
    user: str
    password: str

    @property
    def uri(self) -> str:
        """Bolt URI; a bare host:port gets the bolt:// scheme."""
        return self.address if "://" in self.address else f"bolt://{self.address}"


@dataclass(frozen=True)
class ClientSettings:
    retry: int
    concurrency: int
    channel_buffer_size: int
    space: str
    connection: Connection


@dataclass(frozen=True)
class CSVSettings:
    with_header: bool = False
    with_label: bool = False
    delimiter: str = ","


@dataclass(frozen=True)
class FileConfig:
    """One `files[i]` entry; `paths` is the expanded list of input files."""
    path: Path
    paths: Tuple[Path, ...]
    fail_data_path: Path
    batch_size: int
    limit: Optional[int]
    in_order: bool
    csv: CSVSettings
    schema: Schema

    def fail_path_for(self, path: Path) -> Path:
        """Failed-data file of one input file (a directory entry when expanded)."""
        if len(self.paths) == 1 and self.paths[0] == self.path:
            return self.fail_data_path
        return self.fail_data_path / Path(path).name


@dataclass(frozen=True)
class ImportConfig:
    version: str
    description: str
    client_settings: ClientSettings
    log_path: Path
    files: Tuple[FileConfig, ...]


# ============================================================================
# LOADING
# ============================================================================

def load_config(path: Union[str, Path]) -> ImportConfig:
    """
    Parse and validate an import YAML file.

    Args:
        path: YAML file path

    Returns:
        Fully resolved ImportConfig

    Raises:
        ResolutionError: File unreadable, malformed or invalid
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ResolutionError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ResolutionError(f"Invalid YAML in {path}: {e}") from e

    config = parse_config(data, base_dir=path.resolve().parent)
    logger.info(f"Loaded config {path}: {len(config.files)} file entries, space '{config.client_settings.space}'")
    return config


def parse_config(data: Any, base_dir: Path) -> ImportConfig:
    """Validate an already-parsed YAML document (see load_config)."""
    data = _mapping(data, "config")

    version = data.get("version")
    if version is None:
        logger.warning(f"No version configured, assuming {SUPPORTED_VERSION}")
        version = SUPPORTED_VERSION
    elif str(version) != SUPPORTED_VERSION:
        raise ResolutionError(f"The YAML configure version must be {SUPPORTED_VERSION}, got {version}")

    if data.get("clientSettings") is None:
        raise ResolutionError("Please configure clientSettings")
    client_settings = _parse_client_settings(data["clientSettings"], "clientSettings")

    log_path = data.get("logPath")
    if log_path is None:
        log_path = DEFAULT_LOG_PATH
        logger.warning(f"You have not configured the log file path in: logPath, reset to default path: {log_path}")

    files_raw = data.get("files")
    if not isinstance(files_raw, list) or not files_raw:
        raise ResolutionError("There is no files in configuration")

    files = []
    # Failed-data file -> entry that owns it; two sinks never share a file
    taken: Dict[Path, str] = {}
    for i, entry in enumerate(files_raw):
        prefix = f"files[{i}]"
        file_config = _parse_file(entry, base_dir, prefix)

        fail_paths = [file_config.fail_path_for(p) for p in file_config.paths]
        if entry.get("failDataPath") is None and any(p in taken for p in fail_paths):
            # Same input read by several entries (e.g. vertices and edges)
            default = file_config.fail_data_path
            file_config = replace(
                file_config,
                fail_data_path=default.with_name(f"{default.stem}.{i}{default.suffix}"),
            )
            fail_paths = [file_config.fail_path_for(p) for p in file_config.paths]

        for fail_path in fail_paths:
            if fail_path in taken:
                raise ResolutionError(
                    f"Failed data path {fail_path} of {prefix} is already used by {taken[fail_path]}, "
                    f"configure a distinct {prefix}.failDataPath"
                )
            taken[fail_path] = prefix
        files.append(file_config)

    return ImportConfig(
        version=str(version),
        description=str(data.get("description") or ""),
        client_settings=client_settings,
        log_path=_resolve_path(log_path, base_dir),
        files=tuple(files),
    )


def _parse_client_settings(raw: Any, prefix: str) -> ClientSettings:
    raw = _mapping(raw, prefix)

    space = raw.get("space")
    if not isinstance(space, str) or not space:
        raise ResolutionError(f"Please configure the space name in: {prefix}.space")

    retry = _int_setting(raw, "retry", prefix, DEFAULT_RETRY, minimum=0)
    concurrency = _int_setting(raw, "concurrency", prefix, DEFAULT_CONCURRENCY, minimum=1)
    buffer_size = _int_setting(raw, "channelBufferSize", prefix, DEFAULT_CHANNEL_BUFFER_SIZE, minimum=1)

    if raw.get("connection") is None:
        raise ResolutionError(f"Please configure the connection information in: {prefix}.connection")
    connection = _parse_connection(raw["connection"], f"{prefix}.connection")

    return ClientSettings(
        retry=retry,
        concurrency=concurrency,
        channel_buffer_size=buffer_size,
        space=space,
        connection=connection,
    )


def _parse_connection(raw: Any, prefix: str) -> Connection:
    raw = _mapping(raw, prefix)

    def setting(key: str, env: str, default: str) -> str:
        value = raw.get(key)
        if value is not None:
            return str(value)
        value = os.getenv(env)
        if value:
            return value
        logger.warning(f"{prefix}.{key} not configured, reset to default")
        return default

    return Connection(
        address=setting("address", "GRAPH_ADDRESS", DEFAULT_ADDRESS),
        user=setting("user", "GRAPH_USER", DEFAULT_USER),
        password=setting("password", "GRAPH_PASSWORD", DEFAULT_PASSWORD),
    )


def _parse_file(raw: Any, base_dir: Path, prefix: str) -> FileConfig:
    raw = _mapping(raw, prefix)

    if not raw.get("path"):
        raise ResolutionError(f"Please configure file path in: {prefix}.path")
    path = _resolve_path(raw["path"], base_dir)
    paths = expand_paths(path)
    if not paths:
        raise ResolutionError(f"File({raw['path']}) doesn't exist")

    fail_data_path = raw.get("failDataPath")
    if fail_data_path is None:
        if paths == [path]:
            fail_data_path = path.parent / "err" / path.name
        else:
            # Directory or glob: one failed-data file per input under err/
            fail_data_path = (path if path.is_dir() else path.parent) / "err"
        logger.warning(
            f"You have not configured the failed data output file path in: "
            f"{prefix}.failDataPath, reset to default path: {fail_data_path}"
        )
    fail_data_path = _resolve_path(fail_data_path, base_dir)

    batch_size = _int_setting(raw, "batchSize", prefix, DEFAULT_BATCH_SIZE, minimum=1)

    limit = raw.get("limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ResolutionError(f"Invalid {prefix}.limit: {limit!r}")

    in_order = raw.get("inOrder", False)
    if not isinstance(in_order, bool):
        raise ResolutionError(f"Invalid {prefix}.inOrder: {in_order!r}")

    file_type = raw.get("type") or "csv"
    if str(file_type).lower() != "csv":
        raise ResolutionError(f"Invalid file data type in {prefix}.type: {file_type}, only csv is supported")

    csv_settings = _parse_csv(raw.get("csv"), f"{prefix}.csv")

    if raw.get("schema") is None:
        raise ResolutionError(f"Please configure file schema: {prefix}.schema")
    schema = resolve_schema(raw["schema"], f"{prefix}.schema")

    return FileConfig(
        path=path,
        paths=tuple(paths),
        fail_data_path=fail_data_path,
        batch_size=batch_size,
        limit=limit,
        in_order=in_order,
        csv=csv_settings,
        schema=schema,
    )


def _parse_csv(raw: Any, prefix: str) -> CSVSettings:
    if raw is None:
        return CSVSettings()
    raw = _mapping(raw, prefix)

    flags: Dict[str, bool] = {}
    for key in ("withHeader", "withLabel"):
        value = raw.get(key, False)
        if not isinstance(value, bool):
            raise ResolutionError(f"Invalid {prefix}.{key}: {value!r}")
        flags[key] = value

    delimiter = raw.get("delimiter", ",")
    if not isinstance(delimiter, str) or len(delimiter) == 0:
        raise ResolutionError(f"{prefix}.delimiter is empty string")
    if len(delimiter) != 1:
        raise ResolutionError(f"{prefix}.delimiter must be a single character: {delimiter!r}")

    return CSVSettings(
        with_header=flags["withHeader"],
        with_label=flags["withLabel"],
        delimiter=delimiter,
    )


# ============================================================================
# HELPERS
# ============================================================================

def _int_setting(raw: Dict[str, Any], key: str, prefix: str, default: int, minimum: int) -> int:
    value = raw.get(key)
    if value is None:
        logger.warning(f"Invalid {key} option in {prefix}.{key}, reset to {default}")
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ResolutionError(f"Invalid {prefix}.{key}: {value!r}, expected an integer >= {minimum}")
    return value


def _resolve_path(value: Union[str, Path], base_dir: Path) -> Path:
    path = Path(os.path.expanduser(str(value)))
    return path if path.is_absolute() else (base_dir / path).resolve()


def _mapping(raw: Any, prefix: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ResolutionError(f"Invalid {prefix}: expected a mapping")
    return raw
