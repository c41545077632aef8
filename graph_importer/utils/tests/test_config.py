# -*- coding: utf-8 -*-
"""
Configuration loading tests (YAML files written to tmp_path).
"""
import textwrap

import pytest

from graph_importer.utils.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHANNEL_BUFFER_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_RETRY,
    Connection,
    load_config,
    parse_config,
)
from graph_importer.utils.dataclasses import EdgeSchema, VertexSchema
from graph_importer.utils.errors import ResolutionError

FULL_CONFIG = """
version: v1rc2
description: school import
clientSettings:
  retry: 3
  concurrency: 2
  channelBufferSize: 16
  space: school
  connection:
    user: admin
    password: secret
    address: 127.0.0.1:7687
logPath: logs/import.log
files:
  - path: student.csv
    failDataPath: err/student.csv
    batchSize: 2
    limit: 10
    inOrder: true
    type: csv
    csv:
      withHeader: true
      withLabel: false
      delimiter: ";"
    schema:
      type: vertex
      vertex:
        vid: {index: 0}
        tags:
          - name: student
            props:
              - {name: name, type: string}
              - {name: age, type: int}
  - path: like.csv
    schema:
      type: edge
      edge:
        name: like
        withRanking: true
        props:
          - {name: likeness, type: double}
"""


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "student.csv").write_text("101;Mary;19\n", encoding="utf-8")
    (tmp_path / "like.csv").write_text("1,2,0,9.5\n", encoding="utf-8")
    return tmp_path


def write_config(directory, text):
    path = directory / "import.yaml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def minimal(files_yaml):
    return {
        "version": "v1rc2",
        "clientSettings": {"space": "s", "connection": {"address": "db:7687"}},
        "logPath": "/tmp/x.log",
        "files": files_yaml,
    }


VERTEX_SCHEMA = {"type": "vertex", "vertex": {"tags": [{"name": "t"}]}}


class TestLoadConfig:
    """Full YAML round"""

    def test_full_config(self, config_dir):
        config = load_config(write_config(config_dir, FULL_CONFIG))

        settings = config.client_settings
        assert config.version == "v1rc2"
        assert config.description == "school import"
        assert (settings.retry, settings.concurrency, settings.channel_buffer_size) == (3, 2, 16)
        assert settings.space == "school"
        assert settings.connection == Connection(address="127.0.0.1:7687", user="admin", password="secret")
        assert settings.connection.uri == "bolt://127.0.0.1:7687"
        assert config.log_path == (config_dir / "logs" / "import.log").resolve()

        student, like = config.files
        assert student.paths == ((config_dir / "student.csv").resolve(),)
        assert student.fail_data_path == (config_dir / "err" / "student.csv").resolve()
        assert student.batch_size == 2
        assert student.limit == 10
        assert student.in_order is True
        assert student.csv.with_header is True
        assert student.csv.delimiter == ";"
        assert isinstance(student.schema, VertexSchema)

        assert isinstance(like.schema, EdgeSchema)
        assert like.schema.rank is not None
        assert like.batch_size == DEFAULT_BATCH_SIZE
        assert like.limit is None
        assert like.csv.delimiter == ","
        assert like.fail_data_path == (config_dir / "err" / "like.csv").resolve()
        assert like.fail_path_for(like.paths[0]) == like.fail_data_path

    def test_missing_file(self, tmp_path):
        with pytest.raises(ResolutionError, match="Cannot read config"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("files: [unclosed", encoding="utf-8")

        with pytest.raises(ResolutionError, match="Invalid YAML"):
            load_config(path)


class TestParseConfig:
    """Defaults and validation"""

    def test_defaults(self, tmp_path):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")
        data = minimal([{"path": "a.csv", "schema": VERTEX_SCHEMA}])
        del data["version"]

        config = parse_config(data, tmp_path)

        settings = config.client_settings
        assert config.version == "v1rc2"
        assert settings.retry == DEFAULT_RETRY
        assert settings.concurrency == DEFAULT_CONCURRENCY
        assert settings.channel_buffer_size == DEFAULT_CHANNEL_BUFFER_SIZE
        assert config.files[0].in_order is False

    def test_connection_from_environment(self, tmp_path, monkeypatch):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")
        monkeypatch.setenv("GRAPH_USER", "env-user")
        monkeypatch.setenv("GRAPH_PASSWORD", "env-pass")
        data = minimal([{"path": "a.csv", "schema": VERTEX_SCHEMA}])

        connection = parse_config(data, tmp_path).client_settings.connection

        assert connection.user == "env-user"
        assert connection.password == "env-pass"
        assert connection.address == "db:7687"

    def test_directory_input(self, tmp_path):
        data_dir = tmp_path / "parts"
        data_dir.mkdir()
        for name in ("b.csv", "a.csv"):
            (data_dir / name).write_text("1\n", encoding="utf-8")

        config = parse_config(minimal([{"path": "parts", "schema": VERTEX_SCHEMA}]), tmp_path)

        file_config = config.files[0]
        assert [p.name for p in file_config.paths] == ["a.csv", "b.csv"]
        assert file_config.fail_data_path == (data_dir / "err").resolve()
        assert file_config.fail_path_for(file_config.paths[1]) == (data_dir / "err" / "b.csv").resolve()

    def test_glob_input(self, tmp_path):
        for name in ("x1.csv", "x2.csv", "y.txt"):
            (tmp_path / name).write_text("1\n", encoding="utf-8")

        config = parse_config(minimal([{"path": "x*.csv", "schema": VERTEX_SCHEMA}]), tmp_path)

        assert [p.name for p in config.files[0].paths] == ["x1.csv", "x2.csv"]

    def test_shared_input_gets_distinct_failed_data_paths(self, tmp_path):
        (tmp_path / "data.csv").write_text("1,2\n", encoding="utf-8")
        entry = {"path": "data.csv", "schema": VERTEX_SCHEMA}

        config = parse_config(minimal([entry, dict(entry), dict(entry)]), tmp_path)

        assert [f.fail_data_path.name for f in config.files] == ["data.csv", "data.1.csv", "data.2.csv"]
        assert {f.fail_data_path.parent for f in config.files} == {(tmp_path / "err").resolve()}

    def test_shared_directory_input_gets_distinct_failed_data_dirs(self, tmp_path):
        data_dir = tmp_path / "parts"
        data_dir.mkdir()
        (data_dir / "a.csv").write_text("1\n", encoding="utf-8")
        entry = {"path": "parts", "schema": VERTEX_SCHEMA}

        first, second = parse_config(minimal([entry, dict(entry)]), tmp_path).files

        assert first.fail_path_for(first.paths[0]) == (data_dir / "err" / "a.csv").resolve()
        assert second.fail_path_for(second.paths[0]) == (data_dir / "err.1" / "a.csv").resolve()

    def test_explicit_shared_failed_data_path_is_rejected(self, tmp_path):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")
        (tmp_path / "b.csv").write_text("1\n", encoding="utf-8")
        data = minimal([
            {"path": "a.csv", "failDataPath": "err/out.csv", "schema": VERTEX_SCHEMA},
            {"path": "b.csv", "failDataPath": "err/out.csv", "schema": VERTEX_SCHEMA},
        ])

        with pytest.raises(ResolutionError, match=r"already used by files\[0\]"):
            parse_config(data, tmp_path)

    def test_default_colliding_with_explicit_path_is_renamed(self, tmp_path):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")
        (tmp_path / "b.csv").write_text("1\n", encoding="utf-8")
        data = minimal([
            {"path": "b.csv", "failDataPath": "err/a.csv", "schema": VERTEX_SCHEMA},
            {"path": "a.csv", "schema": VERTEX_SCHEMA},
        ])

        explicit, defaulted = parse_config(data, tmp_path).files

        assert explicit.fail_data_path == (tmp_path / "err" / "a.csv").resolve()
        assert defaulted.fail_data_path == (tmp_path / "err" / "a.1.csv").resolve()

    @pytest.mark.parametrize("mutate,message", [
        (lambda d: d.update(version="v2"), "version"),
        (lambda d: d.pop("clientSettings"), "clientSettings"),
        (lambda d: d["clientSettings"].pop("space"), "space"),
        (lambda d: d["clientSettings"].pop("connection"), "connection"),
        (lambda d: d["clientSettings"].update(concurrency=0), "concurrency"),
        (lambda d: d["clientSettings"].update(retry=-1), "retry"),
        (lambda d: d.update(files=[]), "no files"),
    ])
    def test_invalid_top_level(self, tmp_path, mutate, message):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")
        data = minimal([{"path": "a.csv", "schema": VERTEX_SCHEMA}])
        mutate(data)

        with pytest.raises(ResolutionError, match=message):
            parse_config(data, tmp_path)

    @pytest.mark.parametrize("entry,message", [
        ({"schema": VERTEX_SCHEMA}, "file path"),
        ({"path": "nope.csv", "schema": VERTEX_SCHEMA}, "doesn't exist"),
        ({"path": "a.csv"}, "schema"),
        ({"path": "a.csv", "batchSize": 0, "schema": VERTEX_SCHEMA}, "batchSize"),
        ({"path": "a.csv", "limit": -1, "schema": VERTEX_SCHEMA}, "limit"),
        ({"path": "a.csv", "inOrder": "yes", "schema": VERTEX_SCHEMA}, "inOrder"),
        ({"path": "a.csv", "type": "json", "schema": VERTEX_SCHEMA}, "only csv"),
        ({"path": "a.csv", "csv": {"delimiter": ""}, "schema": VERTEX_SCHEMA}, "delimiter"),
        ({"path": "a.csv", "csv": {"delimiter": "||"}, "schema": VERTEX_SCHEMA}, "delimiter"),
        ({"path": "a.csv", "csv": {"withHeader": "true"}, "schema": VERTEX_SCHEMA}, "withHeader"),
        ({"path": "a.csv", "schema": {"type": "vertex", "vertex": {"tags": []}}}, "tag"),
    ])
    def test_invalid_file_entry(self, tmp_path, entry, message):
        (tmp_path / "a.csv").write_text("1\n", encoding="utf-8")

        with pytest.raises(ResolutionError, match=message):
            parse_config(minimal([entry]), tmp_path)
