# -*- coding: utf-8 -*-
"""
Schema resolver tests.

Covers default column assignment for vertices and edges, the rank section,
generator parsing and every rejection path of malformed schema entries.
"""
import pytest

from graph_importer.schema.schema_resolver import parse_generator, resolve_schema
from graph_importer.utils.dataclasses import EdgeSchema, Prop, Rank, VertexSchema, VID
from graph_importer.utils.errors import ResolutionError


def vertex_raw(**overrides):
    vertex = {
        "tags": [
            {"name": "student", "props": [
                {"name": "name", "type": "string"},
                {"name": "age", "type": "int"},
            ]}
        ]
    }
    vertex.update(overrides)
    return {"type": "vertex", "vertex": vertex}


def edge_raw(**overrides):
    edge = {"name": "like", "props": [{"name": "likeness", "type": "double"}]}
    edge.update(overrides)
    return {"type": "edge", "edge": edge}


class TestVertexResolution:
    """Vertex schema defaults and explicit indexes"""

    def test_defaults(self):
        """VID defaults to column 0, props follow from column 1"""
        schema = resolve_schema(vertex_raw())

        assert isinstance(schema, VertexSchema)
        assert schema.vid == VID(index=0)
        assert schema.tags[0].name == "student"
        assert schema.tags[0].props == (
            Prop(name="name", type="string", index=1),
            Prop(name="age", type="int", index=2),
        )

    def test_default_indexes_continue_across_tags(self):
        raw = vertex_raw(tags=[
            {"name": "person", "props": [{"name": "name", "type": "string"}]},
            {"name": "student", "props": [
                {"name": "grade", "type": "int"},
                {"name": "gpa", "type": "float"},
            ]},
        ])

        schema = resolve_schema(raw)

        indexes = [p.index for t in schema.tags for p in t.props]
        assert indexes == [1, 2, 3]

    def test_explicit_indexes_and_generator(self):
        raw = vertex_raw(
            vid={"index": 3, "function": "hash"},
            tags=[{"name": "t", "props": [{"name": "p", "type": "bool", "index": 0}]}],
        )

        schema = resolve_schema(raw)

        assert schema.vid == VID(index=3, generator="hash")
        assert schema.tags[0].props[0].index == 0

    def test_type_discriminator_is_case_insensitive(self):
        raw = vertex_raw()
        raw["type"] = "VERTEX"

        assert isinstance(resolve_schema(raw), VertexSchema)

    def test_types_are_lower_cased(self):
        raw = vertex_raw(tags=[{"name": "t", "props": [{"name": "p", "type": "STRING"}]}])

        schema = resolve_schema(raw)

        assert schema.tags[0].props[0].type == "string"

    def test_date_timestamp_keeps_format_verbatim(self):
        raw = vertex_raw(tags=[{"name": "t", "props": [
            {"name": "born", "type": "Date-Timestamp:%Y-%m-%d %H:%M:%S"}
        ]}])

        prop = resolve_schema(raw).tags[0].props[0]

        assert prop.type == "date-timestamp:%Y-%m-%d %H:%M:%S"
        assert prop.base_type == "date-timestamp"
        assert prop.date_format == "%Y-%m-%d %H:%M:%S"

    def test_tag_without_props(self):
        schema = resolve_schema(vertex_raw(tags=[{"name": "empty"}]))

        assert schema.tags[0].props == ()

    def test_vid_may_share_column_with_prop(self):
        raw = vertex_raw(tags=[{"name": "t", "props": [{"name": "id", "type": "int", "index": 0}]}])

        schema = resolve_schema(raw)

        assert schema.vid.index == schema.tags[0].props[0].index == 0


class TestEdgeResolution:
    """Edge schema defaults, rank handling"""

    def test_defaults_without_rank(self):
        schema = resolve_schema(edge_raw())

        assert isinstance(schema, EdgeSchema)
        assert schema.name == "like"
        assert schema.src_vid == VID(index=0)
        assert schema.dst_vid == VID(index=1)
        assert schema.rank is None
        assert schema.props[0].index == 2

    def test_with_ranking_shifts_props(self):
        schema = resolve_schema(edge_raw(withRanking=True))

        assert schema.rank == Rank(index=2)
        assert schema.props[0].index == 3

    def test_explicit_rank_section(self):
        schema = resolve_schema(edge_raw(rank={"index": 5}))

        assert schema.rank == Rank(index=5)
        assert schema.props[0].index == 3

    def test_generators(self):
        raw = edge_raw(srcVID={"function": "hash"}, dstVID={"index": 1, "function": "UUID"})

        schema = resolve_schema(raw)

        assert schema.src_vid.generator == "hash"
        assert schema.dst_vid.generator == "uuid"

    def test_empty_generator_means_none(self):
        schema = resolve_schema(edge_raw(srcVID={"function": ""}))

        assert schema.src_vid.generator is None


class TestRejections:
    """Malformed entries are rejected at resolution time"""

    @pytest.mark.parametrize("raw", [
        None,
        "vertex",
        {},
        {"type": "node", "vertex": {}},
        {"type": "vertex"},
        {"type": "edge", "vertex": {"tags": [{"name": "t"}]}},
    ])
    def test_bad_top_level(self, raw):
        with pytest.raises(ResolutionError):
            resolve_schema(raw)

    def test_vertex_without_tags(self):
        with pytest.raises(ResolutionError, match="at least one vertex tag"):
            resolve_schema(vertex_raw(tags=[]))

    def test_null_tag_entry(self):
        with pytest.raises(ResolutionError, match="empty tag"):
            resolve_schema(vertex_raw(tags=[None]))

    def test_null_prop_entry(self):
        with pytest.raises(ResolutionError, match="empty prop"):
            resolve_schema(vertex_raw(tags=[{"name": "t", "props": [None]}]))

    def test_tag_without_name(self):
        with pytest.raises(ResolutionError, match="tag name"):
            resolve_schema(vertex_raw(tags=[{"props": []}]))

    def test_edge_without_name(self):
        with pytest.raises(ResolutionError, match="edge name"):
            resolve_schema(edge_raw(name=None))

    @pytest.mark.parametrize("prop_type", ["integer", "", "string:utf8", "date-timestamp", "date-timestamp:"])
    def test_bad_prop_type(self, prop_type):
        raw = vertex_raw(tags=[{"name": "t", "props": [{"name": "p", "type": prop_type}]}])

        with pytest.raises(ResolutionError):
            resolve_schema(raw)

    @pytest.mark.parametrize("index", [-1, "2", True, 1.5])
    def test_bad_index(self, index):
        raw = vertex_raw(tags=[{"name": "t", "props": [{"name": "p", "type": "int", "index": index}]}])

        with pytest.raises(ResolutionError):
            resolve_schema(raw)

    def test_duplicate_prop_index(self):
        raw = vertex_raw(tags=[{"name": "t", "props": [
            {"name": "a", "type": "int", "index": 1},
            {"name": "b", "type": "int", "index": 1},
        ]}])

        with pytest.raises(ResolutionError, match="Duplicate column index 1"):
            resolve_schema(raw)

    def test_unknown_generator(self):
        with pytest.raises(ResolutionError, match="hash, uuid"):
            resolve_schema(edge_raw(srcVID={"function": "md5"}))

    def test_error_message_names_config_path(self):
        with pytest.raises(ResolutionError, match=r"files\[2\]\.schema\.edge\.name"):
            resolve_schema(edge_raw(name=""), prefix="files[2].schema")


class TestParseGenerator:
    """Header-style generator text"""

    @pytest.mark.parametrize("text,expected", [
        (":VID(hash)", "hash"),
        (":SRC_VID(UUID)", "uuid"),
        (":VID", None),
        (":VID()", None),
    ])
    def test_valid(self, text, expected):
        assert parse_generator(text) == expected

    @pytest.mark.parametrize("text", [":VID(hash", ":VIDhash)", ":VID)hash("])
    def test_invalid(self, text):
        with pytest.raises(ResolutionError):
            parse_generator(text)
