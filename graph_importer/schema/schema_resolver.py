# -*- coding: utf-8 -*-
"""
Schema resolver: raw YAML schema description -> resolved, immutable Schema.

The raw description is whatever the YAML loader produced for a file's `schema`
section: nested dicts and lists where any field may be missing. Resolution
fills every default column index, normalizes type names and generators, and
validates the result. The output is made of frozen dataclasses and is shared
read-only by every later stage.

Default column layout:
    Vertex: VID -> 0, tag props numbered from 1 across tags in declaration order
    Edge:   srcVID -> 0, dstVID -> 1, rank -> 2 (only when ranking is requested),
            props numbered from the next free index

Malformed nested entries (null tags or props) are rejected rather than
skipped, so a bad description always fails before any dispatch begins.

Example:
    raw = {
        "type": "vertex",
        "vertex": {
            "vid": {"function": "hash"},
            "tags": [{"name": "student",
                      "props": [{"name": "name", "type": "string"},
                                {"name": "age", "type": "int"}]}],
        },
    }
    schema = resolve_schema(raw)
    # VertexSchema(vid=VID(index=0, generator='hash'), tags=(Tag('student', ...),))
"""
# Standard library
from typing import Any, Dict, List, Optional, Tuple

# Local
from graph_importer.utils.dataclasses import (
    DATE_TIMESTAMP,
    PROP_TYPES,
    VID_GENERATORS,
    EdgeSchema,
    Prop,
    Rank,
    Schema,
    Tag,
    VertexSchema,
    VID,
)
from graph_importer.utils.errors import ResolutionError
from graph_importer.utils.logger import get_logger

logger = get_logger(__name__)


def resolve_schema(raw: Any, prefix: str = "schema") -> Schema:
    """
    Resolve a raw schema description.

    Args:
        raw: Mapping with a `type` discriminator and a `vertex` or `edge` section
        prefix: Config path used in error messages (e.g. "files[0].schema")

    Returns:
        VertexSchema or EdgeSchema

    Raises:
        ResolutionError: On any missing or invalid field
    """
    raw = _require_mapping(raw, prefix)

    kind = raw.get("type")
    if not isinstance(kind, str) or not kind:
        raise ResolutionError(f"Please configure the schema type in: {prefix}.type")

    kind = kind.lower()
    if kind not in ("vertex", "edge"):
        raise ResolutionError(
            f"Error schema type({raw['type']}) in {prefix}.type, only edge and vertex are supported"
        )
    if raw.get(kind) is None:
        raise ResolutionError(f"Please configure the {kind} section in: {prefix}.{kind}")

    if kind == "vertex":
        schema = _resolve_vertex(raw["vertex"], f"{prefix}.vertex")
    else:
        schema = _resolve_edge(raw["edge"], f"{prefix}.edge")

    logger.debug(f"Resolved {prefix}: {schema}")
    return schema


def parse_generator(text: str) -> Optional[str]:
    """
    Extract a VID generator from header-style text.

    ":VID(hash)" -> "hash", ":VID" -> None. Unbalanced or misplaced
    parentheses are rejected.
    """
    i = text.find("(")
    j = text.find(")")
    if i < 0 and j < 0:
        return None
    if 0 <= i < j:
        return text[i + 1:j].strip().lower() or None
    raise ResolutionError(f"Invalid function format: {text}")


# ============================================================================
# VARIANTS
# ============================================================================

def _resolve_vertex(raw: Any, prefix: str) -> VertexSchema:
    raw = _require_mapping(raw, prefix)

    vid = _resolve_vid(raw.get("vid"), f"{prefix}.vid", default=0)

    tags_raw = _require_list(raw.get("tags"), f"{prefix}.tags")
    if not tags_raw:
        raise ResolutionError(f"Please configure at least one vertex tag in: {prefix}.tags")

    tags: List[Tag] = []
    start = 1
    for i, tag_raw in enumerate(tags_raw):
        tag_prefix = f"{prefix}.tags[{i}]"
        tag = _resolve_tag(tag_raw, tag_prefix, start)
        tags.append(tag)
        start += len(tag.props)

    return VertexSchema(vid=vid, tags=tuple(tags))


def _resolve_edge(raw: Any, prefix: str) -> EdgeSchema:
    raw = _require_mapping(raw, prefix)

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ResolutionError(f"Please configure edge name in: {prefix}.name")

    src_vid = _resolve_vid(raw.get("srcVID"), f"{prefix}.srcVID", default=0)
    dst_vid = _resolve_vid(raw.get("dstVID"), f"{prefix}.dstVID", default=1)

    rank: Optional[Rank] = None
    start = 2
    if raw.get("rank") is not None:
        rank_raw = _require_mapping(raw["rank"], f"{prefix}.rank")
        rank = Rank(index=_resolve_index(rank_raw.get("index"), f"{prefix}.rank.index", 2))
        start += 1
    elif _resolve_bool(raw.get("withRanking"), f"{prefix}.withRanking"):
        rank = Rank(index=2)
        start += 1

    props = _resolve_props(raw.get("props"), f"{prefix}.props", start)

    return EdgeSchema(name=name, src_vid=src_vid, dst_vid=dst_vid, rank=rank, props=props)


# ============================================================================
# NESTED ENTRIES
# ============================================================================

def _resolve_tag(raw: Any, prefix: str, start: int) -> Tag:
    if raw is None:
        raise ResolutionError(f"Invalid empty tag entry in: {prefix}")
    raw = _require_mapping(raw, prefix)

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ResolutionError(f"Please configure the vertex tag name in: {prefix}.name")

    return Tag(name=name, props=_resolve_props(raw.get("props"), f"{prefix}.props", start))


def _resolve_props(raw: Any, prefix: str, start: int) -> Tuple[Prop, ...]:
    props_raw = _require_list(raw, prefix)

    props: List[Prop] = []
    seen: Dict[int, str] = {}
    for i, prop_raw in enumerate(props_raw):
        prop = _resolve_prop(prop_raw, f"{prefix}[{i}]", i + start)
        if prop.index in seen:
            raise ResolutionError(
                f"Duplicate column index {prop.index} in {prefix}[{i}]: "
                f"already used by prop '{seen[prop.index]}'"
            )
        seen[prop.index] = prop.name
        props.append(prop)

    return tuple(props)


def _resolve_prop(raw: Any, prefix: str, default_index: int) -> Prop:
    if raw is None:
        raise ResolutionError(f"Invalid empty prop entry in: {prefix}")
    raw = _require_mapping(raw, prefix)

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ResolutionError(f"Please configure the prop name in: {prefix}.name")

    prop_type = _resolve_type(raw.get("type"), f"{prefix}.type")
    index = _resolve_index(raw.get("index"), f"{prefix}.index", default_index)

    return Prop(name=name, type=prop_type, index=index)


def _resolve_type(raw: Any, prefix: str) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ResolutionError(f"Please configure the property type in: {prefix}")

    # The strptime format after the colon is case sensitive (%Y vs %y)
    head, sep, fmt = raw.strip().partition(":")
    head = head.strip().lower()

    if head == DATE_TIMESTAMP:
        if not sep or not fmt:
            raise ResolutionError(f"Missing date format in {prefix}: {raw}, expected date-timestamp:FORMAT")
        return f"{DATE_TIMESTAMP}:{fmt}"

    if sep or head not in PROP_TYPES:
        raise ResolutionError(f"Error property type of {prefix}: {raw}")

    return head


def _resolve_vid(raw: Any, prefix: str, default: int) -> VID:
    if raw is None:
        return VID(index=default)
    raw = _require_mapping(raw, prefix)

    index = _resolve_index(raw.get("index"), f"{prefix}.index", default)
    generator = _resolve_generator(raw.get("function"), f"{prefix}.function")

    return VID(index=index, generator=generator)


def _resolve_generator(raw: Any, prefix: str) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ResolutionError(f"Invalid {prefix}: {raw!r}")

    if "(" in raw or ")" in raw:
        generator = parse_generator(raw)
    else:
        generator = raw.strip().lower() or None

    if generator is not None and generator not in VID_GENERATORS:
        raise ResolutionError(
            f'Invalid {prefix}: {raw}, only following values are supported: "", hash, uuid'
        )
    return generator


def _resolve_index(raw: Any, prefix: str, default: int) -> int:
    if raw is None:
        return default
    # bool is an int subclass; "index: true" is a config mistake
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ResolutionError(f"Invalid {prefix}: {raw!r}, expected a non-negative integer")
    if raw < 0:
        raise ResolutionError(f"Invalid {prefix}: {raw}")
    return raw


def _resolve_bool(raw: Any, prefix: str) -> bool:
    if raw is None:
        return False
    if not isinstance(raw, bool):
        raise ResolutionError(f"Invalid {prefix}: {raw!r}, expected true or false")
    return raw


def _require_mapping(raw: Any, prefix: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ResolutionError(f"Invalid {prefix}: expected a mapping, got {type(raw).__name__}")
    return raw


def _require_list(raw: Any, prefix: str) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ResolutionError(f"Invalid {prefix}: expected a list, got {type(raw).__name__}")
    return raw
