# -*- coding: utf-8 -*-
"""
Core data structures for the graph import pipeline

Single source of truth for the resolved schema types and the per-row values
that flow through the pipeline. Everything here is frozen: a resolved schema
is built once per input file and then shared read-only by the accumulator and
every dispatch worker, so it must never change after resolution.

Raw schema descriptions (straight from YAML) are plain dicts and live only in
the resolver; nothing downstream sees an optional field except the explicit
`EdgeSchema.rank` and `VID.generator`.

Examples:
    from graph_importer.utils.dataclasses import Prop, Tag, VID, VertexSchema

    schema = VertexSchema(
        vid=VID(index=0),
        tags=(Tag(name="student", props=(Prop("name", "string", 1),)),)
    )
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union


# ============================================================================
# TYPE NAMES
# ============================================================================

PROP_TYPES = ("bool", "int", "float", "double", "string", "timestamp")
DATE_TIMESTAMP = "date-timestamp"
VID_GENERATORS = ("hash", "uuid")

# One input row: an ordered, fixed-length sequence of raw cells
Record = Tuple[str, ...]


# ============================================================================
# RESOLVED SCHEMA
# ============================================================================

@dataclass(frozen=True)
class Prop:
    """
    Typed property bound to a column.

    `type` is the lower-cased type name; for date-timestamp columns it keeps
    the strptime format verbatim after the first colon
    (e.g. "date-timestamp:%Y-%m-%d %H:%M:%S").
    """
    name: str
    type: str
    index: int

    @property
    def base_type(self) -> str:
        return self.type.split(":", 1)[0]

    @property
    def date_format(self) -> Optional[str]:
        """strptime format for date-timestamp props, None otherwise."""
        if self.base_type != DATE_TIMESTAMP:
            return None
        return self.type.split(":", 1)[1]


@dataclass(frozen=True)
class VID:
    """Vertex identifier column; generator is None, "hash" or "uuid"."""
    index: int
    generator: Optional[str] = None


@dataclass(frozen=True)
class Rank:
    """Edge rank column."""
    index: int


@dataclass(frozen=True)
class Tag:
    """Named group of properties attached to a vertex."""
    name: str
    props: Tuple[Prop, ...] = ()


@dataclass(frozen=True)
class VertexSchema:
    """Vertex variant: one VID column and one or more tags."""
    vid: VID
    tags: Tuple[Tag, ...] = ()

    @property
    def max_index(self) -> int:
        indexes = [self.vid.index] + [p.index for t in self.tags for p in t.props]
        return max(indexes)


@dataclass(frozen=True)
class EdgeSchema:
    """Edge variant: source/destination VIDs, optional rank and props."""
    name: str
    src_vid: VID
    dst_vid: VID
    rank: Optional[Rank] = None
    props: Tuple[Prop, ...] = ()

    @property
    def max_index(self) -> int:
        indexes = [self.src_vid.index, self.dst_vid.index] + [p.index for p in self.props]
        if self.rank is not None:
            indexes.append(self.rank.index)
        return max(indexes)


# Tagged union over the two variants
Schema = Union[VertexSchema, EdgeSchema]


# ============================================================================
# PER-ROW VALUES
# ============================================================================

@dataclass(frozen=True)
class CompiledStatement:
    """Rendered statement fragment with its originating record (for replay)."""
    text: str
    record: Record


@dataclass(frozen=True)
class Batch:
    """
    Bounded, ordered group of compiled statements from one source file.

    Consumed exactly once by exactly one dispatch worker. `sequence` is the
    0-based position of the batch within its source.
    """
    source: str
    space: str
    schema: Schema
    statements: Tuple[CompiledStatement, ...]
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.statements)

    @property
    def records(self) -> Tuple[Record, ...]:
        return tuple(s.record for s in self.statements)
