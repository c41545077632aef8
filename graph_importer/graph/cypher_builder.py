# -*- coding: utf-8 -*-
"""
Batch to parameterized Cypher, for Neo4j targets.

The insert statements rendered by statement_compiler are the import's
canonical text (dry runs, logs). Neo4j only speaks Cypher, so the Bolt client
sends each batch as one UNWIND query with the rows as parameters instead,
built from the same resolved schema and records.

Graph model:
    every vertex is a (:Vertex {vid}) node, labelled with each of its tags;
    tag props are merged into the node properties (a later tag wins on a
    name clash)
    every edge is a relationship typed with the edge name between the two
    :Vertex nodes, identified by (src, dst, rank); rank is 0 without a rank
    column

Parameter values follow the prop type: int/timestamp/date-timestamp become
integers, float/double floats, bool booleans, string stays text. Cells that do
not parse are sent as the raw text, the same passthrough the statement
renderer applies. VIDs with a hash/uuid generator are keyed by the raw cell
string, other VIDs by their integer value.

Example:
    query, rows = build_cypher(batch)
    session.run(query, batch=rows)

    # UNWIND $batch AS row
    # MERGE (v:Vertex {vid: row.vid})
    # SET v:`student`, v += row.props
"""
# Standard library
from typing import Any, Dict, List, Tuple

# Local
from graph_importer.graph.statement_compiler import to_int_text, to_timestamp_text
from graph_importer.utils.dataclasses import (
    DATE_TIMESTAMP,
    Batch,
    EdgeSchema,
    Prop,
    Record,
    VertexSchema,
    VID,
)

VERTEX_LABEL = "Vertex"
DEFAULT_RANK = 0


# ============================================================================
# PARAMETER VALUES
# ============================================================================

def to_int_param(cell: str) -> Any:
    """Integer value of a numeric cell, the raw cell otherwise."""
    try:
        return int(to_int_text(cell))
    except ValueError:
        return cell


def to_param(prop: Prop, cell: str) -> Any:
    """Typed Bolt parameter value for one cell."""
    base = prop.base_type
    if base == "string":
        return cell
    if base in ("int", "timestamp"):
        return to_int_param(cell)
    if base in ("float", "double"):
        try:
            return float(cell)
        except ValueError:
            return cell
    if base == "bool":
        lowered = cell.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return cell
    if base == DATE_TIMESTAMP:
        return to_int_param(to_timestamp_text(cell, prop.date_format))
    return cell


def vid_param(vid: VID, cell: str) -> Any:
    if vid.generator:
        return cell
    return to_int_param(cell)


def escape_name(name: str) -> str:
    """Backtick-quote a label or relationship type."""
    return "`" + name.replace("`", "``") + "`"


# ============================================================================
# QUERIES
# ============================================================================

def build_cypher(batch: Batch) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Translate a batch into one UNWIND query and its row parameters.

    Args:
        batch: Compiled batch (every record already passed compilation)

    Returns:
        (query, rows) where rows is bound to $batch
    """
    schema = batch.schema
    if isinstance(schema, VertexSchema):
        return vertex_query(schema), [vertex_row(schema, r) for r in batch.records]
    if isinstance(schema, EdgeSchema):
        return edge_query(schema), [edge_row(schema, r) for r in batch.records]
    raise TypeError(f"Unsupported schema variant: {type(schema).__name__}")


def vertex_query(schema: VertexSchema) -> str:
    labels = "".join(f":{escape_name(tag.name)}" for tag in schema.tags)
    return (
        "UNWIND $batch AS row\n"
        f"MERGE (v:{VERTEX_LABEL} {{vid: row.vid}})\n"
        f"SET v{labels}, v += row.props"
    )


def edge_query(schema: EdgeSchema) -> str:
    return (
        "UNWIND $batch AS row\n"
        f"MERGE (s:{VERTEX_LABEL} {{vid: row.src}})\n"
        f"MERGE (d:{VERTEX_LABEL} {{vid: row.dst}})\n"
        f"MERGE (s)-[e:{escape_name(schema.name)} {{rank: row.rank}}]->(d)\n"
        "SET e += row.props"
    )


def vertex_row(schema: VertexSchema, record: Record) -> Dict[str, Any]:
    props = {}
    for tag in schema.tags:
        for prop in tag.props:
            props[prop.name] = to_param(prop, record[prop.index])
    return {"vid": vid_param(schema.vid, record[schema.vid.index]), "props": props}


def edge_row(schema: EdgeSchema, record: Record) -> Dict[str, Any]:
    rank = DEFAULT_RANK
    if schema.rank is not None:
        rank = to_int_param(record[schema.rank.index])
    return {
        "src": vid_param(schema.src_vid, record[schema.src_vid.index]),
        "dst": vid_param(schema.dst_vid, record[schema.dst_vid.index]),
        "rank": rank,
        "props": {p.name: to_param(p, record[p.index]) for p in schema.props},
    }
