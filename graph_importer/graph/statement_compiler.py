# -*- coding: utf-8 -*-
"""
Record compiler: (resolved Schema, raw Record) -> insert statement fragment.

Pure, deterministic and free of I/O, so every dispatch worker and every
accumulator can call it concurrently over the same resolved schema.

Fragment grammar:
    Vertex: <vid>: (<tag1.p1>,<tag1.p2>,...,<tag2.p1>,...)
    Edge:   <src>-><dst>[@<rank>]:(<p1>,<p2>,...)

Value rendering per prop type:
    string            quoted cell
    int               integer part of the parsed number (truncated toward zero),
                      raw text when the cell is not a number
    date-timestamp:F  epoch seconds of the cell parsed with strptime format F,
                      raw text when the cell does not match
    anything else     raw cell

A full batch statement prefixes the joined fragments with the insert header:
    INSERT VERTEX student(name, age) VALUES 101: ("Mary",19), 102: ("Bob",20)
    INSERT EDGE like(likeness) VALUES hash("A")->5@0:(9.5)

Example:
    schema = resolve_schema(raw)
    stmt = compile_record(schema, ("101", "Mary", "19"))
    stmt.text   # '101: ("Mary",19)'
"""
# Standard library
import calendar
import math
from datetime import datetime
from typing import List, Sequence

# Local
from graph_importer.utils.dataclasses import (
    DATE_TIMESTAMP,
    Batch,
    CompiledStatement,
    EdgeSchema,
    Prop,
    Record,
    Schema,
    VertexSchema,
    VID,
)
from graph_importer.utils.errors import OutOfRangeError

# Column labels used by describe_columns()
LABEL_VID = ":VID"
LABEL_SRC_VID = ":SRC_VID"
LABEL_DST_VID = ":DST_VID"
LABEL_RANK = ":RANK"
LABEL_IGNORE = ":IGNORE"


# ============================================================================
# VALUE FORMATTING
# ============================================================================

_ESCAPES = {
    '\\': '\\\\', '"': '\\"',
    '\a': '\\a', '\b': '\\b', '\f': '\\f', '\n': '\\n',
    '\r': '\\r', '\t': '\\t', '\v': '\\v',
}


def quote(cell: str) -> str:
    """
    Double-quote a cell for the insert grammar.

    Backslash and quote are escaped, common control chars use their short
    escapes (\\n, \\t, ...), other ASCII control chars become \\xHH and other
    non-printable code points \\uHHHH / \\UHHHHHHHH. Printable text, including
    non-ASCII letters, is kept as is.
    """
    out = []
    for ch in cell:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ch.isprintable():
            out.append(ch)
        elif ord(ch) < 0x80:
            out.append(f"\\x{ord(ch):02x}")
        elif ord(ch) <= 0xFFFF:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(f"\\U{ord(ch):08x}")
    return '"' + ''.join(out) + '"'


def to_int_text(cell: str) -> str:
    """
    Render the integer part of a numeric cell.

    "19" -> "19", "19.9" -> "19", "-3.7" -> "-3", "1e3" -> "1000".
    Unparsable or non-finite cells pass through unchanged.
    """
    text = cell.strip()
    try:
        return str(int(text))
    except ValueError:
        pass

    try:
        value = float(text)
    except ValueError:
        return cell

    if not math.isfinite(value):
        return cell
    return str(math.trunc(value))


def to_timestamp_text(cell: str, fmt: str) -> str:
    """
    Render a date cell as integer epoch seconds.

    Naive datetimes are taken as UTC. Cells not matching fmt pass through
    unchanged.
    """
    try:
        parsed = datetime.strptime(cell.strip(), fmt)
    except ValueError:
        return cell

    if parsed.tzinfo is not None:
        return str(int(parsed.timestamp()))
    return str(calendar.timegm(parsed.timetuple()))


def format_value(prop: Prop, cell: str) -> str:
    """Render one cell according to its prop type."""
    base = prop.base_type
    if base == "string":
        return quote(cell)
    if base == "int":
        return to_int_text(cell)
    if base == DATE_TIMESTAMP:
        return to_timestamp_text(cell, prop.date_format)
    return cell


def format_vid(vid: VID, cell: str) -> str:
    if vid.generator:
        return f"{vid.generator}({quote(cell)})"
    return to_int_text(cell)


# ============================================================================
# RECORD COMPILATION
# ============================================================================

def compile_record(schema: Schema, record: Record) -> CompiledStatement:
    """
    Compile one record into a statement fragment.

    Args:
        schema: Resolved VertexSchema or EdgeSchema
        record: Raw cells of one input row

    Returns:
        CompiledStatement holding the fragment and the original record

    Raises:
        OutOfRangeError: A referenced column index is >= len(record)
    """
    if isinstance(schema, VertexSchema):
        text = _compile_vertex(schema, record)
    elif isinstance(schema, EdgeSchema):
        text = _compile_edge(schema, record)
    else:
        raise TypeError(f"Unsupported schema variant: {type(schema).__name__}")

    return CompiledStatement(text=text, record=tuple(record))


def _cell(record: Record, index: int) -> str:
    if index >= len(record):
        raise OutOfRangeError(index, len(record))
    return record[index]


def _compile_vertex(schema: VertexSchema, record: Record) -> str:
    vid = format_vid(schema.vid, _cell(record, schema.vid.index))
    values = [
        format_value(prop, _cell(record, prop.index))
        for tag in schema.tags
        for prop in tag.props
    ]
    return f"{vid}: ({','.join(values)})"


def _compile_edge(schema: EdgeSchema, record: Record) -> str:
    src = format_vid(schema.src_vid, _cell(record, schema.src_vid.index))
    dst = format_vid(schema.dst_vid, _cell(record, schema.dst_vid.index))
    rank = f"@{_cell(record, schema.rank.index)}" if schema.rank is not None else ""
    values = [format_value(prop, _cell(record, prop.index)) for prop in schema.props]
    return f"{src}->{dst}{rank}:({','.join(values)})"


# ============================================================================
# BATCH RENDERING
# ============================================================================

def insert_header(schema: Schema) -> str:
    """Statement prefix naming the target tags/edge and their props."""
    if isinstance(schema, VertexSchema):
        tags = ", ".join(
            f"{tag.name}({', '.join(p.name for p in tag.props)})" for tag in schema.tags
        )
        return f"INSERT VERTEX {tags} VALUES"
    if isinstance(schema, EdgeSchema):
        props = ", ".join(p.name for p in schema.props)
        return f"INSERT EDGE {schema.name}({props}) VALUES"
    raise TypeError(f"Unsupported schema variant: {type(schema).__name__}")


def render_statement(schema: Schema, fragments: Sequence[str]) -> str:
    return f"{insert_header(schema)} {', '.join(fragments)}"


def render_batch(batch: Batch) -> str:
    """Full insert statement for every compiled record of a batch."""
    return render_statement(batch.schema, [s.text for s in batch.statements])


# ============================================================================
# COLUMN DESCRIPTION
# ============================================================================

def describe_columns(schema: Schema) -> List[str]:
    """
    Header cells describing what each input column maps to.

    Used as the header row of failed-data files so they can be re-imported
    on their own. Columns used twice are joined with "/"; unused columns
    are marked :IGNORE.

    Example:
        [":VID(hash)", "student.name:string", "student.age:int"]
    """
    cells = [""] * (schema.max_index + 1)

    def put(index: int, label: str) -> None:
        cells[index] = f"{cells[index]}/{label}" if cells[index] else label

    if isinstance(schema, VertexSchema):
        put(schema.vid.index, _vid_label(LABEL_VID, schema.vid))
        for tag in schema.tags:
            for prop in tag.props:
                put(prop.index, f"{tag.name}.{prop.name}:{prop.type}")
    elif isinstance(schema, EdgeSchema):
        put(schema.src_vid.index, _vid_label(LABEL_SRC_VID, schema.src_vid))
        put(schema.dst_vid.index, _vid_label(LABEL_DST_VID, schema.dst_vid))
        if schema.rank is not None:
            put(schema.rank.index, LABEL_RANK)
        for prop in schema.props:
            put(prop.index, f"{schema.name}.{prop.name}:{prop.type}")
    else:
        raise TypeError(f"Unsupported schema variant: {type(schema).__name__}")

    return [cell or LABEL_IGNORE for cell in cells]


def _vid_label(label: str, vid: VID) -> str:
    return f"{label}({vid.generator})" if vid.generator else label
