"""
Tolerant DXF structural parser.

Reads group-code/value pairs from DXF text, groups them into sections and
raw entity records, and hands entity records to the converter. Malformed
lines are recorded and skipped; only input without a single valid pair is
rejected outright.
"""

import logging
from dataclasses import dataclass, field

from ezdxf.lldxf.types import cast_tag_value, tag_type

from .converter import EntityConverter
from .entities import Block, Drawing, LayerInfo, DEFAULT_LAYER
from .errors import ParseError, ParseIssue, Warnings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawRecord:
    code: int
    value: str
    line: int = 0


@dataclass
class RawEntity:
    """One entity as read from the file: its kind and its tags in order."""

    kind: str
    tags: list = field(default_factory=list)
    line: int = 0
    # VERTEX records folded into a POLYLINE
    vertices: list = field(default_factory=list)

    def get(self, code, default=None):
        for tag in self.tags:
            if tag.code == code:
                return tag.value
        return default

    def get_all(self, code):
        return [tag.value for tag in self.tags if tag.code == code]

    def get_float(self, code, default=None):
        value = self.get(code)
        if value is None:
            return default
        return float(value)

    def get_int(self, code, default=None):
        value = self.get(code)
        if value is None:
            return default
        return int(float(value))

    def get_point(self, code=10, default=None):
        """Point from codes ``code``, ``code + 10`` and ``code + 20``."""
        x = self.get(code)
        y = self.get(code + 10)
        if x is None or y is None:
            return default
        z = self.get(code + 20)
        return (float(x), float(y), float(z) if z is not None else 0.0)

    @property
    def handle(self):
        return self.get(5)


@dataclass
class RawDrawing:
    header: dict = field(default_factory=dict)
    layers: list = field(default_factory=list)
    blocks: list = field(default_factory=list)  # (RawEntity header, [RawEntity])
    entities: list = field(default_factory=list)


@dataclass
class ParseResult:
    drawing: Drawing
    warnings: Warnings
    unsupported: dict = field(default_factory=dict)

    @property
    def errors(self):
        return self.warnings.parse + self.warnings.validation


def cast_value(code, value):
    """Convert a raw value string to the type its group code implies."""
    try:
        return cast_tag_value(code, value)
    except ValueError:
        if tag_type(code) is not int:
            return value
    # integer codes written as "1.0" by some exporters
    try:
        return int(float(value))
    except ValueError:
        return value


def decode(data):
    """DXF bytes to text: UTF-8 for R2007 and later, else the legacy ANSI code page."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("cp1252", errors="replace")


def read_records(text):
    """Pair code lines with value lines. Returns (records, issues)."""
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines()
    records = []
    issues = []
    i = 0
    count = len(lines)
    while i < count:
        code_text = lines[i].strip()
        if not code_text:
            i += 1
            continue
        try:
            code = int(code_text)
        except ValueError:
            issues.append(ParseIssue(i + 1, f"invalid group code {code_text[:40]!r}"))
            i += 1
            continue
        if i + 1 >= count:
            issues.append(ParseIssue(i + 1, f"group code {code} has no value"))
            break
        records.append(RawRecord(code, lines[i + 1].strip(), i + 1))
        i += 2
    return records, issues


def split_sections(records, issues=None):
    """Group records into header variables, layer table, blocks and entities."""
    issues = issues if issues is not None else []
    raw = RawDrawing()
    section = None
    expect_name = False
    objects = []

    for record in records:
        if record.code == 0 and record.value == "SECTION":
            expect_name = True
            objects = []
            continue
        if expect_name:
            expect_name = False
            if record.code == 2:
                section = record.value.upper()
                continue
            issues.append(ParseIssue(record.line, "SECTION without a name"))
            section = None
        if record.code == 0 and record.value == "ENDSEC":
            _finish_section(raw, section, objects, issues)
            section = None
            objects = []
            continue
        if record.code == 0 and record.value == "EOF":
            break
        if section is None:
            issues.append(ParseIssue(record.line, f"group code {record.code} outside any section"))
            continue
        if section == "HEADER":
            objects.append(record)
        elif record.code == 0:
            objects.append(RawEntity(record.value.upper(), [], record.line))
        elif objects:
            objects[-1].tags.append(record)

    if section is not None:
        issues.append(ParseIssue(records[-1].line, f"section {section} is not terminated"))
        _finish_section(raw, section, objects, issues)
    return raw


def _finish_section(raw, section, objects, issues):
    if section == "HEADER":
        raw.header = _read_header(objects)
    elif section == "TABLES":
        raw.layers = _read_layer_table(objects)
    elif section == "BLOCKS":
        raw.blocks = _read_blocks(objects, issues)
    elif section == "ENTITIES":
        raw.entities = fold_sequences(objects, issues)


def _read_header(records):
    header = {}
    name = None
    values = []

    def flush():
        if name is None:
            return
        point = {r.code: cast_value(r.code, r.value) for r in values if 10 <= r.code <= 39}
        if point and 10 in point and 20 in point:
            header[name] = (point[10], point[20], point.get(30, 0.0))
        elif values:
            header[name] = cast_value(values[0].code, values[0].value)

    for record in records:
        if record.code == 9:
            flush()
            name = record.value
            values = []
        elif name is not None:
            values.append(record)
    flush()
    return header


def _read_layer_table(objects):
    layers = []
    in_layer_table = False
    for obj in objects:
        if obj.kind == "TABLE":
            in_layer_table = (obj.get(2) or "").upper() == "LAYER"
        elif obj.kind == "ENDTAB":
            in_layer_table = False
        elif in_layer_table and obj.kind == "LAYER":
            layers.append(obj)
    return layers


def _read_blocks(objects, issues):
    blocks = []
    current = None
    body = []
    for obj in objects:
        if obj.kind == "BLOCK":
            if current is not None:
                issues.append(ParseIssue(obj.line, f"block {current.get(2)!r} has no ENDBLK"))
                blocks.append((current, fold_sequences(body, issues)))
            current, body = obj, []
        elif obj.kind == "ENDBLK":
            if current is None:
                issues.append(ParseIssue(obj.line, "ENDBLK without BLOCK"))
                continue
            blocks.append((current, fold_sequences(body, issues)))
            current, body = None, []
        elif current is not None:
            body.append(obj)
    if current is not None:
        blocks.append((current, fold_sequences(body, issues)))
    return blocks


def fold_sequences(objects, issues):
    """Attach VERTEX records to their POLYLINE and drop INSERT attribute runs."""
    result = []
    owner = None
    for obj in objects:
        if obj.kind == "SEQEND":
            owner = None
            continue
        if obj.kind == "VERTEX":
            if owner is not None and owner.kind == "POLYLINE":
                owner.vertices.append(obj)
            else:
                issues.append(ParseIssue(obj.line, "VERTEX outside a POLYLINE"))
            continue
        if obj.kind == "ATTRIB" and owner is not None and owner.kind == "INSERT":
            continue
        owner = obj if obj.kind in ("POLYLINE", "INSERT") else None
        result.append(obj)
    return result


def parse(text, converter=None):
    """
    Parse DXF text into a Drawing.

    Returns a ParseResult holding the drawing, recoverable issues and a
    count of unsupported entity kinds. Raises ParseError when the text
    holds no valid group-code pair.
    """
    records, issues = read_records(text)
    if not records:
        raise ParseError("no valid DXF group codes found", line=issues[0].line if issues else None)

    raw = split_sections(records, issues)
    for issue in issues:
        logger.warning("DXF %s", issue)

    converter = converter or EntityConverter()
    layers = {}
    for obj in raw.layers:
        info = converter.convert_layer(obj)
        if info is not None:
            layers[info.name] = info

    blocks = {}
    for head, body in raw.blocks:
        name = head.get(2) or head.get(3)
        if not name:
            issues.append(ParseIssue(head.line, "block without a name"))
            continue
        blocks[name] = Block(
            name=name,
            base_point=head.get_point(10, (0.0, 0.0, 0.0)),
            entities=tuple(converter.convert_all(body)),
            layer=head.get(8) or DEFAULT_LAYER,
        )

    entities = tuple(converter.convert_all(raw.entities))
    for entity in entities:
        if entity.layer not in layers:
            layers.setdefault(entity.layer, LayerInfo(entity.layer))

    warnings = Warnings(parse=issues, validation=list(converter.errors))
    summary = converter.unsupported_summary()
    if summary:
        warnings.messages.append(summary)
    drawing = Drawing(header=raw.header, layers=layers, blocks=blocks, entities=entities)
    logger.info(
        "parsed %d entities, %d blocks, %d layers (%d issues)",
        len(entities), len(blocks), len(drawing.layers), len(warnings),
    )
    return ParseResult(drawing, warnings, dict(converter.unsupported))
