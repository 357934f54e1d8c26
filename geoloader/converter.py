"""
Raw DXF records to typed entities.

Each supported kind has one reader. Readers raise ``_Invalid`` for records
that fail their shape checks; the converter turns that into a
ValidationError record and drops the entity. Unsupported kinds are only
counted.
"""

import logging
import math
from collections import Counter

from ezdxf.math import OCS, Vec3
from ezdxf.tools.text import plain_mtext

from . import entities as ent
from .errors import ValidationError
from .geometry import arc_vertices, ellipse_vertices

logger = logging.getLogger(__name__)

Z_AXIS = (0.0, 0.0, 1.0)
HATCH_EDGE_SEGMENTS = 16


class _Invalid(Exception):
    pass


class EntityConverter:
    """Converts RawEntity records; collects validation errors and unsupported kinds."""

    def __init__(self, include_paper_space=False):
        self.include_paper_space = include_paper_space
        self.errors = []
        self.unsupported = Counter()
        self.paper_space = 0
        self._readers = {
            "POINT": self._point,
            "LINE": self._line,
            "LWPOLYLINE": self._lwpolyline,
            "POLYLINE": self._polyline,
            "CIRCLE": self._circle,
            "ARC": self._arc,
            "ELLIPSE": self._ellipse,
            "SPLINE": self._spline,
            "INSERT": self._insert,
            "TEXT": self._text,
            "ATTDEF": self._text,
            "MTEXT": self._mtext,
            "HATCH": self._hatch,
            "SOLID": self._solid,
            "TRACE": self._solid,
            "3DFACE": self._face,
            "3DSOLID": self._solid3d,
            "BODY": self._solid3d,
            "REGION": self._solid3d,
            "DIMENSION": self._dimension,
            "LEADER": self._leader,
            "MLEADER": self._leader,
            "MULTILEADER": self._leader,
            "RAY": self._ray,
            "XLINE": self._ray,
        }

    @property
    def supported_kinds(self):
        return frozenset(self._readers)

    def convert(self, raw):
        """Return a typed entity, or None when the record is invalid or unsupported."""
        reader = self._readers.get(raw.kind)
        if reader is None:
            self.unsupported[raw.kind] += 1
            return None
        if not self.include_paper_space and raw.get(67) == "1":
            self.paper_space += 1
            return None
        try:
            base = self._base(raw)
            return reader(raw, base)
        except _Invalid as exc:
            self._reject(raw, str(exc))
        except (TypeError, ValueError, KeyError) as exc:
            self._reject(raw, f"malformed value: {exc}")
        return None

    def convert_all(self, raws):
        result = []
        for raw in raws:
            entity = self.convert(raw)
            if entity is not None:
                result.append(entity)
        return result

    def convert_layer(self, raw):
        name = raw.get(2)
        if not name:
            self.errors.append(ValidationError("LAYER", raw.handle, "layer without a name"))
            return None
        try:
            color = raw.get_int(62, 7)
            flags = raw.get_int(70, 0)
            weight = raw.get_int(370, -3)
        except ValueError as exc:
            self.errors.append(ValidationError("LAYER", raw.handle, f"malformed value: {exc}"))
            return None
        return ent.LayerInfo(
            name=name,
            color=abs(color),
            line_type=raw.get(6) or "CONTINUOUS",
            line_weight=weight,
            frozen=bool(flags & 1),
            locked=bool(flags & 4),
            off=color < 0,
        )

    def unsupported_summary(self):
        """One aggregate message for all unsupported kinds, or None."""
        if not self.unsupported:
            return None
        parts = ", ".join(f"{kind} x{count}" for kind, count in sorted(self.unsupported.items()))
        return f"unsupported entity types skipped: {parts}"

    def _reject(self, raw, message):
        error = ValidationError(raw.kind, raw.handle, message)
        logger.debug("dropping entity: %s", error)
        self.errors.append(error)

    def _base(self, raw):
        extrusion = raw.get_point(210)
        if extrusion is not None and _is_default_extrusion(extrusion):
            extrusion = None
        color = raw.get_int(62)
        return dict(
            layer=raw.get(8) or ent.DEFAULT_LAYER,
            handle=raw.handle,
            color=None if color in (None, 256) else color,
            line_type=raw.get(6),
            line_weight=raw.get_int(370),
            extrusion=extrusion,
        )

    # readers

    def _point(self, raw, base):
        location = _require(raw.get_point(10), "missing location")
        return ent.PointEntity(location=location, **base)

    def _line(self, raw, base):
        start = _require(raw.get_point(10), "missing start point")
        end = _require(raw.get_point(11), "missing end point")
        return ent.Line(start=start, end=end, **base)

    def _lwpolyline(self, raw, base):
        elevation = raw.get_float(38, 0.0)
        vertices = []
        bulges = []
        x = None
        for tag in raw.tags:
            if tag.code == 10:
                x = float(tag.value)
            elif tag.code == 20 and x is not None:
                vertices.append((x, float(tag.value), elevation))
                bulges.append(0.0)
                x = None
            elif tag.code == 42 and bulges:
                bulges[-1] = float(tag.value)
        if len(vertices) < 2:
            raise _Invalid(f"polyline needs at least 2 vertices, got {len(vertices)}")
        flags = raw.get_int(70, 0)
        vertices = _to_wcs(base["extrusion"], vertices)
        if base["extrusion"] is not None and base["extrusion"][2] < 0:
            bulges = [-b for b in bulges]
        return ent.Polyline(
            kind="LWPOLYLINE", vertices=tuple(vertices), closed=bool(flags & 1),
            bulges=tuple(bulges) if any(bulges) else (), **base,
        )

    def _polyline(self, raw, base):
        flags = raw.get_int(70, 0)
        if flags & (16 | 64):
            self.unsupported["POLYLINE(mesh)"] += 1
            return None
        vertices = []
        bulges = []
        for vertex in raw.vertices:
            vertex_flags = vertex.get_int(70, 0)
            if vertex_flags & 16:
                # spline frame control point
                continue
            point = vertex.get_point(10)
            if point is None:
                continue
            vertices.append(point)
            bulges.append(vertex.get_float(42, 0.0))
        if len(vertices) < 2:
            raise _Invalid(f"polyline needs at least 2 vertices, got {len(vertices)}")
        if not flags & 8:
            vertices = _to_wcs(base["extrusion"], vertices)
        return ent.Polyline(
            kind="POLYLINE", vertices=tuple(vertices), closed=bool(flags & 1),
            bulges=tuple(bulges) if any(bulges) else (), **base,
        )

    def _circle(self, raw, base):
        center = _require(raw.get_point(10), "missing center")
        radius = raw.get_float(40, 0.0)
        if not radius > 0:
            raise _Invalid(f"radius must be positive, got {radius}")
        center = _to_wcs(base["extrusion"], [center])[0]
        return ent.Circle(center=center, radius=radius, **base)

    def _arc(self, raw, base):
        center = _require(raw.get_point(10), "missing center")
        radius = raw.get_float(40, 0.0)
        if not radius > 0:
            raise _Invalid(f"radius must be positive, got {radius}")
        start = raw.get_float(50, 0.0)
        end = raw.get_float(51, 360.0)
        extrusion = base["extrusion"]
        if extrusion is not None:
            ocs = OCS(extrusion)
            center = _vec(ocs.to_wcs(center))
            start, end = _ocs_angle(ocs, start), _ocs_angle(ocs, end)
            if _ocs_mirrors(ocs):
                start, end = end, start
        return ent.Arc(center=center, radius=radius, start_angle=start, end_angle=end, **base)

    def _ellipse(self, raw, base):
        center = _require(raw.get_point(10), "missing center")
        major = _require(raw.get_point(11), "missing major axis")
        if math.hypot(major[0], major[1]) == 0:
            raise _Invalid("major axis has zero length")
        ratio = raw.get_float(40, 1.0)
        if not 0 < ratio <= 1:
            raise _Invalid(f"axis ratio must be in (0, 1], got {ratio}")
        return ent.Ellipse(
            center=center, major_axis=major, ratio=ratio,
            start_param=raw.get_float(41, 0.0), end_param=raw.get_float(42, math.tau),
            **base,
        )

    def _spline(self, raw, base):
        control = _sequential_points(raw, 10)
        fit = _sequential_points(raw, 11)
        if len(control) < 2 and len(fit) < 2:
            raise _Invalid("spline needs at least 2 control or fit points")
        degree = raw.get_int(71, 3)
        if degree < 1:
            raise _Invalid(f"spline degree must be at least 1, got {degree}")
        return ent.Spline(
            control_points=tuple(control), fit_points=tuple(fit), degree=degree,
            knots=tuple(float(v) for v in raw.get_all(40)),
            weights=tuple(float(v) for v in raw.get_all(41)),
            closed=bool(raw.get_int(70, 0) & 1), **base,
        )

    def _insert(self, raw, base):
        name = (raw.get(2) or "").strip()
        if not name:
            raise _Invalid("block reference without a block name")
        insert = raw.get_point(10, (0.0, 0.0, 0.0))
        scale = (raw.get_float(41, 1.0), raw.get_float(42, 1.0), raw.get_float(43, 1.0))
        if 0.0 in scale[:2]:
            raise _Invalid(f"degenerate scale {scale}")
        rotation = raw.get_float(50, 0.0)
        extrusion = base["extrusion"]
        if extrusion is not None:
            ocs = OCS(extrusion)
            insert = _vec(ocs.to_wcs(insert))
            rotation = _ocs_angle(ocs, rotation)
            if _ocs_mirrors(ocs):
                scale = (-scale[0], scale[1], scale[2])
                rotation = (rotation + 180.0) % 360.0
        return ent.Insert(
            name=name, insert=insert, rotation=rotation, scale=scale,
            column_count=max(raw.get_int(70, 1), 1), row_count=max(raw.get_int(71, 1), 1),
            column_spacing=raw.get_float(44, 0.0), row_spacing=raw.get_float(45, 0.0),
            **base,
        )

    def _text(self, raw, base):
        text = raw.get(1)
        if not text:
            raise _Invalid("text without content")
        insert = _require(raw.get_point(10), "missing insertion point")
        if raw.get_int(72, 0) or raw.get_int(73, 0):
            insert = raw.get_point(11, insert)
        rotation = raw.get_float(50, 0.0)
        extrusion = base["extrusion"]
        if extrusion is not None:
            ocs = OCS(extrusion)
            insert = _vec(ocs.to_wcs(insert))
            rotation = _ocs_angle(ocs, rotation)
        return ent.Text(
            kind="TEXT", insert=insert, text=text,
            height=raw.get_float(40, 1.0), rotation=rotation, **base,
        )

    def _mtext(self, raw, base):
        content = "".join(raw.get_all(3)) + (raw.get(1) or "")
        text = plain_mtext(content).strip()
        if not text:
            raise _Invalid("text without content")
        insert = _require(raw.get_point(10), "missing insertion point")
        direction = raw.get_point(11)
        if direction is not None and (direction[0] or direction[1]):
            rotation = math.degrees(math.atan2(direction[1], direction[0]))
        else:
            rotation = raw.get_float(50, 0.0)
        return ent.Text(
            kind="MTEXT", insert=insert, text=text,
            height=raw.get_float(40, 1.0), rotation=rotation, **base,
        )

    def _hatch(self, raw, base):
        loops = [loop for loop in _hatch_loops(raw.tags) if len(loop) >= 3]
        if not loops:
            raise _Invalid("hatch has no usable boundary loop")
        elevation = raw.get_float(30, 0.0)
        loops = [
            tuple(_to_wcs(base["extrusion"], [(x, y, elevation) for x, y, _ in loop]))
            for loop in loops
        ]
        return ent.Hatch(
            loops=tuple(loops), pattern=raw.get(2) or "",
            solid_fill=raw.get_int(70, 0) == 1, **base,
        )

    def _solid(self, raw, base):
        corners = [raw.get_point(code) for code in (10, 11, 13, 12)]
        return self._corners(raw, base, corners)

    def _face(self, raw, base):
        corners = [raw.get_point(code) for code in (10, 11, 12, 13)]
        return self._corners(raw, base, corners)

    def _corners(self, raw, base, corners):
        unique = []
        for corner in corners:
            if corner is not None and corner not in unique:
                unique.append(corner)
        if len(unique) < 3:
            raise _Invalid(f"needs at least 3 distinct corners, got {len(unique)}")
        if raw.kind != "3DFACE":
            unique = _to_wcs(base["extrusion"], unique)
        return ent.Solid(kind=raw.kind, corners=tuple(unique), **base)

    def _solid3d(self, raw, base):
        return ent.Solid3D(kind=raw.kind, **base)

    def _dimension(self, raw, base):
        measured = [raw.get_point(code) for code in (13, 14)]
        if all(measured):
            defpoints = tuple(measured)
        else:
            defpoints = tuple(p for p in (raw.get_point(10), raw.get_point(15)) if p is not None)
        midpoint = raw.get_point(11)
        if not defpoints and midpoint is None:
            raise _Invalid("dimension without definition points")
        return ent.Dimension(
            defpoints=defpoints, text_midpoint=midpoint, text=raw.get(1) or "", **base,
        )

    def _leader(self, raw, base):
        vertices = _sequential_points(raw, 10)
        if len(vertices) < 2:
            raise _Invalid(f"leader needs at least 2 vertices, got {len(vertices)}")
        kind = "LEADER" if raw.kind == "LEADER" else "MLEADER"
        return ent.Leader(kind=kind, vertices=tuple(vertices), **base)

    def _ray(self, raw, base):
        start = _require(raw.get_point(10), "missing start point")
        direction = _require(raw.get_point(11), "missing direction")
        if not any(direction):
            raise _Invalid("direction vector has zero length")
        return ent.Ray(kind=raw.kind, start=start, direction=direction, **base)


def _require(value, message):
    if value is None:
        raise _Invalid(message)
    return value


def _vec(v):
    return (v.x, v.y, v.z)


def _is_default_extrusion(extrusion):
    return all(math.isclose(a, b, abs_tol=1e-12) for a, b in zip(extrusion, Z_AXIS))


def _to_wcs(extrusion, points):
    """Map OCS points to WCS; a default extrusion leaves them untouched."""
    if extrusion is None:
        return list(points)
    ocs = OCS(extrusion)
    return [_vec(ocs.to_wcs(p)) for p in points]


def _ocs_angle(ocs, degrees):
    return ocs.to_wcs(Vec3.from_deg_angle(degrees)).angle_deg % 360.0


def _ocs_mirrors(ocs):
    ux, uy = ocs.to_wcs(Vec3(1, 0, 0)), ocs.to_wcs(Vec3(0, 1, 0))
    return ux.x * uy.y - ux.y * uy.x < 0


def _sequential_points(raw, code):
    """All points of one group code family, in file order."""
    points = []
    for tag in raw.tags:
        if tag.code == code:
            points.append([float(tag.value), 0.0, 0.0])
        elif tag.code == code + 10 and points:
            points[-1][1] = float(tag.value)
        elif tag.code == code + 20 and points:
            points[-1][2] = float(tag.value)
    return [tuple(p) for p in points]


def _hatch_loops(tags):
    """Boundary loops of a HATCH as lists of (x, y, 0) points."""
    codes = [tag.code for tag in tags]
    try:
        i = codes.index(91)
    except ValueError:
        return []
    path_count = int(tags[i].value)
    i += 1
    loops = []
    for _ in range(path_count):
        while i < len(tags) and tags[i].code != 92:
            i += 1
        if i >= len(tags):
            break
        flags = int(tags[i].value)
        i += 1
        end = i
        while end < len(tags) and tags[end].code not in (92, 97, 75):
            end += 1
        chunk = tags[i:end]
        if flags & 2:
            loops.append(_hatch_polyline(chunk))
        else:
            loops.append(_hatch_edges(chunk))
        i = end
    return loops


def _hatch_polyline(chunk):
    points = []
    x = None
    for tag in chunk:
        if tag.code == 10:
            x = float(tag.value)
        elif tag.code == 20 and x is not None:
            points.append((x, float(tag.value), 0.0))
            x = None
    return points


def _hatch_edges(chunk):
    edges = []
    for tag in chunk:
        if tag.code == 72:
            edges.append((int(tag.value), {}, []))
        elif edges:
            edges[-1][1].setdefault(tag.code, float(tag.value))
            edges[-1][2].append(tag)
    points = []
    for edge_type, values, edge_tags in edges:
        if edge_type == 1:
            segment = [(values[10], values[20], 0.0), (values[11], values[21], 0.0)]
        elif edge_type == 2:
            center = (values[10], values[20], 0.0)
            start, end = values.get(50, 0.0), values.get(51, 360.0)
            if values.get(73, 1):
                segment = arc_vertices(center, values[40], start, end, HATCH_EDGE_SEGMENTS)
            else:
                # clockwise edges store mirrored angles
                segment = arc_vertices(center, values[40], -end, -start, HATCH_EDGE_SEGMENTS)[::-1]
        elif edge_type == 3:
            start, end = math.radians(values.get(50, 0.0)), math.radians(values.get(51, 360.0))
            segment = ellipse_vertices(
                (values[10], values[20], 0.0), (values[11], values[21], 0.0),
                values.get(40, 1.0), start, end, HATCH_EDGE_SEGMENTS,
            )
        else:
            segment = _sequential_points(_TagView(edge_tags), 10)
        if points and segment and points[-1][:2] == segment[0][:2]:
            segment = segment[1:]
        points.extend(segment)
    if len(points) > 1 and points[0][:2] == points[-1][:2]:
        points.pop()
    return points


class _TagView:
    def __init__(self, tags):
        self.tags = tags
