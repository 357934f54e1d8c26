"""
Typed entities to preview geometry.

Curves are tessellated with a segment count proportional to their angular
span; a full circle uses ``segment_count`` segments. Every produced line
and ring is checked for its minimum point count before it is returned.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass

from ezdxf.lldxf.const import DXFError
from ezdxf.math import BSpline, bulge_to_arc

from .config import DEFAULT_SEGMENT_COUNT
from .errors import ValidationError
from .features import Feature, LINESTRING, POINT, POLYGON

logger = logging.getLogger(__name__)

MIN_CURVE_SEGMENTS = 4
DEFAULT_RAY_LENGTH = 1000.0


@dataclass(frozen=True)
class Geometry:
    kind: str
    coordinates: object


def curve_segments(span_radians, segment_count=DEFAULT_SEGMENT_COUNT):
    """Segments for a curve covering ``span_radians`` of a full turn."""
    share = min(abs(span_radians) / math.tau, 1.0)
    return max(MIN_CURVE_SEGMENTS, math.ceil(segment_count * share))


def arc_vertices(center, radius, start_angle, end_angle, segments):
    """Points of a counter-clockwise arc between two angles in degrees."""
    start = math.radians(start_angle)
    span = math.radians(end_angle - start_angle) % math.tau
    if math.isclose(span, 0.0, abs_tol=1e-12):
        span = math.tau
    cx, cy = center[0], center[1]
    return [
        (cx + radius * math.cos(start + span * i / segments),
         cy + radius * math.sin(start + span * i / segments), 0.0)
        for i in range(segments + 1)
    ]


def ellipse_vertices(center, major_axis, ratio, start_param, end_param, segments):
    """Points of an ellipse arc; parameters in radians, major axis relative to center."""
    mx_, my_ = major_axis[0], major_axis[1]
    # minor axis is the major axis turned 90 degrees, scaled by ratio
    nx, ny = -my_ * ratio, mx_ * ratio
    span = (end_param - start_param) % math.tau
    if math.isclose(span, 0.0, abs_tol=1e-12):
        span = math.tau
    points = []
    for i in range(segments + 1):
        t = start_param + span * i / segments
        c, s = math.cos(t), math.sin(t)
        points.append((center[0] + c * mx_ + s * nx, center[1] + c * my_ + s * ny, 0.0))
    return points


class GeometryConverter:
    """Turns typed entities into Geometry and Feature objects."""

    def __init__(self, segment_count=DEFAULT_SEGMENT_COUNT, spline_mode="linear",
                 ray_length=DEFAULT_RAY_LENGTH):
        self.segment_count = segment_count
        self.spline_mode = spline_mode
        self.ray_length = ray_length
        self.errors = []
        self.skipped = Counter()
        self._handlers = {
            "POINT": self._point,
            "LINE": self._line,
            "LWPOLYLINE": self._polyline,
            "POLYLINE": self._polyline,
            "CIRCLE": self._circle,
            "ARC": self._arc,
            "ELLIPSE": self._ellipse,
            "SPLINE": self._spline,
            "TEXT": self._text,
            "MTEXT": self._text,
            "HATCH": self._hatch,
            "SOLID": self._solid,
            "TRACE": self._solid,
            "3DFACE": self._solid,
            "DIMENSION": self._dimension,
            "LEADER": self._leader,
            "MLEADER": self._leader,
            "RAY": self._ray,
            "XLINE": self._ray,
            "INSERT": self._insert,
        }

    def to_geometry(self, entity, transform=None):
        """
        Geometry for ``entity`` or None.

        ``transform`` is an optional callable mapping an (x, y) pair to a new
        pair, applied after tessellation.
        """
        if entity.geometry_free:
            self.skipped[entity.kind] += 1
            return None
        handler = self._handlers.get(entity.kind)
        if handler is None:
            self.skipped[entity.kind] += 1
            return None
        geometry = handler(entity)
        if geometry is None:
            return None
        if transform is not None:
            geometry = _map_geometry(geometry, transform)
        return self._validated(entity, geometry)

    def to_feature(self, entity, source_system=None, feature_id=None):
        geometry = self.to_geometry(entity)
        if geometry is None:
            return None
        properties = {
            "layer": entity.layer,
            "entity_kind": entity.kind,
            "source_reference_system": getattr(source_system, "identifier", source_system),
        }
        if feature_id is not None:
            properties["id"] = feature_id
        if entity.handle:
            properties["handle"] = entity.handle
        if entity.color is not None:
            properties["color"] = entity.color
        text = getattr(entity, "text", None)
        if text:
            properties["text"] = text
        return Feature(geometry.kind, geometry.coordinates, properties)

    def convert_all(self, entities, source_system=None, start_id=0):
        features = []
        for index, entity in enumerate(entities, start=start_id):
            feature = self.to_feature(entity, source_system, feature_id=str(index))
            if feature is not None:
                features.append(feature)
        return features

    def _error(self, entity, message):
        self.errors.append(ValidationError(entity.kind, entity.handle, message))
        return None

    def _validated(self, entity, geometry):
        positions = _positions(geometry)
        if not all(math.isfinite(v) for p in positions for v in p):
            return self._error(entity, "geometry has non-finite coordinates")
        if geometry.kind == LINESTRING and len(geometry.coordinates) < 2:
            return self._error(entity, "line needs at least 2 points")
        if geometry.kind == POLYGON:
            for ring in geometry.coordinates:
                if len(ring) < 4 or ring[0] != ring[-1]:
                    return self._error(entity, "polygon ring needs at least 4 points and must be closed")
        return geometry

    # handlers

    def _point(self, entity):
        return Geometry(POINT, _xy(entity.location))

    def _line(self, entity):
        return Geometry(LINESTRING, [_xy(entity.start), _xy(entity.end)])

    def _polyline(self, entity):
        vertices = list(entity.vertices)
        bulges = list(entity.bulges) + [0.0] * (len(vertices) - len(entity.bulges))
        count = len(vertices) if entity.closed else len(vertices) - 1
        points = [_xy(vertices[0])]
        for i in range(count):
            start, end = vertices[i], vertices[(i + 1) % len(vertices)]
            bulge = bulges[i]
            if bulge and _xy(start) != _xy(end):
                points.extend(self._bulge_points(start, end, bulge)[1:])
            else:
                points.append(_xy(end))
        if entity.closed:
            points[-1] = points[0]
            if len(points) < 4:
                return self._error(entity, "closed polyline needs at least 3 vertices")
            return Geometry(POLYGON, [points])
        return Geometry(LINESTRING, points)

    def _bulge_points(self, start, end, bulge):
        center, start_angle, end_angle, radius = bulge_to_arc(start[:2], end[:2], bulge)
        segments = curve_segments(4 * math.atan(abs(bulge)), self.segment_count)
        points = [
            (x, y) for x, y, _ in arc_vertices(
                (center.x, center.y), radius,
                math.degrees(start_angle), math.degrees(end_angle), segments,
            )
        ]
        if bulge < 0:
            # bulge_to_arc returns negative bulges as the counter-clockwise arc from end to start
            points.reverse()
        points[0], points[-1] = _xy(start), _xy(end)
        return points

    def _circle(self, entity):
        ring = [(x, y) for x, y, _ in arc_vertices(entity.center, entity.radius, 0.0, 360.0, self.segment_count)]
        ring[-1] = ring[0]
        return Geometry(POLYGON, [ring])

    def _arc(self, entity):
        span = math.radians((entity.end_angle - entity.start_angle) % 360.0 or 360.0)
        segments = curve_segments(span, self.segment_count)
        points = arc_vertices(entity.center, entity.radius, entity.start_angle, entity.end_angle, segments)
        return Geometry(LINESTRING, [_xy(p) for p in points])

    def _ellipse(self, entity):
        if entity.is_full:
            points = ellipse_vertices(
                entity.center, entity.major_axis, entity.ratio, 0.0, math.tau, self.segment_count
            )
            ring = [_xy(p) for p in points]
            ring[-1] = ring[0]
            return Geometry(POLYGON, [ring])
        span = (entity.end_param - entity.start_param) % math.tau
        points = ellipse_vertices(
            entity.center, entity.major_axis, entity.ratio,
            entity.start_param, entity.end_param, curve_segments(span, self.segment_count),
        )
        return Geometry(LINESTRING, [_xy(p) for p in points])

    def _spline(self, entity):
        points = None
        if self.spline_mode == "curve" and len(entity.control_points) > entity.degree:
            try:
                spline = BSpline(
                    entity.control_points,
                    order=entity.degree + 1,
                    knots=entity.knots or None,
                    weights=entity.weights or None,
                )
                points = [_xy(v) for v in spline.approximate(self.segment_count)]
            except (DXFError, ValueError, ZeroDivisionError) as exc:
                logger.warning("spline %s evaluated as polyline: %s", entity.handle, exc)
        if points is None:
            points = [_xy(p) for p in (entity.fit_points or entity.control_points)]
        if entity.closed and points and points[0] != points[-1]:
            points.append(points[0])
        return Geometry(LINESTRING, points)

    def _text(self, entity):
        return Geometry(POINT, _xy(entity.insert))

    def _hatch(self, entity):
        ring = [_xy(p) for p in entity.loops[0]]
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        return Geometry(POLYGON, [ring])

    def _solid(self, entity):
        ring = [_xy(p) for p in entity.corners]
        ring.append(ring[0])
        return Geometry(POLYGON, [ring])

    def _dimension(self, entity):
        if len(entity.defpoints) >= 2:
            return Geometry(LINESTRING, [_xy(p) for p in entity.defpoints])
        anchor = entity.text_midpoint if entity.text_midpoint is not None else entity.defpoints[0]
        return Geometry(POINT, _xy(anchor))

    def _leader(self, entity):
        return Geometry(LINESTRING, [_xy(p) for p in entity.vertices])

    def _ray(self, entity):
        dx, dy = entity.direction[0], entity.direction[1]
        length = math.hypot(dx, dy)
        if length == 0:
            return self._error(entity, "direction is perpendicular to the drawing plane")
        dx, dy = dx / length * self.ray_length, dy / length * self.ray_length
        sx, sy = _xy(entity.start)
        start = (sx - dx, sy - dy) if entity.kind == "XLINE" else (sx, sy)
        return Geometry(LINESTRING, [start, (sx + dx, sy + dy)])

    def _insert(self, entity):
        return self._error(entity, f"unresolved block reference {entity.name!r}")


def _xy(point):
    return (float(point[0]), float(point[1]))


def _positions(geometry):
    if geometry.kind == POINT:
        return [geometry.coordinates]
    if geometry.kind == LINESTRING:
        return list(geometry.coordinates)
    return [p for ring in geometry.coordinates for p in ring]


def _map_geometry(geometry, transform):
    if geometry.kind == POINT:
        return Geometry(POINT, tuple(transform(geometry.coordinates)))
    if geometry.kind == LINESTRING:
        return Geometry(LINESTRING, [tuple(transform(p)) for p in geometry.coordinates])
    return Geometry(POLYGON, [[tuple(transform(p)) for p in ring] for ring in geometry.coordinates])
