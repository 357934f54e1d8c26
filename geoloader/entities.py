"""
Typed drawing model.

Each DXF entity kind handled by the importer maps to one frozen dataclass.
``transformed(matrix)`` returns a new entity placed by ``matrix``; the
original is never modified.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import ClassVar

from . import matrix as mx

Point3 = tuple[float, float, float]
DEFAULT_LAYER = "0"


@dataclass(frozen=True, kw_only=True)
class Entity:
    kind: str
    layer: str = DEFAULT_LAYER
    handle: str | None = None
    color: int | None = None
    line_type: str | None = None
    line_weight: int | None = None
    extrusion: Point3 | None = None

    geometry_free: ClassVar[bool] = False

    def __post_init__(self):
        if not self.layer:
            object.__setattr__(self, "layer", DEFAULT_LAYER)

    def points(self) -> list[Point3]:
        """Characteristic points, used for sampling and bounds."""
        return []

    def transformed(self, matrix) -> "Entity":
        raise NotImplementedError(f"{type(self).__name__} cannot be transformed")


@dataclass(frozen=True, kw_only=True)
class PointEntity(Entity):
    kind: str = "POINT"
    location: Point3

    def points(self):
        return [self.location]

    def transformed(self, matrix):
        return replace(self, location=mx.apply(matrix, self.location))


@dataclass(frozen=True, kw_only=True)
class Line(Entity):
    kind: str = "LINE"
    start: Point3
    end: Point3

    def points(self):
        return [self.start, self.end]

    def transformed(self, matrix):
        return replace(self, start=mx.apply(matrix, self.start), end=mx.apply(matrix, self.end))


@dataclass(frozen=True, kw_only=True)
class Polyline(Entity):
    kind: str = "LWPOLYLINE"
    vertices: tuple[Point3, ...]
    closed: bool = False
    # bulge of the segment starting at the vertex with the same index
    bulges: tuple[float, ...] = ()

    def points(self):
        return list(self.vertices)

    def transformed(self, matrix):
        bulges = self.bulges
        if bulges and mx.is_mirroring(matrix):
            bulges = tuple(-b for b in bulges)
        return replace(self, vertices=mx.apply_all(matrix, self.vertices), bulges=bulges)


@dataclass(frozen=True, kw_only=True)
class Circle(Entity):
    kind: str = "CIRCLE"
    center: Point3
    radius: float

    def points(self):
        return [self.center]

    def transformed(self, matrix):
        center = mx.apply(matrix, self.center)
        if mx.is_uniform(matrix):
            return replace(self, center=center, radius=self.radius * mx.scale_factor(matrix))
        major, ratio, _ = _scaled_axes(matrix, self.radius)
        return Ellipse(
            center=center, major_axis=major, ratio=ratio,
            start_param=0.0, end_param=math.tau, **_base_fields(self, kind="ELLIPSE"),
        )


@dataclass(frozen=True, kw_only=True)
class Arc(Entity):
    kind: str = "ARC"
    center: Point3
    radius: float
    start_angle: float  # degrees, counter-clockwise
    end_angle: float

    def points(self):
        return [self.center]

    def transformed(self, matrix):
        center = mx.apply(matrix, self.center)
        if not mx.is_uniform(matrix):
            major, ratio, shift = _scaled_axes(matrix, self.radius)
            start = math.radians(self.start_angle) - shift
            end = math.radians(self.end_angle) - shift
            if mx.is_mirroring(matrix):
                start, end = -end, -start
            return Ellipse(
                center=center, major_axis=major, ratio=ratio,
                start_param=start, end_param=end, **_base_fields(self, kind="ELLIPSE"),
            )
        start = mx.transform_angle(matrix, self.start_angle)
        end = mx.transform_angle(matrix, self.end_angle)
        if mx.is_mirroring(matrix):
            start, end = end, start
        return replace(
            self, center=center, radius=self.radius * mx.scale_factor(matrix),
            start_angle=start, end_angle=end,
        )


@dataclass(frozen=True, kw_only=True)
class Ellipse(Entity):
    kind: str = "ELLIPSE"
    center: Point3
    major_axis: Point3  # relative to center
    ratio: float
    start_param: float = 0.0  # radians
    end_param: float = math.tau

    def points(self):
        return [self.center]

    @property
    def is_full(self):
        span = abs(self.end_param - self.start_param)
        return math.isclose(span, math.tau, abs_tol=1e-9) or span > math.tau

    def transformed(self, matrix):
        center = mx.apply(matrix, self.center)
        major = mx.apply_direction(matrix, self.major_axis)
        length = math.hypot(self.major_axis[0], self.major_axis[1])
        minor_dir = (-self.major_axis[1] / length, self.major_axis[0] / length, 0.0)
        minor = mx.apply_direction(matrix, tuple(c * length * self.ratio for c in minor_dir))
        major_len = math.hypot(major[0], major[1])
        minor_len = math.hypot(minor[0], minor[1])
        start, end = self.start_param, self.end_param
        if minor_len > major_len:
            major, major_len, minor_len = minor, minor_len, major_len
            start, end = start - math.pi / 2, end - math.pi / 2
        if mx.is_mirroring(matrix):
            start, end = -end, -start
        return replace(
            self, center=center, major_axis=major,
            ratio=minor_len / major_len if major_len else 0.0,
            start_param=start, end_param=end,
        )


@dataclass(frozen=True, kw_only=True)
class Spline(Entity):
    kind: str = "SPLINE"
    control_points: tuple[Point3, ...] = ()
    fit_points: tuple[Point3, ...] = ()
    degree: int = 3
    knots: tuple[float, ...] = ()
    weights: tuple[float, ...] = ()
    closed: bool = False

    def points(self):
        return list(self.control_points or self.fit_points)

    def transformed(self, matrix):
        return replace(
            self,
            control_points=mx.apply_all(matrix, self.control_points),
            fit_points=mx.apply_all(matrix, self.fit_points),
        )


@dataclass(frozen=True, kw_only=True)
class Insert(Entity):
    kind: str = "INSERT"
    name: str
    insert: Point3 = (0.0, 0.0, 0.0)
    rotation: float = 0.0  # degrees
    scale: Point3 = (1.0, 1.0, 1.0)
    row_count: int = 1
    column_count: int = 1
    row_spacing: float = 0.0
    column_spacing: float = 0.0

    def points(self):
        return [self.insert]

    @property
    def is_array(self):
        return self.row_count > 1 or self.column_count > 1

    def transformed(self, matrix):
        sx, sy = mx.axis_lengths(matrix, self.rotation)
        return replace(
            self,
            insert=mx.apply(matrix, self.insert),
            rotation=mx.transform_angle(matrix, self.rotation),
            scale=(self.scale[0] * sx, self.scale[1] * sy, self.scale[2] * mx.scale_factor(matrix)),
        )


@dataclass(frozen=True, kw_only=True)
class Text(Entity):
    kind: str = "TEXT"
    insert: Point3
    text: str
    height: float = 1.0
    rotation: float = 0.0  # degrees

    def points(self):
        return [self.insert]

    def transformed(self, matrix):
        return replace(
            self,
            insert=mx.apply(matrix, self.insert),
            height=self.height * mx.scale_factor(matrix),
            rotation=mx.transform_angle(matrix, self.rotation),
        )


@dataclass(frozen=True, kw_only=True)
class Hatch(Entity):
    kind: str = "HATCH"
    loops: tuple[tuple[Point3, ...], ...]
    pattern: str = ""
    solid_fill: bool = False

    def points(self):
        return [p for loop in self.loops for p in loop]

    def transformed(self, matrix):
        return replace(self, loops=tuple(mx.apply_all(matrix, loop) for loop in self.loops))


@dataclass(frozen=True, kw_only=True)
class Solid(Entity):
    """SOLID, TRACE and 3DFACE: up to four corner points."""

    kind: str = "SOLID"
    corners: tuple[Point3, ...]

    def points(self):
        return list(self.corners)

    def transformed(self, matrix):
        return replace(self, corners=mx.apply_all(matrix, self.corners))


@dataclass(frozen=True, kw_only=True)
class Solid3D(Entity):
    """3DSOLID, BODY and REGION; the ACIS payload is not decoded."""

    kind: str = "3DSOLID"

    geometry_free: ClassVar[bool] = True

    def transformed(self, matrix):
        return self


@dataclass(frozen=True, kw_only=True)
class Dimension(Entity):
    kind: str = "DIMENSION"
    defpoints: tuple[Point3, ...] = ()
    text_midpoint: Point3 | None = None
    text: str = ""

    def points(self):
        points = list(self.defpoints)
        if self.text_midpoint is not None:
            points.append(self.text_midpoint)
        return points

    def transformed(self, matrix):
        midpoint = self.text_midpoint
        return replace(
            self,
            defpoints=mx.apply_all(matrix, self.defpoints),
            text_midpoint=mx.apply(matrix, midpoint) if midpoint is not None else None,
        )


@dataclass(frozen=True, kw_only=True)
class Leader(Entity):
    kind: str = "LEADER"
    vertices: tuple[Point3, ...]

    def points(self):
        return list(self.vertices)

    def transformed(self, matrix):
        return replace(self, vertices=mx.apply_all(matrix, self.vertices))


@dataclass(frozen=True, kw_only=True)
class Ray(Entity):
    """RAY (half-infinite) and XLINE (infinite in both directions)."""

    kind: str = "RAY"
    start: Point3
    direction: Point3 = (1.0, 0.0, 0.0)

    def points(self):
        return [self.start]

    def transformed(self, matrix):
        return replace(
            self, start=mx.apply(matrix, self.start),
            direction=mx.apply_direction(matrix, self.direction),
        )


@dataclass(frozen=True)
class LayerInfo:
    name: str
    color: int = 7
    line_type: str = "CONTINUOUS"
    line_weight: int = -3
    frozen: bool = False
    locked: bool = False
    off: bool = False


@dataclass(frozen=True)
class Block:
    name: str
    base_point: Point3 = (0.0, 0.0, 0.0)
    entities: tuple[Entity, ...] = ()
    layer: str = DEFAULT_LAYER


@dataclass(frozen=True)
class Drawing:
    header: dict = field(default_factory=dict)
    layers: dict = field(default_factory=dict)
    blocks: dict = field(default_factory=dict)
    entities: tuple[Entity, ...] = ()

    def __post_init__(self):
        if DEFAULT_LAYER not in self.layers:
            layers = {DEFAULT_LAYER: LayerInfo(DEFAULT_LAYER), **self.layers}
            object.__setattr__(self, "layers", layers)

    def layer(self, name):
        return self.layers.get(name) or self.layers[DEFAULT_LAYER]

    def block(self, name):
        return self.blocks.get(name)


def _base_fields(entity, **overrides):
    fields = dict(
        layer=entity.layer, handle=entity.handle, color=entity.color,
        line_type=entity.line_type, line_weight=entity.line_weight,
        extrusion=entity.extrusion,
    )
    fields.update(overrides)
    return fields


def _scaled_axes(matrix, radius):
    """Major axis vector, axis ratio and parameter shift of a circle under ``matrix``."""
    ux = mx.apply_direction(matrix, (radius, 0.0, 0.0))
    uy = mx.apply_direction(matrix, (0.0, radius, 0.0))
    lx = math.hypot(ux[0], ux[1])
    ly = math.hypot(uy[0], uy[1])
    if lx >= ly:
        return ux, (ly / lx if lx else 0.0), 0.0
    return uy, lx / ly, math.pi / 2
