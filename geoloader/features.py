"""Output model: features and bounds."""

import math
from dataclasses import dataclass, field, replace

POINT = "Point"
LINESTRING = "LineString"
POLYGON = "Polygon"
GEOMETRY_KINDS = (POINT, LINESTRING, POLYGON)


@dataclass(frozen=True)
class Bounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_points(cls, points):
        xs, ys = [], []
        for p in points:
            xs.append(p[0])
            ys.append(p[1])
        if not xs:
            return None
        return cls(min(xs), min(ys), max(xs), max(ys))

    @property
    def width(self):
        return self.max_x - self.min_x

    @property
    def height(self):
        return self.max_y - self.min_y

    @property
    def diagonal(self):
        return math.hypot(self.width, self.height)

    @property
    def center(self):
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def union(self, other):
        if other is None:
            return self
        return Bounds(
            min(self.min_x, other.min_x), min(self.min_y, other.min_y),
            max(self.max_x, other.max_x), max(self.max_y, other.max_y),
        )

    def padded(self, fraction):
        """Grow each side by ``fraction`` of the extent so edge features stay visible."""
        pad_x = self.width * fraction
        pad_y = self.height * fraction
        return Bounds(self.min_x - pad_x, self.min_y - pad_y, self.max_x + pad_x, self.max_y + pad_y)

    def corners(self):
        return [
            (self.min_x, self.min_y), (self.max_x, self.min_y),
            (self.max_x, self.max_y), (self.min_x, self.max_y),
        ]

    def to_list(self):
        return [self.min_x, self.min_y, self.max_x, self.max_y]


@dataclass(frozen=True)
class Feature:
    """
    A preview feature.

    ``coordinates`` follow GeoJSON nesting: one (x, y) pair for a Point,
    a list of pairs for a LineString and a list of rings for a Polygon.
    """

    geometry_kind: str
    coordinates: object
    properties: dict = field(default_factory=dict)

    @property
    def layer(self):
        return self.properties.get("layer", "0")

    @property
    def id(self):
        return self.properties.get("id")

    @property
    def warnings(self):
        return self.properties.get("warnings") or []

    @property
    def has_warnings(self):
        return bool(self.warnings)

    @property
    def source_reference_system(self):
        return self.properties.get("source_reference_system")

    def positions(self):
        """Every coordinate pair of the geometry, rings flattened."""
        if self.geometry_kind == POINT:
            return [self.coordinates]
        if self.geometry_kind == LINESTRING:
            return list(self.coordinates)
        return [p for ring in self.coordinates for p in ring]

    def bbox(self):
        return Bounds.from_points(self.positions())

    def with_positions(self, positions, **properties):
        """Copy with the flattened ``positions`` poured back into this geometry's shape."""
        positions = list(positions)
        if self.geometry_kind == POINT:
            coordinates = positions[0]
        elif self.geometry_kind == LINESTRING:
            coordinates = positions
        else:
            coordinates = []
            offset = 0
            for ring in self.coordinates:
                coordinates.append(positions[offset:offset + len(ring)])
                offset += len(ring)
        props = dict(self.properties)
        props.update(properties)
        return replace(self, coordinates=coordinates, properties=props)

    def with_warning(self, message):
        props = dict(self.properties)
        props["warnings"] = [*self.warnings, message]
        return replace(self, properties=props)

    def to_geojson(self):
        coordinates = self.coordinates
        if self.geometry_kind == POINT:
            coordinates = list(coordinates)
        elif self.geometry_kind == LINESTRING:
            coordinates = [list(p) for p in coordinates]
        else:
            coordinates = [[list(p) for p in ring] for ring in coordinates]
        return {
            "type": "Feature",
            "geometry": {"type": self.geometry_kind, "coordinates": coordinates},
            "properties": dict(self.properties),
        }


def features_bounds(features):
    """Union of the feature bounding boxes, or None for no coordinates."""
    bounds = None
    for feature in features:
        box = feature.bbox()
        if box is not None:
            bounds = box if bounds is None else bounds.union(box)
    return bounds


def feature_collection(features):
    return {"type": "FeatureCollection", "features": [f.to_geojson() for f in features]}
