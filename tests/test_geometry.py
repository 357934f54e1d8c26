from __future__ import annotations

import math

import pytest

from geoloader.crs import ReferenceSystem
from geoloader.entities import (
    Arc, Circle, Dimension, Ellipse, Hatch, Insert, Line, Polyline, Ray, Solid3D, Spline, Text,
)
from geoloader.features import LINESTRING, POINT, POLYGON
from geoloader.geometry import GeometryConverter, curve_segments


@pytest.mark.parametrize(
    "vertices",
    [
        [(0.0, 0.0), (10.0, 0.0), (5.0, 8.0)],
        [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)],
        [(3.0, 1.0), (7.0, 2.0), (9.0, 6.0), (4.0, 9.0), (1.0, 5.0)],
    ],
)
def test_closed_polyline_ring_is_closed(vertices) -> None:
    entity = Polyline(vertices=tuple((x, y, 0.0) for x, y in vertices), closed=True)

    geometry = GeometryConverter().to_geometry(entity)

    assert geometry.kind == POLYGON
    (ring,) = geometry.coordinates
    assert ring[0] == ring[-1]
    assert len(ring) == len(vertices) + 1


def test_open_polyline_is_linestring() -> None:
    entity = Polyline(vertices=((0.0, 0.0, 0.0), (1.0, 1.0, 0.0)))

    geometry = GeometryConverter().to_geometry(entity)

    assert geometry.kind == LINESTRING
    assert geometry.coordinates == [(0.0, 0.0), (1.0, 1.0)]


@pytest.mark.parametrize("bulge, middle_y", [(1.0, -1.0), (-1.0, 1.0)])
def test_bulge_segment_is_tessellated_on_the_right_side(bulge, middle_y) -> None:
    entity = Polyline(vertices=((0.0, 0.0, 0.0), (2.0, 0.0, 0.0)), bulges=(bulge, 0.0))

    points = GeometryConverter(segment_count=64).to_geometry(entity).coordinates

    assert points[0] == (0.0, 0.0)
    assert points[-1] == (2.0, 0.0)
    assert len(points) == 33
    assert points[16] == pytest.approx((1.0, middle_y))


def test_circle_becomes_closed_polygon() -> None:
    geometry = GeometryConverter(segment_count=32).to_geometry(Circle(center=(5.0, 5.0, 0.0), radius=2.0))

    (ring,) = geometry.coordinates
    assert geometry.kind == POLYGON
    assert len(ring) == 33
    assert ring[0] == ring[-1]
    assert all(math.hypot(x - 5.0, y - 5.0) == pytest.approx(2.0) for x, y in ring)


def test_arc_segments_follow_angular_span() -> None:
    arc = Arc(center=(0.0, 0.0, 0.0), radius=1.0, start_angle=0.0, end_angle=90.0)

    points = GeometryConverter(segment_count=64).to_geometry(arc).coordinates

    assert len(points) == 17
    assert points[0] == pytest.approx((1.0, 0.0))
    assert points[-1] == pytest.approx((0.0, 1.0))


def test_arc_across_zero_degrees() -> None:
    arc = Arc(center=(0.0, 0.0, 0.0), radius=1.0, start_angle=270.0, end_angle=90.0)

    points = GeometryConverter(segment_count=64).to_geometry(arc).coordinates

    assert len(points) == 33
    assert points[16] == pytest.approx((1.0, 0.0))


def test_curve_segments_has_a_minimum() -> None:
    assert curve_segments(0.01, 64) == 4
    assert curve_segments(math.tau, 64) == 64
    assert curve_segments(math.pi, 64) == 32


def test_full_ellipse_is_polygon_and_partial_is_line() -> None:
    converter = GeometryConverter(segment_count=16)
    full = Ellipse(center=(0.0, 0.0, 0.0), major_axis=(4.0, 0.0, 0.0), ratio=0.5)
    half = Ellipse(center=(0.0, 0.0, 0.0), major_axis=(4.0, 0.0, 0.0), ratio=0.5, start_param=0.0, end_param=math.pi)

    assert converter.to_geometry(full).kind == POLYGON
    line = converter.to_geometry(half)
    assert line.kind == LINESTRING
    assert line.coordinates[0] == pytest.approx((4.0, 0.0))
    assert line.coordinates[-1] == pytest.approx((-4.0, 0.0))
    assert max(y for _, y in line.coordinates) == pytest.approx(2.0)


def test_spline_is_linear_through_control_points_by_default() -> None:
    control = ((0.0, 0.0, 0.0), (1.0, 2.0, 0.0), (3.0, 2.0, 0.0), (4.0, 0.0, 0.0))

    geometry = GeometryConverter().to_geometry(Spline(control_points=control))

    assert geometry.coordinates == [(0.0, 0.0), (1.0, 2.0), (3.0, 2.0), (4.0, 0.0)]


def test_spline_prefers_fit_points() -> None:
    spline = Spline(
        control_points=((0.0, 0.0, 0.0), (1.0, 2.0, 0.0), (3.0, 2.0, 0.0), (4.0, 0.0, 0.0)),
        fit_points=((0.0, 0.0, 0.0), (2.0, 1.5, 0.0), (4.0, 0.0, 0.0)),
    )

    assert GeometryConverter().to_geometry(spline).coordinates == [(0.0, 0.0), (2.0, 1.5), (4.0, 0.0)]


def test_spline_curve_mode_evaluates_bspline() -> None:
    control = ((0.0, 0.0, 0.0), (1.0, 2.0, 0.0), (3.0, 2.0, 0.0), (4.0, 0.0, 0.0))

    geometry = GeometryConverter(segment_count=20, spline_mode="curve").to_geometry(Spline(control_points=control))

    assert len(geometry.coordinates) == 21
    assert geometry.coordinates[0] == pytest.approx((0.0, 0.0))
    assert geometry.coordinates[-1] == pytest.approx((4.0, 0.0))
    assert geometry.coordinates[10] == pytest.approx((2.0, 1.5))


def test_text_is_point() -> None:
    geometry = GeometryConverter().to_geometry(Text(insert=(3.0, 4.0, 0.0), text="A"))

    assert geometry.kind == POINT
    assert geometry.coordinates == (3.0, 4.0)


def test_dimension_uses_definition_points_or_text_midpoint() -> None:
    converter = GeometryConverter()
    measured = Dimension(defpoints=((0.0, 0.0, 0.0), (5.0, 0.0, 0.0)), text_midpoint=(2.5, 1.0, 0.0))
    label_only = Dimension(text_midpoint=(2.5, 1.0, 0.0))

    assert converter.to_geometry(measured).kind == LINESTRING
    assert converter.to_geometry(label_only).coordinates == (2.5, 1.0)


def test_hatch_boundary_becomes_polygon() -> None:
    hatch = Hatch(loops=(((0.0, 0.0, 0.0), (2.0, 0.0, 0.0), (2.0, 2.0, 0.0)),))

    (ring,) = GeometryConverter().to_geometry(hatch).coordinates

    assert ring == [(0.0, 0.0), (2.0, 0.0), (2.0, 2.0), (0.0, 0.0)]


def test_xline_extends_both_ways() -> None:
    xline = Ray(kind="XLINE", start=(0.0, 0.0, 0.0), direction=(2.0, 0.0, 0.0))

    geometry = GeometryConverter(ray_length=100.0).to_geometry(xline)

    assert geometry.coordinates == [(-100.0, 0.0), (100.0, 0.0)]


def test_unresolved_insert_is_rejected_with_error() -> None:
    converter = GeometryConverter()

    assert converter.to_geometry(Insert(name="DOOR", handle="1F")) is None
    (error,) = converter.errors
    assert error.handle == "1F"
    assert "unresolved block reference" in error.message


def test_solid3d_has_no_preview_geometry() -> None:
    converter = GeometryConverter()

    assert converter.to_geometry(Solid3D()) is None
    assert converter.skipped == {"3DSOLID": 1}
    assert not converter.errors


def test_non_finite_geometry_is_rejected() -> None:
    converter = GeometryConverter()

    assert converter.to_geometry(Line(start=(math.nan, 0.0, 0.0), end=(1.0, 1.0, 0.0))) is None
    assert "non-finite" in converter.errors[0].message


def test_degenerate_closed_polyline_is_rejected() -> None:
    converter = GeometryConverter()
    entity = Polyline(vertices=((0.0, 0.0, 0.0), (1.0, 0.0, 0.0)), closed=True)

    assert converter.to_geometry(entity) is None
    assert converter.errors


def test_transform_callable_is_applied_after_tessellation() -> None:
    geometry = GeometryConverter().to_geometry(
        Line(start=(0.0, 0.0, 0.0), end=(1.0, 0.0, 0.0)), transform=lambda p: (p[0] + 10.0, p[1] * 2.0)
    )

    assert geometry.coordinates == [(10.0, 0.0), (11.0, 0.0)]


def test_to_feature_records_layer_and_source_system() -> None:
    entity = Line(start=(0.0, 0.0, 0.0), end=(1.0, 0.0, 0.0), layer="ROADS", handle="A1", color=3)

    feature = GeometryConverter().to_feature(entity, ReferenceSystem.SWISS_LV95, feature_id="12")

    assert feature.geometry_kind == LINESTRING
    assert feature.properties == {
        "layer": "ROADS",
        "entity_kind": "LINE",
        "source_reference_system": "EPSG:2056",
        "id": "12",
        "handle": "A1",
        "color": 3,
    }
