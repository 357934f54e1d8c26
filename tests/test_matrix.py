from __future__ import annotations

import pytest

from geoloader import matrix as mx


def test_compose_applies_rightmost_first() -> None:
    m = mx.compose(mx.translation(10.0, 0.0), mx.rotation_z(90.0), mx.scaling(2.0))

    assert mx.apply(m, (1.0, 0.0)) == pytest.approx((10.0, 2.0, 0.0))


def test_compose_without_matrices_is_identity() -> None:
    assert mx.apply(mx.compose(), (3.0, 4.0, 5.0)) == pytest.approx((3.0, 4.0, 5.0))


def test_block_transform_moves_base_point_to_insert_point() -> None:
    m = mx.block_transform((100.0, 50.0), rotation=0.0, scale=(1.0, 1.0, 1.0), base_point=(5.0, 5.0, 0.0))

    assert mx.apply(m, (5.0, 5.0)) == pytest.approx((100.0, 50.0, 0.0))
    assert mx.apply(m, (6.0, 5.0)) == pytest.approx((101.0, 50.0, 0.0))


def test_transform_angle_follows_rotation() -> None:
    assert mx.transform_angle(mx.rotation_z(90.0), 45.0) == pytest.approx(135.0)
    assert mx.transform_angle(mx.rotation_z(-90.0), 45.0) == pytest.approx(315.0)


def test_apply_direction_ignores_translation() -> None:
    m = mx.compose(mx.translation(50.0, 50.0), mx.rotation_z(90.0))

    assert mx.apply_direction(m, (1.0, 0.0, 0.0)) == pytest.approx((0.0, 1.0, 0.0))


def test_scale_properties() -> None:
    assert mx.scale_factor(mx.scaling(2.0)) == pytest.approx(2.0)
    assert mx.is_uniform(mx.scaling(3.0))
    assert not mx.is_uniform(mx.scaling(2.0, 3.0))


def test_mirroring_is_detected() -> None:
    assert mx.is_mirroring(mx.scaling(-1.0, 1.0))
    assert not mx.is_mirroring(mx.scaling(-1.0, -1.0))
    assert not mx.is_mirroring(mx.rotation_z(180.0))


def test_axis_lengths_of_a_rotated_frame() -> None:
    matrix = mx.scaling(2.0, 3.0)

    assert mx.axis_lengths(matrix) == pytest.approx((2.0, 3.0))
    assert mx.axis_lengths(matrix, 90.0) == pytest.approx((3.0, 2.0))
