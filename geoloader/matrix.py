"""
Affine transform helpers for block expansion.

Matrices are ezdxf ``Matrix44`` objects. Every helper returns a new
matrix; nothing here mutates its arguments. ``compose`` reads like
mathematical notation: the right-most matrix is applied first, so
``compose(translation(p), rotation_z(a), scaling(s))`` scales, then rotates,
then translates.
"""

import math

from ezdxf.math import Matrix44, Vec3, X_AXIS, Y_AXIS

AffineMatrix = Matrix44


def identity():
    return Matrix44()


def translation(x, y, z=0.0):
    return Matrix44.translate(x, y, z)


def rotation_z(degrees):
    return Matrix44.z_rotate(math.radians(degrees))


def scaling(x, y=None, z=None):
    y = x if y is None else y
    z = x if z is None else z
    return Matrix44.scale(x, y, z)


def compose(*matrices):
    """Product of ``matrices``; the last one is applied to points first."""
    if not matrices:
        return identity()
    # Matrix44.chain applies its first argument first
    return Matrix44.chain(*reversed(matrices))


def apply(matrix, point):
    """Transform a 2D or 3D point, returning an (x, y, z) tuple."""
    v = matrix.transform(Vec3(point))
    return (v.x, v.y, v.z)


def apply_all(matrix, points):
    return tuple(apply(matrix, p) for p in points)


def apply_direction(matrix, vector):
    """Transform a direction vector (translation ignored)."""
    v = matrix.transform_direction(Vec3(vector))
    return (v.x, v.y, v.z)


def transform_angle(matrix, degrees):
    """Angle in degrees after applying the rotation/mirroring part of ``matrix``."""
    direction = matrix.transform_direction(Vec3.from_deg_angle(degrees))
    if direction.is_null:
        return degrees % 360.0
    return direction.angle_deg % 360.0


def axis_lengths(matrix, degrees=None):
    """
    Lengths of the transformed unit x and y axes.

    With ``degrees`` the axes are those of a frame rotated by that angle,
    as for a nested insert.
    """
    if degrees is None:
        x_axis, y_axis = X_AXIS, Y_AXIS
    else:
        x_axis, y_axis = Vec3.from_deg_angle(degrees), Vec3.from_deg_angle(degrees + 90.0)
    return (
        matrix.transform_direction(x_axis).magnitude,
        matrix.transform_direction(y_axis).magnitude,
    )


def scale_factor(matrix):
    sx, sy = axis_lengths(matrix)
    return (sx + sy) / 2.0


def is_uniform(matrix, rel_tol=1e-9):
    sx, sy = axis_lengths(matrix)
    return math.isclose(sx, sy, rel_tol=rel_tol)


def is_mirroring(matrix):
    """True when the xy-plane orientation is flipped."""
    ux = matrix.transform_direction(X_AXIS)
    uy = matrix.transform_direction(Y_AXIS)
    return ux.x * uy.y - ux.y * uy.x < 0


def block_transform(insert_point, rotation=0.0, scale=(1.0, 1.0, 1.0), base_point=(0.0, 0.0, 0.0)):
    """Matrix placing block content: shift by -base, scale, rotate, translate to insert."""
    bx, by, bz = _xyz(base_point)
    ix, iy, iz = _xyz(insert_point)
    sx, sy, sz = _xyz(scale, default=1.0)
    return compose(
        translation(ix, iy, iz),
        rotation_z(rotation or 0.0),
        scaling(sx, sy, sz),
        translation(-bx, -by, -bz),
    )


def _xyz(values, default=0.0):
    values = tuple(values)
    return tuple(values[i] if i < len(values) else default for i in range(3))
