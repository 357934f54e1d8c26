"""
Coordinate transformation between registered reference systems.

Projection math is delegated to pyproj. This module owns the rest:

* axis order. Every point inside the importer is (x, y) with x the
  easting or longitude. ``reconcile_axes`` is the single place that maps
  other orders (authority order, swapped Swiss pairs) onto that, and pyproj
  transformers are always built with ``always_xy=True``;
* validation of every input and output coordinate;
* a per-point attempt cap and the batch failure-ratio rule.

Failures come back as TransformationError values, never as exceptions,
except for a batch where more than half of the points fail.
"""

import logging
import math
from dataclasses import dataclass, field

from pyproj.exceptions import ProjError

from .config import DEFAULT_MAX_TRANSFORM_ATTEMPTS
from .crs import ReferenceSystem
from .errors import BatchTransformationError, TransformationError, UnknownReferenceSystemError
from .features import Bounds

logger = logging.getLogger(__name__)

MAX_FAILURE_RATIO = 0.5
AXIS_ORDERS = ("xy", "authority", "swapped")


@dataclass
class BatchResult:
    features: list
    errors: list = field(default_factory=list)
    failed_points: int = 0
    total_points: int = 0

    @property
    def failure_ratio(self):
        return self.failed_points / self.total_points if self.total_points else 0.0


def reconcile_axes(point, definition, axis_order="xy"):
    """
    Return ``point`` as (x, y) = (easting or longitude, northing or latitude).

    ``axis_order`` names how ``point`` is stored: ``"xy"`` is already
    canonical, ``"swapped"`` is northing/latitude first, and
    ``"authority"`` follows the EPSG definition of the system (latitude
    first for WGS84, easting first for the Swiss grids).
    """
    if axis_order not in AXIS_ORDERS:
        raise ValueError(f"unknown axis order {axis_order!r}")
    x, y = point[0], point[1]
    if axis_order == "swapped":
        return (y, x)
    if axis_order == "authority" and definition is not None and definition.authority_axis_order == "ne":
        return (y, x)
    return (x, y)


class CoordinateTransformer:
    def __init__(self, registry, max_attempts=DEFAULT_MAX_TRANSFORM_ATTEMPTS,
                 max_failure_ratio=MAX_FAILURE_RATIO):
        self.registry = registry
        self.max_attempts = max_attempts
        self.max_failure_ratio = max_failure_ratio

    def transform(self, point, source, target, axis_order="xy", feature_id=None, layer=None):
        """Transform one point; returns an (x, y) tuple or a TransformationError."""
        source, target = ReferenceSystem.parse(source), ReferenceSystem.parse(target)
        original = tuple(point)

        def failure(message):
            return TransformationError(original, message, feature_id, layer)

        try:
            x, y = reconcile_axes(point, self._definition(source), axis_order)
            x, y = float(x), float(y)
        except (TypeError, ValueError, IndexError) as exc:
            return failure(f"invalid coordinate: {exc}")
        except UnknownReferenceSystemError as exc:
            return failure(str(exc))
        if not (math.isfinite(x) and math.isfinite(y)):
            return failure("coordinate is not finite")
        if source is ReferenceSystem.WGS84 and not _in_wgs84_range(x, y):
            return failure("coordinate outside WGS84 range")
        if ReferenceSystem.NONE in (source, target) or source is target:
            return (x, y)

        try:
            transformer = self.registry.transformer(source, target)
        except UnknownReferenceSystemError as exc:
            return failure(str(exc))
        message = "transformation failed"
        for attempt in range(1, self.max_attempts + 1):
            try:
                tx, ty = transformer.transform(x, y, errcheck=True)
            except ProjError as exc:
                message = f"transformation failed: {exc}"
                logger.debug("attempt %d for %s failed: %s", attempt, original, exc)
                continue
            if not (math.isfinite(tx) and math.isfinite(ty)):
                return failure("transformation produced a non-finite coordinate")
            if target is ReferenceSystem.WGS84 and not _in_wgs84_range(tx, ty):
                return failure("transformed coordinate outside WGS84 range")
            return (tx, ty)
        return failure(message)

    def transform_bounds(self, bounds, source, target):
        """Transform an axis-aligned box, densifying its edges; Bounds or TransformationError."""
        source, target = ReferenceSystem.parse(source), ReferenceSystem.parse(target)
        original = tuple(bounds.to_list())
        values = bounds.to_list()
        if not all(math.isfinite(v) for v in values):
            return TransformationError(original, "bounds are not finite")
        if bounds.min_x > bounds.max_x or bounds.min_y > bounds.max_y:
            return TransformationError(original, "bounds minimum exceeds maximum")
        if source is ReferenceSystem.WGS84 and not all(_in_wgs84_range(*c) for c in bounds.corners()):
            return TransformationError(original, "bounds outside WGS84 range")
        if ReferenceSystem.NONE in (source, target) or source is target:
            return bounds
        try:
            transformer = self.registry.transformer(source, target)
            result = transformer.transform_bounds(*values, densify_pts=21, errcheck=True)
        except (ProjError, UnknownReferenceSystemError) as exc:
            return TransformationError(original, f"bounds transformation failed: {exc}")
        if not all(math.isfinite(v) for v in result):
            return TransformationError(original, "bounds transformation produced non-finite values")
        out = Bounds(*result)
        if target is ReferenceSystem.WGS84 and not all(_in_wgs84_range(*c) for c in out.corners()):
            return TransformationError(original, "transformed bounds outside WGS84 range")
        return out

    def reconcile_features(self, features, source, axis_order="xy"):
        """
        Copy ``features`` with every position reconciled to (x, y) order.

        Run once when features are built from a drawing stored in another
        axis order, so every later transform sees canonical pairs.
        """
        if axis_order == "xy":
            return list(features)
        definition = self._definition(ReferenceSystem.parse(source))
        return [
            feature.with_positions(
                reconcile_axes(position, definition, axis_order) for position in feature.positions()
            )
            for feature in features
        ]

    def transform_features(self, features, source, target, axis_order="xy", result=None, check=True):
        """
        Transform every coordinate of ``features``.

        Points that fail keep their original coordinates and their feature
        gets a warning. Raises BatchTransformationError when the share of
        failed points exceeds ``max_failure_ratio``.

        Chunked callers pass the same ``result`` for every chunk with
        ``check=False`` and call ``check`` once at the end, so the ratio
        covers the whole batch.
        """
        source, target = ReferenceSystem.parse(source), ReferenceSystem.parse(target)
        result = result if result is not None else BatchResult(features=[])
        memo = {}
        for feature in features:
            positions = feature.positions()
            moved = []
            failed = 0
            for position in positions:
                outcome = self._memoized(memo, position, source, target, axis_order, feature)
                if isinstance(outcome, TransformationError):
                    failed += 1
                    result.errors.append(outcome)
                    moved.append(tuple(position))
                else:
                    moved.append(outcome)
            result.total_points += len(positions)
            result.failed_points += failed
            updated = feature.with_positions(moved, reference_system=target.identifier)
            if failed:
                updated = updated.with_warning(
                    f"{failed} of {len(positions)} points could not be transformed "
                    f"to {target.identifier} and keep their original coordinates"
                )
            result.features.append(updated)
        if check:
            self.check(result, source, target)
        return result

    def check(self, result, source, target):
        """Raise for a batch above the failure ratio, else log the kept points."""
        source, target = ReferenceSystem.parse(source), ReferenceSystem.parse(target)
        if result.failure_ratio > self.max_failure_ratio:
            raise BatchTransformationError(
                f"{result.failed_points} of {result.total_points} points failed to transform "
                f"from {source.identifier} to {target.identifier}",
                result.errors, result.failed_points, result.total_points,
            )
        if result.failed_points:
            logger.warning(
                "%d of %d points kept untransformed (%s -> %s)",
                result.failed_points, result.total_points, source.identifier, target.identifier,
            )
        return result

    def _memoized(self, memo, position, source, target, axis_order, feature):
        key = tuple(position)
        if key in memo:
            outcome = memo[key]
            if isinstance(outcome, TransformationError):
                # same failure, attributed to this feature
                return TransformationError(outcome.original, outcome.message, feature.id, feature.layer)
            return outcome
        outcome = self.transform(position, source, target, axis_order, feature.id, feature.layer)
        memo[key] = outcome
        return outcome

    def _definition(self, system):
        if system is ReferenceSystem.NONE:
            return None
        return self.registry.get(system)


def _in_wgs84_range(x, y):
    return -180.0 <= x <= 180.0 and -90.0 <= y <= 90.0
