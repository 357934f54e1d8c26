"""
Reference-system detection from raw drawing coordinates.

Precedence: an explicit override, then consistent header extents, then
point envelopes (a system needs at least 80% of the sampled points), and
finally the local system, which leaves coordinates untouched.
"""

import logging
import math
from dataclasses import dataclass, field

from .config import DEFAULT_SAMPLE_CAP
from .crs import ReferenceSystem

logger = logging.getLogger(__name__)

ACCEPT_RATIO = 0.8
HEADER_CONFIDENCE = 0.9


@dataclass(frozen=True)
class Detection:
    system: ReferenceSystem
    confidence: float
    source: str
    # points are stored northing first and must be swapped before projecting
    swapped: bool = False
    ratios: dict = field(default_factory=dict)

    def __iter__(self):
        # allows ``system, confidence = detector.detect(...)``
        return iter((self.system, self.confidence))


def sample_points(points, cap=DEFAULT_SAMPLE_CAP):
    """Up to ``cap`` points taken at an even stride over the whole sequence."""
    points = list(points)
    if len(points) <= cap:
        return points
    stride = len(points) / cap
    return [points[int(i * stride)] for i in range(cap)]


class CoordinateSystemDetector:
    def __init__(self, registry, sample_cap=DEFAULT_SAMPLE_CAP, accept_ratio=ACCEPT_RATIO):
        self.registry = registry
        self.sample_cap = sample_cap
        self.accept_ratio = accept_ratio

    def detect(self, points, header=None, override=None):
        if override is not None:
            return Detection(ReferenceSystem.parse(override), 1.0, "override")

        from_header = self._from_header(header or {})
        if from_header is not None:
            return from_header

        sample = [p for p in (_finite_xy(p) for p in sample_points(points, self.sample_cap)) if p]
        if not sample:
            return Detection(ReferenceSystem.NONE, 0.0, "fallback")

        ratios = {}
        best = None
        for definition in self.registry:
            direct, swapped = self._match_ratios(definition, sample)
            ratios[definition.system] = max(direct, swapped)
            for ratio, is_swapped in ((direct, False), (swapped, True)):
                if ratio >= self.accept_ratio and (best is None or ratio > best[0]):
                    best = (ratio, definition.system, is_swapped)

        if best is None:
            top = max(ratios.values(), default=0.0)
            logger.info("no reference system matched %d sampled points", len(sample))
            return Detection(ReferenceSystem.NONE, round(1.0 - top, 6), "fallback", ratios=ratios)

        ratio, system, swapped = best
        logger.info(
            "detected %s from %d points (%.0f%%%s)",
            system.identifier, len(sample), ratio * 100, ", axes swapped" if swapped else "",
        )
        return Detection(system, ratio, "points", swapped=swapped, ratios=ratios)

    def detect_entities(self, entities, header=None, override=None):
        """Detect from the characteristic points of typed entities."""
        points = (p for entity in entities for p in entity.points())
        return self.detect(points, header=header, override=override)

    def _from_header(self, header):
        low = _finite_xy(header.get("$EXTMIN"))
        high = _finite_xy(header.get("$EXTMAX"))
        if not low or not high:
            return None
        for definition in self.registry:
            envelope = definition.envelope
            if envelope.contains(*low) and envelope.contains(*high):
                if envelope.requires_fraction and not _has_fraction([low, high]):
                    continue
                return Detection(definition.system, HEADER_CONFIDENCE, "header")
        return None

    def _match_ratios(self, definition, sample):
        envelope = definition.envelope
        direct = [p for p in sample if envelope.contains(*p)]
        swapped = []
        if definition.system.is_swiss:
            swapped = [p for p in sample if envelope.contains(p[1], p[0])]
        if envelope.requires_fraction and not _has_fraction(direct):
            direct = []
        return len(direct) / len(sample), len(swapped) / len(sample)


def _finite_xy(point):
    try:
        x, y = float(point[0]), float(point[1])
    except (TypeError, ValueError, IndexError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return (x, y)


def _has_fraction(points):
    return any(x != int(x) or y != int(y) for x, y in points)
