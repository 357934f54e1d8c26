from __future__ import annotations

import math

from geoloader.crs import ReferenceSystem, default_registry
from geoloader.detector import CoordinateSystemDetector, sample_points
from geoloader.entities import Line


def lv95_points(count: int = 100) -> list[tuple[float, float]]:
    return [(2_600_000.0 + i * 10.5, 1_200_000.0 + i * 7.25) for i in range(count)]


def wgs84_points(count: int) -> list[tuple[float, float]]:
    return [(7.4 + i * 0.001, 46.9 + i * 0.001) for i in range(count)]


def make_detector() -> CoordinateSystemDetector:
    return CoordinateSystemDetector(default_registry())


def test_detects_lv95_from_points() -> None:
    detection = make_detector().detect(lv95_points())

    system, confidence = detection
    assert system is ReferenceSystem.SWISS_LV95
    assert confidence >= 0.8
    assert detection.source == "points"
    assert not detection.swapped


def test_detects_lv03_from_points() -> None:
    points = [(600_000.0 + i, 200_000.0 + i) for i in range(50)]

    assert make_detector().detect(points).system is ReferenceSystem.SWISS_LV03


def test_detects_wgs84_with_fractional_values() -> None:
    assert make_detector().detect(wgs84_points(20)).system is ReferenceSystem.WGS84


def test_small_integer_coordinates_stay_local() -> None:
    points = [(float(i), float(i * 2)) for i in range(20)]

    assert make_detector().detect(points).system is ReferenceSystem.NONE


def test_even_split_between_envelopes_is_local() -> None:
    points = lv95_points(50) + wgs84_points(50)

    detection = make_detector().detect(points)

    assert detection.system is ReferenceSystem.NONE
    assert detection.source == "fallback"
    assert detection.ratios[ReferenceSystem.SWISS_LV95] == 0.5


def test_swapped_swiss_pairs_are_flagged() -> None:
    points = [(y, x) for x, y in lv95_points()]

    detection = make_detector().detect(points)

    assert detection.system is ReferenceSystem.SWISS_LV95
    assert detection.swapped


def test_override_always_wins() -> None:
    detection = make_detector().detect(lv95_points(), override="EPSG:21781")

    assert detection.system is ReferenceSystem.SWISS_LV03
    assert detection.confidence == 1.0
    assert detection.source == "override"


def test_consistent_header_extents_win_over_points() -> None:
    header = {"$EXTMIN": (2_600_000.0, 1_200_000.0, 0.0), "$EXTMAX": (2_600_500.0, 1_200_500.0, 0.0)}

    detection = make_detector().detect([(1.0, 2.0)], header=header)

    assert detection.system is ReferenceSystem.SWISS_LV95
    assert detection.source == "header"


def test_inconsistent_header_extents_are_ignored() -> None:
    header = {"$EXTMIN": (2_600_000.0, 1_200_000.0, 0.0), "$EXTMAX": (600_000.0, 200_000.0, 0.0)}

    detection = make_detector().detect(lv95_points(), header=header)

    assert detection.source == "points"


def test_detection_never_raises_on_bad_points() -> None:
    points = [None, ("a", "b"), (math.nan, 1.0), (math.inf, 2.0), (1.0,)]

    detection = make_detector().detect(points)

    assert detection.system is ReferenceSystem.NONE
    assert detection.confidence == 0.0


def test_detection_does_not_modify_points() -> None:
    points = lv95_points(10)
    before = list(points)

    make_detector().detect(points)

    assert points == before


def test_sample_points_caps_with_even_stride() -> None:
    points = [(float(i), 0.0) for i in range(5000)]

    sample = sample_points(points, cap=1000)

    assert len(sample) == 1000
    assert sample[0] == (0.0, 0.0)
    assert sample[1] == (5.0, 0.0)
    assert sample[-1] == (4995.0, 0.0)


def test_detect_entities_uses_entity_points() -> None:
    entities = [Line(start=(2_600_000.5, 1_200_000.5, 0.0), end=(2_600_100.5, 1_200_100.5, 0.0))]

    assert make_detector().detect_entities(entities).system is ReferenceSystem.SWISS_LV95
