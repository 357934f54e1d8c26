from __future__ import annotations

import pytest

from geoloader.config import LoaderConfig
from geoloader.crs import ReferenceSystem
from geoloader.errors import BatchTransformationError, ParseError
from geoloader.features import LINESTRING
from geoloader.pipeline import CancelToken, ProgressEvent, iter_chunks, load
from tests._dxf_helpers import block, document, insert, line, lwpolyline


def test_lv95_polyline_end_to_end() -> None:
    text = document(lwpolyline([(2_600_000.0, 1_200_000.0), (2_600_100.0, 1_200_100.0)]))

    result = load(text)

    assert result.detection.system is ReferenceSystem.SWISS_LV95
    assert result.detection.confidence >= 0.8
    assert result.reference_system is ReferenceSystem.WGS84
    (feature,) = result.features
    assert feature.geometry_kind == LINESTRING
    assert feature.properties["layer"] == "0"
    assert feature.properties["source_reference_system"] == "EPSG:2056"
    for lon, lat in feature.coordinates:
        assert lon == pytest.approx(7.44, abs=0.01)
        assert lat == pytest.approx(46.95, abs=0.01)
    assert not result.cancelled
    assert len(result.warnings) == 0


def test_source_features_keep_drawing_coordinates() -> None:
    text = document(lwpolyline([(2_600_000.0, 1_200_000.0), (2_600_100.0, 1_200_100.0)]))

    result = load(text)

    (source,) = result.source_features
    assert source.coordinates == [(2_600_000.0, 1_200_000.0), (2_600_100.0, 1_200_100.0)]


def test_local_drawing_is_left_untouched() -> None:
    result = load(document(line((0.0, 0.0), (10.0, 5.0))))

    assert result.reference_system is ReferenceSystem.NONE
    assert result.features[0].coordinates == [(0.0, 0.0), (10.0, 5.0)]


def test_progress_is_reported_per_chunk_and_phase() -> None:
    events: list[ProgressEvent] = []
    text = document(*[line((2_600_000.0 + i, 1_200_000.0), (2_600_010.0 + i, 1_200_010.0)) for i in range(5)])

    load(text, LoaderConfig(chunk_size=2), progress=events.append)

    phases = [e.phase for e in events]
    assert phases[:2] == ["parse", "parse"]
    assert [e.progress for e in events if e.phase == "expand"] == [0.4, 0.8, 1.0]
    assert [e.progress for e in events if e.phase == "convert"] == [0.4, 0.8, 1.0]
    assert [e.progress for e in events if e.phase == "transform"] == [0.4, 0.8, 1.0]
    assert phases.index("expand") < phases.index("convert") < phases.index("transform")


def test_cancel_between_chunks_returns_partial_result() -> None:
    token = CancelToken()
    text = document(*[line((float(i), 0.0), (float(i), 1.0)) for i in range(5)])

    def on_progress(event: ProgressEvent) -> None:
        if event.phase == "expand":
            token.cancel()

    result = load(text, LoaderConfig(chunk_size=2), progress=on_progress, cancel=token)

    assert result.cancelled
    assert len(result.entities) == 2
    assert result.features == []


def test_parse_error_is_raised_for_unreadable_input() -> None:
    with pytest.raises(ParseError):
        load("not a dxf")


def test_override_selects_the_source_system() -> None:
    config = LoaderConfig.from_options(reference_system_override="EPSG:21781")

    result = load(document(line((600_000.0, 200_000.0), (600_100.0, 200_100.0))), config)

    assert result.detection.source == "override"
    assert result.features[0].coordinates[0] == pytest.approx((7.44, 46.95), abs=0.01)


def test_mostly_failing_transformation_aborts() -> None:
    config = LoaderConfig.from_options(
        active_reference_system="EPSG:2056", reference_system_override="EPSG:4326",
    )

    with pytest.raises(BatchTransformationError):
        load(document(line((200.0, 10.0), (300.0, 10.0))), config)


def test_recoverable_issues_are_collected() -> None:
    text = document(
        insert("A"),
        [(0, "WIPEOUT"), (8, "0")],
        [(0, "CIRCLE"), (8, "0"), (10, 0.0), (20, 0.0), (40, 0.0)],
        line((0.0, 0.0), (1.0, 0.0)),
        blocks=[block("A", insert("B")), block("B", insert("A"))],
    )

    result = load(text)

    assert len(result.warnings.cycles) == 1
    assert len(result.warnings.validation) == 1
    assert result.unsupported == {"WIPEOUT": 1}
    assert len(result.features) == 1


def test_iter_chunks_reports_empty_input_as_done() -> None:
    assert list(iter_chunks([], "convert", 10)) == [([], ProgressEvent("convert", 1.0))]


def test_iter_chunks_stops_when_cancelled() -> None:
    token = CancelToken()
    seen = []
    for chunk, _ in iter_chunks(range(10), "expand", 3, token):
        seen.append(chunk)
        token.cancel()

    assert seen == [[0, 1, 2]]


def test_swapped_swiss_drawing_is_stored_easting_first() -> None:
    text = document(line((1_200_000.0, 2_600_000.0), (1_200_100.0, 2_600_100.0)))

    result = load(text)

    assert result.detection.system is ReferenceSystem.SWISS_LV95
    assert result.detection.swapped
    (source,) = result.source_features
    assert source.coordinates == [(2_600_000.0, 1_200_000.0), (2_600_100.0, 1_200_100.0)]
    (feature,) = result.features
    for lon, lat in feature.coordinates:
        assert lon == pytest.approx(7.44, abs=0.01)
        assert lat == pytest.approx(46.95, abs=0.01)
    assert not result.warnings.transformation
