from __future__ import annotations

import pytest

from geoloader.config import LoaderConfig, PreviewOptions
from geoloader.crs import ReferenceSystem, default_registry
from geoloader.features import Feature, LINESTRING, POINT, POLYGON
from geoloader.pipeline import load
from geoloader.preview import PreviewManager
from geoloader.transformer import CoordinateTransformer
from tests._dxf_helpers import document, line


def make_manager(**options) -> PreviewManager:
    return PreviewManager(
        CoordinateTransformer(default_registry()),
        PreviewOptions(active_reference_system=ReferenceSystem.NONE, **options),
    )


def local_features() -> list[Feature]:
    props = {"source_reference_system": "none"}
    return [
        Feature(POINT, (0.0, 0.0), {**props, "id": "1", "layer": "A"}),
        Feature(LINESTRING, [(0.0, 0.0), (10.0, 10.0)], {**props, "id": "2", "layer": "B"}),
        Feature(POLYGON, [[(2.0, 2.0), (4.0, 2.0), (4.0, 4.0), (2.0, 2.0)]], {**props, "id": "3", "layer": "A"}),
    ]


def test_collections_group_by_geometry_kind() -> None:
    manager = make_manager()
    manager.set_features(local_features())

    collections = manager.get_preview_collections()

    assert [f.id for f in collections.points] == ["1"]
    assert [f.id for f in collections.lines] == ["2"]
    assert [f.id for f in collections.polygons] == ["3"]
    assert collections.total_count == 3
    assert collections.visible_count == 3


def test_bounds_are_padded() -> None:
    manager = make_manager()
    manager.set_features(local_features())

    bounds = manager.get_preview_collections().bounds

    assert bounds.to_list() == pytest.approx([-1.0, -1.0, 11.0, 11.0])


def test_empty_visible_layers_means_all_layers() -> None:
    manager = make_manager()

    assert manager.is_layer_visible("anything")
    manager.set_options(visible_layers={"A"})
    assert manager.is_layer_visible("A")
    assert not manager.is_layer_visible("B")


def test_layer_filter_changes_counts_and_bounds() -> None:
    manager = make_manager(visible_layers={"A"})
    manager.set_features(local_features())

    collections = manager.get_preview_collections()

    assert collections.total_count == 3
    assert collections.visible_count == 2
    assert collections.lines == []
    assert collections.bounds.to_list() == pytest.approx([-0.4, -0.4, 4.4, 4.4])


def test_collections_are_cached_until_the_key_changes() -> None:
    manager = make_manager()
    features = local_features()
    manager.set_features(features)

    first = manager.get_preview_collections()
    assert manager.get_preview_collections() is first

    manager.set_options(visible_layers={"B"})
    second = manager.get_preview_collections()
    assert second is not first
    assert second.visible_count == 1

    manager.set_features(features)
    assert manager.get_preview_collections() is not second


def test_features_are_reprojected_to_the_active_system() -> None:
    manager = make_manager()
    manager.set_features([
        Feature(POINT, (2_600_000.0, 1_200_000.0), {"id": "1", "source_reference_system": "EPSG:2056"}),
    ])
    manager.set_options(active_reference_system=ReferenceSystem.WGS84)

    (point,) = manager.get_preview_collections().points

    assert point.coordinates == pytest.approx((7.44, 46.95), abs=0.01)
    assert point.properties["reference_system"] == "EPSG:4326"


def test_source_system_applies_to_unlabelled_features() -> None:
    manager = make_manager(max_features=10)
    manager.set_options(active_reference_system="EPSG:4326")
    manager.set_features([Feature(POINT, (2_600_000.0, 1_200_000.0), {"id": "1"})], "EPSG:2056")

    (point,) = manager.get_preview_collections().points

    assert point.coordinates[0] == pytest.approx(7.44, abs=0.01)


def test_failed_points_are_reported_and_kept() -> None:
    manager = make_manager()
    manager.set_features([
        Feature(POINT, (7.4, 46.9), {"id": "1", "source_reference_system": "EPSG:4326"}),
        Feature(POINT, (7.5, 47.0), {"id": "2", "source_reference_system": "EPSG:4326"}),
        Feature(POINT, (200.0, 10.0), {"id": "3", "source_reference_system": "EPSG:4326"}),
    ])
    manager.set_options(active_reference_system=ReferenceSystem.SWISS_LV95)

    collections = manager.get_preview_collections()

    assert len(collections.transformation_errors) == 1
    kept = [f for f in collections.points if f.id == "3"][0]
    assert kept.coordinates == (200.0, 10.0)
    assert kept.has_warnings


def test_sampling_applies_the_feature_budget() -> None:
    props = {"source_reference_system": "none", "layer": "A"}
    features = [Feature(POINT, (0.0, 0.0), props), Feature(POINT, (100.0, 100.0), props)]
    features += [Feature(POINT, (50.0 + i * 0.01, 50.0), props) for i in range(100)]
    manager = make_manager(max_features=12)
    manager.set_features(features)

    collections = manager.get_preview_collections()

    assert len(collections.points) == 12
    assert collections.visible_count == 102


def test_lookup_helpers() -> None:
    manager = make_manager()
    manager.set_features(local_features())

    assert manager.available_layers() == ["A", "B"]
    assert [f.id for f in manager.features_by_type_and_layer(POLYGON, "A")] == ["3"]
    assert manager.features_by_type_and_layer(POLYGON, "B") == []
    assert manager.has_visible_features()

    manager.set_options(visible_layers={"MISSING"})
    assert not manager.has_visible_features()


def test_feature_collection_export() -> None:
    manager = make_manager()
    manager.set_features(local_features())

    collection = manager.to_feature_collection()

    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 3
    assert collection["bbox"] == pytest.approx([-1.0, -1.0, 11.0, 11.0])
    assert collection["features"][1]["geometry"] == {
        "type": "LineString", "coordinates": [[0.0, 0.0], [10.0, 10.0]],
    }


def test_changing_the_budget_resamples() -> None:
    props = {"source_reference_system": "none", "layer": "A"}
    features = [Feature(POINT, (0.0, 0.0), props), Feature(POINT, (100.0, 100.0), props)]
    features += [Feature(POINT, (50.0 + i * 0.01, 50.0), props) for i in range(100)]
    manager = make_manager()
    manager.set_features(features)
    assert len(manager.get_preview_collections().points) == 102

    manager.set_options(max_features=12)

    assert len(manager.get_preview_collections().points) == 12


def test_swapped_drawing_reprojects_in_the_preview() -> None:
    text = document(line((1_200_000.0, 2_600_000.0), (1_200_100.0, 2_600_100.0)))
    result = load(text, LoaderConfig.from_options(active_reference_system="none"))
    assert result.detection.swapped
    manager = make_manager()
    manager.set_options(active_reference_system=ReferenceSystem.WGS84)
    manager.set_features(result.features, result.reference_system)

    collections = manager.get_preview_collections()

    (feature,) = collections.lines
    lon, lat = feature.coordinates[0]
    assert lon == pytest.approx(7.44, abs=0.01)
    assert lat == pytest.approx(46.95, abs=0.01)
    assert collections.transformation_errors == []
