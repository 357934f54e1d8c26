"""
Preview feature manager.

Holds one feature set and the current PreviewOptions. Collections are
rebuilt only when the key (feature set, active reference system, visible
layers, feature budget) changes; the transformed feature set is cached separately so that
toggling layers never reprojects.
"""

import logging
from dataclasses import dataclass, field

from .config import DEFAULT_BOUNDARY_TOLERANCE, DEFAULT_BOUNDS_PADDING, PreviewOptions
from .crs import ReferenceSystem
from .features import LINESTRING, POINT, POLYGON, feature_collection, features_bounds
from .sampler import sample
from .transformer import BatchResult

logger = logging.getLogger(__name__)


@dataclass
class PreviewCollections:
    points: list = field(default_factory=list)
    lines: list = field(default_factory=list)
    polygons: list = field(default_factory=list)
    total_count: int = 0
    visible_count: int = 0
    bounds: object = None
    transformation_errors: list = field(default_factory=list)

    def by_kind(self, kind):
        return {POINT: self.points, LINESTRING: self.lines, POLYGON: self.polygons}[kind]

    def features(self):
        return [*self.points, *self.lines, *self.polygons]


def current_system(feature, default=ReferenceSystem.NONE):
    """The system a feature's coordinates are currently expressed in."""
    value = feature.properties.get("reference_system") or feature.source_reference_system
    return ReferenceSystem.parse(value) if value else default


class PreviewManager:
    """
    Not safe for concurrent writers; one import session at a time.
    """

    def __init__(self, transformer, options=None, boundary_tolerance=DEFAULT_BOUNDARY_TOLERANCE,
                 bounds_padding=DEFAULT_BOUNDS_PADDING):
        self.transformer = transformer
        self.options = options or PreviewOptions()
        self.boundary_tolerance = boundary_tolerance
        self.bounds_padding = bounds_padding
        self._features = []
        self._default_system = ReferenceSystem.NONE
        self._transformed = None
        self._transformed_key = None
        self._collections = None
        self._collections_key = None

    @property
    def features(self):
        return self._features

    def set_features(self, features, source_system=None):
        """
        Replace the feature set.

        ``source_system`` applies to features that do not record the
        system of their coordinates.
        """
        self._features = list(features)
        self._default_system = ReferenceSystem.parse(source_system)
        self._transformed = self._collections = None
        logger.debug("preview holds %d features", len(self._features))

    def set_options(self, options=None, **changes):
        if options is None:
            options = self.options.updated(**changes)
        elif changes:
            options = options.updated(**changes)
        self.options = options

    def is_layer_visible(self, layer):
        """An empty visible-layer set shows every layer."""
        visible = self.options.visible_layers
        return not visible or layer in visible

    def available_layers(self):
        return sorted({feature.layer for feature in self._features})

    def get_preview_collections(self):
        key = self._key()
        if self._collections is not None and key == self._collections_key:
            return self._collections

        batch = self._transform()
        visible = [f for f in batch.features if self.is_layer_visible(f.layer)]
        sampled = sample(visible, self.options.max_features, self.boundary_tolerance)

        collections = PreviewCollections(
            total_count=len(self._features),
            visible_count=len(visible),
            transformation_errors=list(batch.errors),
        )
        for feature in sampled:
            collections.by_kind(feature.geometry_kind).append(feature)
        bounds = features_bounds(visible)
        if bounds is not None:
            collections.bounds = bounds.padded(self.bounds_padding)

        self._collections, self._collections_key = collections, key
        logger.info(
            "preview: %d of %d features visible, %d shown",
            len(visible), len(self._features), len(sampled),
        )
        return collections

    def features_by_type_and_layer(self, kind, layer):
        return [f for f in self.get_preview_collections().by_kind(kind) if f.layer == layer]

    def has_visible_features(self):
        return self.get_preview_collections().visible_count > 0

    def to_feature_collection(self):
        collections = self.get_preview_collections()
        collection = feature_collection(collections.features())
        if collections.bounds is not None:
            collection["bbox"] = collections.bounds.to_list()
        return collection

    def _key(self):
        return (
            id(self._features),
            self.options.active_reference_system,
            self.options.visible_layers,
            self.options.max_features,
        )

    def _transform(self):
        target = self.options.active_reference_system
        key = (id(self._features), target)
        if self._transformed is not None and key == self._transformed_key:
            return self._transformed

        result = BatchResult(features=[])
        groups = {}
        for feature in self._features:
            groups.setdefault(current_system(feature, self._default_system), []).append(feature)
        transformed = {}
        for source, members in groups.items():
            if target is ReferenceSystem.NONE or source in (target, ReferenceSystem.NONE):
                for feature in members:
                    transformed[id(feature)] = feature
                continue
            batch = self.transformer.transform_features(members, source, target)
            result.errors.extend(batch.errors)
            result.failed_points += batch.failed_points
            result.total_points += batch.total_points
            for original, moved in zip(members, batch.features):
                transformed[id(original)] = moved
        result.features = [transformed[id(f)] for f in self._features]

        self._transformed, self._transformed_key = result, key
        return result
