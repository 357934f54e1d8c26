"""
End-to-end import: DXF text to preview features.

Phases run one after another over fixed-size chunks. Between chunks the
progress callback is invoked and the cancel token is checked; a cancelled
run returns what it has so far with ``cancelled=True``.
"""

import logging
from dataclasses import dataclass, field

from .blocks import BlockExpander, ExpansionResult
from .config import LoaderConfig
from .crs import ReferenceSystem, default_registry
from .detector import CoordinateSystemDetector, Detection
from .errors import Warnings
from .features import features_bounds
from .geometry import GeometryConverter
from .parser import parse
from .transformer import BatchResult, CoordinateTransformer

logger = logging.getLogger(__name__)

PARSE = "parse"
EXPAND = "expand"
CONVERT = "convert"
TRANSFORM = "transform"
PHASES = (PARSE, EXPAND, CONVERT, TRANSFORM)


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    progress: float


class CancelToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled


def iter_chunks(items, phase, chunk_size, cancel=None):
    """
    Yield ``(chunk, event)`` pairs over ``items``.

    Stops early, without raising, once ``cancel`` is set. An empty input
    yields a single empty chunk so every phase reports completion.
    """
    items = list(items)
    total = len(items)
    if not total:
        yield [], ProgressEvent(phase, 1.0)
        return
    for start in range(0, total, chunk_size):
        if cancel is not None and cancel.cancelled:
            logger.info("%s cancelled at %d of %d", phase, start, total)
            return
        end = min(start + chunk_size, total)
        yield items[start:end], ProgressEvent(phase, end / total)


@dataclass
class LoadResult:
    drawing: object = None
    entities: list = field(default_factory=list)
    source_features: list = field(default_factory=list)
    features: list = field(default_factory=list)
    detection: Detection | None = None
    warnings: Warnings = field(default_factory=Warnings)
    unsupported: dict = field(default_factory=dict)
    reference_system: ReferenceSystem = ReferenceSystem.NONE
    cancelled: bool = False

    @property
    def bounds(self):
        return features_bounds(self.features)


class Loader:
    def __init__(self, config=None, registry=None):
        self.config = config or LoaderConfig()
        self.registry = registry or default_registry()
        self.detector = CoordinateSystemDetector(self.registry, self.config.sample_cap)
        self.transformer = CoordinateTransformer(self.registry, self.config.max_transform_attempts)

    def load(self, text, progress=None, cancel=None):
        """
        Run every phase over ``text``.

        Raises ParseError for input without a single valid group code and
        BatchTransformationError when more than half the points fail to
        transform; everything else ends up in ``result.warnings``.
        """
        config = self.config
        report = progress or _ignore
        cancel = cancel or CancelToken()

        report(ProgressEvent(PARSE, 0.0))
        parsed = parse(text)
        report(ProgressEvent(PARSE, 1.0))
        result = LoadResult(
            drawing=parsed.drawing, warnings=parsed.warnings, unsupported=parsed.unsupported,
        )
        drawing = parsed.drawing

        expander = BlockExpander(config.max_block_depth)
        expansion = ExpansionResult()
        for chunk, event in iter_chunks(drawing.entities, EXPAND, config.chunk_size, cancel):
            expander.expand(drawing, chunk, expansion)
            report(event)
        result.entities = expansion.entities
        result.warnings.cycles.extend(expansion.cycles)
        result.warnings.messages.extend(expansion.messages)
        if cancel.cancelled:
            return _cancelled(result)

        detection = self.detector.detect_entities(
            result.entities, drawing.header, config.reference_system_override
        )
        result.detection = detection
        result.reference_system = detection.system

        geometry = GeometryConverter(config.segment_count, config.spline_mode)
        # swapped Swiss pairs are stored easting first from here on
        axis_order = "swapped" if detection.swapped else "xy"
        offset = 0
        for chunk, event in iter_chunks(result.entities, CONVERT, config.chunk_size, cancel):
            converted = geometry.convert_all(chunk, detection.system, start_id=offset)
            result.source_features.extend(
                self.transformer.reconcile_features(converted, detection.system, axis_order)
            )
            offset += len(chunk)
            report(event)
        result.warnings.validation.extend(geometry.errors)
        result.features = result.source_features
        if cancel.cancelled:
            return _cancelled(result)

        target = config.preview.active_reference_system
        if ReferenceSystem.NONE in (detection.system, target) or detection.system is target:
            report(ProgressEvent(TRANSFORM, 1.0))
            return _finished(result)

        batch = BatchResult(features=[])
        for chunk, event in iter_chunks(result.source_features, TRANSFORM, config.chunk_size, cancel):
            self.transformer.transform_features(
                chunk, detection.system, target, result=batch, check=False
            )
            report(event)
        self.transformer.check(batch, detection.system, target)
        result.features = batch.features
        result.reference_system = target
        result.warnings.transformation.extend(batch.errors)
        if cancel.cancelled:
            return _cancelled(result)
        return _finished(result)


def load(text, config=None, registry=None, progress=None, cancel=None):
    return Loader(config, registry).load(text, progress=progress, cancel=cancel)


def _ignore(event):
    pass


def _cancelled(result):
    result.cancelled = True
    logger.info("import cancelled with %d features", len(result.features))
    return result


def _finished(result):
    logger.info(
        "imported %d entities as %d features in %s (%d warnings)",
        len(result.entities), len(result.features),
        result.reference_system.identifier, len(result.warnings),
    )
    return result
