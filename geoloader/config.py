"""Recognized options and their defaults."""

from dataclasses import dataclass, field, replace

from .crs import ReferenceSystem

DEFAULT_MAX_FEATURES = 5000
DEFAULT_SEGMENT_COUNT = 64
DEFAULT_BOUNDARY_TOLERANCE = 0.001  # fraction of the bounding-box diagonal
DEFAULT_BOUNDS_PADDING = 0.1
DEFAULT_CHUNK_SIZE = 500
DEFAULT_SAMPLE_CAP = 1000
DEFAULT_MAX_BLOCK_DEPTH = 32
DEFAULT_MAX_TRANSFORM_ATTEMPTS = 3
SPLINE_MODES = ("linear", "curve")


@dataclass(frozen=True)
class PreviewOptions:
    max_features: int = DEFAULT_MAX_FEATURES
    visible_layers: frozenset = field(default_factory=frozenset)
    active_reference_system: ReferenceSystem = ReferenceSystem.WGS84

    def __post_init__(self):
        # accept any iterable of layer names
        object.__setattr__(self, "visible_layers", frozenset(self.visible_layers or ()))
        object.__setattr__(
            self, "active_reference_system", ReferenceSystem.parse(self.active_reference_system)
        )
        if self.max_features < 1:
            raise ValueError(f"max_features must be positive, got {self.max_features}")

    def updated(self, **changes):
        return replace(self, **changes)


@dataclass(frozen=True)
class LoaderConfig:
    preview: PreviewOptions = field(default_factory=PreviewOptions)
    boundary_tolerance: float = DEFAULT_BOUNDARY_TOLERANCE
    segment_count: int = DEFAULT_SEGMENT_COUNT
    bounds_padding: float = DEFAULT_BOUNDS_PADDING
    chunk_size: int = DEFAULT_CHUNK_SIZE
    sample_cap: int = DEFAULT_SAMPLE_CAP
    max_block_depth: int = DEFAULT_MAX_BLOCK_DEPTH
    max_transform_attempts: int = DEFAULT_MAX_TRANSFORM_ATTEMPTS
    spline_mode: str = "linear"
    reference_system_override: ReferenceSystem | None = None

    def __post_init__(self):
        if self.reference_system_override is not None:
            object.__setattr__(
                self, "reference_system_override", ReferenceSystem.parse(self.reference_system_override)
            )
        if self.segment_count < 4:
            raise ValueError(f"segment_count must be at least 4, got {self.segment_count}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.spline_mode not in SPLINE_MODES:
            raise ValueError(f"spline_mode must be one of {SPLINE_MODES}, got {self.spline_mode!r}")
        if not 0 <= self.boundary_tolerance < 1:
            raise ValueError(f"boundary_tolerance out of range: {self.boundary_tolerance}")

    @classmethod
    def from_options(cls, max_features=None, visible_layers=None,
                     active_reference_system=None, **kwargs):
        """Build a config from the flat option names used by callers."""
        preview = PreviewOptions()
        changes = {}
        if max_features is not None:
            changes["max_features"] = max_features
        if visible_layers is not None:
            changes["visible_layers"] = frozenset(visible_layers)
        if active_reference_system is not None:
            changes["active_reference_system"] = ReferenceSystem.parse(active_reference_system)
        if changes:
            preview = preview.updated(**changes)
        return cls(preview=preview, **kwargs)
