"""DXF import with coordinate reference detection and map preview."""

from .config import LoaderConfig, PreviewOptions
from .crs import ReferenceSystem, ReferenceSystemRegistry, default_registry
from .errors import (
    BatchTransformationError,
    CycleError,
    GeoLoaderError,
    ParseError,
    TransformationError,
    UnknownReferenceSystemError,
    ValidationError,
)
from .parser import parse
from .pipeline import CancelToken, LoadResult, Loader, ProgressEvent, load
from .preview import PreviewCollections, PreviewManager

__version__ = "0.1.0"
