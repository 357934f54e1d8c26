"""
geoloader preview server.

DXF upload/preview API plus a batch coordinate conversion endpoint.

Usage:
    python -m geoloader.serve
"""

import logging, re
from pathlib import Path
from fastapi import FastAPI, UploadFile, File, Form
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from .config import DEFAULT_MAX_FEATURES, LoaderConfig
from .crs import ReferenceSystem, default_registry
from .errors import GeoLoaderError, TransformationError
from .features import feature_collection
from .parser import decode
from .pipeline import Loader
from .preview import PreviewManager
from .transformer import CoordinateTransformer

logger = logging.getLogger(__name__)

MAX_BATCH_POINTS = 100

app = FastAPI(title="geoloader")
registry = default_registry()
transformer = CoordinateTransformer(registry)


class TransformBatchRequest(BaseModel):
    points: list[list[float]]
    source: str
    target: str = "EPSG:4326"


def slugify(name):
    name = Path(name or "drawing").stem.lower()
    name = re.sub(r'[^a-z0-9]+', '-', name)
    return name.strip('-') or "drawing"


def error_response(message, status_code=400, **extra):
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def preview_payload(name, result, preview):
    collections = preview.get_preview_collections()
    detection = result.detection
    bounds = collections.bounds
    return {
        "name": name,
        "reference_system": result.reference_system.identifier,
        "detection": None if detection is None else {
            "system": detection.system.identifier,
            "confidence": detection.confidence,
            "source": detection.source,
            "swapped": detection.swapped,
        },
        "layers": preview.available_layers(),
        "total_count": collections.total_count,
        "visible_count": collections.visible_count,
        "collections": {
            "points": feature_collection(collections.points),
            "lines": feature_collection(collections.lines),
            "polygons": feature_collection(collections.polygons),
        },
        "bounds": None if bounds is None else bounds.to_list(),
        "center": None if bounds is None else list(bounds.center),
        "warnings": result.warnings.as_strings(),
        "skipped": result.unsupported,
    }


@app.post("/api/preview")
async def upload_preview(
    file: UploadFile = File(...),
    crs: str | None = Form(None),
    target: str = Form("EPSG:4326"),
    max_features: int = Form(DEFAULT_MAX_FEATURES),
    visible_layers: str = Form(""),
):
    content = await file.read()
    layers = [name.strip() for name in visible_layers.split(",") if name.strip()]
    try:
        config = LoaderConfig.from_options(
            max_features=max_features,
            visible_layers=layers,
            active_reference_system=target,
            reference_system_override=crs or None,
        )
        loader = Loader(config, registry)
        result = loader.load(decode(content))
        preview = PreviewManager(
            loader.transformer, config.preview,
            boundary_tolerance=config.boundary_tolerance, bounds_padding=config.bounds_padding,
        )
        preview.set_features(result.features, result.reference_system)
        collections = preview.get_preview_collections()
    except (GeoLoaderError, ValueError) as e:
        logger.warning("preview of %s failed: %s", file.filename, e)
        return error_response(str(e))

    if not collections.total_count:
        return error_response("No features found", warnings=result.warnings.as_strings())
    return preview_payload(slugify(file.filename), result, preview)


@app.post("/api/coordinates/transform-batch")
def transform_batch(request: TransformBatchRequest):
    if len(request.points) > MAX_BATCH_POINTS:
        return error_response(f"at most {MAX_BATCH_POINTS} points per request")
    try:
        source = ReferenceSystem.parse(request.source)
        target = ReferenceSystem.parse(request.target)
    except GeoLoaderError as e:
        return error_response(str(e))

    results = []
    failed = 0
    for point in request.points:
        if len(point) < 2:
            outcome = TransformationError(tuple(point), "point needs x and y")
        else:
            outcome = transformer.transform(point, source, target)
        if isinstance(outcome, TransformationError):
            failed += 1
            results.append({"input": point, "error": outcome.message})
        else:
            results.append({"input": point, "output": list(outcome)})
    return {
        "source": source.identifier,
        "target": target.identifier,
        "results": results,
        "summary": {
            "total": len(results),
            "succeeded": len(results) - failed,
            "failed": failed,
        },
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("geoloader server starting...")
    print("  POST http://localhost:8000/api/preview")
    print("  POST http://localhost:8000/api/coordinates/transform-batch")
    uvicorn.run(app, host="0.0.0.0", port=8000)
