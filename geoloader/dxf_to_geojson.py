"""
DXF → GeoJSON converter.

Detects the drawing's reference system (Swiss LV95, LV03, WGS84 or local),
reprojects to the target system and writes a preview-sized GeoJSON
FeatureCollection.

Usage:
    geoloader-dxf2geojson <input.dxf> <output.geojson> [--crs EPSG:2056]

Example:
    geoloader-dxf2geojson site.dxf site.geojson --max-features 2000 --layers WALLS,ROADS
"""

import argparse, json, logging, sys
from pathlib import Path

from .config import DEFAULT_MAX_FEATURES, DEFAULT_SEGMENT_COUNT, SPLINE_MODES, LoaderConfig
from .errors import GeoLoaderError
from .parser import decode
from .pipeline import Loader
from .preview import PreviewManager


def parse_layers(value):
    """Comma separated layer names; empty means every layer."""
    return [name.strip() for name in (value or "").split(",") if name.strip()]


def build_config(args):
    return LoaderConfig.from_options(
        max_features=args.max_features,
        visible_layers=parse_layers(args.layers),
        active_reference_system=args.target,
        segment_count=args.segments,
        spline_mode=args.spline,
        reference_system_override=args.crs,
    )


def convert_dxf(input_path, config):
    """Convert a DXF file. Returns (load result, preview manager)."""
    text = decode(Path(input_path).read_bytes())
    loader = Loader(config)
    result = loader.load(text)
    preview = PreviewManager(
        loader.transformer, config.preview,
        boundary_tolerance=config.boundary_tolerance, bounds_padding=config.bounds_padding,
    )
    preview.set_features(result.features, result.reference_system)
    return result, preview


def make_parser():
    parser = argparse.ArgumentParser(description="Convert DXF to GeoJSON")
    parser.add_argument("input", help="Input DXF file")
    parser.add_argument("output", help="Output GeoJSON file")
    parser.add_argument("--crs", default=None,
                        help="Source reference system (e.g. EPSG:2056); detected when omitted")
    parser.add_argument("--target", default="EPSG:4326",
                        help="Output reference system (default: EPSG:4326)")
    parser.add_argument("--max-features", type=int, default=DEFAULT_MAX_FEATURES,
                        help=f"Feature budget for the output (default: {DEFAULT_MAX_FEATURES})")
    parser.add_argument("--layers", default="",
                        help="Comma separated layers to keep (default: all)")
    parser.add_argument("--segments", type=int, default=DEFAULT_SEGMENT_COUNT,
                        help=f"Segments for a full circle (default: {DEFAULT_SEGMENT_COUNT})")
    parser.add_argument("--spline", choices=SPLINE_MODES, default="linear",
                        help="Spline rendering: straight control polygon or evaluated curve")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log pipeline details")
    return parser


def main(argv=None):
    args = make_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    print(f"Reading: {args.input}")
    try:
        config = build_config(args)
        result, preview = convert_dxf(args.input, config)
        geojson = preview.to_feature_collection()
    except (GeoLoaderError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with open(args.output, "w", encoding="utf-8") as f:
        json.dump(geojson, f)

    collections = preview.get_preview_collections()
    detection = result.detection
    print(f"Written: {args.output}")
    if detection is not None:
        print(f"  Source system: {detection.system.identifier} "
              f"({detection.source}, confidence {detection.confidence:.2f})")
    print(f"  Features: {len(geojson['features'])} of {collections.visible_count} visible, "
          f"{collections.total_count} total")
    if result.unsupported:
        print(f"  Skipped entity types: {result.unsupported}")
    if result.warnings:
        print(f"  Warnings: {len(result.warnings)}")
        for message in result.warnings.as_strings()[:10]:
            print(f"    {message}")

    bounds = collections.bounds
    if bounds is not None:
        print(f"  Bounds: [{bounds.min_x:.6f}, {bounds.min_y:.6f}] to [{bounds.max_x:.6f}, {bounds.max_y:.6f}]")
        print(f"  Center: [{bounds.center[0]:.6f}, {bounds.center[1]:.6f}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
