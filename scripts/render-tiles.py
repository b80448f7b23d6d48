#!/usr/bin/env python3
"""
Render basemap tiles from a feature file.

Examples:
    render-tiles.py data/region.osm.pbf --zoom 10 11 12 --output tiles/
    render-tiles.py data/rivers.geojson --zoom 8 --bbox 5.9 45.8 10.5 47.8
    render-tiles.py data/region.osm --extent map.png --width 2048
"""

import argparse
import sys
from pathlib import Path

import structlog

sys.path.append(str(Path(__file__).parent.parent / "src"))

from basemap_renderer.data_ingestion import load_features
from basemap_renderer.monitoring import MetricsCollector
from basemap_renderer.tile_rendering import TileCompositor
from basemap_renderer.utils import Config, configure_logging

logger = structlog.get_logger()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Render raster basemap tiles")
    parser.add_argument("input", help="OSM extract (.osm, .osm.pbf, .osm.gz) or vector file")
    parser.add_argument(
        "--zoom", type=int, nargs="+", default=[0],
        help="Zoom levels to render (0-22)"
    )
    parser.add_argument(
        "--bbox", type=float, nargs=4,
        metavar=("MIN_LON", "MIN_LAT", "MAX_LON", "MAX_LAT"),
        help="Area to render; defaults to the extent of the input"
    )
    parser.add_argument("--output", default="tiles", help="Directory receiving z/x/y.png tiles")
    parser.add_argument("--workers", type=int, help="Tile rendering threads")
    parser.add_argument("--extent", help="Render the whole input into this single PNG instead")
    parser.add_argument("--width", type=int, default=1024, help="Image width for --extent")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--console-logs", action="store_true", help="Human-readable log output")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, json_logs=not args.console_logs)

    config = Config.from_env()
    metrics = MetricsCollector.from_config(config)
    compositor = TileCompositor(config, metrics)

    try:
        features = load_features(args.input, config, metrics)
    except (OSError, RuntimeError, ValueError) as e:
        logger.error("Failed to load features", input=args.input, error=str(e))
        return 1

    if args.extent:
        image = compositor.render_extent(features, args.width)
        image.save(args.extent, format="PNG")
        print(f"Rendered {len(features)} features into {args.extent} ({image.width}x{image.height})")
        return 0

    result = compositor.generate_tileset(
        features,
        args.zoom,
        bbox=tuple(args.bbox) if args.bbox else None,
        output_dir=Path(args.output),
        max_workers=args.workers
    )

    if not result['success']:
        print(result['error'], file=sys.stderr)
        return 1

    print(f"Rendered {result['total_tiles']} tiles in {result['processing_time']:.2f}s to {args.output}")
    for zoom, zoom_result in sorted(result['zoom_results'].items()):
        print(f"  z{zoom}: {zoom_result['tiles_generated']}/{zoom_result['total_tile_specs']} tiles")

    errors = compositor.get_generation_stats()['errors']
    if errors:
        print(f"{len(errors)} tiles failed", file=sys.stderr)

    metrics.push_to_prometheus_gateway(job_name="basemap_render_tiles")
    return 0 if not errors else 2


if __name__ == "__main__":
    sys.exit(main())
