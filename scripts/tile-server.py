#!/usr/bin/env python3
"""
Basemap Tile Server

A FastAPI-based tile server that renders PNG map tiles on demand from a
feature file, with an optional on-disk tile cache.
"""

import asyncio
import io
import sys
from pathlib import Path
from typing import List

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse
import uvicorn
import structlog

sys.path.append(str(Path(__file__).parent.parent / "src"))

from basemap_renderer.data_ingestion import RawFeature, load_features
from basemap_renderer.monitoring import MetricsCollector
from basemap_renderer.tile_rendering import TileCompositor, TileSpec
from basemap_renderer.tile_rendering.compositor import validate_tile
from basemap_renderer.utils import Config, configure_logging

configure_logging()
logger = structlog.get_logger()

config = Config.from_env()
metrics = MetricsCollector.from_config(config)
compositor = TileCompositor(config, metrics)

TILE_DIR = Path(config.server.tile_dir) if config.server.tile_dir else None

app = FastAPI(
    title="Basemap Tile Server",
    description="Renders raster basemap tiles from vector features",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

features: List[RawFeature] = []


@app.on_event("startup")
async def startup_event():
    """Load the feature file."""
    logger.info(
        "Starting Basemap Tile Server",
        data_file=config.server.data_file,
        tile_dir=str(TILE_DIR) if TILE_DIR else None,
        port=config.server.port
    )

    await load_feature_data()

    if TILE_DIR and config.server.cache_tiles:
        TILE_DIR.mkdir(parents=True, exist_ok=True)

    logger.info("Tile server initialized successfully", features=len(features))


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Basemap Tile Server")
    metrics.push_to_prometheus_gateway(job_name="basemap_tile_server")


async def load_feature_data():
    """Read features from the configured data file."""
    global features

    if not config.server.data_file:
        logger.warning("No data file configured, serving empty tiles")
        features = []
        return

    try:
        features = await asyncio.to_thread(load_features, config.server.data_file, config, metrics)
        logger.info("Loaded features", count=len(features))
    except (OSError, RuntimeError, ValueError) as e:
        logger.error("Failed to load features", error=str(e))
        features = []


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "basemap-tile-server",
        "version": "1.0.0",
        "features_loaded": len(features),
        "tiles_rendered": compositor.stats['tiles_generated'],
        "metrics": metrics.get_system_health()['status']
    }


@app.get("/")
async def root():
    """Root endpoint with server information."""
    return {
        "service": "Basemap Tile Server",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "tiles": "/tiles/{z}/{x}/{y}.png",
            "bounds": "/bounds/{z}/{x}/{y}",
            "metrics": "/metrics",
            "refresh": "/refresh",
            "docs": "/docs"
        },
        "supported_formats": ["png"],
        "tile_size": config.rendering.tile_size
    }


def requested_tile(z: int, x: int, y: int) -> TileSpec:
    """Tile named by a request path; out-of-range coordinates are a 400."""
    try:
        validate_tile(x, y, z)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TileSpec.from_xyz(x, y, z)


@app.get("/tiles/{z}/{x}/{y}.png")
async def get_tile(z: int, x: int, y: int):
    """
    Serve a rendered map tile.

    Args:
        z: Zoom level
        x: Tile X coordinate
        y: Tile Y coordinate
    """
    tile_spec = requested_tile(z, x, y)
    headers = {"Cache-Control": "public, max-age=3600"}

    cache_path = None
    if TILE_DIR and config.server.cache_tiles:
        cache_path = TileCompositor.tile_path(TILE_DIR, tile_spec)
        if cache_path.exists():
            logger.debug("Serving cached tile", tile_id=tile_spec.tile_id)
            return FileResponse(cache_path, media_type="image/png", headers=headers)

    try:
        image = await asyncio.to_thread(compositor.render_tile, tile_spec, features)
    except Exception as e:
        logger.error("Failed to render tile", tile_id=tile_spec.tile_id, error=str(e))
        metrics.increment_counter('tiles_rendered_total', labels={'status': 'error'})
        raise HTTPException(status_code=500, detail="Failed to render tile")

    compositor.stats['tiles_generated'] += 1
    metrics.increment_counter('tiles_rendered_total', labels={'status': 'success'})

    if cache_path is not None:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(cache_path, format="PNG")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")

    logger.info("Serving tile", z=z, x=x, y=y)
    return Response(content=buffer.getvalue(), media_type="image/png", headers=headers)


@app.get("/bounds/{z}/{x}/{y}")
async def get_tile_bounds(z: int, x: int, y: int):
    """Get geographic bounds for a tile."""
    west, south, east, north = requested_tile(z, x, y).bbox

    return {
        "z": z,
        "x": x,
        "y": y,
        "bounds": {"west": west, "south": south, "east": east, "north": north},
        "bbox": [west, south, east, north]
    }


@app.get("/metrics", response_class=PlainTextResponse)
async def get_metrics():
    """Prometheus metrics."""
    try:
        return metrics.export_metrics("prometheus")
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/refresh")
async def refresh_features():
    """Reload the feature file."""
    await load_feature_data()
    return {
        "status": "success",
        "message": "Features reloaded",
        "features_loaded": len(features)
    }


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="info",
        access_log=True
    )
