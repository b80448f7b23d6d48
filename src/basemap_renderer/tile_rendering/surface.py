"""
Drawing Surfaces

The drawing contract shapes render against, and its Pillow implementation.
Shapes only need three primitives: stroke a polyline (optionally dashed),
fill a polygon, and draw a text label.
"""

import io
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import structlog
from PIL import Image, ImageDraw, ImageFont
from shapely.geometry import LineString, box
from shapely.geometry import Point as ShapelyPoint
from shapely.ops import substring

Point = Tuple[float, float]
Color = Union[str, Tuple[int, int, int]]
Bounds = Tuple[float, float, float, float]

logger = structlog.get_logger(component="DrawingSurface")


class DrawingSurface(ABC):
    """Capabilities a shape needs from a rasterizer."""

    @abstractmethod
    def stroke_polyline(
        self,
        points: Sequence[Point],
        color: Color,
        width: float,
        dash_pattern: Optional[Sequence[float]] = None
    ) -> None:
        """Stroke an open polyline; fewer than two points draws nothing."""

    @abstractmethod
    def fill_polygon(self, points: Sequence[Point], color: Color) -> None:
        """Fill a polygon; fewer than three points draws nothing."""

    @abstractmethod
    def draw_text(
        self,
        text: str,
        position: Point,
        font_size: int,
        color: Color,
        bold: bool = False
    ) -> None:
        """Draw text with its top-left corner at ``position``."""


def _dash_cycle(lengths: Sequence[float]) -> List[Tuple[float, bool]]:
    """One full repetition of (length, drawn) steps; odd patterns take two passes."""
    steps = len(lengths) if len(lengths) % 2 == 0 else 2 * len(lengths)
    return [(lengths[i % len(lengths)], i % 2 == 0) for i in range(steps)]


def _visible_ranges(line: LineString, clip: Bounds) -> List[Tuple[float, float]]:
    """Distances along ``line`` of the stretches that fall inside ``clip``."""
    visible = line.intersection(box(*clip))
    if visible.is_empty:
        return []

    ranges = []
    for part in getattr(visible, 'geoms', [visible]):
        if part.geom_type != 'LineString' or part.length == 0:
            continue
        first = line.project(ShapelyPoint(part.coords[0]))
        last = line.project(ShapelyPoint(part.coords[-1]))
        ranges.append((min(first, last), max(first, last)))
    return sorted(ranges)


def dash_segments(
    points: Sequence[Point],
    dash_pattern: Sequence[float],
    width: float = 1.0,
    clip: Optional[Bounds] = None
) -> List[List[Point]]:
    """
    Cut a polyline into its visible dash pieces.

    The pattern alternates drawn and skipped lengths, starting with a drawn
    one, and is measured in multiples of the stroke width. An odd-length
    pattern continues from its start with the roles swapped.

    With ``clip`` (min_x, min_y, max_x, max_y), only dashes inside that box
    are produced. Dash positions are still measured from the start of the
    full line, so clipped and unclipped strokes line up.
    """
    if len(points) < 2 or not dash_pattern:
        return [list(points)] if len(points) >= 2 else []

    lengths = [max(float(d), 0.0) * width for d in dash_pattern]
    if sum(lengths) <= 0:
        return [list(points)]

    line = LineString(points)
    total = line.length
    if total == 0:
        return []

    ranges = [(0.0, total)] if clip is None else _visible_ranges(line, clip)
    cycle = _dash_cycle(lengths)
    period = sum(length for length, _ in cycle)

    segments = []
    for start, end in ranges:
        position = math.floor(start / period) * period
        index = 0
        while position < end:
            length, drawing = cycle[index % len(cycle)]
            dash_start, dash_end = max(position, start), min(position + length, end)
            if drawing and dash_end > dash_start:
                coords = list(substring(line, dash_start, dash_end).coords)
                if len(coords) >= 2:
                    segments.append(coords)
            position += length
            index += 1

    return segments


class PillowSurface(DrawingSurface):
    """Drawing surface backed by a Pillow RGB image."""

    def __init__(
        self,
        width: int,
        height: int,
        background: Color = (255, 255, 255),
        font_paths: Optional[Sequence[str]] = None
    ):
        self.width = width
        self.height = height
        self.image = Image.new("RGB", (width, height), background)
        self._canvas = ImageDraw.Draw(self.image)
        self.font_paths = list(font_paths or [])
        self._font_cache: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}

    @staticmethod
    def _pixel_width(width: float) -> int:
        return max(1, math.ceil(width))

    def stroke_polyline(
        self,
        points: Sequence[Point],
        color: Color,
        width: float,
        dash_pattern: Optional[Sequence[float]] = None
    ) -> None:
        if len(points) < 2:
            return

        pixel_width = self._pixel_width(width)
        if dash_pattern:
            # Dashes far outside the image are never cut
            margin = pixel_width
            clip = (-margin, -margin, self.width + margin, self.height + margin)
            for segment in dash_segments(points, dash_pattern, width, clip):
                self._canvas.line(segment, fill=color, width=pixel_width)
        else:
            self._canvas.line(list(points), fill=color, width=pixel_width, joint="curve")

    def fill_polygon(self, points: Sequence[Point], color: Color) -> None:
        if len(points) < 3:
            return
        self._canvas.polygon(list(points), fill=color)

    def draw_text(
        self,
        text: str,
        position: Point,
        font_size: int,
        color: Color,
        bold: bool = False
    ) -> None:
        if not text:
            return
        self._canvas.text(tuple(position), text, fill=color, font=self._get_font(font_size, bold))

    def _get_font(self, size: int, bold: bool):
        cache_key = (size, bold)
        if cache_key not in self._font_cache:
            self._font_cache[cache_key] = self._load_font(size, bold)
        return self._font_cache[cache_key]

    def _load_font(self, size: int, bold: bool):
        """Load the first usable TrueType font, or Pillow's default font."""
        candidates = list(self.font_paths)
        if not bold:
            candidates = [path.replace("-Bold", "") for path in candidates] + candidates

        for path in candidates:
            try:
                return ImageFont.truetype(path, size)
            except OSError:
                continue

        logger.warning("No TrueType font found; using Pillow default font", size=size)
        return ImageFont.load_default(size=size)

    def save(self, path: Union[str, Path], format: str = "PNG") -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.image.save(path, format=format)

    def to_bytes(self, format: str = "PNG") -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format=format)
        return buffer.getvalue()
