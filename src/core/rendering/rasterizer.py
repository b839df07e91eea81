"""
Rasterizer
==========

SVG to PNG conversion. The output is scaled to a fixed width; the height
follows from the SVG's aspect ratio.
"""

import io
from typing import Any, Protocol, Tuple

from PIL import Image  # type: ignore

from src.config.logging import get_logger

logger = get_logger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class RasterizationError(Exception):
    """Exception raised when an SVG cannot be rasterized."""

    pass


class Rasterizer(Protocol):
    """Converts an SVG document into PNG bytes."""

    def rasterize(self, svg: str, fit_to_width: int) -> bytes:
        ...


class CairoSvgRasterizer:
    """cairosvg-backed rasterizer."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="cairosvg_rasterizer")

    def rasterize(self, svg: str, fit_to_width: int) -> bytes:
        """
        Rasterize ``svg`` to a PNG ``fit_to_width`` pixels wide.

        Raises:
            RasterizationError: If cairosvg fails or is unusable
        """
        try:
            # Needs the system cairo library; imported late so the service
            # can start without it.
            import cairosvg

            png = cairosvg.svg2png(bytestring=svg.encode("utf-8"), output_width=fit_to_width)
        except Exception as e:
            raise RasterizationError(f"SVG rasterization failed: {e}") from e

        self.logger.debug("SVG rasterized", width=fit_to_width, size=len(png))
        return png


def png_dimensions(png: bytes) -> Tuple[int, int]:
    """Width and height of a PNG image."""
    if not png.startswith(PNG_SIGNATURE):
        raise RasterizationError("Not a PNG image")
    with Image.open(io.BytesIO(png)) as image:  # type: ignore[attr-defined]
        return image.size
