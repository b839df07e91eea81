"""
Unit Tests for Rasterizer
=========================

Tests for SVG to PNG conversion.
"""

import io

import pytest
from PIL import Image  # type: ignore

from src.core.assets.emoji import to_data_uri
from src.core.rendering.layout import BasicLayoutEngine
from src.core.rendering.pipeline import RenderPipeline
from src.core.rendering.rasterizer import (
    CairoSvgRasterizer,
    RasterizationError,
    png_dimensions,
)

from tests.utils.assertions import assert_valid_png
from tests.utils.fonts import build_box_font
from tests.utils.mocks import FAKE_SVG, FakeRasterizer

try:
    import cairosvg  # noqa: F401

    CAIRO_AVAILABLE = True
except (ImportError, OSError):
    # cairosvg needs the system cairo library
    CAIRO_AVAILABLE = False

requires_cairo = pytest.mark.skipif(not CAIRO_AVAILABLE, reason="cairo library not available")

SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="120" height="63" viewBox="0 0 120 63">'
    '<rect width="120" height="63" fill="#123456"/></svg>'
)


class TestPngDimensions:
    """Test reading PNG dimensions."""

    def test_dimensions(self):
        png = FakeRasterizer().rasterize(SVG, 240)
        assert png_dimensions(png) == (240, 126)

    def test_not_a_png(self):
        with pytest.raises(RasterizationError):
            png_dimensions(b"GIF89a")


@requires_cairo
class TestCairoSvgRasterizer:
    """Test the cairosvg rasterizer."""

    def test_fit_to_width(self):
        png = CairoSvgRasterizer().rasterize(SVG, 240)

        assert_valid_png(png, width=240)
        assert png_dimensions(png) == (240, 126)

    def test_invalid_svg(self):
        with pytest.raises(RasterizationError):
            CairoSvgRasterizer().rasterize("<not-svg", 100)


@requires_cairo
class TestCairoRendering:
    """Test rasterizing the layout engine's output with cairosvg."""

    @pytest.mark.asyncio
    async def test_text_emoji_and_fallback_script(
        self,
        test_settings,
        asset_cache,
        mock_fonts_client,
        mock_emoji_loader,
        message_component,
        outline_font,
    ):
        mock_fonts_client.load_font.return_value = build_box_font("日本")
        mock_emoji_loader.load_data_uri.return_value = to_data_uri(FAKE_SVG)
        pipeline = RenderPipeline(
            layout_engine=BasicLayoutEngine(),
            rasterizer=CairoSvgRasterizer(),
            cache=asset_cache,
            fonts_client=mock_fonts_client,
            emoji_loader=mock_emoji_loader,
            settings=test_settings,
        )

        png = await pipeline.render_png(
            message_component, {"text": "Hello 😀 日本"}, {"fonts": [outline_font]}
        )

        assert_valid_png(png, width=1200)
        assert png_dimensions(png) == (1200, 630)
        with Image.open(io.BytesIO(png)) as image:
            pixels = image.convert("RGB")
            # padding 40, 48px text: "H" box spans x 42-66, y 54-88
            assert pixels.getpixel((10, 10)) == (17, 17, 17)
            assert pixels.getpixel((54, 75)) == (238, 238, 238)
            # emoji image after six 28.8px advances, 48px square
            assert pixels.getpixel((236, 64)) != (17, 17, 17)
            # first fallback glyph after the emoji and a space
            assert pixels.getpixel((300, 75)) == (238, 238, 238)
