"""
Unit Tests for Render Pipeline
==============================

Tests for rendering components to PNG images and image responses.
"""

import pytest
from fastapi.responses import StreamingResponse

from src.core.assets.emoji import EmojiLoadError
from src.core.assets.fonts import BaseFontError
from src.core.assets.google_fonts import FontFetchError
from src.core.assets.resolver import EmojiResolutionError
from src.core.rendering.layout import BasicLayoutEngine
from src.core.rendering.pipeline import (
    DEV_CACHE_CONTROL,
    PROD_CACHE_CONTROL,
    InvalidRenderOptionsError,
    RenderError,
    RenderPipeline,
    cache_control,
    merge_render_options,
)
from src.core.rendering.rasterizer import RasterizationError
from src.models.schemas import EmojiStyle, RenderOptions

from tests.utils.assertions import assert_valid_png


async def _read_body(response: StreamingResponse) -> bytes:
    chunks = [chunk async for chunk in response.body_iterator]
    return b"".join(chunks)


class TestMergeRenderOptions:
    """Test merging caller options over defaults."""

    def test_defaults(self, test_settings):
        options = merge_render_options(None, test_settings)

        assert options.width == 1200
        assert options.height == 630
        assert options.debug is False
        assert options.emoji is EmojiStyle.TWEMOJI
        assert options.fonts is None
        assert options.status is None

    def test_caller_values_win(self, test_settings):
        options = merge_render_options(
            {"width": 800, "emoji": "fluentFlat", "height": None}, test_settings
        )

        assert options.width == 800
        assert options.height == 630
        assert options.emoji is EmojiStyle.FLUENT_FLAT

    def test_empty_font_list_preserved(self, test_settings):
        assert merge_render_options({"fonts": []}, test_settings).fonts == []

    def test_render_options_pass_through(self, test_settings):
        options = RenderOptions(width=10, height=10)
        assert merge_render_options(options, test_settings) is options

    @pytest.mark.parametrize(
        "bad",
        [{"width": 0}, {"height": -5}, {"emoji": "clipart"}, {"status": 42}],
    )
    def test_invalid_options(self, test_settings, bad):
        with pytest.raises(InvalidRenderOptionsError):
            merge_render_options(bad, test_settings)


class TestCacheControl:
    """Test cache-control per environment."""

    def test_production_like(self, test_settings):
        assert cache_control(test_settings) == PROD_CACHE_CONTROL

    def test_development(self, test_settings):
        dev_settings = test_settings.model_copy(update={"environment": "development"})
        assert cache_control(dev_settings) == DEV_CACHE_CONTROL


class TestRenderPng:
    """Test PNG rendering."""

    @pytest.mark.asyncio
    async def test_render_png(self, render_pipeline, message_component, fake_rasterizer):
        png = await render_pipeline.render_png(message_component, {"text": "Hello"})

        assert_valid_png(png, width=1200)
        svg, width = fake_rasterizer.calls[0]
        assert width == 1200
        assert 'width="1200" height="630"' in svg
        # base font embedded under its configured name
        assert "font-family: 'sans serif'" in svg
        assert "font-weight: 700" in svg

    @pytest.mark.asyncio
    async def test_custom_size(self, render_pipeline, message_component):
        png = await render_pipeline.render_png(
            message_component, {"text": "Hello"}, {"width": 600, "height": 315}
        )
        assert_valid_png(png, width=600)

    @pytest.mark.asyncio
    async def test_custom_fonts_replace_base_font(
        self, render_pipeline, message_component, fake_rasterizer, custom_font
    ):
        await render_pipeline.render_png(
            message_component, {"text": "Hello"}, {"fonts": [custom_font]}
        )

        svg = fake_rasterizer.calls[0][0]
        assert "font-family: 'Custom'" in svg
        assert "'sans serif'" not in svg

    @pytest.mark.asyncio
    async def test_empty_font_list_kept(
        self, render_pipeline, message_component, fake_rasterizer, mock_fonts_client
    ):
        png = await render_pipeline.render_png(message_component, {"text": "Hi"}, {"fonts": []})

        assert_valid_png(png, width=1200)
        assert "'sans serif'" not in fake_rasterizer.calls[0][0]
        # nothing is covered without fonts
        mock_fonts_client.load_font.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_emoji_and_script_assets(
        self,
        render_pipeline,
        message_component,
        fake_rasterizer,
        mock_fonts_client,
        mock_emoji_loader,
    ):
        await render_pipeline.render_png(message_component, {"text": "Hi 😀 日本"})

        svg = fake_rasterizer.calls[0][0]
        mock_fonts_client.load_font.assert_awaited_once_with("Noto+Sans+SC", "日本")
        mock_emoji_loader.load_data_uri.assert_awaited_once_with("😀", EmojiStyle.TWEMOJI)
        assert "og_zh_fallback_日本" in svg
        assert "<image" in svg

    @pytest.mark.asyncio
    async def test_emoji_style_option(self, render_pipeline, message_component, mock_emoji_loader):
        await render_pipeline.render_png(message_component, {"text": "😀"}, {"emoji": "noto"})

        mock_emoji_loader.load_data_uri.assert_awaited_once_with("😀", EmojiStyle.NOTO)

    @pytest.mark.asyncio
    async def test_assets_reused_across_renders(
        self, render_pipeline, message_component, mock_fonts_client
    ):
        await render_pipeline.render_png(message_component, {"text": "日本"})
        await render_pipeline.render_png(message_component, {"text": "日本"})

        assert mock_fonts_client.load_font.await_count == 1

    @pytest.mark.asyncio
    async def test_font_failure_still_renders(
        self, render_pipeline, message_component, mock_fonts_client, fake_rasterizer
    ):
        mock_fonts_client.load_font.side_effect = FontFetchError("Stylesheet request failed: 500")

        png = await render_pipeline.render_png(message_component, {"text": "日本"})

        assert_valid_png(png, width=1200)
        assert "fallback" not in fake_rasterizer.calls[0][0]

    @pytest.mark.asyncio
    async def test_emoji_failure_fails_render(
        self, render_pipeline, message_component, mock_emoji_loader, fake_rasterizer
    ):
        mock_emoji_loader.load_data_uri.side_effect = EmojiLoadError("Emoji 1f600 not available")

        with pytest.raises(RenderError) as exc_info:
            await render_pipeline.render_png(message_component, {"text": "😀"})

        assert isinstance(exc_info.value.__cause__, EmojiResolutionError)
        assert fake_rasterizer.calls == []

    @pytest.mark.asyncio
    async def test_missing_base_font(
        self, test_settings, tmp_path, message_component, fake_rasterizer, asset_cache
    ):
        settings = test_settings.model_copy(update={"base_font_path": tmp_path / "missing.ttf"})
        pipeline = RenderPipeline(
            layout_engine=BasicLayoutEngine(),
            rasterizer=fake_rasterizer,
            cache=asset_cache,
            settings=settings,
        )

        with pytest.raises(RenderError) as exc_info:
            await pipeline.render_png(message_component, {"text": "Hello"})

        assert isinstance(exc_info.value.__cause__, BaseFontError)

    @pytest.mark.asyncio
    async def test_rasterizer_failure(self, render_pipeline, message_component, fake_rasterizer):
        def broken(svg, fit_to_width):
            raise RasterizationError("cairo missing")

        fake_rasterizer.rasterize = broken

        with pytest.raises(RenderError) as exc_info:
            await render_pipeline.render_png(message_component, {"text": "Hello"})

        assert isinstance(exc_info.value.__cause__, RasterizationError)

    @pytest.mark.asyncio
    async def test_invalid_options_rejected_before_rendering(
        self, render_pipeline, message_component, fake_rasterizer
    ):
        with pytest.raises(InvalidRenderOptionsError):
            await render_pipeline.render_png(message_component, {"text": "x"}, {"width": -1})

        assert fake_rasterizer.calls == []


class TestImageResponse:
    """Test streamed image responses."""

    @pytest.mark.asyncio
    async def test_response_headers_and_body(self, render_pipeline, message_component):
        response = await render_pipeline.image_response(message_component, {"text": "Hello"})

        assert isinstance(response, StreamingResponse)
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == PROD_CACHE_CONTROL
        assert_valid_png(await _read_body(response), width=1200)

    @pytest.mark.asyncio
    async def test_development_disables_caching(
        self,
        test_settings,
        message_component,
        fake_rasterizer,
        asset_cache,
        mock_fonts_client,
        mock_emoji_loader,
    ):
        pipeline = RenderPipeline(
            layout_engine=BasicLayoutEngine(),
            rasterizer=fake_rasterizer,
            cache=asset_cache,
            fonts_client=mock_fonts_client,
            emoji_loader=mock_emoji_loader,
            settings=test_settings.model_copy(update={"environment": "development"}),
        )

        response = await pipeline.image_response(message_component, {"text": "Hello"})

        assert response.headers["cache-control"] == DEV_CACHE_CONTROL

    @pytest.mark.asyncio
    async def test_caller_headers_and_status(self, render_pipeline, message_component):
        response = await render_pipeline.image_response(
            message_component,
            {"text": "Hello"},
            {"headers": {"Cache-Control": "max-age=60", "X-Card": "hello"}, "status": 201},
        )

        assert response.status_code == 201
        assert response.headers["cache-control"] == "max-age=60"
        assert response.headers["x-card"] == "hello"
        assert response.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_failed_render_raises_before_response(
        self, render_pipeline, message_component, mock_emoji_loader
    ):
        mock_emoji_loader.load_data_uri.side_effect = EmojiLoadError("down")

        with pytest.raises(RenderError):
            await render_pipeline.image_response(message_component, {"text": "😀"})
