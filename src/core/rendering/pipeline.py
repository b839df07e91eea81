"""
Render Pipeline
===============

Component -> markup -> document tree -> SVG (layout engine, resolving
dynamic assets on demand) -> PNG (rasterizer) -> streamed HTTP response.

Nothing here is cached per render; only the asset resolver's results are
shared across renders through the process-wide asset cache.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.core.assets.cache import AssetCache, get_asset_cache
from src.core.assets.emoji import EmojiLoader
from src.core.assets.fonts import default_fonts
from src.core.assets.google_fonts import GoogleFontsClient
from src.core.assets.resolver import AssetResolver
from src.core.components import Component
from src.core.rendering.layout import BasicLayoutEngine, LayoutEngine
from src.core.rendering.markup import build_fragment, to_document_tree
from src.core.rendering.rasterizer import CairoSvgRasterizer, Rasterizer, png_dimensions
from src.models.schemas import RenderOptions

logger = get_logger(__name__)

DEV_CACHE_CONTROL = "no-cache, no-store"
PROD_CACHE_CONTROL = "public, immutable, no-transform, max-age=31536000"

OptionsInput = Union[RenderOptions, Mapping[str, Any], None]


class RenderError(Exception):
    """Exception raised when a component cannot be rendered to PNG."""

    pass


class InvalidRenderOptionsError(ValueError):
    """Exception raised when render options fail validation."""

    pass


def merge_render_options(
    options: OptionsInput = None, settings: Optional[Settings] = None
) -> RenderOptions:
    """
    Merge caller options over the configured defaults.

    Raises:
        InvalidRenderOptionsError: If the merged options are invalid
    """
    if isinstance(options, RenderOptions):
        return options

    settings = settings or get_settings()
    merged: Dict[str, Any] = {
        "width": settings.default_width,
        "height": settings.default_height,
        "debug": False,
        "emoji": settings.default_emoji_style,
    }
    merged.update({key: value for key, value in (options or {}).items() if value is not None})

    try:
        return RenderOptions(**merged)
    except ValidationError as e:
        raise InvalidRenderOptionsError(f"Invalid render options: {e}") from e


def cache_control(settings: Optional[Settings] = None) -> str:
    """``cache-control`` value for image responses in the current environment."""
    settings = settings or get_settings()
    return DEV_CACHE_CONTROL if settings.is_development else PROD_CACHE_CONTROL


class RenderPipeline:
    """Renders components to PNG images."""

    def __init__(
        self,
        layout_engine: Optional[LayoutEngine] = None,
        rasterizer: Optional[Rasterizer] = None,
        cache: Optional[AssetCache] = None,
        fonts_client: Optional[GoogleFontsClient] = None,
        emoji_loader: Optional[EmojiLoader] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.layout_engine = layout_engine if layout_engine is not None else BasicLayoutEngine()
        self.rasterizer = rasterizer if rasterizer is not None else CairoSvgRasterizer()
        self.cache = cache if cache is not None else get_asset_cache()
        self.fonts_client = fonts_client
        self.emoji_loader = emoji_loader
        self.logger: Any = logger.bind(component="render_pipeline")

    def create_resolver(self, options: RenderOptions) -> AssetResolver:
        """Asset resolver for one render, backed by the shared cache."""
        return AssetResolver(
            cache=self.cache,
            fonts_client=self.fonts_client,
            emoji_loader=self.emoji_loader,
            emoji_style=options.emoji,
        )

    async def render_svg(
        self, component: Component, props: Mapping[str, Any], options: RenderOptions
    ) -> str:
        """Lay out a component into an SVG document."""
        rendered = component.render(props)
        tree = to_document_tree(build_fragment(rendered))
        resolver = self.create_resolver(options)

        return await self.layout_engine.render(
            tree,
            width=options.width,
            height=options.height,
            debug=options.debug,
            fonts=options.fonts if options.fonts is not None else default_fonts(self.settings),
            load_additional_asset=resolver.load_additional_asset,
        )

    async def render_png(
        self,
        component: Component,
        props: Optional[Mapping[str, Any]] = None,
        options: OptionsInput = None,
    ) -> bytes:
        """
        Render a component to PNG bytes.

        Args:
            component: Component to render
            props: Component properties
            options: Render options, merged over the defaults

        Returns:
            PNG bytes, ``options.width`` pixels wide

        Raises:
            InvalidRenderOptionsError: If options are invalid
            RenderError: If any rendering step fails
        """
        render_options = merge_render_options(options, self.settings)
        props = props or {}

        try:
            self.logger.info(
                "Rendering component",
                component=repr(component),
                width=render_options.width,
                height=render_options.height,
            )
            svg = await self.render_svg(component, props, render_options)
            png = await asyncio.to_thread(self.rasterizer.rasterize, svg, render_options.width)
            png_width, png_height = png_dimensions(png)
        except Exception as e:
            error_msg = f"Render failed: {e}"
            self.logger.error("Render error", error=error_msg, exc_info=True)
            raise RenderError(error_msg) from e

        self.logger.info(
            "Render completed",
            size=len(png),
            png_width=png_width,
            png_height=png_height,
            cached_assets=len(self.cache),
        )
        return png

    async def image_response(
        self,
        component: Component,
        props: Optional[Mapping[str, Any]] = None,
        options: OptionsInput = None,
    ) -> StreamingResponse:
        """
        Render a component into a streamed ``image/png`` response.

        The image is rendered before the response exists, so a failed render
        never produces a partial body.
        """
        render_options = merge_render_options(options, self.settings)
        png = await self.render_png(component, props, render_options)

        headers = {
            "content-type": "image/png",
            "cache-control": cache_control(self.settings),
        }
        headers.update({name.lower(): value for name, value in render_options.headers.items()})

        async def body() -> AsyncIterator[bytes]:
            yield png

        return StreamingResponse(
            body(), status_code=render_options.status or 200, headers=headers
        )


# Global pipeline instance
_render_pipeline: Optional[RenderPipeline] = None


def get_render_pipeline() -> RenderPipeline:
    """Get or create the global render pipeline."""
    global _render_pipeline
    if _render_pipeline is None:
        _render_pipeline = RenderPipeline()
    return _render_pipeline


def reset_render_pipeline() -> None:
    """Drop the global render pipeline."""
    global _render_pipeline
    _render_pipeline = None


async def image_response(
    component: Component,
    props: Optional[Mapping[str, Any]] = None,
    options: OptionsInput = None,
) -> StreamingResponse:
    """Render ``component`` with the global pipeline into a PNG response."""
    return await get_render_pipeline().image_response(component, props, options)
