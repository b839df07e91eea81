"""
Asset Resolver
==============

The capability handed to the layout engine for text it cannot render with
the fonts it has. Each call names a kind (``"emoji"`` or a script code) and
the literal text to cover, and yields a font, an inline SVG data URI, or
nothing. Calls may arrive in any order and concurrently.

Both asset kinds produce an ``AssetResolution``; whether an unresolved emoji
aborts the render or degrades like a missing font is decided in one place,
``AssetResolver._settle``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.core.assets.cache import AssetCache, get_asset_cache, key_for
from src.core.assets.emoji import EmojiLoader, get_emoji_loader
from src.core.assets.google_fonts import GoogleFontsClient, get_google_fonts_client
from src.core.assets.scripts import classify_script, normalize_script_code
from src.models.schemas import Asset, AssetRequest, EmojiStyle, FontDescriptor

logger = get_logger(__name__)

FALLBACK_FONT_PREFIX = "og_"


class EmojiFailurePolicy(str, Enum):
    """What an unresolved emoji does to the render."""
    ABORT = "abort"
    DEGRADE = "degrade"


class EmojiResolutionError(Exception):
    """Exception raised when an emoji asset cannot be resolved."""

    pass


@dataclass(frozen=True)
class AssetResolution:
    """Outcome of one asset request: an asset, or the reason there is none."""

    request: AssetRequest
    asset: Optional[Asset] = None
    error: Optional[BaseException] = None

    @property
    def resolved(self) -> bool:
        return self.asset is not None


def fallback_font_name(script_code: str, text: str) -> str:
    """Family name unique per (script code, text), distinct from any base font."""
    return f"{FALLBACK_FONT_PREFIX}{script_code}_fallback_{text}"


class AssetResolver:
    """Resolves dynamic assets through a shared cache."""

    def __init__(
        self,
        cache: Optional[AssetCache] = None,
        fonts_client: Optional[GoogleFontsClient] = None,
        emoji_loader: Optional[EmojiLoader] = None,
        emoji_style: EmojiStyle = EmojiStyle.TWEMOJI,
        emoji_failure_policy: Optional[EmojiFailurePolicy] = None,
    ):
        self.cache = cache if cache is not None else get_asset_cache()
        self.fonts_client = fonts_client if fonts_client is not None else get_google_fonts_client()
        self.emoji_loader = emoji_loader if emoji_loader is not None else get_emoji_loader()
        self.emoji_style = emoji_style
        self.emoji_failure_policy = emoji_failure_policy or EmojiFailurePolicy(
            get_settings().emoji_failure_policy
        )
        self.logger: Any = logger.bind(component="asset_resolver")

    async def load_additional_asset(self, kind: str, text: str) -> Optional[Asset]:
        """Layout engine callback: the asset for ``text``, or None."""
        return await self.resolve(AssetRequest(kind=kind, text=text))

    async def resolve(self, request: AssetRequest) -> Optional[Asset]:
        """
        Resolve a request through the cache.

        Raises:
            EmojiResolutionError: If an emoji cannot be resolved and the
                policy is ``abort``
        """
        key = key_for(request.kind, request.text)
        return await self.cache.get_or_compute(key, lambda: self._resolve_uncached(request))

    async def _resolve_uncached(self, request: AssetRequest) -> Optional[Asset]:
        resolution = await self.resolve_asset(request)
        return self._settle(resolution)

    async def resolve_asset(self, request: AssetRequest) -> AssetResolution:
        """Compute the asset for ``request`` without consulting the cache."""
        try:
            if request.is_emoji:
                asset: Optional[Asset] = await self.emoji_loader.load_data_uri(
                    request.text, self.emoji_style
                )
            else:
                asset = await self._load_font(request)
        except Exception as e:
            return AssetResolution(request=request, error=e)
        return AssetResolution(request=request, asset=asset)

    async def _load_font(self, request: AssetRequest) -> Optional[FontDescriptor]:
        script_code = normalize_script_code(request.kind)
        data = await self.fonts_client.load_font(classify_script(script_code), request.text)
        if not data:
            return None
        return FontDescriptor(
            name=fallback_font_name(script_code, request.text),
            data=data,
            weight=400,
            style="normal",
        )

    def _settle(self, resolution: AssetResolution) -> Optional[Asset]:
        """Apply the failure policy to a resolution."""
        if resolution.resolved or resolution.error is None:
            return resolution.asset

        request = resolution.request
        if request.is_emoji and self.emoji_failure_policy is EmojiFailurePolicy.ABORT:
            self.logger.error(
                "Failed to load emoji", text=request.text, error=str(resolution.error)
            )
            raise EmojiResolutionError(
                f"Failed to load emoji {request.text!r}: {resolution.error}"
            ) from resolution.error

        self.logger.warning(
            "Failed to load dynamic asset",
            kind=request.kind,
            text=request.text,
            error=str(resolution.error),
        )
        return None
