"""
Emoji Assets
============

Codepoint lookup and SVG image loading for emoji glyphs, backed by public
emoji image sets on CDNs.
"""

import base64
from typing import Callable, Dict, Optional, Any, Union

import aiohttp

from src.config.logging import get_logger
from src.models.schemas import EmojiStyle

logger = get_logger(__name__)

ZWJ = "\u200d"
VARIATION_SELECTOR_16 = "\ufe0f"

SVG_DATA_URI_PREFIX = "data:image/svg+xml;base64,"

# Prefixes get the upper-cased code and ".svg" appended.
EMOJI_APIS: Dict[EmojiStyle, Union[str, Callable[[str], str]]] = {
    EmojiStyle.TWEMOJI: lambda code: (
        f"https://cdnjs.cloudflare.com/ajax/libs/twemoji/14.0.2/svg/{code.lower()}.svg"
    ),
    EmojiStyle.OPENMOJI: "https://cdn.jsdelivr.net/npm/@svgmoji/openmoji@2.0.0/svg/",
    EmojiStyle.BLOBMOJI: "https://cdn.jsdelivr.net/npm/@svgmoji/blob@2.0.0/svg/",
    EmojiStyle.NOTO: "https://cdn.jsdelivr.net/gh/svgmoji/svgmoji/packages/svgmoji__noto/svg/",
    EmojiStyle.FLUENT: lambda code: (
        "https://cdn.jsdelivr.net/gh/shuding/fluentui-emoji-unicode/assets/"
        f"{code.lower()}_color.svg"
    ),
    EmojiStyle.FLUENT_FLAT: lambda code: (
        "https://cdn.jsdelivr.net/gh/shuding/fluentui-emoji-unicode/assets/"
        f"{code.lower()}_flat.svg"
    ),
}


class EmojiLoadError(Exception):
    """Exception raised when an emoji image cannot be loaded."""

    pass


def to_code_point(text: str) -> str:
    """Hex codepoints of ``text`` joined with ``-``."""
    return "-".join(f"{ord(char):x}" for char in text)


def get_icon_code(text: str) -> str:
    """
    Image-set code for an emoji.

    Variation selectors are dropped unless the emoji is a ZWJ sequence, whose
    file names keep them.
    """
    if ZWJ not in text:
        text = text.replace(VARIATION_SELECTOR_16, "")
    return to_code_point(text)


def emoji_url(code: str, style: EmojiStyle = EmojiStyle.TWEMOJI) -> str:
    """URL of the SVG for ``code`` in ``style``."""
    api = EMOJI_APIS.get(style, EMOJI_APIS[EmojiStyle.TWEMOJI])
    if callable(api):
        return api(code)
    return f"{api}{code.upper()}.svg"


def to_data_uri(svg: bytes) -> str:
    """Embed SVG bytes in a base64 data URI."""
    return SVG_DATA_URI_PREFIX + base64.b64encode(svg).decode("ascii")


class EmojiLoader:
    """
    Loads emoji SVGs from the configured image set.

    Any HTTP error status from the CDN, a 404 for an emoji the image set
    lacks included, raises ``EmojiLoadError`` rather than passing the error
    body on as an image. Whether that fails the render is decided by the
    asset resolver's emoji failure policy.
    """

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="emoji_loader")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            # Requests have no overall deadline
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def load_emoji(self, code: str, style: EmojiStyle = EmojiStyle.TWEMOJI) -> bytes:
        """
        Load the SVG image for an emoji code.

        Raises:
            EmojiLoadError: If the CDN does not return the image
        """
        url = emoji_url(code, style)
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status >= 400:
                raise EmojiLoadError(f"Emoji {code} not available: {response.status}")
            svg = await response.read()

        self.logger.debug("Emoji loaded", code=code, style=style.value, size=len(svg))
        return svg

    async def load_data_uri(self, text: str, style: EmojiStyle = EmojiStyle.TWEMOJI) -> str:
        """Data URI of the image for the emoji ``text``."""
        return to_data_uri(await self.load_emoji(get_icon_code(text), style))


# Global loader instance
_emoji_loader: Optional[EmojiLoader] = None


def get_emoji_loader() -> EmojiLoader:
    """Get or create the global emoji loader."""
    global _emoji_loader
    if _emoji_loader is None:
        _emoji_loader = EmojiLoader()
    return _emoji_loader


async def close_emoji_loader() -> None:
    """Close the global emoji loader."""
    global _emoji_loader
    if _emoji_loader:
        await _emoji_loader.close()
        _emoji_loader = None
