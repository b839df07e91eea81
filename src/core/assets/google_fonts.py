"""
Google Fonts Client
===================

Fetches a font binary covering a given text from the Google Fonts CSS API.

The stylesheet is requested with the exact text to cover, so the host only
returns the glyph subset needed. The User-Agent makes the host answer with
TrueType sources, which is what the layout engine can read.
"""

import re
from typing import Optional, Dict, Any
from urllib.parse import quote

import aiohttp
from yarl import URL

from src.config.logging import get_logger
from src.config.settings import get_settings

logger = get_logger(__name__)

FONT_SOURCE_PATTERN = re.compile(r"src: url\((.+?)\) format\('(opentype|truetype)'\)")

# Characters encodeURIComponent leaves alone
SAFE_URI_CHARS = "-_.!~*'()"


class FontFetchError(Exception):
    """Exception raised when a font cannot be fetched."""

    pass


class MalformedStylesheetError(FontFetchError):
    """The stylesheet has no usable TrueType/OpenType source."""

    pass


def parse_font_stylesheet(css: str) -> str:
    """
    Extract the first TrueType/OpenType resource URL from a stylesheet.

    Args:
        css: Stylesheet text returned by the font API

    Returns:
        The font resource URL

    Raises:
        MalformedStylesheetError: If no ``src: url(...) format(...)`` is present
    """
    match = FONT_SOURCE_PATTERN.search(css)
    if match is None:
        raise MalformedStylesheetError("Failed to load font: no TrueType source in stylesheet")
    return match.group(1).strip("'\"")


class GoogleFontsClient:
    """Client for the Google Fonts CSS API."""

    def __init__(self, css_url: Optional[str] = None, user_agent: Optional[str] = None):
        self.settings = get_settings()
        self.css_url = css_url or self.settings.google_fonts_css_url
        self.user_agent = user_agent or self.settings.google_fonts_user_agent
        self.logger: Any = logger.bind(component="google_fonts_client")
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

    def build_stylesheet_url(self, family: str, text: str) -> str:
        """Stylesheet URL for ``family`` restricted to the glyphs of ``text``."""
        return f"{self.css_url}?family={family}&text={quote(text, safe=SAFE_URI_CHARS)}"

    async def _fetch_text(self, url: str, headers: Dict[str, str]) -> str:
        session = await self._get_session()
        async with session.get(URL(url, encoded=True), headers=headers) as response:
            if response.status >= 400:
                raise FontFetchError(f"Stylesheet request failed: {response.status}")
            return await response.text()

    async def _fetch_bytes(self, url: str) -> bytes:
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status >= 400:
                raise FontFetchError(f"Font download failed: {response.status}")
            return await response.read()

    async def load_font(self, family: str, text: str) -> Optional[bytes]:
        """
        Fetch a font binary for ``family`` covering ``text``.

        Args:
            family: Google Fonts family identifier, e.g. ``Noto+Sans+JP``
            text: Literal text the font must cover

        Returns:
            Raw font bytes, or None when either argument is empty

        Raises:
            FontFetchError: On HTTP failure
            MalformedStylesheetError: If the stylesheet has no usable source
        """
        if not family or not text:
            return None

        stylesheet_url = self.build_stylesheet_url(family, text)
        css = await self._fetch_text(stylesheet_url, {"User-Agent": self.user_agent})
        resource_url = parse_font_stylesheet(css)

        data = await self._fetch_bytes(resource_url)
        self.logger.debug("Font fetched", family=family, text=text, size=len(data))
        return data


# Global client instance
_google_fonts_client: Optional[GoogleFontsClient] = None


def get_google_fonts_client() -> GoogleFontsClient:
    """Get or create the global Google Fonts client."""
    global _google_fonts_client
    if _google_fonts_client is None:
        _google_fonts_client = GoogleFontsClient()
    return _google_fonts_client


async def close_google_fonts_client() -> None:
    """Close the global Google Fonts client."""
    global _google_fonts_client
    if _google_fonts_client:
        await _google_fonts_client.close()
        _google_fonts_client = None
