"""
Base Font
=========

The font every render starts with when the caller supplies none. It covers
Latin text; everything else goes through the asset resolver.
"""

from pathlib import Path
from typing import List, Optional

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.core.assets.google_fonts import GoogleFontsClient
from src.models.schemas import FontDescriptor

logger = get_logger(__name__)

BASE_FONT_FAMILY = "Noto+Sans"
# Printable ASCII and Latin-1 Supplement
LATIN_COVERAGE = "".join(chr(cp) for cp in range(0x20, 0x7F)) + "".join(
    chr(cp) for cp in range(0xA0, 0x100)
)

_base_font: Optional[FontDescriptor] = None


class BaseFontError(Exception):
    """Exception raised when the base font is unavailable."""

    pass


def load_base_font(settings: Optional[Settings] = None) -> FontDescriptor:
    """
    Load the base font from disk, once per process.

    Raises:
        BaseFontError: If the font file cannot be read
    """
    global _base_font
    if _base_font is not None:
        return _base_font

    settings = settings or get_settings()
    path: Path = settings.base_font_path
    try:
        data = path.read_bytes()
    except OSError as e:
        raise BaseFontError(f"Base font not readable at {path}: {e}") from e

    _base_font = FontDescriptor(
        name=settings.base_font_name,
        data=data,
        weight=settings.base_font_weight,
        style="normal",
    )
    logger.info("Base font loaded", path=str(path), size=len(data))
    return _base_font


def reset_base_font() -> None:
    """Forget the loaded base font."""
    global _base_font
    _base_font = None


def default_fonts(settings: Optional[Settings] = None) -> List[FontDescriptor]:
    """Font list used when render options carry none."""
    return [load_base_font(settings)]


def base_font_available(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return _base_font is not None or settings.base_font_path.is_file()


async def ensure_base_font(
    client: GoogleFontsClient, settings: Optional[Settings] = None
) -> Path:
    """
    Download the Latin subset of Noto Sans to the base font path if missing.

    Returns:
        Path of the base font file
    """
    settings = settings or get_settings()
    path: Path = settings.base_font_path
    if path.is_file():
        return path

    logger.info("Base font missing, downloading", path=str(path), family=BASE_FONT_FAMILY)
    data = await client.load_font(BASE_FONT_FAMILY, LATIN_COVERAGE)
    if not data:
        raise BaseFontError(f"Font host returned no data for {BASE_FONT_FAMILY}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info("Base font downloaded", path=str(path), size=len(data))
    return path
