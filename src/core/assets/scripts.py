"""
Script Classifier
=================

Maps a script code reported by the layout engine to a Google Fonts family.
"""

from typing import Dict

FALLBACK_SCRIPT = "unknown"

# Curated: dense non-Latin glyph sets only. Everything else degrades to the
# fallback family, so large scripts missing here render as missing glyphs.
LANGUAGE_FONT_MAP: Dict[str, str] = {
    "zh": "Noto+Sans+SC",
    "ja": "Noto+Sans+JP",
    "ko": "Noto+Sans+KR",
    "th": "Noto+Sans+Thai",
    "he": "Noto+Sans+Hebrew",
    "ar": "Noto+Sans+Arabic",
    "bn": "Noto+Sans+Bengali",
    "ta": "Noto+Sans+Tamil",
    "te": "Noto+Sans+Telugu",
    "ml": "Noto+Sans+Malayalam",
    "devanagari": "Noto+Sans+Devanagari",
    FALLBACK_SCRIPT: "Noto+Sans",
}


def normalize_script_code(script_code: str) -> str:
    """Return ``script_code`` if it is known, else the fallback code."""
    return script_code if script_code in LANGUAGE_FONT_MAP else FALLBACK_SCRIPT


def classify_script(script_code: str) -> str:
    """Font family identifier for ``script_code``."""
    return LANGUAGE_FONT_MAP[normalize_script_code(script_code)]
