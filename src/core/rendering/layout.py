"""
Layout Engine
=============

Turns a document tree into an SVG image. The render pipeline depends only on
the ``LayoutEngine`` protocol; ``BasicLayoutEngine`` is a small built-in
implementation that stacks text blocks vertically.

While laying out, text the supplied fonts cannot render is handed to the
``load_additional_asset`` callback: once per emoji, and once per script with
the unique characters of that script. The callbacks run concurrently and the
engine returns only after all of them have settled.

Glyphs a font covers are drawn as ``<path>`` outlines taken from that font,
so the output does not depend on the fonts installed where it is rasterized.
Only characters no parsed font covers are left as ``<text>``.
"""

import asyncio
import base64
import io
import re
import unicodedata
from dataclasses import dataclass, field
from functools import lru_cache
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)
from xml.sax.saxutils import escape, quoteattr

import emoji
from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.ttLib import TTFont
from fontTools.unicodedata import script as unicode_script

from src.config.logging import get_logger
from src.core.assets.scripts import FALLBACK_SCRIPT
from src.models.schemas import EMOJI_KIND, Asset, DocumentNode, FontDescriptor

logger = get_logger(__name__)

LoadAdditionalAsset = Callable[[str, str], Awaitable[Optional[Asset]]]

# ISO 15924 script -> script code understood by the asset resolver
SCRIPT_CODES: Dict[str, str] = {
    "Hani": "zh",
    "Hira": "ja",
    "Kana": "ja",
    "Hang": "ko",
    "Thai": "th",
    "Hebr": "he",
    "Arab": "ar",
    "Beng": "bn",
    "Taml": "ta",
    "Telu": "te",
    "Mlym": "ml",
    "Deva": "devanagari",
}

LATIN_1: FrozenSet[int] = frozenset(range(0x20, 0x100))
INHERITED_PROPERTIES = ("color", "font-size", "font-weight", "font-style")
PX_VALUE = re.compile(r"(-?\d+(?:\.\d+)?)px")

DEFAULT_FONT_SIZE = 16.0
LINE_HEIGHT = 1.2
BLOCK_GAP = 0.4

TEXT = "text"
FALLBACK = "fallback"


class LayoutEngine(Protocol):
    """Converts a document tree into an SVG document."""

    async def render(
        self,
        tree: DocumentNode,
        *,
        width: int,
        height: int,
        debug: bool,
        fonts: Sequence[FontDescriptor],
        load_additional_asset: LoadAdditionalAsset,
    ) -> str:
        ...


@dataclass
class Segment:
    """A run of text drawn the same way."""

    text: str
    kind: str
    script: Optional[str] = None


@dataclass
class TextBlock:
    segments: List[Segment]
    style: Dict[str, str] = field(default_factory=dict)

    @property
    def font_size(self) -> float:
        return parse_px(self.style.get("font-size"), DEFAULT_FONT_SIZE)


def parse_px(value: Optional[str], default: float = 0.0) -> float:
    """First pixel length in a CSS value."""
    if not value:
        return default
    match = PX_VALUE.search(value)
    return float(match.group(1)) if match else default


def detect_script_code(char: str) -> str:
    return SCRIPT_CODES.get(unicode_script(char), FALLBACK_SCRIPT)


class GlyphOutlines:
    """Outlines and advance widths of the glyphs in one font."""

    def __init__(self, font: TTFont) -> None:
        self.cmap: Dict[int, str] = font.getBestCmap() or {}
        self.units_per_em: int = font["head"].unitsPerEm
        self.glyph_set = font.getGlyphSet()
        self._paths: Dict[str, str] = {}

    def covers(self, char: str) -> bool:
        return ord(char) in self.cmap

    def advance(self, char: str, font_size: float) -> float:
        glyph = self.glyph_set[self.cmap[ord(char)]]
        return glyph.width * font_size / self.units_per_em

    def path(self, char: str) -> str:
        """SVG path data of the glyph for ``char`` in font units, y up."""
        name = self.cmap[ord(char)]
        if name not in self._paths:
            pen = SVGPathPen(self.glyph_set)
            self.glyph_set[name].draw(pen)
            self._paths[name] = pen.getCommands()
        return self._paths[name]


@lru_cache(maxsize=128)
def load_outlines(data: bytes) -> Optional[GlyphOutlines]:
    """Parsed outlines of a TrueType/OpenType font, or None if unreadable."""
    try:
        return GlyphOutlines(TTFont(io.BytesIO(data), lazy=True))
    except Exception as e:
        logger.debug("Unreadable font data, assuming Latin-1 coverage", error=str(e))
        return None


def font_coverage(fonts: Sequence[FontDescriptor]) -> FrozenSet[int]:
    """Codepoints rendered by at least one of ``fonts``."""
    covered: FrozenSet[int] = frozenset()
    for font in fonts:
        outlines = load_outlines(font.data)
        covered |= frozenset(outlines.cmap) if outlines is not None else LATIN_1
    return covered


def parse_font_weight(value: Optional[str]) -> int:
    if value == "bold":
        return 700
    if value and value.isdigit():
        return int(value)
    return 400


def segment_text(text: str, covered: FrozenSet[int]) -> List[Segment]:
    """Split text into emoji, covered, and per-script uncovered runs."""
    # Single-codepoint matches a font covers (©, ™) stay text
    emoji_at = {
        match["match_start"]: match
        for match in emoji.emoji_list(text)
        if len(match["emoji"]) > 1 or ord(match["emoji"]) not in covered
    }
    segments: List[Segment] = []
    index = 0
    while index < len(text):
        match = emoji_at.get(index)
        if match is not None:
            segments.append(Segment(match["emoji"], EMOJI_KIND))
            index = match["match_end"]
            continue

        char = text[index]
        if ord(char) in covered or char.isspace():
            segment = Segment(char, TEXT)
        else:
            segment = Segment(char, FALLBACK, detect_script_code(char))

        previous = segments[-1] if segments else None
        if (
            previous is not None
            and previous.kind == segment.kind
            and segment.kind != EMOJI_KIND
            and previous.script == segment.script
        ):
            previous.text += char
        else:
            segments.append(segment)
        index += 1
    return segments


def collect_asset_requests(blocks: Sequence[TextBlock]) -> List[Tuple[str, str]]:
    """Asset requests for every emoji and every uncovered script in ``blocks``."""
    emojis: Dict[str, None] = {}
    scripts: Dict[str, Dict[str, None]] = {}
    for block in blocks:
        for segment in block.segments:
            if segment.kind == EMOJI_KIND:
                emojis[segment.text] = None
            elif segment.kind == FALLBACK:
                chars = scripts.setdefault(segment.script or FALLBACK_SCRIPT, {})
                chars.update(dict.fromkeys(segment.text))

    requests = [(EMOJI_KIND, text) for text in emojis]
    requests.extend((code, "".join(chars)) for code, chars in scripts.items())
    return requests


def _estimate_advance(char: str, font_size: float) -> float:
    wide = unicodedata.east_asian_width(char) in ("W", "F")
    return font_size if wide else font_size * 0.55


def _advance(segment: Segment, font_size: float) -> float:
    if segment.kind == EMOJI_KIND:
        return font_size
    return sum(_estimate_advance(char, font_size) for char in segment.text)


Measure = Callable[[Segment, float], float]


def wrap_segments(
    segments: Sequence[Segment],
    font_size: float,
    max_width: float,
    measure: Measure = _advance,
) -> List[List[Segment]]:
    """Greedy character wrap; emoji never split."""
    lines: List[List[Segment]] = [[]]
    line_width = 0.0
    for segment in segments:
        pieces = [segment] if segment.kind == EMOJI_KIND else [
            Segment(char, segment.kind, segment.script) for char in segment.text
        ]
        for piece in pieces:
            advance = measure(piece, font_size)
            if lines[-1] and line_width + advance > max_width:
                lines.append([])
                line_width = 0.0
                if piece.text.isspace():
                    continue
            line = lines[-1]
            mergeable = (
                line
                and piece.kind != EMOJI_KIND
                and line[-1].kind == piece.kind
                and line[-1].script == piece.script
            )
            if mergeable:
                line[-1] = Segment(line[-1].text + piece.text, piece.kind, piece.script)
            else:
                line.append(piece)
            line_width += advance
    return [line for line in lines if line]


@dataclass
class FontFaces:
    """Parsed fonts a block is drawn with."""

    base: List[GlyphOutlines]
    fallback: Dict[str, GlyphOutlines] = field(default_factory=dict)

    def pick(self, char: str, script: Optional[str] = None) -> Optional[GlyphOutlines]:
        """First font covering ``char``, the script's fallback font before the base fonts."""
        preferred = self.fallback.get(script) if script else None
        if preferred is not None and preferred.covers(char):
            return preferred
        for outlines in self.base:
            if outlines.covers(char):
                return outlines
        return None

    def measure(self, segment: Segment, font_size: float) -> float:
        if segment.kind == EMOJI_KIND:
            return font_size
        width = 0.0
        for char in segment.text:
            outlines = self.pick(char, segment.script)
            if outlines is None:
                width += _estimate_advance(char, font_size)
            else:
                width += outlines.advance(char, font_size)
        return width


def _css_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class BasicLayoutEngine:
    """Stacks the text blocks of a document tree into an SVG."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="basic_layout_engine")

    async def render(
        self,
        tree: DocumentNode,
        *,
        width: int,
        height: int,
        debug: bool,
        fonts: Sequence[FontDescriptor],
        load_additional_asset: LoadAdditionalAsset,
    ) -> str:
        covered = font_coverage(fonts)
        blocks: List[TextBlock] = []
        self._collect_blocks(tree, {}, covered, blocks)

        requests = collect_asset_requests(blocks)
        assets = await self._load_assets(requests, load_additional_asset)

        all_fonts = list(fonts)
        fallback_fonts: Dict[str, FontDescriptor] = {}
        emoji_images: Dict[str, str] = {}
        for (kind, text), asset in zip(requests, assets):
            if isinstance(asset, FontDescriptor):
                all_fonts.append(asset)
                fallback_fonts[kind] = asset
            elif isinstance(asset, str) and kind == EMOJI_KIND:
                emoji_images[text] = asset

        self.logger.debug(
            "Layout assets settled",
            blocks=len(blocks),
            requested=len(requests),
            fonts=len(all_fonts),
            emojis=len(emoji_images),
        )
        return self._build_svg(
            tree, blocks, width, height, debug, all_fonts, fallback_fonts, emoji_images
        )

    async def _load_assets(
        self, requests: List[Tuple[str, str]], load_additional_asset: LoadAdditionalAsset
    ) -> List[Optional[Asset]]:
        results = await asyncio.gather(
            *(load_additional_asset(kind, text) for kind, text in requests),
            return_exceptions=True,
        )
        # Every callback has settled; surface the first failure
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    def _collect_blocks(
        self,
        node: DocumentNode,
        inherited: Dict[str, str],
        covered: FrozenSet[int],
        blocks: List[TextBlock],
    ) -> None:
        style = {**inherited, **{k: v for k, v in node.style.items() if k in INHERITED_PROPERTIES}}
        if any(isinstance(child, str) for child in node.children):
            text = " ".join(node.text_content().split())
            if text:
                blocks.append(TextBlock(segment_text(text, covered), style))
            return
        for child in node.children:
            if isinstance(child, DocumentNode):
                self._collect_blocks(child, style, covered, blocks)

    def _find_box(self, node: DocumentNode) -> Tuple[str, float]:
        """Canvas background and padding from the first node declaring a background."""
        background = node.style.get("background-color") or node.style.get("background")
        if background and "url(" not in background and "gradient" not in background:
            return background, parse_px(node.style.get("padding"))
        for child in node.children:
            if isinstance(child, DocumentNode):
                found = self._find_box(child)
                if found[0] != "white":
                    return found
        return "white", parse_px(node.style.get("padding"))

    def _build_svg(
        self,
        tree: DocumentNode,
        blocks: List[TextBlock],
        width: int,
        height: int,
        debug: bool,
        fonts: List[FontDescriptor],
        fallback_fonts: Dict[str, FontDescriptor],
        emoji_images: Dict[str, str],
    ) -> str:
        background, padding = self._find_box(tree)
        fallback_names = {font.name for font in fallback_fonts.values()}
        base_fonts = [font for font in fonts if font.name not in fallback_names]
        base_families = [font.name for font in base_fonts]
        fallback_outlines: Dict[str, GlyphOutlines] = {}
        for script, font in fallback_fonts.items():
            outlines = load_outlines(font.data)
            if outlines is not None:
                fallback_outlines[script] = outlines

        parts: List[str] = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
            f'viewBox="0 0 {width} {height}">'
        ]
        if fonts:
            # Used only by text left unoutlined
            parts.append("<defs><style><![CDATA[")
            for font in fonts:
                data = base64.b64encode(font.data).decode("ascii")
                parts.append(
                    f"@font-face {{ font-family: {_css_string(font.name)}; "
                    f"src: url(data:font/ttf;base64,{data}); "
                    f"font-weight: {font.weight}; font-style: {font.style}; }}"
                )
            parts.append("]]></style></defs>")
        parts.append(f'<rect width="{width}" height="{height}" fill={quoteattr(background)}/>')

        max_width = max(width - 2 * padding, 1.0)
        top = padding
        for block in blocks:
            font_size = block.font_size
            color = block.style.get("color", "black")
            weight = block.style.get("font-weight", "normal")
            numeric_weight = parse_font_weight(weight)
            ranked = sorted(base_fonts, key=lambda font: abs(font.weight - numeric_weight))
            faces = FontFaces(
                base=[o for o in (load_outlines(font.data) for font in ranked) if o is not None],
                fallback=fallback_outlines,
            )

            for line in wrap_segments(block.segments, font_size, max_width, faces.measure):
                baseline = top + font_size
                x = padding
                spans: List[str] = []
                glyphs: List[str] = []
                images: List[str] = []
                for segment in line:
                    families = list(base_families)
                    if segment.script in fallback_fonts:
                        families.insert(0, fallback_fonts[segment.script].name)

                    if segment.kind == EMOJI_KIND:
                        if segment.text in emoji_images:
                            href = quoteattr(emoji_images[segment.text])
                            images.append(
                                f'<image x="{x:.1f}" y="{top:.1f}" width="{font_size:.1f}" '
                                f'height="{font_size:.1f}" href={href}/>'
                            )
                        else:
                            spans.append(self._tspan(x, segment.text, families))
                        x += font_size
                        continue

                    run_x, run = x, ""
                    for char in segment.text:
                        outlines = faces.pick(char, segment.script)
                        if outlines is None:
                            if not run:
                                run_x = x
                            run += char
                            x += _estimate_advance(char, font_size)
                            continue
                        if run:
                            spans.append(self._tspan(run_x, run, families))
                            run = ""
                        glyph = self._glyph_path(outlines, char, x, baseline, font_size)
                        if glyph:
                            glyphs.append(glyph)
                        x += outlines.advance(char, font_size)
                    if run:
                        spans.append(self._tspan(run_x, run, families))

                if glyphs:
                    parts.append(f'<g fill={quoteattr(color)}>{"".join(glyphs)}</g>')
                if spans:
                    parts.append(
                        f'<text y="{baseline:.1f}" font-size="{font_size:g}" '
                        f"fill={quoteattr(color)} font-weight={quoteattr(weight)} "
                        f'xml:space="preserve">{"".join(spans)}</text>'
                    )
                parts.extend(images)
                if debug:
                    parts.append(
                        f'<rect x="{padding:.1f}" y="{top:.1f}" width="{x - padding:.1f}" '
                        f'height="{font_size * LINE_HEIGHT:.1f}" fill="none" stroke="red"/>'
                    )
                top += font_size * LINE_HEIGHT
            top += font_size * BLOCK_GAP

        if debug:
            parts.append(
                f'<rect x="0.5" y="0.5" width="{width - 1}" height="{height - 1}" '
                'fill="none" stroke="blue"/>'
            )
        parts.append("</svg>")
        return "".join(parts)

    @staticmethod
    def _tspan(x: float, text: str, families: List[str]) -> str:
        family = ", ".join(_css_string(name) for name in families) or "sans-serif"
        return f'<tspan x="{x:.1f}" font-family={quoteattr(family)}>{escape(text)}</tspan>'

    @staticmethod
    def _glyph_path(
        outlines: GlyphOutlines, char: str, x: float, baseline: float, font_size: float
    ) -> Optional[str]:
        """Outline of one glyph placed on the baseline; None for blank glyphs."""
        d = outlines.path(char)
        if not d:
            return None
        scale = font_size / outlines.units_per_em
        return (
            f'<path transform="translate({x:.2f},{baseline:.2f}) '
            f'scale({scale:.6f},{-scale:.6f})" d="{d}"/>'
        )
