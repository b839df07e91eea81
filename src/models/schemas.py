"""
Pydantic Models and Schemas
===========================

Core data models for dynamic assets, render options, document trees and
API responses.
"""

from typing import Optional, List, Dict, Any, Union, Literal
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


EMOJI_KIND = "emoji"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class EmojiStyle(str, Enum):
    """Emoji image sets that can back emoji glyphs."""
    TWEMOJI = "twemoji"
    OPENMOJI = "openmoji"
    BLOBMOJI = "blobmoji"
    NOTO = "noto"
    FLUENT = "fluent"
    FLUENT_FLAT = "fluentFlat"


# Asset Models
class AssetRequest(BaseModel):
    """A request for an asset able to render ``text``.

    ``kind`` is either ``"emoji"`` or a script code such as ``"ja"``.
    Two requests with equal fields are the same request.
    """
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="'emoji' or a script code")
    text: str = Field(..., description="Literal text the asset must cover")

    @property
    def is_emoji(self) -> bool:
        return self.kind == EMOJI_KIND


class FontDescriptor(BaseModel):
    """A font binary plus the metadata the layout engine needs."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Font family name")
    data: bytes = Field(..., repr=False, description="TrueType/OpenType binary")
    weight: int = Field(400, ge=1, le=1000, description="Font weight")
    style: Literal["normal", "italic"] = Field("normal", description="Font style")


# Either a font or a data URI embedding an SVG image.
Asset = Union[FontDescriptor, str]


# Rendering Models
class RenderOptions(BaseModel):
    """Options for rendering a component to PNG. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    width: int = Field(1200, gt=0, description="Image width")
    height: int = Field(630, gt=0, description="Image height")
    debug: bool = Field(False, description="Draw layout debug outlines")
    fonts: Optional[List[FontDescriptor]] = Field(
        None, description="Fonts to use; defaults to the embedded base font"
    )
    emoji: EmojiStyle = Field(EmojiStyle.TWEMOJI, description="Emoji image set")

    # Response options
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra response headers")
    status: Optional[int] = Field(None, ge=100, le=599, description="Response status override")


class RenderedComponent(BaseModel):
    """Markup and stylesheet produced by a component."""
    html: str = Field(..., description="Component markup")
    css: str = Field("", description="Component stylesheet")


class DocumentNode(BaseModel):
    """Element of the document tree consumed by the layout engine."""
    type: str = Field(..., description="Tag name")
    props: Dict[str, str] = Field(default_factory=dict, description="Element attributes")
    style: Dict[str, str] = Field(default_factory=dict, description="Resolved CSS declarations")
    children: List[Union["DocumentNode", str]] = Field(default_factory=list)

    def text_content(self) -> str:
        """Concatenated text of this node and its descendants."""
        parts: List[str] = []
        for child in self.children:
            parts.append(child if isinstance(child, str) else child.text_content())
        return "".join(parts)


# Update forward reference
DocumentNode.model_rebuild()


# Health Check Models
class HealthStatus(BaseModel):
    """Health check status."""
    status: Literal["healthy", "unhealthy", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    base_font: bool = Field(..., description="Base font available")
    cached_assets: int = Field(0, ge=0, description="Number of cached dynamic assets")


# Error Models
class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
