"""
OG Image Routes
===============

FastAPI routes serving rendered social preview images.
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from src.components import OgCard
from src.core.rendering.pipeline import image_response

router = APIRouter(tags=["Images"])


@router.get("/og", response_class=StreamingResponse)
async def og_image(
    message: Optional[str] = Query(None, description="Text shown on the card"),
) -> StreamingResponse:
    """Render the default card as a PNG."""
    return await image_response(OgCard, {"text": message})
