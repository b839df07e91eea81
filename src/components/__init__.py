"""
Components
==========

Bundled components that can be rendered to images.
"""

from src.components.og_card import OgCard

__all__ = ["OgCard"]
