"""
Rendering Module
===============

Component to PNG rendering.

Components:
- markup: Convert component markup to a document tree
- layout: Lay out a document tree into SVG, resolving dynamic assets
- rasterizer: SVG to PNG conversion
- pipeline: End-to-end rendering and image responses
"""
