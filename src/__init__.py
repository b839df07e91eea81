"""
OG Image Render Service
=======================

Renders UI components to PNG images on demand, e.g. for social preview
("Open Graph") images, and serves them over HTTP.

This package provides:
- FastAPI endpoints streaming PNG responses
- A render pipeline from component markup to PNG
- On-demand fonts and emoji images for text the base font cannot render
"""

__version__ = "1.0.0"
__author__ = "OG Image Team"
