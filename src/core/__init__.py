"""
Core Business Logic
==================

Core modules for rendering components to images.

Modules:
- assets: Dynamic fonts and emoji for text the base font cannot render
- components: Component protocol and template-backed components
- rendering: Document tree, layout, rasterization and the render pipeline
"""
