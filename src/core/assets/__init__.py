"""
Dynamic Assets
==============

On-demand fonts and emoji images for text the base font cannot render.

Components:
- scripts: script code to web-font family mapping
- google_fonts: stylesheet and font binary fetching
- emoji: emoji codepoints and image sets
- cache: process-lifetime asset cache
- resolver: the layout engine's asset callback
- fonts: the embedded base font
"""
