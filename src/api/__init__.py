"""
FastAPI REST Endpoints
======================

HTTP access to component rendering.

Endpoints:
- GET /og: Default card rendered as a PNG
- GET /health: Health check endpoint
"""
