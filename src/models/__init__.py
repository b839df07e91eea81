"""
Data Models
===========

Pydantic models for dynamic assets, render options, document trees and API
responses.
"""
