# src/morphorecon/exceptions.py
from __future__ import annotations

class MorphoreconError(Exception):
    """Base for all domain errors."""

class ConfigError(MorphoreconError):
    """Invalid or missing configuration."""

class DataNotFound(MorphoreconError):
    """Required file(s) or directory not found."""

class StructuralError(MorphoreconError):
    """Reconstruction document does not have the expected structure."""

class ValidationError(MorphoreconError):
    """Input data fails semantic checks."""
