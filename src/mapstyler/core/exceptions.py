"""
Custom exception classes for MapStyler.

Provides a hierarchy of domain-specific exceptions for consistent error handling
across the layer pipeline. Extent calculators downgrade these to an absent
extent; nothing in this hierarchy is allowed to abort ``process_layers``.
"""


class MapStylerError(Exception):
    """Base exception for all MapStyler errors."""
    pass


class FetchError(MapStylerError):
    """Raised when a remote or local resource cannot be retrieved."""

    def __init__(self, message: str, url: str = None, status: int = None):
        super().__init__(message)
        self.url = url
        self.status = status


class DecodeError(MapStylerError):
    """Raised when fetched bytes cannot be decoded into geometry records."""
    pass


class ValidationError(MapStylerError):
    """Raised when input validation fails."""
    pass


class CoordinateError(ValidationError):
    """Raised when coordinate conversion or validation fails."""
    pass


class CRSError(ValidationError):
    """Raised when coordinate reference system operations fail."""
    pass


class StyleError(MapStylerError):
    """Raised when a style document cannot be parsed."""
    pass


class ConfigError(MapStylerError):
    """Raised when configuration operations fail."""
    pass
