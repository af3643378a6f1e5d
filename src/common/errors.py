"""depload exception hierarchy.

Each subsystem raises a specific error type so callers can tell a bad
version string from a dead mirror from a broken archive.
"""

from __future__ import annotations

from typing import Optional


class DeploadError(Exception):
    """Base exception for all depload failures."""


class ParseError(DeploadError):
    """Raised for malformed SemVer, constraint or descriptor text."""


class ProtocolError(DeploadError):
    """Raised when no handler is registered for a scheme or mimetype."""


class TransportError(DeploadError):
    """Raised for network or external process failures."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RedirectLoopError(TransportError):
    """Raised when an HTTP redirect chain revisits a URL."""


class TooManyRedirectsError(TransportError):
    """Raised when an HTTP redirect chain exceeds the hop cap."""


class StructuralError(DeploadError):
    """Raised when an artifact does not have the expected layout."""


class ResolutionError(DeploadError):
    """Raised when a name or package cannot be mapped to a location."""


class InstallError(DeploadError):
    """Raised when an installed folder cannot be moved into its destination."""
