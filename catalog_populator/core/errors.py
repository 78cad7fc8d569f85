# ===== TYPES & INTERFACES =====
from typing import Optional


class PopulatorError(Exception):
    """Base class for every error raised by the catalog populator."""


class NetworkError(PopulatorError):
    """The remote host was unreachable or the request timed out."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class RemoteApiError(PopulatorError):
    """The remote answered with a non-success status or a malformed payload."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ParseError(PopulatorError):
    """A scraped document did not have the expected structure."""


class StoreError(PopulatorError):
    """The record store or upload sink rejected an operation."""
