"""
Error types raised by the ingestion pipeline, the listing service and the
backing stores. The HTTP layer maps ``status_code`` onto the response.
"""

from __future__ import annotations


class PostboardError(Exception):
    """Base class for every failure surfaced to the HTTP layer."""

    status_code: int = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class EmptyPayload(PostboardError):
    status_code = 400


class MalformedPayload(PostboardError):
    status_code = 400


class AttachmentTooLarge(PostboardError):
    status_code = 413


class UnsupportedFormat(PostboardError):
    status_code = 415


class AttachmentIOError(PostboardError):
    """The attachment stream could not be read or repositioned."""

    status_code = 500


class StorageUnavailable(PostboardError):
    status_code = 500


class PersistenceError(PostboardError):
    status_code = 500


class InternalError(PostboardError):
    status_code = 500


class BlobWriteError(Exception):
    """Raised by blob stores when a write is not fully committed."""


class PostStoreError(Exception):
    """Raised by post stores on any read or write failure."""
