"""
Error types surfaced by the backend and translated to HTTP responses.
"""

from __future__ import annotations


class LibraryBackendError(Exception):
    """Base error carrying the HTTP status it should be reported with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(LibraryBackendError):
    status_code = 400


class NotFound(LibraryBackendError):
    status_code = 404


class ConfigurationMissing(LibraryBackendError):
    status_code = 503


class UpstreamFailure(LibraryBackendError):
    """A datastore or LLM provider call failed."""

    status_code = 502


class UpstreamTimeout(UpstreamFailure):
    status_code = 504
