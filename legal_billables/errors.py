from __future__ import annotations


class BillablesError(RuntimeError):
    """Base class for failures surfaced to the user as notifications."""


class NetworkFailure(BillablesError):
    """A summarize/log request was rejected or the backend was unreachable."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class StorageFailure(BillablesError):
    """The local entry queue could not be read or written."""
