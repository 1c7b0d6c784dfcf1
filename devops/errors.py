"""Exceptions raised while talking to the work tracking server."""

from __future__ import annotations


class DevOpsError(Exception):
    """Base exception for all workload board failures."""


class NetworkError(DevOpsError):
    """The request never produced an HTTP response (DNS, refused, timeout)."""


class HttpError(DevOpsError):
    """Raised when the API returns a non-2xx response."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP error {status_code}: {body}")


class DataShapeError(DevOpsError):
    """A response is missing the fields a list or query endpoint must carry."""


class ConfigurationError(DevOpsError):
    """An aggregation was requested without a usable selection or collection."""


class LoopGuardError(DevOpsError):
    """A paged query handed back a continuation cursor it already returned."""


class RunCancelled(DevOpsError):
    """A newer aggregation run superseded this one."""
