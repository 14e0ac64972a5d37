"""Exceptions raised when talking to the upstream content API."""
from typing import List, Optional


class UpstreamError(Exception):
    """Base class for failures of a single upstream attempt."""

    kind: str = "upstream_error"

    def __init__(self, message: str, endpoint: Optional[str] = None):
        self.endpoint = endpoint
        super().__init__(message)


class TransportError(UpstreamError):
    """Network failure or non-2xx response."""

    kind = "transport_error"

    def __init__(self, message: str, endpoint: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, endpoint)


class SoftFailureError(UpstreamError):
    """The endpoint answered, but the payload is missing its expected shape."""

    kind = "soft_failure"


class UpstreamTimeoutError(UpstreamError):
    """The attempt did not settle within the client-side timeout."""

    kind = "timeout"


class TotalFailureError(Exception):
    """Both primary and fallback endpoints failed for an operation."""

    def __init__(self, operation: str, errors: List[Exception]):
        self.operation = operation
        self.errors = errors
        detail = "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        super().__init__(f"All endpoints failed for {operation}: {detail}")
