from __future__ import annotations

from query_endpoint.errors import EndpointError


class StoreError(EndpointError):
    """Base exception for query store failures.

    `error_type` is a short stable identifier used in HTTP error bodies.
    """

    error_type = "store_error"

    def __init__(self, message: str, *, details: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class QueryRejected(StoreError):
    """The query is empty, malformed, or not a read-only row-returning statement."""

    error_type = "invalid_query"


class QueryTimeout(StoreError):
    error_type = "timeout"

    def __init__(self, *, timeout_s: int):
        super().__init__(
            f"Query evaluation exceeded the timeout of {timeout_s}s",
            details={"timeout_s": str(timeout_s)},
        )


class IndexNotConfigured(StoreError):
    error_type = "index_not_configured"

    def __init__(self) -> None:
        super().__init__("No secondary index configured for this endpoint (use --elastic-index)")


class SecondaryIndexError(StoreError):
    error_type = "index_error"
