"""
Error taxonomy for the retrieval pipeline.

Each error carries the HTTP status the server answers with. "No results" is
not an error: an empty retrieval is routed to the fallback prompt.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers"""
    INVALID_INPUT = "invalid_input"  # user-correctable
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"  # embedding / generation provider
    STORE_ERROR = "store_error"  # graph store query failure
    INTERNAL = "internal"  # unexpected server error
    UNAVAILABLE = "unavailable"  # service still initialising


_STATUS_CODES = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.UPSTREAM_UNAVAILABLE: 502,
    ErrorKind.STORE_ERROR: 500,
    ErrorKind.INTERNAL: 500,
    ErrorKind.UNAVAILABLE: 503,
}


class PipelineError(Exception):
    """Base class for errors that abort a retrieval request."""

    kind: ErrorKind = ErrorKind.STORE_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.kind.value}


class InvalidInputError(PipelineError):
    kind = ErrorKind.INVALID_INPUT


class UpstreamUnavailableError(PipelineError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class StoreError(PipelineError):
    kind = ErrorKind.STORE_ERROR


class ServiceUnavailableError(PipelineError):
    kind = ErrorKind.UNAVAILABLE
