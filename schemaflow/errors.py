"""Error taxonomy for the canvas layer.

- :class:`ValidationError` is raised locally, before any network call, and
  never mutates state.
- :class:`BackendRejection` wraps a failed round-trip: transport error, HTTP
  error status, or an error payload. Its message is the backend's own.

Records skipped during graph construction are not exceptions; they are
reported as :class:`~schemaflow.architecture.table.DataIntegrityIssue`.
"""

from __future__ import annotations


class SchemaFlowError(Exception):
    """Base class for all SchemaFlow errors."""


class ValidationError(SchemaFlowError):
    """A user gesture or input was rejected before reaching the backend."""


class BackendRejection(SchemaFlowError):
    """The backend failed or refused an operation.

    Attributes:
        message: Message reported by the backend (or the transport error)
        status: HTTP status code, ``None`` for network failures
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status

    @property
    def is_network_error(self) -> bool:
        return self.status is None
