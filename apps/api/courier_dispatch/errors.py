"""Domain errors raised by the dispatch and lifecycle services.

Each error is an ``HTTPException`` with a fixed status code, so routers let
them propagate untouched while callers inside the process can still catch the
specific kind they care about.
"""

from fastapi import HTTPException, status


class DispatchError(HTTPException):
    status_code_for_kind: int = status.HTTP_400_BAD_REQUEST
    kind: str = "ERROR"

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code_for_kind, detail=detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(DispatchError):
    """Bad input shape or range; the caller may retry with different input."""

    # Spelled out: the Starlette constant was renamed between releases.
    status_code_for_kind = 422
    kind = "VALIDATION"


class StateConflictError(DispatchError):
    """The action is no longer possible in the current state."""

    status_code_for_kind = status.HTTP_409_CONFLICT
    kind = "STATE_CONFLICT"


class NotFoundError(DispatchError):
    status_code_for_kind = status.HTTP_404_NOT_FOUND
    kind = "NOT_FOUND"


class DependencyError(DispatchError):
    """Persistence unavailable while committing; nothing was applied."""

    status_code_for_kind = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "DEPENDENCY"
