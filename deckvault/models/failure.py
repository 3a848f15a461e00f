"""
Failure classification and the response envelope.

Every outcome a user can see is one of: full success, partial success with
explicit counts, or an explained failure. Raw 500 errors never reach the
client; main.py converts KnownError and unexpected exceptions into an
ApiResponse.

Failure taxonomy for bulk operations:
- INVALID_LINE: a malformed import line; skipped, counted, never fatal
- LOOKUP_MISS: the catalog has no match; a zero-price placeholder is used
- PARTIAL_BATCH: some items of a bulk allocate/delete failed; counts reported
- PERSISTENCE_FULL: checkpoint storage quota exceeded; write is degraded
- FATAL_STAGE: the target container cannot be created or mutated
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input failures
    INVALID_INPUT = "invalid_input"
    INVALID_LINE = "invalid_line"

    # Resource failures
    NOT_FOUND = "not_found"

    # Bulk operation failures
    LOOKUP_MISS = "lookup_miss"
    PARTIAL_BATCH = "partial_batch"
    PERSISTENCE_FULL = "persistence_full"
    FATAL_STAGE = "fatal_stage"
    STALE_CHECKPOINT = "stale_checkpoint"
    OPERATION_BUSY = "operation_busy"

    # Service failures
    EXTERNAL_API_ERROR = "external_api_error"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    PARTIAL = "partial"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Universal response envelope.

    Every response is classified into one of four outcome types,
    ensuring no failure reaches the user unexplained.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success and partial success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def partial(cls, data: T, message: str) -> "ApiResponse[T]":
        """
        Create a partial success response.

        Data is present; the failure detail explains what was left out.
        """
        return cls(
            outcome=OutcomeType.PARTIAL,
            data=data,
            failure=FailureDetail(kind=FailureKind.PARTIAL_BATCH, message=message),
        )

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """Create a known failure response."""
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def unknown_failure(
        cls,
        detail: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create an unknown failure response.

        The catch-all for unexpected exceptions. The message is fixed.
        """
        return cls(
            outcome=OutcomeType.UNKNOWN_FAILURE,
            failure=FailureDetail(
                kind=FailureKind.UNKNOWN,
                message="The operation failed for an unknown reason. Please retry.",
                detail=detail,
                suggestion="If this persists, please report the issue.",
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class NotFoundError(KnownError):
    """A card, container or allocation does not exist."""

    def __init__(self, what: str, identifier: object):
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{what} {identifier} not found",
            status_code=404,
        )


class InvalidQuantityError(KnownError):
    """A quantity that must be positive (or non-negative) was not."""

    def __init__(self, quantity: int, minimum: int = 1):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=f"Quantity must be at least {minimum}, got {quantity}",
            status_code=422,
        )


class FatalStageFailure(KnownError):
    """
    The target container of a bulk operation cannot be created or mutated.

    Aborts the operation immediately. No checkpoint is left referencing a
    container that does not exist.
    """

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.FATAL_STAGE,
            message=message,
            detail=detail,
            suggestion="Check the container name and try again.",
            status_code=422,
        )


class CheckpointPayloadLostError(KnownError):
    """A checkpoint needed its per-card payload to resume, but it was stripped."""

    def __init__(self, container_name: str):
        super().__init__(
            kind=FailureKind.PERSISTENCE_FULL,
            message=(
                f"The import into '{container_name}' cannot be resumed because its "
                "card list was not saved."
            ),
            suggestion="Abandon the interrupted import and start it again.",
            status_code=409,
        )


class StaleCheckpointError(KnownError):
    """Another writer advanced the checkpoint since it was read."""

    def __init__(self, expected: int, found: int):
        super().__init__(
            kind=FailureKind.STALE_CHECKPOINT,
            message="This operation is already being resumed elsewhere.",
            detail=f"expected checkpoint version {expected}, found {found}",
            status_code=409,
        )


class PersistenceFullError(Exception):
    """Raised by a checkpoint store when a write would exceed its quota."""

    def __init__(self, kind: str, needed: int, quota: int):
        self.kind = kind
        self.needed = needed
        self.quota = quota
        super().__init__(f"Checkpoint for {kind} needs {needed} bytes, quota is {quota}")
