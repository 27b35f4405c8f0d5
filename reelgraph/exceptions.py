"""Exception hierarchy for reelgraph.

Every error carries a machine-readable code from the error registry, an
HTTP status for the API layer, and an optional location pointing at the
offending element or job.
"""

from typing import Any

from reelgraph.constants.error_codes import get_error_spec
from reelgraph.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class ReelGraphError(Exception):
    """Base exception for all reelgraph errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    endpoint=spec.get("suggested_endpoint"),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Edit Errors
# =============================================================================


class ElementNotFoundError(ReelGraphError):
    """No element with the given id exists on the timeline."""

    code = "ELEMENT_NOT_FOUND"
    status_code = 404
    message = "Element not found"

    def __init__(self, element_id: str | None = None):
        message = f"Element not found: {element_id}" if element_id else self.message
        location = ErrorLocation(element_id=element_id) if element_id else None
        super().__init__(message, location=location)


class OutOfBoundsError(ReelGraphError):
    """A proposed value lies outside the element's allowed range."""

    code = "OUT_OF_BOUNDS"
    status_code = 400
    message = "Value is out of bounds"

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        min_value: Any = None,
        max_value: Any = None,
        element_id: str | None = None,
    ):
        msg = message or self.message
        if message is None and value is not None:
            msg = f"Value {value} is out of bounds"
            if min_value is not None and max_value is not None:
                msg += f" (allowed: {min_value} to {max_value})"
        self.value = value
        self.min_value = min_value
        self.max_value = max_value
        location = None
        if field or element_id:
            location = ErrorLocation(field=field, element_id=element_id)
        super().__init__(msg, location=location)


class ConstraintViolationError(ReelGraphError):
    """An edit would leave the timeline breaking one of its invariants."""

    code = "CONSTRAINT_VIOLATION"
    status_code = 409
    message = "Timeline constraint violated"

    def __init__(
        self,
        message: str | None = None,
        *,
        invariant: str,
        element_id: str | None = None,
    ):
        self.invariant = invariant
        msg = message or f"{self.message}: {invariant}"
        location = ErrorLocation(element_id=element_id) if element_id else None
        super().__init__(msg, location=location)


class GestureConflictError(ReelGraphError):
    """Another drag/resize gesture already owns the editor."""

    code = "GESTURE_IN_PROGRESS"
    status_code = 409
    message = "Another gesture is in progress"

    def __init__(self, active_gesture_id: str | None = None):
        message = (
            f"Gesture {active_gesture_id} is still in progress" if active_gesture_id else self.message
        )
        super().__init__(message)


# =============================================================================
# Compile Errors (422)
# =============================================================================


class CompileError(ReelGraphError):
    """Base class for timelines that cannot be compiled."""

    status_code = 422


class EmptyTimelineError(CompileError):
    """Timeline has neither media clips nor text."""

    code = "EMPTY_TIMELINE"
    message = "Timeline has no media or text to render"


class IncompleteTimelineError(CompileError):
    """Timeline still contains placeholder clips."""

    code = "INCOMPLETE_TIMELINE"
    message = "Timeline contains unfilled placeholders"

    def __init__(self, placeholder_ids: list[str] | None = None):
        self.placeholder_ids = placeholder_ids or []
        message = self.message
        if self.placeholder_ids:
            message = f"{self.message}: {', '.join(self.placeholder_ids)}"
        location = ErrorLocation(element_id=self.placeholder_ids[0]) if self.placeholder_ids else None
        super().__init__(message, location=location)


class InvalidTimelineError(CompileError):
    """Snapshot breaks a timeline invariant (gap, overlap, bad source window)."""

    code = "INVALID_TIMELINE"
    message = "Timeline snapshot is inconsistent"

    def __init__(self, message: str | None = None, *, invariant: str, element_id: str | None = None):
        self.invariant = invariant
        location = ErrorLocation(element_id=element_id) if element_id else None
        super().__init__(message or f"{self.message}: {invariant}", location=location)


class MissingSourceError(CompileError):
    """A clip references a source that cannot be resolved."""

    code = "MISSING_SOURCE"
    message = "Source could not be resolved"

    def __init__(self, source_id: str | None = None, element_id: str | None = None):
        self.source_id = source_id
        message = f"Source could not be resolved: {source_id}" if source_id else self.message
        location = ErrorLocation(element_id=element_id) if element_id else None
        super().__init__(message, location=location)


# =============================================================================
# Render Job Errors
# =============================================================================


class EncodingFailureError(ReelGraphError):
    """The encoding engine reported a failure.

    The engine's message is kept verbatim. These are never retried
    automatically; the caller has to resubmit.
    """

    code = "ENCODING_FAILURE"
    status_code = 502
    message = "Encoding failed"

    def __init__(self, engine_message: str | None = None, *, job_id: str | None = None):
        self.engine_message = engine_message
        location = ErrorLocation(job_id=job_id) if job_id else None
        super().__init__(engine_message or self.message, location=location)


class JobNotFoundError(ReelGraphError):
    """Render job id is unknown to the adapter."""

    code = "JOB_NOT_FOUND"
    status_code = 404
    message = "Render job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Render job not found: {job_id}" if job_id else self.message
        location = ErrorLocation(job_id=job_id) if job_id else None
        super().__init__(message, location=location)


class RenderCancelledError(ReelGraphError):
    """Render job was cancelled before producing an artifact."""

    code = "RENDER_CANCELLED"
    status_code = 409
    message = "Render job was cancelled"

    def __init__(self, job_id: str | None = None):
        message = f"Render job was cancelled: {job_id}" if job_id else self.message
        location = ErrorLocation(job_id=job_id) if job_id else None
        super().__init__(message, location=location)


class RenderTargetBusyError(ReelGraphError):
    """Another in-flight job already writes the same artifact target."""

    code = "RENDER_TARGET_BUSY"
    status_code = 409
    message = "Artifact target already has an in-flight job"

    def __init__(self, target: str | None = None, job_id: str | None = None):
        message = f"Job {job_id} is already rendering to {target}" if target and job_id else self.message
        location = ErrorLocation(job_id=job_id) if job_id else None
        super().__init__(message, location=location)


class InvalidJobTransitionError(ReelGraphError):
    """A job record was asked to move to a state it cannot reach."""

    code = "INVALID_JOB_TRANSITION"
    status_code = 500
    message = "Invalid render job state transition"

    def __init__(self, job_id: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Job {job_id} cannot move from {current} to {requested}",
            location=ErrorLocation(job_id=job_id),
        )


class EngineUnavailableError(ReelGraphError):
    """The remote render queue could not be reached."""

    code = "ENGINE_UNAVAILABLE"
    status_code = 503
    message = "Render engine unavailable"
