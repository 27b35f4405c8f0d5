"""Error code registry.

Single source of truth for every machine-readable error code, whether it
is worth retrying, and the suggested recovery action. Exception classes
and the API exception handlers both read from here.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Edit errors
    # ==========================================================================
    "ELEMENT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_snapshot",
        "suggested_fix": "Reload the timeline snapshot; the element may have been split or deleted",
    },
    "OUT_OF_BOUNDS": {
        "retryable": False,
        "suggested_fix": "Choose a value inside the element's allowed range",
    },
    "CONSTRAINT_VIOLATION": {
        "retryable": False,
        "suggested_fix": "The edit would break a timeline invariant; adjust the proposed value",
    },
    "GESTURE_IN_PROGRESS": {
        "retryable": True,
        "suggested_action": "wait_for_gesture",
        "suggested_fix": "Finish or cancel the active drag/resize before starting another",
    },
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Check the request body against the API schema",
    },
    # ==========================================================================
    # Compile errors
    # ==========================================================================
    "EMPTY_TIMELINE": {
        "retryable": False,
        "suggested_fix": "Add at least one media clip or text element",
    },
    "INCOMPLETE_TIMELINE": {
        "retryable": False,
        "suggested_fix": "Replace every placeholder clip with real media",
    },
    "INVALID_TIMELINE": {
        "retryable": False,
        "suggested_fix": "Reload the timeline from the editor; positions and source windows must be consistent",
    },
    "MISSING_SOURCE": {
        "retryable": True,
        "suggested_action": "reupload_source",
        "suggested_fix": "Upload the missing source file again",
    },
    # ==========================================================================
    # Render job errors
    # ==========================================================================
    "ENCODING_FAILURE": {
        "retryable": False,
        "suggested_action": "start_render",
        "suggested_endpoint": "POST /api/render/start",
        "suggested_fix": "Inspect the engine message; resubmit explicitly once fixed",
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_action": "start_render",
        "suggested_endpoint": "POST /api/render/start",
    },
    "RENDER_CANCELLED": {
        "retryable": False,
    },
    "RENDER_TARGET_BUSY": {
        "retryable": True,
        "suggested_action": "poll_status",
        "suggested_endpoint": "GET /api/render/{job_id}",
        "suggested_fix": "Wait for the in-flight job writing this target to finish",
    },
    "INVALID_JOB_TRANSITION": {
        "retryable": False,
    },
    "ENGINE_UNAVAILABLE": {
        "retryable": True,
        "suggested_fix": "The render queue could not be reached; retry shortly",
    },
    # ==========================================================================
    # Generic
    # ==========================================================================
    "NOT_FOUND": {"retryable": False},
    "BAD_REQUEST": {"retryable": False},
    "INTERNAL_ERROR": {"retryable": True},
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Look up an error code, defaulting to a non-retryable entry."""
    return ERROR_CODES.get(code, {"retryable": False})
