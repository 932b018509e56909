"""Typed outcomes for every Connecto mutation.

Domain failures never raise past a component boundary. Each mutation
returns a ServiceResult whose first error string is a reason a UI can show
verbatim, and whose error_code lets callers branch without parsing text.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class ErrorCode(str, enum.Enum):
    """Why a mutation was refused."""
    DUPLICATE_ACTIVE_REQUEST = "duplicate_active_request"
    INVALID_TRANSITION = "invalid_transition"
    TERMINAL_STATE_LOCKED = "terminal_state_locked"
    SUSPENDED_ACTOR = "suspended_actor"
    NOT_ELIGIBLE_FOR_REVIEW = "not_eligible_for_review"
    INVALID_RATING = "invalid_rating"
    ALREADY_REVIEWED = "already_reviewed"
    REPORT_NOT_FOUND = "report_not_found"
    ALREADY_RESOLVED = "already_resolved"
    DEAL_NOT_FOUND = "deal_not_found"
    FLAG_NOT_FOUND = "flag_not_found"
    NOTIFICATION_NOT_FOUND = "notification_not_found"
    NOT_AUTHORIZED = "not_authorized"
    INVALID_REQUEST = "invalid_request"
    PERSISTENCE_FAILED = "persistence_failed"


# Codes a caller may retry unchanged.
RETRYABLE_CODES = frozenset({ErrorCode.PERSISTENCE_FAILED})


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[ErrorCode] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def reason(self) -> Optional[str]:
        """The first user-facing error, if any."""
        return self.errors[0] if self.errors else None

    @property
    def retryable(self) -> bool:
        return self.error_code in RETRYABLE_CODES

    @staticmethod
    def ok(**data: Any) -> ServiceResult:
        return ServiceResult(success=True, data=data)

    @staticmethod
    def fail(code: ErrorCode, *messages: str) -> ServiceResult:
        """Build a failed result; falls back to the default reason for code."""
        errors = list(messages) if messages else [DEFAULT_REASONS[code]]
        return ServiceResult(success=False, errors=errors, error_code=code)


DEFAULT_REASONS: dict[ErrorCode, str] = {
    ErrorCode.DUPLICATE_ACTIVE_REQUEST: (
        "You already have an active request with this worker."
    ),
    ErrorCode.INVALID_TRANSITION: "This request cannot move to that state.",
    ErrorCode.TERMINAL_STATE_LOCKED: (
        "This request was waitlisted or declined and can no longer change."
    ),
    ErrorCode.SUSPENDED_ACTOR: "Your account has been suspended.",
    ErrorCode.NOT_ELIGIBLE_FOR_REVIEW: "Only completed work can be reviewed.",
    ErrorCode.INVALID_RATING: "Rating must be a whole number from 1 to 5.",
    ErrorCode.ALREADY_REVIEWED: "You have already reviewed this work.",
    ErrorCode.REPORT_NOT_FOUND: "Report not found.",
    ErrorCode.ALREADY_RESOLVED: "This report has already been resolved.",
    ErrorCode.DEAL_NOT_FOUND: "Request not found.",
    ErrorCode.FLAG_NOT_FOUND: "Flagged review not found.",
    ErrorCode.NOTIFICATION_NOT_FOUND: "Notification not found.",
    ErrorCode.NOT_AUTHORIZED: "Only administrators can do this.",
    ErrorCode.INVALID_REQUEST: "The request is missing required information.",
    ErrorCode.PERSISTENCE_FAILED: "Could not save your change. Please try again.",
}
