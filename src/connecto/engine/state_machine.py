"""Deal state machine — enforces the two-axis transition rules.

status (negotiation outcome):
    NEW → ACCEPTED | WAITLISTED | REJECTED
    WAITLISTED and REJECTED are terminal.

work_status (execution progress, only while status is ACCEPTED):
    ACCEPTED → ONGOING → COMPLETED
    COMPLETED is terminal; ONGOING cannot be skipped.

Keeping the axes separate means waitlisted/rejected stay dead ends no
matter how execution is modelled.

Fail-closed: any transition not listed below is rejected. Pure
computation; side effects (timestamps, persistence, events) belong to
the DealStore.
"""

from __future__ import annotations

from typing import Optional

from connecto.errors import DEFAULT_REASONS, ErrorCode
from connecto.models.deal import DealRequest, DealStatus, WorkStatus


_STATUS_TRANSITIONS: dict[DealStatus, set[DealStatus]] = {
    DealStatus.NEW: {
        DealStatus.ACCEPTED,
        DealStatus.WAITLISTED,
        DealStatus.REJECTED,
    },
    DealStatus.ACCEPTED: set(),
    # Terminal states — no outgoing transitions
    DealStatus.WAITLISTED: set(),
    DealStatus.REJECTED: set(),
}

_WORK_TRANSITIONS: dict[WorkStatus, set[WorkStatus]] = {
    WorkStatus.ACCEPTED: {WorkStatus.ONGOING},
    WorkStatus.ONGOING: {WorkStatus.COMPLETED},
    WorkStatus.COMPLETED: set(),
}

_TERMINAL_STATUSES = frozenset({DealStatus.WAITLISTED, DealStatus.REJECTED})


class DealStateMachine:
    """Validates deal transitions.

    validate_* methods return (error_code, message) or None when the
    transition is allowed.
    """

    @staticmethod
    def validate_status_transition(
        deal: DealRequest,
        target: DealStatus,
    ) -> tuple[ErrorCode, str] | None:
        current = deal.status
        if current in _TERMINAL_STATUSES:
            return (
                ErrorCode.TERMINAL_STATE_LOCKED,
                DEFAULT_REASONS[ErrorCode.TERMINAL_STATE_LOCKED],
            )
        allowed = _STATUS_TRANSITIONS.get(current, set())
        if target not in allowed:
            return (
                ErrorCode.INVALID_TRANSITION,
                f"Invalid status transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{_names(allowed)}]",
            )
        return None

    @staticmethod
    def validate_work_transition(
        deal: DealRequest,
        target: WorkStatus,
    ) -> tuple[ErrorCode, str] | None:
        if deal.status in _TERMINAL_STATUSES:
            return (
                ErrorCode.TERMINAL_STATE_LOCKED,
                DEFAULT_REASONS[ErrorCode.TERMINAL_STATE_LOCKED],
            )
        if deal.status != DealStatus.ACCEPTED:
            return (
                ErrorCode.INVALID_TRANSITION,
                "Work can only be updated after the request is accepted.",
            )
        current = deal.work_status or WorkStatus.ACCEPTED
        allowed = _WORK_TRANSITIONS.get(current, set())
        if target not in allowed:
            return (
                ErrorCode.INVALID_TRANSITION,
                f"Invalid work transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{_names(allowed)}]",
            )
        return None

    @staticmethod
    def validate_review(
        deal: DealRequest,
        customer_id: Optional[str] = None,
    ) -> tuple[ErrorCode, str] | None:
        """A deal is reviewable once: completed, unreviewed, by its customer."""
        if deal.review is not None:
            return (
                ErrorCode.ALREADY_REVIEWED,
                DEFAULT_REASONS[ErrorCode.ALREADY_REVIEWED],
            )
        if not deal.is_completed:
            return (
                ErrorCode.NOT_ELIGIBLE_FOR_REVIEW,
                DEFAULT_REASONS[ErrorCode.NOT_ELIGIBLE_FOR_REVIEW],
            )
        if customer_id is not None and customer_id != deal.customer_id:
            return (
                ErrorCode.NOT_ELIGIBLE_FOR_REVIEW,
                "Only the customer who requested this work can review it.",
            )
        return None

    @staticmethod
    def is_terminal(deal: DealRequest) -> bool:
        """No further transition of either axis is possible."""
        if deal.status in _TERMINAL_STATUSES:
            return True
        return deal.is_completed

    @staticmethod
    def is_active(deal: DealRequest) -> bool:
        """NEW, or ACCEPTED with work not yet COMPLETED.

        At most one active deal may exist per (customer, worker) pair.
        """
        if deal.status == DealStatus.NEW:
            return True
        return deal.is_in_progress

    @staticmethod
    def valid_status_transitions(status: DealStatus) -> set[DealStatus]:
        return set(_STATUS_TRANSITIONS.get(status, set()))

    @staticmethod
    def valid_work_transitions(work_status: WorkStatus) -> set[WorkStatus]:
        return set(_WORK_TRANSITIONS.get(work_status, set()))


def _names(states: set) -> str:
    return ", ".join(s.value for s in sorted(states, key=lambda x: x.value))
