"""Moderation models — suspensions, user reports, flagged reviews, admin actions.

All of these are owned by the ModerationGuard. AdminAction records are the
historical trail: suspensions are removed outright when lifted, flags are
toggled rather than deleted, and every administrative step appends exactly
one AdminAction.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from connecto.clock import from_iso, to_iso


class AdminActionKind(str, enum.Enum):
    """Kinds of administrative action recorded in the audit log."""
    SUSPEND_USER = "SUSPEND_USER"
    UNSUSPEND_USER = "UNSUSPEND_USER"
    FLAG_REVIEW = "FLAG_REVIEW"
    UNFLAG_REVIEW = "UNFLAG_REVIEW"
    RESOLVE_REPORT = "RESOLVE_REPORT"


class TargetType(str, enum.Enum):
    """What an admin action was applied to."""
    USER = "USER"
    REVIEW = "REVIEW"
    REPORT = "REPORT"


@dataclass(frozen=True)
class SuspendedUser:
    """An active suspension. Presence in the suspended set is the predicate."""
    user_id: str
    suspended_utc: datetime
    suspended_by: str
    reason: str
    user_name: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "suspended_utc": to_iso(self.suspended_utc),
            "suspended_by": self.suspended_by,
            "reason": self.reason,
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> SuspendedUser:
        return SuspendedUser(
            user_id=data["user_id"],
            user_name=data.get("user_name"),
            suspended_utc=from_iso(data["suspended_utc"]),
            suspended_by=data["suspended_by"],
            reason=data.get("reason", ""),
            notes=data.get("notes"),
        )


@dataclass
class UserReport:
    """A report filed by one user against another.

    Created by any user. Only an admin may resolve it, and only once:
    reviewed moves False → True and never back.
    """
    report_id: str
    reporter_id: str
    reported_user_id: str
    reason: str
    created_utc: datetime
    reporter_name: Optional[str] = None
    reported_user_name: Optional[str] = None
    related_deal_id: Optional[str] = None
    reviewed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_utc: Optional[datetime] = None
    action_taken: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "reporter_id": self.reporter_id,
            "reporter_name": self.reporter_name,
            "reported_user_id": self.reported_user_id,
            "reported_user_name": self.reported_user_name,
            "reason": self.reason,
            "related_deal_id": self.related_deal_id,
            "created_utc": to_iso(self.created_utc),
            "reviewed": self.reviewed,
            "reviewed_by": self.reviewed_by,
            "reviewed_utc": to_iso(self.reviewed_utc),
            "action_taken": self.action_taken,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> UserReport:
        return UserReport(
            report_id=data["report_id"],
            reporter_id=data["reporter_id"],
            reporter_name=data.get("reporter_name"),
            reported_user_id=data["reported_user_id"],
            reported_user_name=data.get("reported_user_name"),
            reason=data.get("reason", ""),
            related_deal_id=data.get("related_deal_id"),
            created_utc=from_iso(data["created_utc"]),
            reviewed=bool(data.get("reviewed", False)),
            reviewed_by=data.get("reviewed_by"),
            reviewed_utc=from_iso(data.get("reviewed_utc")),
            action_taken=data.get("action_taken"),
        )


@dataclass(frozen=True)
class ReviewSnapshot:
    """The review content captured at flagging time.

    Kept on the flag so the record survives even if the deal or review
    later disappears.
    """
    rating: int
    comment: Optional[str] = None
    reviewer_id: str = ""
    reviewer_name: str = ""
    reviewed_user_id: str = ""
    reviewed_user_name: str = ""


@dataclass
class FlaggedReview:
    """Administrative hiding of a review. Never deleted, only toggled."""
    flag_id: str
    deal_id: str
    snapshot: ReviewSnapshot
    flagged_utc: datetime
    flagged_by: str
    flag_reason: str
    hidden: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "flag_id": self.flag_id,
            "deal_id": self.deal_id,
            "rating": self.snapshot.rating,
            "comment": self.snapshot.comment,
            "reviewer_id": self.snapshot.reviewer_id,
            "reviewer_name": self.snapshot.reviewer_name,
            "reviewed_user_id": self.snapshot.reviewed_user_id,
            "reviewed_user_name": self.snapshot.reviewed_user_name,
            "flagged_utc": to_iso(self.flagged_utc),
            "flagged_by": self.flagged_by,
            "flag_reason": self.flag_reason,
            "hidden": self.hidden,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> FlaggedReview:
        return FlaggedReview(
            flag_id=data["flag_id"],
            deal_id=data["deal_id"],
            snapshot=ReviewSnapshot(
                rating=int(data.get("rating", 0)),
                comment=data.get("comment"),
                reviewer_id=data.get("reviewer_id", ""),
                reviewer_name=data.get("reviewer_name", ""),
                reviewed_user_id=data.get("reviewed_user_id", ""),
                reviewed_user_name=data.get("reviewed_user_name", ""),
            ),
            flagged_utc=from_iso(data["flagged_utc"]),
            flagged_by=data["flagged_by"],
            flag_reason=data.get("flag_reason", ""),
            hidden=bool(data.get("hidden", True)),
        )


@dataclass(frozen=True)
class AdminAction:
    """Append-only audit record of an administrative action."""
    action_id: str
    admin_id: str
    action: AdminActionKind
    target_id: str
    target_type: TargetType
    timestamp_utc: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "admin_id": self.admin_id,
            "action": self.action.value,
            "target_id": self.target_id,
            "target_type": self.target_type.value,
            "reason": self.reason,
            "notes": self.notes,
            "timestamp_utc": to_iso(self.timestamp_utc),
            "metadata": dict(self.metadata),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AdminAction:
        return AdminAction(
            action_id=data["action_id"],
            admin_id=data["admin_id"],
            action=AdminActionKind(data["action"]),
            target_id=data["target_id"],
            target_type=TargetType(data["target_type"]),
            reason=data.get("reason"),
            notes=data.get("notes"),
            timestamp_utc=from_iso(data["timestamp_utc"]),
            metadata=dict(data.get("metadata") or {}),
        )
