"""Core data models for Connecto."""

from connecto.models.deal import (
    DealDetails,
    DealRequest,
    DealStatus,
    RatingSummary,
    Review,
    WorkStatus,
    WorkerReview,
)
from connecto.models.moderation import (
    AdminAction,
    AdminActionKind,
    FlaggedReview,
    ReviewSnapshot,
    SuspendedUser,
    TargetType,
    UserReport,
)
from connecto.models.notification import DealEventType, NotificationItem

__all__ = [
    "DealDetails",
    "DealRequest",
    "DealStatus",
    "RatingSummary",
    "Review",
    "WorkStatus",
    "WorkerReview",
    "AdminAction",
    "AdminActionKind",
    "FlaggedReview",
    "ReviewSnapshot",
    "SuspendedUser",
    "TargetType",
    "UserReport",
    "DealEventType",
    "NotificationItem",
]
