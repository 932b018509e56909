"""Notification records and the deal event vocabulary they mirror."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from connecto.clock import from_iso, to_iso


class DealEventType(str, enum.Enum):
    """Transition events published by the DealStore."""
    NEW_REQUEST = "NEW_REQUEST"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_WAITLISTED = "REQUEST_WAITLISTED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    STATUS_UPDATE = "STATUS_UPDATE"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"


@dataclass
class NotificationItem:
    """A per-user notification. Only the read flag is mutable."""
    notification_id: str
    user_id: str
    title: str
    message: str
    type: DealEventType
    created_utc: datetime
    related_deal_id: Optional[str] = None
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "related_deal_id": self.related_deal_id,
            "read": self.read,
            "created_utc": to_iso(self.created_utc),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> NotificationItem:
        return NotificationItem(
            notification_id=data["notification_id"],
            user_id=data["user_id"],
            title=data.get("title", ""),
            message=data.get("message", ""),
            type=DealEventType(data["type"]),
            related_deal_id=data.get("related_deal_id"),
            read=bool(data.get("read", False)),
            created_utc=from_iso(data["created_utc"]),
        )
