"""Deal request models — the central record of the marketplace.

A deal request is a single negotiation between a customer and a worker for
a unit of work. It carries two orthogonal state axes:

- status: the negotiation outcome (NEW → ACCEPTED / WAITLISTED / REJECTED).
- work_status: execution progress of an accepted deal
  (ACCEPTED → ONGOING → COMPLETED). Present only when status is ACCEPTED.

Invariants (enforced by DealStateMachine and DealStore):
- WAITLISTED and REJECTED are terminal.
- work_status only moves forward and never skips ONGOING.
- accepted/started/completed timestamps are set once and never cleared.
- A review is attached at most once, and only after COMPLETED.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from connecto.clock import from_iso, to_iso


MIN_RATING = 1
MAX_RATING = 5


class DealStatus(str, enum.Enum):
    """Negotiation outcome of a deal request."""
    NEW = "NEW"
    ACCEPTED = "ACCEPTED"
    WAITLISTED = "WAITLISTED"
    REJECTED = "REJECTED"


class WorkStatus(str, enum.Enum):
    """Execution progress of an accepted deal."""
    ACCEPTED = "ACCEPTED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Review:
    """Customer review attached to a completed deal."""
    rating: int
    created_utc: datetime
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        if not is_valid_rating(self.rating):
            raise ValueError(
                f"Rating must be an integer in [{MIN_RATING}, {MAX_RATING}], "
                f"got {self.rating!r}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rating": self.rating,
            "comment": self.comment,
            "created_utc": to_iso(self.created_utc),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Review:
        return Review(
            rating=int(data["rating"]),
            comment=data.get("comment"),
            created_utc=from_iso(data["created_utc"]),
        )


@dataclass
class DealRequest:
    """A work request from a customer to a worker.

    Names are denormalized for display. Callers never mutate fields
    directly; DealStore is the only writer and hands out copies.
    """
    deal_id: str
    customer_id: str
    customer_name: str
    worker_id: str
    worker_name: str
    problem: str
    location: str
    preferred_time: str
    created_utc: datetime
    budget: Optional[str] = None
    status: DealStatus = DealStatus.NEW
    work_status: Optional[WorkStatus] = None
    accepted_utc: Optional[datetime] = None
    started_utc: Optional[datetime] = None
    completed_utc: Optional[datetime] = None
    review: Optional[Review] = None

    @property
    def is_completed(self) -> bool:
        return (
            self.status == DealStatus.ACCEPTED
            and self.work_status == WorkStatus.COMPLETED
        )

    @property
    def is_in_progress(self) -> bool:
        """Accepted and not yet completed."""
        return (
            self.status == DealStatus.ACCEPTED
            and self.work_status != WorkStatus.COMPLETED
        )

    def copy(self) -> DealRequest:
        # Review is frozen, so a shallow copy is a full snapshot.
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deal_id": self.deal_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "problem": self.problem,
            "location": self.location,
            "preferred_time": self.preferred_time,
            "budget": self.budget,
            "status": self.status.value,
            "work_status": self.work_status.value if self.work_status else None,
            "created_utc": to_iso(self.created_utc),
            "accepted_utc": to_iso(self.accepted_utc),
            "started_utc": to_iso(self.started_utc),
            "completed_utc": to_iso(self.completed_utc),
            "review": self.review.to_dict() if self.review else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DealRequest:
        work_status = data.get("work_status")
        review = data.get("review")
        return DealRequest(
            deal_id=data["deal_id"],
            customer_id=data["customer_id"],
            customer_name=data.get("customer_name", ""),
            worker_id=data["worker_id"],
            worker_name=data.get("worker_name", ""),
            problem=data.get("problem", ""),
            location=data.get("location", ""),
            preferred_time=data.get("preferred_time", ""),
            budget=data.get("budget"),
            status=DealStatus(data["status"]),
            work_status=WorkStatus(work_status) if work_status else None,
            created_utc=from_iso(data["created_utc"]),
            accepted_utc=from_iso(data.get("accepted_utc")),
            started_utc=from_iso(data.get("started_utc")),
            completed_utc=from_iso(data.get("completed_utc")),
            review=Review.from_dict(review) if review else None,
        )


@dataclass(frozen=True)
class RatingSummary:
    """Average rating (one decimal) and number of reviews for a worker."""
    average: float = 0.0
    count: int = 0

    def as_tuple(self) -> tuple[float, int]:
        return (self.average, self.count)


@dataclass(frozen=True)
class WorkerReview:
    """A review paired with the deal it belongs to."""
    deal_id: str
    customer_id: str
    customer_name: str
    review: Review
    hidden: bool = False


def is_valid_rating(rating: Any) -> bool:
    """Ratings are whole stars between MIN_RATING and MAX_RATING."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        return False
    return MIN_RATING <= rating <= MAX_RATING


@dataclass(frozen=True)
class DealDetails:
    """Caller-supplied content of a new deal request."""
    customer_id: str
    customer_name: str
    worker_id: str
    worker_name: str
    problem: str
    location: str = ""
    preferred_time: str = ""
    budget: Optional[str] = None
