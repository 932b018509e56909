"""Worker trust levels and profile badges, derived from deal history.

Levels:
    1 Verified — every registered worker (phone login is out of scope
                 and treated as verified)
    2 Trusted  — complete profile and at least one completed work
    3 Expert   — average rating >= 4.0 and at least five completed works

A later level overrides an earlier one, so a worker with a sparse profile
can still reach Expert on track record alone.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from connecto.models.deal import DealRequest, RatingSummary


ACTIVE_WINDOW = timedelta(days=30)

TRUSTED_MIN_COMPLETED = 1
EXPERT_MIN_COMPLETED = 5
EXPERT_MIN_RATING = 4.0


class VerificationLevel(enum.IntEnum):
    VERIFIED = 1
    TRUSTED = 2
    EXPERT = 3

    @property
    def label(self) -> str:
        return f"Level {self.value} - {self.name.title()}"


@dataclass(frozen=True)
class WorkerProfile:
    """Profile fields that count toward verification."""
    name: str = ""
    category: str = ""
    city: str = ""
    description: str = ""

    @property
    def is_complete(self) -> bool:
        return all(
            v.strip() for v in (self.name, self.category, self.city, self.description)
        )


@dataclass(frozen=True)
class TrustBadge:
    badge_id: str
    label: str
    earned: bool
    tooltip: str


@dataclass(frozen=True)
class WorkerVerification:
    level: VerificationLevel
    badges: tuple[TrustBadge, ...]
    phone_verified: bool
    profile_completed: bool
    is_rated_worker: bool
    completed_works: int
    active_recently: bool
    location_verified: bool

    @property
    def earned_badges(self) -> list[TrustBadge]:
        return [b for b in self.badges if b.earned]


@dataclass(frozen=True)
class CustomerVerification:
    phone_verified: bool
    completed_deals: int


def verify_worker(
    deals: Iterable[DealRequest],
    rating: RatingSummary,
    now: datetime,
    profile: Optional[WorkerProfile] = None,
) -> WorkerVerification:
    """Compute a worker's level and badges.

    Without a profile the worker is given the benefit of the doubt for
    profile completeness and location.
    """
    deals = list(deals)
    completed = sum(1 for d in deals if d.is_completed)
    profile_completed = profile.is_complete if profile else True
    location_verified = bool(profile.city.strip()) if profile else True
    is_rated = rating.count > 0
    active_recently = any(now - d.created_utc <= ACTIVE_WINDOW for d in deals)

    level = VerificationLevel.VERIFIED
    if profile_completed and completed >= TRUSTED_MIN_COMPLETED:
        level = VerificationLevel.TRUSTED
    if rating.average >= EXPERT_MIN_RATING and completed >= EXPERT_MIN_COMPLETED:
        level = VerificationLevel.EXPERT

    plural = "" if completed == 1 else "s"
    badges = (
        TrustBadge(
            "profile_completed", "Profile Completed", profile_completed,
            "Complete profile with all details",
        ),
        TrustBadge(
            "rated_worker", "Rated Worker", is_rated,
            "Has verified customer reviews",
        ),
        TrustBadge(
            "completed_works", f"Completed {completed} Work{plural}", completed > 0,
            "Successfully completed jobs",
        ),
        TrustBadge(
            "active_recently", "Active Recently", active_recently,
            "Active in the last 30 days",
        ),
        TrustBadge(
            "location_verified", "Location Verified", location_verified,
            "Location confirmed and verified",
        ),
    )

    return WorkerVerification(
        level=level,
        badges=badges,
        phone_verified=True,
        profile_completed=profile_completed,
        is_rated_worker=is_rated,
        completed_works=completed,
        active_recently=active_recently,
        location_verified=location_verified,
    )


def verify_customer(deals: Iterable[DealRequest]) -> CustomerVerification:
    return CustomerVerification(
        phone_verified=True,
        completed_deals=sum(1 for d in deals if d.is_completed),
    )
