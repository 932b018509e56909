"""Worker analytics — a read-time view over a worker's deal history.

Nothing here owns state or writes anything. compute_worker_analytics is
a pure function of (deals, now, default_estimate): the same inputs
always give the same metrics and the same insight list.

Earnings are estimates. The budget field is free text ("₹2000 - ₹3000",
"around 1500", ""), so each completed deal is valued by pulling the
integers out of it:
    one number        → that number
    two or more       → average of the first two, rounded half-up
    none / no budget  → the configured default estimate
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from connecto.models.deal import DealRequest, DealStatus
from connecto.policy import DEFAULT_EARNINGS_ESTIMATE
from connecto.reviews.service import summarize_ratings


_NUMBER = re.compile(r"\d+")

BASIS_SINGLE = "single"
BASIS_RANGE = "range"
BASIS_DEFAULT = "default"

WINDOW_TODAY = timedelta(hours=24)
WINDOW_WEEK = timedelta(days=7)
WINDOW_MONTH = timedelta(days=30)


@dataclass(frozen=True)
class EarningsEstimate:
    amount: int
    basis: str

    @property
    def is_default(self) -> bool:
        return self.basis == BASIS_DEFAULT


def estimate_earnings(
    budget: Optional[str],
    default: int = DEFAULT_EARNINGS_ESTIMATE,
) -> EarningsEstimate:
    """Value one deal from its free-text budget."""
    numbers = _NUMBER.findall(budget or "")
    if not numbers:
        return EarningsEstimate(default, BASIS_DEFAULT)
    if len(numbers) == 1:
        return EarningsEstimate(int(numbers[0]), BASIS_SINGLE)
    low, high = int(numbers[0]), int(numbers[1])
    return EarningsEstimate((low + high + 1) // 2, BASIS_RANGE)


def percent(numerator: int, denominator: int) -> int:
    """Integer percentage rounded half-up; 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return (200 * numerator + denominator) // (2 * denominator)


@dataclass(frozen=True)
class WorkerAnalytics:
    total_requests: int = 0
    accepted_requests: int = 0
    completed_works: int = 0
    waitlisted_requests: int = 0
    rejected_requests: int = 0
    acceptance_rate: int = 0
    completion_rate: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0
    earnings_today: int = 0
    earnings_last_7_days: int = 0
    earnings_last_30_days: int = 0
    earnings_lifetime: int = 0
    defaulted_estimates: int = 0
    insights: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "accepted_requests": self.accepted_requests,
            "completed_works": self.completed_works,
            "waitlisted_requests": self.waitlisted_requests,
            "rejected_requests": self.rejected_requests,
            "acceptance_rate": self.acceptance_rate,
            "completion_rate": self.completion_rate,
            "average_rating": self.average_rating,
            "total_reviews": self.total_reviews,
            "earnings": {
                "today": self.earnings_today,
                "last_7_days": self.earnings_last_7_days,
                "last_30_days": self.earnings_last_30_days,
                "lifetime": self.earnings_lifetime,
                "defaulted_estimates": self.defaulted_estimates,
            },
            "insights": list(self.insights),
        }


def compute_worker_analytics(
    deals: Iterable[DealRequest],
    now: datetime,
    default_estimate: int = DEFAULT_EARNINGS_ESTIMATE,
) -> WorkerAnalytics:
    """Aggregate one worker's deals as of ``now``."""
    deals = list(deals)
    total = len(deals)
    accepted = sum(1 for d in deals if d.status == DealStatus.ACCEPTED)
    waitlisted = sum(1 for d in deals if d.status == DealStatus.WAITLISTED)
    rejected = sum(1 for d in deals if d.status == DealStatus.REJECTED)
    completed = [d for d in deals if d.is_completed]

    acceptance_rate = percent(accepted, total)
    completion_rate = percent(len(completed), accepted)
    rating = summarize_ratings(deals)

    today = week = month = lifetime = defaulted = 0
    for deal in completed:
        # Undated completions are left out of every window, lifetime included.
        if deal.completed_utc is None:
            continue
        estimate = estimate_earnings(deal.budget, default_estimate)
        lifetime += estimate.amount
        if estimate.is_default:
            defaulted += 1
        age = now - deal.completed_utc
        if age <= WINDOW_TODAY:
            today += estimate.amount
        if age <= WINDOW_WEEK:
            week += estimate.amount
        if age <= WINDOW_MONTH:
            month += estimate.amount

    return WorkerAnalytics(
        total_requests=total,
        accepted_requests=accepted,
        completed_works=len(completed),
        waitlisted_requests=waitlisted,
        rejected_requests=rejected,
        acceptance_rate=acceptance_rate,
        completion_rate=completion_rate,
        average_rating=rating.average,
        total_reviews=rating.count,
        earnings_today=today,
        earnings_last_7_days=week,
        earnings_last_30_days=month,
        earnings_lifetime=lifetime,
        defaulted_estimates=defaulted,
        insights=generate_insights(
            acceptance_rate=acceptance_rate,
            completion_rate=completion_rate,
            average_rating=rating.average,
            completed_works=len(completed),
            total_reviews=rating.count,
        ),
    )


def generate_insights(
    acceptance_rate: int,
    completion_rate: int,
    average_rating: float,
    completed_works: int,
    total_reviews: int,
) -> list[str]:
    """Advisory messages for a worker's dashboard, in a fixed order."""
    insights: list[str] = []

    if acceptance_rate >= 80:
        insights.append("Excellent acceptance rate! Keep it up.")
    elif acceptance_rate >= 60:
        insights.append(
            "Good acceptance rate. Try to accept more requests to grow your business."
        )
    elif acceptance_rate > 0:
        insights.append(
            "Low acceptance rate. Accepting more requests can boost your earnings."
        )

    if completion_rate == 100 and completed_works > 0:
        insights.append("Perfect completion rate! Your reliability is outstanding.")
    elif completion_rate >= 90:
        insights.append("Great completion rate! Customers trust you.")
    elif completion_rate >= 70:
        insights.append(
            "Good completion rate. Complete more works to improve your reputation."
        )
    elif completion_rate > 0:
        insights.append("Work on completing accepted jobs to improve your rating.")

    if total_reviews > 0:
        if average_rating >= 4.5:
            insights.append("Outstanding reviews! Your quality work is appreciated.")
        elif average_rating >= 4.0:
            insights.append("Good reviews! Keep delivering quality work.")
        elif average_rating > 0:
            insights.append("Focus on customer satisfaction to improve your ratings.")
    elif completed_works > 0:
        insights.append("Encourage customers to leave reviews to boost your profile.")

    if completed_works == 0:
        insights.append("Complete your first job to start building your reputation!")
    elif completed_works < 5:
        insights.append("Keep completing jobs to establish yourself in the market.")
    elif completed_works >= 10:
        insights.append("You're building a strong work history!")

    if not insights:
        insights.append("Start accepting requests to grow your business.")
    return insights
