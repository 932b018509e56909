"""Tests for the analytics aggregator — counts, rates, earnings windows, insights."""

import pytest
from datetime import datetime, timedelta, timezone

from connecto.analytics.aggregator import (
    BASIS_DEFAULT,
    BASIS_RANGE,
    BASIS_SINGLE,
    compute_worker_analytics,
    estimate_earnings,
    generate_insights,
    percent,
)
from connecto.models.deal import DealRequest, DealStatus, Review, WorkStatus


NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


def _deal(
    n: int,
    status: DealStatus = DealStatus.NEW,
    work_status: WorkStatus | None = None,
    completed_ago: timedelta | None = None,
    budget: str | None = None,
    rating: int | None = None,
) -> DealRequest:
    completed_utc = NOW - completed_ago if completed_ago is not None else None
    return DealRequest(
        deal_id=f"deal_{n}",
        customer_id=f"c{n}",
        customer_name="Customer",
        worker_id="w1",
        worker_name="Ravi",
        problem="Work",
        location="",
        preferred_time="",
        created_utc=NOW - timedelta(days=40),
        budget=budget,
        status=status,
        work_status=work_status,
        completed_utc=completed_utc,
        review=Review(rating=rating, created_utc=NOW) if rating else None,
    )


def _completed(n: int, ago: timedelta, budget: str | None = None, rating: int | None = None) -> DealRequest:
    return _deal(n, DealStatus.ACCEPTED, WorkStatus.COMPLETED, ago, budget, rating)


class TestEstimateEarnings:
    def test_range_averages_first_two(self) -> None:
        estimate = estimate_earnings("₹2000 - ₹3000")
        assert estimate.amount == 2500
        assert estimate.basis == BASIS_RANGE

    def test_single_value(self) -> None:
        estimate = estimate_earnings("₹1800")
        assert estimate.amount == 1800
        assert estimate.basis == BASIS_SINGLE

    @pytest.mark.parametrize("budget", [None, "", "negotiable"])
    def test_default_when_unparseable(self, budget) -> None:
        estimate = estimate_earnings(budget)
        assert estimate.amount == 2500
        assert estimate.basis == BASIS_DEFAULT
        assert estimate.is_default

    def test_custom_default(self) -> None:
        assert estimate_earnings("ask me", default=900).amount == 900

    def test_range_rounds_half_up(self) -> None:
        assert estimate_earnings("100-201").amount == 151

    def test_only_first_two_numbers_count(self) -> None:
        assert estimate_earnings("500 to 700, or 5000 for the full job").amount == 600


class TestPercent:
    @pytest.mark.parametrize("n, d, expected", [
        (0, 0, 0), (1, 2, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100),
    ])
    def test_half_up(self, n, d, expected) -> None:
        assert percent(n, d) == expected


class TestComputeWorkerAnalytics:
    def test_empty_history(self) -> None:
        analytics = compute_worker_analytics([], NOW)
        assert analytics.total_requests == 0
        assert analytics.acceptance_rate == 0
        assert analytics.completion_rate == 0
        assert analytics.earnings_lifetime == 0
        assert analytics.insights == [
            "Complete your first job to start building your reputation!",
        ]

    def test_counts_and_rates(self) -> None:
        deals = [
            _completed(1, timedelta(hours=2), "₹1000"),
            _deal(2, DealStatus.ACCEPTED, WorkStatus.ONGOING),
            _deal(3, DealStatus.WAITLISTED),
            _deal(4, DealStatus.REJECTED),
            _deal(5),
        ]
        analytics = compute_worker_analytics(deals, NOW)
        assert analytics.total_requests == 5
        assert analytics.accepted_requests == 2
        assert analytics.completed_works == 1
        assert analytics.waitlisted_requests == 1
        assert analytics.rejected_requests == 1
        assert analytics.acceptance_rate == 40
        assert analytics.completion_rate == 50

    def test_earnings_windows(self) -> None:
        deals = [
            _completed(1, timedelta(hours=3), "₹1000"),
            _completed(2, timedelta(days=3), "₹2000 - ₹3000"),
            _completed(3, timedelta(days=20), "₹400"),
            _completed(4, timedelta(days=90)),
        ]
        analytics = compute_worker_analytics(deals, NOW)
        assert analytics.earnings_today == 1000
        assert analytics.earnings_last_7_days == 3500
        assert analytics.earnings_last_30_days == 3900
        assert analytics.earnings_lifetime == 6400
        assert analytics.defaulted_estimates == 1

    def test_today_means_last_24_hours(self) -> None:
        deals = [_completed(1, timedelta(hours=23), "100"), _completed(2, timedelta(hours=25), "100")]
        assert compute_worker_analytics(deals, NOW).earnings_today == 100

    def test_undated_completion_earns_nothing(self) -> None:
        undated = _deal(1, DealStatus.ACCEPTED, WorkStatus.COMPLETED, budget="₹900")
        deals = [undated, _completed(2, timedelta(days=1), "₹100")]
        analytics = compute_worker_analytics(deals, NOW)
        assert analytics.completed_works == 2
        assert analytics.earnings_lifetime == 100
        assert analytics.earnings_last_30_days == 100
        assert analytics.defaulted_estimates == 0

    def test_uses_configured_default(self) -> None:
        analytics = compute_worker_analytics([_completed(1, timedelta(days=1))], NOW, 1200)
        assert analytics.earnings_lifetime == 1200

    def test_rating_summary(self) -> None:
        deals = [
            _completed(1, timedelta(days=1), rating=5),
            _completed(2, timedelta(days=2), rating=4),
        ]
        analytics = compute_worker_analytics(deals, NOW)
        assert analytics.average_rating == 4.5
        assert analytics.total_reviews == 2

    def test_deterministic(self) -> None:
        deals = [_completed(1, timedelta(days=1), "₹700", rating=3), _deal(2)]
        assert compute_worker_analytics(deals, NOW) == compute_worker_analytics(deals, NOW)

    def test_to_dict_shape(self) -> None:
        data = compute_worker_analytics([_completed(1, timedelta(hours=1), "₹1800")], NOW).to_dict()
        assert data["earnings"]["today"] == 1800
        assert data["earnings"]["defaulted_estimates"] == 0
        assert isinstance(data["insights"], list)


class TestInsights:
    def test_strong_worker(self) -> None:
        insights = generate_insights(
            acceptance_rate=90, completion_rate=100, average_rating=4.8,
            completed_works=12, total_reviews=10,
        )
        assert insights == [
            "Excellent acceptance rate! Keep it up.",
            "Perfect completion rate! Your reliability is outstanding.",
            "Outstanding reviews! Your quality work is appreciated.",
            "You're building a strong work history!",
        ]

    def test_unreviewed_work_prompts_for_reviews(self) -> None:
        insights = generate_insights(
            acceptance_rate=50, completion_rate=75, average_rating=0.0,
            completed_works=3, total_reviews=0,
        )
        assert insights == [
            "Low acceptance rate. Accepting more requests can boost your earnings.",
            "Good completion rate. Complete more works to improve your reputation.",
            "Encourage customers to leave reviews to boost your profile.",
            "Keep completing jobs to establish yourself in the market.",
        ]

    def test_mid_band_worker(self) -> None:
        insights = generate_insights(
            acceptance_rate=65, completion_rate=92, average_rating=4.1,
            completed_works=7, total_reviews=5,
        )
        assert insights == [
            "Good acceptance rate. Try to accept more requests to grow your business.",
            "Great completion rate! Customers trust you.",
            "Good reviews! Keep delivering quality work.",
        ]

    def test_struggling_worker(self) -> None:
        insights = generate_insights(
            acceptance_rate=20, completion_rate=40, average_rating=2.5,
            completed_works=2, total_reviews=2,
        )
        assert "Work on completing accepted jobs to improve your rating." in insights
        assert "Focus on customer satisfaction to improve your ratings." in insights
