"""Analytics — read-time worker metrics, earnings estimates and insights."""

from connecto.analytics.aggregator import (
    EarningsEstimate,
    WorkerAnalytics,
    compute_worker_analytics,
    estimate_earnings,
    generate_insights,
)

__all__ = [
    "EarningsEstimate",
    "WorkerAnalytics",
    "compute_worker_analytics",
    "estimate_earnings",
    "generate_insights",
]
