"""Review subsystem — one review per completed deal, and worker ratings.

Eligibility is decided by DealStateMachine.validate_review and checked
twice: once here for UI hints (can_review) and again by the DealStore
under its lock when the review is attached, so a stale hint can never
produce a second review.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional

from connecto.deals.store import DealStore, SuspensionCheck
from connecto.engine.state_machine import DealStateMachine
from connecto.errors import ServiceResult
from connecto.log import get_logger
from connecto.models.deal import DealRequest, RatingSummary, WorkerReview


log = get_logger("reviews")


def summarize_ratings(deals: Iterable[DealRequest]) -> RatingSummary:
    """Average of attached ratings, rounded half-up to one decimal."""
    ratings = [d.review.rating for d in deals if d.review is not None]
    if not ratings:
        return RatingSummary()
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    average = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    return RatingSummary(average=average, count=len(ratings))


class ReviewService:
    """Submits reviews through the DealStore and reads them back."""

    def __init__(
        self,
        store: DealStore,
        is_flagged: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self._store = store
        self._is_flagged = is_flagged or (lambda deal_id: False)

    def can_review(self, deal_id: str, customer_id: Optional[str] = None) -> bool:
        deal = self._store.get(deal_id)
        if deal is None:
            return False
        return DealStateMachine.validate_review(deal, customer_id) is None

    def submit_review(
        self,
        deal_id: str,
        rating: int,
        comment: Optional[str] = None,
        customer_id: Optional[str] = None,
        is_suspended: Optional[SuspensionCheck] = None,
    ) -> ServiceResult:
        result = self._store.attach_review(
            deal_id, rating, comment,
            customer_id=customer_id, is_suspended=is_suspended,
        )
        if not result.success:
            log.info("Review for %s refused: %s", deal_id, result.error_code.value)
        return result

    def worker_rating(self, worker_id: str) -> RatingSummary:
        return summarize_ratings(self._store.deals_for_worker(worker_id))

    def worker_reviews(
        self,
        worker_id: str,
        include_hidden: bool = True,
    ) -> list[WorkerReview]:
        """Reviews a worker has received, newest first."""
        reviews = []
        for deal in self._store.deals_for_worker(worker_id):
            if deal.review is None:
                continue
            hidden = self._is_flagged(deal.deal_id)
            if hidden and not include_hidden:
                continue
            reviews.append(WorkerReview(
                deal_id=deal.deal_id,
                customer_id=deal.customer_id,
                customer_name=deal.customer_name,
                review=deal.review,
                hidden=hidden,
            ))
        reviews.sort(key=lambda r: r.review.created_utc, reverse=True)
        return reviews
