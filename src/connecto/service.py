"""Connecto service — unified facade for the marketplace engine.

This is the primary interface for programmatic access to Connecto.
It wires the subsystems together and is the only place that knows who
is acting:
- Deal lifecycle (create, accept/waitlist/reject, start, complete)
- Reviews (eligibility, submission, ratings, public listings)
- Moderation (suspensions, reports, review flags, admin audit log)
- Notifications (derived from deal events via the event bus)
- Analytics and trust (read-time views over deal history)
- Persistence (key-value collections, optional audit event log)

Every actor-role mutation is gated on the moderation guard's suspension
predicate. Every moderation mutation requires an admin id listed in the
marketplace policy.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from connecto import __version__
from connecto.analytics.aggregator import WorkerAnalytics, compute_worker_analytics
from connecto.clock import Clock, utc_now
from connecto.deals.store import DealStore
from connecto.engine.state_machine import DealStateMachine
from connecto.errors import ErrorCode, ServiceResult
from connecto.events import EventBus
from connecto.log import get_logger
from connecto.moderation import guard as moderation
from connecto.moderation.guard import ModerationGuard
from connecto.models.deal import (
    DealDetails,
    DealRequest,
    DealStatus,
    RatingSummary,
    WorkStatus,
    WorkerReview,
)
from connecto.models.moderation import ReviewSnapshot
from connecto.models.notification import NotificationItem
from connecto.notifications.dispatcher import NOTIFICATIONS, NotificationDispatcher
from connecto.persistence.event_log import EventLog
from connecto.persistence.store import KeyValueStore
from connecto.persistence.writer import CollectionWriter, PersistenceQueue
from connecto.policy import MarketplacePolicy
from connecto.reviews.service import ReviewService
from connecto.trust.verification import (
    CustomerVerification,
    WorkerProfile,
    WorkerVerification,
    verify_customer,
    verify_worker,
)


DEAL_REQUESTS = "deal_requests"

log = get_logger("service")


class MarketplaceService:
    """Unified marketplace engine facade.

    Usage:
        policy = MarketplacePolicy.from_config_dir(config_dir)
        service = MarketplaceService(policy, store=JsonFileStore(data_dir))

        result = service.create_request("c1", "Asha", "w1", "Ravi", "Leaking tap")
        deal_id = result.data["deal"].deal_id
        service.set_status("w1", deal_id, DealStatus.ACCEPTED)
        service.advance_work_status("w1", deal_id, WorkStatus.ONGOING)
        service.advance_work_status("w1", deal_id, WorkStatus.COMPLETED)
        service.submit_review("c1", deal_id, 5, "Quick and tidy")

    Persistence (optional):
        Without a store everything lives in memory. With one, each owner
        loads its collections on construction and rewrites them on every
        mutation, synchronously or deferred per policy.durability.
    """

    def __init__(
        self,
        policy: Optional[MarketplacePolicy] = None,
        store: Optional[KeyValueStore] = None,
        event_log: Optional[EventLog] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._policy = policy or MarketplacePolicy.default()
        self._clock = clock
        self._event_log = event_log
        self._lock = threading.RLock()

        self._queue: Optional[PersistenceQueue] = None
        if store is not None:
            self._queue = PersistenceQueue()

        def _writer(collection: str) -> Optional[CollectionWriter]:
            if store is None:
                return None
            return CollectionWriter(
                store,
                self._policy.storage_key(collection),
                durability=self._policy.durability,
                queue=self._queue,
            )

        self._bus = EventBus()
        self._deals = DealStore(
            writer=_writer(DEAL_REQUESTS),
            bus=self._bus,
            event_log=event_log,
            clock=clock,
            lock=self._lock,
        )
        moderation_writers = {}
        if store is not None:
            moderation_writers = {c: _writer(c) for c in moderation.COLLECTIONS}
        self._guard = ModerationGuard(
            writers=moderation_writers,
            event_log=event_log,
            clock=clock,
            lock=self._lock,
        )
        self._reviews = ReviewService(self._deals, is_flagged=self._guard.is_review_flagged)
        self._notifications = NotificationDispatcher(
            writer=_writer(NOTIFICATIONS), clock=clock,
        )
        self._notifications.attach(self._bus)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def policy(self) -> MarketplacePolicy:
        return self._policy

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def deals(self) -> DealStore:
        return self._deals

    @property
    def moderation(self) -> ModerationGuard:
        return self._guard

    @property
    def reviews(self) -> ReviewService:
        return self._reviews

    @property
    def notifications(self) -> NotificationDispatcher:
        return self._notifications

    @property
    def persistence_degraded(self) -> bool:
        return (
            self._deals.persistence_degraded
            or self._guard.persistence_degraded
            or self._notifications.persistence_degraded
        )

    # ------------------------------------------------------------------
    # Deal lifecycle
    # ------------------------------------------------------------------

    def create_request(
        self,
        customer_id: str,
        customer_name: str,
        worker_id: str,
        worker_name: str,
        problem: str,
        location: str = "",
        preferred_time: str = "",
        budget: Optional[str] = None,
    ) -> ServiceResult:
        details = DealDetails(
            customer_id=customer_id,
            customer_name=customer_name,
            worker_id=worker_id,
            worker_name=worker_name,
            problem=problem,
            location=location,
            preferred_time=preferred_time,
            budget=budget,
        )
        return self._deals.create_request(
            details, is_suspended=self._suspension_check(customer_id),
        )

    def set_status(
        self,
        worker_id: str,
        deal_id: str,
        new_status: DealStatus,
    ) -> ServiceResult:
        """Worker accepts, waitlists or rejects a NEW request."""
        denied = self._require_worker(deal_id, worker_id)
        if denied is not None:
            return denied
        return self._deals.set_status(
            deal_id, new_status, is_suspended=self._suspension_check(worker_id),
        )

    def advance_work_status(
        self,
        worker_id: str,
        deal_id: str,
        new_work_status: WorkStatus,
    ) -> ServiceResult:
        denied = self._require_worker(deal_id, worker_id)
        if denied is not None:
            return denied
        return self._deals.advance_work_status(
            deal_id, new_work_status, is_suspended=self._suspension_check(worker_id),
        )

    def get_deal(self, deal_id: str) -> Optional[DealRequest]:
        return self._deals.get(deal_id)

    def deals_for_worker(self, worker_id: str) -> list[DealRequest]:
        return self._deals.deals_for_worker(worker_id)

    def deals_for_customer(self, customer_id: str) -> list[DealRequest]:
        return self._deals.deals_for_customer(customer_id)

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def can_review(self, customer_id: str, deal_id: str) -> bool:
        return self._reviews.can_review(deal_id, customer_id)

    def submit_review(
        self,
        customer_id: str,
        deal_id: str,
        rating: int,
        comment: Optional[str] = None,
    ) -> ServiceResult:
        return self._reviews.submit_review(
            deal_id, rating, comment,
            customer_id=customer_id,
            is_suspended=self._suspension_check(customer_id),
        )

    def worker_rating(self, worker_id: str) -> RatingSummary:
        return self._reviews.worker_rating(worker_id)

    def worker_reviews(
        self,
        worker_id: str,
        include_hidden: bool = False,
    ) -> list[WorkerReview]:
        """Public listing hides flagged reviews unless asked otherwise."""
        return self._reviews.worker_reviews(worker_id, include_hidden=include_hidden)

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    def is_suspended(self, user_id: str) -> bool:
        return self._guard.is_suspended(user_id)

    def suspend_user(
        self,
        admin_id: str,
        user_id: str,
        reason: str,
        notes: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ServiceResult:
        denied = self._require_admin(admin_id)
        if denied is not None:
            return denied
        return self._guard.suspend(admin_id, user_id, reason, notes=notes, user_name=user_name)

    def unsuspend_user(self, admin_id: str, user_id: str) -> ServiceResult:
        denied = self._require_admin(admin_id)
        if denied is not None:
            return denied
        return self._guard.unsuspend(admin_id, user_id)

    def file_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        related_deal_id: Optional[str] = None,
        reporter_name: Optional[str] = None,
        reported_user_name: Optional[str] = None,
    ) -> ServiceResult:
        return self._guard.file_report(
            reporter_id, reported_user_id, reason,
            related_deal_id=related_deal_id,
            reporter_name=reporter_name,
            reported_user_name=reported_user_name,
        )

    def resolve_report(
        self,
        admin_id: str,
        report_id: str,
        action_taken: Optional[str] = None,
    ) -> ServiceResult:
        denied = self._require_admin(admin_id)
        if denied is not None:
            return denied
        return self._guard.resolve_report(admin_id, report_id, action_taken)

    def flag_review(
        self,
        admin_id: str,
        deal_id: str,
        reason: str,
        snapshot: Optional[ReviewSnapshot] = None,
    ) -> ServiceResult:
        """Hide a deal's review from public listings.

        Without a snapshot the review content is captured from the deal,
        which must then still carry a review.
        """
        denied = self._require_admin(admin_id)
        if denied is not None:
            return denied
        if snapshot is not None:
            return self._guard.flag_review(admin_id, deal_id, reason, snapshot)
        deal = self._deals.get(deal_id)
        if deal is None:
            return ServiceResult.fail(ErrorCode.DEAL_NOT_FOUND)
        if deal.review is None:
            return ServiceResult.fail(
                ErrorCode.INVALID_REQUEST, "This request has no review to flag.",
            )
        snapshot = ReviewSnapshot(
            rating=deal.review.rating,
            comment=deal.review.comment,
            reviewer_id=deal.customer_id,
            reviewer_name=deal.customer_name,
            reviewed_user_id=deal.worker_id,
            reviewed_user_name=deal.worker_name,
        )
        return self._guard.flag_review(admin_id, deal_id, reason, snapshot)

    def unflag_review(self, admin_id: str, flag_id: str) -> ServiceResult:
        denied = self._require_admin(admin_id)
        if denied is not None:
            return denied
        return self._guard.unflag_review(admin_id, flag_id)

    def admin_stats(self) -> dict[str, int]:
        """Counts for the admin dashboard."""
        deals = self._deals.all_deals()
        return {
            "total_deals": len(deals),
            "active_deals": sum(1 for d in deals if DealStateMachine.is_active(d)),
            "completed_deals": sum(1 for d in deals if d.is_completed),
            "suspended_users": len(self._guard.suspended_users()),
            "unreviewed_reports": len(self._guard.unreviewed_reports()),
            "hidden_reviews": len(self._guard.flagged_reviews(hidden_only=True)),
        }

    # ------------------------------------------------------------------
    # Analytics and trust
    # ------------------------------------------------------------------

    def worker_analytics(self, worker_id: str) -> WorkerAnalytics:
        return compute_worker_analytics(
            self._deals.deals_for_worker(worker_id),
            now=self._clock(),
            default_estimate=self._policy.default_earnings_estimate,
        )

    def worker_verification(
        self,
        worker_id: str,
        profile: Optional[WorkerProfile] = None,
    ) -> WorkerVerification:
        return verify_worker(
            self._deals.deals_for_worker(worker_id),
            self._reviews.worker_rating(worker_id),
            now=self._clock(),
            profile=profile,
        )

    def customer_verification(self, customer_id: str) -> CustomerVerification:
        return verify_customer(self._deals.deals_for_customer(customer_id))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notifications_for(self, user_id: str) -> list[NotificationItem]:
        return self._notifications.notifications_for(user_id)

    def unread_count(self, user_id: str) -> int:
        return self._notifications.unread_count(user_id)

    def mark_notification_read(self, notification_id: str) -> ServiceResult:
        return self._notifications.mark_read(notification_id)

    def mark_all_notifications_read(self, user_id: str) -> ServiceResult:
        return self._notifications.mark_all_read(user_id)

    def clear_notifications(self, user_id: str) -> ServiceResult:
        return self._notifications.clear(user_id)

    # ------------------------------------------------------------------
    # Status and lifecycle
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        deals = self._deals.all_deals()
        by_status: dict[str, int] = {}
        for deal in deals:
            by_status[deal.status.value] = by_status.get(deal.status.value, 0) + 1
        return {
            "version": __version__,
            "deals": {
                "total": len(deals),
                "by_status": by_status,
                "active": sum(1 for d in deals if DealStateMachine.is_active(d)),
                "completed": sum(1 for d in deals if d.is_completed),
            },
            "moderation": {
                "suspended_users": len(self._guard.suspended_users()),
                "open_reports": len(self._guard.unreviewed_reports()),
                "admin_actions": len(self._guard.admin_actions()),
            },
            "events": {
                "subscribers": self._bus.subscriber_count,
                "audit_events": self._event_log.count if self._event_log else 0,
            },
            "durability": self._policy.durability.mode.value,
            "persistence_degraded": self.persistence_degraded,
        }

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued writes to be attempted."""
        if self._queue is not None:
            self._queue.flush(timeout)

    def close(self) -> None:
        if self._queue is not None:
            self._queue.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _suspension_check(self, actor_id: str) -> Callable[[], bool]:
        return lambda: self._guard.is_suspended(actor_id)

    def _require_admin(self, admin_id: str) -> Optional[ServiceResult]:
        if self._policy.is_admin(admin_id):
            return None
        log.warning("Refused moderation action from non-admin %s", admin_id)
        return ServiceResult.fail(ErrorCode.NOT_AUTHORIZED)

    def _require_worker(self, deal_id: str, worker_id: str) -> Optional[ServiceResult]:
        """Refuse anyone but the worker named on the deal."""
        deal = self._deals.get(deal_id)
        if deal is None:
            return ServiceResult.fail(ErrorCode.DEAL_NOT_FOUND)
        if worker_id != deal.worker_id:
            return ServiceResult.fail(
                ErrorCode.NOT_AUTHORIZED,
                "Only the worker on this request can change it.",
            )
        return None
