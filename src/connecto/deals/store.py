"""Deal store — sole owner and writer of deal requests.

Every mutation follows the same sequence, under the shared lock:
1. Suspension gate (injected predicate for the acting identity).
2. Transition check against DealStateMachine (fail-closed).
3. In-memory mutation.
4. Durable write of the whole collection. In synchronous mode a failed
   write rolls step 3 back and the call fails with PERSISTENCE_FAILED.
5. Audit event appended to the EventLog (if wired).
6. Transition event published on the EventBus.

Callers only ever receive copies of deals. The lock makes each
check-then-act atomic, including the suspension check: the moderation
guard shares the same lock, so a suspension cannot land between the
check and the mutation.
"""

from __future__ import annotations

import threading
import uuid
from typing import Callable, Optional

from connecto.clock import Clock, not_before, utc_now
from connecto.engine.state_machine import DealStateMachine
from connecto.errors import ErrorCode, ServiceResult
from connecto.events import EventBus
from connecto.log import get_logger
from connecto.models.deal import (
    DealDetails,
    DealRequest,
    DealStatus,
    Review,
    WorkStatus,
    is_valid_rating,
)
from connecto.models.notification import DealEventType
from connecto.persistence.event_log import EventKind, EventLog
from connecto.persistence.writer import CollectionWriter


SuspensionCheck = Callable[[], bool]

log = get_logger("deals")

_STATUS_EVENTS: dict[DealStatus, DealEventType] = {
    DealStatus.ACCEPTED: DealEventType.REQUEST_ACCEPTED,
    DealStatus.WAITLISTED: DealEventType.REQUEST_WAITLISTED,
    DealStatus.REJECTED: DealEventType.REQUEST_REJECTED,
}

_SUSPENDED = "Your account has been suspended. You cannot {} at this time."


def _new_deal_id() -> str:
    return f"deal_{uuid.uuid4().hex[:12]}"


class DealStore:
    """Authoritative collection of deal requests.

    Usage:
        store = DealStore(writer=writer, bus=bus, clock=clock)
        result = store.create_request(details, is_suspended=lambda: False)
        store.set_status(result.data["deal"].deal_id, DealStatus.ACCEPTED)
        store.advance_work_status(deal_id, WorkStatus.ONGOING)
    """

    def __init__(
        self,
        writer: Optional[CollectionWriter] = None,
        bus: Optional[EventBus] = None,
        event_log: Optional[EventLog] = None,
        clock: Clock = utc_now,
        lock: Optional[threading.RLock] = None,
        id_factory: Callable[[], str] = _new_deal_id,
    ) -> None:
        self._writer = writer
        self._bus = bus or EventBus()
        self._event_log = event_log
        self._clock = clock
        self._lock = lock or threading.RLock()
        self._new_id = id_factory
        self._deals: dict[str, DealRequest] = {}

        if writer is not None:
            for data in writer.load() or []:
                deal = DealRequest.from_dict(data)
                self._deals[deal.deal_id] = deal

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def persistence_degraded(self) -> bool:
        return self._writer is not None and self._writer.degraded

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_request(
        self,
        details: DealDetails,
        is_suspended: Optional[SuspensionCheck] = None,
    ) -> ServiceResult:
        """Create a NEW deal request from a customer to a worker."""
        with self._lock:
            if is_suspended is not None and is_suspended():
                return ServiceResult.fail(
                    ErrorCode.SUSPENDED_ACTOR,
                    _SUSPENDED.format("send deal requests"),
                )

            customer_id = details.customer_id.strip()
            worker_id = details.worker_id.strip()
            if not customer_id or not worker_id:
                return ServiceResult.fail(
                    ErrorCode.INVALID_REQUEST,
                    "Both a customer and a worker are required.",
                )
            if customer_id == worker_id:
                return ServiceResult.fail(
                    ErrorCode.INVALID_REQUEST,
                    "You cannot send a request to yourself.",
                )

            if self._find_active_locked(customer_id, worker_id) is not None:
                return ServiceResult.fail(ErrorCode.DUPLICATE_ACTIVE_REQUEST)

            deal = DealRequest(
                deal_id=self._new_id(),
                customer_id=customer_id,
                customer_name=details.customer_name,
                worker_id=worker_id,
                worker_name=details.worker_name,
                problem=details.problem,
                location=details.location,
                preferred_time=details.preferred_time,
                budget=details.budget,
                created_utc=self._clock(),
            )
            self._deals[deal.deal_id] = deal

            def _rollback() -> None:
                self._deals.pop(deal.deal_id, None)

            err = self._persist(on_rollback=_rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.DEAL_CREATED, customer_id, deal, {
                "customer_id": customer_id,
                "worker_id": worker_id,
            })
            return self._commit(DealEventType.NEW_REQUEST, deal)

    def set_status(
        self,
        deal_id: str,
        new_status: DealStatus,
        is_suspended: Optional[SuspensionCheck] = None,
    ) -> ServiceResult:
        """Worker response to a NEW request: accept, waitlist or reject."""
        with self._lock:
            deal = self._deals.get(deal_id)
            if deal is None:
                return ServiceResult.fail(ErrorCode.DEAL_NOT_FOUND)

            if is_suspended is not None and is_suspended():
                verb = (
                    "accept deal requests"
                    if new_status == DealStatus.ACCEPTED
                    else "respond to deal requests"
                )
                return ServiceResult.fail(
                    ErrorCode.SUSPENDED_ACTOR, _SUSPENDED.format(verb),
                )

            problem = DealStateMachine.validate_status_transition(deal, new_status)
            if problem is not None:
                return ServiceResult.fail(*problem)

            prev = (deal.status, deal.work_status, deal.accepted_utc)
            deal.status = new_status
            if new_status == DealStatus.ACCEPTED:
                deal.work_status = WorkStatus.ACCEPTED
                deal.accepted_utc = not_before(self._clock(), deal.created_utc)

            def _rollback() -> None:
                deal.status, deal.work_status, deal.accepted_utc = prev

            err = self._persist(on_rollback=_rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.DEAL_STATUS_CHANGED, deal.worker_id, deal, {
                "from": prev[0].value,
                "to": new_status.value,
            })
            return self._commit(_STATUS_EVENTS[new_status], deal)

    def advance_work_status(
        self,
        deal_id: str,
        new_work_status: WorkStatus,
        is_suspended: Optional[SuspensionCheck] = None,
    ) -> ServiceResult:
        """Move an accepted deal forward: ACCEPTED → ONGOING → COMPLETED."""
        with self._lock:
            deal = self._deals.get(deal_id)
            if deal is None:
                return ServiceResult.fail(ErrorCode.DEAL_NOT_FOUND)

            if is_suspended is not None and is_suspended():
                return ServiceResult.fail(
                    ErrorCode.SUSPENDED_ACTOR,
                    _SUSPENDED.format("update work status"),
                )

            problem = DealStateMachine.validate_work_transition(deal, new_work_status)
            if problem is not None:
                return ServiceResult.fail(*problem)

            prev = (deal.work_status, deal.started_utc, deal.completed_utc)
            now = self._clock()
            deal.work_status = new_work_status
            if new_work_status == WorkStatus.ONGOING:
                deal.started_utc = not_before(now, deal.accepted_utc)
            elif new_work_status == WorkStatus.COMPLETED:
                deal.completed_utc = not_before(now, deal.started_utc)

            def _rollback() -> None:
                deal.work_status, deal.started_utc, deal.completed_utc = prev

            err = self._persist(on_rollback=_rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.WORK_STATUS_CHANGED, deal.worker_id, deal, {
                "from": (prev[0] or WorkStatus.ACCEPTED).value,
                "to": new_work_status.value,
            })
            return self._commit(DealEventType.STATUS_UPDATE, deal)

    def attach_review(
        self,
        deal_id: str,
        rating: int,
        comment: Optional[str] = None,
        customer_id: Optional[str] = None,
        is_suspended: Optional[SuspensionCheck] = None,
    ) -> ServiceResult:
        """Attach the customer's review to a completed deal.

        Eligibility is checked again here, under the lock, whatever the
        caller saw earlier.
        """
        with self._lock:
            deal = self._deals.get(deal_id)
            if deal is None:
                return ServiceResult.fail(ErrorCode.DEAL_NOT_FOUND)

            if is_suspended is not None and is_suspended():
                return ServiceResult.fail(
                    ErrorCode.SUSPENDED_ACTOR,
                    _SUSPENDED.format("leave reviews"),
                )

            problem = DealStateMachine.validate_review(deal, customer_id)
            if problem is not None:
                return ServiceResult.fail(*problem)
            if not is_valid_rating(rating):
                return ServiceResult.fail(ErrorCode.INVALID_RATING)

            text = comment.strip() if comment else None
            deal.review = Review(
                rating=rating,
                comment=text or None,
                created_utc=not_before(self._clock(), deal.completed_utc),
            )

            def _rollback() -> None:
                deal.review = None

            err = self._persist(on_rollback=_rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.REVIEW_SUBMITTED, deal.customer_id, deal, {
                "rating": rating,
            })
            return self._commit(DealEventType.REVIEW_RECEIVED, deal)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, deal_id: str) -> Optional[DealRequest]:
        with self._lock:
            deal = self._deals.get(deal_id)
            return deal.copy() if deal else None

    def all_deals(self) -> list[DealRequest]:
        with self._lock:
            return [d.copy() for d in self._deals.values()]

    def deals_for_worker(self, worker_id: str) -> list[DealRequest]:
        return [d for d in self.all_deals() if d.worker_id == worker_id]

    def deals_for_customer(self, customer_id: str) -> list[DealRequest]:
        return [d for d in self.all_deals() if d.customer_id == customer_id]

    def new_requests_for_worker(self, worker_id: str) -> list[DealRequest]:
        return [
            d for d in self.deals_for_worker(worker_id)
            if d.status == DealStatus.NEW
        ]

    def has_active_request(self, customer_id: str, worker_id: str) -> bool:
        with self._lock:
            return self._find_active_locked(customer_id, worker_id) is not None

    def active_deal_for_worker(self, worker_id: str) -> Optional[DealRequest]:
        """The worker's job in progress; ONGOING wins over ACCEPTED."""
        return _pick_in_progress(self.deals_for_worker(worker_id))

    def active_deal_for_customer(self, customer_id: str) -> Optional[DealRequest]:
        return _pick_in_progress(self.deals_for_customer(customer_id))

    @property
    def count(self) -> int:
        return len(self._deals)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_active_locked(
        self, customer_id: str, worker_id: str,
    ) -> Optional[DealRequest]:
        for deal in self._deals.values():
            if (
                deal.customer_id == customer_id
                and deal.worker_id == worker_id
                and DealStateMachine.is_active(deal)
            ):
                return deal
        return None

    def _persist(self, on_rollback: Callable[[], None]) -> Optional[str]:
        """Write the collection; roll back the caller's change on failure."""
        if self._writer is None:
            return None
        err = self._writer.write([d.to_dict() for d in self._deals.values()])
        if err:
            on_rollback()
            self._writer.restore([d.to_dict() for d in self._deals.values()])
        return err

    def _audit(
        self,
        kind: EventKind,
        actor_id: str,
        deal: DealRequest,
        payload: dict,
    ) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.record(
                kind, actor_id, deal.deal_id, payload, timestamp_utc=self._clock(),
            )
        except (OSError, ValueError) as e:
            # The transition is already durable; the audit trail is behind.
            log.error("Audit append failed for %s (%s): %s", deal.deal_id, kind.value, e)

    def _commit(self, event_type: DealEventType, deal: DealRequest) -> ServiceResult:
        snapshot = deal.copy()
        self._bus.publish(event_type, snapshot)
        log.info("%s %s", event_type.value, deal.deal_id)
        return ServiceResult.ok(deal=snapshot, event=event_type.value)


def _pick_in_progress(deals: list[DealRequest]) -> Optional[DealRequest]:
    in_progress = [d for d in deals if d.is_in_progress]
    for deal in in_progress:
        if deal.work_status == WorkStatus.ONGOING:
            return deal
    return in_progress[0] if in_progress else None
