"""Notification dispatcher — one notification per deal transition.

Subscribed to the DealStore's EventBus. Each (event_type, deal) pair
produces exactly one NotificationItem for the counter-party of whoever
acted:

    NEW_REQUEST         → worker
    REQUEST_ACCEPTED    → customer
    REQUEST_WAITLISTED  → customer
    REQUEST_REJECTED    → customer
    STATUS_UPDATE       → customer
    REVIEW_RECEIVED     → worker

Dispatch never fails the transition that triggered it. A failed write of
the notification collection is logged and the notification is kept in
memory.
"""

from __future__ import annotations

import threading
import uuid
from typing import Callable, Optional

from connecto.clock import Clock, utc_now
from connecto.errors import ErrorCode, ServiceResult
from connecto.events import EventBus
from connecto.log import get_logger
from connecto.models.deal import DealRequest, WorkStatus
from connecto.models.notification import DealEventType, NotificationItem
from connecto.persistence.writer import CollectionWriter


NOTIFICATIONS = "notifications"

log = get_logger("notifications")


def _customer(deal: DealRequest) -> str:
    return deal.customer_name or "A customer"


def _worker(deal: DealRequest) -> str:
    return deal.worker_name or "Your worker"


def compose(event_type: DealEventType, deal: DealRequest) -> tuple[str, str, str]:
    """Return (recipient_id, title, message) for an event."""
    if event_type == DealEventType.NEW_REQUEST:
        return (
            deal.worker_id,
            "New Deal Request",
            f"{_customer(deal)} sent you a deal request.",
        )
    if event_type == DealEventType.REQUEST_ACCEPTED:
        return (
            deal.customer_id,
            "Request Accepted",
            f"{_worker(deal)} accepted your request.",
        )
    if event_type == DealEventType.REQUEST_WAITLISTED:
        return (
            deal.customer_id,
            "Request Waitlisted",
            f"{_worker(deal)} added your request to the waitlist.",
        )
    if event_type == DealEventType.REQUEST_REJECTED:
        return (
            deal.customer_id,
            "Request Declined",
            f"{_worker(deal)} declined your request.",
        )
    if event_type == DealEventType.STATUS_UPDATE:
        if deal.work_status == WorkStatus.ONGOING:
            message = f"{_worker(deal)} started working on your request."
        elif deal.work_status == WorkStatus.COMPLETED:
            message = f"{_worker(deal)} completed the work!"
        else:
            message = f"{_worker(deal)} updated the status of your request."
        return (deal.customer_id, "Work Status Updated", message)
    if event_type == DealEventType.REVIEW_RECEIVED:
        stars = deal.review.rating if deal.review else 0
        return (
            deal.worker_id,
            "New Review Received",
            f"{_customer(deal)} left you a {stars}-star review.",
        )
    raise ValueError(f"Unhandled deal event type: {event_type!r}")


class NotificationDispatcher:
    """Owns per-user notifications derived from deal events.

    Usage:
        dispatcher = NotificationDispatcher(writer=writer)
        dispatcher.attach(store.bus)
        dispatcher.notifications_for("w1")
    """

    def __init__(
        self,
        writer: Optional[CollectionWriter] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._writer = writer
        self._clock = clock
        self._lock = threading.Lock()
        self._items: list[NotificationItem] = []

        if writer is not None:
            self._items.extend(
                NotificationItem.from_dict(d) for d in writer.load() or []
            )

    @property
    def persistence_degraded(self) -> bool:
        return self._writer is not None and self._writer.degraded

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Subscribe to a bus. Returns the unsubscribe callable."""
        return bus.subscribe(self.handle)

    def handle(self, event_type: DealEventType, deal: DealRequest) -> NotificationItem:
        """Create and store the notification for one deal event."""
        recipient, title, message = compose(event_type, deal)
        item = NotificationItem(
            notification_id=f"notif_{uuid.uuid4().hex[:12]}",
            user_id=recipient,
            title=title,
            message=message,
            type=event_type,
            related_deal_id=deal.deal_id,
            created_utc=self._clock(),
        )
        with self._lock:
            self._items.append(item)
            err = self._write()
        if err:
            log.error("Notification %s kept in memory only: %s", item.notification_id, err)
        return _copy(item)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def notifications_for(self, user_id: str) -> list[NotificationItem]:
        """A user's notifications, newest first."""
        with self._lock:
            mine = [_copy(n) for n in self._items if n.user_id == user_id]
        mine.reverse()
        return mine

    def unread_count(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for n in self._items if n.user_id == user_id and not n.read)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_read(self, notification_id: str) -> ServiceResult:
        with self._lock:
            item = next(
                (n for n in self._items if n.notification_id == notification_id),
                None,
            )
            if item is None:
                return ServiceResult.fail(ErrorCode.NOTIFICATION_NOT_FOUND)
            was_read = item.read
            item.read = True
            err = self._write()
            if err:
                item.read = was_read
                self._restore()
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)
            return ServiceResult.ok(notification=_copy(item))

    def mark_all_read(self, user_id: str) -> ServiceResult:
        with self._lock:
            changed = [n for n in self._items if n.user_id == user_id and not n.read]
            for item in changed:
                item.read = True
            err = self._write() if changed else None
            if err:
                for item in changed:
                    item.read = False
                self._restore()
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)
            return ServiceResult.ok(marked=len(changed))

    def clear(self, user_id: str) -> ServiceResult:
        """Delete every notification addressed to a user."""
        with self._lock:
            before = list(self._items)
            self._items = [n for n in self._items if n.user_id != user_id]
            removed = len(before) - len(self._items)
            err = self._write() if removed else None
            if err:
                self._items = before
                self._restore()
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)
            return ServiceResult.ok(removed=removed)

    def _write(self) -> Optional[str]:
        if self._writer is None:
            return None
        return self._writer.write([n.to_dict() for n in self._items])

    def _restore(self) -> None:
        if self._writer is not None:
            self._writer.restore([n.to_dict() for n in self._items])


def _copy(item: NotificationItem) -> NotificationItem:
    return NotificationItem.from_dict(item.to_dict())
