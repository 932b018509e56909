"""Tests for NotificationDispatcher — one notification per deal event."""

import pytest

from connecto.deals.store import DealStore
from connecto.errors import ErrorCode
from connecto.models.deal import DealStatus, WorkStatus
from connecto.models.notification import DealEventType
from connecto.notifications.dispatcher import NotificationDispatcher, compose
from connecto.persistence.store import InMemoryStore
from connecto.persistence.writer import CollectionWriter


@pytest.fixture
def dispatcher(bus, clock) -> NotificationDispatcher:
    dispatcher = NotificationDispatcher(clock=clock)
    dispatcher.attach(bus)
    return dispatcher


def _run_lifecycle(store: DealStore, details) -> str:
    deal_id = store.create_request(details).data["deal"].deal_id
    store.set_status(deal_id, DealStatus.ACCEPTED)
    store.advance_work_status(deal_id, WorkStatus.ONGOING)
    store.advance_work_status(deal_id, WorkStatus.COMPLETED)
    store.attach_review(deal_id, 5, "Spotless")
    return deal_id


class FailingStore(InMemoryStore):
    def save(self, key, records) -> None:
        raise OSError("read-only filesystem")


class TestDispatch:
    def test_full_lifecycle_addresses_counter_party(self, store, details, dispatcher) -> None:
        deal_id = _run_lifecycle(store, details)

        worker = dispatcher.notifications_for("w1")
        customer = dispatcher.notifications_for("c1")
        # Newest first.
        assert [n.type for n in worker] == [
            DealEventType.REVIEW_RECEIVED,
            DealEventType.NEW_REQUEST,
        ]
        assert [n.type for n in customer] == [
            DealEventType.STATUS_UPDATE,
            DealEventType.STATUS_UPDATE,
            DealEventType.REQUEST_ACCEPTED,
        ]
        assert all(n.related_deal_id == deal_id for n in worker + customer)

    def test_messages(self, store, details, dispatcher) -> None:
        _run_lifecycle(store, details)
        worker = {n.type: n for n in dispatcher.notifications_for("w1")}
        assert worker[DealEventType.NEW_REQUEST].title == "New Deal Request"
        assert worker[DealEventType.NEW_REQUEST].message == "Asha sent you a deal request."
        assert worker[DealEventType.REVIEW_RECEIVED].message == "Asha left you a 5-star review."

        messages = [n.message for n in dispatcher.notifications_for("c1")]
        assert messages == [
            "Ravi completed the work!",
            "Ravi started working on your request.",
            "Ravi accepted your request.",
        ]

    @pytest.mark.parametrize("status, title, message", [
        (DealStatus.WAITLISTED, "Request Waitlisted", "Ravi added your request to the waitlist."),
        (DealStatus.REJECTED, "Request Declined", "Ravi declined your request."),
    ])
    def test_waitlist_and_reject(self, store, details, dispatcher, status, title, message) -> None:
        deal_id = store.create_request(details).data["deal"].deal_id
        store.set_status(deal_id, status)
        [latest] = dispatcher.notifications_for("c1")
        assert latest.title == title
        assert latest.message == message

    def test_failed_transition_sends_nothing(self, store, details, dispatcher) -> None:
        deal_id = store.create_request(details).data["deal"].deal_id
        store.advance_work_status(deal_id, WorkStatus.COMPLETED)
        assert dispatcher.notifications_for("c1") == []

    def test_missing_names_fall_back(self, store, details) -> None:
        deal = store.create_request(details).data["deal"]
        deal.customer_name = ""
        _, _, message = compose(DealEventType.NEW_REQUEST, deal)
        assert message == "A customer sent you a deal request."

    def test_write_failure_keeps_notification_and_transition(self, store, details, bus, clock) -> None:
        dispatcher = NotificationDispatcher(
            writer=CollectionWriter(FailingStore(), "t.notifications"), clock=clock,
        )
        dispatcher.attach(bus)
        result = store.create_request(details)
        assert result.success
        assert dispatcher.unread_count("w1") == 1


class TestReadState:
    def test_unread_and_mark_read(self, store, details, dispatcher) -> None:
        _run_lifecycle(store, details)
        assert dispatcher.unread_count("c1") == 3
        first = dispatcher.notifications_for("c1")[0]
        assert dispatcher.mark_read(first.notification_id).success
        assert dispatcher.unread_count("c1") == 2

        result = dispatcher.mark_all_read("c1")
        assert result.data["marked"] == 2
        assert dispatcher.unread_count("c1") == 0
        assert dispatcher.unread_count("w1") == 2

    def test_mark_unknown(self, dispatcher) -> None:
        result = dispatcher.mark_read("notif_missing")
        assert result.error_code == ErrorCode.NOTIFICATION_NOT_FOUND

    def test_clear_only_touches_one_user(self, store, details, dispatcher) -> None:
        _run_lifecycle(store, details)
        assert dispatcher.clear("c1").data["removed"] == 3
        assert dispatcher.notifications_for("c1") == []
        assert len(dispatcher.notifications_for("w1")) == 2

    def test_persisted_notifications_reload(self, store, details, bus, clock) -> None:
        backing = InMemoryStore()
        dispatcher = NotificationDispatcher(
            writer=CollectionWriter(backing, "t.notifications"), clock=clock,
        )
        dispatcher.attach(bus)
        store.create_request(details)
        dispatcher.mark_all_read("w1")

        reloaded = NotificationDispatcher(
            writer=CollectionWriter(backing, "t.notifications"), clock=clock,
        )
        [item] = reloaded.notifications_for("w1")
        assert item.read
        assert item.type == DealEventType.NEW_REQUEST
