"""Tests for DealStore — proves lifecycle, duplicate and suspension rules."""

import threading

import pytest

from connecto.deals.store import DealStore
from connecto.errors import ErrorCode
from connecto.events import EventBus
from connecto.models.deal import DealDetails, DealStatus, WorkStatus
from connecto.models.notification import DealEventType
from connecto.persistence.event_log import EventKind, EventLog
from connecto.persistence.store import InMemoryStore
from connecto.persistence.writer import CollectionWriter


def _create(store: DealStore, details: DealDetails) -> str:
    result = store.create_request(details)
    assert result.success, result.errors
    return result.data["deal"].deal_id


def _complete(store: DealStore, deal_id: str) -> None:
    assert store.set_status(deal_id, DealStatus.ACCEPTED).success
    assert store.advance_work_status(deal_id, WorkStatus.ONGOING).success
    assert store.advance_work_status(deal_id, WorkStatus.COMPLETED).success


class FailingStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save(self, key, records) -> None:
        if self.fail:
            raise OSError("disk full")
        super().save(key, records)


class TestCreateRequest:
    def test_create_assigns_id_and_timestamp(self, store, details, clock) -> None:
        result = store.create_request(details)
        assert result.success
        deal = result.data["deal"]
        assert deal.deal_id.startswith("deal_")
        assert deal.status == DealStatus.NEW
        assert deal.work_status is None
        assert deal.created_utc == clock.now
        assert store.get(deal.deal_id) == deal

    def test_duplicate_active_request_rejected(self, store, details) -> None:
        _create(store, details)
        result = store.create_request(details)
        assert not result.success
        assert result.error_code == ErrorCode.DUPLICATE_ACTIVE_REQUEST
        assert store.count == 1

    def test_duplicate_scoped_to_pair(self, store, details) -> None:
        _create(store, details)
        other = DealDetails("c1", "Asha", "w2", "Meena", "Paint the wall")
        assert store.create_request(other).success

    def test_completing_frees_the_pair(self, store, details) -> None:
        deal_id = _create(store, details)
        _complete(store, deal_id)
        assert not store.has_active_request("c1", "w1")
        assert store.create_request(details).success

    def test_rejection_frees_the_pair(self, store, details) -> None:
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.REJECTED)
        assert store.create_request(details).success

    def test_self_request_rejected(self, store) -> None:
        result = store.create_request(DealDetails("u1", "Same", "u1", "Same", "x"))
        assert result.error_code == ErrorCode.INVALID_REQUEST

    def test_blank_ids_rejected(self, store) -> None:
        result = store.create_request(DealDetails(" ", "", "w1", "Ravi", "x"))
        assert result.error_code == ErrorCode.INVALID_REQUEST

    def test_suspended_customer_cannot_create(self, store, details) -> None:
        result = store.create_request(details, is_suspended=lambda: True)
        assert result.error_code == ErrorCode.SUSPENDED_ACTOR
        assert "send deal requests" in result.reason
        assert store.count == 0


class TestSetStatus:
    def test_accept_sets_work_status_and_timestamp(self, store, details, clock) -> None:
        deal_id = _create(store, details)
        clock.advance(minutes=5)
        result = store.set_status(deal_id, DealStatus.ACCEPTED)
        deal = result.data["deal"]
        assert deal.status == DealStatus.ACCEPTED
        assert deal.work_status == WorkStatus.ACCEPTED
        assert deal.accepted_utc == clock.now

    def test_unknown_deal(self, store) -> None:
        result = store.set_status("deal_missing", DealStatus.ACCEPTED)
        assert result.error_code == ErrorCode.DEAL_NOT_FOUND

    @pytest.mark.parametrize("terminal", [DealStatus.WAITLISTED, DealStatus.REJECTED])
    def test_terminal_rejects_later_changes(self, store, details, terminal) -> None:
        deal_id = _create(store, details)
        assert store.set_status(deal_id, terminal).success

        for target in (DealStatus.ACCEPTED, DealStatus.REJECTED, DealStatus.WAITLISTED):
            result = store.set_status(deal_id, target)
            assert result.error_code == ErrorCode.TERMINAL_STATE_LOCKED
        result = store.advance_work_status(deal_id, WorkStatus.ONGOING)
        assert result.error_code == ErrorCode.TERMINAL_STATE_LOCKED

        deal = store.get(deal_id)
        assert deal.status == terminal
        assert deal.work_status is None

    def test_suspended_worker_cannot_accept(self, store, details) -> None:
        deal_id = _create(store, details)
        result = store.set_status(deal_id, DealStatus.ACCEPTED, is_suspended=lambda: True)
        assert result.error_code == ErrorCode.SUSPENDED_ACTOR
        assert store.get(deal_id).status == DealStatus.NEW

    def test_clock_going_backwards_does_not_reorder_stamps(self, store, details, clock) -> None:
        deal_id = _create(store, details)
        created = store.get(deal_id).created_utc
        clock.advance(hours=-1)
        deal = store.set_status(deal_id, DealStatus.ACCEPTED).data["deal"]
        assert deal.accepted_utc == created


class TestAdvanceWorkStatus:
    def test_full_lifecycle_stamps(self, store, details, clock) -> None:
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.ACCEPTED)
        clock.advance(hours=1)
        started = store.advance_work_status(deal_id, WorkStatus.ONGOING).data["deal"]
        assert started.started_utc == clock.now
        clock.advance(hours=2)
        done = store.advance_work_status(deal_id, WorkStatus.COMPLETED).data["deal"]
        assert done.completed_utc == clock.now
        assert done.is_completed

    def test_cannot_complete_without_ongoing(self, store, details) -> None:
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.ACCEPTED)
        result = store.advance_work_status(deal_id, WorkStatus.COMPLETED)
        assert result.error_code == ErrorCode.INVALID_TRANSITION
        assert store.get(deal_id).work_status == WorkStatus.ACCEPTED

    def test_new_deal_cannot_start(self, store, details) -> None:
        deal_id = _create(store, details)
        result = store.advance_work_status(deal_id, WorkStatus.ONGOING)
        assert result.error_code == ErrorCode.INVALID_TRANSITION

    def test_suspended_worker_cannot_advance(self, store, details) -> None:
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.ACCEPTED)
        result = store.advance_work_status(
            deal_id, WorkStatus.ONGOING, is_suspended=lambda: True,
        )
        assert result.error_code == ErrorCode.SUSPENDED_ACTOR
        assert store.get(deal_id).work_status == WorkStatus.ACCEPTED


class TestQueries:
    def test_copies_are_isolated(self, store, details) -> None:
        deal_id = _create(store, details)
        copy = store.get(deal_id)
        copy.status = DealStatus.REJECTED
        assert store.get(deal_id).status == DealStatus.NEW

    def test_new_requests_for_worker(self, store, details) -> None:
        first = _create(store, details)
        _create(store, DealDetails("c2", "Bina", "w1", "Ravi", "Fix door"))
        store.set_status(first, DealStatus.REJECTED)
        pending = store.new_requests_for_worker("w1")
        assert [d.customer_id for d in pending] == ["c2"]

    def test_active_deal_prefers_ongoing(self, store, details) -> None:
        first = _create(store, details)
        second = _create(store, DealDetails("c2", "Bina", "w1", "Ravi", "Fix door"))
        store.set_status(first, DealStatus.ACCEPTED)
        store.set_status(second, DealStatus.ACCEPTED)
        store.advance_work_status(second, WorkStatus.ONGOING)
        assert store.active_deal_for_worker("w1").deal_id == second
        assert store.active_deal_for_customer("c1").deal_id == first
        assert store.active_deal_for_customer("c3") is None

    def test_deals_for_customer(self, store, details) -> None:
        _create(store, details)
        assert len(store.deals_for_customer("c1")) == 1
        assert store.deals_for_customer("w1") == []


class TestEvents:
    def test_each_transition_publishes_once(self, store, details, bus) -> None:
        seen = []
        bus.subscribe(lambda event, deal: seen.append((event, deal.deal_id)))
        deal_id = _create(store, details)
        _complete(store, deal_id)
        assert [e for e, _ in seen] == [
            DealEventType.NEW_REQUEST,
            DealEventType.REQUEST_ACCEPTED,
            DealEventType.STATUS_UPDATE,
            DealEventType.STATUS_UPDATE,
        ]

    def test_failed_transition_publishes_nothing(self, store, details, bus) -> None:
        deal_id = _create(store, details)
        seen = []
        bus.subscribe(lambda event, deal: seen.append(event))
        store.advance_work_status(deal_id, WorkStatus.ONGOING)
        assert seen == []

    def test_failing_subscriber_does_not_fail_transition(self, store, details, bus) -> None:
        def _boom(event, deal) -> None:
            raise RuntimeError("subscriber down")

        bus.subscribe(_boom)
        result = store.create_request(details)
        assert result.success
        assert store.count == 1

    def test_audit_log_records_transitions(self, details, clock) -> None:
        log = EventLog()
        store = DealStore(event_log=log, clock=clock)
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.WAITLISTED)
        kinds = [e.event_kind for e in log.events_for(deal_id)]
        assert kinds == [EventKind.DEAL_CREATED, EventKind.DEAL_STATUS_CHANGED]


class TestPersistence:
    def test_reload_from_store(self, details, clock) -> None:
        backing = InMemoryStore()
        store = DealStore(writer=CollectionWriter(backing, "t.deal_requests"), clock=clock)
        deal_id = _create(store, details)
        store.set_status(deal_id, DealStatus.ACCEPTED)

        reloaded = DealStore(writer=CollectionWriter(backing, "t.deal_requests"), clock=clock)
        deal = reloaded.get(deal_id)
        assert deal.status == DealStatus.ACCEPTED
        assert deal.accepted_utc == clock.now

    def test_failed_write_rolls_back_create(self, details, clock) -> None:
        backing = FailingStore()
        store = DealStore(writer=CollectionWriter(backing, "t.deal_requests"), clock=clock)
        backing.fail = True
        result = store.create_request(details)
        assert result.error_code == ErrorCode.PERSISTENCE_FAILED
        assert result.retryable
        assert store.count == 0
        assert not store.has_active_request("c1", "w1")

    def test_failed_write_rolls_back_transition(self, details, clock) -> None:
        backing = FailingStore()
        bus = EventBus()
        store = DealStore(
            writer=CollectionWriter(backing, "t.deal_requests"), bus=bus, clock=clock,
        )
        deal_id = _create(store, details)
        seen = []
        bus.subscribe(lambda event, deal: seen.append(event))
        backing.fail = True
        result = store.set_status(deal_id, DealStatus.ACCEPTED)
        assert result.error_code == ErrorCode.PERSISTENCE_FAILED
        deal = store.get(deal_id)
        assert deal.status == DealStatus.NEW
        assert deal.accepted_utc is None
        assert seen == []


class TestConcurrency:
    def test_concurrent_creates_yield_one_active_deal(self, store, details) -> None:
        results = []
        barrier = threading.Barrier(8)

        def _worker() -> None:
            barrier.wait()
            results.append(store.create_request(details))

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.success) == 1
        assert store.count == 1

    def test_concurrent_accepts_succeed_once(self, store, details) -> None:
        deal_id = _create(store, details)
        results = []
        barrier = threading.Barrier(4)

        def _worker(target: DealStatus) -> None:
            barrier.wait()
            results.append(store.set_status(deal_id, target))

        targets = [DealStatus.ACCEPTED, DealStatus.REJECTED, DealStatus.ACCEPTED, DealStatus.WAITLISTED]
        threads = [threading.Thread(target=_worker, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.success) == 1
