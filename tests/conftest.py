"""Shared fixtures: a controllable clock and wired-up components."""

from datetime import datetime, timedelta, timezone

import pytest

from connecto.deals.store import DealStore
from connecto.events import EventBus
from connecto.models.deal import DealDetails


START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store(bus: EventBus, clock: FakeClock) -> DealStore:
    return DealStore(bus=bus, clock=clock)


@pytest.fixture
def details() -> DealDetails:
    return DealDetails(
        customer_id="c1",
        customer_name="Asha",
        worker_id="w1",
        worker_name="Ravi",
        problem="Kitchen tap is leaking",
        location="Indiranagar",
        preferred_time="Saturday morning",
        budget="₹2000 - ₹3000",
    )
