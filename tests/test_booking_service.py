from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, time

import pytest

from backend.domain.models import BookingStatus
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.booking_service import (
    BookingNotFoundError,
    BookingOptionNotFoundError,
    BookingService,
    BookingValidationError,
    CapacityExceededError,
    SlotNotOfferedError,
)
from backend.utils.config import get_settings


CONSULTA_OPTION = 4  # caracasmed-consulta, 30 minutes, capacity 1
PILATES_LONG_OPTION = 7  # pilates-clase, 90 minutes, capacity 3
MONDAY = date(2026, 1, 26)
NOW = datetime(2026, 1, 1, 8, 0)


def _build_test_settings(tmp_path):
    return replace(get_settings(), database_path=tmp_path / "bookings.db", slot_step_minutes=0)


@pytest.fixture
def services(tmp_path) -> tuple[BookingService, AvailabilityService, DataRepository]:
    settings = _build_test_settings(tmp_path)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()
    availability_service = AvailabilityService(repository=repository, settings=settings)
    booking_service = BookingService(
        repository=repository,
        availability_service=availability_service,
        settings=settings,
    )
    return booking_service, availability_service, repository


def _remaining(availability_service, option_id, event_id, start: time) -> int:
    day = availability_service.get_slots(event_id, option_id, MONDAY, now=NOW)
    return next(slot.remaining_capacity for slot in day.slots if slot.start_time == start)


def test_booking_consumes_capacity_and_refreshes_cached_slots(services):
    booking_service, availability_service, _ = services
    assert _remaining(availability_service, PILATES_LONG_OPTION, "pilates-clase", time(9, 0)) == 3

    booking = booking_service.create_booking(
        PILATES_LONG_OPTION,
        MONDAY,
        time(9, 0),
        person_id=2,
        notes="Primera clase",
        now=NOW,
    )

    assert booking.booking_id > 0
    assert booking.status is BookingStatus.PENDING
    assert _remaining(availability_service, PILATES_LONG_OPTION, "pilates-clase", time(9, 0)) == 2
    assert booking_service.get_booking(booking.booking_id) == booking


def test_full_slot_rejects_further_bookings(services):
    booking_service, availability_service, _ = services
    booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(10, 0), now=NOW)

    with pytest.raises(CapacityExceededError):
        booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(10, 0), now=NOW)

    day = availability_service.get_slots("caracasmed-consulta", CONSULTA_OPTION, MONDAY, now=NOW)
    full = [slot for slot in day.slots if not slot.available]
    assert [slot.start_time for slot in full] == [time(10, 0)]


@pytest.mark.parametrize(
    "target_date, start",
    [
        (MONDAY, time(10, 15)),
        (MONDAY, time(20, 0)),
        (date(2026, 1, 25), time(10, 0)),
    ],
)
def test_times_outside_generated_slots_are_rejected(services, target_date, start):
    booking_service, _, _ = services

    with pytest.raises(SlotNotOfferedError):
        booking_service.create_booking(CONSULTA_OPTION, target_date, start, now=NOW)


def test_slots_already_started_cannot_be_booked(services):
    booking_service, _, _ = services

    with pytest.raises(SlotNotOfferedError):
        booking_service.create_booking(
            CONSULTA_OPTION,
            MONDAY,
            time(9, 0),
            now=datetime(2026, 1, 26, 9, 10),
        )


def test_unknown_option_is_reported(services):
    booking_service, _, _ = services

    with pytest.raises(BookingOptionNotFoundError):
        booking_service.create_booking(999, MONDAY, time(10, 0), now=NOW)


def test_new_booking_cannot_start_cancelled(services):
    booking_service, _, _ = services

    with pytest.raises(BookingValidationError):
        booking_service.create_booking(
            CONSULTA_OPTION,
            MONDAY,
            time(10, 0),
            status=BookingStatus.CANCELLED,
            now=NOW,
        )


def test_cancelling_frees_capacity_and_reconfirming_a_taken_slot_conflicts(services):
    booking_service, availability_service, _ = services
    first = booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(11, 0), now=NOW)

    cancelled = booking_service.update_status(first.booking_id, BookingStatus.CANCELLED)
    assert cancelled.status is BookingStatus.CANCELLED
    assert _remaining(availability_service, CONSULTA_OPTION, "caracasmed-consulta", time(11, 0)) == 1

    booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(11, 0), now=NOW)
    with pytest.raises(CapacityExceededError):
        booking_service.update_status(first.booking_id, BookingStatus.CONFIRMED)

    assert booking_service.get_booking(first.booking_id).status is BookingStatus.CANCELLED


def test_status_change_between_counting_states_keeps_capacity(services):
    booking_service, availability_service, _ = services
    booking = booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(12, 0), now=NOW)

    confirmed = booking_service.update_status(booking.booking_id, BookingStatus.CONFIRMED)

    assert confirmed.status is BookingStatus.CONFIRMED
    assert _remaining(availability_service, CONSULTA_OPTION, "caracasmed-consulta", time(12, 0)) == 0


def test_unknown_booking_is_reported(services):
    booking_service, _, _ = services

    with pytest.raises(BookingNotFoundError):
        booking_service.update_status(12345, BookingStatus.CONFIRMED)
    with pytest.raises(BookingNotFoundError):
        booking_service.get_booking(12345)


def test_concurrent_requests_cannot_oversell_the_last_unit(services):
    booking_service, _, repository = services
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        try:
            booking_service.create_booking(CONSULTA_OPTION, MONDAY, time(15, 0), now=NOW)
            outcome = "booked"
        except CapacityExceededError:
            outcome = "rejected"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["booked", "rejected"]
    active = [
        booking
        for booking in repository.list_bookings(CONSULTA_OPTION, MONDAY)
        if booking.time_slot == time(15, 0)
    ]
    assert len(active) == 1
