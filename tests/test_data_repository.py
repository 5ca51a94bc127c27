from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import date, time

import pytest

from backend.domain.models import AvailabilityRule, BookingStatus, OwnerRef
from backend.repository.data_repository import DataRepository, StorageError
from backend.utils.config import get_settings


@pytest.fixture
def repository(tmp_path) -> DataRepository:
    settings = replace(get_settings(), database_path=tmp_path / "nested" / "repository.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    return repository


def test_seed_is_applied_once(repository):
    assert repository.seed_demo_data() == 29
    assert repository.count_bookings() == 7

    repository.initialize_database()
    assert repository.seed_demo_data() == 0
    assert repository.count_bookings() == 7


def test_seeded_event_and_option_lookup(repository):
    repository.seed_demo_data()

    event = repository.get_event_by_slug("anagrama-reunion-editorial")
    option = repository.get_booking_option(7)

    assert event.event_id == "anagrama-reunion"
    assert event.owner == OwnerRef.organization(3)
    assert option.event_id == "pilates-clase"
    assert option.duration_minutes == 90
    assert option.capacity == 3
    assert repository.get_booking_option(999) is None


def test_user_owned_events_and_rules_round_trip(repository):
    user_id = repository.create_user("nina", "nina@example.com", timezone="America/Bogota")
    duration_id = repository.create_duration(20)
    repository.create_event("nina-tutoria", OwnerRef.user(user_id), "Tutoría", "nina-tutoria")
    option_id = repository.create_booking_option("nina-tutoria", duration_id, 2)
    rule_id = repository.create_availability_rule(
        AvailabilityRule(
            rule_id=None,
            owner=OwnerRef.user(user_id),
            event_id="nina-tutoria",
            day_of_week="friday",
            start_time=time(8, 30),
            end_time=time(12, 0),
            valid_from=date(2026, 1, 1),
        )
    )

    assert repository.get_owner_timezone(OwnerRef.user(user_id)) == "America/Bogota"
    assert repository.get_booking_option(option_id).duration_minutes == 20
    [stored] = repository.list_rules_for_owner(OwnerRef.user(user_id))
    assert stored.rule_id == rule_id
    assert repository.get_rule_owner(rule_id) == OwnerRef.user(user_id)
    assert repository.get_rule_owner(99999) is None
    assert stored.start_time == time(8, 30)
    assert stored.valid_from == date(2026, 1, 1)
    assert stored.valid_until is None

    assert repository.set_rule_active(rule_id, False) is True
    assert repository.list_rules_for_owner(OwnerRef.user(user_id)) == []


def test_bookings_are_listed_per_option_and_date(repository):
    repository.seed_demo_data()
    person_id = repository.create_person("Elena", "Rivas", "elena.rivas@email.com")

    result = repository.insert_booking_within_capacity(
        6,
        date(2026, 1, 23),
        time(11, 0),
        status=BookingStatus.CONFIRMED,
        person_id=person_id,
    )
    bookings = repository.list_bookings(6, date(2026, 1, 23))

    assert result.capacity_exceeded is False
    assert [booking.person_id for booking in bookings] == [5, person_id]
    assert repository.list_bookings(6, date(2026, 1, 24)) == []


def test_insert_for_missing_option_returns_no_booking(repository):
    result = repository.insert_booking_within_capacity(42, date(2026, 1, 26), time(9, 0))

    assert result.booking is None
    assert result.capacity_exceeded is False


def test_constraint_violations_surface_as_storage_errors(repository):
    repository.seed_demo_data()

    with pytest.raises(StorageError):
        repository.create_event("duplicate", OwnerRef.organization(2), "Dup", "pilates-caracas-clase")
    with pytest.raises(StorageError):
        repository.create_booking_option("pilates-clase", 4, 1)
    with pytest.raises(StorageError):
        repository.create_booking_option("pilates-clase", 1, 0)


def _insert_raw_rule(repository, day_of_week: str, start: str, end: str) -> int:
    with sqlite3.connect(repository.database_path) as conn:
        cursor = conn.execute(
            """
            INSERT INTO AvailabilitySchedules (organization_id, day_of_week, start_time, end_time)
            VALUES (2, ?, ?, ?);
            """,
            (day_of_week, start, end),
        )
        return int(cursor.lastrowid)


def test_unreadable_rule_rows_are_skipped_with_warning(repository, caplog):
    repository.seed_demo_data()
    bad_times = _insert_raw_rule(repository, "monday", "6:00", "24:00")
    bad_weekday = _insert_raw_rule(repository, "moonday", "09:00:00", "12:00:00")

    with caplog.at_level("WARNING"):
        rules = repository.list_rules_for_owner(OwnerRef.organization(2))

    assert len(rules) == 6
    assert {bad_times, bad_weekday}.isdisjoint(rule.rule_id for rule in rules)
    assert f"Skipping availability rule {bad_times}" in caplog.text
    assert f"Skipping availability rule {bad_weekday}" in caplog.text
    assert repository.get_rule_owner(bad_times) == OwnerRef.organization(2)


def test_unreadable_database_raises_storage_error(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path)
    repository = DataRepository(settings)

    with pytest.raises(StorageError):
        repository.get_event("pilates-clase")
    with pytest.raises(StorageError):
        repository.list_rules_for_owner(OwnerRef.organization(2))
