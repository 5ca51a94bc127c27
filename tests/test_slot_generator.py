from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from backend.domain.models import ResolvedWindow
from backend.services.slot_generator import generate_slots


DAY = date(2026, 1, 26)


def _window(start: time, end: time, day: date = DAY) -> ResolvedWindow:
    return ResolvedWindow(date=day, start_time=start, end_time=end)


def _starts(slots) -> list[str]:
    return [slot.start_time.strftime("%H:%M") for slot in slots]


def test_no_windows_means_no_slots():
    assert generate_slots([], 30) == []


def test_back_to_back_slots_fit_inside_window():
    slots = generate_slots([_window(time(9, 0), time(11, 0))], 45)

    assert _starts(slots) == ["09:00", "09:45"]
    assert slots[-1].end_time == time(10, 30)


def test_default_step_slots_never_overlap():
    windows = [_window(time(6, 0), time(12, 30)), _window(time(13, 0), time(21, 0))]
    slots = generate_slots(windows, 50)

    for first, second in zip(slots, slots[1:]):
        assert first.end_time <= second.start_time


def test_custom_step_produces_staggered_starts():
    slots = generate_slots([_window(time(9, 0), time(10, 30))], 60, step_minutes=15)

    assert _starts(slots) == ["09:00", "09:15", "09:30"]


def test_duplicate_starts_across_windows_are_removed():
    windows = [_window(time(9, 0), time(11, 0)), _window(time(9, 0), time(10, 0))]

    assert _starts(generate_slots(windows, 60)) == ["09:00", "10:00"]


def test_window_shorter_than_duration_yields_nothing():
    assert generate_slots([_window(time(9, 0), time(9, 20))], 30) == []


def test_started_slots_are_dropped_for_today():
    now = datetime(2026, 1, 26, 10, 15)
    slots = generate_slots([_window(time(9, 0), time(13, 0))], 60, now=now)

    assert _starts(slots) == ["11:00", "12:00"]


def test_slot_starting_exactly_now_is_kept():
    now = datetime(2026, 1, 26, 11, 0)
    slots = generate_slots([_window(time(9, 0), time(13, 0))], 60, now=now)

    assert _starts(slots)[0] == "11:00"


def test_past_dates_have_no_slots_and_future_dates_are_untouched():
    now = datetime(2026, 1, 26, 23, 0)
    windows_yesterday = [_window(time(9, 0), time(12, 0), date(2026, 1, 25))]
    windows_tomorrow = [_window(time(9, 0), time(12, 0), date(2026, 1, 27))]

    assert generate_slots(windows_yesterday, 60, now=now) == []
    assert len(generate_slots(windows_tomorrow, 60, now=now)) == 3


def test_aware_now_uses_its_own_wall_clock():
    now = datetime(2026, 1, 26, 10, 30, tzinfo=timezone.utc)
    slots = generate_slots([_window(time(9, 0), time(12, 0))], 60, now=now)

    assert _starts(slots) == ["11:00"]


@pytest.mark.parametrize("duration, step", [(0, None), (-15, None), (30, 0)])
def test_invalid_duration_or_step_raises(duration, step):
    with pytest.raises(ValueError):
        generate_slots([_window(time(9, 0), time(10, 0))], duration, step_minutes=step)
