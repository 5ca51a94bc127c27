"""Expand resolved windows into discrete bookable slots."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Iterable, Optional

from backend.domain.constraints import SlotConfig, validate_slot_config
from backend.domain.models import ResolvedWindow, Slot


def _to_seconds(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def _from_seconds(total: int) -> time:
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return time(hour=hours, minute=minutes, second=seconds)


def _cutoff_seconds(target_date: date, now: Optional[datetime]) -> Optional[int]:
    """Earliest start (in seconds of day) still bookable on `target_date`.

    Returns None when nothing is cut off, and a value past midnight when the
    whole date lies in the past. `now` is wall-clock time in the owner's zone.
    """
    if now is None:
        return None
    today = now.date()
    if target_date > today:
        return None
    if target_date < today:
        return 24 * 3600
    return _to_seconds(now.time())


def generate_slots(
    windows: Iterable[ResolvedWindow],
    duration_minutes: int,
    *,
    step_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[Slot]:
    config = SlotConfig(duration_minutes=duration_minutes, step_minutes=step_minutes)
    validate_slot_config(config)
    duration = config.duration_minutes * 60
    step = config.effective_step_minutes * 60

    starts: set[int] = set()
    for window in windows:
        cutoff = _cutoff_seconds(window.date, now)
        window_end = _to_seconds(window.end_time)
        candidate = _to_seconds(window.start_time)
        while candidate + duration <= window_end:
            if cutoff is None or candidate >= cutoff:
                starts.add(candidate)
            candidate += step

    return [
        Slot(start_time=_from_seconds(start), end_time=_from_seconds(start + duration))
        for start in sorted(starts)
    ]
