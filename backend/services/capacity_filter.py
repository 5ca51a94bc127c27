"""Annotate slots with remaining capacity from existing bookings."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from typing import Iterable

from backend.domain.models import Booking, Slot


def count_active_bookings(bookings: Iterable[Booking]) -> Counter:
    """Count capacity-consuming bookings per start time."""
    return Counter(
        booking.time_slot
        for booking in bookings
        if booking.status.counts_against_capacity
    )


def apply_capacity(
    slots: Iterable[Slot],
    capacity: int,
    bookings: Iterable[Booking],
) -> list[Slot]:
    """Return every slot with remaining capacity; full slots stay, marked unavailable."""
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    taken = count_active_bookings(bookings)
    annotated: list[Slot] = []
    for slot in slots:
        remaining = max(0, capacity - taken.get(slot.start_time, 0))
        annotated.append(
            replace(slot, remaining_capacity=remaining, available=remaining > 0)
        )
    return annotated
