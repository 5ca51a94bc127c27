"""Booking write path: capacity-checked creation and status changes."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from backend.domain.models import Booking, BookingStatus
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class BookingError(Exception):
    """Base exception for booking write failures."""


class BookingValidationError(BookingError):
    """Raised when a booking request is malformed."""


class BookingOptionNotFoundError(BookingError):
    """Raised when the referenced event option does not exist."""


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist."""


class SlotNotOfferedError(BookingValidationError):
    """Raised when the requested start time is not a generated slot for the date."""


class CapacityExceededError(BookingError):
    """Raised when the slot has no remaining capacity at write time."""


class BookingService:
    """Creates bookings without overselling a slot.

    The capacity check and the insert run inside one SQLite write transaction,
    so two requests racing for the last unit cannot both succeed.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        availability_service: Optional[AvailabilityService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._availability_service = availability_service or AvailabilityService(
            repository=self._repository,
            settings=self._settings,
        )

    def create_booking(
        self,
        option_id: int,
        target_date: date,
        time_slot: time,
        *,
        person_id: Optional[int] = None,
        notes: Optional[str] = None,
        status: BookingStatus = BookingStatus.PENDING,
        now: Optional[datetime] = None,
    ) -> Booking:
        if not status.counts_against_capacity:
            raise BookingValidationError(f"new bookings cannot start as {status.value}")
        option = self._repository.get_booking_option(option_id)
        if option is None:
            raise BookingOptionNotFoundError(f"Event option {option_id} not found")
        event = self._repository.get_event(option.event_id)
        if event is None:
            raise BookingOptionNotFoundError(f"Event option {option_id} has no event")

        start = time_slot.replace(microsecond=0, tzinfo=None)
        day = self._availability_service.get_slots(
            event.event_id,
            option_id,
            target_date,
            now=now,
        )
        offered = {slot.start_time: slot for slot in day.slots}
        if start not in offered:
            raise SlotNotOfferedError(
                f"{start.strftime('%H:%M')} is not a bookable slot on {target_date.isoformat()}"
            )
        if not offered[start].available:
            raise CapacityExceededError("Slot has no remaining capacity")

        result = self._repository.insert_booking_within_capacity(
            option_id,
            target_date,
            start,
            status=status,
            person_id=person_id,
            notes=notes,
        )
        self._availability_service.invalidate(event.owner, target_date)
        if result.capacity_exceeded:
            logger.info(
                "Rejected booking for option %s at %s %s: capacity reached",
                option_id,
                target_date.isoformat(),
                start.isoformat(),
            )
            raise CapacityExceededError("Slot has no remaining capacity")
        if result.booking is None:
            raise BookingOptionNotFoundError(f"Event option {option_id} not found")

        logger.info(
            "Booking %s created for option %s at %s %s",
            result.booking.booking_id,
            option_id,
            target_date.isoformat(),
            start.isoformat(),
        )
        return result.booking

    def update_status(self, booking_id: int, status: BookingStatus) -> Booking:
        result = self._repository.update_booking_status_within_capacity(booking_id, status)
        if result.booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        option = self._repository.get_booking_option(result.booking.option_id)
        event = None if option is None else self._repository.get_event(option.event_id)
        if event is not None:
            self._availability_service.invalidate(event.owner, result.booking.date)

        if result.capacity_exceeded:
            raise CapacityExceededError(
                f"Booking {booking_id} cannot become {status.value}: slot is full"
            )
        logger.info("Booking %s moved to %s", booking_id, status.value)
        return result.booking

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking
