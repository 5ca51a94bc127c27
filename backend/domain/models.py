"""Domain models for availability rules, booking options and slots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Optional


WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class OwnerKind(str, Enum):
    USER = "user"
    ORGANIZATION = "organization"


@dataclass(frozen=True)
class OwnerRef:
    """Either a user or an organization; never both."""

    kind: OwnerKind
    owner_id: int

    @classmethod
    def user(cls, user_id: int) -> "OwnerRef":
        return cls(kind=OwnerKind.USER, owner_id=user_id)

    @classmethod
    def organization(cls, organization_id: int) -> "OwnerRef":
        return cls(kind=OwnerKind.ORGANIZATION, owner_id=organization_id)

    @classmethod
    def from_columns(
        cls,
        user_id: Optional[int],
        organization_id: Optional[int],
    ) -> "OwnerRef":
        if (user_id is None) == (organization_id is None):
            raise ValueError("exactly one of user_id or organization_id must be set")
        if user_id is not None:
            return cls.user(int(user_id))
        return cls.organization(int(organization_id))

    @property
    def user_id(self) -> Optional[int]:
        return self.owner_id if self.kind is OwnerKind.USER else None

    @property
    def organization_id(self) -> Optional[int]:
        return self.owner_id if self.kind is OwnerKind.ORGANIZATION else None

    @property
    def token(self) -> str:
        return f"{self.kind.value}:{self.owner_id}"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @property
    def counts_against_capacity(self) -> bool:
        return self in CAPACITY_STATUSES


CAPACITY_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)


@dataclass(frozen=True)
class AvailabilityRule:
    rule_id: Optional[int]
    owner: OwnerRef
    event_id: Optional[str]
    day_of_week: str
    start_time: time
    end_time: time
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: bool = True

    def is_valid_on(self, target_date: date) -> bool:
        if self.valid_from is not None and target_date < self.valid_from:
            return False
        if self.valid_until is not None and target_date > self.valid_until:
            return False
        return True


@dataclass(frozen=True)
class Event:
    event_id: str
    owner: OwnerRef
    title: str
    url_slug: str


@dataclass(frozen=True)
class BookingOption:
    option_id: int
    event_id: str
    duration_id: int
    duration_minutes: int
    capacity: int


@dataclass(frozen=True)
class Booking:
    booking_id: int
    option_id: int
    date: date
    time_slot: time
    status: BookingStatus
    person_id: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ResolvedWindow:
    date: date
    start_time: time
    end_time: time


@dataclass(frozen=True)
class Slot:
    start_time: time
    end_time: time
    remaining_capacity: Optional[int] = None
    available: bool = True


@dataclass(frozen=True)
class DaySlots:
    """Slots for one event option on one date."""

    date: date
    event_id: str
    option_id: int
    timezone: str
    slots: tuple[Slot, ...]

    @property
    def has_availability(self) -> bool:
        return any(slot.available for slot in self.slots)
