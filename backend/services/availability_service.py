"""Day-slot and month-date availability queries for bookable events."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.domain.constraints import validate_rule
from backend.domain.models import (
    AvailabilityRule,
    BookingOption,
    DaySlots,
    Event,
    OwnerRef,
)
from backend.repository.data_repository import DataRepository
from backend.services.availability_cache import AvailabilityCache, build_cache_key
from backend.services.capacity_filter import apply_capacity
from backend.services.rule_resolver import resolve_windows
from backend.services.slot_generator import generate_slots
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AvailabilityValidationError(Exception):
    """Raised when an availability query or rule write is invalid."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityService:
    """Resolves rules, generates slots and applies capacity for one event option.

    Reads are side-effect free apart from the memo cache. Any write that can
    change an owner's availability must go through `invalidate`.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._cache = cache or AvailabilityCache(
            ttl_seconds=self._settings.availability_cache_ttl_seconds,
            max_entries=self._settings.availability_cache_max_entries,
        )
        self._clock = clock

    @property
    def cache(self) -> AvailabilityCache:
        return self._cache

    def owner_timezone(self, owner: OwnerRef) -> str:
        configured = self._repository.get_owner_timezone(owner)
        if configured:
            try:
                ZoneInfo(configured)
                return configured
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning(
                    "Unknown timezone %r for %s; using %s",
                    configured,
                    owner.token,
                    self._settings.default_timezone,
                )
        return self._settings.default_timezone

    def local_now(self, tz_name: str, now: Optional[datetime] = None) -> datetime:
        """Wall-clock time in `tz_name`; naive inputs are taken as already local."""
        current = now or self._clock()
        if current.tzinfo is None:
            return current
        return current.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)

    def _empty(self, event_id: str, option_id: int, target_date: date) -> DaySlots:
        return DaySlots(
            date=target_date,
            event_id=event_id,
            option_id=option_id,
            timezone=self._settings.default_timezone,
            slots=(),
        )

    def _option_for_event(self, event: Event, option_id: int) -> Optional[BookingOption]:
        option = self._repository.get_booking_option(option_id)
        if option is None or option.event_id != event.event_id:
            return None
        return option

    def _compute_day(
        self,
        event: Event,
        option: BookingOption,
        target_date: date,
        tz_name: str,
        local_now: datetime,
        rules: Optional[list[AvailabilityRule]] = None,
    ) -> DaySlots:
        if rules is None:
            rules = self._repository.list_rules_for_owner(event.owner)
        windows = resolve_windows(rules, event.owner, event.event_id, target_date)
        slots = generate_slots(
            windows,
            option.duration_minutes,
            step_minutes=self._settings.slot_step_minutes or None,
            now=local_now,
        )
        bookings = self._repository.list_bookings(option.option_id, target_date) if slots else []
        return DaySlots(
            date=target_date,
            event_id=event.event_id,
            option_id=option.option_id,
            timezone=tz_name,
            slots=tuple(apply_capacity(slots, option.capacity, bookings)),
        )

    def _day_for(
        self,
        event: Event,
        option: BookingOption,
        target_date: date,
        now: Optional[datetime],
        rules: Optional[list[AvailabilityRule]] = None,
        generation: Optional[int] = None,
    ) -> DaySlots:
        tz_name = self.owner_timezone(event.owner)
        local_now = self.local_now(tz_name, now)
        # Today's slots shrink as the clock moves, so they are always recomputed.
        cacheable = target_date != local_now.date()
        key = build_cache_key(event.owner, event.event_id, target_date, option.duration_id)
        if generation is None:
            generation = self._cache.generation(event.owner)
        if cacheable:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
        result = self._compute_day(event, option, target_date, tz_name, local_now, rules)
        if cacheable:
            self._cache.put(key, event.owner, result, generation)
        return result

    def get_slots(
        self,
        event_id: str,
        option_id: int,
        target_date: date,
        *,
        now: Optional[datetime] = None,
    ) -> DaySlots:
        """Ordered slots for one day; unknown event or option yields no slots."""
        event = self._repository.get_event(event_id)
        if event is None:
            return self._empty(event_id, option_id, target_date)
        option = self._option_for_event(event, option_id)
        if option is None:
            return self._empty(event_id, option_id, target_date)
        return self._day_for(event, option, target_date, now)

    def get_slots_by_slug(
        self,
        url_slug: str,
        option_id: int,
        target_date: date,
        *,
        now: Optional[datetime] = None,
    ) -> DaySlots:
        event = self._repository.get_event_by_slug(url_slug)
        if event is None:
            return self._empty(url_slug, option_id, target_date)
        return self.get_slots(event.event_id, option_id, target_date, now=now)

    def get_available_dates(
        self,
        event_id: str,
        option_id: int,
        year: int,
        month: int,
        *,
        now: Optional[datetime] = None,
    ) -> list[date]:
        """Dates in the month with at least one slot that still has capacity."""
        if not 1 <= month <= 12:
            raise AvailabilityValidationError("month must be between 1 and 12")
        if not 1 <= year <= 9999:
            raise AvailabilityValidationError("year must be between 1 and 9999")

        event = self._repository.get_event(event_id)
        if event is None:
            return []
        option = self._option_for_event(event, option_id)
        if option is None:
            return []

        # Generation is read before the rule snapshot.
        generation = self._cache.generation(event.owner)
        rules = self._repository.list_rules_for_owner(event.owner)
        _, days_in_month = calendar.monthrange(year, month)
        available: list[date] = []
        for day in range(1, days_in_month + 1):
            target_date = date(year, month, day)
            day_slots = self._day_for(event, option, target_date, now, rules, generation)
            if day_slots.has_availability:
                available.append(target_date)
        return available

    def add_rule(self, rule: AvailabilityRule) -> int:
        try:
            validate_rule(rule)
        except ValueError as exc:
            raise AvailabilityValidationError(str(exc)) from exc
        if rule.event_id is not None:
            event = self._repository.get_event(rule.event_id)
            if event is None:
                raise AvailabilityValidationError(f"event {rule.event_id!r} does not exist")
            if event.owner != rule.owner:
                raise AvailabilityValidationError(
                    f"event {rule.event_id!r} is not owned by {rule.owner.token}"
                )
        rule_id = self._repository.create_availability_rule(rule)
        self.invalidate(rule.owner)
        logger.info("Availability rule %s added for %s", rule_id, rule.owner.token)
        return rule_id

    def deactivate_rule(self, rule_id: int) -> bool:
        owner = self._repository.get_rule_owner(rule_id)
        if owner is None:
            return False
        self._repository.set_rule_active(rule_id, False)
        self.invalidate(owner)
        logger.info("Availability rule %s deactivated for %s", rule_id, owner.token)
        return True

    def set_option_capacity(self, option_id: int, capacity: int) -> bool:
        if capacity < 1:
            raise AvailabilityValidationError("capacity must be >= 1")
        option = self._repository.get_booking_option(option_id)
        if option is None:
            return False
        self._repository.update_option_capacity(option_id, capacity)
        event = self._repository.get_event(option.event_id)
        if event is not None:
            self.invalidate(event.owner)
        return True

    def invalidate(self, owner: OwnerRef, target_date: Optional[date] = None) -> int:
        return self._cache.invalidate(owner, target_date)
