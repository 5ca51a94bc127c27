"""Domain-level validation rules for availability data."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.domain.models import WEEKDAYS, AvailabilityRule


@dataclass(frozen=True)
class SlotConfig:
    duration_minutes: int
    step_minutes: Optional[int] = None
    capacity: int = 1

    @property
    def effective_step_minutes(self) -> int:
        return self.step_minutes or self.duration_minutes


def validate_slot_config(config: SlotConfig) -> None:
    if config.duration_minutes <= 0:
        raise ValueError("duration_minutes must be > 0")
    if config.step_minutes is not None and config.step_minutes <= 0:
        raise ValueError("step_minutes must be > 0 when provided")
    if config.capacity < 1:
        raise ValueError("capacity must be >= 1")


def rule_problem(rule: AvailabilityRule) -> Optional[str]:
    """Return why a rule is malformed, or None when it is usable."""
    if rule.day_of_week not in WEEKDAYS:
        return f"invalid day_of_week {rule.day_of_week!r}"
    if rule.start_time >= rule.end_time:
        return "start_time must be before end_time"
    if (
        rule.valid_from is not None
        and rule.valid_until is not None
        and rule.valid_from > rule.valid_until
    ):
        return "valid_from must not be after valid_until"
    return None


def validate_rule(rule: AvailabilityRule) -> None:
    problem = rule_problem(rule)
    if problem is not None:
        raise ValueError(problem)
