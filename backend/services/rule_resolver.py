"""Resolve weekly availability rules into concrete windows for one date."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from backend.domain.constraints import rule_problem
from backend.domain.models import WEEKDAYS, AvailabilityRule, OwnerRef, ResolvedWindow
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def weekday_name(target_date: date) -> str:
    return WEEKDAYS[target_date.weekday()]


def _matches_date(rule: AvailabilityRule, owner: OwnerRef, target_date: date) -> bool:
    return (
        rule.is_active
        and rule.owner == owner
        and rule.day_of_week == weekday_name(target_date)
        and rule.is_valid_on(target_date)
    )


def select_rules(
    rules: Iterable[AvailabilityRule],
    owner: OwnerRef,
    event_id: Optional[str],
    target_date: date,
) -> list[AvailabilityRule]:
    """Pick the rule set that governs `event_id` on `target_date`.

    Event-scoped rules replace global ones entirely: once any rule scoped to
    the event matches the date, global rules are ignored even if the scoped
    rules turn out to be unusable. Rules naming an unknown weekday never match.
    """
    scoped: list[AvailabilityRule] = []
    global_rules: list[AvailabilityRule] = []
    for rule in rules:
        if not _matches_date(rule, owner, target_date):
            continue
        if rule.event_id is None:
            global_rules.append(rule)
        elif event_id is not None and rule.event_id == event_id:
            scoped.append(rule)
    return scoped if scoped else global_rules


def merge_windows(windows: Iterable[ResolvedWindow]) -> list[ResolvedWindow]:
    """Union overlapping or touching windows, ordered by start time."""
    ordered = sorted(windows, key=lambda window: (window.start_time, window.end_time))
    merged: list[ResolvedWindow] = []
    for window in ordered:
        if merged and window.start_time <= merged[-1].end_time:
            last = merged[-1]
            if window.end_time > last.end_time:
                merged[-1] = ResolvedWindow(
                    date=last.date,
                    start_time=last.start_time,
                    end_time=window.end_time,
                )
            continue
        merged.append(window)
    return merged


def resolve_windows(
    rules: Iterable[AvailabilityRule],
    owner: OwnerRef,
    event_id: Optional[str],
    target_date: date,
) -> list[ResolvedWindow]:
    windows: list[ResolvedWindow] = []
    for rule in select_rules(rules, owner, event_id, target_date):
        problem = rule_problem(rule)
        if problem is not None:
            logger.warning(
                "Skipping availability rule %s for %s: %s",
                rule.rule_id,
                owner.token,
                problem,
            )
            continue
        windows.append(
            ResolvedWindow(
                date=target_date,
                start_time=rule.start_time,
                end_time=rule.end_time,
            )
        )
    return merge_windows(windows)
