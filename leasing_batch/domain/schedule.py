"""
Pure schedule evaluation.

``should_fire(schedule, as_of)`` and ``compute_next_run(...)`` take every
timestamp from the caller and touch nothing; the scheduler owns the clock
and the schedule snapshots.

Cron support is the five-field subset ``minute hour day month weekday``
with ``*``, single values, ``a-b`` ranges, ``*/n`` and ``a-b/n`` steps and
comma lists.  Weekday 0 is Sunday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from leasing_batch.domain.types import JobSchedule, ScheduleFrequency

_FIELD_BOUNDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 6),
)

_FREQUENCY_STEP = {
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.DAILY: timedelta(days=1),
    ScheduleFrequency.WEEKLY: timedelta(weeks=1),
}

# Cron search horizon; every valid expression matches within a leap-year cycle.
_SEARCH_DAYS = 4 * 366


@dataclass(frozen=True)
class CronSpec:
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]

    def matches_day(self, dt: datetime) -> bool:
        return (
            dt.month in self.months
            and dt.day in self.days
            and (dt.weekday() + 1) % 7 in self.weekdays
        )

    def matches(self, dt: datetime) -> bool:
        return self.matches_day(dt) and dt.hour in self.hours and dt.minute in self.minutes


def _expand(part: str, name: str, low: int, high: int) -> set[int]:
    base, _, step_text = part.partition("/")
    step = int(step_text) if step_text else 1
    if step <= 0:
        raise ValueError(f"{name}: step must be positive in '{part}'")

    if base == "*":
        start, stop = low, high
    elif "-" in base:
        first, _, last = base.partition("-")
        start, stop = int(first), int(last)
    else:
        start = int(base)
        stop = high if step_text else start

    if start > stop:
        raise ValueError(f"{name}: range start after end in '{part}'")
    if start < low or stop > high:
        raise ValueError(f"{name}: '{part}' outside [{low}, {high}]")
    return set(range(start, stop + 1, step))


def parse_cron(expression: str) -> CronSpec:
    """
    Parse a five-field cron expression.

    Raises:
        ValueError: wrong field count, non-numeric value or out-of-range value.
    """
    fields = expression.split()
    if len(fields) != len(_FIELD_BOUNDS):
        raise ValueError(f"expected 5 cron fields, got {len(fields)}: '{expression}'")

    parsed = []
    for text, (name, low, high) in zip(fields, _FIELD_BOUNDS):
        values: set[int] = set()
        for part in text.split(","):
            try:
                values |= _expand(part.strip(), name, low, high)
            except ValueError as exc:
                raise ValueError(f"invalid cron expression '{expression}': {exc}") from exc
        parsed.append(frozenset(values))
    return CronSpec(*parsed)


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """
    First minute strictly after ``after`` matching ``spec``.

    Skips whole days and hours that cannot match before scanning minutes.
    """
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = candidate + timedelta(days=_SEARCH_DAYS)
    while candidate < limit:
        if not spec.matches_day(candidate):
            candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if candidate.hour not in spec.hours:
            candidate = candidate.replace(minute=0) + timedelta(hours=1)
            continue
        if candidate.minute in spec.minutes:
            return candidate
        candidate += timedelta(minutes=1)
    raise ValueError(f"cron expression never matches after {after.isoformat()}")


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """
    True when the schedule is due at ``as_of``.

    ON_DEMAND and inactive schedules never fire.  ONCE fires until it has
    run.  Everything else fires once ``as_of`` reaches ``next_run_at``; a
    missing ``next_run_at`` means the schedule was never armed.
    """
    if not schedule.is_active or schedule.frequency == ScheduleFrequency.ON_DEMAND:
        return False
    if schedule.frequency == ScheduleFrequency.ONCE:
        return schedule.last_run_at is None and (
            schedule.next_run_at is None or as_of >= schedule.next_run_at
        )
    return schedule.next_run_at is not None and as_of >= schedule.next_run_at


def compute_next_run(
    frequency: ScheduleFrequency,
    after: datetime,
    cron_expression: str | None = None,
) -> datetime | None:
    """
    Next due time strictly after ``after``.

    A cron expression wins over the frequency step.  Returns None for
    ONCE and ON_DEMAND without a cron expression.

    Raises:
        ValueError: malformed cron expression.
    """
    if frequency == ScheduleFrequency.ON_DEMAND:
        return None
    if cron_expression:
        return next_cron_match(parse_cron(cron_expression), after)
    step = _FREQUENCY_STEP.get(frequency)
    return after + step if step is not None else None
