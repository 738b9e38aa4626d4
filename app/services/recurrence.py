# app/services/recurrence.py
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterator, List, Optional, Sequence

from app.schemas.live_session import LiveSessionRead
from app.services.recurrence_rule import (
    Frequency,
    RecurrenceError,
    parse_rule,
    until_instant,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


class OccurrenceLimitError(RecurrenceError):
    """
    Raised when expanding a session over the requested window would produce
    more occurrences than the configured cap.
    """


def to_calendar_time(value: datetime, tz: tzinfo) -> datetime:
    """
    Express `value` in the calendar timezone.

    Naive datetimes are read as wall-clock times in `tz`; aware ones are
    converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def sunday_offset(value: date) -> int:
    """
    Day-of-week with Sunday = 0, which is also the number of days since the
    Sunday that starts `value`'s week.
    """
    return (value.weekday() + 1) % 7


def daily_instants(
    anchor: datetime,
    range_start: datetime,
    effective_end: datetime,
) -> Iterator[datetime]:
    """
    Yield the anchor's time of day on every calendar day from the anchor
    through `effective_end`, skipping days before `range_start`.
    """
    current = anchor
    # Jump over whole days that end before the window opens
    skipped = (range_start.date() - anchor.date()).days - 1
    if skipped > 0:
        current = anchor + timedelta(days=skipped)

    while current <= effective_end:
        if current >= range_start:
            yield current
        current += ONE_DAY


def weekly_instants(
    anchor: datetime,
    weekdays: Sequence[int],
    range_start: datetime,
    effective_end: datetime,
) -> Iterator[datetime]:
    """
    Yield the anchor's time of day on each of `weekdays` (0 = Sunday), week
    by week starting with the anchor's week.

    Within a week the days come out in the order given by `weekdays`.
    Instants before the anchor, before `range_start` or after
    `effective_end` are dropped.
    """
    tz = anchor.tzinfo
    time_of_day = anchor.time()
    week_start_day = anchor.date() - timedelta(days=sunday_offset(anchor.date()))

    # Jump over whole weeks that end before the window opens
    skipped_weeks = (range_start.date() - week_start_day).days // 7 - 1
    if skipped_weeks > 0:
        week_start_day += timedelta(weeks=skipped_weeks)

    while datetime.combine(week_start_day, time.min, tzinfo=tz) <= effective_end:
        for weekday in weekdays:
            candidate = datetime.combine(
                week_start_day + timedelta(days=weekday), time_of_day, tzinfo=tz
            )
            if anchor <= candidate and range_start <= candidate <= effective_end:
                yield candidate
        week_start_day += ONE_WEEK


def make_occurrence(
    session: LiveSessionRead,
    start: datetime,
    duration: Optional[timedelta],
) -> LiveSessionRead:
    """
    Copy of the template moved to `start`, flagged as a computed occurrence.
    """
    return session.model_copy(
        update={
            "start_time": start,
            "end_time": (
                (start.astimezone(timezone.utc) + duration).astimezone(start.tzinfo)
                if duration is not None
                else None
            ),
            "is_occurrence": True,
        }
    )


def expand_recurring_session(
    session: LiveSessionRead,
    range_start: datetime,
    range_end: datetime,
    *,
    tz: tzinfo = timezone.utc,
    max_occurrences: Optional[int] = None,
) -> List[LiveSessionRead]:
    """
    Expand a recurring session into its occurrences within
    [range_start, range_end].

    Behaviour
    ---------
    - Non-recurring sessions (or recurring ones without a rule) are returned
      unchanged as a one-element list.
    - The window end is clipped to the rule's UNTIL (23:59:59 on that date).
    - FREQ=DAILY repeats every day at the anchor's time of day.
    - FREQ=WEEKLY repeats on the BYDAY days (or the anchor's weekday), never
      before the anchor itself.
    - Any other FREQ generates nothing.
    - Dates listed in `excluded_dates` are skipped.
    - If nothing was generated but the anchor itself lies in the window, the
      original session is returned so it never silently disappears.

    Parameters
    ----------
    tz:
        Calendar basis for day boundaries, weekdays and excluded-date keys.
        Naive datetimes (session or range) are read in this timezone.
    max_occurrences:
        Optional hard cap; OccurrenceLimitError is raised if exceeded.

    Raises
    ------
    InvalidRuleError
        The rule has a malformed UNTIL or an unknown BYDAY code.
    OccurrenceLimitError
        More than `max_occurrences` occurrences would be produced.
    """
    if not session.is_recurring or not session.recurrence_rule:
        return [session]

    rule = parse_rule(session.recurrence_rule)

    window_start = to_calendar_time(range_start, tz)
    window_end = to_calendar_time(range_end, tz)
    effective_end = window_end
    if rule.until is not None:
        until = until_instant(rule.until, tz)
        if until < window_end:
            effective_end = until

    anchor = to_calendar_time(session.start_time, tz)
    duration: Optional[timedelta] = None
    if session.end_time is not None:
        # Elapsed time, not wall-clock difference, so DST shifts keep the length
        duration = to_calendar_time(session.end_time, tz).astimezone(
            timezone.utc
        ) - anchor.astimezone(timezone.utc)

    excluded = set(session.excluded_dates or ())

    if rule.freq is Frequency.DAILY:
        instants: Iterator[datetime] = daily_instants(anchor, window_start, effective_end)
    elif rule.freq is Frequency.WEEKLY:
        weekdays = rule.by_day or (sunday_offset(anchor.date()),)
        instants = weekly_instants(anchor, weekdays, window_start, effective_end)
    else:
        logger.debug(
            "Session %s: unsupported FREQ %r, no occurrences generated",
            session.id,
            rule.raw_freq,
        )
        instants = iter(())

    occurrences: List[LiveSessionRead] = []
    for instant in instants:
        if instant.date().isoformat() in excluded:
            continue
        if max_occurrences is not None and len(occurrences) >= max_occurrences:
            raise OccurrenceLimitError(
                f"Session {session.id} would produce more than {max_occurrences} "
                "occurrences in the requested range"
            )
        occurrences.append(make_occurrence(session, instant, duration))

    if not occurrences:
        if window_start <= anchor <= window_end:
            logger.debug(
                "Session %s: no occurrences in range, falling back to the stored session",
                session.id,
            )
            return [session]
        return []

    return occurrences
