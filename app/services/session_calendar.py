# app/services/session_calendar.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.live_session import LiveSession
from app.schemas.live_session import LiveSessionRead
from app.services.recurrence import expand_recurring_session, to_calendar_time

logger = logging.getLogger(__name__)


def to_utc(value: datetime, tz: tzinfo) -> datetime:
    """
    Normalize a datetime for storage/querying: naive values are read in the
    calendar timezone `tz`, then everything is converted to UTC.
    """
    return to_calendar_time(value, tz).astimezone(timezone.utc)


async def list_session_occurrences(
    db: AsyncSession,
    range_start: datetime,
    range_end: datetime,
    calendar_tz: tzinfo,
    max_occurrences: Optional[int] = None,
    max_range_days: Optional[int] = None,
) -> List[LiveSessionRead]:
    """
    Expand every session visible in [range_start, range_end] into the
    occurrences a calendar should display.

    Steps
    -----
    1) Validate the window (ordered, and not longer than `max_range_days`).
    2) Load candidate templates:
        - non-recurring sessions starting inside the window
        - recurring sessions whose anchor is not after the window end
    3) Expand each template with the recurrence expander in `calendar_tz`.
    4) Merge and order by start time.

    Raises
    ------
    ValueError
        Reversed or over-long window.
    RecurrenceError
        A stored rule cannot be interpreted, or a session exceeds
        `max_occurrences` in the window.
    """
    window_start = to_utc(range_start, calendar_tz)
    window_end = to_utc(range_end, calendar_tz)

    if window_end < window_start:
        raise ValueError("to_time must be greater than or equal to from_time")

    if max_range_days is not None and window_end - window_start > timedelta(days=max_range_days):
        raise ValueError(f"Calendar window may not exceed {max_range_days} days")

    stmt = (
        select(LiveSession)
        .where(
            or_(
                and_(
                    LiveSession.is_recurring.is_(True),
                    LiveSession.recurrence_rule.is_not(None),
                    LiveSession.start_time <= window_end,
                ),
                and_(
                    LiveSession.start_time >= window_start,
                    LiveSession.start_time <= window_end,
                ),
            )
        )
        .order_by(LiveSession.start_time.asc(), LiveSession.id.asc())
    )

    result = await db.execute(stmt)
    templates = [LiveSessionRead.from_row(row) for row in result.scalars().all()]

    occurrences: List[LiveSessionRead] = []
    for template in templates:
        occurrences.extend(
            expand_recurring_session(
                template,
                window_start,
                window_end,
                tz=calendar_tz,
                max_occurrences=max_occurrences,
            )
        )

    logger.debug(
        "Expanded %d sessions into %d occurrences for %s..%s",
        len(templates),
        len(occurrences),
        window_start.isoformat(),
        window_end.isoformat(),
    )

    # Stable sort keeps template order for identical start times
    occurrences.sort(key=lambda item: item.start_time)
    return occurrences
