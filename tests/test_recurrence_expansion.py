# tests/test_recurrence_expansion.py
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.schemas.live_session import LiveSessionRead
from app.services.recurrence import OccurrenceLimitError, expand_recurring_session
from app.services.recurrence_rule import InvalidRuleError

UTC = timezone.utc


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def _session(
    start: datetime,
    end: datetime | None = None,
    rule: str | None = None,
    is_recurring: bool = True,
    excluded: tuple[str, ...] = (),
) -> LiveSessionRead:
    return LiveSessionRead(
        id=1,
        name="Live Q&A",
        description="Weekly Q&A session",
        start_time=start,
        end_time=end,
        meet_link="https://meet.google.com/abc-defg-hij",
        is_recurring=is_recurring,
        recurrence_rule=rule,
        excluded_dates=list(excluded),
    )


def _starts(occurrences: list[LiveSessionRead]) -> list[datetime]:
    return [o.start_time for o in occurrences]


# --------------------------------------------------------------------------
# Pass-through
# --------------------------------------------------------------------------

def test_non_recurring_session_is_returned_unchanged_regardless_of_range():
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY", is_recurring=False)

    result = expand_recurring_session(session, _utc(2030, 1, 1), _utc(2030, 1, 2))

    assert result == [session]
    assert result[0] is session


def test_recurring_flag_without_rule_is_passed_through():
    session = _session(_utc(2026, 1, 1, 9), rule=None)

    assert expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 31)) == [session]


# --------------------------------------------------------------------------
# DAILY
# --------------------------------------------------------------------------

def test_daily_occurrences_are_bounded_by_range():
    session = _session(_utc(2026, 1, 1, 9), _utc(2026, 1, 1, 10), rule="FREQ=DAILY")

    result = expand_recurring_session(session, _utc(2026, 1, 3), _utc(2026, 1, 5, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 1, 3, 9), _utc(2026, 1, 4, 9), _utc(2026, 1, 5, 9)]
    for occurrence in result:
        assert occurrence.is_occurrence is True
        assert occurrence.end_time - occurrence.start_time == timedelta(hours=1)
        assert occurrence.id == session.id
        assert occurrence.name == session.name


def test_until_clips_inclusively_at_end_of_day():
    session = _session(
        _utc(2026, 1, 1, 9), _utc(2026, 1, 1, 10), rule="FREQ=DAILY;UNTIL=20260104"
    )

    result = expand_recurring_session(session, _utc(2026, 1, 3), _utc(2026, 1, 5, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 1, 3, 9), _utc(2026, 1, 4, 9)]


def test_excluded_dates_are_skipped():
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY", excluded=("2026-01-02",))

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 3, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 1, 1, 9), _utc(2026, 1, 3, 9)]


def test_daily_without_end_time_produces_open_ended_occurrences():
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY")

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 2, 23, 59, 59))

    assert len(result) == 2
    assert all(o.end_time is None for o in result)


def test_daily_never_starts_before_anchor():
    session = _session(_utc(2026, 1, 10, 9), rule="FREQ=DAILY")

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 11, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 1, 10, 9), _utc(2026, 1, 11, 9)]


def test_daily_far_from_anchor_matches_the_window_only():
    session = _session(_utc(2020, 1, 1, 9), rule="FREQ=DAILY")

    result = expand_recurring_session(session, _utc(2026, 2, 3), _utc(2026, 2, 3, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 2, 3, 9)]


# --------------------------------------------------------------------------
# WEEKLY
# --------------------------------------------------------------------------

def test_weekly_byday_over_two_weeks():
    # 2026-02-02 is a Monday
    session = _session(
        _utc(2026, 2, 2, 18), _utc(2026, 2, 2, 19), rule="FREQ=WEEKLY;BYDAY=MO,WE"
    )

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 14, 23, 59, 59))

    assert _starts(result) == [
        _utc(2026, 2, 2, 18),
        _utc(2026, 2, 4, 18),
        _utc(2026, 2, 9, 18),
        _utc(2026, 2, 11, 18),
    ]


def test_weekly_skips_listed_days_before_the_anchor_in_its_first_week():
    # Anchor on Wednesday; the Monday of the same week precedes the series
    session = _session(_utc(2026, 2, 4, 18), rule="FREQ=WEEKLY;BYDAY=MO,WE")

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 8, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 2, 4, 18)]


def test_weekly_defaults_to_anchor_weekday():
    session = _session(_utc(2026, 2, 2, 18), rule="FREQ=WEEKLY")

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 14, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 2, 2, 18), _utc(2026, 2, 9, 18)]


def test_weekly_keeps_byday_listing_order_within_a_week():
    # Anchor Sunday 2026-02-01
    session = _session(_utc(2026, 2, 1, 18), rule="FREQ=WEEKLY;BYDAY=WE,MO")

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 14, 23, 59, 59))

    assert _starts(result) == [
        _utc(2026, 2, 4, 18),
        _utc(2026, 2, 2, 18),
        _utc(2026, 2, 11, 18),
        _utc(2026, 2, 9, 18),
    ]


def test_weekly_weeks_start_on_sunday():
    # Anchor Saturday 2026-02-07: the Sunday of its week (Feb 1) is before it
    session = _session(_utc(2026, 2, 7, 10), rule="FREQ=WEEKLY;BYDAY=SU,SA")

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 14, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 2, 7, 10), _utc(2026, 2, 8, 10), _utc(2026, 2, 14, 10)]


def test_weekly_until_and_exclusions():
    session = _session(
        _utc(2026, 2, 2, 18),
        rule="FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20260209",
        excluded=("2026-02-04",),
    )

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 28))

    assert _starts(result) == [_utc(2026, 2, 2, 18), _utc(2026, 2, 9, 18)]


def test_weekly_far_from_anchor_matches_the_window_only():
    # 2020-01-06 is a Monday
    session = _session(_utc(2020, 1, 6, 7, 30), rule="FREQ=WEEKLY;BYDAY=MO")

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 14, 23, 59, 59))

    assert _starts(result) == [_utc(2026, 2, 2, 7, 30), _utc(2026, 2, 9, 7, 30)]


# --------------------------------------------------------------------------
# Fallback
# --------------------------------------------------------------------------

def test_unsupported_freq_falls_back_to_original_when_anchor_in_range():
    session = _session(_utc(2026, 1, 15, 9), rule="FREQ=MONTHLY")

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 31))

    assert result == [session]
    assert result[0].is_occurrence is False


def test_unsupported_freq_outside_range_yields_nothing():
    session = _session(_utc(2026, 1, 15, 9), rule="FREQ=YEARLY")

    assert expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 28)) == []


def test_fully_excluded_range_falls_back_to_original_anchor():
    session = _session(
        _utc(2026, 1, 1, 9),
        rule="FREQ=DAILY",
        excluded=("2026-01-01", "2026-01-02"),
    )

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 2, 23, 59, 59))

    assert result == [session]


def test_fallback_uses_range_end_not_until():
    # UNTIL before the anchor clips everything, but the anchor is in range
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY;UNTIL=20251231")

    result = expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 3))

    assert result == [session]


def test_no_matches_and_anchor_outside_range_yields_empty_list():
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY;UNTIL=20260102")

    assert expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 2, 28)) == []


# --------------------------------------------------------------------------
# Invariants
# --------------------------------------------------------------------------

def test_duration_is_preserved_on_every_occurrence():
    session = _session(
        _utc(2026, 2, 2, 18), _utc(2026, 2, 2, 19, 30), rule="FREQ=WEEKLY;BYDAY=MO,TH"
    )
    duration = session.end_time - session.start_time

    result = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 3, 31))

    assert len(result) > 4
    for occurrence in result:
        assert occurrence.end_time - occurrence.start_time == duration


def test_every_occurrence_respects_window_anchor_and_exclusions():
    session = _session(
        _utc(2026, 2, 3, 8),
        rule="FREQ=WEEKLY;BYDAY=SU,TU,FR;UNTIL=20260320",
        excluded=("2026-02-06", "2026-03-01"),
    )
    range_start = _utc(2026, 2, 1)
    range_end = _utc(2026, 4, 30)

    result = expand_recurring_session(session, range_start, range_end)

    assert result
    for occurrence in result:
        assert range_start <= occurrence.start_time <= _utc(2026, 3, 20, 23, 59, 59)
        assert occurrence.start_time >= session.start_time
        assert occurrence.start_time.date().isoformat() not in session.excluded_dates


def test_expansion_is_idempotent():
    session = _session(
        _utc(2026, 2, 2, 18),
        _utc(2026, 2, 2, 19),
        rule="FREQ=WEEKLY;BYDAY=MO,WE",
        excluded=("2026-02-09",),
    )

    first = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 3, 1))
    second = expand_recurring_session(session, _utc(2026, 2, 1), _utc(2026, 3, 1))

    assert first == second
    assert session.is_occurrence is False


# --------------------------------------------------------------------------
# Errors and limits
# --------------------------------------------------------------------------

def test_malformed_until_raises():
    # The schema rejects such rules on input; simulate a bad stored value
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY").model_copy(
        update={"recurrence_rule": "FREQ=DAILY;UNTIL=2026-01-04"}
    )

    with pytest.raises(InvalidRuleError):
        expand_recurring_session(session, _utc(2026, 1, 1), _utc(2026, 1, 31))


def test_occurrence_cap_is_enforced():
    session = _session(_utc(2026, 1, 1, 9), rule="FREQ=DAILY")
    range_end = _utc(2026, 1, 10, 23, 59, 59)

    assert len(expand_recurring_session(session, _utc(2026, 1, 1), range_end, max_occurrences=10)) == 10

    with pytest.raises(OccurrenceLimitError):
        expand_recurring_session(session, _utc(2026, 1, 1), range_end, max_occurrences=5)


# --------------------------------------------------------------------------
# Calendar timezone
# --------------------------------------------------------------------------

def test_day_walk_and_exclusions_follow_the_calendar_timezone():
    new_york = ZoneInfo("America/New_York")
    # 03:00Z is 22:00 of the previous day in New York
    session = _session(_utc(2026, 1, 5, 3), rule="FREQ=DAILY", excluded=("2026-01-05",))

    result = expand_recurring_session(
        session, _utc(2026, 1, 5), _utc(2026, 1, 8), tz=new_york
    )

    assert [o.start_time.astimezone(UTC) for o in result] == [
        _utc(2026, 1, 5, 3),
        _utc(2026, 1, 7, 3),
    ]
    assert all(o.start_time.tzinfo is new_york for o in result)


def test_naive_range_is_read_in_the_calendar_timezone():
    berlin = ZoneInfo("Europe/Berlin")
    # 08:00Z is 09:00 in Berlin (winter)
    session = _session(_utc(2026, 1, 5, 8), rule="FREQ=DAILY")

    result = expand_recurring_session(
        session, datetime(2026, 1, 6), datetime(2026, 1, 6, 23, 59, 59), tz=berlin
    )

    assert len(result) == 1
    assert result[0].start_time == datetime(2026, 1, 6, 9, tzinfo=berlin)


def test_weekday_is_taken_in_the_calendar_timezone():
    tokyo = ZoneInfo("Asia/Tokyo")
    # Sunday 20:00Z is Monday 05:00 in Tokyo
    session = _session(_utc(2026, 2, 1, 20), rule="FREQ=WEEKLY")

    result = expand_recurring_session(
        session, _utc(2026, 2, 1), _utc(2026, 2, 15), tz=tokyo
    )

    assert [o.start_time.strftime("%a %H:%M") for o in result] == ["Mon 05:00", "Mon 05:00"]
    assert [o.start_time.date().isoformat() for o in result] == ["2026-02-02", "2026-02-09"]


def test_duration_is_elapsed_time_across_a_dst_switch():
    berlin = ZoneInfo("Europe/Berlin")
    # 00:00-04:00 Berlin (CET) on the Saturday before clocks go forward on 2026-03-29
    session = _session(_utc(2026, 3, 27, 23), _utc(2026, 3, 28, 3), rule="FREQ=DAILY")

    result = expand_recurring_session(
        session, _utc(2026, 3, 27, 22), _utc(2026, 3, 30, 21), tz=berlin
    )

    assert [o.start_time.date().isoformat() for o in result] == [
        "2026-03-28",
        "2026-03-29",
        "2026-03-30",
    ]
    for occurrence in result:
        assert occurrence.start_time.strftime("%H:%M") == "00:00"
        assert occurrence.end_time - occurrence.start_time.astimezone(UTC) == timedelta(hours=4)
    # Night of the switch: 00:00 CET plus four hours is 05:00 CEST
    assert result[1].end_time == datetime(2026, 3, 29, 5, tzinfo=berlin)


def test_template_spanning_a_dst_switch_keeps_its_elapsed_length():
    berlin = ZoneInfo("Europe/Berlin")
    # 00:00 CET to 04:00 CEST on 2026-03-29 is three hours
    session = _session(_utc(2026, 3, 28, 23), _utc(2026, 3, 29, 2), rule="FREQ=DAILY")

    result = expand_recurring_session(
        session, _utc(2026, 3, 28, 22), _utc(2026, 3, 30, 21), tz=berlin
    )

    assert len(result) == 2
    for occurrence in result:
        assert occurrence.end_time.astimezone(UTC) - occurrence.start_time.astimezone(
            UTC
        ) == timedelta(hours=3)
    assert result[1].end_time == datetime(2026, 3, 30, 3, tzinfo=berlin)
