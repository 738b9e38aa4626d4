# app/schemas/live_session.py

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.services.recurrence_rule import RecurrencePreset, parse_rule

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _validate_rule(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    # Raises InvalidRuleError (a ValueError) on malformed UNTIL/BYDAY
    parse_rule(value)
    return value


def _validate_date_keys(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    cleaned: list[str] = []
    for value in values:
        value = value.strip()
        if not _DATE_KEY_RE.match(value):
            raise ValueError(f"Excluded date must be formatted YYYY-MM-DD, got '{value}'")
        date.fromisoformat(value)
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


def _check_time_order(start: datetime | None, end: datetime | None) -> None:
    if start is None or end is None:
        return
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise ValueError("start_time and end_time must both include or both omit a UTC offset")
    if end <= start:
        raise ValueError("end_time must be after start_time")


# --------------------------------------------------------------------------
# Recurrence pattern (form presets)
# --------------------------------------------------------------------------

class RecurrencePattern(BaseModel):
    """
    Preset-based alternative to writing a raw `recurrence_rule`.
    """

    preset: RecurrencePreset = Field(
        ...,
        description="One of: daily, weekdays, weekly, custom.",
        examples=["weekly"],
    )
    days: list[str] = Field(
        default_factory=list,
        description="Selected BYDAY codes (SU, MO, TU, WE, TH, FR, SA).",
        examples=[["MO", "WE"]],
    )
    until: date | None = Field(
        default=None,
        description="Last day (inclusive) on which the session repeats.",
        examples=["2026-12-31"],
    )


# --------------------------------------------------------------------------
# Base schema shared by create/read
# --------------------------------------------------------------------------

class LiveSessionBase(BaseModel):
    """
    Shared fields of a live session template.
    """

    name: str = Field(
        ...,
        min_length=1,
        description="Human-readable session title.",
        examples=["Live Q&A"],
    )
    description: str | None = Field(
        default=None,
        description="Optional agenda or notes shown to learners.",
    )
    start_time: datetime = Field(
        ...,
        description="Start of the (first) session.",
        examples=["2026-03-01T10:00:00Z"],
    )
    end_time: datetime | None = Field(
        default=None,
        description="End of the (first) session. Omit for open-ended sessions.",
        examples=["2026-03-01T11:00:00Z"],
    )
    meet_link: str | None = Field(
        default=None,
        description="Video call URL.",
        examples=["https://meet.google.com/abc-defg-hij"],
    )
    is_recurring: bool = Field(
        default=False,
        description="Whether the session repeats according to `recurrence_rule`.",
    )
    recurrence_rule: str | None = Field(
        default=None,
        description="Rule such as `FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20261231`.",
        examples=["FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20261231"],
    )
    excluded_dates: list[str] = Field(
        default_factory=list,
        description="Calendar dates (YYYY-MM-DD) on which no occurrence is produced.",
        examples=[["2026-03-09"]],
    )


# --------------------------------------------------------------------------
# Create schema (POST /sessions)
# --------------------------------------------------------------------------

class LiveSessionCreate(LiveSessionBase):
    """
    Schema for creating a new session.

    Either send `recurrence_rule` directly or a `recurrence_pattern`, which
    is turned into a rule (and implies `is_recurring=true`).
    """

    recurrence_pattern: RecurrencePattern | None = Field(
        default=None,
        description="Preset-based recurrence; ignored when `recurrence_rule` is given.",
    )

    @field_validator("recurrence_rule")
    @classmethod
    def validate_rule(cls, v: str | None) -> str | None:
        return _validate_rule(v)

    @field_validator("excluded_dates")
    @classmethod
    def validate_excluded_dates(cls, v: list[str]) -> list[str]:
        return _validate_date_keys(v) or []

    @model_validator(mode="after")
    def check_time_order(self) -> "LiveSessionCreate":
        _check_time_order(self.start_time, self.end_time)
        return self


# --------------------------------------------------------------------------
# Update schema (PATCH /sessions/{id})
# --------------------------------------------------------------------------

class LiveSessionUpdate(BaseModel):
    """
    Schema for updating a session.
    All fields are optional; only provided fields are updated.
    """

    name: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None)
    start_time: datetime | None = Field(default=None)
    end_time: datetime | None = Field(default=None)
    meet_link: str | None = Field(default=None)
    is_recurring: bool | None = Field(default=None)
    recurrence_rule: str | None = Field(default=None)
    excluded_dates: list[str] | None = Field(default=None)

    @field_validator("recurrence_rule")
    @classmethod
    def validate_rule(cls, v: str | None) -> str | None:
        return _validate_rule(v)

    @field_validator("excluded_dates")
    @classmethod
    def validate_excluded_dates(cls, v: list[str] | None) -> list[str] | None:
        return _validate_date_keys(v)

    @model_validator(mode="after")
    def check_time_order(self) -> "LiveSessionUpdate":
        _check_time_order(self.start_time, self.end_time)
        return self


# --------------------------------------------------------------------------
# Read schema (templates and computed occurrences)
# --------------------------------------------------------------------------

class LiveSessionRead(LiveSessionBase):
    """
    Response schema for a session.

    The same shape is used for stored templates and for occurrences computed
    by the recurrence expander; the latter carry `is_occurrence=true` and
    share the template's `id`.

    Stored values are taken as they are; rule and date checks run on the
    write schemas only.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(
        ...,
        description="Auto-incremented session ID.",
        examples=[7],
    )
    is_occurrence: bool = Field(
        default=False,
        description="True for occurrences computed from a recurring template.",
    )
    created_at: datetime | None = Field(
        None,
        description="Timestamp when the session record was created (if available).",
    )
    updated_at: datetime | None = Field(
        None,
        description="Timestamp when the session record was last updated (if available).",
    )

    @classmethod
    def from_row(cls, row: object) -> "LiveSessionRead":
        """
        Build from an ORM row. Stored datetimes are UTC; some backends (SQLite)
        hand them back without tzinfo, so UTC is attached here.
        """
        session = cls.model_validate(row)
        updates = {}
        for field in ("start_time", "end_time", "created_at", "updated_at"):
            value = getattr(session, field)
            if value is not None and value.tzinfo is None:
                updates[field] = value.replace(tzinfo=timezone.utc)
        return session.model_copy(update=updates) if updates else session


# --------------------------------------------------------------------------
# Calendar / exclusions
# --------------------------------------------------------------------------

class SessionCalendar(BaseModel):
    """
    Occurrences of all sessions within a calendar window.
    """

    range_start: datetime = Field(..., description="Start (inclusive) of the window.")
    range_end: datetime = Field(..., description="End (inclusive) of the window.")
    timezone: str = Field(
        ...,
        description="Calendar timezone used for day boundaries and weekdays.",
        examples=["Europe/Berlin"],
    )
    occurrences: list[LiveSessionRead] = Field(
        ...,
        description="Stored sessions and computed occurrences, ordered by start_time.",
    )


class ExclusionCreate(BaseModel):
    """
    Body for cancelling a single occurrence of a recurring session.
    """

    occurrence_date: date = Field(
        ...,
        description="Calendar date of the occurrence to cancel.",
        examples=["2026-03-09"],
    )
