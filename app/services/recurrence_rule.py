# app/services/recurrence_rule.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

# Day-of-week numbering used throughout recurrence: 0 = Sunday ... 6 = Saturday
DAY_CODES: Tuple[str, ...] = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")
DAY_INDEX: Dict[str, int] = {code: idx for idx, code in enumerate(DAY_CODES)}

WEEKDAY_CODES: Tuple[str, ...] = ("MO", "TU", "WE", "TH", "FR")

UNTIL_END_OF_DAY = time(23, 59, 59)


class RecurrenceError(ValueError):
    """
    Base class for errors raised while interpreting or expanding a
    recurrence rule.
    """


class InvalidRuleError(RecurrenceError):
    """
    Raised when a recurrence rule contains a value that cannot be
    interpreted (malformed UNTIL, unknown BYDAY code).
    """


class Frequency(str, Enum):
    """
    Frequencies supported by the recurrence expander.
    """

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class RecurrencePreset(str, Enum):
    """
    Shortcuts offered by the admin scheduling form.
    """

    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ParsedRule:
    """
    Typed view of a `KEY=VALUE;...` recurrence rule.

    `freq` is None when FREQ is absent or not one of the supported
    frequencies; `raw_freq` keeps whatever was written for diagnostics.
    """

    freq: Optional[Frequency]
    by_day: Tuple[int, ...] = ()
    until: Optional[date] = None
    raw_freq: Optional[str] = None

    @property
    def is_supported(self) -> bool:
        return self.freq is not None


def parse_rule_segments(rule: str) -> Dict[str, str]:
    """
    Split a rule string into a key -> raw value mapping.

    Segments are separated by `;` and split on the first `=`. Keys and
    values are stripped and upper-cased; empty segments are skipped. No
    validation is done here, unknown keys are simply carried along.
    """
    parts: Dict[str, str] = {}
    for segment in rule.split(";"):
        if not segment.strip():
            continue
        key, _, value = segment.partition("=")
        parts[key.strip().upper()] = value.strip().upper()
    return parts


def parse_until(value: Optional[str]) -> Optional[date]:
    """
    Parse an UNTIL value of the form YYYYMMDD.

    Returns None when the value is absent or empty. Raises InvalidRuleError
    for anything that is not an 8-digit, real calendar date.
    """
    if not value:
        return None

    if len(value) != 8 or not value.isdigit():
        raise InvalidRuleError(f"UNTIL must be an 8-digit YYYYMMDD date, got '{value}'")

    try:
        return date(int(value[0:4]), int(value[4:6]), int(value[6:8]))
    except ValueError as exc:
        raise InvalidRuleError(f"UNTIL is not a valid calendar date: '{value}'") from exc


def parse_by_day(value: Optional[str]) -> Tuple[int, ...]:
    """
    Parse a BYDAY list (e.g. "MO,WE") into day indexes, keeping the order
    in which the days were listed and dropping repeats.
    """
    if not value:
        return ()

    days: list[int] = []
    for code in value.split(","):
        code = code.strip()
        if not code:
            continue
        if code not in DAY_INDEX:
            raise InvalidRuleError(f"Unknown BYDAY code '{code}'")
        idx = DAY_INDEX[code]
        if idx not in days:
            days.append(idx)
    return tuple(days)


def parse_rule(rule: str) -> ParsedRule:
    """
    Parse a recurrence rule string into a ParsedRule.

    Rules
    -----
    - FREQ other than DAILY/WEEKLY (or missing) yields `freq=None`.
    - BYDAY is optional; an empty value counts as absent.
    - UNTIL is optional; malformed values raise InvalidRuleError.
    - Any other key is ignored.
    """
    parts = parse_rule_segments(rule)

    raw_freq = parts.get("FREQ") or None
    try:
        freq: Optional[Frequency] = Frequency(raw_freq) if raw_freq else None
    except ValueError:
        freq = None

    return ParsedRule(
        freq=freq,
        by_day=parse_by_day(parts.get("BYDAY")),
        until=parse_until(parts.get("UNTIL")),
        raw_freq=raw_freq,
    )


def until_instant(until: date, tz: tzinfo) -> datetime:
    """
    Inclusive upper bound for an UNTIL date: 23:59:59 on that day in `tz`.
    """
    return datetime.combine(until, UNTIL_END_OF_DAY, tzinfo=tz)


def day_code(value: date) -> str:
    """
    BYDAY code for the weekday of `value`.
    """
    return DAY_CODES[(value.weekday() + 1) % 7]


def build_recurrence_rule(
    preset: RecurrencePreset,
    anchor_day: str,
    days: Iterable[str] = (),
    until: Optional[date] = None,
) -> str:
    """
    Compose a rule string from one of the scheduling form presets.

    - daily    -> FREQ=DAILY
    - weekdays -> FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR
    - weekly   -> FREQ=WEEKLY;BYDAY=<first selected day, or anchor_day>
    - custom   -> FREQ=WEEKLY;BYDAY=<all selected days>, or bare FREQ=WEEKLY

    `;UNTIL=YYYYMMDD` is appended when `until` is given.
    """
    selected = [code.strip().upper() for code in days if code.strip()]
    for code in [*selected, anchor_day]:
        if code not in DAY_INDEX:
            raise InvalidRuleError(f"Unknown BYDAY code '{code}'")

    if preset == RecurrencePreset.DAILY:
        rule = "FREQ=DAILY"
    elif preset == RecurrencePreset.WEEKDAYS:
        rule = "FREQ=WEEKLY;BYDAY=" + ",".join(WEEKDAY_CODES)
    elif preset == RecurrencePreset.WEEKLY:
        rule = f"FREQ=WEEKLY;BYDAY={selected[0] if selected else anchor_day}"
    else:
        rule = f"FREQ=WEEKLY;BYDAY={','.join(selected)}" if selected else "FREQ=WEEKLY"

    if until is not None:
        rule += f";UNTIL={until.strftime('%Y%m%d')}"

    return rule
