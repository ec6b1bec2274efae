"""
Place Registry Backend — Weekly Schedule Normalizer
=====================================================

What:  Turns whatever the place form submits as opening hours into canonical
       per-day rows, and renders canonical rows for display.
Who:   Called by PlaceService on create and on every schedule update.
How:   Pure functions, no I/O. PlaceService owns the delete-then-insert
       replacement of the stored rows.

Accepted input per day (camelCase or snake_case keys):
    {"dayOfWeek": "monday", "openTime": "9:00", "closeTime": "18:00"}
    {"dayOfWeek": "TUESDAY", "slots": [{"openTime": "09:00", "closeTime": "12:00"},
                                       {"openTime": "14:00", "closeTime": "18:00"}]}
    {"dayOfWeek": "SUNDAY", "isClosed": true}

Output rows:
    closed day → exactly one row, is_closed=True, both times None
    open day   → one row per shift, times as zero-padded HH:MM, open < close

Malformed input is dropped, not rejected: an unknown day name, a shift with
a missing or unparsable time, or a shift that does not open before it closes.
Every drop is logged at INFO with the reason.
"""

import logging
import re
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel

from placeregistry.models.place import DayOfWeek
from placeregistry.schemas.place import ScheduleDayLine, ScheduleEntry

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")

CLOSED_LABEL = "Closed"


def _field(entry: Mapping[str, Any], snake: str, camel: str) -> Any:
    if snake in entry:
        return entry[snake]
    return entry.get(camel)


def _as_mapping(entry: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(entry, BaseModel):
        return entry.model_dump()
    if isinstance(entry, Mapping):
        return entry
    return None


def normalize_day(value: Any) -> Optional[DayOfWeek]:
    """Match a day name against the 7-day enum, ignoring case and surrounding spaces."""
    if not isinstance(value, str):
        return None
    try:
        return DayOfWeek(value.strip().upper())
    except ValueError:
        return None


def normalize_time(value: Any) -> Optional[str]:
    """
    Canonicalize a time of day to HH:MM.

    "9:00" → "09:00", "09:00:00" → "09:00". Returns None for blanks and for
    anything that is not a valid 24h time (24:00 included).
    """
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def _open_row(day: DayOfWeek, open_raw: Any, close_raw: Any) -> Optional[ScheduleEntry]:
    open_time = normalize_time(open_raw)
    close_time = normalize_time(close_raw)
    if open_time is None or close_time is None:
        logger.info(
            "Dropping %s shift with incomplete times (open=%r, close=%r)",
            day.value, open_raw, close_raw,
        )
        return None
    if open_time >= close_time:
        logger.info(
            "Dropping %s shift that does not open before it closes (%s-%s)",
            day.value, open_time, close_time,
        )
        return None
    return ScheduleEntry(
        day_of_week=day.value,
        open_time=open_time,
        close_time=close_time,
        is_closed=False,
    )


def normalize_schedule(raw_entries: Optional[Iterable[Any]]) -> List[ScheduleEntry]:
    """
    Convert raw per-day input into canonical schedule rows.

    Per entry:
        1. Match the day name; unknown days are dropped
        2. is_closed → one closed row; times and slots are ignored
        3. non-empty slots → one row per slot
        4. otherwise a single open/close pair → one row
        5. open rows missing a time are dropped

    Entry order is preserved; slots keep the order they were given in.
    Normalizing rows this function produced yields the same rows.
    """
    rows: List[ScheduleEntry] = []
    if not raw_entries:
        return rows

    for raw in raw_entries:
        entry = _as_mapping(raw)
        if entry is None:
            logger.info("Dropping opening hours entry of unexpected type %s", type(raw).__name__)
            continue

        raw_day = _field(entry, "day_of_week", "dayOfWeek")
        day = normalize_day(raw_day)
        if day is None:
            logger.info("Dropping opening hours entry with unknown day %r", raw_day)
            continue

        if _field(entry, "is_closed", "isClosed"):
            rows.append(ScheduleEntry(day_of_week=day.value, is_closed=True))
            continue

        slots = entry.get("slots") or []
        if slots:
            for raw_slot in slots:
                slot = _as_mapping(raw_slot) or {}
                row = _open_row(
                    day,
                    _field(slot, "open_time", "openTime"),
                    _field(slot, "close_time", "closeTime"),
                )
                if row is not None:
                    rows.append(row)
            continue

        row = _open_row(
            day,
            _field(entry, "open_time", "openTime"),
            _field(entry, "close_time", "closeTime"),
        )
        if row is not None:
            rows.append(row)

    return rows


def raw_schedule_payload(raw_entries: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """JSON-safe copy of the raw input, kept in the place's raw snapshot."""
    payload = []
    for raw in raw_entries or []:
        if isinstance(raw, BaseModel):
            payload.append(raw.model_dump(by_alias=True, exclude_none=True))
        elif isinstance(raw, Mapping):
            payload.append(dict(raw))
    return payload


# ══════════════════════════════════════════════════════════════════════════
# Display
# ══════════════════════════════════════════════════════════════════════════

def group_by_day(rows: Iterable[Any]) -> "OrderedDict[str, List[ScheduleEntry]]":
    """
    Group open shifts by weekday, Monday first, each day sorted by opening time.

    Every weekday is present; a day with no open shift maps to an empty list,
    whether it was marked closed or simply never given.
    """
    grouped: "OrderedDict[str, List[ScheduleEntry]]" = OrderedDict(
        (day.value, []) for day in DayOfWeek
    )
    for row in rows:
        entry = row if isinstance(row, ScheduleEntry) else ScheduleEntry.model_validate(row)
        if entry.is_closed or not entry.open_time or not entry.close_time:
            continue
        if entry.day_of_week in grouped:
            grouped[entry.day_of_week].append(entry)
    for shifts in grouped.values():
        shifts.sort(key=lambda s: s.open_time)
    return grouped


def format_weekly_schedule(rows: Iterable[Any]) -> List[ScheduleDayLine]:
    """Seven display lines: "09:00 - 12:00 • 14:00 - 18:00" or "Closed"."""
    lines = []
    for day, shifts in group_by_day(rows).items():
        if shifts:
            label = " • ".join(f"{s.open_time} - {s.close_time}" for s in shifts)
        else:
            label = CLOSED_LABEL
        lines.append(ScheduleDayLine(day=day, label=label))
    return lines
