from __future__ import annotations

import re
from dataclasses import dataclass

from habitsync.models import (
    RECURRENCE_UNCLASSIFIED,
    TASK_TYPE_DAILY,
    TASK_TYPE_TODO,
    RecurrenceSchedule,
    SourceDue,
)


ANCHORED_START_PATTERN = re.compile(r"(after|starting|last|\d+(st|nd|rd|th)|(first|second|third))")
PARSEABLE_PATTERN = re.compile(r"^ev(ery)? [^\d]")
EVERYDAY_PATTERN = re.compile(r"^ev(ery)? (day|night)")
WEEKDAY_PATTERN = re.compile(r"^ev(ery)? (week)?day")
WEEKEND_PATTERN = re.compile(r"^ev(ery)? (week)?end")

# Day abbreviations by leading letters; "w" only counts when it is not the "we" of "weekend".
DAY_PATTERNS = {
    "su": re.compile(r"\bs($| |,|u)"),
    "m": re.compile(r"\bm($| |,|o)"),
    "t": re.compile(r"\bt($| |,|u)"),
    "w": re.compile(r"\bw($| |,|e)"),
    "th": re.compile(r"\bth($| |,|u)"),
    "f": re.compile(r"\bf($| |,|r)"),
    "s": re.compile(r"\bsa($| |,|t)"),
}
WEEKDAYS = {"m", "t", "w", "th", "f"}
WEEKEND_DAYS = {"su", "s"}


@dataclass(frozen=True)
class ParsedRecurrence:
    type: str
    repeat: RecurrenceSchedule


def has_anchored_start(phrase: str) -> bool:
    return bool(ANCHORED_START_PATTERN.search(phrase))


def needs_parsing(phrase: str) -> bool:
    return bool(PARSEABLE_PATTERN.search(phrase)) or phrase == "daily"


def weekly_mask(phrase: str) -> dict[str, bool]:
    everyday = bool(EVERYDAY_PATTERN.search(phrase)) or phrase == "daily"
    weekday = bool(WEEKDAY_PATTERN.search(phrase))
    weekend = bool(WEEKEND_PATTERN.search(phrase))
    mask: dict[str, bool] = {}
    for key, pattern in DAY_PATTERNS.items():
        if everyday:
            mask[key] = True
        elif key in WEEKDAYS and weekday:
            mask[key] = True
        elif key in WEEKEND_DAYS and weekend:
            mask[key] = True
        elif key == "w":
            mask[key] = bool(pattern.search(phrase)) and not weekend
        else:
            mask[key] = bool(pattern.search(phrase))
    return mask


def parse_recurrence(due: SourceDue | None) -> ParsedRecurrence:
    """Turn a source due phrase into the target task type and weekly schedule.

    Recurring phrases anchored to a start ("every 3rd", "every day starting monday")
    or not of the "every <day words>" shape stay todos with an unclassified schedule.
    """
    if due is None or not due.is_recurring:
        return ParsedRecurrence(type=TASK_TYPE_TODO, repeat=RecurrenceSchedule())

    phrase = (due.string or "").strip().lower()
    if has_anchored_start(phrase) or not needs_parsing(phrase):
        return ParsedRecurrence(
            type=TASK_TYPE_TODO,
            repeat=RecurrenceSchedule(kind=RECURRENCE_UNCLASSIFIED),
        )
    return ParsedRecurrence(type=TASK_TYPE_DAILY, repeat=RecurrenceSchedule.weekly(weekly_mask(phrase)))
