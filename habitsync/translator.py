from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping

from habitsync.attributes import classify_labels
from habitsync.models import (
    TASK_TYPE_DAILY,
    TASK_TYPE_TODO,
    HistoryRecord,
    SourceTask,
    TargetTask,
    parse_iso_datetime,
)
from habitsync.recurrence import parse_recurrence


OPERATION_CREATE = "create"
OPERATION_UPDATE = "update"

# Weight for source priority 1..5; source priority 1 is "no priority".
PRIORITY_WEIGHTS = (0, 0.1, 1, 1.5, 2)

DEFAULT_UTC_OFFSET_HOURS = -5.0


@dataclass
class TranslationPlan:
    operation: str
    task: TargetTask
    target_id: str = ""
    score_direction: bool | None = None


def priority_weight(priority: int) -> float:
    if 1 <= priority <= len(PRIORITY_WEIGHTS):
        return PRIORITY_WEIGHTS[priority - 1]
    return 0


def parse_due_date(raw: str, utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS) -> datetime | None:
    """Parse a source due date. Explicit UTC ("...Z") is taken verbatim, anything
    without an offset is read in the fixed ``utc_offset_hours`` zone."""
    if not raw:
        return None
    if raw.endswith("Z"):
        return parse_iso_datetime(raw)
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone(timedelta(hours=utc_offset_hours)))
    return parsed


def build_target_task(
    source: SourceTask,
    attribute_table: Mapping[str, str],
    utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS,
) -> TargetTask:
    recurrence = parse_recurrence(source.due)
    attribute = classify_labels(source.labels, attribute_table) if source.labels else None
    return TargetTask(
        text=source.content,
        type=recurrence.type,
        date=parse_due_date(source.due.date, utc_offset_hours) if source.due else None,
        repeat=recurrence.repeat,
        completed=source.checked,
        attribute=attribute,
        priority=priority_weight(source.priority),
        date_created=parse_iso_datetime(source.date_added) if source.date_added else None,
    )


def plan_task(
    record: HistoryRecord,
    *,
    attribute_table: Mapping[str, str],
    now: datetime,
    utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS,
) -> TranslationPlan:
    if record.source is None:
        raise ValueError("history record has no source task to translate")
    task = build_target_task(record.source, attribute_table, utc_offset_hours)
    previous = record.target

    if previous is None or not previous.id:
        if task.type == TASK_TYPE_TODO and task.completed:
            task.date_completed = now
        return TranslationPlan(operation=OPERATION_CREATE, task=task)

    score_direction: bool | None = None
    if task.type == TASK_TYPE_TODO:
        if previous.completed is None:
            completion_changed = bool(task.completed)
        else:
            completion_changed = task.completed != previous.completed
        if completion_changed:
            score_direction = bool(task.completed)
            if score_direction:
                task.date_completed = now
            else:
                task.clear_date_completed = True
    elif task.type == TASK_TYPE_DAILY:
        # A later due date on a recurring source task means the instance was checked off.
        if task.date is not None and previous.date is not None and task.date > previous.date:
            score_direction = True
            task.completed = True
        elif previous.completed:
            task.completed = True

    return TranslationPlan(
        operation=OPERATION_UPDATE,
        task=task,
        target_id=previous.id,
        score_direction=score_direction,
    )
