from __future__ import annotations

from typing import Sequence

from habitsync.models import HistoryRecord, SourceTask, SyncHistory


def labels_changed(old_labels: Sequence[str], new_labels: Sequence[str]) -> bool:
    # Order-sensitive: the same labels in a different order count as a change.
    if len(old_labels) != len(new_labels):
        return True
    return any(old != new for old, new in zip(old_labels, new_labels))


def source_changed(old: SourceTask, new: SourceTask) -> bool:
    return (
        old.content != new.content
        or old.checked != new.checked
        or old.due != new.due
        or old.is_deleted != new.is_deleted
        or labels_changed(old.labels, new.labels)
    )


def find_tasks_needing_update(new_history: SyncHistory, old_history: SyncHistory) -> list[HistoryRecord]:
    """Return the records of ``new_history`` whose source task differs from ``old_history``."""
    need_update: list[HistoryRecord] = []
    for task_id, record in new_history.tasks.items():
        if record.source is None:
            continue
        old = old_history.tasks.get(task_id)
        if old is None or old.source is None or source_changed(old.source, record.source):
            need_update.append(record)
    return need_update
