from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from habitsync.errors import DataError
from habitsync.models import HistoryRecord, SyncHistory


class HistoryStore:
    """Reads and writes the sync history file.

    A missing file is an empty history. A file that exists but cannot be parsed raises
    DataError: starting from an empty history would re-create every task on the target.
    """

    def __init__(self, path: str | os.PathLike[str], logger: Optional[logging.Logger] = None) -> None:
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> SyncHistory:
        if not self.path.exists():
            self.logger.info("No history at %s, starting from an empty history", self.path)
            return SyncHistory()
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DataError(f"History file {self.path} is unreadable: {exc}") from exc
        history = history_from_dict(data, origin=str(self.path))
        self.logger.info("Read %d tasks from history %s", len(history.tasks), self.path)
        return history

    def save(self, history: SyncHistory) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(history.to_dict(), handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_path.replace(self.path)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        self.logger.info("Wrote %d tasks to history %s", len(history.tasks), self.path)


def history_from_dict(data: Any, origin: str = "history") -> SyncHistory:
    if not isinstance(data, dict):
        raise DataError(f"{origin}: root must be an object")
    raw_tasks = data.get("tasks", {})
    if raw_tasks is None:
        raw_tasks = {}
    if not isinstance(raw_tasks, dict):
        raise DataError(f"{origin}: 'tasks' must be an object")
    tasks: dict[str, HistoryRecord] = {}
    for task_id, raw_record in raw_tasks.items():
        if not isinstance(raw_record, dict):
            raise DataError(f"{origin}: record {task_id!r} must be an object")
        try:
            tasks[str(task_id)] = HistoryRecord.from_dict(raw_record)
        except (TypeError, ValueError) as exc:
            raise DataError(f"{origin}: record {task_id!r} is malformed: {exc}") from exc
    # "sync_token" is the cursor key of history files written by the legacy tool.
    cursor = data.get("syncCursor", data.get("sync_token", ""))
    return SyncHistory(sync_cursor=str(cursor or ""), tasks=tasks)
