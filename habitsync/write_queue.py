from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, TypeVar

from habitsync.models import TargetTask


T = TypeVar("T")

_account_locks: dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


def account_lock(account_key: str) -> threading.Lock:
    with _registry_lock:
        lock = _account_locks.get(account_key)
        if lock is None:
            lock = threading.Lock()
            _account_locks[account_key] = lock
        return lock


class SerialTargetWriter:
    """Issues target-service writes one at a time per account.

    The target service rejects concurrent mutation of one account, so every write in
    the process goes through the account's lock and the caller waits for the result
    before submitting the next one. ``operations`` records what was sent, in order.
    """

    def __init__(self, client: Any, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self._lock = account_lock(str(getattr(client, "account_key", id(client))))
        self.operations: list[tuple[str, str]] = []

    def _submit(self, name: str, ref: str, call: Callable[[], T]) -> T:
        with self._lock:
            self.logger.debug("target write %s %s", name, ref)
            result = call()
            self.operations.append((name, ref))
            return result

    def create_task(self, task: TargetTask) -> TargetTask:
        return self._submit("create", task.text, lambda: self.client.create_task(task))

    def update_task(self, task_id: str, task: TargetTask) -> TargetTask:
        return self._submit("update", task_id, lambda: self.client.update_task(task_id, task))

    def update_task_score(self, task_id: str, direction: bool) -> Any:
        return self._submit("score", task_id, lambda: self.client.update_task_score(task_id, direction))

    def delete_task(self, task_id: str) -> None:
        self._submit("delete", task_id, lambda: self.client.delete_task(task_id))
