from __future__ import annotations

import copy
import logging
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from habitsync.attributes import build_attribute_table
from habitsync.change_detector import find_tasks_needing_update
from habitsync.errors import UnexpectedResponseError
from habitsync.habitica_client import HabiticaClient
from habitsync.history_store import HistoryStore
from habitsync.models import (
    RECURRENCE_UNCLASSIFIED,
    TASK_TYPE_DAILY,
    AppConfig,
    HistoryRecord,
    SourceDelta,
    SyncHistory,
    SyncResult,
)
from habitsync.state_store import StateStore
from habitsync.todoist_client import TodoistClient
from habitsync.translator import OPERATION_CREATE, plan_task
from habitsync.write_queue import SerialTargetWriter


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingDelete:
    source_id: str
    target_id: str
    text: str = ""


@dataclass
class SyncContext:
    """Everything one run reads and mutates; passed from stage to stage."""

    history: SyncHistory
    previous: SyncHistory
    attribute_table: dict[str, str] = field(default_factory=dict)
    pending_deletes: list[PendingDelete] = field(default_factory=list)
    changed: list[HistoryRecord] = field(default_factory=list)
    run_id: int | None = None
    created: int = 0
    updated: int = 0
    scored: int = 0
    deleted: int = 0


def merge_source_delta(history: SyncHistory, delta: SourceDelta) -> list[PendingDelete]:
    """Fold a source delta into ``history`` in place.

    Live items are upserted. Deleted items are dropped from the history; the ones that
    were already created on the target are returned so the caller can delete them.
    """
    history.sync_cursor = delta.new_cursor
    deletes: list[PendingDelete] = []
    for item in delta.items:
        existing = history.tasks.get(item.id)
        if item.is_deleted:
            if existing is None:
                continue
            del history.tasks[item.id]
            if existing.target_id:
                deletes.append(PendingDelete(source_id=item.id, target_id=existing.target_id, text=item.content))
            continue
        if existing is None:
            history.tasks[item.id] = HistoryRecord(source=item)
        else:
            existing.source = item
    return deletes


class SyncEngine:
    def __init__(
        self,
        config_loader: Callable[[], AppConfig],
        *,
        state_store: StateStore | None = None,
        source_client: Any = None,
        target_client: Any = None,
        history_store: HistoryStore | None = None,
        clock: Callable[[], datetime] = _utc_now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config_loader = config_loader
        self.state_store = state_store
        self.source_client = source_client
        self.target_client = target_client
        self.history_store = history_store
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _audit(self, ctx: SyncContext, task_id: str, action: str, details: dict[str, Any]) -> None:
        if self.state_store is None:
            return
        self.state_store.record_audit_event(task_id=task_id, action=action, details=details, run_id=ctx.run_id)

    def _fetch(self, ctx: SyncContext, source_client: Any) -> SourceDelta:
        # Both reads finish before the first write is issued.
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="habitsync-fetch") as pool:
            labels_future = pool.submit(source_client.fetch_labels)
            delta_future = pool.submit(source_client.fetch_delta, ctx.history.sync_cursor or None)
            labels = labels_future.result()
            delta = delta_future.result()
        ctx.attribute_table = build_attribute_table(labels)
        self.logger.info(
            "Fetched %d labels (%d attribute labels) and %d changed source items",
            len(labels),
            len(ctx.attribute_table),
            len(delta.items),
        )
        return delta

    def _apply_deletes(self, ctx: SyncContext, writer: SerialTargetWriter) -> None:
        for pending in ctx.pending_deletes:
            self.logger.info("deleting %s: %s", pending.target_id, pending.text)
            writer.delete_task(pending.target_id)
            ctx.deleted += 1
            self._audit(ctx, pending.source_id, "delete", {"target_id": pending.target_id, "text": pending.text})

    def _apply_record(self, ctx: SyncContext, record: HistoryRecord, writer: SerialTargetWriter, config: AppConfig) -> None:
        plan = plan_task(
            record,
            attribute_table=ctx.attribute_table,
            now=self.clock(),
            utc_offset_hours=config.sync.utc_offset_hours,
        )
        task = plan.task
        if plan.operation == OPERATION_CREATE:
            self.logger.info("creating %s: %s", task.type, task.text)
            result = writer.create_task(task)
            if not result.id:
                raise UnexpectedResponseError(f"created task has no id: {task.text}")
            ctx.created += 1
        else:
            if plan.score_direction is not None:
                self.logger.info("updating completion of %s (%s): %s", task.type, plan.score_direction, task.text)
                writer.update_task_score(plan.target_id, plan.score_direction)
                ctx.scored += 1
                self._audit(
                    ctx,
                    record.source_id,
                    "score",
                    {"target_id": plan.target_id, "direction": "up" if plan.score_direction else "down"},
                )
            self.logger.info("updating %s: %s", task.type, task.text)
            result = writer.update_task(plan.target_id, task)
            # The target id is fixed once assigned.
            result = result.with_updates(id=plan.target_id)
            ctx.updated += 1

        if result.type == TASK_TYPE_DAILY:
            result = result.with_updates(date=task.date)
        if task.repeat.kind == RECURRENCE_UNCLASSIFIED:
            result = result.with_updates(repeat=task.repeat)
        ctx.history.tasks[record.source_id] = HistoryRecord(source=record.source, target=result)
        self._audit(
            ctx,
            record.source_id,
            plan.operation,
            {"target_id": result.id, "type": result.type, "text": result.text},
        )

    def sync(self, config: AppConfig, ctx: SyncContext | None = None) -> SyncContext:
        """Run every stage once. Raises on the first failure without saving history;
        writes already issued stay applied and are counted in ``ctx``."""
        ctx = ctx or SyncContext(history=SyncHistory(), previous=SyncHistory())
        source_client = self.source_client or TodoistClient(config.source, logger=self.logger)
        target_client = self.target_client or HabiticaClient(config.target, logger=self.logger)
        history_store = self.history_store or HistoryStore(config.history_path, logger=self.logger)
        writer = SerialTargetWriter(target_client, logger=self.logger)

        ctx.history = history_store.load()
        ctx.previous = copy.deepcopy(ctx.history)

        delta = self._fetch(ctx, source_client)
        ctx.pending_deletes = merge_source_delta(ctx.history, delta)
        ctx.changed = find_tasks_needing_update(ctx.history, ctx.previous)
        self.logger.info(
            "deleting %d tasks, creating/updating %d tasks", len(ctx.pending_deletes), len(ctx.changed)
        )

        self._apply_deletes(ctx, writer)
        for record in ctx.changed:
            self._apply_record(ctx, record, writer, config)

        history_store.save(ctx.history)
        return ctx

    def run_once(self, trigger: str = "manual") -> SyncResult:
        """Run one sync unless another run of this engine is in progress."""
        if not self._run_lock.acquire(blocking=False):
            message = "sync already running"
            self.logger.warning("Sync (%s) skipped: %s", trigger, message)
            return SyncResult(status="skipped", message=message, duration_ms=0, trigger=trigger)
        try:
            return self._run(trigger)
        finally:
            self._run_lock.release()

    def _run(self, trigger: str) -> SyncResult:
        started_at = _utc_now()
        config = self.config_loader()
        missing = config.missing_credentials()
        if missing:
            message = f"Missing {', '.join(missing)}. Sync skipped."
            self.logger.warning(message)
            if self.state_store is not None:
                run_id = self.state_store.start_sync_run(trigger=trigger)
                self.state_store.finish_sync_run(
                    run_id=run_id,
                    status="skipped",
                    message=message,
                    duration_ms=0,
                    created=0,
                    updated=0,
                    scored=0,
                    deleted=0,
                )
            return SyncResult(status="skipped", message=message, duration_ms=0, trigger=trigger)

        run_id = self.state_store.start_sync_run(trigger=trigger) if self.state_store is not None else None
        ctx = SyncContext(history=SyncHistory(), previous=SyncHistory(), run_id=run_id)
        try:
            self.sync(config, ctx)
            status = "success"
            message = (
                f"Created {ctx.created}, updated {ctx.updated}, scored {ctx.scored}, deleted {ctx.deleted} tasks."
            )
        except Exception as exc:
            status = "error"
            message = f"{type(exc).__name__}: {exc}"
            self.logger.error("Sync failed, history not saved: %s", message)
            if self.state_store is not None:
                self.state_store.record_audit_event(
                    task_id="sync",
                    action="run_error",
                    details={"trigger": trigger, "error": message, "traceback": traceback.format_exc(limit=5)},
                    run_id=run_id,
                )

        duration_ms = int((_utc_now() - started_at).total_seconds() * 1000)
        if self.state_store is not None and run_id is not None:
            self.state_store.finish_sync_run(
                run_id=run_id,
                status=status,
                message=message,
                duration_ms=duration_ms,
                created=ctx.created,
                updated=ctx.updated,
                scored=ctx.scored,
                deleted=ctx.deleted,
            )
        result = SyncResult(
            status=status,
            message=message,
            duration_ms=duration_ms,
            trigger=trigger,
            created=ctx.created,
            updated=ctx.updated,
            scored=ctx.scored,
            deleted=ctx.deleted,
        )
        self.logger.info(
            "Sync (%s) finished with status %s, %d changes applied in %d ms",
            trigger,
            status,
            result.changes_applied,
            duration_ms,
        )
        return result
