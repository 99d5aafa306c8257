from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


TASK_TYPE_TODO = "todo"
TASK_TYPE_DAILY = "daily"

DEFAULT_HISTORY_FILENAME = ".todoist-habitrpg.json"


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return _ensure_tz(parsed)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


@dataclass
class SourceConfig:
    api_token: str = ""
    base_url: str = "https://api.todoist.com/api/v1"
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SourceConfig":
        data = data or {}
        return cls(
            api_token=str(data.get("api_token", "") or "").strip(),
            base_url=str(data.get("base_url", "") or "").strip().rstrip("/")
            or "https://api.todoist.com/api/v1",
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )


@dataclass
class TargetConfig:
    user_id: str = ""
    api_token: str = ""
    base_url: str = "https://habitica.com/api/v3"
    client_name: str = "habitsync"
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TargetConfig":
        data = data or {}
        return cls(
            user_id=str(data.get("user_id", "") or "").strip(),
            api_token=str(data.get("api_token", "") or "").strip(),
            base_url=str(data.get("base_url", "") or "").strip().rstrip("/")
            or "https://habitica.com/api/v3",
            client_name=str(data.get("client_name", "") or "").strip() or "habitsync",
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )


@dataclass
class SyncConfig:
    history_dir: str = ""
    history_filename: str = DEFAULT_HISTORY_FILENAME
    interval_seconds: int = 900
    utc_offset_hours: float = -5.0
    journal_path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        return cls(
            history_dir=str(data.get("history_dir", "") or "").strip(),
            history_filename=str(data.get("history_filename", "") or "").strip()
            or DEFAULT_HISTORY_FILENAME,
            interval_seconds=max(60, int(data.get("interval_seconds", 900))),
            utc_offset_hours=float(data.get("utc_offset_hours", -5.0)),
            journal_path=str(data.get("journal_path", "") or "").strip(),
        )


@dataclass
class AppConfig:
    source: SourceConfig = field(default_factory=SourceConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            source=SourceConfig.from_dict(data.get("source")),
            target=TargetConfig.from_dict(data.get("target")),
            sync=SyncConfig.from_dict(data.get("sync")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def history_path(self) -> Path:
        directory = Path(self.sync.history_dir).expanduser() if self.sync.history_dir else Path.home()
        return directory / self.sync.history_filename

    def missing_credentials(self) -> list[str]:
        missing: list[str] = []
        if not self.target.user_id:
            missing.append("Habitica user id")
        if not self.target.api_token:
            missing.append("Habitica API token")
        if not self.source.api_token:
            missing.append("Todoist API token")
        return missing


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass
class SourceDue:
    date: str = ""
    string: str = ""
    is_recurring: bool = False
    timezone: str | None = None
    lang: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SourceDue | None":
        if not data:
            return None
        return cls(
            date=str(data.get("date", "") or ""),
            string=str(data.get("string", "") or ""),
            is_recurring=bool(data.get("is_recurring", False)),
            timezone=data.get("timezone"),
            lang=data.get("lang"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SourceTask:
    id: str
    content: str = ""
    due: SourceDue | None = None
    labels: list[str] = field(default_factory=list)
    checked: bool = False
    is_deleted: bool = False
    date_added: str = ""
    priority: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceTask":
        return cls(
            id=str(data.get("id", "")),
            content=str(data.get("content", "") or ""),
            due=SourceDue.from_dict(data.get("due")),
            labels=[str(label) for label in data.get("labels") or []],
            checked=bool(data.get("checked", False)),
            is_deleted=bool(data.get("is_deleted", False)),
            date_added=str(data.get("date_added") or data.get("added_at") or ""),
            priority=int(data.get("priority", 1) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["due"] = self.due.to_dict() if self.due else None
        return payload


WEEKDAY_KEYS = ("su", "m", "t", "w", "th", "f", "s")

RECURRENCE_NONE = "none"
RECURRENCE_WEEKLY = "weekly"
RECURRENCE_UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class RecurrenceSchedule:
    """Weekly repeat mask, Sunday first, keyed the way the target service keys it.

    ``unclassified`` marks a task the source flags as recurring whose phrase could not
    be turned into a weekly mask; it is distinct from ``none``.
    """

    kind: str = RECURRENCE_NONE
    su: bool = False
    m: bool = False
    t: bool = False
    w: bool = False
    th: bool = False
    f: bool = False
    s: bool = False

    @property
    def is_recurring(self) -> bool:
        return self.kind != RECURRENCE_NONE

    def to_repeat(self) -> dict[str, bool] | None:
        if self.kind != RECURRENCE_WEEKLY:
            return None
        return {key: getattr(self, key) for key in WEEKDAY_KEYS}

    @classmethod
    def weekly(cls, days: dict[str, bool]) -> "RecurrenceSchedule":
        return cls(kind=RECURRENCE_WEEKLY, **{key: bool(days.get(key, False)) for key in WEEKDAY_KEYS})

    @classmethod
    def from_repeat(cls, repeat: Any, kind: str | None = None) -> "RecurrenceSchedule":
        if kind == RECURRENCE_UNCLASSIFIED:
            return cls(kind=RECURRENCE_UNCLASSIFIED)
        if isinstance(repeat, dict):
            return cls.weekly(repeat)
        if repeat:
            return cls(kind=RECURRENCE_UNCLASSIFIED)
        return cls()


@dataclass
class TargetTask:
    id: str = ""
    text: str = ""
    type: str = TASK_TYPE_TODO
    date: datetime | None = None
    repeat: RecurrenceSchedule = field(default_factory=RecurrenceSchedule)
    completed: bool | None = None
    date_completed: datetime | None = None
    clear_date_completed: bool = False
    attribute: str | None = None
    priority: float = 0
    date_created: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TargetTask":
        data = data or {}
        completed = data.get("completed")
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            text=str(data.get("text", "") or ""),
            type=str(data.get("type", TASK_TYPE_TODO) or TASK_TYPE_TODO),
            date=parse_iso_datetime(data.get("date")),
            repeat=RecurrenceSchedule.from_repeat(data.get("repeat"), data.get("repeatKind")),
            completed=None if completed is None else bool(completed),
            date_completed=parse_iso_datetime(data.get("dateCompleted")),
            attribute=data.get("attribute"),
            priority=float(data.get("priority", 0) or 0),
            date_created=parse_iso_datetime(data.get("createdAt") or data.get("dateCreated")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the target service's field names, used for history and payloads."""
        payload: dict[str, Any] = {
            "text": self.text,
            "type": self.type,
            "priority": self.priority,
        }
        if self.id:
            payload["id"] = self.id
        if self.date_created is not None:
            payload["dateCreated"] = serialize_datetime(self.date_created)
        if self.date is not None:
            payload["date"] = serialize_datetime(self.date)
        repeat = self.repeat.to_repeat()
        if repeat is not None:
            payload["repeat"] = repeat
        elif self.repeat.kind == RECURRENCE_UNCLASSIFIED:
            # History only; the target service has no such field.
            payload["repeatKind"] = RECURRENCE_UNCLASSIFIED
        if self.completed is not None:
            payload["completed"] = self.completed
        if self.date_completed is not None:
            payload["dateCompleted"] = serialize_datetime(self.date_completed)
        elif self.clear_date_completed:
            payload["dateCompleted"] = None
        if self.attribute:
            payload["attribute"] = self.attribute
        return payload

    def to_payload(self) -> dict[str, Any]:
        payload = self.to_dict()
        payload.pop("id", None)
        payload.pop("repeatKind", None)
        return payload

    def with_updates(self, **kwargs: Any) -> "TargetTask":
        return replace(self, **kwargs)


@dataclass
class HistoryRecord:
    source: SourceTask | None = None
    target: TargetTask | None = None

    @property
    def source_id(self) -> str:
        return self.source.id if self.source else ""

    @property
    def target_id(self) -> str:
        return self.target.id if self.target else ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.source is not None:
            payload["lastKnownSourceTask"] = self.source.to_dict()
        if self.target is not None:
            payload["lastKnownTargetTask"] = self.target.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryRecord":
        # "todoist"/"habitrpg" are the keys of history files written by the legacy tool.
        source = data.get("lastKnownSourceTask", data.get("todoist"))
        target = data.get("lastKnownTargetTask", data.get("habitrpg"))
        return cls(
            source=SourceTask.from_dict(source) if isinstance(source, dict) else None,
            target=TargetTask.from_dict(target) if isinstance(target, dict) else None,
        )


@dataclass
class SyncHistory:
    sync_cursor: str = ""
    tasks: dict[str, HistoryRecord] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncCursor": self.sync_cursor,
            "tasks": {task_id: record.to_dict() for task_id, record in self.tasks.items()},
        }


@dataclass
class SourceDelta:
    new_cursor: str
    items: list[SourceTask] = field(default_factory=list)


@dataclass
class SyncResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    created: int = 0
    updated: int = 0
    scored: int = 0
    deleted: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def changes_applied(self) -> int:
        return self.created + self.updated + self.deleted

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "trigger": self.trigger,
            "created": self.created,
            "updated": self.updated,
            "scored": self.scored,
            "deleted": self.deleted,
            "run_at": serialize_datetime(self.run_at),
        }
