from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from habitsync.config_manager import SECRET_FIELDS, ConfigManager
from habitsync.errors import DataError
from habitsync.history_store import HistoryStore
from habitsync.scheduler import SyncScheduler
from habitsync.state_store import StateStore
from habitsync.sync_engine import SyncEngine


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class AppContext:
    def __init__(self, config_path: str, state_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        self.state_store = StateStore(state_path)
        self.sync_engine = SyncEngine(self.config_manager.load_effective, state_store=self.state_store)
        self.scheduler = SyncScheduler(self.sync_engine, self.config_manager.load_effective)


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    # An empty or masked secret in an update keeps the stored secret.
    sanitized = dict(payload)
    for section_name, key in SECRET_FIELDS:
        section = sanitized.get(section_name)
        if not isinstance(section, dict):
            continue
        secret = section.get(key)
        if secret is not None and str(secret).strip() in {"", "***"}:
            if str(current.get(section_name, {}).get(key, "")):
                section.pop(key, None)
            else:
                section[key] = ""
        if not section:
            sanitized.pop(section_name, None)
    return sanitized


def create_app() -> FastAPI:
    config_path = os.getenv("HABITSYNC_CONFIG_PATH", "config.yaml")
    state_path = os.getenv("HABITSYNC_STATE_PATH", "data/state.db")
    context = AppContext(config_path=config_path, state_path=state_path)

    app = FastAPI(title="habitsync admin", version="0.1.0")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        current = app.state.context.config_manager.load().to_dict()
        sanitized_payload = _sanitize_config_payload(request.payload, current)
        app.state.context.config_manager.update(sanitized_payload)
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.post("/api/sync/run")
    def trigger_sync() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "sync triggered"}

    @app.post("/api/sync/run-now")
    def run_sync_now() -> dict[str, Any]:
        result = app.state.context.sync_engine.run_once(trigger="api")
        return {"message": "sync completed", "result": result.to_dict()}

    @app.get("/api/sync/status")
    def sync_status(limit: int = 20) -> dict[str, Any]:
        return {
            "running": app.state.context.sync_engine.is_running,
            "runs": app.state.context.state_store.recent_sync_runs(limit=limit),
        }

    @app.get("/api/audit/events")
    def audit_events(limit: int = 100, run_id: int | None = None) -> dict[str, Any]:
        return {"events": app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)}

    @app.get("/api/debug/runs/{run_id}")
    def debug_run(run_id: int, limit: int = 500) -> dict[str, Any]:
        run = app.state.context.state_store.get_sync_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="run not found")
        events = app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)
        return {"run": run, "events": events}

    @app.get("/api/history")
    def history() -> dict[str, Any]:
        config = app.state.context.config_manager.load_effective()
        try:
            loaded = HistoryStore(config.history_path).load()
        except DataError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"path": str(config.history_path), **loaded.to_dict()}

    return app
