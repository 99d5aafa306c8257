import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from habitsync.models import SyncResult
from habitsync.web_admin import create_app


class WebAdminTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        environ = {
            "HABITSYNC_CONFIG_PATH": str(Path(self.temp_dir.name) / "config.yaml"),
            "HABITSYNC_STATE_PATH": str(Path(self.temp_dir.name) / "state.db"),
        }
        env = mock.patch.dict(os.environ, environ)
        env.start()
        self.addCleanup(env.stop)
        for variable in ("TODOIST_API_TOKEN", "HABITICA_USER_ID", "HABITICA_API_TOKEN"):
            os.environ.pop(variable, None)
        self.client = TestClient(create_app())

        seed_payload = {
            "source": {"api_token": "todoist-secret"},
            "target": {"user_id": "user-1", "api_token": "habitica-secret"},
            "sync": {"history_dir": self.temp_dir.name, "interval_seconds": 300},
        }
        resp = self.client.put("/api/config", json={"payload": seed_payload})
        self.assertEqual(resp.status_code, 200)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_healthz(self) -> None:
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})

    def test_config_is_masked(self) -> None:
        config = self.client.get("/api/config").json()
        self.assertEqual(config["source"]["api_token"], "***")
        self.assertEqual(config["target"]["api_token"], "***")
        self.assertEqual(config["target"]["user_id"], "user-1")

    def test_empty_or_masked_secret_does_not_override(self) -> None:
        update = {"source": {"api_token": ""}, "target": {"api_token": "***", "user_id": "user-2"}}
        resp = self.client.put("/api/config", json={"payload": update})
        self.assertEqual(resp.status_code, 200)
        stored = self.client.app.state.context.config_manager.load()
        self.assertEqual(stored.source.api_token, "todoist-secret")
        self.assertEqual(stored.target.api_token, "habitica-secret")
        self.assertEqual(stored.target.user_id, "user-2")
        self.assertEqual(resp.json()["config"]["sync"]["interval_seconds"], 300)

    def test_run_now_calls_sync_engine(self) -> None:
        fake_result = SyncResult(status="success", message="ok", duration_ms=5, trigger="api", created=1)
        engine = self.client.app.state.context.sync_engine
        with mock.patch.object(engine, "run_once", return_value=fake_result) as run_once:
            resp = self.client.post("/api/sync/run-now")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["result"]["created"], 1)
        run_once.assert_called_once_with(trigger="api")

    def test_run_triggers_scheduler(self) -> None:
        scheduler = self.client.app.state.context.scheduler
        with mock.patch.object(scheduler, "trigger_manual") as trigger_manual:
            resp = self.client.post("/api/sync/run")
        self.assertEqual(resp.status_code, 200)
        trigger_manual.assert_called_once()

    def test_status_and_debug_views(self) -> None:
        store = self.client.app.state.context.state_store
        run_id = store.start_sync_run(trigger="api")
        store.record_audit_event(task_id="1", action="create", details={"text": "Walk"}, run_id=run_id)

        status = self.client.get("/api/sync/status").json()
        self.assertFalse(status["running"])
        runs = status["runs"]
        self.assertEqual(runs[0]["id"], run_id)
        debug = self.client.get(f"/api/debug/runs/{run_id}").json()
        self.assertEqual(debug["events"][0]["details"]["text"], "Walk")
        self.assertEqual(self.client.get("/api/debug/runs/9999").status_code, 404)
        events = self.client.get("/api/audit/events", params={"run_id": run_id}).json()["events"]
        self.assertEqual(len(events), 1)

    def test_history_view(self) -> None:
        resp = self.client.get("/api/history")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["tasks"], {})

        history_path = Path(self.temp_dir.name) / ".todoist-habitrpg.json"
        history_path.write_text(json.dumps({"syncCursor": "c9", "tasks": {}}), encoding="utf-8")
        self.assertEqual(self.client.get("/api/history").json()["syncCursor"], "c9")

        history_path.write_text("{broken", encoding="utf-8")
        self.assertEqual(self.client.get("/api/history").status_code, 500)


if __name__ == "__main__":
    unittest.main()
