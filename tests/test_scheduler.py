import threading
import unittest
from unittest import mock

from habitsync.models import AppConfig, SyncResult
from habitsync.scheduler import SyncScheduler


class SyncSchedulerTests(unittest.TestCase):
    def test_runs_at_startup_and_on_manual_trigger(self) -> None:
        triggers: list[str] = []
        second_run = threading.Event()

        def run_once(trigger: str = "manual") -> SyncResult:
            triggers.append(trigger)
            if len(triggers) >= 2:
                second_run.set()
            return SyncResult(status="success", message="", duration_ms=0, trigger=trigger)

        engine = mock.Mock()
        engine.is_running = False
        engine.run_once.side_effect = run_once
        scheduler = SyncScheduler(engine, lambda: AppConfig())

        scheduler.start()
        scheduler.trigger_manual()
        self.assertTrue(second_run.wait(timeout=5))
        scheduler.stop()

        self.assertEqual(triggers[:2], ["startup", "manual"])
        self.assertEqual(scheduler.last_result.trigger, triggers[-1])
        self.assertFalse(scheduler.is_alive)

    def test_wake_up_during_a_running_sync_is_dropped(self) -> None:
        engine = mock.Mock()
        engine.is_running = True
        scheduler = SyncScheduler(engine, lambda: AppConfig())

        scheduler._run("manual")

        engine.run_once.assert_not_called()
        self.assertIsNone(scheduler.last_result)


if __name__ == "__main__":
    unittest.main()
