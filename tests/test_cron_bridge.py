"""Tests for the foreground bridge: status, toggle, broadcasts, cached result."""

import os
import sys
import time
from datetime import datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

MONDAY_0900 = datetime(2024, 6, 10, 9, 0)


def _execution_message(total=10, failed=False):
    from gojo.core.messaging import DAILY_EMAIL_EXECUTION
    return {
        "type": DAILY_EMAIL_EXECUTION,
        "timestamp": "2024-06-10T09:00:04",
        "results": [
            {"type": "RFPs", "success": True, "message": "OK", "emailsSent": 3},
            {"type": "Prospects", "success": not failed, "message": "OK", "emailsSent": 5},
            {"type": "Client Needs", "success": True, "message": "OK", "emailsSent": total - 8},
        ],
        "totalEmails": total,
    }


class _SilentWorker:
    """Alive worker that never answers control messages."""
    is_alive = True

    def __init__(self):
        self.posted = []

    def start(self):
        pass

    def stop(self, timeout=10):
        self.is_alive = False

    def connect(self, client):
        pass

    def disconnect(self, client):
        pass

    def post_message(self, message, port=None):
        self.posted.append(message)


class TestInitialize:
    def test_initialize_starts_worker(self, bridge, worker):
        assert bridge.initialize() is True
        assert worker.is_alive
        assert worker.client_count == 1

    def test_initialize_twice_one_worker(self, bridge, worker):
        assert bridge.initialize() is True
        assert bridge.initialize() is True
        assert worker.client_count == 1

    def test_unsupported_registry(self, ledger):
        from gojo.agents.cron_bridge import SchedulerBridge
        from gojo.agents.worker_registry import WorkerRegistry
        bridge = SchedulerBridge(WorkerRegistry(supported=False), ledger)
        assert bridge.initialize() is False
        assert bridge.check_status()["serviceWorkerActive"] is False

    def test_no_registry(self, ledger):
        from gojo.agents.cron_bridge import SchedulerBridge
        assert SchedulerBridge(None, ledger).initialize() is False

    def test_factory_failure(self, registry, ledger):
        from gojo.agents.cron_bridge import SchedulerBridge

        def factory():
            raise RuntimeError("no backend")

        assert SchedulerBridge(registry, ledger, worker_factory=factory).initialize() is False


class TestCheckStatus:
    def test_no_worker_default(self, bridge):
        status = bridge.check_status()
        assert status == {
            "enabled": False,
            "nextExecutionTime": "09:00",
            "workingDays": "Monday to Friday",
            "lastExecution": None,
            "serviceWorkerActive": False,
        }

    def test_live_worker(self, bridge, ledger):
        from gojo.core.ledger import LAST_EXECUTION_KEY
        ledger.write(LAST_EXECUTION_KEY, "2024-06-07")
        bridge.initialize()
        status = bridge.check_status()
        assert status["enabled"] is True
        assert status["lastExecution"] == "2024-06-07"
        assert status["serviceWorkerActive"] is True
        assert "type" not in status

    def test_toggle_then_status(self, bridge):
        bridge.initialize()
        assert bridge.toggle(False) is True
        assert bridge.check_status()["enabled"] is False
        assert bridge.toggle(True) is True
        assert bridge.check_status()["enabled"] is True

    def test_silent_worker_times_out(self, registry, ledger):
        from gojo.agents.cron_bridge import SchedulerBridge
        bridge = SchedulerBridge(registry, ledger, worker_factory=_SilentWorker,
                                 reply_timeout=0.1)
        bridge.initialize()
        start = time.monotonic()
        status = bridge.check_status()
        assert time.monotonic() - start < 2
        assert status["enabled"] is False
        assert status["serviceWorkerActive"] is False
        assert status["timedOut"] is True

    def test_silent_worker_toggle_false(self, registry, ledger):
        from gojo.agents.cron_bridge import SchedulerBridge
        bridge = SchedulerBridge(registry, ledger, worker_factory=_SilentWorker,
                                 reply_timeout=0.1)
        bridge.initialize()
        assert bridge.toggle(True) is False

    def test_toggle_without_worker(self, bridge):
        assert bridge.toggle(False) is False

    def test_worker_status(self, bridge):
        assert bridge.worker_status() == {"running": False}
        bridge.initialize()
        assert bridge.worker_status()["running"] is True


class TestBroadcasts:
    def test_caches_last_result(self, bridge):
        assert bridge.get_last_execution_result() is None
        bridge.post_message(_execution_message())
        cached = bridge.get_last_execution_result()
        assert cached["totalEmails"] == 10
        assert cached["timestamp"] == "2024-06-10T09:00:04"
        assert len(cached["results"]) == 3

    def test_subscribers_called(self, bridge):
        seen = []
        unsubscribe = bridge.on_result_broadcast(seen.append)
        bridge.post_message(_execution_message())
        unsubscribe()
        bridge.post_message(_execution_message(total=12))
        assert len(seen) == 1
        assert seen[0]["totalEmails"] == 10

    def test_failing_subscriber_isolated(self, bridge):
        seen = []

        def broken(execution):
            raise ValueError("render failed")

        bridge.on_result_broadcast(broken)
        bridge.on_result_broadcast(seen.append)
        bridge.post_message(_execution_message())
        assert len(seen) == 1
        assert bridge.get_last_execution_result() is not None

    def test_other_messages_ignored(self, bridge):
        bridge.post_message({"type": "CRON_STATUS", "enabled": True})
        assert bridge.get_last_execution_result() is None

    def test_total_computed_when_missing(self, bridge):
        msg = _execution_message()
        del msg["totalEmails"]
        bridge.post_message(msg)
        assert bridge.get_last_execution_result()["totalEmails"] == 10

    def test_notifier_called(self, registry, ledger, worker):
        from gojo.agents.cron_bridge import SchedulerBridge
        calls = []
        bridge = SchedulerBridge(registry, ledger, worker_factory=lambda: worker,
                                 notifier=lambda execution, led: calls.append(execution))
        bridge.post_message(_execution_message())
        assert calls[0]["totalEmails"] == 10

    def test_all_bridges_receive_run(self, registry, ledger, worker, manual_clock):
        """Every connected bridge gets the broadcast of one automatic run."""
        from gojo.agents.cron_bridge import SchedulerBridge
        received = []
        bridges = []
        for name in ("tab-1", "tab-2"):
            b = SchedulerBridge(registry, ledger, worker_factory=lambda: worker,
                                notifier=None)
            b.on_result_broadcast(lambda execution, name=name: received.append(name))
            assert b.initialize() is True
            bridges.append(b)
        assert worker.client_count == 2
        deadline = time.monotonic() + 5
        while worker.status["check_count"] < 1 and time.monotonic() < deadline:
            time.sleep(0.01)

        manual_clock.set(MONDAY_0900)
        worker.tick()

        assert sorted(received) == ["tab-1", "tab-2"]
        for b in bridges:
            assert b.get_last_execution_result()["totalEmails"] == 0
            b.close()
        assert worker.client_count == 0


class TestReplacementWorker:
    def test_bridges_follow_replacement_worker(self, registry, ledger, fake_backend, manual_clock):
        from gojo.agents.cron_bridge import SchedulerBridge
        from gojo.agents.summary_scheduler import DailySummaryWorker, ScheduledTask
        made = []

        def factory():
            made.append(DailySummaryWorker(ledger, fake_backend, clock=manual_clock,
                                           task=ScheduledTask()))
            return made[-1]

        first = SchedulerBridge(registry, ledger, worker_factory=factory, notifier=None)
        second = SchedulerBridge(registry, ledger, worker_factory=factory, notifier=None)
        assert first.initialize() and second.initialize()
        assert len(made) == 1

        made[0].stop(timeout=2)
        assert first.initialize() is True
        assert len(made) == 2
        assert made[1].client_count == 1

        assert second.check_status()["serviceWorkerActive"] is True
        assert made[1].client_count == 2

        received = []
        second.on_result_broadcast(received.append)
        manual_clock.set(MONDAY_0900)
        made[1].tick()
        assert len(received) == 1

        first.close()
        second.close()


class TestBadSchedule:
    def test_default_status_survives_bad_settings(self, monkeypatch, bridge):
        from gojo.agents import summary_scheduler
        monkeypatch.setattr(summary_scheduler, "SUMMARY_TIME", "9am")
        status = bridge.check_status()
        assert status["serviceWorkerActive"] is False
        assert status["nextExecutionTime"] == "09:00"

    def test_initialize_fails_cleanly(self, monkeypatch, registry, ledger, fake_backend):
        from gojo.agents import summary_scheduler
        from gojo.agents.cron_bridge import SchedulerBridge
        monkeypatch.setattr(summary_scheduler, "SUMMARY_WINDOW_MIN", "wide")
        bridge = SchedulerBridge(
            registry, ledger,
            worker_factory=lambda: summary_scheduler.DailySummaryWorker(ledger, fake_backend))
        assert bridge.initialize() is False
        assert bridge.check_status()["serviceWorkerActive"] is False
