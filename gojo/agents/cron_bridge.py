"""
cron_bridge.py — Foreground side of the daily summary scheduler.

A bridge is what a dashboard session holds: it registers the summary worker,
asks it for status, toggles it, and receives its execution broadcasts.
Any number of bridges can be connected; each receives every broadcast.

Every call here contains its own failures. A missing worker or a late reply
degrades to a conservative default instead of raising.
"""

import logging
from typing import Callable, Optional

from gojo.core import messaging
from gojo.core.ledger import Ledger, LAST_RESULT_KEY
from gojo.agents.worker_registry import RegistrationError, DEFAULT_SCOPE
from gojo.agents.summary_scheduler import build_worker, default_task, ScheduledTask
from gojo.agents.notify_agent import show_execution_notification

log = logging.getLogger("gojo.bridge")


class SchedulerBridge:

    def __init__(self, registry, ledger: Ledger = None,
                 worker_factory: Callable = build_worker,
                 reply_timeout: float = messaging.REPLY_TIMEOUT,
                 notifier: Callable = show_execution_notification,
                 scope: str = DEFAULT_SCOPE):
        self.registry = registry
        self.ledger = ledger or Ledger()
        self.worker_factory = worker_factory
        self.reply_timeout = reply_timeout
        self.notifier = notifier
        self.scope = scope
        self._subscribers = []
        self._connected_to = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def initialize(self) -> bool:
        """Register the worker (idempotent) and listen for its broadcasts."""
        if self.registry is None:
            log.error("Background workers not supported — daily summaries unavailable")
            return False
        try:
            worker = self.registry.register(self.worker_factory, scope=self.scope)
        except RegistrationError as e:
            log.error("Failed to initialize daily summary scheduler: %s", e)
            return False
        except Exception as e:
            log.error("Unexpected error initializing scheduler: %s", e, exc_info=True)
            return False

        self._attach(worker)
        log.info("Daily summary scheduler ready")
        return True

    def _attach(self, worker):
        """Listen to ``worker``, dropping any worker it replaced."""
        if self._connected_to is worker:
            return
        if self._connected_to is not None:
            self._connected_to.disconnect(self)
        worker.connect(self)
        self._connected_to = worker

    def close(self):
        if self._connected_to is not None:
            self._connected_to.disconnect(self)
            self._connected_to = None

    def _controller(self):
        if self.registry is None:
            return None
        return self.registry.controller(self.scope)

    def worker_status(self) -> dict:
        """Health snapshot of the registered worker."""
        worker = self._controller()
        if worker is None:
            return {"running": False}
        return worker.status

    # ── Control plane ────────────────────────────────────────────────────

    def _default_status(self) -> dict:
        try:
            task = default_task()
        except ValueError as e:
            log.error("Schedule settings invalid, showing built-in defaults: %s", e)
            task = ScheduledTask()
        return {
            "enabled": False,
            "nextExecutionTime": task.time,
            "workingDays": task.working_days,
            "lastExecution": None,
            "serviceWorkerActive": False,
        }

    def check_status(self) -> dict:
        """Ask the worker for its status; never hangs past the reply timeout."""
        worker = self._controller()
        if worker is None:
            return self._default_status()
        self._attach(worker)

        try:
            reply = messaging.request_with_timeout(
                lambda port: worker.post_message({"type": messaging.CHECK_CRON_STATUS}, port),
                timeout=self.reply_timeout,
            )
        except Exception as e:
            log.error("Error checking scheduler status: %s", e)
            return self._default_status()

        if reply is None:
            return {**self._default_status(), "timedOut": True}

        status = {k: v for k, v in reply.items() if k != "type"}
        status["serviceWorkerActive"] = True
        return status

    def toggle(self, enabled: bool) -> bool:
        """Enable or disable the daily run. True when the worker acknowledged it."""
        worker = self._controller()
        if worker is None:
            return False

        try:
            reply = messaging.request_with_timeout(
                lambda port: worker.post_message(
                    {"type": messaging.TOGGLE_CRON, "enabled": bool(enabled)}, port),
                timeout=self.reply_timeout,
            )
        except Exception as e:
            log.error("Error toggling scheduler: %s", e)
            return False

        if reply is None:
            return False
        return reply.get("enabled") is bool(enabled)

    # ── Broadcasts ───────────────────────────────────────────────────────

    def on_result_broadcast(self, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Subscribe to execution broadcasts. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def post_message(self, message: dict):
        """Receive a broadcast from the worker."""
        if not message or message.get("type") != messaging.DAILY_EMAIL_EXECUTION:
            return

        results = message.get("results") or []
        total = message.get("totalEmails")
        if total is None:
            total = sum(r.get("emailsSent") or 0 for r in results)
        ok = sum(1 for r in results if r.get("success"))
        log.info("Automatic summary run: %d/%d successful, %d email(s) sent",
                 ok, len(results), total)

        execution = {
            "timestamp": message.get("timestamp"),
            "results": results,
            "totalEmails": total,
        }

        if self.notifier is not None:
            try:
                self.notifier(execution, self.ledger)
            except Exception as e:
                log.error("Execution notification failed: %s", e)

        try:
            self.ledger.write_json(LAST_RESULT_KEY, execution)
        except Exception as e:
            log.error("Could not cache execution result: %s", e)

        for callback in list(self._subscribers):
            try:
                callback(execution)
            except Exception as e:
                log.error("Result subscriber failed: %s", e, exc_info=True)

    def get_last_execution_result(self) -> Optional[dict]:
        """Most recent cached ExecutionResult, or None."""
        try:
            return self.ledger.read_json(LAST_RESULT_KEY)
        except Exception as e:
            log.error("Error reading last execution result: %s", e)
            return None
