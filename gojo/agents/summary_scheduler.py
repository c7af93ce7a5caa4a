"""
summary_scheduler.py — Daily Summary Worker for GOJO

Sends the daily RFP / Prospect / Client-Need summary emails once per
working day at a fixed local time, without any server-side cron.

Workflow:
  1. Every CHECK_INTERVAL seconds, read the clock and the ledger
  2. Dispatch iff: task enabled, weekday active, current minute is the
     scheduled minute, and the ledger has no run for today
  3. Call the three summary functions in order RFP → Prospects → Client Needs,
     PACING_SECONDS apart; a failing function never stops the others
  4. Record today's date in the ledger (even when some calls failed)
  5. Broadcast the ExecutionResult to every connected bridge

A day whose scheduled minute passes while the worker is not running is
skipped, not caught up. Widen GOJO_SUMMARY_WINDOW_MIN to trade that for a
trigger window.

Runs: Background thread, registered once per scope through worker_registry.
Control messages (status, toggle) are queued and handled on that thread, so
the task state has exactly one writer. A due run is dispatched on a separate
thread so status and toggle keep answering while the functions are called.
"""

import os
import queue
import logging
import argparse
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from gojo.core import messaging
from gojo.core.clock import SystemClock
from gojo.core.ledger import Ledger, LAST_EXECUTION_KEY
from gojo.integrations.summary_functions import (
    SUMMARY_FUNCTIONS, SummaryFunctionsClient, count_emails_sent,
)

log = logging.getLogger("gojo.scheduler")

# ── Configuration ────────────────────────────────────────────────────────────
CHECK_INTERVAL = 60             # Seconds between trigger evaluations
PACING_SECONDS = 2.0            # Pause between two summary function calls
SUMMARY_TIME = os.environ.get("GOJO_SUMMARY_TIME", "09:00")
SUMMARY_DAYS = os.environ.get("GOJO_SUMMARY_DAYS", "0,1,2,3,4")   # Mon-Fri
SUMMARY_WINDOW_MIN = os.environ.get("GOJO_SUMMARY_WINDOW_MIN", "1")
SUMMARY_TIMEZONE = os.environ.get("GOJO_TIMEZONE", "")

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


# ── Data model ───────────────────────────────────────────────────────────────

def _parse_days(raw) -> frozenset:
    if isinstance(raw, str):
        raw = [p for p in raw.replace(" ", "").split(",") if p]
    days = frozenset(int(d) for d in raw)
    bad = [d for d in days if d < 0 or d > 6]
    if bad:
        raise ValueError(f"Weekday index out of range 0-6: {sorted(bad)}")
    return days


def _parse_time(value: str) -> tuple:
    try:
        hh, mm = value.split(":")
        hour, minute = int(hh), int(mm)
    except (AttributeError, ValueError):
        raise ValueError(f"Scheduled time must be HH:MM, got {value!r}")
    if len(hh) != 2 or len(mm) != 2 or not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Scheduled time must be HH:MM, got {value!r}")
    return hour, minute


@dataclass
class ScheduledTask:
    """The one recurring job: daily summary dispatch."""
    name: str = "daily_email_summary"
    label: str = "Daily summaries"
    time: str = "09:00"
    days: frozenset = field(default_factory=lambda: frozenset({0, 1, 2, 3, 4}))
    enabled: bool = True
    window_minutes: int = 1

    def __post_init__(self):
        self.days = _parse_days(self.days)
        _parse_time(self.time)
        if self.window_minutes < 1:
            raise ValueError("window_minutes must be >= 1")

    @property
    def working_days(self) -> str:
        """Human description of the active days, e.g. 'Monday to Friday'."""
        ordered = sorted(self.days)
        if not ordered:
            return "Never"
        if len(ordered) > 2 and ordered == list(range(ordered[0], ordered[-1] + 1)):
            return f"{DAY_NAMES[ordered[0]]} to {DAY_NAMES[ordered[-1]]}"
        return ", ".join(DAY_NAMES[d] for d in ordered)

    def in_window(self, now: datetime) -> bool:
        hour, minute = _parse_time(self.time)
        elapsed = (now.hour * 60 + now.minute) - (hour * 60 + minute)
        return 0 <= elapsed < self.window_minutes


def default_task() -> ScheduledTask:
    """Task definition from environment configuration.

    Raises ValueError when GOJO_SUMMARY_TIME, GOJO_SUMMARY_DAYS or
    GOJO_SUMMARY_WINDOW_MIN is malformed.
    """
    try:
        window = int(SUMMARY_WINDOW_MIN)
    except (TypeError, ValueError):
        raise ValueError(f"GOJO_SUMMARY_WINDOW_MIN must be an integer, got {SUMMARY_WINDOW_MIN!r}")
    return ScheduledTask(time=SUMMARY_TIME, days=SUMMARY_DAYS, window_minutes=window)


def validate_config() -> dict:
    """Startup validation of the schedule settings.

    Returns:
        {"ok": bool, "errors": [str], "task": dict | None}
    """
    try:
        task = default_task()
    except ValueError as e:
        log.error("Daily summary schedule misconfigured: %s", e)
        return {"ok": False, "errors": [str(e)], "task": None}
    log.info("Daily summary schedule: %s at %s (window %d min)",
             task.working_days, task.time, task.window_minutes)
    return {"ok": True, "errors": [], "task": {"time": task.time,
                                              "working_days": task.working_days,
                                              "window_minutes": task.window_minutes}}


@dataclass
class EndpointResult:
    type: str
    success: bool
    message: str
    emails_sent: int = 0

    def to_dict(self) -> dict:
        return {"type": self.type, "success": self.success,
                "message": self.message, "emailsSent": self.emails_sent}


@dataclass
class ExecutionResult:
    timestamp: str
    results: list

    @property
    def total_emails(self) -> int:
        return sum(r.emails_sent for r in self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
            "totalEmails": self.total_emails,
        }

    def to_message(self) -> dict:
        return {"type": messaging.DAILY_EMAIL_EXECUTION, **self.to_dict()}


# ── Decision ─────────────────────────────────────────────────────────────────

def should_run(now: datetime, last_execution_date: Optional[str], task: ScheduledTask) -> bool:
    """True when ``now`` is a scheduled moment that has not run yet today."""
    if not task.enabled:
        return False
    if now.weekday() not in task.days:
        return False
    if not task.in_window(now):
        return False
    return last_execution_date != now.date().isoformat()


# ── Worker ───────────────────────────────────────────────────────────────────

class DailySummaryWorker:
    """Background thread that evaluates the schedule and runs the dispatch."""

    def __init__(self, ledger: Ledger, backend, clock=None, task: ScheduledTask = None,
                 check_interval: float = CHECK_INTERVAL,
                 pacing_seconds: float = PACING_SECONDS,
                 endpoints=SUMMARY_FUNCTIONS):
        self.ledger = ledger
        self.backend = backend
        self.clock = clock or SystemClock()
        self.check_interval = check_interval
        self.pacing_seconds = pacing_seconds
        self.endpoints = tuple(endpoints)
        self._task = task or default_task()
        self._inbox = queue.Queue()
        self._clients = []
        self._clients_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None
        self._dispatch_thread = None
        self._check_count = 0
        self._last_check = None
        self._last_dispatch = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self):
        """Start the background thread. First evaluation runs immediately."""
        if self.is_alive:
            log.warning("Summary worker already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True,
                                        name="summary-worker")
        self._thread.start()
        log.info("Summary worker started (%s at %s, %s, checks every %ss)",
                 self._task.label, self._task.time, self._task.working_days,
                 self.check_interval)

    def stop(self, timeout: float = 10):
        """Stop the background thread gracefully."""
        if not self._thread:
            return
        self._stop_event.set()
        self._inbox.put(None)
        self._thread.join(timeout=timeout)
        if self._dispatch_thread is not None:
            self._dispatch_thread.join(timeout=timeout)
        log.info("Summary worker stopped (checks=%d)", self._check_count)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def dispatching(self) -> bool:
        return self._dispatch_thread is not None and self._dispatch_thread.is_alive()

    def _run_loop(self):
        next_check = time.monotonic()
        while not self._stop_event.is_set():
            if time.monotonic() >= next_check:
                try:
                    self._check_schedule()
                except Exception as e:
                    log.error("Summary worker tick error: %s", e, exc_info=True)
                next_check = time.monotonic() + self.check_interval

            try:
                item = self._inbox.get(timeout=max(0.0, next_check - time.monotonic()))
            except queue.Empty:
                continue
            if item is None:
                continue
            message, port = item
            try:
                self.handle_message(message, port)
            except Exception as e:
                log.error("Summary worker message error (%s): %s",
                          message.get("type") if isinstance(message, dict) else message,
                          e, exc_info=True)

    # ── Evaluation + dispatch ────────────────────────────────────────────

    def _check_schedule(self):
        """Loop-side evaluation: a due run goes to the dispatch thread.

        Control messages keep being answered on the worker thread while the
        summary functions are called.
        """
        if self.dispatching:
            log.debug("Dispatch still in progress, skipping schedule check")
            return
        now = self._due()
        if now is None:
            return
        self._dispatch_thread = threading.Thread(
            target=self._dispatch_logged, args=(now,), daemon=True,
            name="summary-dispatch")
        self._dispatch_thread.start()

    def _dispatch_logged(self, now: datetime):
        try:
            self.dispatch(now)
        except Exception as e:
            log.error("Daily summary dispatch error: %s", e, exc_info=True)

    def tick(self) -> Optional[ExecutionResult]:
        """Evaluate the trigger once; dispatch (in this thread) when it matches."""
        now = self._due()
        if now is None:
            return None
        return self.dispatch(now)

    def _due(self) -> Optional[datetime]:
        """The evaluated ``now`` when a run is due, else None."""
        now = self.clock.now()
        self._check_count += 1
        self._last_check = now.isoformat()

        if now.hour in _hours_near(self._task.time):
            log.debug("Schedule check at %s (target %s, %s)",
                      now.strftime("%H:%M:%S"), self._task.time, self._task.working_days)

        last = self.ledger.read(LAST_EXECUTION_KEY)
        if not should_run(now, last, self._task):
            return None

        log.info("Time to send daily summaries (%s)", now.strftime("%Y-%m-%d %H:%M"),
                 extra={"task": self._task.name})
        return now

    def dispatch(self, now: datetime = None) -> ExecutionResult:
        """Call every summary function in order, record the day, broadcast."""
        now = now or self.clock.now()
        results = []

        for i, (label, function_name) in enumerate(self.endpoints):
            if i:
                self.clock.sleep(self.pacing_seconds)
            results.append(self._call_endpoint(label, function_name))

        self.ledger.write(LAST_EXECUTION_KEY, now.date().isoformat())

        execution = ExecutionResult(timestamp=self.clock.now().isoformat(), results=results)
        self._last_dispatch = execution.timestamp
        log.info("Daily summaries done: %d/%d ok, %d email(s)",
                 execution.success_count, len(results), execution.total_emails,
                 extra={"task": self._task.name, "emails_sent": execution.total_emails})

        self.broadcast(execution.to_message())
        return execution

    def _call_endpoint(self, label: str, function_name: str) -> EndpointResult:
        log.info("Calling %s summary...", label, extra={"endpoint": function_name})
        try:
            data = self.backend.invoke(function_name, {"auto_trigger": True})
        except Exception as e:
            log.error("%s summary failed: %s", label, e, extra={"endpoint": function_name})
            return EndpointResult(type=label, success=False, message=str(e))

        success = bool(data.get("success"))
        if not success:
            log.warning("%s summary reported failure: %s", label, data.get("message"),
                        extra={"endpoint": function_name})
        return EndpointResult(
            type=label,
            success=success,
            message=str(data.get("message") or "OK"),
            emails_sent=count_emails_sent(data),
        )

    # ── Messaging ────────────────────────────────────────────────────────

    def connect(self, client):
        """Subscribe ``client`` (anything with post_message) to broadcasts."""
        with self._clients_lock:
            if client not in self._clients:
                self._clients.append(client)

    def disconnect(self, client):
        with self._clients_lock:
            if client in self._clients:
                self._clients.remove(client)

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    def broadcast(self, message: dict):
        with self._clients_lock:
            clients = list(self._clients)
        for client in clients:
            try:
                client.post_message(message)
            except Exception as e:
                log.error("Broadcast to %r failed: %s", client, e)

    def post_message(self, message: dict, port=None):
        """Queue a control message; it is handled on the worker thread."""
        self._inbox.put((message, port))

    def handle_message(self, message: dict, port=None):
        msg_type = (message or {}).get("type")

        if msg_type == messaging.CHECK_CRON_STATUS:
            log.debug("Status check requested")
            reply = {
                "type": messaging.CRON_STATUS,
                "enabled": self._task.enabled,
                "nextExecutionTime": self._task.time,
                "workingDays": self._task.working_days,
                "lastExecution": self.ledger.read(LAST_EXECUTION_KEY),
            }
        elif msg_type == messaging.TOGGLE_CRON:
            self._task.enabled = bool(message.get("enabled"))
            log.info("Daily summaries %s", "enabled" if self._task.enabled else "disabled")
            reply = {"type": messaging.CRON_TOGGLED, "enabled": self._task.enabled}
        else:
            log.warning("Ignoring unknown message type: %r", msg_type)
            return

        if port is not None:
            port.post_message(reply)

    # ── Status ───────────────────────────────────────────────────────────

    @property
    def task_snapshot(self) -> dict:
        return {
            "name": self._task.name,
            "time": self._task.time,
            "working_days": self._task.working_days,
            "enabled": self._task.enabled,
            "window_minutes": self._task.window_minutes,
        }

    @property
    def status(self) -> dict:
        return {
            "running": self.is_alive,
            "dispatching": self.dispatching,
            "check_interval": self.check_interval,
            "check_count": self._check_count,
            "last_check": self._last_check,
            "last_dispatch": self._last_dispatch,
            "clients": self.client_count,
            "task": self.task_snapshot,
        }


def _hours_near(hhmm: str) -> tuple:
    hour, _ = _parse_time(hhmm)
    return (hour - 1) % 24, hour


def build_worker() -> DailySummaryWorker:
    """Production worker: ledger in DATA_DIR, live summary functions, system clock."""
    return DailySummaryWorker(
        ledger=Ledger(),
        backend=SummaryFunctionsClient(),
        clock=SystemClock(SUMMARY_TIMEZONE or None),
    )


# ── Standalone daemon ────────────────────────────────────────────────────────

def main(argv=None) -> int:
    """Run the worker outside the dashboard."""
    parser = argparse.ArgumentParser(description="GOJO daily summary worker")
    parser.add_argument("--once", action="store_true", help="Evaluate the schedule once and exit")
    parser.add_argument("--test-functions", action="store_true",
                        help="Call the three summary functions in test mode and exit")
    args = parser.parse_args(argv)

    from logging_config import setup_logging
    setup_logging()

    if args.test_functions:
        from gojo.integrations.summary_functions import trigger_summary_functions
        result = trigger_summary_functions()
        print(result["message"])
        return 0 if result["success"] else 1

    worker = build_worker()
    if args.once:
        execution = worker.tick()
        print("dispatched" if execution else "nothing to do")
        return 0

    worker.start()
    try:
        while worker.is_alive:
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received")
    finally:
        worker.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
