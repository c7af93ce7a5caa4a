"""
Shared pytest fixtures for the GOJO test suite.

Every test gets its own data directory (ledger + notifications DB), a manual
clock, and a scripted summary-functions backend, so a trigger minute can be
simulated without real delays or network calls.
"""
import os
import sys
import base64
from datetime import datetime, timedelta

import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect the database to an isolated tmp directory."""
    data = str(tmp_path / "data")
    os.makedirs(data, exist_ok=True)
    monkeypatch.setenv("GOJO_DATA_DIR", data)
    monkeypatch.delenv("ENABLE_DAILY_SCHEDULER", raising=False)

    from gojo.core import db
    monkeypatch.setattr(db, "DB_PATH", os.path.join(data, "gojo.db"))

    yield data

    from gojo.agents.worker_registry import get_registry
    from gojo.api.dashboard import set_bridge
    set_bridge(None)
    get_registry().unregister_all()


# ── Time + backend doubles ────────────────────────────────────────────────────

class ManualClock:
    """Clock whose time only moves when a test (or sleep) moves it."""

    def __init__(self, start):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.current = self.current + timedelta(seconds=seconds)

    def set(self, when):
        self.current = when

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


class FakeBackend:
    """Stands in for SummaryFunctionsClient; records every invoke."""

    def __init__(self, clock=None):
        self.clock = clock
        self.calls = []
        self.responses = {}

    def script(self, function_name, response):
        """Answer ``function_name`` with a dict, or raise it if it's an exception."""
        self.responses[function_name] = response

    def invoke(self, function_name, payload=None):
        at = self.clock.now() if self.clock else None
        self.calls.append({"function": function_name, "payload": payload, "at": at})
        response = self.responses.get(function_name,
                                      {"success": True, "message": "OK", "emailsSent": 0})
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def called_functions(self):
        return [c["function"] for c in self.calls]


# Monday 2024-06-10, an hour before the default 09:00 trigger
QUIET_TIME = datetime(2024, 6, 10, 8, 0)


@pytest.fixture
def manual_clock():
    return ManualClock(QUIET_TIME)


@pytest.fixture
def fake_backend(manual_clock):
    return FakeBackend(manual_clock)


@pytest.fixture
def ledger(temp_data_dir):
    from gojo.core.ledger import Ledger
    return Ledger()


@pytest.fixture
def worker(ledger, fake_backend, manual_clock):
    """Unstarted worker wired to the manual clock and fake backend."""
    from gojo.agents.summary_scheduler import DailySummaryWorker, ScheduledTask
    w = DailySummaryWorker(ledger, fake_backend, clock=manual_clock,
                           task=ScheduledTask(), check_interval=60)
    yield w
    w.stop(timeout=2)


@pytest.fixture
def registry():
    from gojo.agents.worker_registry import WorkerRegistry
    reg = WorkerRegistry()
    yield reg
    reg.unregister_all()


@pytest.fixture
def bridge(registry, ledger, worker):
    """Bridge whose registration starts the fixture worker."""
    from gojo.agents.cron_bridge import SchedulerBridge
    b = SchedulerBridge(registry, ledger, worker_factory=lambda: worker,
                        reply_timeout=2.0)
    yield b
    b.close()


# ── Flask test client ─────────────────────────────────────────────────────────

def _basic_auth_header(user="gojo", pw="changeme"):
    creds = base64.b64encode(f"{user}:{pw}".encode()).decode()
    return {"Authorization": f"Basic {creds}"}


class AuthenticatedClient:
    """Wraps Flask test client to add Basic Auth headers to every request."""
    def __init__(self, client, headers):
        self._client = client
        self._headers = headers

    def get(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.get(*args, **kwargs)

    def post(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.post(*args, **kwargs)


@pytest.fixture
def app(temp_data_dir, monkeypatch, bridge):
    """Create Flask app configured for testing, with the fixture bridge installed."""
    monkeypatch.setenv("DASH_USER", "gojo")
    monkeypatch.setenv("DASH_PASS", "changeme")

    import logging_config
    monkeypatch.setattr(logging_config, "setup_logging", lambda *a, **kw: None)

    from app import create_app
    from gojo.api.dashboard import set_bridge
    set_bridge(bridge)

    flask_app = create_app()
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    """Authenticated Flask test client (HTTP Basic Auth on every request)."""
    with app.test_client() as c:
        yield AuthenticatedClient(c, _basic_auth_header())


@pytest.fixture
def anon_client(app):
    """Unauthenticated test client."""
    with app.test_client() as c:
        yield c
