"""
gojo/core/db.py — SQLite Persistence Layer

One database file per data directory. Holds the scheduler's ledger
(key/value, last-write-wins) and the dashboard bell notifications.

TABLES:
  ledger         — durable key/value entries (last execution date, cached result,
                   notification permission)
  notifications  — bell notifications raised after automatic summary runs
"""

import os
import sqlite3
import logging
import threading
from contextlib import contextmanager

from gojo.core import paths

log = logging.getLogger("gojo.db")

DB_PATH = paths.DB_PATH

_db_lock = threading.Lock()


# ── Connection factory ────────────────────────────────────────────────────────
@contextmanager
def get_db(db_path: str = None):
    """Thread-safe SQLite connection with WAL mode.

    Commits on success, rolls back and re-raises on error.
    """
    path = db_path or DB_PATH
    with _db_lock:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ── Schema ────────────────────────────────────────────────────────────────────
SCHEMA = """
CREATE TABLE IF NOT EXISTS ledger (
    key             TEXT PRIMARY KEY,
    value           TEXT,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at      TEXT NOT NULL,
    event_type      TEXT NOT NULL,
    urgency         TEXT DEFAULT 'info',
    title           TEXT NOT NULL,
    body            TEXT,
    context_json    TEXT,
    deep_link       TEXT,
    is_read         INTEGER DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_notif_unread ON notifications(is_read, created_at);
"""


def init_db(db_path: str = None) -> bool:
    """Create all tables if they don't exist. Safe to call multiple times."""
    with get_db(db_path) as conn:
        conn.executescript(SCHEMA)
    log.info("DB initialized at %s", db_path or DB_PATH)
    return True


def get_db_stats(db_path: str = None) -> dict:
    """Row counts per table, for the health endpoint."""
    stats = {"db_path": db_path or DB_PATH}
    with get_db(db_path) as conn:
        for table in ("ledger", "notifications"):
            try:
                row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()
                stats[table] = row["cnt"]
            except sqlite3.OperationalError:
                stats[table] = 0
    return stats
