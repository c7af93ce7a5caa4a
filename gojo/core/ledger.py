"""
gojo/core/ledger.py — Persistent Execution Ledger

Durable, synchronous key/value store shared by the summary worker and every
bridge that points at the same data directory. Last write wins; there are no
multi-key transactions.

Writers:
  gojo_last_email_execution     — worker only (ISO date of the last dispatch)
  gojo_last_execution_result    — bridges (latest ExecutionResult, JSON)
  gojo_notification_permission  — bridges / dashboard (default|granted|denied)
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from gojo.core import db

log = logging.getLogger("gojo.ledger")

LAST_EXECUTION_KEY = "gojo_last_email_execution"
LAST_RESULT_KEY = "gojo_last_execution_result"
NOTIFICATION_PERMISSION_KEY = "gojo_notification_permission"


class Ledger:
    """Key/value access over the ``ledger`` table."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path
        self._ready = False

    def _ensure_schema(self, conn):
        if not self._ready:
            conn.executescript(db.SCHEMA)
            self._ready = True

    def read(self, key: str) -> Optional[str]:
        with db.get_db(self.db_path) as conn:
            self._ensure_schema(conn)
            row = conn.execute("SELECT value FROM ledger WHERE key=?", (key,)).fetchone()
        return row["value"] if row else None

    def write(self, key: str, value: str) -> None:
        now = datetime.now().isoformat()
        with db.get_db(self.db_path) as conn:
            self._ensure_schema(conn)
            conn.execute("""
                INSERT INTO ledger (key, value, updated_at) VALUES (?,?,?)
                ON CONFLICT(key) DO UPDATE SET
                  value=excluded.value, updated_at=excluded.updated_at
            """, (key, value, now))
        log.debug("ledger write %s", key)

    def delete(self, key: str) -> None:
        with db.get_db(self.db_path) as conn:
            self._ensure_schema(conn)
            conn.execute("DELETE FROM ledger WHERE key=?", (key,))

    def read_json(self, key: str) -> Any:
        """Decoded JSON value, or None when missing or unreadable."""
        raw = self.read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            log.warning("Corrupt ledger value for %s: %s", key, e)
            return None

    def write_json(self, key: str, value: Any) -> None:
        self.write(key, json.dumps(value, default=str))
