"""
notify_agent.py — Notifications for automatic summary runs

CHANNELS:
  Dashboard bell — persistent SQLite notifications table, shown by the
                   dashboard's /api/notifications endpoint

PERMISSION:
  Bell notifications are only raised once the user granted permission
  (POST /api/notifications/permission). The choice is stored in the ledger
  under gojo_notification_permission: default | granted | denied.
  Without permission the run is still logged and cached for display.

TRIGGER MAP:
  ┌─────────────────────────────┬──────────────┐
  │ Event                       │ Bell         │
  ├─────────────────────────────┼──────────────┤
  │ daily_summary_sent          │  ✅ info     │
  │ daily_summary_partial       │  ✅ warning  │
  └─────────────────────────────┴──────────────┘
"""

import json
import logging
from datetime import datetime

from gojo.core.ledger import Ledger, NOTIFICATION_PERMISSION_KEY

log = logging.getLogger("gojo.notify")

PERMISSION_DEFAULT = "default"
PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"


# ══════════════════════════════════════════════════════════════════════════════
# PERMISSION
# ══════════════════════════════════════════════════════════════════════════════

def get_permission(ledger: Ledger) -> str:
    value = ledger.read(NOTIFICATION_PERMISSION_KEY)
    if value in (PERMISSION_GRANTED, PERMISSION_DENIED):
        return value
    return PERMISSION_DEFAULT


def set_notification_permission(ledger: Ledger, granted: bool) -> bool:
    """Record the user's answer. Returns True when notifications are now allowed."""
    value = PERMISSION_GRANTED if granted else PERMISSION_DENIED
    ledger.write(NOTIFICATION_PERMISSION_KEY, value)
    log.info("Notification permission: %s", value)
    return granted


# ══════════════════════════════════════════════════════════════════════════════
# EXECUTION NOTIFICATION
# ══════════════════════════════════════════════════════════════════════════════

def show_execution_notification(execution: dict, ledger: Ledger) -> dict:
    """Raise the bell for one automatic run, if the user allowed it."""
    results = execution.get("results") or []
    total = execution.get("totalEmails")
    if total is None:
        total = sum(r.get("emailsSent") or 0 for r in results)
    ok = sum(1 for r in results if r.get("success"))

    if get_permission(ledger) != PERMISSION_GRANTED:
        log.debug("Notification skipped (permission not granted)")
        return {"ok": False, "reason": "permission"}

    partial = ok < len(results)
    event_type = "daily_summary_partial" if partial else "daily_summary_sent"
    body = f"{total} summary email(s) sent automatically"
    if partial:
        body += f" — {len(results) - ok} of {len(results)} summaries failed"

    return _push_bell(
        event_type,
        "GOJO - Summaries sent",
        body,
        "warning" if partial else "info",
        {"timestamp": execution.get("timestamp"), "total_emails": total},
        ledger,
    )


# ══════════════════════════════════════════════════════════════════════════════
# DASHBOARD BELL (persistent SQLite)
# ══════════════════════════════════════════════════════════════════════════════

def _push_bell(event_type: str, title: str, body: str, urgency: str,
               context: dict, ledger: Ledger) -> dict:
    from gojo.core.db import get_db, SCHEMA
    ts = datetime.now().isoformat()
    try:
        with get_db(ledger.db_path) as conn:
            conn.executescript(SCHEMA)
            cur = conn.execute("""
                INSERT INTO notifications (event_type, urgency, title, body, context_json, deep_link, created_at, is_read)
                VALUES (?,?,?,?,?,?,?,0)
            """, (event_type, urgency, title, body, json.dumps(context, default=str), "/cron", ts))
            notification_id = cur.lastrowid
    except Exception as e:
        log.error("Bell persist failed: %s", e)
        return {"ok": False, "reason": str(e)}

    log.info("Bell: %s — %s", title, body)
    return {"ok": True, "id": notification_id}


def get_notifications(limit: int = 30, unread_only: bool = False, db_path: str = None) -> list:
    """Get persistent notifications, newest first."""
    from gojo.core.db import get_db
    with get_db(db_path) as conn:
        where = "WHERE is_read=0" if unread_only else ""
        rows = conn.execute(
            f"SELECT * FROM notifications {where} ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,)
        ).fetchall()
    results = []
    for r in rows:
        n = dict(r)
        try:
            n["context"] = json.loads(n.get("context_json") or "{}")
        except (json.JSONDecodeError, TypeError):
            n["context"] = {}
        results.append(n)
    return results


def mark_notifications_read(notification_ids: list = None, db_path: str = None) -> dict:
    """Mark notifications as read. If no IDs, marks all."""
    from gojo.core.db import get_db
    with get_db(db_path) as conn:
        if notification_ids:
            placeholders = ",".join("?" * len(notification_ids))
            conn.execute(f"UPDATE notifications SET is_read=1 WHERE id IN ({placeholders})",
                         notification_ids)
        else:
            conn.execute("UPDATE notifications SET is_read=1")
    return {"ok": True}


def get_unread_count(db_path: str = None) -> int:
    """Fast unread count for the bell badge."""
    from gojo.core.db import get_db
    with get_db(db_path) as conn:
        row = conn.execute("SELECT COUNT(*) AS cnt FROM notifications WHERE is_read=0").fetchone()
    return row["cnt"] if row else 0
