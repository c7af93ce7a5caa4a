"""
GOJO Dashboard API
Daily summary scheduler control: status, toggle, initialize, manual trigger,
last automatic run, bell notifications. Password protected (HTTP Basic).
"""
import time
import logging
import functools

from flask import Blueprint, request, jsonify, Response

from gojo.core.secrets import get_key, validate_all
from gojo.core.ledger import Ledger
from gojo.agents.worker_registry import get_registry
from gojo.agents.cron_bridge import SchedulerBridge
from gojo.agents import notify_agent

log = logging.getLogger("gojo.dashboard")

bp = Blueprint("dashboard", __name__)


# ── Request-level structured logging ────────────────────────────────────────
@bp.before_app_request
def _log_request_start():
    request._start_time = time.time()


@bp.after_app_request
def _log_request_end(response):
    if hasattr(request, "_start_time"):
        duration_ms = round((time.time() - request._start_time) * 1000, 1)
        if request.path not in ("/api/health",):
            log.info("%s %s → %d (%.0fms)",
                     request.method, request.path, response.status_code, duration_ms,
                     extra={"route": request.path, "method": request.method,
                            "status": response.status_code, "duration_ms": duration_ms})
    return response


# ═══════════════════════════════════════════════════════════════════════
# Password Protection
# ═══════════════════════════════════════════════════════════════════════
def check_auth(username, password):
    return username == get_key("dash_user") and password == get_key("dash_pass")


def auth_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        auth = request.authorization
        if not auth or not check_auth(auth.username, auth.password):
            return Response(
                "GOJO Dashboard — Login Required",
                401, {"WWW-Authenticate": 'Basic realm="GOJO Dashboard"'})
        return f(*args, **kwargs)
    return decorated


# ═══════════════════════════════════════════════════════════════════════
# Scheduler bridge
# ═══════════════════════════════════════════════════════════════════════
_bridge = None


def get_bridge() -> SchedulerBridge:
    """The dashboard's bridge to the summary worker (created on first use)."""
    global _bridge
    if _bridge is None:
        _bridge = SchedulerBridge(get_registry(), Ledger())
    return _bridge


def set_bridge(bridge):
    """Swap the dashboard bridge (app wiring and tests)."""
    global _bridge
    if _bridge is not None and _bridge is not bridge:
        _bridge.close()
    _bridge = bridge


# ═══════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
@auth_required
def api_health():
    """System health: scheduler worker + configured secrets."""
    scheduler = get_bridge().worker_status()
    secrets = validate_all()
    return jsonify({
        "status": "ok" if scheduler.get("running") and not secrets["warnings"] else "degraded",
        "scheduler": scheduler,
        "secrets": {"set": secrets["set"], "total": secrets["total"],
                    "warnings": secrets["warnings"]},
    })


@bp.route("/api/cron/status")
@auth_required
def api_cron_status():
    bridge = get_bridge()
    status = bridge.check_status()
    status["lastResult"] = bridge.get_last_execution_result()
    return jsonify(status)


@bp.route("/api/cron/initialize", methods=["POST"])
@auth_required
def api_cron_initialize():
    ok = get_bridge().initialize()
    if not ok:
        return jsonify({"ok": False,
                        "error": "Could not start the daily summary scheduler"}), 500
    return jsonify({"ok": True})


@bp.route("/api/cron/toggle", methods=["POST"])
@auth_required
def api_cron_toggle():
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        return jsonify({"ok": False, "error": "'enabled' must be true or false"}), 400
    ok = get_bridge().toggle(enabled)
    return jsonify({"ok": ok, "enabled": enabled})


@bp.route("/api/cron/last-execution")
@auth_required
def api_cron_last_execution():
    result = get_bridge().get_last_execution_result()
    if result is None:
        return jsonify({}), 404
    return jsonify(result)


@bp.route("/api/cron/test", methods=["POST"])
@auth_required
def api_cron_test():
    """Manual trigger of the three summary functions (does not count as the day's run)."""
    from gojo.integrations.summary_functions import trigger_summary_functions
    return jsonify(trigger_summary_functions())


@bp.route("/api/notifications")
@auth_required
def api_notifications():
    unread_only = request.args.get("unread") in ("1", "true")
    try:
        limit = int(request.args.get("limit", 30))
    except ValueError:
        limit = 30
    ledger = get_bridge().ledger
    return jsonify({
        "notifications": notify_agent.get_notifications(limit, unread_only, ledger.db_path),
        "unread": notify_agent.get_unread_count(ledger.db_path),
        "permission": notify_agent.get_permission(ledger),
    })


@bp.route("/api/notifications/read", methods=["POST"])
@auth_required
def api_notifications_read():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids") or None
    return jsonify(notify_agent.mark_notifications_read(ids, get_bridge().ledger.db_path))


@bp.route("/api/notifications/permission", methods=["POST"])
@auth_required
def api_notifications_permission():
    data = request.get_json(silent=True) or {}
    granted = data.get("granted")
    if not isinstance(granted, bool):
        return jsonify({"ok": False, "error": "'granted' must be true or false"}), 400
    ledger = get_bridge().ledger
    notify_agent.set_notification_permission(ledger, granted)
    return jsonify({"ok": True, "permission": notify_agent.get_permission(ledger)})
