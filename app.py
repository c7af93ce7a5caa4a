#!/usr/bin/env python3
"""
GOJO — Application Entry Point
Creates the Flask app, registers the dashboard Blueprint, and (optionally)
brings up the daily summary scheduler.
"""

import os
import logging
from flask import Flask

log = logging.getLogger("gojo")


def create_app():
    """Application factory."""
    from logging_config import setup_logging
    setup_logging()

    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "gojo-dev")

    # ── Persistent database init ──────────────────────────────────────────────
    try:
        from gojo.core.paths import validate_paths
        from gojo.core.db import init_db, get_db_stats
        validate_paths()
        init_db()
        stats = get_db_stats()
        log.info("DB: %s | ledger=%d notifications=%d",
                 stats["db_path"], stats.get("ledger", 0), stats.get("notifications", 0))
    except Exception as e:
        log.warning("DB init skipped: %s", e)

    # ── Secrets report (values never logged) ─────────────────────────────────
    from gojo.core.secrets import startup_check
    startup_check()

    from gojo.agents.summary_scheduler import validate_config
    schedule = validate_config()

    from gojo.api.dashboard import bp, get_bridge
    app.register_blueprint(bp)

    # Start the daily summary scheduler (production only)
    if os.environ.get("ENABLE_DAILY_SCHEDULER", "").lower() == "true":
        if not schedule["ok"]:
            log.error("Daily summary scheduler not started: %s", "; ".join(schedule["errors"]))
        elif get_bridge().initialize():
            log.info("Daily summary scheduler initialized")
        else:
            log.error("Daily summary scheduler failed to initialize")

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
