"""Background agents.

Modules:
    summary_scheduler  — Daily summary worker (timer, decision, dispatch, broadcast)
    worker_registry    — Scoped, idempotent worker registration
    cron_bridge        — Foreground bridge: status, toggle, result subscriptions
    notify_agent       — Bell notifications for automatic summary runs
"""
