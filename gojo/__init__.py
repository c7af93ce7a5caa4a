"""
GOJO — Sales operations daily summary scheduler

Packages:
    api/           Dashboard routes (scheduler status, toggle, notifications)
    agents/        Background summary worker, registry, bridge, notifications
    integrations/  Edge function client for the daily summary emails
    core/          Shared paths, persistence, ledger, clock, messaging, secrets
"""
