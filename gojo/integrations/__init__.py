"""External service clients.

Modules:
    summary_functions  — Hosted edge functions that send the daily summary emails
"""
