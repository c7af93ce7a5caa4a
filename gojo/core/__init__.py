"""Shared infrastructure: paths, SQLite persistence, ledger, clock, messaging, secrets."""
