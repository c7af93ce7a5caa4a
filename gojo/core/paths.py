"""
gojo/core/paths.py — Centralized Path Configuration

Single source of truth for directory paths. The data directory plays the role
of a browser profile: everything that shares it (the worker and every bridge)
shares one ledger.
"""

import os
import logging

log = logging.getLogger("gojo.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_DEFAULT_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


# ── Resolve DATA_DIR ─────────────────────────────────────────────────────────
# Priority: GOJO_DATA_DIR env → project data/
def _resolve_data_dir() -> str:
    """Find the data directory, creating it when needed."""
    env_dir = os.environ.get("GOJO_DATA_DIR", "").strip()
    if env_dir:
        return env_dir
    return _DEFAULT_DATA_DIR


DATA_DIR = _resolve_data_dir()
LOG_DIR = os.path.join(DATA_DIR, "logs")
DB_PATH = os.path.join(DATA_DIR, "gojo.db")

os.makedirs(DATA_DIR, exist_ok=True)


def validate_paths() -> dict:
    """Runtime validation — call at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "resolved": {name: path}}
    """
    result = {"ok": True, "errors": [], "resolved": {
        "PROJECT_ROOT": PROJECT_ROOT,
        "DATA_DIR": DATA_DIR,
        "DB_PATH": DB_PATH,
    }}

    test_file = os.path.join(DATA_DIR, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"DATA_DIR not writable: {e}")
        result["ok"] = False

    if result["ok"]:
        log.info("DATA_DIR: %s", DATA_DIR)
    else:
        log.error("DATA_DIR problems: %s", result["errors"])
    return result
