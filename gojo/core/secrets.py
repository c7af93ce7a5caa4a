"""
secrets.py — Centralized Secret Management for GOJO

Single source of truth for credentials and service endpoints.

Env vars:
  SUPABASE_URL        — Hosted platform base URL (edge functions live under /functions/v1)
  SUPABASE_ANON_KEY   — Bearer credential used by the summary worker
  DASH_USER           — Dashboard login username
  DASH_PASS           — Dashboard login password

Security:
  - Values are never logged in full (masked to first 8 chars)
  - Health endpoint shows which secrets are set (not values)
  - Validate on startup — warn loudly about missing secrets
"""

import os
import logging

log = logging.getLogger("gojo.secrets")

# ─── Secret Definitions ─────────────────────────────────────────────────────

_REGISTRY = {
    "supabase_url": {
        "env": "SUPABASE_URL",
        "required": True,
        "desc": "Hosted platform base URL",
        "agents": ["summary_scheduler", "summary_functions"],
    },
    "supabase_anon_key": {
        "env": "SUPABASE_ANON_KEY",
        "required": True,
        "desc": "Bearer credential for the summary edge functions",
        "agents": ["summary_scheduler", "summary_functions"],
        "sensitive": True,
    },
    "dash_user": {
        "env": "DASH_USER",
        "required": True,
        "desc": "Dashboard login username",
        "agents": ["dashboard"],
        "default": "gojo",
    },
    "dash_pass": {
        "env": "DASH_PASS",
        "required": True,
        "desc": "Dashboard login password",
        "agents": ["dashboard"],
        "sensitive": True,
        "default": "changeme",
    },
}


# ─── Public API ──────────────────────────────────────────────────────────────

def get_key(name: str) -> str:
    """Get a secret value by registry name. Returns empty string if not set."""
    entry = _REGISTRY.get(name)
    if not entry:
        log.warning("Unknown secret requested: %s", name)
        return ""

    val = os.environ.get(entry["env"], "")
    if not val and "default" in entry:
        val = entry["default"]
    return val


def mask(value: str) -> str:
    """Mask a secret for safe logging. Shows first 8 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return value[:4] + "****"
    return value[:8] + "****" + f"({len(value)} chars)"


def validate_all() -> dict:
    """Validate all secrets. Returns status report."""
    results = {}
    warnings = []
    for name, entry in _REGISTRY.items():
        val = get_key(name)
        is_set = bool(val)
        results[name] = {
            "set": is_set,
            "env": entry["env"],
            "desc": entry["desc"],
            "masked": mask(val) if not entry.get("sensitive") else ("set" if is_set else "not set"),
            "required": entry.get("required", False),
            "agents": entry["agents"],
            "using_default": not os.environ.get(entry["env"]) and "default" in entry,
        }
        if entry.get("required") and not is_set:
            warnings.append(f"REQUIRED secret missing: {entry['env']} ({entry['desc']})")

    return {
        "secrets": results,
        "total": len(results),
        "set": sum(1 for r in results.values() if r["set"]),
        "missing": sum(1 for r in results.values() if not r["set"]),
        "warnings": warnings,
    }


def startup_check():
    """Run on startup. Logs warnings for missing critical secrets."""
    report = validate_all()
    log.info("Secrets: %d/%d configured", report["set"], report["total"])
    for w in report["warnings"]:
        log.warning("SECRET: %s", w)
    if report["secrets"]["dash_pass"]["using_default"]:
        log.warning("SECRET: DASH_PASS is using the built-in default")
    return report
