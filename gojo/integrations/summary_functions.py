"""
summary_functions.py — Daily Summary Edge Functions Client

Each hosted function, given a trigger request, finds the pending records for
every sales rep and sends one templated summary email per rep with something
pending. It answers:

    {"success": bool, "message": str, "emailsSent": int, ...}

Functions (fixed call order):
  1. send-daily-rfp-summary            — open RFPs
  2. send-daily-prospects-summary      — prospects awaiting follow-up
  3. send-daily-client-needs-summary   — open client needs

Auth: static bearer credential (SUPABASE_ANON_KEY) against SUPABASE_URL.
"""

import logging
from datetime import datetime

import requests

from gojo.core.secrets import get_key

log = logging.getLogger("gojo.summary_functions")

SUMMARY_FUNCTIONS = (
    ("RFPs", "send-daily-rfp-summary"),
    ("Prospects", "send-daily-prospects-summary"),
    ("Client Needs", "send-daily-client-needs-summary"),
)

REQUEST_TIMEOUT = 30  # seconds


def count_emails_sent(data: dict) -> int:
    """`emailsSent` from a function reply; missing or malformed counts as 0."""
    try:
        return max(0, int(data.get("emailsSent") or 0))
    except (TypeError, ValueError):
        log.warning("Ignoring malformed emailsSent: %r", data.get("emailsSent"))
        return 0


class SummaryFunctionError(Exception):
    """A summary function could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class SummaryFunctionsClient:
    """Thin POST client for the summary edge functions."""

    def __init__(self, base_url: str = None, api_key: str = None,
                 session: requests.Session = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = (base_url if base_url is not None else get_key("supabase_url")).rstrip("/")
        self.api_key = api_key if api_key is not None else get_key("supabase_anon_key")
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def function_url(self, function_name: str) -> str:
        return f"{self.base_url}/functions/v1/{function_name}"

    def invoke(self, function_name: str, payload: dict = None) -> dict:
        """POST ``payload`` to one function and return its decoded JSON body.

        Raises SummaryFunctionError on missing configuration or a non-2xx
        answer; transport errors surface as requests.RequestException.
        """
        if not self.configured:
            raise SummaryFunctionError("Summary functions not configured — set SUPABASE_URL and SUPABASE_ANON_KEY")

        url = self.function_url(function_name)
        log.debug("POST %s", url)
        resp = self.session.post(
            url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json=payload or {},
            timeout=self.timeout,
        )

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if not resp.ok:
            detail = data.get("error") or data.get("message") or resp.reason or "request failed"
            raise SummaryFunctionError(f"{function_name}: HTTP {resp.status_code} — {detail}",
                                       status_code=resp.status_code)
        return data


# ─── Manual trigger ──────────────────────────────────────────────────────────

def trigger_summary_functions(client: SummaryFunctionsClient = None) -> dict:
    """Call all three functions with ``{"test": true}`` and summarise.

    Used by the dashboard's manual trigger. Never touches the ledger, so a
    manual run does not count as the day's automatic run.
    """
    client = client or SummaryFunctionsClient()
    results = []
    details = []

    for label, function_name in SUMMARY_FUNCTIONS:
        try:
            data = client.invoke(function_name, {"test": True})
        except (SummaryFunctionError, requests.RequestException) as e:
            log.error("Manual %s summary failed: %s", label, e)
            results.append({"type": label, "success": False, "message": str(e), "emailsSent": 0})
            details.append(f"{label}: error — {e}")
            continue

        sent = count_emails_sent(data)
        ok = bool(data.get("success"))
        message = data.get("message") or ("OK" if ok else "No emails to send")
        results.append({"type": label, "success": ok, "message": message, "emailsSent": sent})
        if ok:
            details.append(f"{label}: {sent} email(s) sent")
        else:
            log.warning("Manual %s summary: %s", label, message)
            details.append(f"{label}: {message}")

    succeeded = sum(1 for r in results if r["success"])
    total = len(SUMMARY_FUNCTIONS)
    if succeeded == total:
        headline = f"All summary functions succeeded ({succeeded}/{total})"
    elif succeeded:
        headline = f"{succeeded}/{total} summary functions succeeded"
    else:
        headline = "No summary function succeeded"

    log.info("Manual summary trigger: %s", headline)
    return {
        "success": succeeded == total,
        "message": f"{headline}. Details: {' | '.join(details)}",
        "timestamp": datetime.now().isoformat(),
        "results": results,
    }
