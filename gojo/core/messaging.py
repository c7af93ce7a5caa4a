"""
gojo/core/messaging.py — Worker ↔ bridge message passing.

Two shapes of exchange:
  request/reply   Bridge posts a control message with a one-shot ReplyPort and
                  waits for a single reply, up to a bounded timeout.
  broadcast       Worker posts an unsolicited message to every connected client.

The timeout is soft: the worker may still answer after the caller gave up.
That stale reply lands in a port nobody reads and is dropped with it.
"""

import queue
import logging
from typing import Callable, Optional

log = logging.getLogger("gojo.messaging")

# ── Message types ────────────────────────────────────────────────────────────
CHECK_CRON_STATUS = "CHECK_CRON_STATUS"
CRON_STATUS = "CRON_STATUS"
TOGGLE_CRON = "TOGGLE_CRON"
CRON_TOGGLED = "CRON_TOGGLED"
DAILY_EMAIL_EXECUTION = "DAILY_EMAIL_EXECUTION"

REPLY_TIMEOUT = 3.0  # seconds


class ReplyPort:
    """One-shot reply channel. Only the first reply is kept."""

    def __init__(self):
        self._queue = queue.Queue(maxsize=1)

    def post_message(self, message: dict) -> None:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            log.debug("Reply port already answered, dropping %s", message.get("type"))

    def wait(self, timeout: float) -> Optional[dict]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None


def request_with_timeout(send: Callable[[ReplyPort], None],
                         timeout: float = REPLY_TIMEOUT,
                         default: Optional[dict] = None) -> Optional[dict]:
    """Post a request through ``send(port)`` and wait for one reply.

    Returns the reply, or ``default`` when nothing arrives within ``timeout``.
    """
    port = ReplyPort()
    send(port)
    reply = port.wait(timeout)
    if reply is None:
        log.warning("No reply within %.1fs, using default", timeout)
        return default
    return reply
