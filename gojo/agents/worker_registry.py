"""
worker_registry.py — Scoped registration for background workers.

One live worker per scope. Registering again while the worker is alive hands
back the same instance, so every bridge in the process talks to the same
singleton and the task state has one owner.
"""

import logging
import threading
from typing import Callable, Optional

log = logging.getLogger("gojo.registry")

DEFAULT_SCOPE = "/"


class RegistrationError(Exception):
    """The worker could not be registered (unsupported, or failed to start)."""


class WorkerRegistry:

    def __init__(self, supported: bool = True):
        self.supported = supported
        self._workers = {}
        self._lock = threading.Lock()

    def register(self, factory: Callable, scope: str = DEFAULT_SCOPE):
        """Return the live worker for ``scope``, creating and starting it if needed."""
        if not self.supported:
            raise RegistrationError("Background workers are not supported in this environment")

        with self._lock:
            existing = self._workers.get(scope)
            if existing is not None and existing.is_alive:
                log.debug("Worker already active for scope %s", scope)
                return existing

            try:
                worker = factory()
                worker.start()
            except Exception as e:
                raise RegistrationError(f"Worker registration failed: {e}") from e

            self._workers[scope] = worker
            log.info("Worker registered for scope %s", scope)
            return worker

    def controller(self, scope: str = DEFAULT_SCOPE) -> Optional[object]:
        """The active worker for ``scope``, or None."""
        with self._lock:
            worker = self._workers.get(scope)
        if worker is not None and worker.is_alive:
            return worker
        return None

    def unregister(self, scope: str = DEFAULT_SCOPE) -> bool:
        with self._lock:
            worker = self._workers.pop(scope, None)
        if worker is None:
            return False
        worker.stop()
        log.info("Worker unregistered for scope %s", scope)
        return True

    def unregister_all(self):
        with self._lock:
            scopes = list(self._workers)
        for scope in scopes:
            self.unregister(scope)


_registry = WorkerRegistry()


def get_registry() -> WorkerRegistry:
    """Process-wide registry."""
    return _registry
