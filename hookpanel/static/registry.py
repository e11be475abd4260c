# hookpanel/static/registry.py
import threading
from contextlib import contextmanager
from typing import Set

from hookpanel.utils.errors import AlreadyRunning


class RunningRegistry:
    """Tracks which scripts currently have an execution in flight"""

    def __init__(self):
        self._lock = threading.Lock()
        self._running: Set[str] = set()

    def acquire(self, script_id: str):
        """Mark script_id as running or fail fast if it already is"""
        with self._lock:
            if script_id in self._running:
                raise AlreadyRunning(script_id)
            self._running.add(script_id)

    def release(self, script_id: str):
        with self._lock:
            self._running.discard(script_id)

    def is_running(self, script_id: str) -> bool:
        with self._lock:
            return script_id in self._running

    def running(self) -> Set[str]:
        with self._lock:
            return set(self._running)

    @contextmanager
    def claim(self, script_id: str):
        self.acquire(script_id)
        try:
            yield
        finally:
            self.release(script_id)


# Process-wide registry shared by every trigger path
running_registry = RunningRegistry()
