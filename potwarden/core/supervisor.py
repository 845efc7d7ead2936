"""Task supervisor: the single owner of every live background thread.

Watcher, scheduler, capture tasks and rotation pipelines are all spawned
through one ``TaskSupervisor``.  It can enumerate them, wait for a given
task, and shut them all down by setting a shared stop event and joining.

Task names are unique among live tasks: spawning a name that is still
running raises ``TaskAlreadyRunningError``.  Capture tasks are named
``capture:<pot>``, which makes "at most one capture per pot" structural.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from potwarden.errors import PotwardenError

logger = logging.getLogger(__name__)


class TaskAlreadyRunningError(PotwardenError):
    """Raised when spawning a task whose name is still live."""


class TaskSupervisor:
    """Spawns, tracks and stops named daemon threads."""

    def __init__(self) -> None:
        self._tasks: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()

    @property
    def stop_event(self) -> threading.Event:
        """Set once shutdown begins; loops should wait on it instead of sleeping."""
        return self._stop

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    def spawn(
        self, name: str, target: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> threading.Thread:
        """Start *target* in a supervised daemon thread called *name*."""
        if self._stop.is_set():
            raise PotwardenError(f"Supervisor is shutting down; refusing to spawn {name}")

        with self._lock:
            existing = self._tasks.get(name)
            if existing is not None and existing.is_alive():
                raise TaskAlreadyRunningError(f"Task {name} is already running")

            thread = threading.Thread(
                target=self._run,
                args=(name, target, args, kwargs),
                name=name,
                daemon=True,
            )
            self._tasks[name] = thread
            thread.start()

        logger.debug("Spawned task %s", name)
        return thread

    def _run(
        self,
        name: str,
        target: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        try:
            target(*args, **kwargs)
        except Exception:
            logger.exception("Task %s terminated with an unhandled error", name)
        finally:
            with self._lock:
                if self._tasks.get(name) is threading.current_thread():
                    del self._tasks[name]
            logger.debug("Task %s finished", name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_alive(self, name: str) -> bool:
        with self._lock:
            thread = self._tasks.get(name)
        return thread is not None and thread.is_alive()

    def live_tasks(self, prefix: str = "") -> list[str]:
        """Names of live tasks, optionally filtered by prefix."""
        with self._lock:
            items = list(self._tasks.items())
        return sorted(
            name for name, thread in items
            if name.startswith(prefix) and thread.is_alive()
        )

    def wait_for(self, name: str, timeout: float | None = None) -> bool:
        """Block until task *name* ends; ``True`` if it is no longer running."""
        with self._lock:
            thread = self._tasks.get(name)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, timeout: float = 10.0) -> list[str]:
        """Signal every task to stop and join them within *timeout* seconds.

        Returns the names of tasks still running when the deadline passed
        (typically pipelines blocked inside a collaborator call, which
        cannot be cancelled).
        """
        self._stop.set()
        deadline = time.monotonic() + timeout

        with self._lock:
            threads = list(self._tasks.values())

        for thread in threads:
            remaining = max(0.0, deadline - time.monotonic())
            thread.join(remaining)

        survivors = self.live_tasks()
        if survivors:
            logger.warning(
                "Shutdown deadline passed with %d task(s) still running: %s",
                len(survivors),
                ", ".join(survivors),
            )
        else:
            logger.info("All supervised tasks stopped.")
        return survivors
