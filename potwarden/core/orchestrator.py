"""Daemon orchestrator: the central coordinator for a potwarden process.

The Warden wires together the SignalBus, TaskSupervisor, RotationTracker,
NetworkWatcher, RotationPipeline and RotationScheduler, runs the watcher
and scheduler as supervised tasks for the process lifetime, and shuts
everything down on request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from potwarden.bridge.capture_bridge import CaptureBackend, ScapyCaptureBackend
from potwarden.bridge.docker_bridge import ContainerBackend, DockerBackend
from potwarden.capture.task import CAPTURE_TASK_PREFIX
from potwarden.capture.watcher import NetworkWatcher
from potwarden.config import WardenConfig
from potwarden.core.rotation_tracker import RotationTracker
from potwarden.core.signal_bus import SignalBus
from potwarden.core.supervisor import TaskSupervisor
from potwarden.models.rotation import RotationMarker
from potwarden.rotation.pipeline import RotationPipeline
from potwarden.rotation.scheduler import ROTATION_TASK_PREFIX, RotationScheduler

logger = logging.getLogger(__name__)

WATCHER_TASK = "watcher"
SCHEDULER_TASK = "scheduler"


class Warden:
    """Pot lifecycle and forensic-capture daemon.

    Parameters
    ----------
    config:
        Daemon configuration.  Uses environment defaults if not provided.
    backend:
        Container/network collaborator.  A ``DockerBackend`` is built from
        the environment if not provided.
    capture_backend:
        Packet capture collaborator.  Defaults to scapy.
    clock:
        Unix-time source for file and archive names.
    """

    def __init__(
        self,
        config: WardenConfig | None = None,
        *,
        backend: ContainerBackend | None = None,
        capture_backend: CaptureBackend | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or WardenConfig()
        Path(self.config.output_root).mkdir(parents=True, exist_ok=True)

        self.backend = backend or DockerBackend(
            self.config.pot_label, timeout=self.config.docker_timeout_seconds
        )
        self.capture_backend = capture_backend or ScapyCaptureBackend()

        # Core subsystems
        self.bus = SignalBus()
        self.supervisor = TaskSupervisor()
        self.tracker = RotationTracker(self.config.markers_dir)

        self.watcher = NetworkWatcher(
            self.backend,
            self.capture_backend,
            self.bus,
            self.supervisor,
            self.config,
            tracker=self.tracker,
            clock=clock,
        )
        self.pipeline = RotationPipeline(
            self.backend,
            self.bus,
            self.supervisor,
            self.tracker,
            self.config,
            clock=clock,
        )
        self.scheduler = RotationScheduler(
            self.backend,
            self.pipeline,
            self.supervisor,
            self.config.rotation_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Report interrupted rotations, then start watcher and scheduler."""
        for marker in self.interrupted_rotations():
            logger.warning(
                "Interrupted rotation: pot %s container %s halted at %s "
                "(capture %s)%s",
                marker.pot_name,
                marker.container_id[:12],
                marker.state.value,
                "stopped" if marker.capture_stopped else "running",
                f": {marker.error}" if marker.error else "",
            )

        logger.info("Artifacts will be written under %s", self.config.output_root)
        self.supervisor.spawn(WATCHER_TASK, self.watcher.run)
        self.supervisor.spawn(SCHEDULER_TASK, self.scheduler.run)

    def run_forever(self) -> None:
        """Start and block until interrupted, then shut down."""
        self.start()
        try:
            while not self.supervisor.stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupt received, shutting down.")
        finally:
            self.shutdown()

    def shutdown(self) -> list[str]:
        """Stop every supervised task; return the ones that outlived the deadline."""
        logger.info("Stopping potwarden...")
        return self.supervisor.shutdown(self.config.shutdown_timeout_seconds)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def interrupted_rotations(self) -> list[RotationMarker]:
        return self.tracker.interrupted()

    def status(self) -> dict[str, list[str]]:
        """Snapshot of what the daemon is doing right now."""
        return {
            "managed_pots": self.watcher.managed_pots(),
            "captures": self.supervisor.live_tasks(CAPTURE_TASK_PREFIX),
            "rotations": self.supervisor.live_tasks(ROTATION_TASK_PREFIX),
        }
