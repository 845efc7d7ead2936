"""Network Watcher: keeps one capture running per live pot network.

Every tick the watcher lists pot-labeled networks and diffs them against
its private managed set:

- a new network is registered and a capture is scheduled for its pot;
- a vanished network is unregistered and its pot's stop slot is signalled;
- a resume signal schedules a fresh capture for an already-managed pot.
- a departed pot's signal slots are released once its capture has ended.

Scheduled captures start as soon as no capture task for that pot is alive,
which keeps at most one capture per pot even when a stop has not yet been
consumed.  The managed set never leaves this object; ``managed_pots()``
returns a copy of the names for status output only.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from potwarden.bridge.capture_bridge import CaptureBackend
from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.capture.binding import bridge_interface
from potwarden.capture.task import CaptureTask, capture_task_name
from potwarden.config import WardenConfig
from potwarden.core.rotation_tracker import RotationTracker
from potwarden.core.signal_bus import SignalBus
from potwarden.core.supervisor import TaskAlreadyRunningError, TaskSupervisor
from potwarden.errors import PotwardenError
from potwarden.models.pots import ManagedPotEntry, PotNetwork

logger = logging.getLogger(__name__)


class NetworkWatcher:
    """Discovers pots by network and drives their capture tasks.

    Parameters
    ----------
    backend:
        Container/network collaborator used to list pot networks.
    capture_backend:
        Packet capture collaborator handed to each capture task.
    bus:
        Signal bus shared with rotation pipelines.
    supervisor:
        Owner of the capture task threads.
    config:
        Daemon configuration (output root, tick interval, capture options).
    tracker:
        Rotation tracker; captures are not started for a pot whose rotation
        is in flight.
    """

    def __init__(
        self,
        backend: ContainerBackend,
        capture_backend: CaptureBackend,
        bus: SignalBus,
        supervisor: TaskSupervisor,
        config: WardenConfig,
        *,
        tracker: RotationTracker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._capture_backend = capture_backend
        self._bus = bus
        self._supervisor = supervisor
        self._config = config
        self._tracker = tracker
        self._clock = clock
        # network id -> entry; owned exclusively by this watcher
        self._managed: dict[str, ManagedPotEntry] = {}
        # pot name -> entry waiting for its previous capture to end
        self._pending_start: dict[str, ManagedPotEntry] = {}
        # pots whose network vanished; their signal slots are released once
        # their capture has ended
        self._retired: set[str] = set()

    # ------------------------------------------------------------------
    # Diffing
    # ------------------------------------------------------------------

    def reconcile(
        self, networks: dict[str, PotNetwork]
    ) -> tuple[list[ManagedPotEntry], list[ManagedPotEntry]]:
        """Bring the managed set in line with *networks*.

        Returns ``(added, removed)`` entries.  Calling it again with the
        same input is a no-op.
        """
        removed = [
            entry for network_id, entry in self._managed.items()
            if network_id not in networks
        ]
        for entry in removed:
            del self._managed[entry.network_id]

        added = []
        for network_id in sorted(networks):
            if network_id in self._managed:
                continue
            network = networks[network_id]
            entry = ManagedPotEntry(
                network_id=network.id,
                pot_name=network.pot_name,
                interface=bridge_interface(network),
            )
            self._managed[network_id] = entry
            added.append(entry)

        return added, removed

    def managed_pots(self) -> list[str]:
        return sorted(entry.pot_name for entry in self._managed.values())

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """One discovery pass.  Fetch failures skip the pass."""
        try:
            networks = self._backend.list_pot_networks()
        except PotwardenError as exc:
            logger.error("Pot network discovery failed, skipping tick: %s", exc)
            return

        added, removed = self.reconcile(networks)

        for entry in removed:
            logger.info("Pot %s network %s is gone.", entry.pot_name, entry.network_id[:12])
            pending = self._pending_start.get(entry.pot_name)
            if pending is not None and pending.network_id == entry.network_id:
                del self._pending_start[entry.pot_name]
            logger.info("Sending stop signal to %s capture.", entry.pot_name)
            self._bus.stop.send(entry.pot_name)
            self._retired.add(entry.pot_name)

        for entry in added:
            logger.info(
                "New pot %s detected (network %s, interface %s).",
                entry.pot_name,
                entry.network_id[:12],
                entry.interface,
            )
            self._retired.discard(entry.pot_name)
            self._pending_start[entry.pot_name] = entry

        self._collect_resumes()
        self._start_pending()
        self._release_retired()

    def _collect_resumes(self) -> None:
        by_pot = {entry.pot_name: entry for entry in self._managed.values()}
        for pot_name in self._bus.resume.pending():
            if not self._bus.resume.poll(pot_name):
                continue
            entry = by_pot.get(pot_name)
            if entry is None:
                logger.warning(
                    "Resume signal for pot %s ignored: its network is not managed.",
                    pot_name,
                )
                self._retired.add(pot_name)
                continue
            logger.info("Resuming %s network packet capture.", pot_name)
            self._pending_start[pot_name] = entry

    def _release_retired(self) -> None:
        managed = {entry.pot_name for entry in self._managed.values()}
        in_flight = set(self._tracker.in_flight()) if self._tracker is not None else set()
        for pot_name in sorted(self._retired):
            if pot_name in managed:
                self._retired.discard(pot_name)
                continue
            if pot_name in in_flight or self._supervisor.is_alive(capture_task_name(pot_name)):
                continue
            self._bus.stop.discard(pot_name)
            self._bus.resume.discard(pot_name)
            self._retired.discard(pot_name)
            logger.debug("Released signal slots of departed pot %s.", pot_name)

    def _start_pending(self) -> None:
        for pot_name in sorted(self._pending_start):
            if self._start_capture(self._pending_start[pot_name]):
                del self._pending_start[pot_name]

    def _start_capture(self, entry: ManagedPotEntry) -> bool:
        task_name = capture_task_name(entry.pot_name)
        if self._tracker is not None and entry.pot_name in self._tracker.in_flight():
            logger.debug("Pot %s is rotating; capture start deferred.", entry.pot_name)
            return False
        if self._supervisor.is_alive(task_name):
            logger.info(
                "Previous capture for pot %s still running; start deferred.",
                entry.pot_name,
            )
            return False

        # No capture is alive, so anything left in the stop slot is stale.
        stale = self._bus.stop.drain(entry.pot_name)
        if stale:
            logger.debug("Discarded %d stale stop signal(s) for %s.", stale, entry.pot_name)

        output_dir = Path(self._config.output_root) / entry.pot_name
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create output directory %s: %s", output_dir, exc)
            return False

        task = CaptureTask(
            entry.pot_name,
            entry.interface,
            output_dir,
            self._capture_backend,
            self._bus.stop,
            self._supervisor.stop_event,
            snaplen=self._config.capture_snaplen,
            promiscuous=self._config.capture_promiscuous,
            read_timeout=self._config.capture_read_timeout_seconds,
            clock=self._clock,
        )
        try:
            self._supervisor.spawn(task_name, task.run)
        except TaskAlreadyRunningError:
            return False
        return True

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Tick every ``watch_interval_seconds`` until shutdown."""
        logger.info("Starting capturing network traffic...")
        stop = self._supervisor.stop_event
        while not stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Network watcher tick failed")
            if stop.wait(self._config.watch_interval_seconds):
                break
        logger.info("Network watcher stopped.")
