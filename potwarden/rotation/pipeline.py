"""Rotation pipeline: the forensic cycle of one pot container.

Steps run strictly in order; the Rotation Tracker records the pot's state
at each boundary::

    running_dirty
      1 prepare      ensure <root>/<pot>/ exists, drop stale artifacts
      2 logs         container.log
      3 diff         container.diff
      4 processes    container.top (optional)
      5 dump         dump.tar
    collecting_artifacts
      6 stop_capture signal stop, wait for the capture task to exit
    capture_stopped
      7 hash         hash.json
    hashed
      8 archive      <root>/<pot>_<ts>.tar.gz, verified
    archived
      9 replace      clean container in, dirty container out
     10 cleanup      remove <root>/<pot>/
    replaced
     11 resume       signal resume
    capture_resumed -> running_clean

Any failure ends the pipeline with a failed ``RotationResult``; the dirty
container keeps running and the tracker's marker records where it stopped.
Nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.capture.task import capture_task_name
from potwarden.config import WardenConfig
from potwarden.core.hasher import write_manifest
from potwarden.core.rotation_tracker import RotationTracker
from potwarden.core.signal_bus import SignalBus
from potwarden.core.supervisor import TaskSupervisor
from potwarden.errors import PotwardenError, RotationStepError
from potwarden.models.pots import ContainerRef
from potwarden.models.rotation import RotationResult, RotationState
from potwarden.rotation.archiver import Archiver
from potwarden.rotation.collector import ArtifactCollector
from potwarden.rotation.replacement import ReplacementManager

logger = logging.getLogger(__name__)


class RotationPipeline:
    """Runs rotation cycles; one instance serves every pot.

    Containers of the same pot share the pot's working directory, so their
    cycles are serialised by a per-pot lock.  Different pots never wait on
    each other.
    """

    def __init__(
        self,
        backend: ContainerBackend,
        bus: SignalBus,
        supervisor: TaskSupervisor,
        tracker: RotationTracker,
        config: WardenConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._bus = bus
        self._supervisor = supervisor
        self._tracker = tracker
        self._config = config
        self._collector = ArtifactCollector(
            backend, collect_process_snapshot=config.collect_process_snapshot
        )
        self._archiver = Archiver(clock=clock)
        self._replacer = ReplacementManager(backend)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def pot_lock(self, pot_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(pot_name)
            if lock is None:
                lock = threading.Lock()
                self._locks[pot_name] = lock
            return lock

    def run(self, pot_name: str, container: ContainerRef) -> RotationResult:
        """Rotate *container* of *pot_name*.  Never raises."""
        with self.pot_lock(pot_name):
            return self._rotate(pot_name, container)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _rotate(self, pot_name: str, container: ContainerRef) -> RotationResult:
        directory = Path(self._config.output_root) / pot_name
        archive_path = ""
        step = "begin"
        logger.info("Rotation of pot %s container %s started.", pot_name, container.short_id)

        try:
            self._tracker.begin(pot_name, container.id)

            step = "prepare"
            self._tracker.transition(pot_name, RotationState.COLLECTING_ARTIFACTS)
            directory.mkdir(parents=True, exist_ok=True)
            self._collector.clear(directory)

            step = "logs"
            self._collector.collect_logs(container, directory)
            step = "diff"
            self._collector.collect_diff(container, directory)
            step = "processes"
            self._collector.collect_processes(container, directory)
            step = "dump"
            self._collector.collect_dump(container, directory)

            step = "stop_capture"
            logger.info("Sending stop signal to %s capture.", pot_name)
            self._bus.stop.send(pot_name)
            self._tracker.transition(pot_name, RotationState.CAPTURE_STOPPED)
            self._wait_for_capture(pot_name)

            step = "hash"
            manifest = write_manifest(directory)
            logger.info("Fingerprinted %d artifact(s) of pot %s.", len(manifest), pot_name)
            self._tracker.transition(pot_name, RotationState.HASHED)

            step = "archive"
            archive = self._archiver.archive(directory, manifest)
            archive_path = str(archive)
            self._tracker.transition(
                pot_name, RotationState.ARCHIVED, archive_path=archive_path
            )

            step = "replace"
            new_id = self._replacer.replace(container)

            step = "cleanup"
            self._archiver.remove_working_directory(directory)
            self._tracker.transition(pot_name, RotationState.REPLACED)

            step = "resume"
            logger.info("Sending resume signal to %s capture.", pot_name)
            self._bus.resume.send(pot_name)
            self._tracker.transition(pot_name, RotationState.CAPTURE_RESUMED)
            self._tracker.transition(pot_name, RotationState.RUNNING_CLEAN)
        except Exception as exc:
            return self._failed(pot_name, container, step, exc, archive_path)

        logger.info(
            "Rotation of pot %s complete: %s replaced by %s, evidence in %s",
            pot_name,
            container.short_id,
            new_id[:12],
            archive_path,
        )
        return RotationResult(
            pot_name=pot_name,
            container_id=container.id,
            success=True,
            final_state=RotationState.RUNNING_CLEAN,
            archive_path=archive_path,
            new_container_id=new_id,
        )

    def _wait_for_capture(self, pot_name: str) -> None:
        timeout = self._config.capture_stop_timeout_seconds
        if not self._supervisor.wait_for(capture_task_name(pot_name), timeout):
            raise PotwardenError(
                f"capture of pot {pot_name} did not stop within {timeout:g}s"
            )

    def _failed(
        self,
        pot_name: str,
        container: ContainerRef,
        step: str,
        exc: Exception,
        archive_path: str,
    ) -> RotationResult:
        error = RotationStepError(pot_name, container.id, step, exc)
        final_state = self._tracker.current_state(pot_name)
        logger.error(
            "Rotation FAILED: %s (state=%s).",
            error,
            final_state.value,
            exc_info=not isinstance(exc, (PotwardenError, OSError)),
        )
        try:
            self._tracker.fail(pot_name, str(error))
        except OSError as marker_exc:
            logger.error("Cannot record failed rotation of %s: %s", pot_name, marker_exc)
        return RotationResult(
            pot_name=pot_name,
            container_id=container.id,
            success=False,
            final_state=final_state,
            failed_step=step,
            error=str(exc),
            archive_path=archive_path,
        )
