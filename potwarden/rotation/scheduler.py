"""Rotation Scheduler: fires rotation pipelines on a fixed interval."""

from __future__ import annotations

import logging

from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.core.supervisor import TaskSupervisor
from potwarden.errors import PotwardenError
from potwarden.rotation.pipeline import RotationPipeline

logger = logging.getLogger(__name__)

ROTATION_TASK_PREFIX = "rotation:"


def rotation_task_name(pot_name: str, container_id: str) -> str:
    return f"{ROTATION_TASK_PREFIX}{pot_name}:{container_id[:12]}"


class RotationScheduler:
    """Launches one pipeline per pot container every *interval* seconds.

    The first tick after start is a cold-start skip: nothing is collected
    until one full interval has elapsed.  Pots are fetched fresh on every
    tick, and pipelines are spawned without waiting for them.
    """

    def __init__(
        self,
        backend: ContainerBackend,
        pipeline: RotationPipeline,
        supervisor: TaskSupervisor,
        interval: float,
    ) -> None:
        self._backend = backend
        self._pipeline = pipeline
        self._supervisor = supervisor
        self._interval = interval
        self.ticks = 0

    def tick(self) -> list[str]:
        """Run one scheduling pass; return the names of spawned pipelines."""
        self.ticks += 1
        if self.ticks == 1:
            logger.info("Cold start: first rotation in %.0f seconds.", self._interval)
            return []

        try:
            pots = self._backend.list_pots()
        except PotwardenError as exc:
            logger.error("Pot discovery failed, skipping rotation cycle: %s", exc)
            return []

        spawned = []
        for pot in pots:
            for container in pot.containers:
                name = rotation_task_name(pot.name, container.id)
                try:
                    self._supervisor.spawn(name, self._pipeline.run, pot.name, container)
                except PotwardenError as exc:
                    logger.warning("Rotation of %s not started: %s", name, exc)
                    continue
                spawned.append(name)

        logger.info("Rotation cycle %d: %d pipeline(s) launched.", self.ticks - 1, len(spawned))
        return spawned

    def run(self) -> None:
        """Tick immediately, then every interval, until shutdown."""
        logger.info("Starting artifact collection every %.0f seconds...", self._interval)
        stop = self._supervisor.stop_event
        while not stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Rotation scheduler tick failed")
            if stop.wait(self._interval):
                break
        logger.info("Rotation scheduler stopped.")
