"""Replacement Manager: swaps a dirty pot container for a clean one.

The clean container reuses the dirty one's image reference, labels,
published ports and network endpoints (aliases, links and any static
addresses).  The dirty container is stopped before the new one starts, so
a static address is free again by then.

Order of operations: create new, stop dirty (releases host ports), start
new, remove dirty.  When the new container cannot start, the dirty one is
restarted and the new one removed, so the pot is never left empty.
"""

from __future__ import annotations

import logging

from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.errors import PotwardenError
from potwarden.models.pots import ContainerRef, ContainerSpec

logger = logging.getLogger(__name__)


def spec_from_container(container: ContainerRef) -> ContainerSpec:
    """Reconstruct a provisioning spec from a running container.

    Docker reports one binding per address family for the same host port
    (``0.0.0.0`` and ``::``); host ports are deduplicated per container port.
    """
    ports: dict[str, list[int]] = {}
    for port_key, bindings in container.ports.items():
        host_ports: list[int] = []
        for binding in bindings:
            if binding.host_port not in host_ports:
                host_ports.append(binding.host_port)
        ports[port_key] = host_ports

    return ContainerSpec(
        image=container.image,
        labels=dict(container.labels),
        ports=ports,
        networks=dict(container.networks),
    )


class ReplacementManager:
    """Provisions clean replacements through the container collaborator."""

    def __init__(self, backend: ContainerBackend) -> None:
        self._backend = backend

    def replace(self, container: ContainerRef) -> str:
        """Replace *container*; return the new container id."""
        spec = spec_from_container(container)
        new_id = self._backend.create_container(spec)
        logger.info("Created clean container %s for %s", new_id[:12], container.short_id)

        try:
            self._backend.stop_container(container.id)
        except PotwardenError:
            self._discard(new_id)
            raise

        try:
            self._backend.start_container(new_id)
        except PotwardenError:
            logger.error(
                "Clean container %s failed to start; restoring %s",
                new_id[:12],
                container.short_id,
            )
            self._rollback(container.id, new_id)
            raise

        self._backend.remove_container(container.id)
        logger.info("Replaced %s with %s", container.short_id, new_id[:12])
        return new_id

    def _rollback(self, dirty_id: str, new_id: str) -> None:
        try:
            self._backend.start_container(dirty_id)
        except PotwardenError as exc:
            logger.error("Could not restart dirty container %s: %s", dirty_id[:12], exc)
        self._discard(new_id)

    def _discard(self, new_id: str) -> None:
        try:
            self._backend.remove_container(new_id)
        except PotwardenError as exc:
            logger.error("Could not remove failed container %s: %s", new_id[:12], exc)
