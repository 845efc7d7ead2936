"""Operator-side pot provisioning: deploy and remove pots.

A pot is a dedicated labeled network plus one labeled container attached
to it.  The daemon discovers whatever these functions create.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.errors import PotNotFoundError, PotwardenError
from potwarden.models.pots import ContainerSpec, EndpointConfig

logger = logging.getLogger(__name__)

DEFAULT_POT_LABEL = "pot.name"


def parse_port_specs(specs: Iterable[str]) -> dict[str, list[int]]:
    """Parse ``[IP:]HOST:CONTAINER[/proto]`` (or ``CONTAINER[/proto]``) specs.

    A host IP prefix is accepted and ignored; bindings are on all addresses.

    >>> parse_port_specs(["2222:22", "8080:80/tcp", "53/udp"])
    {'22/tcp': [2222], '80/tcp': [8080], '53/udp': []}
    """
    ports: dict[str, list[int]] = {}
    for raw in specs:
        spec, _, proto = raw.strip().partition("/")
        proto = proto or "tcp"
        if proto not in ("tcp", "udp", "sctp"):
            raise PotwardenError(f"Invalid protocol in port spec {raw!r}")
        host, sep, container = spec.rpartition(":")
        try:
            container_port = int(container)
            host_port = int(host.rpartition(":")[2]) if sep else None
        except ValueError as exc:
            raise PotwardenError(f"Invalid port spec {raw!r}") from exc
        bindings = ports.setdefault(f"{container_port}/{proto}", [])
        if host_port is not None and host_port not in bindings:
            bindings.append(host_port)
    return ports


def pot_exists(backend: ContainerBackend, pot_name: str) -> bool:
    try:
        backend.get_pot(pot_name)
    except PotNotFoundError:
        return False
    return True


def deploy_pot(
    backend: ContainerBackend,
    pot_name: str,
    image: str,
    *,
    ports: Iterable[str] = (),
    environment: Iterable[str] = (),
    pot_label: str = DEFAULT_POT_LABEL,
) -> str:
    """Create the pot network, pull *image* and start the pot container.

    Returns the new container id.
    """
    if not pot_name:
        raise PotwardenError("Pot name is required")
    if not image:
        raise PotwardenError("Image name is required")
    if pot_exists(backend, pot_name):
        raise PotwardenError(f"Pot {pot_name!r} already exists")

    port_map = parse_port_specs(ports)
    network = backend.create_pot_network(pot_name)
    logger.info("Created network %s for pot %s", network.id[:12], pot_name)

    backend.pull_image(image)
    spec = ContainerSpec(
        image=image,
        labels={pot_label: pot_name},
        ports=port_map,
        networks={network.name: EndpointConfig(network_id=network.id)},
        environment=list(environment),
    )
    container_id = backend.create_container(spec)
    backend.start_container(container_id)
    logger.info("Pot %s deployed as container %s", pot_name, container_id[:12])
    return container_id


def remove_pot(backend: ContainerBackend, pot_name: str) -> int:
    """Force-remove every container of *pot_name*, then its network.

    Returns the number of containers removed.
    """
    pot = backend.get_pot(pot_name)
    for container in pot.containers:
        backend.remove_container(container.id)
        logger.info("Removed container %s of pot %s", container.short_id, pot_name)
    try:
        backend.remove_pot_network(pot_name)
    except PotNotFoundError:
        logger.warning("Pot %s had no network to remove", pot_name)
    return len(pot.containers)


def remove_all_pots(backend: ContainerBackend) -> list[str]:
    """Remove every pot; return the names removed."""
    removed = []
    for pot in backend.list_pots():
        remove_pot(backend, pot.name)
        removed.append(pot.name)
    return removed
