"""Container/network orchestration bridge: wraps the Docker SDK.

Bridge boundary
---------------
Everything the daemon needs from the container runtime goes through the
``ContainerBackend`` Protocol.  ``DockerBackend`` implements it with the
``docker`` SDK; tests plug in an in-memory fake.  Every SDK or transport
failure surfaces as ``BackendError`` (``PotNotFoundError`` for 404s) so
callers handle exactly one exception family.

Pots are identified by a label (``pot.name`` by default) on both the
containers and the dedicated network.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Protocol, runtime_checkable

import docker
import docker.errors
import requests

from potwarden.errors import BackendError, PotNotFoundError
from potwarden.models.pots import (
    ContainerRef,
    ContainerSpec,
    DiffEntry,
    EndpointConfig,
    PortBinding,
    Pot,
    PotNetwork,
    ProcessSnapshot,
)

logger = logging.getLogger(__name__)

# Docker's ContainerChanges "Kind" values.
_DIFF_KINDS: dict[int, str] = {0: "C", 1: "A", 2: "D"}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ContainerBackend(Protocol):
    """Operations the daemon consumes from the orchestration API."""

    def list_pot_networks(self) -> dict[str, PotNetwork]:
        """Pot-labeled networks keyed by network id."""
        ...

    def get_pot_network(self, pot_name: str) -> PotNetwork: ...

    def list_pots(self) -> list[Pot]: ...

    def get_pot(self, pot_name: str) -> Pot: ...

    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        """Combined stdout/stderr of the container, as raw chunks."""
        ...

    def diff(self, container_id: str) -> list[DiffEntry]: ...

    def top(self, container_id: str) -> ProcessSnapshot: ...

    def export_container(self, container_id: str) -> Iterator[bytes]:
        """Commit the container to an image and stream that image as a tar."""
        ...

    def create_container(self, spec: ContainerSpec) -> str: ...

    def start_container(self, container_id: str) -> None: ...

    def stop_container(self, container_id: str) -> None: ...

    def remove_container(self, container_id: str) -> None: ...

    def pull_image(self, image: str) -> None: ...

    def create_pot_network(self, pot_name: str) -> PotNetwork: ...

    def remove_pot_network(self, pot_name: str) -> None: ...


# ---------------------------------------------------------------------------
# Attribute parsing (pure; shared with tests)
# ---------------------------------------------------------------------------


def parse_container(attrs: dict[str, Any]) -> ContainerRef:
    """Build a ContainerRef from a ``docker inspect`` attribute dict."""
    config = attrs.get("Config") or {}
    net_settings = attrs.get("NetworkSettings") or {}
    state = attrs.get("State") or {}
    container_id = attrs.get("Id", "")

    ports: dict[str, list[PortBinding]] = {}
    for port_key, bindings in (net_settings.get("Ports") or {}).items():
        ports[port_key] = [
            PortBinding(host_ip=b.get("HostIp", ""), host_port=int(b["HostPort"]))
            for b in (bindings or [])
            if b.get("HostPort")
        ]

    networks: dict[str, EndpointConfig] = {}
    for net_name, endpoint in (net_settings.get("Networks") or {}).items():
        endpoint = endpoint or {}
        aliases = [
            alias for alias in (endpoint.get("Aliases") or [])
            # Docker adds the short container id as an alias on its own.
            if alias != container_id[:12]
        ]
        ipam = endpoint.get("IPAMConfig") or {}
        networks[net_name] = EndpointConfig(
            network_id=endpoint.get("NetworkID", ""),
            aliases=aliases,
            links=list(endpoint.get("Links") or []),
            ipv4_address=ipam.get("IPv4Address") or "",
            ipv6_address=ipam.get("IPv6Address") or "",
            link_local_ips=list(ipam.get("LinkLocalIPs") or []),
        )

    return ContainerRef(
        id=container_id,
        name=attrs.get("Name", "").lstrip("/"),
        image=config.get("Image", ""),
        labels=dict(config.get("Labels") or {}),
        ports=ports,
        networks=networks,
        state=state.get("Status", ""),
        started_at=state.get("StartedAt", ""),
    )


def parse_network(attrs: dict[str, Any], pot_label: str) -> PotNetwork:
    labels = dict(attrs.get("Labels") or {})
    return PotNetwork(
        id=attrs.get("Id", ""),
        name=attrs.get("Name", ""),
        pot_name=labels.get(pot_label, attrs.get("Name", "")),
        labels=labels,
        options=dict(attrs.get("Options") or {}),
    )


def _links_dict(links: list[str]) -> dict[str, str] | None:
    """``["db:database"]`` -> ``{"db": "database"}`` for the endpoint API."""
    if not links:
        return None
    result = {}
    for link in links:
        name, _, alias = link.partition(":")
        result[name.lstrip("/")] = alias.rsplit("/", 1)[-1] or name.lstrip("/")
    return result


def _endpoint_kwargs(endpoint: EndpointConfig) -> dict[str, Any]:
    """Endpoint settings as keyword arguments of the low-level network API."""
    return {
        "aliases": endpoint.aliases or None,
        "links": _links_dict(endpoint.links),
        "ipv4_address": endpoint.ipv4_address or None,
        "ipv6_address": endpoint.ipv6_address or None,
        "link_local_ips": endpoint.link_local_ips or None,
    }


def group_pots(containers: Iterable[ContainerRef], pot_label: str) -> list[Pot]:
    """Group labeled containers into pots, ordered by pot name."""
    grouped: dict[str, list[ContainerRef]] = {}
    for container in containers:
        pot_name = container.labels.get(pot_label)
        if pot_name:
            grouped.setdefault(pot_name, []).append(container)
    return [
        Pot(name=name, containers=tuple(grouped[name])) for name in sorted(grouped)
    ]


# ---------------------------------------------------------------------------
# Docker implementation
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def _api_call(what: str) -> Iterator[None]:
    """Translate Docker SDK and transport errors into BackendError."""
    try:
        yield
    except docker.errors.NotFound as exc:
        raise PotNotFoundError(f"{what}: not found ({exc.explanation or exc})") from exc
    except docker.errors.DockerException as exc:
        raise BackendError(f"{what}: {exc}") from exc
    except requests.exceptions.RequestException as exc:
        raise BackendError(f"{what}: daemon unreachable ({exc})") from exc


class DockerBackend:
    """``ContainerBackend`` backed by the Docker Engine API.

    Parameters
    ----------
    pot_label:
        Label that marks pot containers and networks.
    timeout:
        Per-request timeout (seconds) for the Docker client.  Image export
        is a single long request, so this bounds the dump step too.
    client:
        Pre-built ``docker.DockerClient``; one is created from the
        environment (``DOCKER_HOST`` etc.) when omitted.
    """

    def __init__(
        self,
        pot_label: str = "pot.name",
        *,
        timeout: int = 600,
        client: docker.DockerClient | None = None,
    ) -> None:
        self.pot_label = pot_label
        if client is None:
            with _api_call("connect to docker daemon"):
                client = docker.from_env(timeout=timeout)
        self._client = client

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_pot_networks(self) -> dict[str, PotNetwork]:
        with _api_call("list pot networks"):
            networks = self._client.networks.list(filters={"label": self.pot_label})
        result = {}
        for network in networks:
            pot_network = parse_network(network.attrs, self.pot_label)
            result[pot_network.id] = pot_network
        return result

    def get_pot_network(self, pot_name: str) -> PotNetwork:
        for network in self.list_pot_networks().values():
            if network.pot_name == pot_name:
                return network
        raise PotNotFoundError(f"No network labeled {self.pot_label}={pot_name}")

    def _list_containers(self, label_filter: str) -> list[ContainerRef]:
        with _api_call("list pot containers"):
            containers = self._client.containers.list(
                all=True, filters={"label": label_filter}
            )
            return [parse_container(c.attrs) for c in containers]

    def list_pots(self) -> list[Pot]:
        return group_pots(self._list_containers(self.pot_label), self.pot_label)

    def get_pot(self, pot_name: str) -> Pot:
        containers = self._list_containers(f"{self.pot_label}={pot_name}")
        if not containers:
            raise PotNotFoundError(f"Pot {pot_name!r} not found")
        return Pot(name=pot_name, containers=tuple(containers))

    # ------------------------------------------------------------------
    # Forensics
    # ------------------------------------------------------------------

    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        with _api_call(f"fetch logs of {container_id[:12]}"):
            container = self._client.containers.get(container_id)
            stream = container.logs(stdout=True, stderr=True, stream=True, follow=False)
            yield from stream

    def diff(self, container_id: str) -> list[DiffEntry]:
        with _api_call(f"fetch diff of {container_id[:12]}"):
            changes = self._client.containers.get(container_id).diff() or []
        return [
            DiffEntry(kind=_DIFF_KINDS.get(change.get("Kind"), "?"), path=change["Path"])
            for change in changes
        ]

    def top(self, container_id: str) -> ProcessSnapshot:
        with _api_call(f"fetch process list of {container_id[:12]}"):
            result = self._client.containers.get(container_id).top()
        return ProcessSnapshot(
            titles=list(result.get("Titles") or []),
            processes=[list(row) for row in (result.get("Processes") or [])],
        )

    def export_container(self, container_id: str) -> Iterator[bytes]:
        with _api_call(f"commit {container_id[:12]}"):
            image = self._client.containers.get(container_id).commit()
        logger.debug("Committed %s as image %s", container_id[:12], image.short_id)
        try:
            with _api_call(f"export image {image.short_id}"):
                yield from image.save(named=False)
        finally:
            try:
                with _api_call(f"remove image {image.short_id}"):
                    self._client.images.remove(image.id, force=True)
            except BackendError as exc:
                logger.warning("Committed image %s left behind: %s", image.short_id, exc)

    # ------------------------------------------------------------------
    # Container lifecycle
    # ------------------------------------------------------------------

    def create_container(self, spec: ContainerSpec) -> str:
        api = self._client.api
        exposed = []
        for port_key in spec.ports:
            port, _, proto = port_key.partition("/")
            exposed.append((int(port), proto or "tcp"))
        port_bindings = {key: list(hosts) for key, hosts in spec.ports.items() if hosts}

        network_names = list(spec.networks)
        networking_config = None
        if network_names:
            first = network_names[0]
            endpoint = spec.networks[first]
            networking_config = api.create_networking_config({
                first: api.create_endpoint_config(**_endpoint_kwargs(endpoint))
            })

        with _api_call(f"create container from {spec.image}"):
            response = api.create_container(
                spec.image,
                labels=dict(spec.labels),
                ports=exposed or None,
                environment=list(spec.environment) or None,
                tty=spec.tty,
                host_config=api.create_host_config(port_bindings=port_bindings),
                networking_config=networking_config,
            )
            container_id = response["Id"]
            for name in network_names[1:]:
                endpoint = spec.networks[name]
                api.connect_container_to_network(
                    container_id, name, **_endpoint_kwargs(endpoint)
                )
        return container_id

    def start_container(self, container_id: str) -> None:
        with _api_call(f"start {container_id[:12]}"):
            self._client.api.start(container_id)

    def stop_container(self, container_id: str) -> None:
        with _api_call(f"stop {container_id[:12]}"):
            self._client.api.stop(container_id)

    def remove_container(self, container_id: str) -> None:
        with _api_call(f"remove {container_id[:12]}"):
            self._client.api.remove_container(container_id, force=True)

    # ------------------------------------------------------------------
    # Images and networks (deploy / remove)
    # ------------------------------------------------------------------

    def pull_image(self, image: str) -> None:
        with _api_call(f"pull {image}"):
            self._client.images.pull(image)

    def create_pot_network(self, pot_name: str) -> PotNetwork:
        with _api_call(f"create network {pot_name}"):
            network = self._client.networks.create(
                pot_name, labels={self.pot_label: pot_name}
            )
            network.reload()
        return parse_network(network.attrs, self.pot_label)

    def remove_pot_network(self, pot_name: str) -> None:
        with _api_call(f"remove network {pot_name}"):
            self._client.networks.get(pot_name).remove()
