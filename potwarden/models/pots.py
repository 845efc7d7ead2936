"""Pot, container and network records as seen through the orchestration API."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class PortBinding(BaseModel):
    """One published host binding of a container port."""

    model_config = ConfigDict(frozen=True)

    host_ip: str = ""
    host_port: int


class EndpointConfig(BaseModel):
    """A container's attachment to one network.

    Static addresses come from the endpoint's IPAM config; they are empty
    when Docker assigned the address dynamically.
    """

    model_config = ConfigDict(frozen=True)

    network_id: str = ""
    aliases: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    ipv4_address: str = ""
    ipv6_address: str = ""
    link_local_ips: list[str] = Field(default_factory=list)


class ContainerRef(BaseModel):
    """Snapshot of one pot container."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    image: str
    labels: dict[str, str] = Field(default_factory=dict)
    # "22/tcp" -> bindings; unpublished ports map to an empty list
    ports: dict[str, list[PortBinding]] = Field(default_factory=dict)
    networks: dict[str, EndpointConfig] = Field(default_factory=dict)
    state: str = ""
    started_at: str = ""

    @property
    def short_id(self) -> str:
        return self.id[:12]


class Pot(BaseModel):
    """A deployed honeypot: every container carrying the same pot label."""

    model_config = ConfigDict(frozen=True)

    name: str
    containers: tuple[ContainerRef, ...] = ()


class PotNetwork(BaseModel):
    """A pot-labeled network."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    pot_name: str
    labels: dict[str, str] = Field(default_factory=dict)
    options: dict[str, str] = Field(default_factory=dict)


class ManagedPotEntry(BaseModel):
    """Network Watcher's private record of a pot with an active network."""

    model_config = ConfigDict(frozen=True)

    network_id: str
    pot_name: str
    interface: str
    discovered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class DiffEntry(BaseModel):
    """One filesystem change reported by the container diff API."""

    model_config = ConfigDict(frozen=True)

    kind: str  # "C" changed | "A" added | "D" deleted
    path: str

    def render(self) -> str:
        return f"{self.kind} {self.path}"


class ProcessSnapshot(BaseModel):
    """Running processes inside a container, as returned by ``top``."""

    model_config = ConfigDict(frozen=True)

    titles: list[str] = Field(default_factory=list)
    processes: list[list[str]] = Field(default_factory=list)

    def render(self) -> str:
        """Tab-separated table with a header row."""
        lines = ["\t".join(self.titles)]
        lines.extend("\t".join(row) for row in self.processes)
        return "\n".join(lines) + "\n"


class ContainerSpec(BaseModel):
    """Everything needed to provision a clean replacement container."""

    model_config = ConfigDict(frozen=True)

    image: str
    labels: dict[str, str] = Field(default_factory=dict)
    # "22/tcp" -> host ports
    ports: dict[str, list[int]] = Field(default_factory=dict)
    networks: dict[str, EndpointConfig] = Field(default_factory=dict)
    environment: list[str] = Field(default_factory=list)
    tty: bool = True
