"""Shared test fixtures for potwarden."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from potwarden.bridge.docker_bridge import group_pots
from potwarden.config import WardenConfig
from potwarden.core.rotation_tracker import RotationTracker
from potwarden.core.signal_bus import SignalBus
from potwarden.core.supervisor import TaskSupervisor
from potwarden.errors import CaptureDeviceError, PotNotFoundError
from potwarden.models.capture import CapturedPacket
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

FROZEN_TIME = 1718000000.0
POT_LABEL = "pot.name"


# ---------------------------------------------------------------------------
# In-memory container backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """``ContainerBackend`` kept entirely in memory.

    ``fail_on[method] = exc`` makes that method raise ``exc``;
    ``calls`` records every mutating call in order.
    """

    def __init__(self, pot_label: str = POT_LABEL) -> None:
        self.pot_label = pot_label
        self.networks: dict[str, PotNetwork] = {}
        self.containers: dict[str, ContainerRef] = {}
        self.running: set[str] = set()
        self.logs: dict[str, list[bytes]] = {}
        self.diffs: dict[str, list[DiffEntry]] = {}
        self.dumps: dict[str, list[bytes]] = {}
        self.pulled: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _maybe_fail(self, method: str) -> None:
        exc = self.fail_on.get(method)
        if exc is not None:
            raise exc

    def _next_id(self) -> str:
        return f"{next(self._ids):064x}"

    # -- seeding ----------------------------------------------------------

    def add_network(self, pot_name: str, options: dict[str, str] | None = None) -> PotNetwork:
        network = PotNetwork(
            id=self._next_id(),
            name=pot_name,
            pot_name=pot_name,
            labels={self.pot_label: pot_name},
            options=options or {},
        )
        self.networks[network.id] = network
        return network

    def add_container(
        self,
        pot_name: str,
        *,
        image: str = "cowrie/cowrie:latest",
        ports: dict[str, list[PortBinding]] | None = None,
        running: bool = True,
    ) -> ContainerRef:
        network = next(
            (n for n in self.networks.values() if n.pot_name == pot_name), None
        )
        networks = (
            {network.name: EndpointConfig(network_id=network.id, aliases=["ssh"])}
            if network is not None
            else {}
        )
        container = ContainerRef(
            id=self._next_id(),
            name=f"{pot_name}-{len(self.containers)}",
            image=image,
            labels={self.pot_label: pot_name},
            ports=ports or {},
            networks=networks,
            state="running" if running else "exited",
        )
        self.containers[container.id] = container
        if running:
            self.running.add(container.id)
        self.logs[container.id] = [b"login attempt root/123456\n", b"session closed\n"]
        self.diffs[container.id] = [
            DiffEntry(kind="C", path="/etc"),
            DiffEntry(kind="A", path="/tmp/malware.sh"),
            DiffEntry(kind="D", path="/var/log/wtmp"),
        ]
        self.dumps[container.id] = [b"layer-one", b"layer-two"]
        return container

    def pot_container_ids(self, pot_name: str) -> list[str]:
        return [
            c.id for c in self.containers.values()
            if c.labels.get(self.pot_label) == pot_name
        ]

    # -- ContainerBackend ---------------------------------------------------

    def list_pot_networks(self) -> dict[str, PotNetwork]:
        self._maybe_fail("list_pot_networks")
        return dict(self.networks)

    def get_pot_network(self, pot_name: str) -> PotNetwork:
        for network in self.networks.values():
            if network.pot_name == pot_name:
                return network
        raise PotNotFoundError(f"No network for {pot_name}")

    def list_pots(self) -> list[Pot]:
        self._maybe_fail("list_pots")
        return group_pots(list(self.containers.values()), self.pot_label)

    def get_pot(self, pot_name: str) -> Pot:
        containers = [
            c for c in self.containers.values()
            if c.labels.get(self.pot_label) == pot_name
        ]
        if not containers:
            raise PotNotFoundError(f"Pot {pot_name!r} not found")
        return Pot(name=pot_name, containers=tuple(containers))

    def stream_logs(self, container_id: str) -> Iterator[bytes]:
        self._maybe_fail("stream_logs")
        return iter(self.logs.get(container_id, []))

    def diff(self, container_id: str) -> list[DiffEntry]:
        self._maybe_fail("diff")
        return list(self.diffs.get(container_id, []))

    def top(self, container_id: str) -> ProcessSnapshot:
        self._maybe_fail("top")
        return ProcessSnapshot(
            titles=["UID", "PID", "CMD"],
            processes=[["root", "1", "cowrie"], ["root", "42", "sh"]],
        )

    def export_container(self, container_id: str) -> Iterator[bytes]:
        self._maybe_fail("export_container")
        return iter(self.dumps.get(container_id, []))

    def create_container(self, spec: ContainerSpec) -> str:
        self._maybe_fail("create_container")
        container_id = self._next_id()
        self.containers[container_id] = ContainerRef(
            id=container_id,
            image=spec.image,
            labels=dict(spec.labels),
            ports={
                key: [PortBinding(host_ip="0.0.0.0", host_port=p) for p in hosts]
                for key, hosts in spec.ports.items()
            },
            networks=dict(spec.networks),
            state="created",
        )
        self.calls.append(("create_container", container_id))
        return container_id

    def start_container(self, container_id: str) -> None:
        self.calls.append(("start_container", container_id))
        exc = self.fail_on.get("start_container")
        # Restarting the dirty container during rollback must still work.
        if exc is not None and self.containers[container_id].state == "created":
            raise exc
        self.running.add(container_id)

    def stop_container(self, container_id: str) -> None:
        self._maybe_fail("stop_container")
        self.calls.append(("stop_container", container_id))
        self.running.discard(container_id)

    def remove_container(self, container_id: str) -> None:
        self._maybe_fail("remove_container")
        self.calls.append(("remove_container", container_id))
        if container_id not in self.containers:
            raise PotNotFoundError(f"No container {container_id[:12]}")
        del self.containers[container_id]
        self.running.discard(container_id)

    def pull_image(self, image: str) -> None:
        self._maybe_fail("pull_image")
        self.pulled.append(image)

    def create_pot_network(self, pot_name: str) -> PotNetwork:
        self._maybe_fail("create_pot_network")
        return self.add_network(pot_name)

    def remove_pot_network(self, pot_name: str) -> None:
        for network_id, network in list(self.networks.items()):
            if network.name == pot_name:
                del self.networks[network_id]
                self.calls.append(("remove_pot_network", pot_name))
                return
        raise PotNotFoundError(f"No network {pot_name}")


# ---------------------------------------------------------------------------
# Scripted capture backend
# ---------------------------------------------------------------------------


def make_packet(payload: bytes, timestamp: float = FROZEN_TIME + 0.25) -> CapturedPacket:
    return CapturedPacket(timestamp=timestamp, original_length=len(payload), payload=payload)


class FakeCaptureSource:
    """Returns scripted batches, then idles (calling ``on_idle`` once)."""

    def __init__(
        self,
        batches: list[list[CapturedPacket]],
        read_timeout: float,
        on_idle: Callable[[], None] | None = None,
    ) -> None:
        self._batches = list(batches)
        self._read_timeout = read_timeout
        self._on_idle = on_idle
        self.closed = False

    def read(self) -> list[CapturedPacket]:
        if self._batches:
            return self._batches.pop(0)
        if self._on_idle is not None:
            callback, self._on_idle = self._on_idle, None
            callback()
        time.sleep(min(self._read_timeout, 0.01))
        return []

    def close(self) -> None:
        self.closed = True


class FakeCaptureBackend:
    """``CaptureBackend`` producing ``FakeCaptureSource`` handles."""

    def __init__(self) -> None:
        self.batches: dict[str, list[list[CapturedPacket]]] = {}
        self.missing: set[str] = set()
        self.on_idle: Callable[[], None] | None = None
        self.opened: list[str] = []
        self.sources: list[FakeCaptureSource] = []

    def open(
        self,
        interface: str,
        *,
        snaplen: int,
        promiscuous: bool,
        read_timeout: float,
    ) -> FakeCaptureSource:
        if interface in self.missing:
            raise CaptureDeviceError(f"Capture interface {interface} does not exist")
        self.opened.append(interface)
        source = FakeCaptureSource(
            self.batches.pop(interface, []), read_timeout, self.on_idle
        )
        self.sources.append(source)
        return source


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def clock() -> Callable[[], float]:
    """A frozen unix clock."""
    return lambda: FROZEN_TIME


@pytest.fixture
def config(tmp_dir: Path) -> WardenConfig:
    """Fast-ticking configuration rooted in a temp directory."""
    return WardenConfig(
        output_root=tmp_dir / "out",
        watch_interval_seconds=0.05,
        capture_read_timeout_seconds=0.01,
        capture_stop_timeout_seconds=2.0,
        shutdown_timeout_seconds=2.0,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def capture_backend() -> FakeCaptureBackend:
    return FakeCaptureBackend()


@pytest.fixture
def bus() -> SignalBus:
    return SignalBus()


@pytest.fixture
def supervisor() -> Iterator[TaskSupervisor]:
    """A TaskSupervisor that is always shut down after the test."""
    sup = TaskSupervisor()
    yield sup
    sup.shutdown(timeout=2.0)


@pytest.fixture
def tracker(config: WardenConfig) -> RotationTracker:
    return RotationTracker(config.markers_dir)
