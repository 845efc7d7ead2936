"""Tests for the NetworkWatcher: convergence and capture lifecycle."""

from __future__ import annotations

import time

import pytest

from potwarden.capture.watcher import NetworkWatcher
from potwarden.errors import BackendError
from potwarden.models.pots import PotNetwork


def _net(network_id: str, pot_name: str) -> PotNetwork:
    return PotNetwork(id=network_id, name=pot_name, pot_name=pot_name)


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def watcher(backend, capture_backend, bus, supervisor, config, tracker, clock):
    return NetworkWatcher(
        backend, capture_backend, bus, supervisor, config, tracker=tracker, clock=clock
    )


class TestReconcile:
    def test_new_networks_are_added(self, watcher):
        added, removed = watcher.reconcile({"n1": _net("n1", "a"), "n2": _net("n2", "b")})
        assert [e.pot_name for e in added] == ["a", "b"]
        assert removed == []
        assert watcher.managed_pots() == ["a", "b"]

    def test_identical_input_is_idempotent(self, watcher):
        networks = {"n1": _net("n1", "a")}
        watcher.reconcile(networks)
        assert watcher.reconcile(networks) == ([], [])
        assert watcher.managed_pots() == ["a"]

    @pytest.mark.parametrize(
        "sequence",
        [
            [{"n1": "a"}, {}, {"n2": "b"}],
            [{"n1": "a", "n2": "b"}, {"n2": "b"}, {"n2": "b", "n3": "c"}],
            [{}, {"n1": "a"}, {"n1": "a"}, {}],
        ],
    )
    def test_managed_set_converges_to_current_networks(self, watcher, sequence):
        for step in sequence:
            watcher.reconcile({nid: _net(nid, pot) for nid, pot in step.items()})
            assert watcher.managed_pots() == sorted(step.values())

    def test_managed_pots_is_a_copy(self, watcher):
        watcher.reconcile({"n1": _net("n1", "a")})
        watcher.managed_pots().append("intruder")
        assert watcher.managed_pots() == ["a"]

    def test_entry_carries_bound_interface(self, watcher):
        [entry], _ = watcher.reconcile({"0123456789abcdef": _net("0123456789abcdef", "a")})
        assert entry.interface == "br-0123456789ab"


class TestTick:
    def test_new_pot_gets_directory_and_capture(self, watcher, backend, supervisor, config):
        backend.add_network("cowrie01")
        watcher.tick()

        assert (config.output_root / "cowrie01").is_dir()
        assert supervisor.is_alive("capture:cowrie01")

    def test_vanished_pot_capture_is_stopped(self, watcher, backend, supervisor):
        network = backend.add_network("cowrie01")
        watcher.tick()
        assert supervisor.is_alive("capture:cowrie01")

        del backend.networks[network.id]
        watcher.tick()

        assert watcher.managed_pots() == []
        assert supervisor.wait_for("capture:cowrie01", 2.0)

    def test_departed_pot_signal_slots_released(self, watcher, backend, supervisor, bus):
        network = backend.add_network("cowrie01")
        watcher.tick()
        del backend.networks[network.id]
        watcher.tick()
        assert supervisor.wait_for("capture:cowrie01", 2.0)

        watcher.tick()

        assert "cowrie01" not in bus.stop.slots()
        assert "cowrie01" not in bus.resume.slots()

    def test_returning_pot_keeps_capturing(self, watcher, backend, supervisor, bus):
        network = backend.add_network("cowrie01")
        watcher.tick()
        del backend.networks[network.id]
        watcher.tick()
        assert supervisor.wait_for("capture:cowrie01", 2.0)

        backend.add_network("cowrie01")
        watcher.tick()

        assert watcher.managed_pots() == ["cowrie01"]
        assert supervisor.is_alive("capture:cowrie01")

    def test_at_most_one_capture_per_pot(self, watcher, backend, supervisor, bus):
        backend.add_network("cowrie01")
        watcher.tick()
        bus.resume.send("cowrie01")
        watcher.tick()
        watcher.tick()

        assert supervisor.live_tasks("capture:") == ["capture:cowrie01"]

    def test_resume_restarts_capture_after_stop(self, watcher, backend, supervisor, bus, capture_backend):
        backend.add_network("cowrie01")
        watcher.tick()

        bus.stop.send("cowrie01")
        assert supervisor.wait_for("capture:cowrie01", 2.0)
        bus.resume.send("cowrie01")
        watcher.tick()

        assert _wait_until(lambda: len(capture_backend.opened) == 2)
        assert supervisor.is_alive("capture:cowrie01")

    def test_resume_deferred_while_previous_capture_runs(self, watcher, backend, supervisor, bus, capture_backend):
        backend.add_network("cowrie01")
        watcher.tick()
        bus.resume.send("cowrie01")
        watcher.tick()
        assert _wait_until(lambda: len(capture_backend.opened) == 1)

        bus.stop.send("cowrie01")
        assert supervisor.wait_for("capture:cowrie01", 2.0)
        watcher.tick()

        assert _wait_until(lambda: len(capture_backend.opened) == 2)

    def test_stale_stop_is_drained_before_start(self, watcher, backend, supervisor, bus):
        bus.stop.send("cowrie01")
        backend.add_network("cowrie01")
        watcher.tick()

        assert bus.stop.is_pending("cowrie01") is False
        assert supervisor.is_alive("capture:cowrie01")

    def test_capture_not_started_during_rotation(self, watcher, backend, supervisor, tracker):
        network = backend.add_network("cowrie01")
        tracker.begin("cowrie01", network.id)
        watcher.tick()
        assert not supervisor.is_alive("capture:cowrie01")

        tracker.fail("cowrie01", "test")
        watcher.tick()
        assert supervisor.is_alive("capture:cowrie01")

    def test_fetch_failure_skips_tick(self, watcher, backend):
        backend.add_network("cowrie01")
        backend.fail_on["list_pot_networks"] = BackendError("daemon unreachable")
        watcher.tick()
        assert watcher.managed_pots() == []

    def test_capture_device_error_does_not_kill_watcher(self, watcher, backend, capture_backend, supervisor):
        network = backend.add_network("cowrie01")
        capture_backend.missing.add(f"br-{network.id[:12]}")
        backend.add_network("dionaea01")

        watcher.tick()

        assert supervisor.is_alive("capture:dionaea01")
        assert _wait_until(lambda: not supervisor.is_alive("capture:cowrie01"))
        assert watcher.managed_pots() == ["cowrie01", "dionaea01"]


class TestRunLoop:
    def test_run_ticks_until_shutdown(self, watcher, backend, supervisor):
        backend.add_network("cowrie01")
        supervisor.spawn("watcher", watcher.run)

        assert _wait_until(lambda: supervisor.is_alive("capture:cowrie01"))
        assert supervisor.shutdown(timeout=2.0) == []
