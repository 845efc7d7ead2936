"""Tests for the Warden orchestrator: wiring and lifecycle."""

from __future__ import annotations

import logging

import pytest

from potwarden.core.orchestrator import SCHEDULER_TASK, WATCHER_TASK, Warden
from potwarden.core.rotation_tracker import RotationTracker
from potwarden.models.rotation import RotationState


@pytest.fixture
def warden(config, backend, capture_backend, clock):
    w = Warden(config, backend=backend, capture_backend=capture_backend, clock=clock)
    yield w
    w.shutdown()


class TestWarden:
    def test_output_root_created(self, warden, config):
        assert config.output_root.is_dir()
        assert config.markers_dir.is_dir()

    def test_start_runs_watcher_and_scheduler(self, warden):
        warden.start()
        assert warden.supervisor.is_alive(WATCHER_TASK)
        assert warden.supervisor.is_alive(SCHEDULER_TASK)

    def test_shutdown_stops_everything(self, warden, backend):
        backend.add_network("cowrie01")
        warden.start()
        assert warden.shutdown() == []
        assert warden.supervisor.live_tasks() == []

    def test_status_reports_captures(self, warden, backend):
        backend.add_network("cowrie01")
        warden.watcher.tick()
        status = warden.status()
        assert status["managed_pots"] == ["cowrie01"]
        assert status["captures"] == ["capture:cowrie01"]
        assert status["rotations"] == []

    def test_interrupted_rotations_logged_on_start(self, config, backend, capture_backend, caplog):
        leftover = RotationTracker(config.markers_dir)
        leftover.begin("cowrie01", "a" * 64)
        leftover.transition("cowrie01", RotationState.COLLECTING_ARTIFACTS)

        warden = Warden(config, backend=backend, capture_backend=capture_backend)
        try:
            with caplog.at_level(logging.WARNING):
                warden.start()
            assert [m.pot_name for m in warden.interrupted_rotations()] == ["cowrie01"]
            assert "Interrupted rotation: pot cowrie01" in caplog.text
        finally:
            warden.shutdown()
