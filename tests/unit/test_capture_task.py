"""Tests for CaptureTask: pcap output and stop handling."""

from __future__ import annotations

import struct
import threading
from pathlib import Path

from conftest import FROZEN_TIME, FakeCaptureBackend, make_packet

from potwarden.capture.task import CaptureTask, capture_task_name, next_capture_path


def read_pcap(path: Path) -> tuple[int, int, list[tuple[int, int, int, int, bytes]]]:
    """Return (linktype, snaplen, records) of a classic pcap file."""
    data = path.read_bytes()
    endian = "<" if data[:4] == b"\xd4\xc3\xb2\xa1" else ">"
    _, _, _, _, _, snaplen, linktype = struct.unpack(endian + "IHHiIII", data[:24])
    records = []
    offset = 24
    while offset < len(data):
        sec, usec, caplen, wirelen = struct.unpack(endian + "IIII", data[offset:offset + 16])
        offset += 16
        records.append((sec, usec, caplen, wirelen, data[offset:offset + caplen]))
        offset += caplen
    return linktype, snaplen, records


def _task(tmp_dir, backend, bus, **kwargs) -> CaptureTask:
    return CaptureTask(
        "cowrie01",
        "br-3f1c9a2b7d4e",
        tmp_dir,
        backend,
        bus.stop,
        threading.Event(),
        read_timeout=0.01,
        clock=lambda: FROZEN_TIME,
        **kwargs,
    )


class TestCapturePaths:
    def test_task_name(self):
        assert capture_task_name("cowrie01") == "capture:cowrie01"

    def test_file_named_after_unix_seconds(self, tmp_dir):
        assert next_capture_path(tmp_dir, FROZEN_TIME).name == "network_1718000000.pcap"

    def test_existing_file_never_reused(self, tmp_dir):
        (tmp_dir / "network_1718000000.pcap").write_bytes(b"old")
        assert next_capture_path(tmp_dir, FROZEN_TIME).name == "network_1718000000_1.pcap"


class TestCaptureTask:
    def test_writes_every_packet_then_stops_on_idle_signal(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        backend.batches["br-3f1c9a2b7d4e"] = [
            [make_packet(b"\x01" * 60), make_packet(b"\x02" * 70)],
            [make_packet(b"\x03" * 80)],
        ]
        backend.on_idle = lambda: bus.stop.send("cowrie01")

        task = _task(tmp_dir, backend, bus)
        task.run()

        assert task.packet_count == 3
        assert task.alive is False
        assert backend.sources[0].closed is True
        linktype, snaplen, records = read_pcap(task.output_path)
        assert linktype == 1
        assert snaplen == 1024
        assert [r[4][:1] for r in records] == [b"\x01", b"\x02", b"\x03"]
        assert records[0][0] == 1718000000
        assert records[0][1] == 250000

    def test_payload_truncated_to_snaplen_keeps_original_length(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        packet = make_packet(b"\xaa" * 64).model_copy(update={"original_length": 1500})
        backend.batches["br-3f1c9a2b7d4e"] = [[packet]]
        backend.on_idle = lambda: bus.stop.send("cowrie01")

        task = _task(tmp_dir, backend, bus, snaplen=64)
        task.run()

        _, snaplen, [(_, _, caplen, wirelen, _)] = read_pcap(task.output_path)
        assert snaplen == 64
        assert caplen == 64
        assert wirelen == 1500

    def test_stop_polled_after_each_packet(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        backend.batches["br-3f1c9a2b7d4e"] = [
            [make_packet(b"a"), make_packet(b"b"), make_packet(b"c")]
        ]
        bus.stop.send("cowrie01")

        task = _task(tmp_dir, backend, bus)
        task.run()

        assert task.packet_count == 1

    def test_other_pots_stop_signal_is_ignored(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        bus.stop.send("other-pot")
        backend.on_idle = lambda: bus.stop.send("cowrie01")

        _task(tmp_dir, backend, bus).run()

        assert bus.stop.is_pending("other-pot") is True

    def test_idle_capture_still_yields_valid_pcap(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        backend.on_idle = lambda: bus.stop.send("cowrie01")

        task = _task(tmp_dir, backend, bus)
        task.run()

        linktype, _, records = read_pcap(task.output_path)
        assert linktype == 1
        assert records == []

    def test_shutdown_event_ends_capture(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        shutdown = threading.Event()
        backend.on_idle = shutdown.set
        task = CaptureTask(
            "cowrie01", "br-x", tmp_dir, backend, bus.stop, shutdown, read_timeout=0.01
        )
        task.run()
        assert task.alive is False

    def test_missing_interface_ends_only_this_task(self, tmp_dir, bus):
        backend = FakeCaptureBackend()
        backend.missing.add("br-3f1c9a2b7d4e")

        task = _task(tmp_dir, backend, bus)
        task.run()

        assert task.alive is False
        assert not task.output_path.exists()
