"""Capture Supervisor: persists one pot's traffic to a pcap file.

A ``CaptureTask`` runs in its own supervised thread named
``capture:<pot>``.  It terminates only when it consumes a stop signal from
its own pot's slot on the signal bus, when the supervisor shuts down, or
when the capture device fails.  Each task writes a fresh file; a resumed
capture never appends to an earlier one.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from potwarden.bridge.capture_bridge import CaptureBackend, PcapFile
from potwarden.core.signal_bus import SignalChannel
from potwarden.errors import CaptureDeviceError

logger = logging.getLogger(__name__)

CAPTURE_TASK_PREFIX = "capture:"


def capture_task_name(pot_name: str) -> str:
    """Supervisor task name for *pot_name*'s capture."""
    return f"{CAPTURE_TASK_PREFIX}{pot_name}"


def next_capture_path(directory: Path, now: float) -> Path:
    """``network_<unix-seconds>.pcap`` in *directory*, never reusing a name."""
    stamp = int(now)
    path = directory / f"network_{stamp}.pcap"
    counter = 1
    while path.exists():
        path = directory / f"network_{stamp}_{counter}.pcap"
        counter += 1
    return path


class CaptureTask:
    """One live capture of one pot.

    Parameters
    ----------
    pot_name:
        Pot whose stop slot this task listens on.
    interface:
        Host interface to capture from.
    output_dir:
        The pot's artifact directory; the pcap is created inside it.
    backend:
        Packet capture collaborator.
    stop_channel:
        The bus's stop channel (only this pot's slot is ever read).
    shutdown:
        Supervisor stop event.
    """

    def __init__(
        self,
        pot_name: str,
        interface: str,
        output_dir: Path,
        backend: CaptureBackend,
        stop_channel: SignalChannel,
        shutdown: threading.Event,
        *,
        snaplen: int = 1024,
        promiscuous: bool = False,
        read_timeout: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.pot_name = pot_name
        self.interface = interface
        self.output_path = next_capture_path(Path(output_dir), clock())
        self.packet_count = 0
        self._backend = backend
        self._stop_channel = stop_channel
        self._shutdown = shutdown
        self._snaplen = snaplen
        self._promiscuous = promiscuous
        self._read_timeout = read_timeout
        self._alive = False

    @property
    def alive(self) -> bool:
        return self._alive

    def _should_stop(self) -> bool:
        if self._stop_channel.poll(self.pot_name):
            logger.info("Stop signal received by %s capture.", self.pot_name)
            return True
        return self._shutdown.is_set()

    def run(self) -> None:
        """Capture until stopped.  Never raises for device errors."""
        try:
            source = self._backend.open(
                self.interface,
                snaplen=self._snaplen,
                promiscuous=self._promiscuous,
                read_timeout=self._read_timeout,
            )
        except CaptureDeviceError as exc:
            logger.error("Capture for pot %s not started: %s", self.pot_name, exc)
            return

        try:
            pcap = PcapFile(self.output_path, self._snaplen)
        except OSError as exc:
            source.close()
            logger.error("Capture for pot %s not started: %s", self.pot_name, exc)
            return

        self._alive = True
        logger.info(
            "Capturing pot %s on %s into %s",
            self.pot_name,
            self.interface,
            self.output_path,
        )
        try:
            stopping = False
            while not stopping:
                packets = source.read()
                for packet in packets:
                    pcap.write(packet)
                    self.packet_count += 1
                    if self._should_stop():
                        stopping = True
                        break
                if not packets:
                    stopping = self._should_stop()
        except CaptureDeviceError as exc:
            logger.error("Capture for pot %s aborted: %s", self.pot_name, exc)
        finally:
            pcap.close()
            source.close()
            self._alive = False
            logger.info(
                "Capture for pot %s closed after %d packet(s): %s",
                self.pot_name,
                self.packet_count,
                self.output_path,
            )
