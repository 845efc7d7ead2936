"""Packet capture bridge: live capture and pcap output via scapy.

``CaptureBackend.open`` returns a ``CaptureSource`` bound to one interface.
``CaptureSource.read`` blocks for at most the read timeout and returns the
packets seen in that window (possibly none), so a capture loop regains
control at least once per timeout even on an idle network.

``PcapFile`` writes classic libpcap: one global header (Ethernet link type,
configured snap length) followed by one record per packet.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from scapy.all import conf, get_if_list, sniff
from scapy.error import Scapy_Exception
from scapy.utils import RawPcapWriter

from potwarden.errors import CaptureDeviceError
from potwarden.models.capture import CapturedPacket

logger = logging.getLogger(__name__)

LINKTYPE_ETHERNET = 1


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class CaptureSource(Protocol):
    """An open live capture handle."""

    def read(self) -> list[CapturedPacket]:
        """Return packets captured within one read timeout (may be empty)."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class CaptureBackend(Protocol):
    """Opens live captures on named interfaces."""

    def open(
        self,
        interface: str,
        *,
        snaplen: int,
        promiscuous: bool,
        read_timeout: float,
    ) -> CaptureSource: ...


# ---------------------------------------------------------------------------
# scapy implementation
# ---------------------------------------------------------------------------


def to_captured_packet(pkt: Any, snaplen: int) -> CapturedPacket:
    """Convert a scapy packet, truncating its payload to *snaplen*."""
    raw = bytes(pkt)
    original_length = getattr(pkt, "wirelen", None) or len(raw)
    return CapturedPacket(
        timestamp=float(pkt.time),
        original_length=int(original_length),
        payload=raw[:snaplen],
    )


class ScapyCaptureSource:
    """Live capture on one interface through a persistent scapy L2 socket."""

    def __init__(
        self, interface: str, *, snaplen: int, promiscuous: bool, read_timeout: float
    ) -> None:
        self.interface = interface
        self._snaplen = snaplen
        self._read_timeout = read_timeout
        try:
            self._socket = conf.L2listen(iface=interface, promisc=promiscuous)
        except (OSError, Scapy_Exception) as exc:
            raise CaptureDeviceError(f"Cannot open capture on {interface}: {exc}") from exc

    def read(self) -> list[CapturedPacket]:
        try:
            packets = sniff(
                opened_socket=self._socket,
                timeout=self._read_timeout,
                store=True,
            )
        except (OSError, Scapy_Exception) as exc:
            raise CaptureDeviceError(f"Capture on {self.interface} failed: {exc}") from exc
        return [to_captured_packet(pkt, self._snaplen) for pkt in packets]

    def close(self) -> None:
        self._socket.close()


class ScapyCaptureBackend:
    """``CaptureBackend`` over scapy's native L2 sockets."""

    def open(
        self,
        interface: str,
        *,
        snaplen: int,
        promiscuous: bool,
        read_timeout: float,
    ) -> ScapyCaptureSource:
        if interface not in get_if_list():
            raise CaptureDeviceError(f"Capture interface {interface} does not exist")
        return ScapyCaptureSource(
            interface,
            snaplen=snaplen,
            promiscuous=promiscuous,
            read_timeout=read_timeout,
        )


# ---------------------------------------------------------------------------
# pcap output
# ---------------------------------------------------------------------------


class PcapFile:
    """Append-only classic pcap writer.

    Parameters
    ----------
    path:
        Output file.  Created (or truncated) on construction.
    snaplen:
        Snap length recorded in the global header.
    """

    def __init__(self, path: Path, snaplen: int) -> None:
        self.path = Path(path)
        self.packet_count = 0
        self._writer = RawPcapWriter(
            str(self.path), linktype=LINKTYPE_ETHERNET, snaplen=snaplen, sync=True
        )

    def write(self, packet: CapturedPacket) -> None:
        sec = int(packet.timestamp)
        usec = min(int((packet.timestamp - sec) * 1_000_000), 999_999)
        self._writer.write_packet(
            packet.payload,
            sec=sec,
            usec=usec,
            caplen=len(packet.payload),
            wirelen=packet.original_length,
        )
        self.packet_count += 1

    def close(self) -> None:
        # RawPcapWriter emits the global header on close when no packet was
        # ever written, so an idle capture still yields a valid pcap.
        self._writer.close()
