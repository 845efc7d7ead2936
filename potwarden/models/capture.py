"""Packet capture records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CapturedPacket(BaseModel):
    """One packet read from a capture source.

    ``payload`` may be shorter than ``original_length`` when the source
    truncated it to the snap length.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: float
    original_length: int
    payload: bytes
