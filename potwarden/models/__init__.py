"""potwarden data models: all Pydantic v2, all frozen (immutable)."""

from potwarden.models.capture import CapturedPacket
from potwarden.models.pots import (
    ContainerRef,
    ContainerSpec,
    DiffEntry,
    EndpointConfig,
    ManagedPotEntry,
    PortBinding,
    Pot,
    PotNetwork,
    ProcessSnapshot,
)
from potwarden.models.rotation import (
    ROTATION_ORDER,
    VALID_TRANSITIONS,
    RotationMarker,
    RotationResult,
    RotationState,
)

__all__ = [
    # pots
    "ContainerRef",
    "ContainerSpec",
    "DiffEntry",
    "EndpointConfig",
    "ManagedPotEntry",
    "PortBinding",
    "Pot",
    "PotNetwork",
    "ProcessSnapshot",
    # capture
    "CapturedPacket",
    # rotation
    "RotationState",
    "VALID_TRANSITIONS",
    "ROTATION_ORDER",
    "RotationMarker",
    "RotationResult",
]
