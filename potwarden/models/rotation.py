"""Rotation state machine models: one forensic cycle of one pot."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RotationState(str, Enum):
    """Where a pot is within a rotation cycle."""

    RUNNING_DIRTY = "running_dirty"
    COLLECTING_ARTIFACTS = "collecting_artifacts"
    CAPTURE_STOPPED = "capture_stopped"
    HASHED = "hashed"
    ARCHIVED = "archived"
    REPLACED = "replaced"
    CAPTURE_RESUMED = "capture_resumed"
    RUNNING_CLEAN = "running_clean"


# Strictly linear: no state may be skipped or revisited within a cycle.
# RUNNING_CLEAN is terminal for the cycle; the next cycle begins again at
# RUNNING_DIRTY.
VALID_TRANSITIONS: dict[RotationState, set[RotationState]] = {
    RotationState.RUNNING_DIRTY: {RotationState.COLLECTING_ARTIFACTS},
    RotationState.COLLECTING_ARTIFACTS: {RotationState.CAPTURE_STOPPED},
    RotationState.CAPTURE_STOPPED: {RotationState.HASHED},
    RotationState.HASHED: {RotationState.ARCHIVED},
    RotationState.ARCHIVED: {RotationState.REPLACED},
    RotationState.REPLACED: {RotationState.CAPTURE_RESUMED},
    RotationState.CAPTURE_RESUMED: {RotationState.RUNNING_CLEAN},
    RotationState.RUNNING_CLEAN: set(),
}

ROTATION_ORDER: list[RotationState] = list(RotationState)


class RotationMarker(BaseModel):
    """Persistent record of an in-flight rotation.

    Written at every transition; deleted when the cycle reaches
    RUNNING_CLEAN.  A marker that outlives its rotation means the pot was
    left mid-cycle: ``error`` is set for a reported failure and empty for a
    crash.
    """

    model_config = ConfigDict(frozen=True)

    pot_name: str
    container_id: str
    state: RotationState = RotationState.RUNNING_DIRTY
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    error: str = ""
    archive_path: str = ""

    @property
    def capture_stopped(self) -> bool:
        """Whether the stop signal was sent before the rotation halted."""
        return ROTATION_ORDER.index(self.state) >= ROTATION_ORDER.index(
            RotationState.CAPTURE_STOPPED
        )


class RotationResult(BaseModel):
    """Outcome of one container's rotation pipeline."""

    model_config = ConfigDict(frozen=True)

    pot_name: str
    container_id: str
    success: bool
    final_state: RotationState
    failed_step: str = ""
    error: str = ""
    archive_path: str = ""
    new_container_id: str = ""
