"""Rotation state machine with persistent interrupted-rotation markers.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Every transition persisted to ``<markers_dir>/<pot>.json``
- A failed rotation keeps its marker, with the error recorded
- A completed rotation (RUNNING_CLEAN) deletes its marker

Markers left on disk after a crash or a failed cycle are how an operator
finds pots that were left dirty with capture stop-pending or stopped.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from potwarden.errors import InvalidRotationTransitionError
from potwarden.models.rotation import (
    VALID_TRANSITIONS,
    RotationMarker,
    RotationState,
)

logger = logging.getLogger(__name__)


class RotationTracker:
    """Tracks and persists the rotation state of every pot.

    Parameters
    ----------
    markers_dir:
        Directory holding one JSON marker per in-flight rotation.
    """

    def __init__(self, markers_dir: Path) -> None:
        self._dir = Path(markers_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._markers: dict[str, RotationMarker] = {}
        self._lock = threading.Lock()

    def _marker_path(self, pot_name: str) -> Path:
        return self._dir / f"{pot_name}.json"

    def _persist(self, marker: RotationMarker) -> None:
        path = self._marker_path(marker.pot_name)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(marker.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(self, pot_name: str, container_id: str) -> RotationMarker:
        """Open a new rotation cycle for *pot_name* at RUNNING_DIRTY.

        A leftover marker from an earlier, interrupted cycle is replaced;
        the new cycle re-collects everything from scratch.
        """
        previous = self.get(pot_name)
        if previous is not None:
            logger.warning(
                "Pot %s has an interrupted rotation (state=%s, error=%s); "
                "starting a new cycle over it",
                pot_name,
                previous.state.value,
                previous.error or "none recorded",
            )

        marker = RotationMarker(pot_name=pot_name, container_id=container_id)
        with self._lock:
            self._markers[pot_name] = marker
            self._persist(marker)
        return marker

    def transition(
        self,
        pot_name: str,
        target_state: RotationState,
        *,
        archive_path: str | None = None,
    ) -> RotationMarker:
        """Advance *pot_name* to *target_state*, validating the transition."""
        with self._lock:
            current = self._markers.get(pot_name)
            if current is None:
                raise InvalidRotationTransitionError(
                    f"No rotation in progress for pot {pot_name!r}"
                )

            allowed = VALID_TRANSITIONS.get(current.state, set())
            if target_state not in allowed:
                raise InvalidRotationTransitionError(
                    f"Cannot transition pot {pot_name} from {current.state.value} "
                    f"to {target_state.value}. "
                    f"Allowed: {[s.value for s in allowed]}"
                )

            update: dict[str, object] = {
                "state": target_state,
                "updated_at": datetime.now(timezone.utc),
            }
            if archive_path is not None:
                update["archive_path"] = archive_path
            marker = current.model_copy(update=update)
            self._markers[pot_name] = marker

            if target_state == RotationState.RUNNING_CLEAN:
                del self._markers[pot_name]
                self._marker_path(pot_name).unlink(missing_ok=True)
            else:
                self._persist(marker)
        return marker

    def fail(self, pot_name: str, error: str) -> RotationMarker | None:
        """Record *error* against the in-flight rotation and keep its marker."""
        with self._lock:
            current = self._markers.get(pot_name)
            if current is None:
                return None
            marker = current.model_copy(
                update={"error": error, "updated_at": datetime.now(timezone.utc)}
            )
            # Failed cycles are no longer in flight but stay on disk.
            del self._markers[pot_name]
            self._persist(marker)
        return marker

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, pot_name: str) -> RotationMarker | None:
        """Return the in-flight marker, or the one left on disk."""
        with self._lock:
            marker = self._markers.get(pot_name)
        if marker is not None:
            return marker
        return self._load(self._marker_path(pot_name))

    def current_state(self, pot_name: str) -> RotationState:
        marker = self.get(pot_name)
        return marker.state if marker is not None else RotationState.RUNNING_DIRTY

    def in_flight(self) -> list[str]:
        with self._lock:
            return sorted(self._markers)

    def interrupted(self) -> list[RotationMarker]:
        """Markers on disk that no running cycle owns."""
        with self._lock:
            active = set(self._markers)
        markers = []
        for path in sorted(self._dir.glob("*.json")):
            marker = self._load(path)
            if marker is not None and marker.pot_name not in active:
                markers.append(marker)
        return markers

    @staticmethod
    def _load(path: Path) -> RotationMarker | None:
        if not path.exists():
            return None
        try:
            return RotationMarker.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.error("Unreadable rotation marker %s: %s", path, exc)
            return None
