"""Artifact Collector: pulls forensic evidence out of one container.

Artifacts land in the pot's working directory under fixed names:

    container.log    combined stdout/stderr
    container.diff   one ``<kind> <path>`` line per filesystem change
    container.top    process snapshot (optional)
    dump.tar         export of the container committed to an image
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from potwarden.bridge.docker_bridge import ContainerBackend
from potwarden.core.hasher import MANIFEST_NAME
from potwarden.errors import PotwardenError
from potwarden.models.pots import ContainerRef

logger = logging.getLogger(__name__)

LOG_FILE = "container.log"
DIFF_FILE = "container.diff"
TOP_FILE = "container.top"
DUMP_FILE = "dump.tar"
CONTAINER_ARTIFACTS = (LOG_FILE, DIFF_FILE, TOP_FILE, DUMP_FILE, MANIFEST_NAME)


def _write_stream(path: Path, chunks: Iterable[bytes]) -> int:
    written = 0
    with open(path, "wb") as fh:
        for chunk in chunks:
            fh.write(chunk)
            written += len(chunk)
    return written


class ArtifactCollector:
    """Writes one container's artifacts into a directory.

    Parameters
    ----------
    backend:
        Container collaborator.
    collect_process_snapshot:
        Whether to write ``container.top``.
    """

    def __init__(
        self, backend: ContainerBackend, *, collect_process_snapshot: bool = True
    ) -> None:
        self._backend = backend
        self._collect_process_snapshot = collect_process_snapshot

    @staticmethod
    def clear(directory: Path) -> list[str]:
        """Remove container artifacts a failed earlier cycle left behind.

        Capture files belong to the pot, not to a container, and are kept.
        Returns the names removed.
        """
        removed = []
        for name in CONTAINER_ARTIFACTS:
            path = Path(directory) / name
            if path.is_file():
                path.unlink()
                removed.append(name)
        if removed:
            logger.info("Discarded stale artifact(s) in %s: %s", directory, ", ".join(removed))
        return removed

    def collect_logs(self, container: ContainerRef, directory: Path) -> Path:
        path = Path(directory) / LOG_FILE
        size = _write_stream(path, self._backend.stream_logs(container.id))
        logger.info("Collected %d bytes of logs from %s", size, container.short_id)
        return path

    def collect_diff(self, container: ContainerRef, directory: Path) -> Path:
        path = Path(directory) / DIFF_FILE
        entries = self._backend.diff(container.id)
        with open(path, "w", encoding="utf-8") as fh:
            for entry in entries:
                fh.write(entry.render() + "\n")
        logger.info("Collected %d filesystem change(s) from %s", len(entries), container.short_id)
        return path

    def collect_processes(self, container: ContainerRef, directory: Path) -> Path | None:
        """Write the process snapshot, or return ``None`` when unavailable.

        Without a snapshot no ``container.top`` is left in *directory*.
        """
        path = Path(directory) / TOP_FILE
        if not self._collect_process_snapshot:
            path.unlink(missing_ok=True)
            return None
        try:
            snapshot = self._backend.top(container.id)
        except PotwardenError as exc:
            logger.warning(
                "Process snapshot of %s unavailable, skipping: %s",
                container.short_id,
                exc,
            )
            path.unlink(missing_ok=True)
            return None
        path.write_text(snapshot.render(), encoding="utf-8")
        return path

    def collect_dump(self, container: ContainerRef, directory: Path) -> Path:
        path = Path(directory) / DUMP_FILE
        size = _write_stream(path, self._backend.export_container(container.id))
        logger.info("Dumped %s (%d bytes)", container.short_id, size)
        return path
