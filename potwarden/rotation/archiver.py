"""Archiver: packs a pot's artifact directory into a verified tarball.

The archive is ``<root>/<pot>_<unix-seconds>.tar.gz`` with every member
stored as ``<pot>/<file>``.  It is written to a ``.part`` file and renamed
into place, then re-read and every member re-hashed against the manifest.
A mismatch deletes the archive and raises ``ArchiveIntegrityError``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import time
from collections.abc import Callable
from pathlib import Path

from potwarden.core.hasher import MANIFEST_NAME, sha256_stream
from potwarden.errors import ArchiveIntegrityError

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


def archive_path_for(root: Path, pot_name: str, now: float) -> Path:
    """First free ``<pot>_<ts>.tar.gz`` path under *root*."""
    stamp = int(now)
    path = Path(root) / f"{pot_name}_{stamp}{ARCHIVE_SUFFIX}"
    counter = 1
    while path.exists():
        path = Path(root) / f"{pot_name}_{stamp}_{counter}{ARCHIVE_SUFFIX}"
        counter += 1
    return path


class Archiver:
    """Creates and verifies pot archives.

    Parameters
    ----------
    clock:
        Returns the current unix time; names the archive.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def archive(self, directory: Path, manifest: dict[str, str]) -> Path:
        """Pack *directory* next to itself and verify it against *manifest*."""
        directory = Path(directory)
        pot_name = directory.name
        target = archive_path_for(directory.parent, pot_name, self._clock())
        part = target.with_name(target.name + ".part")

        # Only what the manifest fingerprinted, plus the manifest itself.
        members = sorted(manifest) + [MANIFEST_NAME]
        try:
            with tarfile.open(part, "w:gz") as tar:
                for name in members:
                    tar.add(directory / name, arcname=f"{pot_name}/{name}", recursive=False)
            os.replace(part, target)
        except (OSError, tarfile.TarError):
            part.unlink(missing_ok=True)
            raise

        try:
            self.verify(target, pot_name, manifest)
        except ArchiveIntegrityError:
            target.unlink(missing_ok=True)
            raise

        logger.info("Archived %s to %s", directory, target)
        return target

    @staticmethod
    def verify(archive: Path, pot_name: str, manifest: dict[str, str]) -> None:
        """Re-hash every archived artifact and compare it with *manifest*."""
        seen: set[str] = set()
        try:
            with tarfile.open(archive, "r:gz") as tar:
                for member in tar:
                    if not member.isfile():
                        continue
                    prefix, _, name = member.name.partition("/")
                    if prefix != pot_name or not name:
                        raise ArchiveIntegrityError(
                            f"Unexpected member {member.name!r} in {archive}"
                        )
                    if name == MANIFEST_NAME:
                        seen.add(name)
                        continue
                    expected = manifest.get(name)
                    if expected is None:
                        raise ArchiveIntegrityError(
                            f"{archive}: member {name!r} is not in the manifest"
                        )
                    fh = tar.extractfile(member)
                    if fh is None or sha256_stream(fh) != expected:
                        raise ArchiveIntegrityError(
                            f"{archive}: member {name!r} does not match its manifest hash"
                        )
                    seen.add(name)
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveIntegrityError(f"Cannot read archive {archive}: {exc}") from exc

        missing = sorted(set(manifest) - seen)
        if missing:
            raise ArchiveIntegrityError(f"{archive}: missing member(s) {missing}")

    @staticmethod
    def remove_working_directory(directory: Path) -> None:
        shutil.rmtree(directory)
        logger.info("Removed working directory %s", directory)
