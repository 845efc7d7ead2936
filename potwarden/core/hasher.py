"""Content hashing and the artifact manifest (``hash.json``).

The manifest is a flat ``filename -> sha256 hex`` mapping over every
regular file in a pot's artifact directory.  It is written last, after
every other artifact is final, so it never lists a half-written file.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import IO

from potwarden.errors import ManifestError

MANIFEST_NAME = "hash.json"

_CHUNK_SIZE = 1024 * 1024


def sha256_stream(stream: IO[bytes]) -> str:
    """SHA-256 hex digest of a binary stream, read in chunks."""
    digest = hashlib.sha256()
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        digest.update(chunk)
    return digest.hexdigest()


def sha256_file(path: Path) -> str:
    """SHA-256 hex digest of a file's contents.

    Files are streamed; ``dump.tar`` is a full filesystem export and can be
    far larger than memory.
    """
    with open(path, "rb") as fh:
        return sha256_stream(fh)


def compute_manifest(directory: Path) -> dict[str, str]:
    """Hash every regular file directly inside *directory*.

    Any existing ``hash.json`` is excluded; symlinks and subdirectories are
    not artifacts and are skipped.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ManifestError(f"Artifact directory not found: {directory}")

    manifest: dict[str, str] = {}
    for path in sorted(directory.iterdir()):
        if path.name == MANIFEST_NAME or path.is_symlink() or not path.is_file():
            continue
        manifest[path.name] = sha256_file(path)
    return manifest


def write_manifest(directory: Path) -> dict[str, str]:
    """Compute the manifest for *directory* and write it as ``hash.json``.

    Returns the manifest that was written.
    """
    manifest = compute_manifest(directory)
    target = Path(directory) / MANIFEST_NAME
    try:
        target.write_text(json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot write manifest {target}: {exc}") from exc
    return manifest
