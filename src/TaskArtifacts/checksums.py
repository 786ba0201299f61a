# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.checksums",
#   "purpose": "Streaming checksum computation and size/checksum validation helpers",
#   "sections": [
#     {"id": "normalize-algorithm", "name": "normalize_algorithm", "anchor": "function-normalize-algorithm", "kind": "function"},
#     {"id": "compute-checksum", "name": "compute_checksum", "anchor": "function-compute-checksum", "kind": "function"},
#     {"id": "size-matches", "name": "size_matches", "anchor": "function-size-matches", "kind": "function"},
#     {"id": "checksum-matches", "name": "checksum_matches", "anchor": "function-checksum-matches", "kind": "function"},
#     {"id": "check-size", "name": "check_size", "anchor": "function-check-size", "kind": "function"},
#     {"id": "check-checksum", "name": "check_checksum", "anchor": "function-check-checksum", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Checksum computation and size/checksum verification helpers.

Artifacts may declare an expected size and an expected hex digest. Either
declaration may be absent, in which case that specific check passes. Digests
are always computed by streaming the whole file, including on warm cache hits;
only an already-failed size check short-circuits the checksum computation.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Union

from .errors import ChecksumMismatch, FilesystemFailure, InvalidArtifactError, SizeMismatch
from .models import Artifact

__all__ = [
    "SUPPORTED_ALGORITHMS",
    "normalize_algorithm",
    "file_size",
    "compute_checksum",
    "size_matches",
    "checksum_matches",
    "check_size",
    "check_checksum",
]

SUPPORTED_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")
_CHECKSUM_CHUNK_SIZE = 1 << 20

PathLike = Union[str, Path]


def normalize_algorithm(algorithm: Optional[str]) -> str:
    """Return the canonical lowercase algorithm name, defaulting to md5."""

    candidate = (algorithm or "md5").strip().lower()
    if candidate not in SUPPORTED_ALGORITHMS:
        raise InvalidArtifactError(f"unsupported checksum algorithm '{candidate}'")
    return candidate


def file_size(path: PathLike) -> int:
    """Return the size of ``path`` in bytes."""

    try:
        return Path(path).stat().st_size
    except OSError as exc:
        raise FilesystemFailure(
            f"Couldn't get file size of {path}", operation="stat", path=path, cause=exc
        ) from exc


def compute_checksum(path: PathLike, algorithm: str = "md5") -> str:
    """Stream ``path`` through ``algorithm`` and return the hex digest."""

    hasher = hashlib.new(normalize_algorithm(algorithm))
    try:
        with Path(path).open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHECKSUM_CHUNK_SIZE), b""):
                hasher.update(chunk)
    except OSError as exc:
        raise FilesystemFailure(
            f"Couldn't read {path} to compute {algorithm}",
            operation="read",
            path=path,
            cause=exc,
        ) from exc
    return hasher.hexdigest()


def size_matches(expected: Optional[int], path: PathLike) -> bool:
    """Return ``True`` when no size is declared or ``path`` has exactly that size."""

    return expected is None or file_size(path) == expected


def checksum_matches(expected: Optional[str], path: PathLike, algorithm: str = "md5") -> bool:
    """Return ``True`` when no checksum is declared or the digest of ``path`` matches."""

    if expected is None:
        return True
    return compute_checksum(path, algorithm) == expected.strip().lower()


def check_size(artifact: Artifact, path: PathLike) -> None:
    """Raise :class:`SizeMismatch` when ``path`` disagrees with the declared size."""

    if artifact.size is None:
        return
    actual = file_size(path)
    if actual != artifact.size:
        raise SizeMismatch(
            f"Filesize {actual} ({path}) does not match expected ({artifact.size})",
            artifact=artifact,
            path=path,
            expected=artifact.size,
            actual=actual,
        )


def check_checksum(artifact: Artifact, path: PathLike, algorithm: str = "md5") -> None:
    """Raise :class:`ChecksumMismatch` when ``path`` disagrees with the declared checksum."""

    if artifact.checksum is None:
        return
    algorithm = normalize_algorithm(algorithm)
    actual = compute_checksum(path, algorithm)
    if actual != artifact.checksum:
        raise ChecksumMismatch(
            f"{algorithm} {actual} ({path}) does not match expected ({artifact.checksum})",
            algorithm=algorithm,
            artifact=artifact,
            path=path,
            expected=artifact.checksum,
            actual=actual,
        )
