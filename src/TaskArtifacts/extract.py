"""Materialise embedded artifacts and unpack archives into task directories.

Embedded artifacts are written with create-only semantics so an existing file
is never overwritten; the checksum is then verified against the written file.
Archives are unpacked by an external tool invoked as
``<tool> -oxzf <archive> -C <directory>``. A failed extraction is not rolled
back, so its target directory must be treated as unreliable.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from .checksums import check_checksum
from .errors import ArtifactExistsError, ExtractionFailure, FilesystemFailure
from .models import EmbeddedArtifact
from .process import ProcessRunner

__all__ = ["write_embedded", "TarUnpacker"]

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def write_embedded(
    artifact: EmbeddedArtifact,
    directory: PathLike,
    *,
    algorithm: str = "md5",
) -> Path:
    """Write ``artifact`` to ``directory/filename`` and verify its checksum.

    Raises:
        ArtifactExistsError: The target already exists; it is left untouched.
        FilesystemFailure: The file could not be created or written.
        ChecksumMismatch: The written bytes disagree with the declared checksum.
    """

    target = Path(directory) / artifact.filename
    LOGGER.info(
        "Extracting %s to %s",
        artifact.display_name,
        target,
        extra={"stage": "extract", "artifact": artifact.filename},
    )
    try:
        with target.open("xb") as handle:
            handle.write(artifact.content)
    except FileExistsError as exc:
        raise ArtifactExistsError(
            f"Couldn't extract {artifact.display_name}: {target} already exists",
            operation="create",
            path=target,
            cause=exc,
        ) from exc
    except OSError as exc:
        raise FilesystemFailure(
            f"Couldn't extract {artifact.display_name} to {target}",
            operation="create",
            path=target,
            cause=exc,
        ) from exc

    check_checksum(artifact, target, algorithm)
    return target


class TarUnpacker:
    """Unpack gzip-compressed tarballs with an external archive tool."""

    def __init__(self, runner: ProcessRunner, *, tool: str = "tar") -> None:
        self.runner = runner
        self.tool = tool

    def build_command(self, source: Path, destination: Path) -> List[str]:
        return [self.tool, "-oxzf", str(source), "-C", str(destination)]

    def untar(
        self,
        source: PathLike,
        destination: PathLike,
        *,
        log_path: PathLike,
        task_id: Optional[str] = None,
    ) -> None:
        """Extract ``source`` into the existing directory ``destination``."""

        archive = Path(source)
        target = Path(destination)
        if not target.is_dir():
            raise FilesystemFailure(
                f"Couldn't untar {archive}: destination {target} is not a directory",
                operation="untar",
                path=target,
            )
        LOGGER.info(
            "Untarring %s to %s",
            archive,
            target,
            extra={"stage": "untar", "task_id": task_id},
        )
        self.runner.run(self.build_command(archive, target), log_path, failure=ExtractionFailure)
