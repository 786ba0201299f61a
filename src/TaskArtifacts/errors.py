# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.errors",
#   "purpose": "Exception hierarchy for artifact validation, download, extraction, and process execution",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "integrity", "name": "Integrity Errors", "anchor": "INT", "kind": "api"},
#     {"id": "commands", "name": "Command & Process Errors", "anchor": "CMD", "kind": "api"},
#     {"id": "filesystem", "name": "Filesystem Errors", "anchor": "FS", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across artifact validation, download, and extraction.

Artifact resolution spans descriptor parsing, external tool invocation, content
verification, and filesystem promotion. This module groups those failure modes
into a small hierarchy so the task executor can separate integrity problems
(the bytes are wrong) from tool-invocation problems (the tool ran and failed,
or could not be run at all) while still receiving the command line, exit code,
and expected versus actual values needed to diagnose the cause.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence, Tuple, Union

if TYPE_CHECKING:  # pragma: no cover
    from .models import Artifact

__all__ = [
    "ArtifactError",
    "InvalidArtifactError",
    "IntegrityMismatch",
    "SizeMismatch",
    "ChecksumMismatch",
    "CommandFailure",
    "DownloadFailure",
    "ExtractionFailure",
    "ProcessLaunchFailure",
    "ProcessTimeout",
    "ProcessInterrupted",
    "FilesystemFailure",
    "ArtifactExistsError",
    "CacheLockTimeout",
    "format_command",
]

PathLike = Union[str, Path]


def format_command(command: Sequence[str]) -> str:
    """Render ``command`` as a single readable string for error messages."""

    return " ".join(str(part) for part in command)


class ArtifactError(RuntimeError):
    """Base exception for artifact resolution failures."""


class InvalidArtifactError(ArtifactError):
    """Raised when an artifact descriptor is malformed."""


class IntegrityMismatch(ArtifactError):
    """Raised when a file disagrees with a declared size or checksum."""

    kind = "integrity"

    def __init__(
        self,
        message: str,
        *,
        artifact: Optional["Artifact"] = None,
        path: Optional[PathLike] = None,
        expected: object = None,
        actual: object = None,
    ) -> None:
        super().__init__(message)
        self.artifact = artifact
        self.path = Path(path) if path is not None else None
        self.expected = expected
        self.actual = actual


class SizeMismatch(IntegrityMismatch):
    """Raised when a file size does not match the declared size."""

    kind = "size"


class ChecksumMismatch(IntegrityMismatch):
    """Raised when a file digest does not match the declared checksum."""

    kind = "checksum"

    def __init__(self, message: str, *, algorithm: str = "md5", **kwargs: object) -> None:
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
        self.algorithm = algorithm


class CommandFailure(ArtifactError):
    """Raised when an external command ran to completion with a non-zero exit code."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        *,
        output_path: Optional[PathLike] = None,
        message: Optional[str] = None,
    ) -> None:
        self.command: Tuple[str, ...] = tuple(str(part) for part in command)
        self.exit_code = exit_code
        self.output_path = Path(output_path) if output_path is not None else None
        if message is None:
            message = f"Got exit code {exit_code} while running command {format_command(command)}"
        super().__init__(message)


class DownloadFailure(CommandFailure):
    """Raised when retrieving an artifact fails."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        *,
        output_path: Optional[PathLike] = None,
        message: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(command, exit_code, output_path=output_path, message=message)
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


class ExtractionFailure(CommandFailure):
    """Raised when the archive tool exits with a non-zero status."""


class ProcessLaunchFailure(ArtifactError):
    """Raised when an external command could not be started or awaited."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"While running {format_command(command)}: {message}")
        self.command: Tuple[str, ...] = tuple(str(part) for part in command)
        self.cause = cause


class ProcessTimeout(ProcessLaunchFailure):
    """Raised when a command exceeds its deadline and is forcibly terminated."""

    def __init__(self, command: Sequence[str], timeout: float) -> None:
        super().__init__(command, f"exceeded deadline of {timeout:g}s and was terminated")
        self.timeout = timeout


class ProcessInterrupted(ProcessLaunchFailure):
    """Raised when a running command is interrupted by its supervisor."""


class FilesystemFailure(ArtifactError):
    """Raised when a create, rename, stat, or lock operation fails at the OS level."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        path: Optional[PathLike] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = Path(path) if path is not None else None
        self.cause = cause


class ArtifactExistsError(FilesystemFailure):
    """Raised when an embedded artifact would overwrite an existing file."""


class CacheLockTimeout(FilesystemFailure):
    """Raised when the per-filename cache lock cannot be acquired in time."""
