"""TaskArtifacts: verified artifact resolution for task executors.

Resolves declared task dependencies (remote files or embedded byte blobs) into
validated local files before a workload launches, and unpacks archives into
task directories.
"""

from __future__ import annotations

from .cache import ArtifactCache
from .errors import (
    ArtifactError,
    ArtifactExistsError,
    CacheLockTimeout,
    ChecksumMismatch,
    CommandFailure,
    DownloadFailure,
    ExtractionFailure,
    FilesystemFailure,
    IntegrityMismatch,
    InvalidArtifactError,
    ProcessInterrupted,
    ProcessLaunchFailure,
    ProcessTimeout,
    SizeMismatch,
)
from .models import Artifact, EmbeddedArtifact, ExternalArtifact, parse_artifact
from .process import ManagedProcess, ProcessRunner
from .settings import ArtifactSettings, load_settings

__all__ = [
    "Artifact",
    "ArtifactCache",
    "ArtifactError",
    "ArtifactExistsError",
    "ArtifactSettings",
    "CacheLockTimeout",
    "ChecksumMismatch",
    "CommandFailure",
    "DownloadFailure",
    "EmbeddedArtifact",
    "ExternalArtifact",
    "ExtractionFailure",
    "FilesystemFailure",
    "IntegrityMismatch",
    "InvalidArtifactError",
    "ManagedProcess",
    "ProcessInterrupted",
    "ProcessLaunchFailure",
    "ProcessRunner",
    "ProcessTimeout",
    "SizeMismatch",
    "load_settings",
    "parse_artifact",
]

__version__ = "0.1.0"
