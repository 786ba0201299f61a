# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.cache",
#   "purpose": "Resolve artifacts into validated cache entries with atomic promotion",
#   "sections": [
#     {"id": "artifactcache", "name": "ArtifactCache", "anchor": "class-artifactcache", "kind": "class"},
#     {"id": "fsync-directory", "name": "_fsync_directory", "anchor": "function-fsync-directory", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Artifact cache orchestrating download, verification, and promotion.

Responsibilities
----------------
- Map an artifact filename to its cache entry ``<cache_directory>/<filename>``.
- Decide whether an existing entry is still valid: it must exist and match
  every declared size and checksum. Validity is recomputed from the filesystem
  on every call; nothing is cached in memory.
- On a miss, download into a temporary file inside the cache directory,
  verify size then checksum, and atomically rename onto the final path. A
  failed download never reaches the final path and its temporary file is
  removed.
- Materialise embedded artifacts and unpack archives into task directories.

Design Notes
------------
- Population of one filename is serialised with a host-level file lock, and
  validity is re-checked once the lock is held, so executors sharing a cache
  directory download each artifact at most once.
- The cache directory is explicit configuration; there is no module-level
  singleton.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import ContextManager, Optional, Union

from .checksums import compute_checksum, file_size, normalize_algorithm
from .download import BaseDownloader, HttpxDownloader, WgetDownloader
from .errors import FilesystemFailure
from .extract import TarUnpacker, write_embedded
from .locks import cache_entry_lock
from .logging_utils import TaskLoggerAdapter
from .models import EmbeddedArtifact, ExternalArtifact
from .process import ProcessRunner
from .settings import ArtifactSettings

__all__ = ["ArtifactCache"]

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _fsync_directory(directory: Path) -> None:
    """Flush the directory entry of a promoted file.

    Runs after the rename, when a valid entry is already at its final path, so
    a failure here (some network filesystems reject directory fsync) is logged
    and never fails the fetch.
    """

    try:
        dir_fd = os.open(directory, os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except OSError as exc:
        LOGGER.warning(
            "Couldn't sync directory %s: %s", directory, exc, extra={"stage": "cache"}
        )


class ArtifactCache:
    """Resolve artifacts for one task against a shared cache directory."""

    def __init__(
        self,
        cache_directory: PathLike,
        *,
        log_path: PathLike,
        runner: Optional[ProcessRunner] = None,
        downloader: Optional[BaseDownloader] = None,
        unpacker: Optional[TarUnpacker] = None,
        checksum_algorithm: str = "md5",
        use_locks: bool = True,
        lock_timeout: Optional[float] = None,
        task_id: Optional[str] = None,
    ) -> None:
        self.cache_directory = Path(cache_directory)
        self.log_path = Path(log_path)
        self.runner = runner or ProcessRunner()
        self.downloader = downloader or WgetDownloader(self.runner)
        self.unpacker = unpacker or TarUnpacker(self.runner)
        self.checksum_algorithm = normalize_algorithm(checksum_algorithm)
        self.use_locks = use_locks
        self.lock_timeout = lock_timeout
        self.task_id = task_id
        self.log = TaskLoggerAdapter(LOGGER, task_id)

    @classmethod
    def from_settings(
        cls,
        settings: ArtifactSettings,
        *,
        task_id: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
    ) -> "ArtifactCache":
        """Build a cache wired to the tools and policies named in ``settings``."""

        runner = runner or ProcessRunner(
            timeout=settings.command_timeout_sec,
            grace_period=settings.termination_grace_sec,
        )
        retry = settings.retry_policy()
        downloader: BaseDownloader
        if settings.fetch_backend == "httpx":
            downloader = HttpxDownloader(timeout=settings.http_timeout_sec, retry=retry)
        else:
            downloader = WgetDownloader(runner, tool=settings.fetch_tool, retry=retry)
        return cls(
            settings.cache_directory,
            log_path=settings.task_log_path(task_id),
            runner=runner,
            downloader=downloader,
            unpacker=TarUnpacker(runner, tool=settings.archive_tool),
            checksum_algorithm=settings.checksum_algorithm,
            use_locks=settings.use_locks,
            lock_timeout=settings.lock_timeout_sec,
            task_id=task_id,
        )

    def __repr__(self) -> str:
        return (
            f"ArtifactCache(cache_directory={str(self.cache_directory)!r}, "
            f"log_path={str(self.log_path)!r}, task_id={self.task_id!r})"
        )

    def cached_path(self, filename: str) -> Path:
        return self.cache_directory / filename

    def is_cached(self, artifact: ExternalArtifact) -> bool:
        """Return ``True`` when the cache entry exists and matches every declaration."""

        path = self.cached_path(artifact.filename)
        if not path.is_file():
            self.log.debug("Cached %s did not exist", path, extra={"stage": "cache"})
            return False
        if artifact.size is not None:
            actual_size = file_size(path)
            if actual_size != artifact.size:
                self.log.debug(
                    "Cached %s (%s) did not match file size %s",
                    path,
                    actual_size,
                    artifact.size,
                    extra={"stage": "cache"},
                )
                return False
        if artifact.checksum is not None:
            digest = compute_checksum(path, self.checksum_algorithm)
            if digest != artifact.checksum:
                self.log.debug(
                    "Cached %s (%s) did not match %s %s",
                    path,
                    digest,
                    self.checksum_algorithm,
                    artifact.checksum,
                    extra={"stage": "cache"},
                )
                return False
        return True

    def fetch(self, artifact: ExternalArtifact) -> Path:
        """Return the path of a cache entry guaranteed to match ``artifact``."""

        path = self.cached_path(artifact.filename)
        if self.is_cached(artifact):
            self.log.info("Using cached file %s", path.resolve(), extra={"stage": "cache"})
            return path

        with self._entry_lock(artifact.filename):
            if self.is_cached(artifact):
                self.log.info(
                    "Using cached file %s populated concurrently",
                    path.resolve(),
                    extra={"stage": "cache"},
                )
                return path
            self._download_and_cache(artifact, path)
        return path

    def extract(self, artifact: EmbeddedArtifact, directory: PathLike) -> Path:
        """Write an embedded artifact into ``directory`` without overwriting."""

        return write_embedded(artifact, directory, algorithm=self.checksum_algorithm)

    def untar(self, source: PathLike, destination: PathLike) -> None:
        """Unpack the archive ``source`` into ``destination``."""

        self.unpacker.untar(source, destination, log_path=self.log_path, task_id=self.task_id)

    def interrupt(self) -> bool:
        """Terminate any external tool currently running for this cache."""

        return self.runner.interrupt()

    def _entry_lock(self, filename: str) -> ContextManager[object]:
        if not self.use_locks:
            return contextlib.nullcontext()
        return cache_entry_lock(self.cache_directory, filename, timeout=self.lock_timeout)

    def _ensure_cache_directory(self) -> None:
        try:
            self.cache_directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemFailure(
                f"Couldn't create cache directory {self.cache_directory}",
                operation="mkdir",
                path=self.cache_directory,
                cause=exc,
            ) from exc

    def _create_temp_path(self, filename: str) -> Path:
        try:
            fd, temp_name = tempfile.mkstemp(
                dir=self.cache_directory, prefix=f".{filename}.", suffix=".part"
            )
            os.close(fd)
        except OSError as exc:
            raise FilesystemFailure(
                f"Couldn't create temporary file for {filename}",
                operation="create",
                path=self.cache_directory,
                cause=exc,
            ) from exc
        return Path(temp_name)

    def _download_and_cache(self, artifact: ExternalArtifact, cached_path: Path) -> None:
        self._ensure_cache_directory()
        temp_path = self._create_temp_path(artifact.filename)
        try:
            self.downloader.download_and_check(
                artifact,
                temp_path,
                log_path=self.log_path,
                algorithm=self.checksum_algorithm,
            )
            try:
                os.replace(temp_path, cached_path)
            except OSError as exc:
                raise FilesystemFailure(
                    f"Couldn't move {temp_path} to {cached_path}",
                    operation="rename",
                    path=cached_path,
                    cause=exc,
                ) from exc
        except BaseException:
            self._discard(temp_path)
            raise
        _fsync_directory(self.cache_directory)
        self.log.info(
            "Cached %s at %s",
            artifact.display_name,
            cached_path,
            extra={"stage": "cache", "artifact": artifact.filename},
        )

    def _discard(self, temp_path: Path) -> None:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as exc:
            self.log.warning(
                "Couldn't remove temporary download %s: %s",
                temp_path,
                exc,
                extra={"stage": "cache"},
            )
