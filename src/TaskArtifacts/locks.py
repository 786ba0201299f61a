# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.locks",
#   "purpose": "Host-level per-filename locks guarding cache population",
#   "sections": [
#     {"id": "lock-path-for", "name": "lock_path_for", "anchor": "function-lock-path-for", "kind": "function"},
#     {"id": "cache-entry-lock", "name": "cache_entry_lock", "anchor": "function-cache-entry-lock", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""File-based locking for cache entries shared between executor processes.

Responsibilities
----------------
- Map a cache filename to a lock file under ``<cache_directory>/.locks`` so
  every executor sharing the directory contends on the same lock.
- Serialise download-and-promote sequences for one filename across threads
  and processes, eliminating duplicate downloads.

Design Notes
------------
- Locks are implemented with :mod:`filelock` and default to hard locks; set
  ``TASKARTIFACTS_LOCK_USE_SOFT`` to opt into soft locks on filesystems
  without ``fcntl`` support.
- Acquisition timeouts surface as :class:`~TaskArtifacts.errors.CacheLockTimeout`.
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from pathlib import Path
from typing import Iterator, Optional, Union

from filelock import FileLock, SoftFileLock, Timeout

from .errors import CacheLockTimeout, FilesystemFailure

__all__ = ["LOCK_DIR_NAME", "lock_path_for", "cache_entry_lock"]

LOGGER = logging.getLogger(__name__)
logging.getLogger("filelock").setLevel(logging.INFO)

LOCK_DIR_NAME = ".locks"
_SOFT_LOCK_ENV = "TASKARTIFACTS_LOCK_USE_SOFT"
_DEFAULT_TIMEOUT = 300.0
_DEFAULT_POLL_INTERVAL = 0.1  # seconds
_DEFAULT_LOCK_MODE = 0o664

PathLike = Union[str, Path]


def _select_lock_class():
    return SoftFileLock if os.getenv(_SOFT_LOCK_ENV) else FileLock


def lock_path_for(cache_directory: PathLike, filename: str) -> Path:
    """Return the lock file guarding ``filename`` inside ``cache_directory``."""

    return Path(cache_directory) / LOCK_DIR_NAME / f"{filename}.lock"


@contextlib.contextmanager
def cache_entry_lock(
    cache_directory: PathLike,
    filename: str,
    *,
    timeout: Optional[float] = None,
    poll_interval: float = _DEFAULT_POLL_INTERVAL,
) -> Iterator[Path]:
    """Hold the lock for ``filename`` for the duration of the ``with`` block."""

    lock_file = lock_path_for(cache_directory, filename)
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemFailure(
            f"Couldn't create lock directory {lock_file.parent}",
            operation="lock",
            path=lock_file.parent,
            cause=exc,
        ) from exc

    lock_timeout = _DEFAULT_TIMEOUT if timeout is None else float(timeout)
    lock = _select_lock_class()(
        str(lock_file),
        timeout=lock_timeout,
        mode=_DEFAULT_LOCK_MODE,
        thread_local=False,
    )
    start = time.monotonic()
    try:
        lock.acquire(timeout=lock_timeout, poll_interval=poll_interval)
    except Timeout as exc:
        wait_ms = max((time.monotonic() - start) * 1000.0, 0.0)
        LOGGER.info(
            "lock-timeout wait_ms=%.3f lock_file=%s filename=%s", wait_ms, lock_file, filename
        )
        raise CacheLockTimeout(
            f"Timed out after {lock_timeout:g}s waiting for cache lock on {filename}",
            operation="lock",
            path=lock_file,
            cause=exc,
        ) from exc

    acquired_at = time.monotonic()
    LOGGER.debug(
        "lock-acquired wait_ms=%.3f lock_file=%s filename=%s",
        max((acquired_at - start) * 1000.0, 0.0),
        lock_file,
        filename,
    )
    try:
        yield lock_file
    finally:
        lock.release()
        LOGGER.debug(
            "lock-release hold_ms=%.3f filename=%s",
            max((time.monotonic() - acquired_at) * 1000.0, 0.0),
            filename,
        )
