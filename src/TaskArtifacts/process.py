# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.process",
#   "purpose": "Managed child process handle and synchronous command runner with deadlines",
#   "sections": [
#     {"id": "managedprocess", "name": "ManagedProcess", "anchor": "class-managedprocess", "kind": "class"},
#     {"id": "processrunner", "name": "ProcessRunner", "anchor": "class-processrunner", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Synchronous execution of external tools with merged output logging.

Responsibilities
----------------
- :class:`ManagedProcess` owns a single child process through an explicit
  lifecycle: create, :meth:`~ManagedProcess.start`, :meth:`~ManagedProcess.wait`
  or :meth:`~ManagedProcess.interrupt`, then :meth:`~ManagedProcess.release`.
  Both stdout and stderr are appended to one log file.
- :class:`ProcessRunner` runs a command to completion, classifies exit code 0
  as success and anything else as a :class:`~TaskArtifacts.errors.CommandFailure`
  (or the subclass requested by the caller), and exposes :meth:`interrupt` so a
  supervising thread can stop every in-flight child, including one that has
  not been spawned yet.

Design Notes
------------
- Failures to start or await a child surface as
  :class:`~TaskArtifacts.errors.ProcessLaunchFailure`, so callers only need to
  tell "ran but failed" apart from "could not run".
- A deadline terminates the child (SIGTERM), escalating to SIGKILL after the
  grace period.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, Optional, Sequence, Set, Tuple, Type, Union

from .errors import (
    CommandFailure,
    ProcessInterrupted,
    ProcessLaunchFailure,
    ProcessTimeout,
    format_command,
)

__all__ = ["ManagedProcess", "ProcessRunner", "ProcessFactory"]

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

_DEFAULT_GRACE_PERIOD = 5.0


class ManagedProcess:
    """Owned handle around one child process and its output sink."""

    def __init__(
        self,
        command: Sequence[str],
        output_path: PathLike,
        *,
        timeout: Optional[float] = None,
        grace_period: float = _DEFAULT_GRACE_PERIOD,
    ) -> None:
        if not command:
            raise ValueError("command must contain at least one argument")
        self.command: Tuple[str, ...] = tuple(str(part) for part in command)
        self.output_path = Path(output_path)
        self.timeout = timeout
        self.grace_period = grace_period
        self._proc: Optional[subprocess.Popen] = None
        self._output: Optional[IO[bytes]] = None
        self._interrupted = threading.Event()
        self._state_lock = threading.Lock()

    def __enter__(self) -> "ManagedProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> "ManagedProcess":
        """Launch the child with stdout and stderr appended to ``output_path``."""

        with self._state_lock:
            if self._proc is not None:
                raise RuntimeError(f"process already started: {format_command(self.command)}")
            if self._interrupted.is_set():
                raise ProcessInterrupted(self.command, "interrupted by supervisor before start")
            try:
                self.output_path.parent.mkdir(parents=True, exist_ok=True)
                self._output = self.output_path.open("ab")
                self._proc = subprocess.Popen(
                    list(self.command),
                    stdin=subprocess.DEVNULL,
                    stdout=self._output,
                    stderr=subprocess.STDOUT,
                )
            except OSError as exc:
                launch_error = exc
            else:
                launch_error = None
        if launch_error is not None:
            self.release()
            raise ProcessLaunchFailure(
                self.command, f"failed to start: {launch_error}", cause=launch_error
            ) from launch_error
        LOGGER.debug(
            "process-start pid=%s command=%s output=%s",
            self._proc.pid,
            format_command(self.command),
            self.output_path,
        )
        return self

    def wait(self) -> int:
        """Block until the child exits and return its exit code."""

        if self._proc is None:
            raise RuntimeError("process has not been started")
        try:
            exit_code = self._proc.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            LOGGER.warning(
                "process-timeout pid=%s timeout=%ss command=%s",
                self._proc.pid,
                self.timeout,
                format_command(self.command),
            )
            self._terminate()
            raise ProcessTimeout(self.command, float(self.timeout or 0)) from None
        except KeyboardInterrupt:
            self._terminate()
            raise
        except OSError as exc:
            raise ProcessLaunchFailure(
                self.command, f"failed while waiting: {exc}", cause=exc
            ) from exc
        if self._interrupted.is_set():
            raise ProcessInterrupted(self.command, "interrupted by supervisor")
        return exit_code

    def interrupt(self) -> bool:
        """Terminate the child, or stop it from ever starting.

        Returns ``False`` only when the child has already exited.
        """

        with self._state_lock:
            if self._proc is not None and self._proc.poll() is not None:
                return False
            self._interrupted.set()
            if self._proc is None:
                LOGGER.info("process-interrupt before start command=%s", format_command(self.command))
                return True
        LOGGER.info("process-interrupt pid=%s command=%s", self.pid, format_command(self.command))
        self._terminate()
        return True

    def release(self) -> None:
        """Stop the child if it is still alive and close the output sink."""

        try:
            if self.running:
                self._terminate()
        finally:
            if self._output is not None:
                self._output.close()
                self._output = None

    def _terminate(self) -> None:
        proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


ProcessFactory = Callable[..., ManagedProcess]


class ProcessRunner:
    """Run external commands synchronously.

    Each call to :meth:`run` blocks its caller; several threads may share one
    runner, and :meth:`interrupt` reaches every command in flight.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        grace_period: float = _DEFAULT_GRACE_PERIOD,
        process_factory: ProcessFactory = ManagedProcess,
    ) -> None:
        self.timeout = timeout
        self.grace_period = grace_period
        self._process_factory = process_factory
        self._guard = threading.Lock()
        self._active: Set[ManagedProcess] = set()

    def run(
        self,
        command: Sequence[str],
        output_path: PathLike,
        *,
        failure: Type[CommandFailure] = CommandFailure,
    ) -> int:
        """Run ``command`` to completion and return its exit code (always 0).

        Raises:
            CommandFailure: ``failure`` instance when the exit code is non-zero.
            ProcessLaunchFailure: When the command could not be started or awaited.
        """

        process = self._process_factory(
            command, output_path, timeout=self.timeout, grace_period=self.grace_period
        )
        with process:
            with self._guard:
                self._active.add(process)
            try:
                process.start()
                exit_code = process.wait()
            finally:
                with self._guard:
                    self._active.discard(process)
        if exit_code != 0:
            LOGGER.debug("process-exit code=%s command=%s", exit_code, format_command(command))
            raise failure(command, exit_code, output_path=output_path)
        return exit_code

    def interrupt(self) -> bool:
        """Terminate every command in flight; return ``True`` if any was reached."""

        with self._guard:
            processes = list(self._active)
        results = [process.interrupt() for process in processes]
        return any(results)
