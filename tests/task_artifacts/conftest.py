"""Shared fixtures for TaskArtifacts tests.

Provides fake downloaders and process runners so cache orchestration can be
exercised without network access, plus helpers for writing stub tool scripts
that stand in for the fetch and archive executables.
"""

from __future__ import annotations

import os
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from TaskArtifacts.download import BaseDownloader
from TaskArtifacts.errors import CommandFailure
from TaskArtifacts.retries import RetryPolicy

FAST_RETRY = RetryPolicy(max_attempts=3, multiplier=0, max_wait_s=0.01)


class FakeDownloader(BaseDownloader):
    """Downloader writing canned payloads keyed by URL."""

    def __init__(
        self,
        payloads: Dict[str, bytes],
        *,
        failures: Optional[List[BaseException]] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(retry=retry or FAST_RETRY)
        self.payloads = payloads
        self.failures = list(failures or [])
        self.calls: List[tuple] = []

    def fetch_once(self, url: str, destination: Path, *, log_path: Path) -> None:
        self.calls.append((url, destination))
        if self.failures:
            raise self.failures.pop(0)
        destination.write_bytes(self.payloads[url])


class RecordingRunner:
    """Process runner double that records commands and replays exit codes."""

    def __init__(
        self,
        exit_codes: Sequence[int] = (),
        *,
        on_run: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        self.exit_codes = list(exit_codes)
        self.on_run = on_run
        self.commands: List[List[str]] = []
        self.output_paths: List[Path] = []
        self.interrupted = False

    def run(self, command, output_path, *, failure=CommandFailure) -> int:
        self.commands.append(list(command))
        self.output_paths.append(Path(output_path))
        if self.on_run is not None:
            self.on_run(list(command))
        exit_code = self.exit_codes.pop(0) if self.exit_codes else 0
        if exit_code != 0:
            raise failure(command, exit_code, output_path=output_path)
        return exit_code

    def interrupt(self) -> bool:
        self.interrupted = True
        return False


def write_tool(path: Path, body: str) -> Path:
    """Write an executable Python script standing in for an external tool."""

    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "cache"
    directory.mkdir()
    return directory


@pytest.fixture
def task_log(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "task-1.log"


@pytest.fixture
def fake_downloader_factory() -> Callable[..., FakeDownloader]:
    return FakeDownloader


@pytest.fixture
def recording_runner_factory() -> Callable[..., RecordingRunner]:
    return RecordingRunner


@pytest.fixture
def tool_factory(tmp_path: Path) -> Callable[[str, str], Path]:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> Path:
        return write_tool(bin_dir / name, body)

    return _make


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("TASKARTIFACTS_"):
            monkeypatch.delenv(key, raising=False)
