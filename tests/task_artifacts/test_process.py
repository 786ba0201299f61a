"""Tests for the managed process handle and synchronous command runner."""

from __future__ import annotations

import sys
import threading
import time

import pytest

from TaskArtifacts.errors import (
    CommandFailure,
    DownloadFailure,
    ProcessInterrupted,
    ProcessLaunchFailure,
    ProcessTimeout,
)
from TaskArtifacts.process import ManagedProcess, ProcessRunner


def _python(code: str) -> list:
    return [sys.executable, "-c", code]


def test_zero_exit_returns_and_merges_output(tmp_path):
    log = tmp_path / "logs" / "task.log"
    runner = ProcessRunner()
    command = _python("import sys; print('to-stdout'); print('to-stderr', file=sys.stderr)")

    assert runner.run(command, log) == 0

    content = log.read_text()
    assert "to-stdout" in content
    assert "to-stderr" in content


def test_non_zero_exit_raises_with_command_and_code(tmp_path):
    log = tmp_path / "task.log"
    command = _python("import sys; sys.exit(3)")

    with pytest.raises(CommandFailure) as excinfo:
        ProcessRunner().run(command, log)

    assert excinfo.value.exit_code == 3
    assert excinfo.value.command == tuple(command)
    assert excinfo.value.output_path == log
    assert "exit code 3" in str(excinfo.value)


def test_failure_class_is_selected_by_caller(tmp_path):
    with pytest.raises(DownloadFailure) as excinfo:
        ProcessRunner().run(_python("raise SystemExit(8)"), tmp_path / "log", failure=DownloadFailure)
    assert excinfo.value.exit_code == 8


def test_output_is_appended_across_commands(tmp_path):
    log = tmp_path / "task.log"
    runner = ProcessRunner()
    runner.run(_python("print('first')"), log)
    runner.run(_python("print('second')"), log)
    assert log.read_text().splitlines() == ["first", "second"]


def test_missing_executable_is_launch_failure(tmp_path):
    command = [str(tmp_path / "no-such-tool"), "--version"]
    with pytest.raises(ProcessLaunchFailure) as excinfo:
        ProcessRunner().run(command, tmp_path / "log")
    assert isinstance(excinfo.value.cause, OSError)
    assert not isinstance(excinfo.value, CommandFailure)


def test_deadline_terminates_hung_command(tmp_path):
    runner = ProcessRunner(timeout=0.5, grace_period=1.0)
    started = time.monotonic()
    with pytest.raises(ProcessTimeout) as excinfo:
        runner.run(_python("import time; time.sleep(30)"), tmp_path / "log")
    assert time.monotonic() - started < 10
    assert excinfo.value.timeout == 0.5


def test_interrupt_stops_running_command(tmp_path):
    runner = ProcessRunner()
    errors = []

    def _target() -> None:
        try:
            runner.run(_python("import time; time.sleep(30)"), tmp_path / "log")
        except BaseException as exc:  # noqa: BLE001 - collected for assertion
            errors.append(exc)

    thread = threading.Thread(target=_target)
    thread.start()
    deadline = time.monotonic() + 10
    while not runner.interrupt():
        assert time.monotonic() < deadline, "command never started"
        time.sleep(0.05)
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], ProcessInterrupted)


def test_interrupt_without_running_command_is_noop():
    assert ProcessRunner().interrupt() is False


def test_managed_process_lifecycle(tmp_path):
    process = ManagedProcess(_python("print('ok')"), tmp_path / "log")
    with pytest.raises(RuntimeError):
        process.wait()
    with process:
        process.start()
        with pytest.raises(RuntimeError):
            process.start()
        assert process.wait() == 0
        assert process.pid is not None
    assert not process.running
    assert process.interrupt() is False


def test_managed_process_rejects_empty_command(tmp_path):
    with pytest.raises(ValueError):
        ManagedProcess([], tmp_path / "log")


def test_interrupt_before_spawn_prevents_launch(tmp_path):
    reached_start = []

    class _InterruptedOnStart(ManagedProcess):
        def start(self):
            reached_start.append(runner.interrupt())
            return super().start()

    runner = ProcessRunner(process_factory=_InterruptedOnStart)
    started = time.monotonic()
    with pytest.raises(ProcessInterrupted):
        runner.run(_python("import time; time.sleep(30)"), tmp_path / "log")

    assert reached_start == [True]
    assert time.monotonic() - started < 10
    assert not (tmp_path / "log").exists()


def test_interrupt_reaches_every_concurrent_command(tmp_path):
    processes = []

    def _factory(*args, **kwargs):
        process = ManagedProcess(*args, **kwargs)
        processes.append(process)
        return process

    runner = ProcessRunner(process_factory=_factory)
    errors = []

    def _target(index: int) -> None:
        try:
            runner.run(_python("import time; time.sleep(30)"), tmp_path / f"log-{index}")
        except BaseException as exc:  # noqa: BLE001 - collected for assertion
            errors.append(exc)

    threads = [threading.Thread(target=_target, args=(index,)) for index in range(2)]
    for thread in threads:
        thread.start()
    deadline = time.monotonic() + 10
    while len(processes) < 2 or not all(process.running for process in processes):
        assert time.monotonic() < deadline, "commands never started"
        time.sleep(0.05)

    assert runner.interrupt() is True
    for thread in threads:
        thread.join(timeout=10)

    assert not any(thread.is_alive() for thread in threads)
    assert len(errors) == 2
    assert all(isinstance(error, ProcessInterrupted) for error in errors)


def test_interrupt_before_start_is_remembered(tmp_path):
    process = ManagedProcess(_python("print('never')"), tmp_path / "log")
    assert process.interrupt() is True
    with pytest.raises(ProcessInterrupted):
        process.start()
    assert process.pid is None
