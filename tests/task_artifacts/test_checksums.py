"""Tests for size and checksum validation helpers."""

from __future__ import annotations

import hashlib

import pytest

from TaskArtifacts.checksums import (
    check_checksum,
    check_size,
    checksum_matches,
    compute_checksum,
    file_size,
    normalize_algorithm,
    size_matches,
)
from TaskArtifacts.errors import ChecksumMismatch, FilesystemFailure, InvalidArtifactError, SizeMismatch
from TaskArtifacts.models import Artifact


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "payload.bin"
    path.write_bytes(b"hello artifact\n" * 1000)
    return path


def test_compute_checksum_streams_whole_file(payload_file):
    expected = hashlib.md5(payload_file.read_bytes()).hexdigest()
    assert compute_checksum(payload_file) == expected
    assert compute_checksum(payload_file, "sha256") == hashlib.sha256(
        payload_file.read_bytes()
    ).hexdigest()


def test_compute_checksum_of_empty_file(tmp_path):
    empty = tmp_path / "empty"
    empty.write_bytes(b"")
    assert compute_checksum(empty) == "d41d8cd98f00b204e9800998ecf8427e"


def test_absent_expectations_always_pass(payload_file):
    assert size_matches(None, payload_file)
    assert checksum_matches(None, payload_file)


def test_size_matches_compares_exact_size(payload_file):
    assert size_matches(15000, payload_file)
    assert not size_matches(14999, payload_file)


def test_checksum_matches_is_case_insensitive(payload_file):
    digest = hashlib.md5(payload_file.read_bytes()).hexdigest()
    assert checksum_matches(digest.upper(), payload_file)
    assert not checksum_matches("0" * 32, payload_file)


def test_check_size_reports_expected_and_actual(payload_file):
    artifact = Artifact(filename="payload.bin", size=10)
    with pytest.raises(SizeMismatch) as excinfo:
        check_size(artifact, payload_file)
    assert excinfo.value.expected == 10
    assert excinfo.value.actual == 15000
    assert excinfo.value.artifact is artifact
    assert excinfo.value.kind == "size"


def test_check_checksum_reports_algorithm(payload_file):
    artifact = Artifact(filename="payload.bin", checksum="f" * 32)
    with pytest.raises(ChecksumMismatch) as excinfo:
        check_checksum(artifact, payload_file)
    assert excinfo.value.algorithm == "md5"
    assert excinfo.value.expected == "f" * 32
    assert excinfo.value.actual == hashlib.md5(payload_file.read_bytes()).hexdigest()


def test_checks_pass_without_declarations(payload_file):
    artifact = Artifact(filename="payload.bin")
    check_size(artifact, payload_file)
    check_checksum(artifact, payload_file)


def test_missing_file_raises_filesystem_failure(tmp_path):
    with pytest.raises(FilesystemFailure) as excinfo:
        file_size(tmp_path / "missing")
    assert excinfo.value.operation == "stat"
    with pytest.raises(FilesystemFailure):
        compute_checksum(tmp_path / "missing")


def test_normalize_algorithm_rejects_unknown():
    assert normalize_algorithm(None) == "md5"
    assert normalize_algorithm(" SHA256 ") == "sha256"
    with pytest.raises(InvalidArtifactError):
        normalize_algorithm("crc32")
