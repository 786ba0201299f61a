"""Tests for artifact descriptors and descriptor parsing."""

from __future__ import annotations

import base64

import pytest

from TaskArtifacts.errors import InvalidArtifactError
from TaskArtifacts.models import EmbeddedArtifact, ExternalArtifact, parse_artifact


def test_external_artifact_normalises_checksum():
    artifact = ExternalArtifact(
        filename="app.tar.gz", url="http://host/app.tar.gz", checksum=" D41D8CD98F00B204E9800998ECF8427E "
    )
    assert artifact.checksum == "d41d8cd98f00b204e9800998ecf8427e"
    assert artifact.display_name == "app.tar.gz"


@pytest.mark.parametrize("filename", ["", ".", "..", "a/b", "..\\evil", "nul\x00byte", ".locks"])
def test_filename_must_be_single_component(filename):
    with pytest.raises(InvalidArtifactError):
        ExternalArtifact(filename=filename, url="http://host/x")


def test_declared_size_must_be_non_negative_int():
    with pytest.raises(InvalidArtifactError):
        ExternalArtifact(filename="x", url="http://host/x", size=-1)
    with pytest.raises(InvalidArtifactError):
        ExternalArtifact(filename="x", url="http://host/x", size=True)


def test_declared_checksum_must_be_hex():
    with pytest.raises(InvalidArtifactError):
        ExternalArtifact(filename="x", url="http://host/x", checksum="not-a-digest")


def test_external_artifact_requires_url():
    with pytest.raises(InvalidArtifactError):
        ExternalArtifact(filename="x")


def test_parse_external_descriptor_with_executor_field_names():
    artifact = parse_artifact(
        {
            "name": "application",
            "filename": "app.tar.gz",
            "url": "http://host/app.tar.gz",
            "filesize": 1024,
            "md5sum": "d41d8cd98f00b204e9800998ecf8427e",
        }
    )
    assert isinstance(artifact, ExternalArtifact)
    assert artifact.size == 1024
    assert artifact.display_name == "application"


def test_parse_embedded_descriptor_decodes_base64():
    content = b"#!/bin/sh\necho hi\n"
    artifact = parse_artifact(
        {"filename": "run.sh", "content": base64.b64encode(content).decode("ascii")}
    )
    assert isinstance(artifact, EmbeddedArtifact)
    assert artifact.content == content


def test_parse_rejects_ambiguous_descriptor():
    with pytest.raises(InvalidArtifactError):
        parse_artifact({"filename": "x", "url": "http://host/x", "content": "aGk="})
    with pytest.raises(InvalidArtifactError):
        parse_artifact({"filename": "x"})


def test_parse_rejects_invalid_base64():
    with pytest.raises(InvalidArtifactError):
        parse_artifact({"filename": "x", "content": "***"})
