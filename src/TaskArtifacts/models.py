"""Artifact descriptors resolved before a workload is launched.

An artifact is either fetched from a URL (:class:`ExternalArtifact`) or carried
inline by the task definition (:class:`EmbeddedArtifact`). Both may declare an
expected size and checksum; absent declarations always pass their check.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import InvalidArtifactError
from .locks import LOCK_DIR_NAME

__all__ = ["Artifact", "ExternalArtifact", "EmbeddedArtifact", "parse_artifact"]

_HEX_DIGEST = re.compile(r"[0-9a-f]{32,128}")


def _validate_filename(filename: object) -> str:
    if not isinstance(filename, str) or not filename:
        raise InvalidArtifactError("artifact filename must be a non-empty string")
    if filename in {".", ".."} or any(sep in filename for sep in ("/", "\\", "\x00")):
        raise InvalidArtifactError(
            f"artifact filename {filename!r} must be a single path component"
        )
    if filename == LOCK_DIR_NAME:
        raise InvalidArtifactError(f"artifact filename {filename!r} is reserved for cache locks")
    return filename


def _normalize_size(size: object, *, filename: str) -> Optional[int]:
    if size is None:
        return None
    if isinstance(size, bool) or not isinstance(size, int):
        raise InvalidArtifactError(f"{filename}: declared size must be an integer")
    if size < 0:
        raise InvalidArtifactError(f"{filename}: declared size must be >= 0")
    return size


def _normalize_checksum(checksum: object, *, filename: str) -> Optional[str]:
    if checksum is None:
        return None
    if not isinstance(checksum, str):
        raise InvalidArtifactError(f"{filename}: declared checksum must be a string")
    value = checksum.strip().lower()
    if not _HEX_DIGEST.fullmatch(value):
        raise InvalidArtifactError(f"{filename}: declared checksum must be a hexadecimal digest")
    return value


@dataclass(frozen=True)
class Artifact:
    """A named unit of content with optional size and checksum declarations."""

    filename: str
    size: Optional[int] = None
    checksum: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        filename = _validate_filename(self.filename)
        object.__setattr__(self, "size", _normalize_size(self.size, filename=filename))
        object.__setattr__(
            self, "checksum", _normalize_checksum(self.checksum, filename=filename)
        )

    @property
    def display_name(self) -> str:
        return self.name or self.filename


@dataclass(frozen=True)
class ExternalArtifact(Artifact):
    """Artifact retrieved from ``url`` and persisted in the cache directory."""

    url: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.url, str) or not self.url.strip():
            raise InvalidArtifactError(f"{self.filename}: external artifact requires a url")


@dataclass(frozen=True)
class EmbeddedArtifact(Artifact):
    """Artifact whose bytes are carried inline by the task definition."""

    content: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.content, (bytes, bytearray)):
            raise InvalidArtifactError(f"{self.filename}: embedded content must be bytes")
        object.__setattr__(self, "content", bytes(self.content))


def _decode_content(raw: Any, *, filename: str) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(raw, str):
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidArtifactError(f"{filename}: content is not valid base64") from exc
    raise InvalidArtifactError(f"{filename}: content must be base64 text or bytes")


def parse_artifact(payload: Mapping[str, Any]) -> Artifact:
    """Build an artifact from a descriptor mapping.

    Accepts the executor's field names (``filesize``, ``md5sum``) as well as
    ``size`` and ``checksum``. Exactly one of ``url`` or ``content`` selects the
    artifact variant.
    """

    if not isinstance(payload, Mapping):
        raise InvalidArtifactError("artifact descriptor must be a mapping")
    filename = _validate_filename(payload.get("filename"))
    size = payload.get("filesize", payload.get("size"))
    checksum = payload.get("md5sum", payload.get("checksum"))
    name = payload.get("name")

    has_url = payload.get("url") is not None
    has_content = payload.get("content") is not None
    if has_url == has_content:
        raise InvalidArtifactError(
            f"{filename}: descriptor must define exactly one of 'url' or 'content'"
        )
    if has_url:
        return ExternalArtifact(
            filename=filename, size=size, checksum=checksum, name=name, url=payload["url"]
        )
    return EmbeddedArtifact(
        filename=filename,
        size=size,
        checksum=checksum,
        name=name,
        content=_decode_content(payload["content"], filename=filename),
    )
