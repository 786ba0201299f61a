# === NAVMAP v1 ===
# {
#   "module": "TaskArtifacts.download",
#   "purpose": "Retrieve external artifacts via an external fetch tool or httpx, then verify them",
#   "sections": [
#     {"id": "basedownloader", "name": "BaseDownloader", "anchor": "class-basedownloader", "kind": "class"},
#     {"id": "wgetdownloader", "name": "WgetDownloader", "anchor": "class-wgetdownloader", "kind": "class"},
#     {"id": "httpxdownloader", "name": "HttpxDownloader", "anchor": "class-httpxdownloader", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Downloaders that retrieve a URI into a local path and verify the result.

:class:`WgetDownloader` delegates retrieval to an external fetch tool invoked
as ``<tool> <uri> -O <destination> -nv --no-check-certificate`` with its output
appended to the task log. :class:`HttpxDownloader` keeps the same contract
(URL in, file out) using a native HTTP client. Both retry transient failures
with bounded exponential backoff; size and checksum validation happens once,
after retrieval, and is never retried.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import httpx

from .checksums import check_checksum, check_size
from .errors import DownloadFailure, FilesystemFailure
from .models import ExternalArtifact
from .process import ProcessRunner
from .retries import RetryPolicy, build_retrying

__all__ = ["BaseDownloader", "WgetDownloader", "HttpxDownloader"]

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


class BaseDownloader:
    """Retrieve URLs into local files with bounded retry."""

    def __init__(self, *, retry: Optional[RetryPolicy] = None) -> None:
        self.retry = retry or RetryPolicy()

    def fetch_once(self, url: str, destination: Path, *, log_path: Path) -> None:
        raise NotImplementedError

    def download(self, url: str, destination: PathLike, *, log_path: PathLike) -> Path:
        """Retrieve ``url`` into ``destination``, retrying transient failures."""

        target = Path(destination)
        log_file = Path(log_path)
        LOGGER.info("Downloading %s to %s", url, target, extra={"stage": "download"})
        for attempt in build_retrying(self.retry):
            with attempt:
                self.fetch_once(url, target, log_path=log_file)
        return target

    def download_and_check(
        self,
        artifact: ExternalArtifact,
        destination: PathLike,
        *,
        log_path: PathLike,
        algorithm: str = "md5",
    ) -> Path:
        """Download ``artifact`` into ``destination`` and verify size, then checksum."""

        target = self.download(artifact.url, destination, log_path=log_path)
        check_size(artifact, target)
        check_checksum(artifact, target, algorithm)
        return target


class WgetDownloader(BaseDownloader):
    """Downloader shelling out to a wget-compatible fetch tool."""

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        tool: str = "wget",
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(retry=retry)
        self.runner = runner
        self.tool = tool

    def build_command(self, url: str, destination: Path) -> List[str]:
        return [self.tool, url, "-O", str(destination), "-nv", "--no-check-certificate"]

    def fetch_once(self, url: str, destination: Path, *, log_path: Path) -> None:
        self.runner.run(self.build_command(url, destination), log_path, failure=DownloadFailure)


class HttpxDownloader(BaseDownloader):
    """Downloader streaming the response body with :mod:`httpx`.

    Certificate verification is disabled by default, matching the fetch tool's
    ``--no-check-certificate`` invocation used for internal distribution.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        verify: bool = False,
        chunk_size: int = 1 << 20,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(retry=retry)
        self._client = client
        self.timeout = timeout
        self.verify = verify
        self.chunk_size = chunk_size

    def _make_client(self) -> httpx.Client:
        return httpx.Client(verify=self.verify, timeout=self.timeout, follow_redirects=True)

    def fetch_once(self, url: str, destination: Path, *, log_path: Path) -> None:
        command = ("GET", url)
        client = self._client or self._make_client()
        written = 0
        try:
            with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise DownloadFailure(
                        command,
                        None,
                        output_path=log_path,
                        message=f"HTTP {response.status_code} while downloading {url}",
                        url=url,
                        status_code=response.status_code,
                    )
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes(chunk_size=self.chunk_size):
                        if chunk:
                            handle.write(chunk)
                            written += len(chunk)
        except httpx.TransportError as exc:
            raise DownloadFailure(
                command,
                None,
                output_path=log_path,
                message=f"Transport error while downloading {url}: {exc}",
                url=url,
                retryable=True,
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadFailure(
                command,
                None,
                output_path=log_path,
                message=f"HTTP error while downloading {url}: {exc}",
                url=url,
            ) from exc
        except OSError as exc:
            raise FilesystemFailure(
                f"Couldn't write {destination} while downloading {url}",
                operation="write",
                path=destination,
                cause=exc,
            ) from exc
        finally:
            if self._client is None:
                client.close()
        log_file = Path(log_path)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with log_file.open("a", encoding="utf-8") as handle:
                handle.write(f"URL:{url} [{written}] -> \"{destination}\" [1]\n")
        except OSError as exc:
            raise FilesystemFailure(
                f"Couldn't append to task log {log_file}",
                operation="write",
                path=log_file,
                cause=exc,
            ) from exc
