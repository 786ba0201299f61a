"""CLI commands for resolving and inspecting task artifacts.

Provides 4 commands:
  - fetch: Resolve an external artifact into the cache and print its path
  - extract: Write embedded artifacts from a JSON descriptor into a directory
  - untar: Unpack a gzip-compressed tarball into a directory
  - verify: Check a file against a declared size and checksum
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from .cache import ArtifactCache
from .checksums import compute_checksum, file_size, normalize_algorithm
from .errors import ArtifactError, InvalidArtifactError
from .logging_utils import setup_logging
from .models import EmbeddedArtifact, ExternalArtifact, parse_artifact
from .settings import ArtifactSettings, load_settings

app = typer.Typer(help="Resolve task artifacts into a verified local cache")


def _settings(cache_dir: Optional[Path], log_dir: Optional[Path]) -> ArtifactSettings:
    settings = load_settings(cache_directory=cache_dir, log_directory=log_dir)
    setup_logging(level=settings.log_level)
    return settings


def _load_descriptors(path: Path) -> List[object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidArtifactError(f"Couldn't read descriptor {path}: {exc}") from exc
    return payload if isinstance(payload, list) else [payload]


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL of the artifact"),
    filename: str = typer.Option(..., "--filename", "-f", help="Cache filename"),
    size: Optional[int] = typer.Option(None, "--size", help="Expected size in bytes"),
    checksum: Optional[str] = typer.Option(None, "--checksum", help="Expected hex digest"),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Tool output log directory"),
    task_id: Optional[str] = typer.Option(None, "--task-id", help="Task identifier"),
) -> None:
    """Download an artifact into the cache unless a valid copy is present."""

    try:
        settings = _settings(cache_dir, log_dir)
        artifact = ExternalArtifact(filename=filename, size=size, checksum=checksum, url=url)
        path = ArtifactCache.from_settings(settings, task_id=task_id).fetch(artifact)
        typer.echo(str(path))
    except ArtifactError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def extract(
    descriptor: Path = typer.Argument(..., help="JSON file with one or more embedded artifacts"),
    directory: Path = typer.Argument(..., help="Directory receiving the files"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Tool output log directory"),
    task_id: Optional[str] = typer.Option(None, "--task-id", help="Task identifier"),
) -> None:
    """Write embedded artifacts into a task directory without overwriting files."""

    try:
        settings = _settings(None, log_dir)
        cache = ArtifactCache.from_settings(settings, task_id=task_id)
        for payload in _load_descriptors(descriptor):
            artifact = parse_artifact(payload)  # type: ignore[arg-type]
            if not isinstance(artifact, EmbeddedArtifact):
                raise InvalidArtifactError(f"{artifact.filename}: not an embedded artifact")
            typer.echo(str(cache.extract(artifact, directory)))
    except ArtifactError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def untar(
    archive: Path = typer.Argument(..., help="Gzip-compressed tarball"),
    directory: Path = typer.Argument(..., help="Existing destination directory"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Tool output log directory"),
    task_id: Optional[str] = typer.Option(None, "--task-id", help="Task identifier"),
) -> None:
    """Unpack an archive into a directory."""

    try:
        settings = _settings(None, log_dir)
        ArtifactCache.from_settings(settings, task_id=task_id).untar(archive, directory)
        typer.echo(f"✓ extracted {archive} into {directory}")
    except ArtifactError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def verify(
    path: Path = typer.Argument(..., help="File to verify"),
    size: Optional[int] = typer.Option(None, "--size", help="Expected size in bytes"),
    checksum: Optional[str] = typer.Option(None, "--checksum", help="Expected hex digest"),
    algorithm: str = typer.Option("md5", "--algorithm", help="Digest algorithm"),
) -> None:
    """Report a file's size and digest and compare them with expectations."""

    try:
        algorithm = normalize_algorithm(algorithm)
        actual_size = file_size(path)
        actual_digest = compute_checksum(path, algorithm)
    except ArtifactError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"  Size: {actual_size} bytes")
    typer.echo(f"  {algorithm}: {actual_digest}")
    failures = []
    if size is not None and size != actual_size:
        failures.append(f"size {actual_size} != expected {size}")
    if checksum is not None and checksum.strip().lower() != actual_digest:
        failures.append(f"{algorithm} {actual_digest} != expected {checksum}")
    if failures:
        for failure in failures:
            typer.echo(f"✗ {failure}", err=True)
        raise typer.Exit(1)
    typer.echo("✓ verified")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
