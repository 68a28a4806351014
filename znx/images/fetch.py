"""Source fetchers.

A deploy source is either a local file or a remote locator. classify_source
decides, from the locator alone, how it is fetched:

- local path or ``file://`` URL  -> LocalCopy
- remote locator ending in .zsync -> IncrementalFetch (zsync engine)
- any other remote locator        -> WholeFileDownload (httpx)

Every fetcher writes exactly one file, the destination, or raises FetchError.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from znx.config import Settings, get_settings
from znx.device.command import CommandError, run_command
from znx.errors import ZnxError
from znx.types import SourceKind

logger = logging.getLogger(__name__)

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024

ZSYNC_SUFFIX = ".zsync"


class FetchError(ZnxError):
    """Raised when a source cannot be fetched."""

    def __init__(self, message: str, code: str = "FETCH_FAILED") -> None:
        super().__init__(message, error_code=code)


def classify_source(source: str) -> SourceKind:
    """Decide how ``source`` is fetched without touching the filesystem."""
    parsed = urlparse(source)
    if parsed.scheme in ("", "file"):
        return SourceKind.LOCAL
    if parsed.path.endswith(ZSYNC_SUFFIX):
        return SourceKind.ZSYNC
    return SourceKind.DOWNLOAD


def _local_path(source: str) -> Path:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(source)


class SourceFetcher(ABC):
    """Produces a file from a source locator."""

    kind: SourceKind

    def __init__(self, locator: str) -> None:
        self.locator = locator

    @abstractmethod
    def fetch(self, destination: Path) -> Path:
        """Write the source to ``destination`` and return it.

        Raises:
            FetchError: If the source cannot be fetched.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.locator!r})"


class LocalCopy(SourceFetcher):
    """Copy a file from the local filesystem."""

    kind = SourceKind.LOCAL

    def fetch(self, destination: Path) -> Path:
        path = _local_path(self.locator)
        if not path.is_file():
            raise FetchError(f"Source file not found: {path}", code="SOURCE_NOT_FOUND")

        logger.info("Copying %s to %s", path, destination)
        try:
            shutil.copyfile(path, destination)
        except OSError as e:
            raise FetchError(f"Error copying {path}: {e}", code="COPY_FAILED") from e
        return destination


class IncrementalFetch(SourceFetcher):
    """Reconstruct a file with the zsync engine.

    With a ``seed`` the engine reuses matching blocks of that file and only
    transfers what changed; without one it fetches everything through the
    zsync protocol.
    """

    kind = SourceKind.ZSYNC

    def __init__(
        self,
        locator: str,
        *,
        seed: Path | None = None,
        zsync_bin: str = "zsync",
        timeout: float | None = None,
    ) -> None:
        super().__init__(locator)
        self.seed = seed
        self.zsync_bin = zsync_bin
        self.timeout = timeout

    def command(self, destination: Path) -> list[str]:
        cmd = [self.zsync_bin, "-q", "-o", str(destination)]
        if self.seed is not None:
            cmd += ["-i", str(self.seed)]
        cmd.append(self.locator)
        return cmd

    def fetch(self, destination: Path) -> Path:
        logger.info(
            "Syncing %s to %s (seed=%s)", self.locator, destination, self.seed
        )
        try:
            run_command(
                self.command(destination),
                cwd=destination.parent,
                timeout=self.timeout,
            )
        except CommandError as e:
            # zsync keeps its in-progress output beside the destination
            destination.with_name(destination.name + ".part").unlink(missing_ok=True)
            raise FetchError(
                f"Sync of {self.locator} failed: {e.message}", code="SYNC_FAILED"
            ) from e

        if not destination.is_file():
            raise FetchError(
                f"Sync of {self.locator} produced no output", code="SYNC_NO_OUTPUT"
            )
        return destination


class WholeFileDownload(SourceFetcher):
    """Download a file over HTTP(S) in one piece."""

    kind = SourceKind.DOWNLOAD

    def __init__(
        self,
        locator: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 3600,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        super().__init__(locator)
        self.client = client
        self.timeout = timeout
        self.chunk_size = chunk_size

    def fetch(self, destination: Path) -> Path:
        logger.info("Downloading %s to %s", self.locator, destination)
        if self.client is not None:
            return self._download(self.client, destination)
        with httpx.Client(follow_redirects=True) as client:
            return self._download(client, destination)

    def _download(self, client: httpx.Client, destination: Path) -> Path:
        try:
            with client.stream("GET", self.locator, timeout=self.timeout) as response:
                response.raise_for_status()

                total_bytes = 0
                sha256 = hashlib.sha256()
                with destination.open("wb") as f:
                    for chunk in response.iter_bytes(self.chunk_size):
                        f.write(chunk)
                        sha256.update(chunk)
                        total_bytes += len(chunk)

        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP error downloading {self.locator}: "
                f"{e.response.status_code} {e.response.reason_phrase}",
                code="HTTP_ERROR",
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(f"Timeout downloading {self.locator}", code="TIMEOUT") from e
        except httpx.RequestError as e:
            raise FetchError(
                f"Network error downloading {self.locator}: {e}", code="NETWORK_ERROR"
            ) from e
        except OSError as e:
            raise FetchError(
                f"Error writing {destination}: {e}", code="WRITE_FAILED"
            ) from e

        logger.info(
            "Downloaded %s (%d bytes, sha256: %s...)",
            destination.name,
            total_bytes,
            sha256.hexdigest()[:16],
        )
        return destination


def make_fetcher(source: str, settings: Settings | None = None) -> SourceFetcher:
    """Build the fetcher for a deploy source."""
    settings = settings or get_settings()
    kind = classify_source(source)
    if kind is SourceKind.LOCAL:
        return LocalCopy(source)
    if kind is SourceKind.ZSYNC:
        return IncrementalFetch(
            source, zsync_bin=settings.zsync_bin, timeout=settings.command_timeout
        )
    return WholeFileDownload(source, timeout=settings.download_timeout)


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "FetchError",
    "IncrementalFetch",
    "LocalCopy",
    "SourceFetcher",
    "WholeFileDownload",
    "classify_source",
    "make_fetcher",
]
