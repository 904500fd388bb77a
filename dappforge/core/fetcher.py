"""Fetcher — downloads artifacts into the cache directory, reusing valid entries.

Cache layout: {cache_dir}/[{cache_subdir}/]{filename}

An existing entry is reused only when it passes the integrity probe for its
format (the archive's table of contents can be listed; zip members pass
their CRC check; raw files are non-empty) and, if the source declares one,
its SHA-256 digest matches. Anything else is downloaded again, overwriting
the entry.
"""

from __future__ import annotations

import logging
import os
import tarfile
import zipfile
from pathlib import Path

import httpx

from dappforge.core.hasher import normalize_digest, sha256_file
from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArchiveFormat, ArtifactSource

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Raised when an artifact cannot be downloaded or fails verification."""


def probe_archive(path: Path, archive_format: ArchiveFormat) -> bool:
    """Return True if *path* is readable as *archive_format*.

    Tar archives must list their whole table of contents without error,
    which forces a full decompression pass.
    """
    if not path.is_file():
        return False
    try:
        if archive_format.is_tar:
            with tarfile.open(path, f"r:{archive_format.tar_compression}") as tar:
                for _ in tar:
                    pass
            return True
        if archive_format == ArchiveFormat.ZIP:
            with zipfile.ZipFile(path) as zf:
                return zf.testzip() is None
    except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as exc:
        logger.debug("Integrity probe failed for %s: %s", path, exc)
        return False
    return path.stat().st_size > 0


class Fetcher:
    """Cache-aware artifact downloader.

    Parameters
    ----------
    config:
        Pipeline configuration; provides the cache directory and timeout.
    client:
        Optional ``httpx.Client``. One is created (and owned) if not given.
    """

    def __init__(
        self, config: PipelineConfig, client: httpx.Client | None = None
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(config.download_timeout),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Fetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def cache_path(self, source: ArtifactSource) -> Path:
        """Return the single cache entry *source* maps to."""
        base = self._config.cache_dir
        if source.cache_subdir:
            base = base / source.cache_subdir
        return base / source.filename

    def is_cached(self, source: ArtifactSource) -> bool:
        """Whether the cache entry exists and passes every integrity check."""
        path = self.cache_path(source)
        if not probe_archive(path, source.archive_format):
            return False
        if source.sha256 and sha256_file(path) != normalize_digest(source.sha256):
            logger.warning("Cached %s does not match its declared sha256", path.name)
            return False
        return True

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(self, source: ArtifactSource) -> Path | None:
        """Ensure *source* is in the cache and return its path.

        Git sources are cloned at extraction time and return ``None``.
        Raises ``FetchError`` on any transfer failure or digest mismatch.
        """
        if not source.is_cached:
            logger.debug("%s is a git source; nothing to cache", source.name)
            return None

        path = self.cache_path(source)
        path.parent.mkdir(parents=True, exist_ok=True)

        if self.is_cached(source):
            logger.info("Using cached %s", path.name)
            return path

        logger.info("Downloading %s...", source.filename)
        self._download(source.url, path)

        if source.sha256:
            actual = sha256_file(path)
            if actual != normalize_digest(source.sha256):
                raise FetchError(
                    f"{source.filename}: sha256 mismatch "
                    f"(expected {normalize_digest(source.sha256)}, got {actual})"
                )
        return path

    def _download(self, url: str, path: Path) -> None:
        """Stream *url* into *path*, replacing it only once complete."""
        partial = path.with_name(path.name + ".part")
        try:
            with self._client.stream("GET", url) as resp:
                resp.raise_for_status()
                with open(partial, "wb") as f:
                    for chunk in resp.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as exc:
            partial.unlink(missing_ok=True)
            raise FetchError(f"Download of {url} failed: {exc}") from exc
        os.replace(partial, path)
        logger.debug("Saved %s (%d bytes)", path, path.stat().st_size)
