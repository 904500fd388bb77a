"""Extractor — unpacks a cached artifact into a clean working directory.

The working directory ``{work_dir}/{source.folder}`` is always destroyed
before unpacking, so a stale or half-finished extraction never leaks into
a new build.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tarfile
import zipfile
from pathlib import Path

from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArchiveFormat, ArtifactSource

logger = logging.getLogger(__name__)


class ExtractionError(RuntimeError):
    """Raised when an artifact cannot be unpacked or cloned."""


class Extractor:
    """Format-aware unpacker writing into ``config.work_dir``."""

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config

    def working_dir(self, source: ArtifactSource) -> Path:
        return self._config.work_dir / source.folder

    def extract(self, source: ArtifactSource, cached_file: Path | None) -> Path:
        """Unpack *cached_file* for *source* and return the working directory."""
        work_dir = self._config.work_dir
        target = self.working_dir(source)
        work_dir.mkdir(parents=True, exist_ok=True)

        if target.exists() or target.is_symlink():
            logger.info("Removing existing %s...", source.folder)
            remove_path(target)

        fmt = source.archive_format
        if fmt == ArchiveFormat.GIT:
            self._clone(source, target)
            return target

        if cached_file is None or not cached_file.is_file():
            raise ExtractionError(
                f"{source.name}: cached artifact {cached_file} is missing"
            )

        logger.info("Extracting %s...", cached_file.name)
        try:
            if fmt.is_tar:
                with tarfile.open(cached_file, f"r:{fmt.tar_compression}") as tar:
                    tar.extractall(work_dir, filter="data")
            elif fmt == ArchiveFormat.ZIP:
                self._unzip(cached_file, work_dir)
            else:
                target.mkdir(parents=True)
                shutil.copy2(cached_file, target / cached_file.name)
        except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as exc:
            raise ExtractionError(f"Cannot extract {cached_file}: {exc}") from exc

        if not target.is_dir():
            raise ExtractionError(
                f"{cached_file.name} did not unpack into {source.folder}/"
            )
        return target

    @staticmethod
    def _unzip(archive: Path, dest: Path) -> None:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(dest)
            # zipfile drops permission bits; restore the executable ones.
            for info in zf.infolist():
                mode = (info.external_attr >> 16) & 0o777
                if mode & 0o111 and not info.is_dir():
                    extracted = dest / info.filename
                    if extracted.is_file():
                        extracted.chmod(mode)

    @staticmethod
    def _clone(source: ArtifactSource, target: Path) -> None:
        argv = [
            "git", "clone",
            "--branch", str(source.branch),
            "--single-branch",
            "--depth", "1",
            "--quiet",
            source.url,
            str(target),
        ]
        logger.info("Cloning %s (%s)...", source.url, source.branch)
        try:
            subprocess.run(argv, check=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise ExtractionError(f"git clone of {source.url} failed: {exc}") from exc


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
