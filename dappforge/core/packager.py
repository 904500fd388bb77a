"""Packager — turns the install root into the distributable ``.tgz``.

Steps, in order:

    1. merge    — copy the static files dir (``src/dest``) over the install root
    2. prune    — delete build metadata, headers, man/doc/info trees
    3. strip    — ``<host>-strip --strip-unneeded`` every executable, if the
                  tool exists; per-file failures are logged and ignored
    4. archive  — delete any previous archive, then write a gzip tar of the
                  install root with root-relative member names, sorted
                  entries, uid/gid 0 and the final exclusion filter

With ``source_date_epoch`` set, mtimes are clamped to it and the gzip header
carries it, so identical trees produce byte-identical archives.
"""

from __future__ import annotations

import fnmatch
import gzip
import logging
import os
import shutil
import subprocess
import tarfile
from pathlib import Path, PurePosixPath

from dappforge.core.extractor import remove_path
from dappforge.core.hasher import sha256_file
from dappforge.models.config import PipelineConfig
from dappforge.models.reports import PackageReport

logger = logging.getLogger(__name__)


class PackagingError(RuntimeError):
    """Raised when the install root cannot be archived."""


def is_excluded(rel_path: str, patterns: tuple[str, ...] | list[str]) -> bool:
    """tar ``--exclude`` semantics for a root-relative POSIX path.

    Patterns are unanchored: one matches if it matches any run of
    consecutive path components, so ``include`` excludes ``include/foo.h``
    and ``share/doc`` excludes ``opt/share/doc/README``.
    """
    parts = PurePosixPath(rel_path).parts
    candidates = {
        "/".join(parts[i:j])
        for i in range(len(parts))
        for j in range(i + 1, len(parts) + 1)
    }
    return any(
        fnmatch.fnmatchcase(candidate, pattern)
        for pattern in patterns
        for candidate in candidates
    )


def human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "K", "M", "G"):
        if value < 1024 or unit == "G":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


class Packager:
    """Assembles and archives the install root described by *config*."""

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def package(self) -> PackageReport:
        """Run merge, prune, strip and archive; return what was produced."""
        dest = self._config.dest
        dest.mkdir(parents=True, exist_ok=True)

        self.merge_static_files()
        removed = self.prune()
        stripped, failures = self.strip_binaries()
        archive, members = self.create_archive()

        size = archive.stat().st_size
        logger.info("Created package: %s (%s)", archive, human_size(size))
        return PackageReport(
            archive_path=archive,
            size_bytes=size,
            member_count=members,
            sha256=sha256_file(archive),
            removed_paths=removed,
            stripped_files=stripped,
            strip_failures=failures,
        )

    def merge_static_files(self) -> None:
        static = self._config.static_dir
        if not static.is_dir():
            return
        logger.info("Merging %s into %s", static, self._config.dest)
        shutil.copytree(static, self._config.dest, symlinks=True, dirs_exist_ok=True)

    def prune(self) -> list[str]:
        """Delete non-runtime files; return root-relative removed paths."""
        dest = self._config.dest
        removed: list[str] = []

        for rel_dir in self._config.prune_dirs:
            path = dest / rel_dir
            if path.exists() or path.is_symlink():
                remove_path(path)
                removed.append(rel_dir)

        for root, dirs, files in os.walk(dest):
            for name in sorted(files + dirs):
                if any(fnmatch.fnmatchcase(name, p) for p in self._config.prune_names):
                    path = Path(root) / name
                    remove_path(path)
                    removed.append(path.relative_to(dest).as_posix())
                    if name in dirs:
                        dirs.remove(name)

        for rel in removed:
            logger.debug("pruned %s", rel)
        return removed

    def strip_binaries(self) -> tuple[list[str], list[str]]:
        """Strip unneeded symbols from every executable regular file.

        Returns (stripped, failed) root-relative paths. A missing strip tool
        skips the step entirely.
        """
        tool = self._find_strip_tool()
        if tool is None:
            logger.info("%s not found; skipping strip", self._config.strip_tool)
            return [], []

        logger.info("Stripping binaries...")
        dest = self._config.dest
        stripped: list[str] = []
        failed: list[str] = []
        for path in sorted(dest.rglob("*")):
            if path.is_symlink() or not path.is_file() or not os.access(path, os.X_OK):
                continue
            rel = path.relative_to(dest).as_posix()
            proc = subprocess.run(
                [tool, "--strip-unneeded", str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
            if proc.returncode == 0:
                stripped.append(rel)
            else:
                logger.warning("strip failed for %s: %s", rel, proc.stderr.strip())
                failed.append(rel)
        return stripped, failed

    def _find_strip_tool(self) -> str | None:
        path = os.environ.get("PATH", "")
        if self._config.toolchain_bin:
            path = os.pathsep.join((str(self._config.toolchain_bin), path))
        return shutil.which(self._config.strip_tool, path=path)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def create_archive(self) -> tuple[Path, int]:
        """Write the archive; return (path, member count)."""
        config = self._config
        dest = config.dest
        archive = config.package_path
        if archive.exists():
            logger.info("Removing previous %s", archive.name)
            archive.unlink()

        entries = self._collect_entries()
        epoch = config.source_date_epoch
        try:
            with open(archive, "wb") as raw, gzip.GzipFile(
                filename="", mode="wb", fileobj=raw, mtime=epoch or 0
            ) as gz, tarfile.open(
                fileobj=gz, mode="w", format=tarfile.GNU_FORMAT
            ) as tar:
                for rel in entries:
                    info = tar.gettarinfo(str(dest / rel), arcname=rel)
                    info.uid = info.gid = 0
                    info.uname = info.gname = ""
                    if epoch is not None:
                        info.mtime = min(int(info.mtime), epoch)
                    if info.isreg():
                        with open(dest / rel, "rb") as f:
                            tar.addfile(info, f)
                    else:
                        tar.addfile(info)
        except (OSError, tarfile.TarError) as exc:
            archive.unlink(missing_ok=True)
            raise PackagingError(f"Cannot write {archive}: {exc}") from exc
        return archive, len(entries)

    def _collect_entries(self) -> list[str]:
        """Root-relative paths to archive, sorted, exclusions applied."""
        dest = self._config.dest
        archive = self._config.package_path.resolve()
        entries: list[str] = []
        for root, dirs, files in os.walk(dest):
            dirs.sort()
            for name in [*dirs, *sorted(files)]:
                path = Path(root) / name
                if path.resolve() == archive:
                    continue
                rel = path.relative_to(dest).as_posix()
                if is_excluded(rel, self._config.archive_excludes):
                    continue
                entries.append(rel)
        return sorted(entries)
