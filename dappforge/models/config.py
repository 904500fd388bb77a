"""Pipeline configuration model — built once, threaded through every component."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

DEFAULT_CFLAGS: tuple[str, ...] = (
    "-Os",
    "-fPIC",
    "-ffunction-sections",
    "-fdata-sections",
    "-fno-unwind-tables",
    "-fno-asynchronous-unwind-tables",
)

# Non-runtime paths removed from the install root before archiving.
DEFAULT_PRUNE_NAMES: tuple[str, ...] = ("._*", "*.la", "*.pc")
DEFAULT_PRUNE_DIRS: tuple[str, ...] = ("include", "share/man", "share/doc", "share/info")

# Final safety net applied while writing the archive (tar --exclude semantics).
DEFAULT_ARCHIVE_EXCLUDES: tuple[str, ...] = (
    "*.la",
    "pkgconfig",
    "*.pc",
    "share/info",
    "share/doc",
    "include",
    "share/man",
)


class PipelineConfig(BaseModel):
    """Immutable configuration for one pipeline invocation.

    Constructed by ``BuildSettings.to_pipeline_config()``; every path is
    absolute by the time it lands here.
    """

    model_config = ConfigDict(frozen=True)

    project_name: str
    project_dir: Path
    dest: Path  # install root shipped in the package
    host: str = ""  # cross-compilation target triple
    toolchain_bin: Path | None = None
    make_jobs: int = 1
    cflags: str = ""
    cxxflags: str = ""
    ldflags: str = ""

    low_memory_mb: int = 100
    low_disk_mb: int = 500
    preflight_check: bool = True

    source_date_epoch: int | None = None
    download_timeout: float | None = None

    prune_names: tuple[str, ...] = DEFAULT_PRUNE_NAMES
    prune_dirs: tuple[str, ...] = DEFAULT_PRUNE_DIRS
    archive_excludes: tuple[str, ...] = DEFAULT_ARCHIVE_EXCLUDES

    log_dir: Path | None = None
    debug: bool = False
    quiet: bool = False

    # ------------------------------------------------------------------
    # Derived layout
    # ------------------------------------------------------------------

    @property
    def cache_dir(self) -> Path:
        return self.project_dir / "download"

    @property
    def work_dir(self) -> Path:
        return self.project_dir / "target"

    @property
    def deps_prefix(self) -> Path:
        """Prefix where build-only outputs (headers, static data) are installed."""
        return self.work_dir / "install"

    @property
    def static_dir(self) -> Path:
        """Files copied verbatim into the install root at packaging time."""
        return self.project_dir / "src" / "dest"

    @property
    def package_path(self) -> Path:
        return self.project_dir / f"{self.project_name}.tgz"

    @property
    def run_log_dir(self) -> Path:
        return self.log_dir or self.project_dir

    @property
    def strip_tool(self) -> str:
        return f"{self.host}-strip" if self.host else "strip"
