"""Build settings — env-driven, resolved once into a frozen PipelineConfig.

Every setting can be overridden via DAPPFORGE_* environment variables or a
.env file in the working directory.

Examples
--------
Cross-compile for an ARM appliance with two make jobs::

    export DAPPFORGE_HOST=arm-marvell-linux-gnueabi
    export DAPPFORGE_MAKE_JOBS=2
    export DAPPFORGE_DEST=/mnt/DroboFS/Shares/DroboApps/htop

Trace every command and keep the console quiet::

    DAPPFORGE_DEBUG=true DAPPFORGE_QUIET=true dappforge
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dappforge.models.config import PipelineConfig

DEFAULT_DEST_ROOT = Path("/mnt/DroboFS/Shares/DroboApps")


class BuildSettings(BaseSettings):
    """Environment-facing settings for a dappforge invocation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DAPPFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Layout
    project_dir: Path = Path(".")
    project_name: str | None = None  # defaults to the project dir's name
    dest: Path | None = None  # defaults to DEFAULT_DEST_ROOT/<project_name>
    log_dir: Path | None = None

    # Cross-compilation
    host: str = ""
    toolchain_bin: Path | None = None
    make_jobs: int = Field(default=1, ge=1)
    cflags: str = ""
    cxxflags: str = ""
    ldflags: str = ""

    # Resource monitor thresholds (MB)
    low_memory_mb: int = Field(default=100, ge=0)
    low_disk_mb: int = Field(default=500, ge=0)
    preflight_check: bool = True

    # Reproducibility and transfer
    source_date_epoch: int | None = None
    download_timeout: float | None = None

    # Verbosity
    debug: bool = False
    quiet: bool = False

    def to_pipeline_config(self, **overrides: object) -> PipelineConfig:
        """Freeze these settings into the configuration threaded through a run."""
        project_dir = self.project_dir.expanduser().resolve()
        name = self.project_name or project_dir.name
        dest = (self.dest or DEFAULT_DEST_ROOT / name).expanduser()
        values: dict[str, object] = {
            "project_name": name,
            "project_dir": project_dir,
            "dest": dest.resolve() if not dest.is_absolute() else dest,
            "host": self.host,
            "toolchain_bin": self.toolchain_bin,
            "make_jobs": self.make_jobs,
            "cflags": self.cflags,
            "cxxflags": self.cxxflags,
            "ldflags": self.ldflags,
            "low_memory_mb": self.low_memory_mb,
            "low_disk_mb": self.low_disk_mb,
            "preflight_check": self.preflight_check,
            "source_date_epoch": self.source_date_epoch,
            "download_timeout": self.download_timeout,
            "log_dir": self.log_dir.expanduser().resolve() if self.log_dir else None,
            "debug": self.debug,
            "quiet": self.quiet,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return PipelineConfig(**values)
