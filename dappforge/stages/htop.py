"""htop — the interactive process viewer this DroboApp ships."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from dappforge.core.toolchain import make
from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArchiveFormat, ArtifactSource
from dappforge.models.stages import BuildAction
from dappforge.stages.base import BuildStage

VERSION = "3.4.1"

# htop does not build reliably in parallel under the cross toolchain.
COMPILE_JOBS = 1

CONFIGURE_FLAGS: tuple[str, ...] = (
    "--enable-unicode",
    "--disable-sensors",
    "--disable-capabilities",
    "--disable-delayacct",
    "--disable-openvz",
    "--disable-vserver",
    "--disable-ancient-vserver",
    "--disable-hwloc",
)

# Autoconf cache answers for checks that cannot run on the build host.
CROSS_CACHE_VARS: tuple[str, ...] = (
    "ac_cv_func_malloc_0_nonnull=yes",
    "ac_cv_func_realloc_0_nonnull=yes",
    "ac_cv_file__proc_stat=yes",
    "ac_cv_file__proc_meminfo=yes",
)


class HtopStage(BuildStage):
    """Stage: htop, linked against the ncurses stage's libraries."""

    ordinal: ClassVar[float] = 2.0
    prerequisites: ClassVar[tuple[str, ...]] = ("ncurses",)
    cleanup_paths: ClassVar[tuple[str, ...]] = ("man",)

    @property
    def stage_id(self) -> str:
        return "htop"

    @property
    def display_name(self) -> str:
        return f"htop {VERSION}"

    def source(self, config: PipelineConfig) -> ArtifactSource:
        folder = f"htop-{VERSION}"
        filename = f"{folder}.tar.xz"
        return ArtifactSource(
            name="htop",
            url=f"https://github.com/htop-dev/htop/releases/download/{VERSION}/{filename}",
            filename=filename,
            archive_format=ArchiveFormat.TAR_XZ,
            folder=folder,
        )

    def build_actions(
        self, config: PipelineConfig, working_dir: Path
    ) -> list[BuildAction]:
        configure = [
            "./configure",
            f"--prefix={config.dest}",
            f"--mandir={config.dest / 'man'}",
            *CONFIGURE_FLAGS,
            *CROSS_CACHE_VARS,
        ]
        if config.host:
            configure.insert(1, f"--host={config.host}")
        return [
            BuildAction(
                argv=configure,
                env={"LDFLAGS": "-Wl,--strip-all"},
                description="configure htop",
            ),
            BuildAction(
                argv=make(config, jobs=COMPILE_JOBS), description="compile htop"
            ),
            BuildAction(
                argv=make(config, "install-strip"), description="install htop"
            ),
        ]
