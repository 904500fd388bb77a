"""ncurses — wide-character terminal library linked by htop.

Headers go to the dependency prefix (they are not shipped); the shared
libraries land directly in the install root so the runtime rpath resolves.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from dappforge.core.toolchain import make
from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArchiveFormat, ArtifactSource
from dappforge.models.stages import BuildAction
from dappforge.stages.base import BuildStage

VERSION = "6.4"

# Compile parallelism is pinned low to bound memory use on small build hosts.
COMPILE_JOBS = 2

CONFIGURE_FLAGS: tuple[str, ...] = (
    "--with-shared",
    "--enable-rpath",
    "--enable-widec",
    "--with-termlib=tinfo",
    "--disable-database",
    "--disable-db-install",
    "--without-ada",
    "--without-cxx",
    "--without-cxx-binding",
    "--without-manpages",
    "--without-progs",
    "--without-tests",
    "--disable-echo",
    "--disable-getcap",
    "--disable-hard-tabs",
    "--disable-leaks",
    "--disable-macros",
    "--disable-overwrite",
    "--enable-const",
    "--enable-ext-colors",
    "--enable-ext-mouse",
    "--with-fallbacks=linux,screen,vt100,xterm",
    "--without-debug",
    "--without-profile",
    "--enable-pc-files=no",
)


class NcursesStage(BuildStage):
    """Stage: ncurses shared libraries (terminfo compiled in as fallbacks)."""

    ordinal: ClassVar[float] = 1.0
    cleanup_paths: ClassVar[tuple[str, ...]] = (
        "lib/*.a",
        "share/terminfo",
        "share/tabset",
    )

    @property
    def stage_id(self) -> str:
        return "ncurses"

    @property
    def display_name(self) -> str:
        return f"ncurses {VERSION}"

    def source(self, config: PipelineConfig) -> ArtifactSource:
        folder = f"ncurses-{VERSION}"
        filename = f"{folder}.tar.gz"
        return ArtifactSource(
            name="ncurses",
            url=f"http://ftp.gnu.org/gnu/ncurses/{filename}",
            filename=filename,
            archive_format=ArchiveFormat.TAR_GZ,
            folder=folder,
        )

    def build_actions(
        self, config: PipelineConfig, working_dir: Path
    ) -> list[BuildAction]:
        configure = [
            "./configure",
            f"--prefix={config.deps_prefix}",
            f"--libdir={config.dest / 'lib'}",
            f"--datadir={config.dest / 'share'}",
            *CONFIGURE_FLAGS,
        ]
        if config.host:
            configure.insert(1, f"--host={config.host}")
        return [
            BuildAction(argv=configure, description="configure ncurses"),
            BuildAction(
                argv=make(config, jobs=COMPILE_JOBS), description="compile ncurses"
            ),
            BuildAction(argv=make(config, "install"), description="install ncurses"),
        ]
