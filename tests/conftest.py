"""Shared test fixtures for dappforge."""

from __future__ import annotations

import io
import sys
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import ClassVar

import httpx
import pytest

from dappforge.core.fetcher import Fetcher
from dappforge.core.stage_runner import StageRunner
from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArtifactSource
from dappforge.models.stages import BuildAction
from dappforge.monitor.resources import ResourceMonitor
from dappforge.stages.base import BuildStage

# ---------------------------------------------------------------------------
# Inline build scripts for the fake two-stage project
# ---------------------------------------------------------------------------

LIBFOO_INSTALL = """
import os, shutil
shutil.copytree('lib', os.path.join(os.environ['DEST'], 'lib'), dirs_exist_ok=True)
shutil.copytree('include', os.path.join(os.environ['DEPS'], 'include'), dirs_exist_ok=True)
"""

APP_INSTALL = """
import os, sys
deps, dest = os.environ['DEPS'], os.environ['DEST']
if not os.path.isfile(os.path.join(deps, 'include', 'foo.h')):
    sys.exit('foo.h not found in ' + deps)
for sub in ('bin', 'include', 'lib', os.path.join('share', 'man', 'man1')):
    os.makedirs(os.path.join(dest, sub), exist_ok=True)
app = os.path.join(dest, 'bin', 'app')
with open(app, 'w') as f:
    f.write('#!/bin/sh\\necho app\\n')
os.chmod(app, 0o755)
for rel in ('include/app.h', 'lib/libapp.la', 'share/man/man1/app.1'):
    open(os.path.join(dest, rel), 'w').close()
"""

LIBFOO_FILES = {
    "include/foo.h": "int foo(void);\n",
    "lib/libfoo.so.1": "\x7fELF fake shared object\n",
    "lib/libfoo.a": "!<arch>\n",
}


class ScriptedStage(BuildStage):
    """Test stage whose build actions are inline Python snippets."""

    stage_name: ClassVar[str] = "scripted"
    scripts: ClassVar[tuple[str, ...]] = ()

    @property
    def stage_id(self) -> str:
        return self.stage_name

    @property
    def display_name(self) -> str:
        return f"{self.stage_name} (test)"

    def source(self, config: PipelineConfig) -> ArtifactSource:
        folder = f"{self.stage_name}-1.0"
        return ArtifactSource(
            name=self.stage_name,
            url=f"https://downloads.example.test/{folder}.tar.gz",
            filename=f"{folder}.tar.gz",
            folder=folder,
        )

    def build_actions(
        self, config: PipelineConfig, working_dir: Path
    ) -> list[BuildAction]:
        return [
            BuildAction(
                argv=[sys.executable, "-c", script],
                description=f"{self.stage_name} step {i}",
            )
            for i, script in enumerate(self.scripts, 1)
        ]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty project directory named ``myapp``."""
    path = tmp_path / "myapp"
    path.mkdir()
    return path


@pytest.fixture
def config(project_dir: Path, tmp_path: Path) -> PipelineConfig:
    """Config rooted in tmp_path; the host triple has no strip tool on PATH."""
    return PipelineConfig(
        project_name="myapp",
        project_dir=project_dir,
        dest=tmp_path / "dest",
        host="dappforge-test-none",
        source_date_epoch=1_700_000_000,
    )


@pytest.fixture
def meminfo(tmp_path: Path) -> Path:
    """A fake /proc/meminfo reporting 2 GB available."""
    path = tmp_path / "meminfo"
    path.write_text(
        "MemTotal:        4096000 kB\n"
        "MemFree:          512000 kB\n"
        "MemAvailable:    2048000 kB\n"
    )
    return path


# ---------------------------------------------------------------------------
# Archives and HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def make_tarball() -> Callable[..., Path]:
    """Factory fixture: write a tarball with every file under *folder*/."""

    def _factory(
        path: Path,
        folder: str,
        files: dict[str, str],
        mode: str = "w:gz",
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(path, mode) as tar:
            for rel, content in sorted(files.items()):
                data = content.encode()
                info = tarfile.TarInfo(f"{folder}/{rel}")
                info.size = len(data)
                info.mode = 0o755 if rel.startswith("bin/") else 0o644
                tar.addfile(info, io.BytesIO(data))
        return path

    return _factory


@pytest.fixture
def offline_client() -> httpx.Client:
    """An httpx client that fails the test on any request."""

    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected download of {request.url}")

    return httpx.Client(transport=httpx.MockTransport(_handler))


# ---------------------------------------------------------------------------
# Stages and orchestration
# ---------------------------------------------------------------------------


@pytest.fixture
def make_stage(
    config: PipelineConfig, make_tarball: Callable[..., Path]
) -> Callable[..., type[BuildStage]]:
    """Factory fixture: a ScriptedStage subclass with its source pre-cached."""

    def _factory(
        stage_id: str,
        *scripts: str,
        prerequisites: tuple[str, ...] = (),
        ordinal: float = 1.0,
        cleanup_paths: tuple[str, ...] = (),
        files: dict[str, str] | None = None,
    ) -> type[BuildStage]:
        folder = f"{stage_id}-1.0"
        make_tarball(
            config.cache_dir / f"{folder}.tar.gz",
            folder,
            files or {"README": f"{stage_id}\n"},
        )
        return type(
            f"{stage_id.title()}Stage",
            (ScriptedStage,),
            {
                "stage_name": stage_id,
                "scripts": scripts,
                "prerequisites": prerequisites,
                "ordinal": ordinal,
                "cleanup_paths": cleanup_paths,
            },
        )

    return _factory


@pytest.fixture
def fake_registry(
    make_stage: Callable[..., type[BuildStage]],
) -> dict[str, type[BuildStage]]:
    """A library stage and an app stage that compiles against it."""
    return {
        "libfoo": make_stage(
            "libfoo",
            LIBFOO_INSTALL,
            ordinal=1.0,
            cleanup_paths=("lib/*.a",),
            files=LIBFOO_FILES,
        ),
        "app": make_stage(
            "app", APP_INSTALL, prerequisites=("libfoo",), ordinal=2.0
        ),
    }


@pytest.fixture
def runner(config: PipelineConfig, offline_client: httpx.Client) -> StageRunner:
    """A StageRunner that may only use the pre-seeded cache."""
    return StageRunner(config, fetcher=Fetcher(config, client=offline_client))


@pytest.fixture
def monitor(config: PipelineConfig, meminfo: Path) -> ResourceMonitor:
    return ResourceMonitor(config, meminfo_path=meminfo)
