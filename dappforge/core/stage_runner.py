"""Stage runner — executes one build stage against a fresh source tree.

Lifecycle (fixed for every stage):

    1. fetch        — Fetcher ensures the artifact is cached
    2. extract      — Extractor recreates the working directory
    3. build        — each BuildAction runs in order, cwd = working dir;
                      the first non-zero exit aborts the stage
    4. cleanup      — the stage's build-only paths are removed
    5. report       — files added to the install roots are returned

Commands inherit the shared toolchain environment. Their combined
stdout/stderr is streamed line by line into the run log.
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Mapping
from pathlib import Path

from dappforge.core.extractor import Extractor, remove_path
from dappforge.core.fetcher import Fetcher
from dappforge.core.toolchain import build_environment, merge_action_env
from dappforge.models.config import PipelineConfig
from dappforge.models.reports import StageResult
from dappforge.models.stages import BuildAction, StageState
from dappforge.stages.base import BuildStage, StageExecutionError

logger = logging.getLogger(__name__)


class StageCommandError(StageExecutionError):
    """Raised when a build command exits non-zero (or cannot be started)."""

    def __init__(self, stage_id: str, argv: list[str], returncode: int) -> None:
        self.stage_id = stage_id
        self.argv = list(argv)
        self.returncode = returncode
        super().__init__(
            f"Stage {stage_id}: '{' '.join(argv)}' exited with status {returncode}"
        )


def snapshot_files(root: Path) -> dict[str, int]:
    """Map every file under *root* (relative path) to its mtime in ns."""
    if not root.is_dir():
        return {}
    snapshot: dict[str, int] = {}
    for path in root.rglob("*"):
        if path.is_file() or path.is_symlink():
            snapshot[path.relative_to(root).as_posix()] = path.lstat().st_mtime_ns
    return snapshot


class StageRunner:
    """Runs BuildStages with shared fetcher, extractor and environment.

    Parameters
    ----------
    config:
        Pipeline configuration.
    fetcher / extractor:
        Collaborators; created from *config* if not provided.
    base_env:
        Environment the toolchain variables are layered onto
        (defaults to ``os.environ``).
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        fetcher: Fetcher | None = None,
        extractor: Extractor | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self.fetcher = fetcher or Fetcher(config)
        self.extractor = extractor or Extractor(config)
        self._env = build_environment(config, base_env)

    @property
    def environment(self) -> dict[str, str]:
        return dict(self._env)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run_stage(self, stage: BuildStage) -> StageResult:
        """Execute the full stage lifecycle and report the install additions.

        Raises ``FetchError``, ``ExtractionError`` or ``StageCommandError``;
        nothing is retried.
        """
        started = time.monotonic()
        config = self._config
        logger.info("%s [%s] starting", stage.display_name, stage.stage_id)

        roots = {"": config.dest, "deps": config.deps_prefix}
        before = {key: snapshot_files(root) for key, root in roots.items()}

        # 1-2. Fresh sources
        source = stage.source(config)
        cached = self.fetcher.fetch(source)
        working_dir = self.extractor.extract(source, cached)

        # 3. Build actions
        for action in stage.build_actions(config, working_dir):
            self.run_action(stage.stage_id, action, working_dir)

        # 4. Build-only leftovers
        self._cleanup(stage)

        # 5. What landed in the install roots
        installed: list[str] = []
        for key, root in roots.items():
            after = snapshot_files(root)
            for rel, mtime in sorted(after.items()):
                if before[key].get(rel) != mtime:
                    installed.append(f"{key}:{rel}" if key else rel)

        elapsed = time.monotonic() - started
        logger.info(
            "%s [%s] passed in %.1fs (%d files installed)",
            stage.display_name,
            stage.stage_id,
            elapsed,
            len(installed),
        )
        return StageResult(
            stage_id=stage.stage_id,
            state=StageState.PASSED,
            working_dir=working_dir,
            installed_files=installed,
            elapsed_seconds=round(elapsed, 3),
        )

    def run_action(self, stage_id: str, action: BuildAction, cwd: Path) -> None:
        """Run one command, streaming its output; raise on non-zero exit."""
        env = merge_action_env(self._env, action.env)
        logger.info("[%s] %s", stage_id, action.label)
        logger.debug("[%s] exec %s (cwd=%s)", stage_id, action.argv, cwd)
        try:
            proc = subprocess.Popen(
                action.argv,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            logger.error("[%s] cannot start %s: %s", stage_id, action.argv[0], exc)
            raise StageCommandError(stage_id, action.argv, 127) from exc

        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                logger.info("[%s] %s", stage_id, line.rstrip("\n"))
        returncode = proc.wait()
        if returncode != 0:
            raise StageCommandError(stage_id, action.argv, returncode)

    def _cleanup(self, stage: BuildStage) -> None:
        for pattern in stage.cleanup_paths:
            for path in sorted(self._config.dest.glob(pattern)):
                logger.info("[%s] removing %s", stage.stage_id, path)
                remove_path(path)
