"""Pipeline orchestrator — resolves CLI tokens and drives every component.

The Orchestrator wires together the TaskGraph, StageRunner (with its
Fetcher and Extractor), Packager and ResourceMonitor into one sequential
pipeline. It is constructed once per invocation from a frozen
PipelineConfig.

Token resolution
----------------
Reserved tokens map to fixed operations::

    clean      remove install roots and working directories
    distclean  clean + cached downloads + build logs
    package    run the packager
    check      resource report only
    all        the full default pipeline

Every other token must be a registered stage name. All tokens are resolved
before the first one runs: a single unknown token means nothing executes.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from dappforge.core.extractor import remove_path
from dappforge.core.packager import Packager
from dappforge.core.run_log import LOG_GLOB
from dappforge.core.stage_runner import StageRunner
from dappforge.core.task_graph import TaskGraph, UnknownTargetError
from dappforge.models.config import PipelineConfig
from dappforge.models.reports import (
    PackageReport,
    ResourceReport,
    RunSummary,
    StageResult,
)
from dappforge.models.stages import PACKAGE_STAGE_ID, StageState
from dappforge.monitor.resources import ResourceMonitor
from dappforge.stages import STAGE_REGISTRY, BuildStage, get_stage, stage_definitions

logger = logging.getLogger(__name__)

CLEAN = "clean"
DISTCLEAN = "distclean"
CHECK = "check"
ALL = "all"
RESERVED_TOKENS: frozenset[str] = frozenset(
    {CLEAN, DISTCLEAN, PACKAGE_STAGE_ID, CHECK, ALL}
)


class Orchestrator:
    """Central pipeline driver.

    Parameters
    ----------
    config:
        Frozen pipeline configuration for this invocation.
    registry:
        Stage registry (stage_id -> class). Defaults to ``STAGE_REGISTRY``.
    runner / packager / monitor:
        Collaborators; created from *config* if not provided.
    log_path:
        The current run log, spared by ``distclean``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        registry: dict[str, type[BuildStage]] | None = None,
        runner: StageRunner | None = None,
        packager: Packager | None = None,
        monitor: ResourceMonitor | None = None,
        log_path: Path | None = None,
    ) -> None:
        self.config = config
        self.registry = STAGE_REGISTRY if registry is None else registry
        self.graph = TaskGraph(stage_definitions(self.registry))
        self.runner = runner or StageRunner(config)
        self.packager = packager or Packager(config)
        self.monitor = monitor or ResourceMonitor(config)
        self.log_path = log_path

        # Invocation state
        self.states: dict[str, StageState] = {}
        self.results: list[StageResult] = []
        self.package_report: PackageReport | None = None
        self.resource_report: ResourceReport | None = None
        self._preflight_done = False
        self.started_at = datetime.now(timezone.utc)

    def close(self) -> None:
        self.runner.fetcher.close()

    # ------------------------------------------------------------------
    # Token resolution
    # ------------------------------------------------------------------

    def plan(self, tokens: list[str]) -> list[str]:
        """Validate *tokens* without running anything.

        No tokens means ``["all"]``. Raises ``UnknownTargetError`` for the
        first token that is neither reserved nor a registered stage, and
        ``StageOrderError`` if the requested stages contradict the graph.
        """
        plan = list(tokens) or [ALL]
        stage_sequence: list[str] = []
        for token in plan:
            if token == ALL:
                stage_sequence.extend(self.graph.default_order)
            elif token == PACKAGE_STAGE_ID or token in self.registry:
                stage_sequence.append(token)
            elif token not in RESERVED_TOKENS:
                raise UnknownTargetError(token)
        self.graph.check_order(stage_sequence)
        return plan

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, tokens: list[str]) -> RunSummary:
        """Run every token left to right, each completing before the next."""
        plan = self.plan(tokens)
        logger.debug("Plan: %s", " ".join(plan))

        for token in plan:
            if token == CLEAN:
                self.clean()
            elif token == DISTCLEAN:
                self.distclean()
            elif token == CHECK:
                self.check()
            elif token == ALL:
                self._preflight()
                self.run_stages(self.graph.default_order)
            else:
                self._preflight()
                self.run_stages([token])
        return self.summary(tokens)

    def summary(self, tokens: list[str]) -> RunSummary:
        """Snapshot of everything done so far (also valid after a failure)."""
        return RunSummary(
            tokens=list(tokens),
            results=list(self.results),
            package=self.package_report,
            resources=self.resource_report,
            log_path=self.log_path,
            started_at=self.started_at,
        )

    def run_stages(self, names: list[str]) -> list[StageResult]:
        return self.graph.run(
            names, self._execute, states=self.states, results=self.results
        )

    def _execute(self, name: str) -> StageResult:
        if name == PACKAGE_STAGE_ID:
            started = time.monotonic()
            report = self.packager.package()
            self.package_report = report
            return StageResult(
                stage_id=PACKAGE_STAGE_ID,
                state=StageState.PASSED,
                installed_files=[report.archive_path.name],
                elapsed_seconds=round(time.monotonic() - started, 3),
            )
        return self.runner.run_stage(get_stage(name, self.registry))

    def _preflight(self) -> None:
        if self._preflight_done or not self.config.preflight_check:
            return
        self.check()

    # ------------------------------------------------------------------
    # Reserved operations
    # ------------------------------------------------------------------

    def check(self) -> ResourceReport:
        """Advisory resource report; never raises for low resources."""
        self._preflight_done = True
        self.resource_report = self.monitor.check()
        return self.resource_report

    def clean(self) -> None:
        """Remove install roots, working directories and stray temp files."""
        config = self.config
        logger.info("Cleaning build artifacts...")
        for path in (config.deps_prefix, config.dest):
            if path.exists() or path.is_symlink():
                logger.debug("removing %s", path)
                remove_path(path)
        if config.work_dir.is_dir():
            for child in sorted(config.work_dir.iterdir()):
                remove_path(child)
        if config.project_dir.is_dir():
            for tmp in sorted(config.project_dir.glob("*.tmp")):
                remove_path(tmp)
        if config.cache_dir.is_dir():
            for partial in sorted(config.cache_dir.rglob("*.part")):
                remove_path(partial)

    def distclean(self) -> None:
        """``clean`` plus every cached download and previous build log."""
        config = self.config
        logger.info("Performing distribution clean...")
        self.clean()
        current = self.log_path.resolve() if self.log_path else None
        for log_file in sorted(config.run_log_dir.glob(LOG_GLOB)):
            if log_file.resolve() != current:
                remove_path(log_file)
        if config.cache_dir.is_dir():
            for child in sorted(config.cache_dir.iterdir()):
                remove_path(child)
