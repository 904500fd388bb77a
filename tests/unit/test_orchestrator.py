"""Tests for the Orchestrator — token dispatch, preflight, clean targets."""

from __future__ import annotations

from pathlib import Path

import pytest

from dappforge.core.orchestrator import Orchestrator
from dappforge.core.stage_runner import StageCommandError, StageRunner
from dappforge.core.task_graph import StageOrderError, UnknownTargetError
from dappforge.models.config import PipelineConfig
from dappforge.models.stages import StageState
from dappforge.monitor.resources import ResourceMonitor


class CountingMonitor(ResourceMonitor):
    calls = 0

    def check(self):
        self.calls += 1
        return super().check()


@pytest.fixture
def counting_monitor(config: PipelineConfig, meminfo: Path) -> CountingMonitor:
    return CountingMonitor(config, meminfo_path=meminfo)


@pytest.fixture
def orchestrator(
    config: PipelineConfig,
    fake_registry,
    runner: StageRunner,
    counting_monitor: CountingMonitor,
) -> Orchestrator:
    return Orchestrator(
        config, registry=fake_registry, runner=runner, monitor=counting_monitor
    )


def _states(summary) -> list[tuple[str, StageState]]:
    return [(r.stage_id, r.state) for r in summary.results]


class TestPlan:
    def test_no_tokens_means_all(self, orchestrator: Orchestrator):
        assert orchestrator.plan([]) == ["all"]

    def test_reserved_and_stage_tokens(self, orchestrator: Orchestrator):
        tokens = ["clean", "libfoo", "app", "package", "check", "distclean"]
        assert orchestrator.plan(tokens) == tokens

    def test_unknown_token(self, orchestrator: Orchestrator):
        with pytest.raises(UnknownTargetError, match="Unknown target: openssl"):
            orchestrator.plan(["libfoo", "openssl"])

    def test_out_of_order_request(self, orchestrator: Orchestrator):
        with pytest.raises(StageOrderError):
            orchestrator.plan(["app", "libfoo"])


class TestDispatch:
    def test_full_pipeline(self, orchestrator: Orchestrator, config: PipelineConfig):
        summary = orchestrator.dispatch([])
        assert _states(summary) == [
            ("libfoo", StageState.PASSED),
            ("app", StageState.PASSED),
            ("package", StageState.PASSED),
        ]
        assert summary.succeeded
        assert summary.package is not None
        assert summary.package.archive_path == config.package_path

    def test_unknown_token_runs_nothing(self, orchestrator: Orchestrator, config: PipelineConfig):
        with pytest.raises(UnknownTargetError):
            orchestrator.dispatch(["libfoo", "bogus"])
        assert not config.work_dir.exists()
        assert orchestrator.results == []
        assert orchestrator.monitor.calls == 0

    def test_predecessor_is_not_forced(self, orchestrator: Orchestrator):
        with pytest.raises(StageCommandError):
            orchestrator.dispatch(["app"])
        assert _states(orchestrator.summary(["app"])) == [("app", StageState.FAILED)]

    def test_repeated_stage_runs_once(self, orchestrator: Orchestrator):
        summary = orchestrator.dispatch(["libfoo", "libfoo"])
        assert _states(summary) == [
            ("libfoo", StageState.PASSED),
            ("libfoo", StageState.SKIPPED),
        ]

    def test_failure_stops_later_tokens(
        self, config: PipelineConfig, make_stage, runner, counting_monitor
    ):
        registry = {
            "broken": make_stage("broken", "import sys; sys.exit(2)", ordinal=1.0),
            "after": make_stage("after", "pass", prerequisites=("broken",), ordinal=2.0),
        }
        orchestrator = Orchestrator(
            config, registry=registry, runner=runner, monitor=counting_monitor
        )
        with pytest.raises(StageCommandError):
            orchestrator.dispatch(["all"])
        assert _states(orchestrator.summary(["all"])) == [
            ("broken", StageState.FAILED),
            ("after", StageState.BLOCKED),
            ("package", StageState.BLOCKED),
        ]
        assert not config.package_path.exists()

    def test_preflight_runs_once(self, orchestrator: Orchestrator):
        summary = orchestrator.dispatch(["libfoo", "app", "package"])
        assert orchestrator.monitor.calls == 1
        assert summary.resources is not None

    def test_explicit_check_counts_as_preflight(self, orchestrator: Orchestrator):
        orchestrator.dispatch(["check", "libfoo", "app"])
        assert orchestrator.monitor.calls == 1

    def test_preflight_disabled(
        self, config: PipelineConfig, fake_registry, runner, meminfo
    ):
        monitor = CountingMonitor(config, meminfo_path=meminfo)
        orchestrator = Orchestrator(
            config.model_copy(update={"preflight_check": False}),
            registry=fake_registry,
            runner=runner,
            monitor=monitor,
        )
        orchestrator.dispatch(["libfoo"])
        assert monitor.calls == 0

    def test_check_only(self, orchestrator: Orchestrator, config: PipelineConfig):
        summary = orchestrator.dispatch(["check"])
        assert summary.results == []
        assert summary.resources is not None
        assert summary.resources.available_memory_mb == 2000
        assert not config.work_dir.exists()


class TestClean:
    @pytest.fixture
    def built(self, orchestrator: Orchestrator, config: PipelineConfig) -> Orchestrator:
        orchestrator.dispatch([])
        (config.project_dir / "scratch.tmp").write_text("x")
        (config.project_dir / "build_20250101_000000.log").write_text("old run\n")
        return orchestrator

    def test_clean(self, built: Orchestrator, config: PipelineConfig):
        built.dispatch(["clean"])
        assert not config.dest.exists()
        assert not config.deps_prefix.exists()
        assert config.work_dir.is_dir() and list(config.work_dir.iterdir()) == []
        assert not (config.project_dir / "scratch.tmp").exists()
        # Downloads and logs survive a plain clean
        assert (config.cache_dir / "libfoo-1.0.tar.gz").exists()
        assert (config.project_dir / "build_20250101_000000.log").exists()

    def test_distclean(self, built: Orchestrator, config: PipelineConfig):
        built.dispatch(["distclean"])
        assert not config.dest.exists()
        assert list(config.cache_dir.iterdir()) == []
        assert not (config.project_dir / "build_20250101_000000.log").exists()

    def test_distclean_keeps_current_log(
        self, config: PipelineConfig, fake_registry, runner, counting_monitor
    ):
        current = config.project_dir / "build_20260101_120000.log"
        current.write_text("dappforge distclean\n")
        orchestrator = Orchestrator(
            config,
            registry=fake_registry,
            runner=runner,
            monitor=counting_monitor,
            log_path=current,
        )
        orchestrator.dispatch(["distclean"])
        assert current.exists()

    def test_stages_do_not_rerun_in_same_invocation(self, built: Orchestrator):
        summary = built.dispatch(["clean", "libfoo"])
        assert summary.results[-1].stage_id == "libfoo"
        assert summary.results[-1].state == StageState.SKIPPED
