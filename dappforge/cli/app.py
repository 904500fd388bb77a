"""Main Typer application — the single ``dappforge`` build command.

Entry point: ``dappforge`` (configured via pyproject.toml scripts).

Examples::

    dappforge                  # full pipeline: every stage, then package
    dappforge ncurses htop     # just these stages, in this order
    dappforge clean package    # wipe build outputs, then re-package
    dappforge check            # resource report only
"""

from __future__ import annotations

import logging

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from dappforge.config import BuildSettings
from dappforge.core.extractor import ExtractionError
from dappforge.core.fetcher import FetchError
from dappforge.core.orchestrator import CHECK, Orchestrator
from dappforge.core.packager import PackagingError
from dappforge.core.run_log import close_run_logging, configure_run_logging
from dappforge.core.task_graph import (
    CyclicDependencyError,
    StageOrderError,
    UnknownTargetError,
)
from dappforge.monitor.renderer import MonitorRenderer
from dappforge.stages import StageExecutionError

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

PIPELINE_ERRORS = (
    FetchError,
    ExtractionError,
    StageExecutionError,
    PackagingError,
    UnknownTargetError,
    StageOrderError,
    CyclicDependencyError,
    OSError,
)

app = typer.Typer(
    name="dappforge",
    help="dappforge: build third-party sources into an appliance app package.",
    rich_markup_mode="rich",
    add_completion=False,
)


def _invocation(
    targets: list[str], jobs: int | None, debug: bool, quiet: bool
) -> list[str]:
    argv = ["dappforge"]
    if jobs is not None:
        argv.append(f"--jobs={jobs}")
    if debug:
        argv.append("--debug")
    if quiet:
        argv.append("--quiet")
    return [*argv, *targets]


@app.command(name="build")
def build_cmd(
    targets: list[str] | None = typer.Argument(
        None,
        help="Stage names or clean / distclean / package / check / all. "
        "Defaults to the full pipeline.",
        show_default=False,
    ),
    jobs: int | None = typer.Option(
        None,
        "--jobs",
        "-j",
        min=1,
        help="Parallel make jobs (overrides DAPPFORGE_MAKE_JOBS).",
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Log every command and its environment."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only write the run log; no console output."
    ),
) -> None:
    """Run the requested targets left to right, stopping at the first failure."""
    tokens = list(targets or [])
    try:
        config = BuildSettings().to_pipeline_config(
            make_jobs=jobs,
            debug=debug or None,
            quiet=quiet or None,
        )
    except ValidationError as exc:
        err_console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from None

    log_path = configure_run_logging(
        config, _invocation(tokens, jobs, debug, quiet), console=console
    )
    renderer = MonitorRenderer(console=console)
    orchestrator: Orchestrator | None = None
    try:
        orchestrator = Orchestrator(config, log_path=log_path)
        summary = orchestrator.dispatch(tokens)
    except PIPELINE_ERRORS as exc:
        # The run log is the only record of a quiet run, so errors always go there.
        logger.error("%s", exc, exc_info=config.debug)
        if config.quiet:
            err_console.print(f"[bold red]ERROR:[/bold red] {escape(str(exc))}")
        if orchestrator is not None and orchestrator.results and not config.quiet:
            renderer.print_summary(orchestrator.summary(tokens))
        raise typer.Exit(code=1) from None
    finally:
        if orchestrator is not None:
            orchestrator.close()
        close_run_logging()

    if config.quiet:
        return
    if CHECK in tokens and summary.resources is not None:
        renderer.print_resources(summary.resources)
    if summary.results or summary.package is not None:
        renderer.print_summary(summary)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
