"""Abstract build stage — a declarative unit of fetch + build + install.

Every concrete stage inherits from BuildStage and declares only *what* to
build: its source artifact, its ordered build actions and the build-only
paths to delete after install. *How* a stage runs is fixed by
``StageRunner.run_stage()``:

    fetch -> extract -> build actions (in order) -> post-install cleanup

so every stage gets the same clean-extraction guarantee and the same
abort-on-first-failure behaviour regardless of subclass.
"""

from __future__ import annotations

import abc
from pathlib import Path
from typing import ClassVar

from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArtifactSource
from dappforge.models.stages import BuildAction, StageDefinition


class StageExecutionError(RuntimeError):
    """Raised when a stage cannot complete its build sequence."""


class BuildStage(abc.ABC):
    """Abstract base for all dappforge build stages.

    Subclasses **must** implement:
        * ``stage_id``      — registry key and CLI token (e.g. ``"ncurses"``).
        * ``display_name``  — human-readable name for reports.
        * ``source(config)`` — the ArtifactSource to fetch and extract.
        * ``build_actions(config, working_dir)`` — ordered commands.

    Subclasses **may** set:
        * ``ordinal``        — tie-breaker for the default order.
        * ``prerequisites``  — stage_ids that must come earlier when both
          are requested in one invocation.
        * ``cleanup_paths``  — glob patterns relative to the install root,
          removed right after install to bound disk usage.
    """

    ordinal: ClassVar[float] = 0.0
    prerequisites: ClassVar[tuple[str, ...]] = ()
    cleanup_paths: ClassVar[tuple[str, ...]] = ()

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier (e.g. ``'htop'``)."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        ...

    @abc.abstractmethod
    def source(self, config: PipelineConfig) -> ArtifactSource:
        """Return the artifact this stage builds from."""
        ...

    @abc.abstractmethod
    def build_actions(
        self, config: PipelineConfig, working_dir: Path
    ) -> list[BuildAction]:
        """Return the configure/compile/install commands, in order.

        Commands run with *working_dir* as their current directory.
        """
        ...

    # ------------------------------------------------------------------
    # Graph integration
    # ------------------------------------------------------------------

    def definition(self) -> StageDefinition:
        """The task-graph node for this stage."""
        return StageDefinition(
            stage_id=self.stage_id,
            display_name=self.display_name,
            ordinal=self.ordinal,
            prerequisites=list(self.prerequisites),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
