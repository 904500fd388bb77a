"""dappforge build stages — registry mapping stage_id to stage class.

Usage::

    from dappforge.stages import STAGE_REGISTRY, get_stage

    stage = get_stage("ncurses")
    result = runner.run_stage(stage)

CLI tokens that are not reserved words are looked up here by exact key.
"""

from __future__ import annotations

from dappforge.models.stages import PACKAGE_STAGE_ID, StageDefinition
from dappforge.stages.base import BuildStage, StageExecutionError
from dappforge.stages.htop import HtopStage
from dappforge.stages.ncurses import NcursesStage

# ---------------------------------------------------------------------------
# Stage registry: stage_id -> stage class
# ---------------------------------------------------------------------------

STAGE_REGISTRY: dict[str, type[BuildStage]] = {
    "ncurses": NcursesStage,
    "htop": HtopStage,
}


def get_stage(
    stage_id: str, registry: dict[str, type[BuildStage]] | None = None
) -> BuildStage:
    """Instantiate and return a stage by its ``stage_id``.

    Raises ``KeyError`` if the stage_id is not registered.
    """
    registry = STAGE_REGISTRY if registry is None else registry
    try:
        cls = registry[stage_id]
    except KeyError:
        raise KeyError(
            f"Unknown stage_id {stage_id!r}. "
            f"Registered stages: {sorted(registry.keys())}"
        ) from None
    return cls()


def package_definition(build_stage_ids: list[str]) -> StageDefinition:
    """The synthetic packaging node: runs after every build stage."""
    return StageDefinition(
        stage_id=PACKAGE_STAGE_ID,
        display_name="Package",
        ordinal=float("inf"),
        prerequisites=list(build_stage_ids),
    )


def stage_definitions(
    registry: dict[str, type[BuildStage]] | None = None,
) -> list[StageDefinition]:
    """All graph nodes: every registered build stage plus ``package``."""
    registry = STAGE_REGISTRY if registry is None else registry
    defs = [cls().definition() for cls in registry.values()]
    return [*defs, package_definition([d.stage_id for d in defs])]


__all__ = [
    "BuildStage",
    "StageExecutionError",
    "STAGE_REGISTRY",
    "get_stage",
    "package_definition",
    "stage_definitions",
    "HtopStage",
    "NcursesStage",
]
