"""Stage models — definitions, states and the build actions a stage runs."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """State of a stage within a single invocation."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"  # requested more than once; ran the first time only


class StageDefinition(BaseModel):
    """Defines a graph node and its declared predecessors.

    Ordering is declared, not inferred: the predecessors only fix the
    default order and reject requests that would run a stage before one of
    its predecessors.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    ordinal: float
    prerequisites: list[str] = []


class BuildAction(BaseModel):
    """One opaque external command in a stage's build sequence."""

    model_config = ConfigDict(frozen=True)

    argv: list[str] = Field(min_length=1)
    env: dict[str, str] = {}
    description: str = ""

    @property
    def label(self) -> str:
        return self.description or " ".join(self.argv)


PACKAGE_STAGE_ID = "package"
