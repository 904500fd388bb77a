"""Task graph — explicit DAG of stages with declared predecessors.

The graph:
- Rejects cycles at construction time.
- Resolves names through an explicit registry; unknown names fail before
  anything runs.
- Derives the default full-pipeline order (topological, ties by ordinal).
- Never reorders a request: it only rejects one that would run a stage
  before one of its predecessors when both are requested.
- Runs stages strictly sequentially, each at most once per invocation.
  When a stage fails, every pending dependent is marked BLOCKED.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

from dappforge.models.reports import StageResult
from dappforge.models.stages import StageDefinition, StageState

logger = logging.getLogger(__name__)


class UnknownTargetError(KeyError):
    """Raised when a requested name resolves to no stage or operation."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(target)

    def __str__(self) -> str:
        return f"Unknown target: {self.target}"


class CyclicDependencyError(ValueError):
    """Raised when the stage graph contains a cycle."""


class StageOrderError(ValueError):
    """Raised when a request places a stage before one of its predecessors."""


class TaskGraph:
    """Directed acyclic graph of stage prerequisites.

    Parameters
    ----------
    stage_definitions:
        Every node, each naming its predecessors.
    """

    def __init__(self, stage_definitions: list[StageDefinition]) -> None:
        self._stages: dict[str, StageDefinition] = {
            sd.stage_id: sd for sd in stage_definitions
        }
        # Forward edges: stage_id -> prerequisite stage_ids
        self._prerequisites: dict[str, list[str]] = {
            sd.stage_id: list(sd.prerequisites) for sd in stage_definitions
        }
        # Reverse edges: stage_id -> stages that depend on it
        self._dependents: dict[str, list[str]] = {
            sd.stage_id: [] for sd in stage_definitions
        }
        for sd in stage_definitions:
            for prereq in sd.prerequisites:
                if prereq not in self._stages:
                    raise UnknownTargetError(prereq)
                self._dependents[prereq].append(sd.stage_id)

        self._order = self._topological_order()

    def _topological_order(self) -> list[str]:
        """Kahn's algorithm; ready nodes are taken by ordinal."""
        in_degree = {sid: len(p) for sid, p in self._prerequisites.items()}
        ready = sorted(
            (sid for sid, deg in in_degree.items() if deg == 0),
            key=lambda s: self._stages[s].ordinal,
        )
        queue = deque(ready)
        result: list[str] = []
        while queue:
            node = queue.popleft()
            result.append(node)
            for dep in sorted(
                self._dependents[node], key=lambda s: self._stages[s].ordinal
            ):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if len(result) != len(self._stages):
            raise CyclicDependencyError(
                f"Stage graph has a cycle. "
                f"Ordered {len(result)}/{len(self._stages)} stages."
            )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def default_order(self) -> list[str]:
        """All stage_ids in the full-pipeline order."""
        return list(self._order)

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self._stages

    def get_definition(self, stage_id: str) -> StageDefinition:
        try:
            return self._stages[stage_id]
        except KeyError:
            raise UnknownTargetError(stage_id) from None

    def get_prerequisites(self, stage_id: str) -> list[str]:
        return list(self._prerequisites.get(stage_id, []))

    def get_dependents(self, stage_id: str) -> list[str]:
        """Return all transitive dependents (BFS order)."""
        result: list[str] = []
        queue = deque(self._dependents.get(stage_id, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(self._dependents.get(node, []))
        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def resolve(self, names: list[str]) -> list[StageDefinition]:
        """Map every name to its definition; the first unknown name raises."""
        return [self.get_definition(name) for name in names]

    def check_order(self, names: list[str]) -> None:
        """Reject a request that runs a stage before a requested predecessor."""
        first_seen: dict[str, int] = {}
        for index, name in enumerate(names):
            first_seen.setdefault(name, index)
        for name, index in first_seen.items():
            for prereq in self._prerequisites.get(name, []):
                if prereq in first_seen and first_seen[prereq] > index:
                    raise StageOrderError(
                        f"'{name}' is requested before its prerequisite '{prereq}'"
                    )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        names: list[str],
        execute: Callable[[str], StageResult],
        states: dict[str, StageState] | None = None,
        results: list[StageResult] | None = None,
    ) -> list[StageResult]:
        """Execute *names* sequentially in the order given.

        *execute* runs one stage and returns its result; any exception it
        raises marks the stage FAILED, blocks its pending dependents and
        propagates. *states* carries state across calls within the same
        invocation, so a stage never runs twice. Results are appended to
        *results* as they happen, so a caller still sees what ran before a
        failure.
        """
        self.resolve(names)
        self.check_order(names)
        if states is None:
            states = {}
        if results is None:
            results = []

        for name in names:
            current = states.get(name, StageState.NOT_STARTED)
            if current == StageState.PASSED:
                logger.info("%s already ran in this invocation; skipping", name)
                results.append(StageResult(stage_id=name, state=StageState.SKIPPED))
                continue

            states[name] = StageState.RUNNING
            try:
                result = execute(name)
            except Exception as exc:
                states[name] = StageState.FAILED
                results.append(
                    StageResult(stage_id=name, state=StageState.FAILED, error=str(exc))
                )
                blocked = self.cascade_block(name, states)
                if blocked:
                    logger.error("%s failed; blocked: %s", name, ", ".join(blocked))
                results.extend(
                    StageResult(stage_id=b, state=StageState.BLOCKED)
                    for b in blocked
                    if b in names
                )
                raise
            states[name] = StageState.PASSED
            results.append(result)
        return results

    def cascade_block(
        self, failed_stage_id: str, states: dict[str, StageState]
    ) -> list[str]:
        """Mark every pending transitive dependent BLOCKED; return them."""
        blocked: list[str] = []
        for stage_id in self.get_dependents(failed_stage_id):
            if states.get(stage_id, StageState.NOT_STARTED) == StageState.NOT_STARTED:
                states[stage_id] = StageState.BLOCKED
                blocked.append(stage_id)
        return blocked
