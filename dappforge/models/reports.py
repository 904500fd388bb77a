"""Result and report models produced by a pipeline run."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from dappforge.models.stages import StageState


class StageResult(BaseModel):
    """Outcome of one stage within an invocation."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    state: StageState
    working_dir: Path | None = None
    installed_files: list[str] = []  # relative to the root they landed in
    elapsed_seconds: float = 0.0
    error: str | None = None


class PackageReport(BaseModel):
    """What the packager produced and what it threw away on the way."""

    model_config = ConfigDict(frozen=True)

    archive_path: Path
    size_bytes: int
    member_count: int
    sha256: str
    removed_paths: list[str] = []
    stripped_files: list[str] = []
    strip_failures: list[str] = []


class ResourceReport(BaseModel):
    """Advisory snapshot of host memory and disk.

    ``None`` means the value could not be read on this host.
    """

    model_config = ConfigDict(frozen=True)

    available_memory_mb: int | None
    available_disk_mb: int | None
    low_memory_mb: int
    low_disk_mb: int
    checked_path: Path
    warnings: list[str] = []

    @property
    def is_low_memory(self) -> bool:
        return (
            self.available_memory_mb is not None
            and self.available_memory_mb < self.low_memory_mb
        )

    @property
    def is_low_disk(self) -> bool:
        return (
            self.available_disk_mb is not None
            and self.available_disk_mb < self.low_disk_mb
        )


class RunSummary(BaseModel):
    """Everything one ``dispatch()`` call did, in execution order."""

    model_config = ConfigDict(frozen=True)

    tokens: list[str]
    results: list[StageResult] = []
    package: PackageReport | None = None
    resources: ResourceReport | None = None
    log_path: Path | None = None
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def succeeded(self) -> bool:
        return all(
            r.state in (StageState.PASSED, StageState.SKIPPED) for r in self.results
        )
