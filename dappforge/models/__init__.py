"""dappforge data models — all Pydantic v2, all frozen (immutable)."""

from dappforge.models.config import PipelineConfig
from dappforge.models.reports import (
    PackageReport,
    ResourceReport,
    RunSummary,
    StageResult,
)
from dappforge.models.sources import ArchiveFormat, ArtifactSource
from dappforge.models.stages import (
    PACKAGE_STAGE_ID,
    BuildAction,
    StageDefinition,
    StageState,
)

__all__ = [
    # sources
    "ArchiveFormat",
    "ArtifactSource",
    # stages
    "BuildAction",
    "PACKAGE_STAGE_ID",
    "StageDefinition",
    "StageState",
    # reports
    "PackageReport",
    "ResourceReport",
    "RunSummary",
    "StageResult",
    # config
    "PipelineConfig",
]
