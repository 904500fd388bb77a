"""Resource monitor — advisory memory/disk check before building.

Never raises and never blocks the pipeline: values that cannot be read
are reported as unknown, and low values only produce warnings.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from dappforge.models.config import PipelineConfig
from dappforge.models.reports import ResourceReport

logger = logging.getLogger(__name__)

MEMINFO_PATH = Path("/proc/meminfo")


def read_available_memory_mb(meminfo: Path = MEMINFO_PATH) -> int | None:
    """Read ``MemAvailable`` in MB, or None where /proc is unavailable."""
    try:
        with open(meminfo) as f:
            for line in f:
                if line.startswith("MemAvailable:"):
                    return int(line.split()[1]) // 1024
    except (OSError, ValueError, IndexError):
        pass
    return None


def read_free_disk_mb(path: Path) -> int | None:
    """Free space in MB on the filesystem holding *path* (or its nearest parent)."""
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    try:
        return shutil.disk_usage(probe).free // (1024 * 1024)
    except OSError:
        return None


class ResourceMonitor:
    """Produces ``ResourceReport``s against configurable thresholds.

    Parameters
    ----------
    config:
        Supplies ``low_memory_mb``, ``low_disk_mb`` and the project dir.
    meminfo_path:
        Override for ``/proc/meminfo`` (tests, non-Linux hosts).
    """

    def __init__(
        self, config: PipelineConfig, *, meminfo_path: Path = MEMINFO_PATH
    ) -> None:
        self._config = config
        self._meminfo = meminfo_path

    def check(self) -> ResourceReport:
        config = self._config
        memory = read_available_memory_mb(self._meminfo)
        disk = read_free_disk_mb(config.project_dir)

        logger.info(
            "Available memory: %s", f"{memory}MB" if memory is not None else "unknown"
        )
        logger.info(
            "Available disk: %s", f"{disk}MB" if disk is not None else "unknown"
        )

        warnings: list[str] = []
        if memory is not None and memory < config.low_memory_mb:
            warnings.append(
                f"Low memory detected ({memory}MB < {config.low_memory_mb}MB). "
                "Consider reducing DAPPFORGE_MAKE_JOBS."
            )
        if disk is not None and disk < config.low_disk_mb:
            warnings.append(
                f"Low disk space ({disk}MB < {config.low_disk_mb}MB). "
                "Build may fail."
            )
        for message in warnings:
            logger.warning(message)

        return ResourceReport(
            available_memory_mb=memory,
            available_disk_mb=disk,
            low_memory_mb=config.low_memory_mb,
            low_disk_mb=config.low_disk_mb,
            checked_path=config.project_dir,
            warnings=warnings,
        )
