"""Artifact source models — where a stage's sources come from."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class ArchiveFormat(str, Enum):
    """How a cached artifact is probed and unpacked."""

    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_BZ2 = "tar.bz2"
    TAR_XZ = "tar.xz"
    ZIP = "zip"
    GIT = "git"
    FILE = "file"

    @property
    def is_tar(self) -> bool:
        return self in (
            ArchiveFormat.TAR,
            ArchiveFormat.TAR_GZ,
            ArchiveFormat.TAR_BZ2,
            ArchiveFormat.TAR_XZ,
        )

    @property
    def tar_compression(self) -> str:
        """Compression suffix for ``tarfile.open`` modes (``""`` for plain tar)."""
        return {
            ArchiveFormat.TAR: "",
            ArchiveFormat.TAR_GZ: "gz",
            ArchiveFormat.TAR_BZ2: "bz2",
            ArchiveFormat.TAR_XZ: "xz",
        }[self]


class ArtifactSource(BaseModel):
    """A remote artifact and the single cache entry it maps to.

    ``filename`` is the cache key inside the cache directory (optionally
    under ``cache_subdir``); ``folder`` is the working directory name the
    artifact unpacks into.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    filename: str = ""
    archive_format: ArchiveFormat = ArchiveFormat.TAR_GZ
    folder: str = ""
    branch: str | None = None  # git only
    cache_subdir: str | None = None
    sha256: str | None = None  # optional expected digest of the cache entry

    @model_validator(mode="after")
    def _check_fields(self) -> ArtifactSource:
        if self.archive_format == ArchiveFormat.GIT:
            if not self.branch:
                raise ValueError(f"git source {self.name!r} needs a branch")
        elif not self.filename:
            raise ValueError(f"source {self.name!r} needs a cache filename")
        if not self.folder:
            raise ValueError(f"source {self.name!r} needs an extraction folder")
        return self

    @property
    def is_cached(self) -> bool:
        """Whether the source lives in the cache directory (git sources do not)."""
        return self.archive_format != ArchiveFormat.GIT
