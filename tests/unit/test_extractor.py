"""Tests for the Extractor — fresh working directories for every format."""

from __future__ import annotations

import os
import zipfile
from pathlib import Path

import pytest

from dappforge.core.extractor import ExtractionError, Extractor, remove_path
from dappforge.models.config import PipelineConfig
from dappforge.models.sources import ArchiveFormat, ArtifactSource


def _source(fmt: ArchiveFormat, filename: str, folder: str = "widget-1.0") -> ArtifactSource:
    return ArtifactSource(
        name="widget",
        url=f"https://downloads.example.test/{filename}",
        filename=filename,
        archive_format=fmt,
        folder=folder,
    )


@pytest.fixture
def extractor(config: PipelineConfig) -> Extractor:
    return Extractor(config)


class TestTarExtraction:
    @pytest.mark.parametrize(
        ("fmt", "mode", "suffix"),
        [
            (ArchiveFormat.TAR, "w", "tar"),
            (ArchiveFormat.TAR_GZ, "w:gz", "tar.gz"),
            (ArchiveFormat.TAR_BZ2, "w:bz2", "tar.bz2"),
            (ArchiveFormat.TAR_XZ, "w:xz", "tar.xz"),
        ],
    )
    def test_formats(self, extractor, make_tarball, tmp_path, config, fmt, mode, suffix):
        archive = make_tarball(
            tmp_path / f"widget-1.0.{suffix}", "widget-1.0", {"configure": "#!/bin/sh\n"}, mode
        )
        target = extractor.extract(_source(fmt, archive.name), archive)
        assert target == config.work_dir / "widget-1.0"
        assert (target / "configure").read_text() == "#!/bin/sh\n"

    def test_stale_files_are_removed(self, extractor, make_tarball, tmp_path):
        archive = make_tarball(tmp_path / "w.tar.gz", "widget-1.0", {"a.c": "int a;\n"})
        source = _source(ArchiveFormat.TAR_GZ, archive.name)
        target = extractor.extract(source, archive)
        (target / "a.o").write_text("stale object")
        (target / "a.c").write_text("edited")

        target = extractor.extract(source, archive)
        assert not (target / "a.o").exists()
        assert (target / "a.c").read_text() == "int a;\n"

    def test_corrupt_archive_raises(self, extractor, tmp_path):
        archive = tmp_path / "w.tar.gz"
        archive.write_bytes(b"\x1f\x8b garbage")
        with pytest.raises(ExtractionError):
            extractor.extract(_source(ArchiveFormat.TAR_GZ, archive.name), archive)

    def test_wrong_folder_raises(self, extractor, make_tarball, tmp_path):
        archive = make_tarball(tmp_path / "w.tar.gz", "other-2.0", {"x": "y"})
        with pytest.raises(ExtractionError, match="did not unpack"):
            extractor.extract(_source(ArchiveFormat.TAR_GZ, archive.name), archive)

    def test_missing_cache_entry_raises(self, extractor, tmp_path):
        with pytest.raises(ExtractionError, match="missing"):
            extractor.extract(
                _source(ArchiveFormat.TAR_GZ, "gone.tar.gz"), tmp_path / "gone.tar.gz"
            )


class TestOtherFormats:
    def test_zip_keeps_executable_bit(self, extractor, tmp_path):
        archive = tmp_path / "widget.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("widget-1.0/build.sh")
            info.external_attr = 0o755 << 16
            zf.writestr(info, "#!/bin/sh\n")
            zf.writestr("widget-1.0/README", "readme")
        target = extractor.extract(_source(ArchiveFormat.ZIP, archive.name), archive)
        assert os.access(target / "build.sh", os.X_OK)
        assert (target / "README").read_text() == "readme"

    def test_raw_file_lands_in_folder(self, extractor, tmp_path):
        script = tmp_path / "install.sh"
        script.write_text("echo hi\n")
        target = extractor.extract(
            _source(ArchiveFormat.FILE, script.name, folder="installer"), script
        )
        assert (target / "install.sh").read_text() == "echo hi\n"


class TestRemovePath:
    def test_removes_tree_file_and_symlink(self, tmp_path: Path):
        tree = tmp_path / "tree"
        (tree / "sub").mkdir(parents=True)
        (tree / "sub" / "f").write_text("x")
        link = tmp_path / "link"
        link.symlink_to(tree)
        remove_path(link)
        assert tree.is_dir() and not link.exists()
        remove_path(tree)
        assert not tree.exists()
        remove_path(tmp_path / "absent")
