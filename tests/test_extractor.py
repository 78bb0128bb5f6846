from __future__ import annotations

import io
import os
import stat
import tarfile
import zipfile

import pytest

from conftest import build_tarball, snapshot
from provisioner.core.errors import ExtractionError
from provisioner.core.extractor import ArchiveExtractor, detect_format


@pytest.fixture
def extractor():
    return ArchiveExtractor()


@pytest.fixture
def dest(tmp_path):
    target = tmp_path / "staging"
    target.mkdir()
    return target


def write(tmp_path, name, data):
    path = tmp_path / name
    path.write_bytes(data)
    return path


def test_single_top_level_directory_is_stripped(extractor, tmp_path, dest):
    archive = write(tmp_path, "go.tar.gz", build_tarball({"bin/go": b"x", "VERSION": b"go1.22.0"}))

    count = extractor.extract(archive, dest)

    assert count == 3
    assert (dest / "bin" / "go").read_bytes() == b"x"
    assert (dest / "VERSION").read_bytes() == b"go1.22.0"
    assert not (dest / "go").exists()


def test_explicit_strip_components_zero_keeps_top_directory(extractor, tmp_path, dest):
    archive = write(tmp_path, "go.tar.gz", build_tarball({"VERSION": b"v"}))

    extractor.extract(archive, dest, strip_components=0)

    assert (dest / "go" / "VERSION").read_bytes() == b"v"


def test_multiple_top_level_entries_are_not_stripped(extractor, tmp_path, dest):
    archive = write(tmp_path, "tool.tar.xz", build_tarball(
        {"bin/tool": b"t", "README": b"r"}, top=None, compression="xz"
    ))

    extractor.extract(archive, dest)

    assert set(snapshot(dest)) == {"bin", "bin/tool", "README"}


def test_internal_symlinks_are_preserved(extractor, tmp_path, dest):
    archive = write(tmp_path, "go.tar.gz", build_tarball({
        "pkg/tool/real": b"binary",
        "bin/alias": "../pkg/tool/real",
    }))

    extractor.extract(archive, dest)

    assert os.readlink(dest / "bin" / "alias") == "../pkg/tool/real"
    assert (dest / "bin" / "alias").read_bytes() == b"binary"


def test_parent_traversal_is_rejected(extractor, tmp_path, dest):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo("../evil.sh")
        info.size = 4
        tar.addfile(info, io.BytesIO(b"evil"))
    archive = write(tmp_path, "evil.tar.gz", buffer.getvalue())

    with pytest.raises(ExtractionError, match="escapes"):
        extractor.extract(archive, dest)

    assert not (tmp_path / "evil.sh").exists()


def test_symlink_escaping_install_dir_is_rejected(extractor, tmp_path, dest):
    archive = write(tmp_path, "go.tar.gz", build_tarball({
        "VERSION": b"v",
        "passwd": "../../etc/passwd",
    }))

    with pytest.raises(ExtractionError, match="outside"):
        extractor.extract(archive, dest)


def test_zip_archive_keeps_executable_bits(extractor, tmp_path, dest):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        exe = zipfile.ZipInfo("tool-1.0/bin/tool")
        exe.external_attr = (stat.S_IFREG | 0o755) << 16
        zf.writestr(exe, b"#!/bin/sh\n")
        zf.writestr("tool-1.0/LICENSE", b"MIT")
    archive = write(tmp_path, "tool-1.0.zip", buffer.getvalue())

    count = extractor.extract(archive, dest)

    assert count == 2
    assert stat.S_IMODE((dest / "bin" / "tool").stat().st_mode) == 0o755
    assert (dest / "LICENSE").read_bytes() == b"MIT"


def test_unsupported_format(extractor, tmp_path, dest):
    archive = write(tmp_path, "tool.rar", b"Rar!\x1a\x07\x00 definitely not tar or zip")

    with pytest.raises(ExtractionError, match="Unsupported"):
        extractor.extract(archive, dest)


def test_truncated_archive_is_extraction_error(extractor, tmp_path, dest):
    data = build_tarball({f"file{i}": os.urandom(2048) for i in range(20)})
    archive = write(tmp_path, "go.tar.gz", data[: len(data) // 2])

    with pytest.raises(ExtractionError):
        extractor.extract(archive, dest)


def test_empty_archive_is_extraction_error(extractor, tmp_path, dest):
    archive = write(tmp_path, "empty.tar.gz", build_tarball({}))

    with pytest.raises(ExtractionError, match="no files"):
        extractor.extract(archive, dest)


def test_format_is_sniffed_when_name_has_no_suffix(tmp_path):
    archive = write(tmp_path, "download", build_tarball({"VERSION": b"v"}))

    assert detect_format(archive, "download") == "tar"
    assert detect_format(archive, "https://example.test/go.tar.gz?sig=1") == "tar"


def zip_symlink(zf, name, target):
    info = zipfile.ZipInfo(name)
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    zf.writestr(info, target)


def test_zip_file_written_through_chained_links_is_rejected(extractor, tmp_path, dest):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("README", b"r")
        zf.writestr("d/", b"")
        zip_symlink(zf, "d/l", "..")
        zip_symlink(zf, "d/l/m", "..")
        zf.writestr("d/l/m/pwn", b"pwn")
    archive = write(tmp_path, "tool.zip", buffer.getvalue())

    with pytest.raises(ExtractionError, match="passes through a link"):
        extractor.extract(archive, dest)

    assert not (tmp_path / "pwn").exists()
    assert snapshot(dest) == {}


def test_tar_file_written_through_chained_links_is_rejected(extractor, tmp_path, dest):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        readme = tarfile.TarInfo("README")
        readme.size = 1
        tar.addfile(readme, io.BytesIO(b"r"))
        for name in ("d/l", "d/l/m"):
            link = tarfile.TarInfo(name)
            link.type = tarfile.SYMTYPE
            link.linkname = ".."
            tar.addfile(link)
        pwn = tarfile.TarInfo("d/l/m/pwn")
        pwn.size = 3
        tar.addfile(pwn, io.BytesIO(b"pwn"))
    archive = write(tmp_path, "tool.tar.gz", buffer.getvalue())

    with pytest.raises(ExtractionError, match="passes through a link"):
        extractor.extract(archive, dest)

    assert not (tmp_path / "pwn").exists()
    assert snapshot(dest) == {}


def test_link_target_hopping_through_another_link_is_rejected(extractor, tmp_path, dest):
    archive = write(tmp_path, "go.tar.gz", build_tarball({
        "VERSION": b"v",
        "d/l": "..",
        "up": "d/l/../..",
    }))

    with pytest.raises(ExtractionError, match="resolves through another link"):
        extractor.extract(archive, dest)


def test_zip_file_replacing_a_link_is_rejected(extractor, tmp_path, dest):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("tool/bin/real", b"x")
        zip_symlink(zf, "tool/bin/alias", "real")
        zf.writestr("tool/bin/alias", b"overwrite")
    archive = write(tmp_path, "tool.zip", buffer.getvalue())

    with pytest.raises(ExtractionError, match="replaces a link"):
        extractor.extract(archive, dest)
