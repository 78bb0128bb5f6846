"""
Archive extraction into a staging directory.
"""

import logging
import lzma
import os
import shutil
import stat
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import List, Optional, Set, Tuple

from .errors import ExtractionError

TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2", ".tar")
ZIP_SUFFIXES = (".zip",)

_READ_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    EOFError,
    zlib.error,
    lzma.LZMAError,
    UnicodeDecodeError,
    OSError,
)


def detect_format(archive_path: Path, archive_name: str) -> str:
    """Return "tar" or "zip" from the archive's name, falling back to its content."""
    lowered = archive_name.lower().split("?", 1)[0]
    if lowered.endswith(TAR_SUFFIXES):
        return "tar"
    if lowered.endswith(ZIP_SUFFIXES):
        return "zip"

    try:
        if zipfile.is_zipfile(archive_path):
            return "zip"
        if tarfile.is_tarfile(archive_path):
            return "tar"
    except OSError as e:
        raise ExtractionError(f"Cannot read archive: {e}", path=str(archive_path)) from e

    raise ExtractionError(f"Unsupported archive format: {archive_name}", path=str(archive_path))


def _clean_parts(name: str) -> Tuple[str, ...]:
    """Split an archive member name, dropping "." and empty components."""
    return tuple(p for p in PurePosixPath(name).parts if p not in ("", "."))


def _check_member_name(name: str) -> Tuple[str, ...]:
    if name.startswith("/") or PurePosixPath(name).is_absolute():
        raise ExtractionError(f"Archive member has an absolute path: {name}")
    parts = _clean_parts(name)
    if ".." in parts:
        raise ExtractionError(f"Archive member escapes the install directory: {name}")
    return parts


def _auto_strip(all_parts: List[Tuple[str, ...]]) -> int:
    """Strip one level when every member lives under a single top-level directory."""
    non_empty = [parts for parts in all_parts if parts]
    if not non_empty:
        return 0
    tops = {parts[0] for parts in non_empty}
    if len(tops) != 1:
        return 0
    if not any(len(parts) > 1 for parts in non_empty):
        return 0
    return 1


def _check_link_target(member_parts: Tuple[str, ...], target: str, name: str,
                       links: Set[Tuple[str, ...]]) -> None:
    """Walk a relative link target from the link's directory, refusing escapes and link hops."""
    if target.startswith("/"):
        raise ExtractionError(f"Archive link {name} points to an absolute path: {target}")

    steps = list(member_parts[:-1]) + [p for p in target.split("/") if p not in ("", ".")]
    resolved: List[str] = []
    for index, part in enumerate(steps):
        if part == "..":
            if not resolved:
                raise ExtractionError(
                    f"Archive link {name} points outside the install directory: {target}"
                )
            resolved.pop()
            continue
        resolved.append(part)
        if index < len(steps) - 1 and tuple(resolved) in links:
            raise ExtractionError(f"Archive link {name} resolves through another link: {target}")


def _through_link(parts: Tuple[str, ...], links: Set[Tuple[str, ...]]) -> bool:
    """True when a proper prefix of parts is a symlink member."""
    return any(parts[:depth] in links for depth in range(1, len(parts)))


def _check_link_paths(entries: List[Tuple[Tuple[str, ...], Optional[str]]]) -> None:
    """
    Refuse members written through or over a symlink from the same archive.

    Symlink targets are resolved one component at a time and may not hop
    through another symlink member. The whole member list is checked before
    anything is written, so member order does not matter.

    Args:
        entries: (stripped parts, symlink target or None) per member
    """
    links = {parts for parts, target in entries if target is not None}
    for parts, target in entries:
        name = "/".join(parts)
        if _through_link(parts, links):
            raise ExtractionError(f"Archive member passes through a link: {name}")
        if target is None:
            if parts in links:
                raise ExtractionError(f"Archive member replaces a link: {name}")
        else:
            _check_link_target(parts, target, name, links)


class ArchiveExtractor:
    """Unpacks tar and zip archives, refusing members that would escape the target."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def extract(self,
                archive_path: Path,
                destination: Path,
                archive_name: Optional[str] = None,
                strip_components: Optional[int] = None) -> int:
        """
        Extract an archive into an existing, empty directory.

        Args:
            archive_path: Downloaded archive
            destination: Directory to extract into
            archive_name: Original file name or URL, used to detect the format
            strip_components: Leading components to strip; None strips a
                single shared top-level directory

        Returns:
            Number of entries extracted

        Raises:
            ExtractionError: Unsupported format, corrupt data or unsafe members
        """
        archive_name = archive_name or archive_path.name
        fmt = detect_format(archive_path, archive_name)
        self.logger.info(f"Extracting {fmt} archive {archive_name} into {destination}")

        try:
            if fmt == "tar":
                count = self._extract_tar(archive_path, destination, strip_components)
            else:
                count = self._extract_zip(archive_path, destination, strip_components)
        except _READ_ERRORS as e:
            raise ExtractionError(
                f"Corrupt or unreadable archive: {e}", path=str(archive_path)
            ) from e

        if count == 0:
            raise ExtractionError("Archive contains no files", path=str(archive_path))

        self.logger.info(f"Extracted {count} entries")
        return count

    def _extract_tar(self, archive_path: Path, destination: Path,
                     strip_components: Optional[int]) -> int:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            all_parts = [_check_member_name(m.name) for m in members]
            strip = _auto_strip(all_parts) if strip_components is None else strip_components

            selected = []
            entries = []
            hard_targets = []
            for member, parts in zip(members, all_parts):
                if member.ischr() or member.isblk() or member.isfifo():
                    raise ExtractionError(f"Archive member is a special file: {member.name}")

                stripped = parts[strip:]
                if not stripped:
                    continue
                member.name = "/".join(stripped)

                if member.islnk():
                    link_parts = _check_member_name(member.linkname)[strip:]
                    if not link_parts:
                        raise ExtractionError(f"Archive hard link has no target: {member.name}")
                    member.linkname = "/".join(link_parts)
                    hard_targets.append(link_parts)

                entries.append((stripped, member.linkname if member.issym() else None))
                selected.append(member)

            _check_link_paths(entries)
            links = {parts for parts, target in entries if target is not None}
            for link_parts in hard_targets:
                if _through_link(link_parts, links):
                    raise ExtractionError(
                        f"Archive hard link passes through a link: {'/'.join(link_parts)}"
                    )

            if hasattr(tarfile, "data_filter"):
                tar.extractall(destination, members=selected, filter="data")
            else:
                tar.extractall(destination, members=selected)

        return len(selected)

    def _extract_zip(self, archive_path: Path, destination: Path,
                     strip_components: Optional[int]) -> int:
        with zipfile.ZipFile(archive_path) as zf:
            infos = zf.infolist()
            all_parts = [_check_member_name(info.filename) for info in infos]
            strip = _auto_strip(all_parts) if strip_components is None else strip_components

            selected = []
            for info, parts in zip(infos, all_parts):
                stripped = parts[strip:]
                if not stripped:
                    continue
                link_target = None
                if stat.S_ISLNK(info.external_attr >> 16):
                    link_target = zf.read(info).decode("utf-8")
                selected.append((info, stripped, link_target))

            _check_link_paths([(stripped, link_target) for _, stripped, link_target in selected])

            for info, stripped, link_target in selected:
                target = destination.joinpath(*stripped)
                mode = info.external_attr >> 16

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                elif link_target is not None:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.symlink(link_target, target)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    if mode & 0o777:
                        target.chmod(mode & 0o755)

        return len(selected)
