"""
Ownership transfer for installed toolchains.
"""

import grp
import logging
import os
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..models.tool import OwnerSpec
from .errors import OwnershipError


@dataclass
class ResolvedOwner:
    """Numeric ids plus the names they were resolved from."""
    uid: int
    gid: int
    user: str
    group: str


def current_owner() -> ResolvedOwner:
    """Owner of files created by this process."""
    uid, gid = os.getuid(), os.getgid()
    return ResolvedOwner(uid=uid, gid=gid, user=_user_name(uid), group=_group_name(gid))


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


class OwnershipManager:
    """Resolves a target user/group and applies it recursively."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def resolve(self, owner: OwnerSpec) -> ResolvedOwner:
        """
        Look up a user and group by name or numeric id.

        Raises:
            OwnershipError: If the user or group does not exist
        """
        if owner.user.isdigit():
            uid = int(owner.user)
            try:
                entry = pwd.getpwuid(uid)
            except KeyError:
                entry = None
            if entry is None and owner.group is None:
                raise OwnershipError(f"Unknown uid {uid} and no group given")
            user_name = entry.pw_name if entry else owner.user
            default_gid = entry.pw_gid if entry else None
        else:
            try:
                entry = pwd.getpwnam(owner.user)
            except KeyError:
                raise OwnershipError(f"Unknown user: {owner.user}")
            uid = entry.pw_uid
            user_name = entry.pw_name
            default_gid = entry.pw_gid

        if owner.group is None:
            gid = default_gid
            group_name = _group_name(gid)
        elif owner.group.isdigit():
            gid = int(owner.group)
            group_name = _group_name(gid)
        else:
            try:
                group_entry = grp.getgrnam(owner.group)
            except KeyError:
                raise OwnershipError(f"Unknown group: {owner.group}")
            gid = group_entry.gr_gid
            group_name = group_entry.gr_name

        return ResolvedOwner(uid=uid, gid=gid, user=user_name, group=group_name)

    def apply(self, root: Path, owner: ResolvedOwner) -> int:
        """
        Recursively change ownership of a tree, root included.

        Symlinks are changed themselves, never followed.

        Returns:
            Number of entries changed

        Raises:
            OwnershipError: If any chown fails
        """
        self.logger.info(f"Setting ownership of {root} to {owner.user}:{owner.group}")
        changed = 0

        def chown(path: str) -> None:
            nonlocal changed
            try:
                os.lchown(path, owner.uid, owner.gid)
            except OSError as e:
                raise OwnershipError(
                    f"chown {owner.uid}:{owner.gid} failed: {e.strerror or e}", path=path
                ) from e
            changed += 1

        def on_walk_error(error: OSError) -> None:
            raise OwnershipError(f"Cannot walk install tree: {error}", path=error.filename) from error

        chown(str(root))
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_walk_error):
            for name in dirnames + filenames:
                chown(os.path.join(dirpath, name))

        self.logger.debug(f"Changed ownership of {changed} entries under {root}")
        return changed

    def verify(self, root: Path, owner: ResolvedOwner) -> Optional[str]:
        """Return the first path not owned by owner, or None."""
        paths = [str(root)]
        for dirpath, dirnames, filenames in os.walk(root):
            paths.extend(os.path.join(dirpath, name) for name in dirnames + filenames)

        for path in paths:
            st = os.lstat(path)
            if st.st_uid != owner.uid or st.st_gid != owner.gid:
                return path
        return None
