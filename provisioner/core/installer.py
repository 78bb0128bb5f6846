"""
Replace-in-place of an install directory.

New contents are built in a staging directory next to the install path and
renamed over it. Two renames are needed (old tree aside, new tree in) because
Python has no portable atomic directory exchange. A crash between them leaves
the install path absent, never half-populated, with the old tree intact in a
``.<name>.old-*`` sibling; ``recover`` puts it back on the next run.
"""

import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import List

from .errors import ReplaceError

STAGING_MARKER = "staging"
BACKUP_MARKER = "old"


def _remove_tree(path: Path) -> None:
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)


class InstallReplacer:
    """Stages and swaps install directories."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _sibling_prefix(install_path: Path, marker: str) -> str:
        return f".{install_path.name}.{marker}-"

    def _siblings(self, install_path: Path, marker: str) -> List[Path]:
        prefix = self._sibling_prefix(install_path, marker)
        parent = install_path.parent
        if not parent.is_dir():
            return []
        return sorted(
            (p for p in parent.iterdir() if p.name.startswith(prefix)),
            key=lambda p: p.lstat().st_mtime
        )

    def recover(self, install_path: Path) -> None:
        """
        Clean up after an interrupted run.

        Restores the newest backup when the install path is missing, then
        removes leftover staging and backup directories.
        """
        backups = self._siblings(install_path, BACKUP_MARKER)
        if backups and not os.path.lexists(install_path):
            newest = backups.pop()
            self.logger.warning(f"Restoring interrupted install of {install_path} from {newest}")
            try:
                os.rename(newest, install_path)
            except OSError as e:
                raise ReplaceError(f"Cannot restore backup {newest}: {e}", path=str(install_path)) from e

        for leftover in backups + self._siblings(install_path, STAGING_MARKER):
            self.logger.warning(f"Removing leftover directory {leftover}")
            try:
                _remove_tree(leftover)
            except OSError as e:
                raise ReplaceError(f"Cannot remove leftover {leftover}: {e}", path=str(install_path)) from e

    def create_staging(self, install_path: Path) -> Path:
        """Create an empty staging directory on the install path's filesystem."""
        try:
            install_path.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(
                prefix=self._sibling_prefix(install_path, STAGING_MARKER),
                dir=install_path.parent
            ))
            staging.chmod(0o755)
        except OSError as e:
            raise ReplaceError(f"Cannot create staging directory: {e}", path=str(install_path)) from e

        self.logger.debug(f"Staging directory: {staging}")
        return staging

    def discard(self, staging: Path) -> None:
        """Remove a staging directory after a failed run."""
        if not os.path.lexists(staging):
            return
        try:
            _remove_tree(staging)
        except OSError as e:
            self.logger.warning(f"Could not remove staging directory {staging}: {e}")

    def swap(self, staging: Path, install_path: Path) -> None:
        """
        Move a fully prepared staging directory to the install path.

        Raises:
            ReplaceError: If either rename fails; the previous install is
                restored before raising
        """
        backup = None
        if os.path.lexists(install_path):
            backup = install_path.parent / f"{self._sibling_prefix(install_path, BACKUP_MARKER)}{uuid.uuid4().hex[:8]}"
            self.logger.info(f"Removing previous install at {install_path}")
            try:
                os.rename(install_path, backup)
            except OSError as e:
                raise ReplaceError(f"Cannot move previous install aside: {e}", path=str(install_path)) from e

        try:
            os.rename(staging, install_path)
        except OSError as e:
            if backup is not None:
                os.rename(backup, install_path)
            raise ReplaceError(f"Cannot move new install into place: {e}", path=str(install_path)) from e

        self.logger.info(f"Installed new tree at {install_path}")

        if backup is not None:
            try:
                _remove_tree(backup)
            except OSError as e:
                self.logger.warning(
                    f"Previous install left at {backup}; it will be removed on the next run: {e}"
                )
