"""
Install receipts: JSON records of provisioning runs.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, List

from ..models.installation import InstallResult, StepResult
from .errors import ProvisioningError


class ReportStore:
    """Writes provisioning receipts under a reports directory, never under an install path."""

    def __init__(self, base_path: Path, keep_failed_attempts: bool = True):
        """
        Initialize report store.

        Args:
            base_path: Base directory for reports
            keep_failed_attempts: Whether to record failed runs too
        """
        self.logger = logging.getLogger(__name__)
        self.base_path = Path(base_path)
        self.keep_failed_attempts = keep_failed_attempts
        self.base_path.mkdir(parents=True, exist_ok=True)

    def save_json(self, filename: str, data: Dict[str, Any],
                  subdirs: Optional[List[str]] = None) -> Path:
        """
        Save JSON data to file.

        Args:
            filename: JSON filename
            data: Data to save
            subdirs: Optional subdirectories under the base path

        Returns:
            Path to saved file
        """
        target_dir = self.base_path
        for subdir in subdirs or []:
            target_dir = target_dir / subdir
        target_dir.mkdir(parents=True, exist_ok=True)

        json_path = target_dir / filename

        if 'timestamp' not in data:
            data['timestamp'] = datetime.now(timezone.utc).isoformat()

        with open(json_path, 'w') as f:
            json.dump(data, f, indent=2, default=str)

        self.logger.info(f"Saved JSON to {json_path}")
        return json_path

    def save_install_result(self, result: InstallResult) -> Path:
        """Record a successful run under tools/<name>/<version>/install_result.json."""
        return self.save_json(
            "install_result.json",
            result.model_dump(mode="json"),
            subdirs=["tools", result.tool_name, result.version.normalized]
        )

    def save_failure(self, tool_name: str, error: ProvisioningError,
                     steps: List[StepResult]) -> Optional[Path]:
        """Record a failed run under tools/<name>/failures/."""
        if not self.keep_failed_attempts:
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        data = error.to_dict()
        data["tool_name"] = tool_name
        data["steps"] = [step.model_dump(mode="json") for step in steps]
        return self.save_json(
            f"{error.step}_{stamp}.json", data,
            subdirs=["tools", tool_name, "failures"]
        )

    def latest_result(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Return the most recently written install receipt for a tool, if any."""
        tool_dir = self.base_path / "tools" / tool_name
        if not tool_dir.exists():
            return None

        receipts = sorted(
            tool_dir.glob("*/install_result.json"),
            key=lambda p: p.stat().st_mtime
        )
        if not receipts:
            return None
        return json.loads(receipts[-1].read_text())
