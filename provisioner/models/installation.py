"""
Installation and step result models.
"""

from enum import Enum
from typing import Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    """Status of a provisioning step."""
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ResolvedVersion(BaseModel):
    """A concrete version obtained from a version query."""
    raw: str = Field(..., description="Response body or pinned literal, as received")
    normalized: str = Field(..., description="First line of raw, stripped")

    def __str__(self) -> str:
        return self.normalized


class StepResult(BaseModel):
    """Outcome of one provisioning step."""
    step: str = Field(..., description="Step name")
    status: StepStatus = Field(..., description="Step status")
    detail: Optional[str] = Field(None, description="Diagnostic detail")
    duration_seconds: Optional[float] = Field(None, description="Step duration")


class InstallResult(BaseModel):
    """Terminal state of a successful provisioning run."""
    tool_name: str = Field(..., description="Toolchain name")
    path: str = Field(..., description="Install path")
    version: ResolvedVersion = Field(..., description="Installed version")
    owner: str = Field(..., description="Owning user")
    group: Optional[str] = Field(None, description="Owning group")
    platform: str = Field(..., description="Platform the archive was built for")

    archive_url: str = Field(..., description="URL the archive was downloaded from")
    archive_sha256: str = Field(..., description="SHA-256 of the downloaded archive")
    checksum_verified: bool = Field(default=False, description="Whether a published digest was checked")

    steps: List[StepResult] = Field(default_factory=list)

    # Timing
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    def complete(self) -> None:
        """Mark the run as complete."""
        self.completed_at = utcnow()
        if self.started_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> dict:
        """Short, JSON-friendly view for logs and CLI output."""
        return {
            "tool": self.tool_name,
            "path": self.path,
            "version": self.version.normalized,
            "owner": self.owner,
            "group": self.group,
            "platform": self.platform,
            "archive_url": self.archive_url,
            "archive_sha256": self.archive_sha256,
            "checksum_verified": self.checksum_verified,
            "duration_seconds": self.duration_seconds,
        }

    class Config:
        json_schema_extra = {
            "example": {
                "tool_name": "go",
                "path": "/usr/local/go",
                "version": {"raw": "go1.22.0\ntime 2024-02-01T19:45:55Z\n", "normalized": "go1.22.0"},
                "owner": "devuser",
                "group": "devuser",
                "platform": "linux-amd64",
                "archive_url": "https://go.dev/dl/go1.22.0.linux-amd64.tar.gz",
                "archive_sha256": "f6c8a87aa03b92c4b0bf3d558e28ea03006eb29db78917daec5cfb6ec1046265",
                "checksum_verified": True,
                "duration_seconds": 12.4
            }
        }
