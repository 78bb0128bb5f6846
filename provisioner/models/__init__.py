"""
Data models for the Toolchain Provisioner.
"""

from .tool import ToolSpec, VersionQuery, Platform, OwnerSpec
from .installation import InstallResult, ResolvedVersion, StepResult, StepStatus

__all__ = [
    "ToolSpec",
    "VersionQuery",
    "Platform",
    "OwnerSpec",
    "InstallResult",
    "ResolvedVersion",
    "StepResult",
    "StepStatus"
]
