"""
Core modules for the Toolchain Provisioner.
"""

from .errors import (
    ConfigurationError,
    ProvisioningError,
    VersionResolutionError,
    DownloadError,
    ReplaceError,
    ExtractionError,
    OwnershipError,
)
from .provisioner import ToolchainProvisioner
from .version_resolver import VersionResolver
from .downloader import ArchiveDownloader
from .extractor import ArchiveExtractor
from .installer import InstallReplacer
from .ownership import OwnershipManager
from .report_store import ReportStore

__all__ = [
    "ToolchainProvisioner",
    "VersionResolver",
    "ArchiveDownloader",
    "ArchiveExtractor",
    "InstallReplacer",
    "OwnershipManager",
    "ReportStore",
    "ConfigurationError",
    "ProvisioningError",
    "VersionResolutionError",
    "DownloadError",
    "ReplaceError",
    "ExtractionError",
    "OwnershipError"
]
