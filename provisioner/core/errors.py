"""
Error taxonomy for provisioning runs.

Each pipeline step has its own exception type and process exit code so a
build log shows which step failed without reading the traceback.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Invalid or incomplete provisioning configuration."""
    exit_code = 2


class ProvisioningError(Exception):
    """Base class for failures of a provisioning step."""
    step = "provision"
    exit_code = 1

    def __init__(self, detail: str, url: Optional[str] = None, path: Optional[str] = None):
        self.detail = detail
        self.url = url
        self.path = path
        super().__init__(self._format())

    def _format(self) -> str:
        message = f"[{self.step}] {self.detail}"
        if self.url:
            message += f" (url: {self.url})"
        if self.path:
            message += f" (path: {self.path})"
        return message

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "error": type(self).__name__,
            "detail": self.detail,
            "url": self.url,
            "path": self.path,
            "exit_code": self.exit_code,
        }


class VersionResolutionError(ProvisioningError):
    step = "resolve"
    exit_code = 3


class DownloadError(ProvisioningError):
    step = "download"
    exit_code = 4


class ReplaceError(ProvisioningError):
    step = "replace"
    exit_code = 5


class ExtractionError(ProvisioningError):
    step = "extract"
    exit_code = 6


class OwnershipError(ProvisioningError):
    step = "ownership"
    exit_code = 7
