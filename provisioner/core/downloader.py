"""
Archive retrieval and checksum verification.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ..integrations.http_client import HttpClient, FetchError, DownloadedFile
from ..models.installation import ResolvedVersion
from ..models.tool import ToolSpec, Platform
from .errors import DownloadError

_SHA256_RE = re.compile(r"[0-9a-fA-F]{64}")


@dataclass
class ArchiveDownload:
    """A downloaded archive and where it came from."""
    url: str
    file: DownloadedFile
    checksum_verified: bool

    @property
    def filename(self) -> str:
        return Path(urlparse(self.url).path).name or self.file.path.name


def parse_checksum(text: str) -> Optional[str]:
    """Extract a SHA-256 digest from "<hex>" or sha256sum-style "<hex>  <file>" text."""
    for line in text.splitlines():
        token = line.strip().split(maxsplit=1)
        if token and _SHA256_RE.fullmatch(token[0]):
            return token[0].lower()
    return None


class ArchiveDownloader:
    """Downloads a tool's platform archive into a working directory."""

    def __init__(self, http_client: HttpClient, timeout: float = 600.0, checksum_timeout: float = 10.0):
        self.logger = logging.getLogger(__name__)
        self.http_client = http_client
        self.timeout = timeout
        self.checksum_timeout = checksum_timeout

    def download(self,
                 spec: ToolSpec,
                 version: ResolvedVersion,
                 platform: Platform,
                 workdir: Path) -> ArchiveDownload:
        """
        Download and, when a digest is published, verify an archive.

        Args:
            spec: Tool specification
            version: Resolved version
            platform: Target platform
            workdir: Directory for the temporary archive file

        Returns:
            ArchiveDownload

        Raises:
            DownloadError: Non-2xx response, interrupted transfer or checksum mismatch
        """
        url = spec.render_archive_url(version.normalized, platform)
        filename = Path(urlparse(url).path).name or f"{spec.name}-archive"
        destination = workdir / filename

        self.logger.info(f"Downloading {spec.name} {version} for {platform} from {url}")
        try:
            downloaded = self.http_client.download(url, destination, timeout=self.timeout)
        except FetchError as e:
            raise DownloadError(e.message, url=url) from e

        self.logger.info(f"Downloaded {downloaded.size} bytes (sha256 {downloaded.sha256})")

        verified = False
        checksum_url = spec.render_checksum_url(version.normalized, platform)
        if checksum_url:
            self._verify(checksum_url, downloaded, url)
            verified = True

        return ArchiveDownload(url=url, file=downloaded, checksum_verified=verified)

    def _verify(self, checksum_url: str, downloaded: DownloadedFile, archive_url: str) -> None:
        self.logger.info(f"Verifying archive against {checksum_url}")
        try:
            text = self.http_client.fetch_text(checksum_url, timeout=self.checksum_timeout)
        except FetchError as e:
            downloaded.path.unlink(missing_ok=True)
            raise DownloadError(f"Cannot fetch checksum: {e.message}", url=checksum_url) from e

        expected = parse_checksum(text)
        if expected is None:
            downloaded.path.unlink(missing_ok=True)
            raise DownloadError("Checksum file does not contain a SHA-256 digest", url=checksum_url)

        if expected != downloaded.sha256:
            downloaded.path.unlink(missing_ok=True)
            raise DownloadError(
                f"Checksum mismatch: expected {expected}, got {downloaded.sha256}",
                url=archive_url
            )
        self.logger.debug("Checksum verified")
