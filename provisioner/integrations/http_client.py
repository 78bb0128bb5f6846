"""
Minimal HTTP client for version queries and archive downloads.
"""

import hashlib
import http.client
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .. import __version__

CHUNK_SIZE = 1024 * 1024
MAX_TEXT_BYTES = 64 * 1024


class FetchError(Exception):
    """A GET did not produce a complete 2xx response."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        self.url = url
        self.message = message
        self.status = status
        super().__init__(message)


@dataclass
class DownloadedFile:
    """A completely downloaded file."""
    path: Path
    size: int
    sha256: str


class HttpClient:
    """
    Performs the plain GETs a provisioning run needs.

    Works with http(s) and file URLs. Every call takes its own timeout so a
    short version query and a large archive download can be bounded separately.
    """

    def __init__(self, user_agent: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.user_agent = user_agent or f"toolchain-provisioner/{__version__}"

    def _open(self, url: str, timeout: float):
        try:
            request = urllib.request.Request(url)
            request.add_header("User-Agent", self.user_agent)
            response = urllib.request.urlopen(request, timeout=timeout)
        except urllib.error.HTTPError as e:
            raise FetchError(url, f"HTTP {e.code} {e.reason}", status=e.code) from e
        except urllib.error.URLError as e:
            raise FetchError(url, f"Request failed: {e.reason}") from e
        except (OSError, ValueError) as e:
            raise FetchError(url, f"Request failed: {e}") from e

        status = getattr(response, "status", None)
        if status is not None and not 200 <= status < 300:
            response.close()
            raise FetchError(url, f"Unexpected HTTP status {status}", status=status)
        return response

    @staticmethod
    def _content_length(response) -> Optional[int]:
        value = response.headers.get("Content-Length") if response.headers else None
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @staticmethod
    def _reader(response):
        """Prefer read1 so a slow peer cannot hold one call open for a whole chunk."""
        return getattr(response, "read1", None) or response.read

    @staticmethod
    def _check_deadline(url: str, deadline: float, timeout: float) -> None:
        if time.monotonic() > deadline:
            raise FetchError(url, f"Transfer exceeded {timeout}s")

    def fetch_text(self, url: str, timeout: float) -> str:
        """
        GET a small text document.

        Args:
            url: URL to fetch
            timeout: Deadline in seconds for the whole request

        Returns:
            Decoded response body
        """
        self.logger.debug(f"GET {url} (timeout {timeout}s)")
        deadline = time.monotonic() + timeout
        body = b""
        with self._open(url, timeout) as response:
            read = self._reader(response)
            try:
                while len(body) <= MAX_TEXT_BYTES:
                    chunk = read(MAX_TEXT_BYTES + 1 - len(body))
                    if not chunk:
                        break
                    self._check_deadline(url, deadline, timeout)
                    body += chunk
            except (http.client.IncompleteRead, OSError) as e:
                raise FetchError(url, f"Failed reading response: {e}") from e

        if len(body) > MAX_TEXT_BYTES:
            raise FetchError(url, f"Response larger than {MAX_TEXT_BYTES} bytes")

        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FetchError(url, f"Response is not UTF-8 text: {e}") from e

    def download(self, url: str, destination: Path, timeout: float) -> DownloadedFile:
        """
        Stream a URL to a file, hashing as it goes.

        A body shorter than the advertised Content-Length is a failure, and so
        is a transfer still running when the timeout runs out. The destination
        is removed when the download does not complete.

        Args:
            url: URL to fetch
            destination: File to write
            timeout: Deadline in seconds for the whole transfer; also the
                socket timeout of each blocking read

        Returns:
            DownloadedFile describing the written file
        """
        self.logger.debug(f"Downloading {url} -> {destination} (timeout {timeout}s)")
        deadline = time.monotonic() + timeout
        digest = hashlib.sha256()
        size = 0

        try:
            with self._open(url, timeout) as response:
                expected = self._content_length(response)
                read = self._reader(response)
                with open(destination, "wb") as f:
                    while True:
                        chunk = read(CHUNK_SIZE)
                        if not chunk:
                            break
                        self._check_deadline(url, deadline, timeout)
                        f.write(chunk)
                        digest.update(chunk)
                        size += len(chunk)

            if expected is not None and size != expected:
                raise FetchError(
                    url, f"Truncated transfer: received {size} of {expected} bytes"
                )
        except FetchError:
            destination.unlink(missing_ok=True)
            raise
        except (http.client.IncompleteRead, OSError) as e:
            destination.unlink(missing_ok=True)
            raise FetchError(url, f"Transfer interrupted after {size} bytes: {e}") from e

        if size == 0:
            destination.unlink(missing_ok=True)
            raise FetchError(url, "Empty response body")

        self.logger.debug(f"Downloaded {size} bytes from {url}")
        return DownloadedFile(path=destination, size=size, sha256=digest.hexdigest())
