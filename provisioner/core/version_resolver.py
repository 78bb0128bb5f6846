"""
Version resolution: turn a ToolSpec's version query into a concrete version.
"""

import logging
import re

from ..integrations.http_client import HttpClient, FetchError
from ..models.installation import ResolvedVersion
from ..models.tool import ToolSpec
from .errors import VersionResolutionError

MAX_VERSION_LENGTH = 128


class VersionResolver:
    """Resolves the version to install. Never falls back to a stale value."""

    def __init__(self, http_client: HttpClient, timeout: float = 10.0):
        self.logger = logging.getLogger(__name__)
        self.http_client = http_client
        self.timeout = timeout

    def resolve(self, spec: ToolSpec) -> ResolvedVersion:
        """
        Resolve the version for a tool.

        Args:
            spec: Tool specification

        Returns:
            ResolvedVersion whose normalized form matches spec.version_pattern

        Raises:
            VersionResolutionError: On network failure or an empty/malformed version
        """
        query = spec.version_query

        if query.is_pinned:
            raw = query.pinned
            url = None
            self.logger.info(f"Using pinned version {raw!r} for {spec.name}")
        else:
            url = query.url
            self.logger.info(f"Querying latest {spec.name} version from {url}")
            try:
                raw = self.http_client.fetch_text(url, timeout=self.timeout)
            except FetchError as e:
                raise VersionResolutionError(e.message, url=url) from e

        normalized = self._normalize(raw)
        self._validate(spec, normalized, raw, url)

        self.logger.info(f"Resolved {spec.name} version: {normalized}")
        return ResolvedVersion(raw=raw, normalized=normalized)

    @staticmethod
    def _normalize(raw: str) -> str:
        # First line only: go.dev/VERSION appends a "time ..." line.
        lines = raw.strip().splitlines()
        return lines[0].strip() if lines else ""

    def _validate(self, spec: ToolSpec, normalized: str, raw: str, url) -> None:
        if not normalized:
            raise VersionResolutionError("Version query returned an empty response", url=url)

        if len(normalized) > MAX_VERSION_LENGTH:
            raise VersionResolutionError(
                f"Version string too long ({len(normalized)} chars)", url=url
            )

        if not re.fullmatch(spec.version_pattern, normalized):
            preview = raw.strip()[:80]
            raise VersionResolutionError(
                f"Response is not a version string: {preview!r}", url=url
            )
