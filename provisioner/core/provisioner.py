"""
ToolchainProvisioner - resolve, download, stage, chown and swap a toolchain.
"""

import logging
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from ..integrations.http_client import HttpClient
from ..models.installation import InstallResult, StepResult, StepStatus, utcnow
from ..models.tool import ToolSpec, Platform, OwnerSpec
from .downloader import ArchiveDownloader
from .errors import ProvisioningError, OwnershipError
from .extractor import ArchiveExtractor
from .installer import InstallReplacer
from .ownership import OwnershipManager, current_owner
from .report_store import ReportStore
from .version_resolver import VersionResolver


class ToolchainProvisioner:
    """
    Installs one toolchain into a fixed location.

    A run is a single linear pipeline:

        resolve -> download -> extract (into staging) -> chown (staging) -> replace

    The first failing step raises its own ProvisioningError subclass and no
    later step runs. The install path is only touched by the final replace,
    so it always holds either the previous install or the new one. No step
    is retried; callers own retry policy and must not run two provisions
    against the same install path at once.
    """

    def __init__(self,
                 http_client: Optional[HttpClient] = None,
                 owner: Optional[OwnerSpec] = None,
                 resolve_timeout: float = 10.0,
                 download_timeout: float = 600.0,
                 download_dir: Optional[Path] = None,
                 report_store: Optional[ReportStore] = None):
        """
        Initialize the provisioner.

        Args:
            http_client: Client used for the version query and downloads
            owner: Target owner; None keeps the current process user
            resolve_timeout: Timeout for the version and checksum queries
            download_timeout: Deadline for the whole archive download
            download_dir: Where archives are downloaded; system temp dir if None
            report_store: Optional store for install receipts
        """
        self.logger = logging.getLogger(__name__)
        self.http_client = http_client or HttpClient()
        self.owner = owner
        self.download_dir = download_dir
        self.report_store = report_store

        self.resolver = VersionResolver(self.http_client, timeout=resolve_timeout)
        self.downloader = ArchiveDownloader(
            self.http_client, timeout=download_timeout, checksum_timeout=resolve_timeout
        )
        self.extractor = ArchiveExtractor()
        self.ownership = OwnershipManager()
        self.replacer = InstallReplacer()

    @contextmanager
    def _step(self, name: str, steps: List[StepResult]):
        started = time.monotonic()
        self.logger.info(f"Step '{name}' started")
        result = StepResult(step=name, status=StepStatus.PASSED)
        try:
            yield result
        except Exception as e:
            result.status = StepStatus.FAILED
            result.detail = getattr(e, "detail", None) or str(e)
            self.logger.error(f"Step '{name}' failed: {e}")
            raise
        finally:
            result.duration_seconds = round(time.monotonic() - started, 3)
            steps.append(result)
        self.logger.info(f"Step '{name}' {result.status.value} in {result.duration_seconds}s")

    def provision(self,
                  spec: ToolSpec,
                  platform: Optional[Platform] = None,
                  owner: Optional[OwnerSpec] = None) -> InstallResult:
        """
        Provision a toolchain.

        Args:
            spec: Tool specification
            platform: Target platform; the running host if None
            owner: Target owner, overriding the one given at construction

        Returns:
            InstallResult for the installed toolchain

        Raises:
            VersionResolutionError, DownloadError, ExtractionError,
            OwnershipError, ReplaceError
        """
        platform = platform or Platform.detect()
        owner = owner or self.owner
        steps: List[StepResult] = []

        self.logger.info(f"Provisioning {spec.name} into {spec.install_path} for {platform}")

        try:
            result = self._run(spec, platform, owner, steps)
        except ProvisioningError as e:
            if self.report_store:
                try:
                    self.report_store.save_failure(spec.name, e, steps)
                except OSError as save_error:
                    self.logger.warning(f"Could not record failure receipt: {save_error}")
            raise

        if self.report_store:
            try:
                self.report_store.save_install_result(result)
            except OSError as e:
                self.logger.warning(f"Could not record install receipt: {e}")
        return result

    def _run(self, spec: ToolSpec, platform: Platform,
             owner: Optional[OwnerSpec], steps: List[StepResult]) -> InstallResult:
        started_at = utcnow()

        with self._step("resolve", steps) as step:
            version = self.resolver.resolve(spec)
            step.detail = f"{version} via {spec.version_query.describe()}"

        with tempfile.TemporaryDirectory(prefix=f"{spec.name}-download-", dir=self.download_dir) as workdir:
            with self._step("download", steps) as step:
                archive = self.downloader.download(spec, version, platform, Path(workdir))
                step.detail = archive.url

            with self._step("prepare", steps):
                self.replacer.recover(spec.install_path)
                staging = self.replacer.create_staging(spec.install_path)

            try:
                with self._step("extract", steps) as step:
                    count = self.extractor.extract(
                        archive.file.path,
                        staging,
                        archive_name=archive.filename,
                        strip_components=spec.strip_components
                    )
                    step.detail = f"{count} entries"

                with self._step("ownership", steps) as step:
                    if owner is None:
                        resolved_owner = current_owner()
                        step.status = StepStatus.SKIPPED
                        step.detail = f"no target owner; keeping {resolved_owner.user}"
                    else:
                        resolved_owner = self.ownership.resolve(owner)
                        self.ownership.apply(staging, resolved_owner)
                        mismatch = self.ownership.verify(staging, resolved_owner)
                        if mismatch:
                            raise OwnershipError(
                                f"Ownership not applied to {mismatch}", path=str(spec.install_path)
                            )
                        step.detail = f"{resolved_owner.user}:{resolved_owner.group}"

                with self._step("replace", steps) as step:
                    self.replacer.swap(staging, spec.install_path)
                    step.detail = str(spec.install_path)
            except Exception:
                self.replacer.discard(staging)
                raise

        result = InstallResult(
            tool_name=spec.name,
            path=str(spec.install_path),
            version=version,
            owner=resolved_owner.user,
            group=resolved_owner.group,
            platform=str(platform),
            archive_url=archive.url,
            archive_sha256=archive.file.sha256,
            checksum_verified=archive.checksum_verified,
            steps=steps,
            started_at=started_at
        )
        result.complete()

        self.logger.info(
            f"Provisioned {spec.name} {version} at {spec.install_path} "
            f"(owner {result.owner}:{result.group})"
        )
        return result
