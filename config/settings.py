"""
Configuration settings for the Toolchain Provisioner.
"""

from typing import Optional, Dict
from pathlib import Path
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from provisioner.core.errors import ConfigurationError
from provisioner.models.tool import ToolSpec, OwnerSpec, VersionQuery


def default_tools() -> Dict[str, ToolSpec]:
    """Built-in tool catalogue."""
    return {
        "go": ToolSpec(
            name="go",
            version_query=VersionQuery(url="https://go.dev/VERSION?m=text"),
            archive_url_template="https://go.dev/dl/{version}.{os}-{arch}.tar.gz",
            checksum_url_template="https://dl.google.com/go/{version}.{os}-{arch}.tar.gz.sha256",
            install_path=Path("/usr/local/go"),
            version_pattern=r"go\d+(?:\.\d+)*(?:(?:rc|beta)\d+)?"
        ),
    }


class TimeoutConfig(BaseModel):
    """Per-step network timeouts."""
    resolve_seconds: float = Field(default=10.0, gt=0, description="Version and checksum query timeout")
    download_seconds: float = Field(default=600.0, gt=0, description="Archive download timeout per blocking read")


class OwnershipConfig(BaseModel):
    """Target owner of installed toolchains."""
    user: Optional[str] = Field(None, description="User name or uid; unset keeps the current user")
    group: Optional[str] = Field(None, description="Group name or gid; defaults to the user's primary group")

    def to_owner_spec(self) -> Optional[OwnerSpec]:
        if not self.user:
            return None
        return OwnerSpec(user=self.user, group=self.group)


class ReportConfig(BaseModel):
    """Install receipt storage."""
    base_path: Optional[Path] = Field(None, description="Directory for install receipts; unset disables them")
    keep_failed_attempts: bool = Field(default=True, description="Record failed runs too")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        description="Log format"
    )
    file_path: Optional[Path] = Field(default=None, description="Log file; console only if unset")
    max_file_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(default=5, description="Number of log backups to keep")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown logging level: {v}")
        return v


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_prefix="PROVISIONER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    tools: Dict[str, ToolSpec] = Field(default_factory=default_tools)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    ownership: OwnershipConfig = Field(default_factory=OwnershipConfig)
    reports: ReportConfig = Field(default_factory=ReportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    download_dir: Optional[Path] = Field(None, description="Where archives are downloaded; system temp dir if unset")

    @field_validator("tools", mode="before")
    @classmethod
    def merge_with_defaults(cls, v):
        """Configured tools extend the built-in catalogue; names fill in from keys."""
        if not isinstance(v, dict):
            return v
        merged: Dict[str, object] = dict(default_tools())
        for key, spec in v.items():
            if isinstance(spec, dict):
                spec = {"name": key, **spec}
            merged[key] = spec
        return merged

    def get_tool(self,
                 name: str,
                 version: Optional[str] = None,
                 install_path: Optional[Path] = None) -> ToolSpec:
        """
        Look up a tool, optionally pinning its version or moving its install path.

        Raises:
            ConfigurationError: Unknown tool or invalid override
        """
        spec = self.tools.get(name)
        if spec is None:
            raise ConfigurationError(
                f"Unknown tool '{name}'. Configured tools: {', '.join(sorted(self.tools))}"
            )

        if version is None and install_path is None:
            return spec

        data = spec.model_dump()
        if version is not None:
            data["version_query"] = {"pinned": version}
        if install_path is not None:
            data["install_path"] = install_path

        try:
            return ToolSpec(**data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid override for '{name}': {e}") from e
