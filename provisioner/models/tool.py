"""
Tool-related data models.
"""

import platform as host_platform
import re
from pathlib import Path
from string import Formatter
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Optional alphabetic prefix ("go", "v"), a dotted numeric core, then an
# optional pre-release/build tail ("rc1", "-beta.2+build5").
DEFAULT_VERSION_PATTERN = r"[A-Za-z]*\d+(?:\.\d+)*[0-9A-Za-z.+-]*"

TEMPLATE_FIELDS = frozenset({"name", "version", "os", "arch"})

_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv6l",
    "armv6l": "armv6l",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


def template_fields(template: str) -> set[str]:
    """Return the placeholder names used in a URL template."""
    return {
        field_name
        for _, field_name, _, _ in Formatter().parse(template)
        if field_name is not None
    }


class VersionQuery(BaseModel):
    """Where the desired version comes from: a URL or a pinned literal."""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = Field(None, description="URL returning a plain-text version string")
    pinned: Optional[str] = Field(None, description="Pinned version literal")

    @model_validator(mode="after")
    def validate_exactly_one(self):
        if (self.url is None) == (self.pinned is None):
            raise ValueError("version_query needs exactly one of 'url' or 'pinned'")
        return self

    @property
    def is_pinned(self) -> bool:
        return self.pinned is not None

    def describe(self) -> str:
        return f"pinned:{self.pinned}" if self.is_pinned else self.url


class ToolSpec(BaseModel):
    """Specification of a toolchain to provision."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Toolchain name")
    version_query: VersionQuery = Field(..., description="How to obtain the desired version")
    archive_url_template: str = Field(..., description="Archive URL, parameterized by version and platform")
    install_path: Path = Field(..., description="Final install location")
    checksum_url_template: Optional[str] = Field(
        None, description="URL of the archive's published SHA-256 digest"
    )
    strip_components: Optional[int] = Field(
        None, ge=0, description="Leading path components to strip; None strips a single top-level directory"
    )
    version_pattern: str = Field(
        default=DEFAULT_VERSION_PATTERN, description="Regex a resolved version must fully match"
    )

    @field_validator("version_query", mode="before")
    @classmethod
    def coerce_version_query(cls, v: Any) -> Any:
        """Accept a bare string: URLs are queried, anything else is pinned."""
        if isinstance(v, str):
            if "://" in v:
                return {"url": v}
            return {"pinned": v}
        return v

    @field_validator("archive_url_template", "checksum_url_template")
    @classmethod
    def validate_template_fields(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            unknown = template_fields(v) - TEMPLATE_FIELDS
        except ValueError as e:
            raise ValueError(f"Malformed URL template {v!r}: {e}")
        if unknown:
            raise ValueError(
                f"Unknown placeholder(s) {sorted(unknown)} in {v!r}; "
                f"allowed: {sorted(TEMPLATE_FIELDS)}"
            )
        return v

    @field_validator("install_path")
    @classmethod
    def validate_install_path(cls, v: Path) -> Path:
        if not v.is_absolute():
            raise ValueError(f"install_path must be absolute: {v}")
        if v.parent == v:
            raise ValueError("install_path cannot be the filesystem root")
        return v

    @field_validator("version_pattern")
    @classmethod
    def validate_version_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid version_pattern: {e}")
        return v

    def render_archive_url(self, version: str, platform: "Platform") -> str:
        return self.archive_url_template.format(
            name=self.name, version=version, os=platform.os, arch=platform.arch
        )

    def render_checksum_url(self, version: str, platform: "Platform") -> Optional[str]:
        if not self.checksum_url_template:
            return None
        return self.checksum_url_template.format(
            name=self.name, version=version, os=platform.os, arch=platform.arch
        )


class Platform(BaseModel):
    """Target operating system and CPU architecture, in download-URL naming."""
    model_config = ConfigDict(frozen=True)

    os: str = Field(..., min_length=1)
    arch: str = Field(..., min_length=1)

    @classmethod
    def detect(cls) -> "Platform":
        """Describe the running host."""
        system = host_platform.system().lower()
        machine = host_platform.machine().lower()
        return cls(
            os=_OS_ALIASES.get(system, system),
            arch=_ARCH_ALIASES.get(machine, machine)
        )

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


class OwnerSpec(BaseModel):
    """Target owner of an installed toolchain. Names or numeric ids."""
    model_config = ConfigDict(frozen=True)

    user: str = Field(..., min_length=1, description="User name or uid")
    group: Optional[str] = Field(None, description="Group name or gid; defaults to the user's primary group")

    @field_validator("user", "group", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @classmethod
    def parse(cls, value: str) -> "OwnerSpec":
        """Parse ``user`` or ``user:group`` as written for chown."""
        user, _, group = value.partition(":")
        return cls(user=user, group=group or None)
