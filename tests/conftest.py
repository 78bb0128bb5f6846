from __future__ import annotations

import hashlib
import io
import os
import tarfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import pytest

from provisioner.integrations.http_client import HttpClient
from provisioner.models.tool import Platform, ToolSpec

VERSION_URL = "https://example.test/VERSION?m=text"
ARCHIVE_TEMPLATE = "https://example.test/dl/{version}.{os}-{arch}.tar.gz"
CHECKSUM_TEMPLATE = "https://example.test/dl/{version}.{os}-{arch}.tar.gz.sha256"

LINUX_AMD64 = Platform(os="linux", arch="amd64")


@dataclass
class Route:
    body: bytes = b""
    status: int = 200
    content_length: Optional[int] = None


class FakeResponse:
    def __init__(self, route: Route):
        self.status = route.status
        length = len(route.body) if route.content_length is None else route.content_length
        self.headers = {"Content-Length": str(length)}
        self._stream = io.BytesIO(route.body)

    def read(self, amt: int = -1) -> bytes:
        return self._stream.read(amt)

    def close(self) -> None:
        self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class Routes(dict):
    """URL -> body/Route/exception served by the patched urlopen."""

    def __init__(self):
        super().__init__()
        self.requested = []

    def serve(self, request, timeout=None):
        url = request.full_url if isinstance(request, urllib.request.Request) else request
        self.requested.append(url)
        if url not in self:
            raise urllib.error.HTTPError(url, 404, "Not Found", {}, None)

        route = self[url]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, bytes):
            route = Route(body=route)
        if route.status >= 400:
            raise urllib.error.HTTPError(url, route.status, "Error", {}, None)
        return FakeResponse(route)


@pytest.fixture
def routes(monkeypatch) -> Routes:
    table = Routes()
    monkeypatch.setattr(urllib.request, "urlopen", table.serve)
    return table


@pytest.fixture
def http_client(routes) -> HttpClient:
    return HttpClient()


def build_tarball(files: Dict[str, Union[bytes, str]], top: Optional[str] = "go",
                  compression: str = "gz") -> bytes:
    """Build a tar archive in memory. str values become symlinks."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=f"w:{compression}") as tar:
        seen_dirs = set()

        def add_dir(name: str) -> None:
            if name in seen_dirs:
                return
            seen_dirs.add(name)
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)

        for rel, content in files.items():
            name = f"{top}/{rel}" if top else rel
            parts = name.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                add_dir("/".join(parts[:i]))

            info = tarfile.TarInfo(name)
            if isinstance(content, str):
                info.type = tarfile.SYMTYPE
                info.linkname = content
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o755 if "/bin/" in f"/{rel}" else 0o644
                tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def snapshot(root: Path) -> Dict[str, bytes]:
    """Relative path -> content (b"" for directories, b"->target" for links)."""
    state = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            full = Path(dirpath) / name
            rel = full.relative_to(root).as_posix()
            if full.is_symlink():
                state[rel] = b"->" + os.readlink(full).encode()
            elif full.is_dir():
                state[rel] = b""
            else:
                state[rel] = full.read_bytes()
    return state


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def tool_spec(tmp_path):
    def factory(**overrides) -> ToolSpec:
        data = {
            "name": "go",
            "version_query": VERSION_URL,
            "archive_url_template": ARCHIVE_TEMPLATE,
            "install_path": tmp_path / "usr" / "local" / "go",
        }
        data.update(overrides)
        return ToolSpec(**data)

    return factory
