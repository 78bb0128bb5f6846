from __future__ import annotations

import json
import logging
import os

import pytest

import main as main_module
from conftest import build_tarball, sha256

GO_VERSION_URL = "https://go.dev/VERSION?m=text"
GO_ARCHIVE_URL = "https://go.dev/dl/go1.22.0.linux-amd64.tar.gz"
GO_CHECKSUM_URL = "https://dl.google.com/go/go1.22.0.linux-amd64.tar.gz.sha256"


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("PROVISIONER_"):
            monkeypatch.delenv(key)
    yield
    logging.getLogger().handlers.clear()


@pytest.fixture
def go_release(routes):
    archive = build_tarball({"bin/go": b"go", "VERSION": b"go1.22.0"})
    routes[GO_VERSION_URL] = b"go1.22.0\ntime 2024-02-01T19:45:55Z\n"
    routes[GO_ARCHIVE_URL] = archive
    routes[GO_CHECKSUM_URL] = sha256(archive).encode()
    return archive


def provision_args(tmp_path, *extra):
    return [
        "provision", "go",
        "--install-path", str(tmp_path / "usr" / "local" / "go"),
        "--os", "linux", "--arch", "amd64",
        *extra,
    ]


def test_provision_prints_summary_and_exits_zero(go_release, tmp_path, capsys):
    code = main_module.main(provision_args(
        tmp_path, "--user", str(os.getuid()), "--group", str(os.getgid())
    ))

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["version"] == "go1.22.0"
    assert summary["path"] == str(tmp_path / "usr" / "local" / "go")
    assert summary["checksum_verified"] is True
    assert (tmp_path / "usr" / "local" / "go" / "bin" / "go").read_bytes() == b"go"


def test_resolution_failure_exit_code(routes, tmp_path):
    routes[GO_VERSION_URL] = b"<html>maintenance</html>"

    assert main_module.main(provision_args(tmp_path)) == 3
    assert not (tmp_path / "usr" / "local" / "go").exists()


def test_download_failure_exit_code(routes, tmp_path):
    routes[GO_VERSION_URL] = b"go1.22.0\n"

    assert main_module.main(provision_args(tmp_path)) == 4


def test_extraction_failure_exit_code(routes, tmp_path):
    archive = b"this is not a tarball"
    routes[GO_VERSION_URL] = b"go1.22.0\n"
    routes[GO_ARCHIVE_URL] = archive
    routes[GO_CHECKSUM_URL] = sha256(archive).encode()

    assert main_module.main(provision_args(tmp_path)) == 6


def test_ownership_failure_exit_code(go_release, tmp_path):
    assert main_module.main(provision_args(tmp_path, "--user", "no-such-user-7f3a9c")) == 7
    assert not (tmp_path / "usr" / "local" / "go").exists()


def test_unknown_tool_is_usage_error(tmp_path):
    assert main_module.main(["provision", "zig", "--os", "linux", "--arch", "amd64"]) == 2


def test_missing_config_file_is_usage_error(tmp_path):
    assert main_module.main(["--config", str(tmp_path / "nope.json"), "list"]) == 2


def test_config_file_adds_tools_and_reports(routes, tmp_path, capsys):
    archive = build_tarball({"bin/node": b"node"}, top="node-v20.11.1-linux-x64")
    routes["https://nodejs.org/dist/v20.11.1/node-v20.11.1-linux-x64.tar.gz"] = archive
    config = tmp_path / "provisioner.json"
    config.write_text(json.dumps({
        "tools": {
            "node": {
                "version_query": "v20.11.1",
                "archive_url_template": "https://nodejs.org/dist/{version}/node-{version}-{os}-x64.tar.gz",
                "install_path": str(tmp_path / "node"),
            }
        }
    }))

    code = main_module.main([
        "--config", str(config), "--reports-dir", str(tmp_path / "reports"),
        "provision", "node", "--os", "linux", "--arch", "amd64",
    ])

    assert code == 0
    assert (tmp_path / "node" / "bin" / "node").read_bytes() == b"node"
    assert (tmp_path / "reports" / "tools" / "node" / "v20.11.1" / "install_result.json").exists()


def test_resolve_prints_version(routes, capsys):
    routes[GO_VERSION_URL] = b"go1.22.0\ntime 2024-02-01T19:45:55Z\n"

    assert main_module.main(["resolve", "go"]) == 0
    assert capsys.readouterr().out.strip() == "go1.22.0"


def test_list_shows_catalogue(capsys):
    assert main_module.main(["list"]) == 0
    assert capsys.readouterr().out.startswith("go\thttps://go.dev/VERSION?m=text\t/usr/local/go")


def test_status_prints_the_last_recorded_install(go_release, tmp_path, capsys):
    reports = ["--reports-dir", str(tmp_path / "reports")]
    assert main_module.main([*reports, *provision_args(tmp_path)]) == 0
    capsys.readouterr()

    assert main_module.main([*reports, "status", "go"]) == 0
    receipt = json.loads(capsys.readouterr().out)
    assert receipt["version"]["normalized"] == "go1.22.0"
    assert receipt["path"] == str(tmp_path / "usr" / "local" / "go")


def test_status_without_a_recorded_install(tmp_path, capsys):
    assert main_module.main(["--reports-dir", str(tmp_path / "reports"), "status", "go"]) == 1
    assert capsys.readouterr().out == ""


def test_status_needs_a_reports_directory(tmp_path):
    assert main_module.main(["status", "go"]) == 2
