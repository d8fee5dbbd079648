"""
Pytest configuration and shared fixtures for svcupdater tests.

This module provides reusable fixtures and test utilities used across
the test suite: temporary directories, YAML file factories, release feed
payloads, checksum index pages, artifacts and an in-memory service
controller.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import subprocess
from typing import Any

import pytest
import yaml

from svcupdater.discovery.artifact import DownloadArtifact
from svcupdater.exceptions import ServiceError
from svcupdater.logging import SilentLogger, set_global_logger
from svcupdater.service.base import ServiceInfo

FEED_URL = "https://gitlab.example.com/api/v4/projects/runner/releases"
BUCKET = "https://downloads.example.com"
BINARY_NAME = "gitlab-runner-windows-amd64.exe"


def sha256_bytes(data: bytes) -> str:
    """Helper to compute SHA-256 hash."""
    return hashlib.sha256(data).hexdigest()


def completed(stdout: str = "", returncode: int = 0, stderr: str = ""):
    """Build a CompletedProcess as returned by subprocess.run."""
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


class FakeController:
    """In-memory ServiceController recording every call.

    Args:
        exists: Whether a service is registered initially.
        executable: Executable the registered service runs.
        state: Initial service state.
        fail_on: Operation names ("stop", "start", "install", "status",
            "query") that raise ServiceError.
    """

    def __init__(
        self,
        exists: bool = True,
        executable: str | Path | None = None,
        state: str = "RUNNING",
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.exists = exists
        self.executable = str(executable) if executable else None
        self.state = state if exists else "NOT_INSTALLED"
        self.fail_on = set(fail_on)
        self.calls: list[tuple[Any, ...]] = []

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise ServiceError(f"{op} failed (simulated)")

    def query(self, name: str) -> ServiceInfo:
        self.calls.append(("query", name))
        self._maybe_fail("query")
        if not self.exists:
            return ServiceInfo(name=name, exists=False)
        return ServiceInfo(
            name=name,
            exists=True,
            command_line=f'"{self.executable}" run --service {name}',
            executable=self.executable,
            state=self.state,
        )

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self._maybe_fail("stop")
        self.state = "STOPPED"

    def start(self, name: str) -> None:
        self.calls.append(("start", name))
        self._maybe_fail("start")
        self.state = "RUNNING"

    def install(self, name: str, binary_path: Path, args) -> None:
        self.calls.append(("install", name, str(binary_path), tuple(args)))
        self._maybe_fail("install")
        self.exists = True
        self.executable = str(binary_path)
        self.state = "STOPPED"

    def status(self, name: str) -> str:
        self.calls.append(("status", name))
        self._maybe_fail("status")
        return self.state

    def ops(self) -> list[str]:
        """Operation names in call order."""
        return [c[0] for c in self.calls]


@pytest.fixture(autouse=True)
def _reset_global_logger():
    """Keep a CLI test's logger from leaking into other tests."""
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("updater.yaml", {"service": {"name": "x"}})
    """

    def _create(filename: str, data: Any) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def fake_controller():
    """Factory for FakeController instances."""
    return FakeController


@pytest.fixture
def release_feed() -> list[dict[str, Any]]:
    """A release feed page, newest first, with one release candidate."""
    return [
        {
            "name": "v17.3.0-rc1",
            "tag_name": "v17.3.0-rc1",
            "created_at": "2024-08-10T10:00:00.000Z",
        },
        {
            "name": "v17.2.0",
            "tag_name": "v17.2.0",
            "created_at": "2024-07-18T10:00:00.000Z",
        },
        {
            "name": "v17.1.1",
            "tag_name": "v17.1.1",
            "created_at": "2024-07-01T10:00:00.000Z",
        },
    ]


@pytest.fixture
def index_page():
    """Factory building an S3-style index page listing checksums."""

    def _page(checksum: str, binary_name: str = BINARY_NAME) -> str:
        other = "0" * 64
        return f"""<html><body><table>
<tr><th>File</th><th>Size</th><th>SHA256</th></tr>
<tr><td><a href="binaries/{binary_name}.zip">binaries/{binary_name}.zip</a></td>
<td>70 MB</td><td>{other}</td></tr>
<tr><td><a href="binaries/{binary_name}">binaries/{binary_name}</a></td>
<td>74 MB</td><td>{checksum}</td></tr>
</table></body></html>"""

    return _page


@pytest.fixture
def make_artifact(tmp_test_dir: Path):
    """Factory writing a downloaded artifact file and describing it."""

    def _make(content: bytes = b"new runner binary", tag: str = "v17.2.0"):
        downloads = tmp_test_dir / "downloads"
        downloads.mkdir(parents=True, exist_ok=True)
        path = downloads / f"gitlab-runner-windows-amd64-{tag}.exe"
        path.write_bytes(content)
        digest = sha256_bytes(content)
        return DownloadArtifact(
            local_path=path,
            expected_sha256=digest,
            actual_sha256=digest,
            source_url=f"{BUCKET}/{tag}/binaries/{BINARY_NAME}",
            tag=tag,
            checksum_status="verified",
        )

    return _make
