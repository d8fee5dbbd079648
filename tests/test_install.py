"""
Tests for svcupdater.install module.

Tests install orchestration including:
- Fresh installs registering the service
- Updates stopping and restarting the service, with backups
- Already-current binaries
- Services bound to another executable
- Failure paths always bringing the service back up
"""

from __future__ import annotations

from datetime import datetime
import errno
import os
from pathlib import Path
import re

import pytest

from svcupdater.exceptions import BackupError, InstallError, ServiceError
from svcupdater.install import (
    InstallTarget,
    backup_binary,
    backup_name,
    install,
    replace_binary,
)

SERVICE = "gitlab-runner"


@pytest.fixture
def target(tmp_test_dir: Path) -> InstallTarget:
    return InstallTarget(tmp_test_dir / "GitLab-Runner" / "gitlab-runner.exe", SERVICE)


def _existing(target: InstallTarget, content: bytes = b"old runner") -> Path:
    target.path.parent.mkdir(parents=True, exist_ok=True)
    target.path.write_bytes(content)
    return target.path


def test_backup_name():
    """Test the timestamped backup naming."""
    path = Path("C:/GitLab-Runner/gitlab-runner.exe")
    now = datetime(2025, 1, 2, 3, 4, 5)
    assert backup_name(path, now).name == "gitlab-runner.20250102-030405.exe.bak"


def test_backup_binary_copies(tmp_test_dir: Path):
    """Test that a backup keeps the original in place."""
    src = tmp_test_dir / "runner.exe"
    src.write_bytes(b"v1")
    dest = backup_binary(src, datetime(2025, 1, 1))
    assert dest.read_bytes() == b"v1"
    assert src.exists()


def test_backup_binary_failure(tmp_test_dir: Path):
    """Test that a failed copy raises BackupError."""
    with pytest.raises(BackupError):
        backup_binary(tmp_test_dir / "missing.exe")


def test_replace_binary_moves(tmp_test_dir: Path):
    """Test that the source is moved over the target."""
    src = tmp_test_dir / "new.exe"
    dst = tmp_test_dir / "runner.exe"
    src.write_bytes(b"new")
    dst.write_bytes(b"old")
    replace_binary(src, dst)
    assert dst.read_bytes() == b"new"
    assert not src.exists()


def test_replace_binary_cross_volume(tmp_test_dir: Path, monkeypatch):
    """Test the copy-then-rename fallback for cross-volume moves."""
    real_replace = os.replace
    calls: list[tuple[str, str]] = []

    def _replace(src, dst):
        calls.append((str(src), str(dst)))
        if len(calls) == 1:
            raise OSError(errno.EXDEV, "Invalid cross-device link")
        return real_replace(src, dst)

    monkeypatch.setattr("svcupdater.install.os.replace", _replace)
    src = tmp_test_dir / "downloads" / "new.exe"
    src.parent.mkdir()
    src.write_bytes(b"new")
    dst = tmp_test_dir / "runner.exe"

    replace_binary(src, dst)

    assert dst.read_bytes() == b"new"
    assert not src.exists()
    assert calls[1][0].endswith("runner.exe.new")


def test_replace_binary_failure(tmp_test_dir: Path):
    """Test that a missing source raises InstallError."""
    with pytest.raises(InstallError):
        replace_binary(tmp_test_dir / "missing.exe", tmp_test_dir / "runner.exe")


class TestInstall:
    """Tests for install."""

    def test_fresh_install_registers_service(
        self, target, make_artifact, fake_controller
    ):
        """Test installing where nothing exists yet."""
        artifact = make_artifact(b"new runner")
        ctl = fake_controller(exists=False)

        result = install(artifact, target, backup=True, force=False, controller=ctl)

        assert result.status == "installed"
        assert result.service_action == "registered"
        assert result.service_status == "RUNNING"
        assert result.backup_path is None
        assert target.path.read_bytes() == b"new runner"
        assert ctl.ops() == ["query", "install", "start", "status"]
        assert ctl.calls[1] == ("install", SERVICE, str(target.path), ("install",))

    def test_update_restarts_service(self, target, make_artifact, fake_controller):
        """Test an update of a running, bound service."""
        _existing(target)
        artifact = make_artifact(b"new runner")
        ctl = fake_controller(executable=target.path)

        result = install(artifact, target, backup=True, force=False, controller=ctl)

        assert result.status == "updated"
        assert result.service_action == "restarted"
        assert result.service_status == "RUNNING"
        assert ctl.ops() == ["query", "stop", "start", "status"]
        assert target.path.read_bytes() == b"new runner"
        assert not artifact.local_path.exists()
        assert result.backup_path.read_bytes() == b"old runner"
        assert re.fullmatch(
            r"gitlab-runner\.\d{8}-\d{6}\.exe\.bak", result.backup_path.name
        )

    def test_update_without_backup(self, target, make_artifact, fake_controller):
        """Test that backups can be turned off."""
        _existing(target)
        ctl = fake_controller(executable=target.path)

        result = install(
            make_artifact(), target, backup=False, force=False, controller=ctl
        )

        assert result.backup_path is None
        assert [p.name for p in target.path.parent.iterdir()] == ["gitlab-runner.exe"]

    def test_already_current(self, target, make_artifact, fake_controller):
        """Test that an identical binary touches nothing."""
        _existing(target, b"same bytes")
        artifact = make_artifact(b"same bytes")
        ctl = fake_controller(executable=target.path)

        result = install(artifact, target, backup=True, force=False, controller=ctl)

        assert result.status == "already_current"
        assert result.service_action == "none"
        assert ctl.calls == []
        assert not artifact.local_path.exists()
        assert [p.name for p in target.path.parent.iterdir()] == ["gitlab-runner.exe"]

    def test_force_reinstalls_identical(self, target, make_artifact, fake_controller):
        """Test that force reinstalls an identical binary."""
        _existing(target, b"same bytes")
        ctl = fake_controller(executable=target.path)

        result = install(
            make_artifact(b"same bytes"),
            target,
            backup=False,
            force=True,
            controller=ctl,
        )

        assert result.status == "updated"
        assert "stop" in ctl.ops()

    def test_foreign_service_left_alone(self, target, make_artifact, fake_controller):
        """Test a service name bound to a different executable."""
        _existing(target)
        ctl = fake_controller(executable=r"D:\Other\gitlab-runner.exe")

        result = install(
            make_artifact(), target, backup=False, force=False, controller=ctl
        )

        assert result.status == "updated"
        assert result.service_action == "left_alone"
        assert ctl.ops() == ["query", "status"]
        assert len(result.warnings) == 1
        assert "leaving it alone" in result.warnings[0]

    def test_stop_failure_aborts(self, target, make_artifact, fake_controller):
        """Test that a stop failure leaves the old binary in place and running."""
        _existing(target)
        ctl = fake_controller(executable=target.path, fail_on=("stop",))

        with pytest.raises(ServiceError):
            install(make_artifact(), target, backup=True, force=False, controller=ctl)

        assert target.path.read_bytes() == b"old runner"
        assert ctl.ops() == ["query", "stop", "start", "status"]
        assert ctl.state == "RUNNING"

    def test_stop_failure_after_service_went_down(
        self, target, make_artifact, fake_controller
    ):
        """Test that a stop which halts the service but then fails restarts it."""
        _existing(target)

        class HaltThenFail(fake_controller):
            def stop(self, name: str) -> None:
                self.calls.append(("stop", name))
                self.state = "STOPPED"
                raise ServiceError("timed out waiting for STOPPED")

        ctl = HaltThenFail(executable=target.path)

        with pytest.raises(ServiceError, match="timed out"):
            install(make_artifact(), target, backup=True, force=False, controller=ctl)

        assert target.path.read_bytes() == b"old runner"
        assert ctl.ops() == ["query", "stop", "start", "status"]
        assert ctl.state == "RUNNING"

    def test_backup_failure_restarts_service(
        self, target, make_artifact, fake_controller, monkeypatch
    ):
        """Test that a failed backup still brings the service back up."""
        _existing(target)
        ctl = fake_controller(executable=target.path)

        def _fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("svcupdater.install.shutil.copy2", _fail)

        with pytest.raises(BackupError):
            install(make_artifact(), target, backup=True, force=False, controller=ctl)

        assert target.path.read_bytes() == b"old runner"
        assert ctl.ops() == ["query", "stop", "start", "status"]
        assert ctl.state == "RUNNING"

    def test_start_failure_retries_once(self, target, make_artifact, fake_controller):
        """Test that a start failure is attempted again and then raised."""
        _existing(target)
        ctl = fake_controller(executable=target.path, fail_on=("start", "status"))

        with pytest.raises(ServiceError, match="start failed"):
            install(make_artifact(), target, backup=False, force=False, controller=ctl)

        assert ctl.ops() == ["query", "stop", "start", "start", "status"]
        assert target.path.read_bytes() == b"new runner binary"

    def test_register_failure(self, target, make_artifact, fake_controller):
        """Test that a failed registration is raised after the file is placed."""
        ctl = fake_controller(exists=False, fail_on=("install",))

        with pytest.raises(ServiceError, match="install failed"):
            install(make_artifact(), target, backup=True, force=False, controller=ctl)

        assert target.path.exists()
        assert ctl.ops() == ["query", "install", "status"]

    def test_second_run_is_idempotent(self, target, make_artifact, fake_controller):
        """Test that running twice with the same artifact is a no-op."""
        ctl = fake_controller(exists=False)
        install(make_artifact(), target, backup=True, force=False, controller=ctl)
        ctl.calls.clear()

        result = install(
            make_artifact(), target, backup=True, force=False, controller=ctl
        )

        assert result.status == "already_current"
        assert ctl.calls == []

    def test_install_dir_creation_failure(
        self, tmp_test_dir, make_artifact, fake_controller
    ):
        """Test that an uncreatable install directory raises InstallError."""
        blocker = tmp_test_dir / "blocker"
        blocker.write_bytes(b"")
        bad = InstallTarget(blocker / "sub" / "runner.exe", SERVICE)

        with pytest.raises(InstallError, match="install directory"):
            install(
                make_artifact(),
                bad,
                backup=True,
                force=False,
                controller=fake_controller(),
            )

    def test_unreadable_installed_binary(
        self, target, make_artifact, fake_controller, monkeypatch
    ):
        """Test that a failure hashing the installed binary raises InstallError."""
        _existing(target)
        ctl = fake_controller(executable=target.path)

        def _fail(path):
            raise PermissionError(13, "Access is denied", str(path))

        monkeypatch.setattr("svcupdater.install.sha256_file", _fail)

        with pytest.raises(InstallError, match="could not read installed binary"):
            install(make_artifact(), target, backup=True, force=False, controller=ctl)

        assert ctl.calls == []
        assert target.path.read_bytes() == b"old runner"
