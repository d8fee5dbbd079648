"""
Tests for svcupdater.service package.

Tests service control including:
- Quote-aware command-line tokenizing
- Windows path comparison
- Controller registry
- sc.exe output parsing and error codes
"""

from __future__ import annotations

import subprocess
from unittest.mock import patch

import pytest

from svcupdater.exceptions import ConfigError, ServiceError
from svcupdater.service import (
    available_controllers,
    executable_from_command_line,
    get_controller,
    register_controller,
    same_executable,
    split_command_line,
)
from svcupdater.service import base
from svcupdater.service.windows import ScServiceController

from .conftest import completed

QC_OUTPUT = r"""[SC] QueryServiceConfig SUCCESS

SERVICE_NAME: gitlab-runner
        TYPE               : 10  WIN32_OWN_PROCESS
        START_TYPE         : 2   AUTO_START
        ERROR_CONTROL      : 1   NORMAL
        BINARY_PATH_NAME   : "C:\Program Files\GitLab Runner\gitlab-runner.exe" run --working-directory "C:\Program Files\GitLab Runner" --service "gitlab-runner" --syslog
        LOAD_ORDER_GROUP   :
        DISPLAY_NAME       : gitlab-runner
        SERVICE_START_NAME : LocalSystem
"""

NOT_FOUND = """[SC] OpenService FAILED 1060:

The specified service does not exist as an installed service.
"""


def _query_output(state: str) -> str:
    codes = {"STOPPED": 1, "START_PENDING": 2, "STOP_PENDING": 3, "RUNNING": 4}
    return (
        "\nSERVICE_NAME: gitlab-runner\n"
        "        TYPE               : 10  WIN32_OWN_PROCESS\n"
        f"        STATE              : {codes[state]}  {state}\n"
        "        WIN32_EXIT_CODE    : 0  (0x0)\n"
    )


def _controller() -> ScServiceController:
    return ScServiceController(timeout=5, poll_interval=0, sleep=lambda _s: None)


class TestCommandLine:
    """Tests for command-line helpers."""

    def test_quoted_path_with_spaces(self):
        """Test that a quoted executable path keeps its spaces and backslashes."""
        line = r'"C:\Program Files\Runner\runner.exe" run --service r'
        assert split_command_line(line) == [
            r"C:\Program Files\Runner\runner.exe",
            "run",
            "--service",
            "r",
        ]

    def test_unquoted_path(self):
        """Test an unquoted path."""
        assert (
            executable_from_command_line(r"C:\GitLab-Runner\gitlab-runner.exe run")
            == r"C:\GitLab-Runner\gitlab-runner.exe"
        )

    def test_empty(self):
        """Test that an empty command line has no executable."""
        assert executable_from_command_line("") is None
        assert executable_from_command_line("   ") is None

    def test_unbalanced_quote(self):
        """Test that an unbalanced quote still yields a path."""
        assert executable_from_command_line('"C:\\runner.exe run') == "C:\\runner.exe"

    def test_same_executable_is_case_insensitive(self):
        """Test Windows path equality rules."""
        target = r"C:\GitLab-Runner\gitlab-runner.exe"
        assert same_executable(r"C:\GitLab-Runner\GITLAB-RUNNER.EXE", target)
        assert same_executable("c:/gitlab-runner/gitlab-runner.exe", target)
        assert not same_executable(r"C:\Other\gitlab-runner.exe", target)


class TestRegistry:
    """Tests for the controller registry."""

    def test_sc_is_registered(self):
        """Test that the sc.exe controller self-registers."""
        assert "sc" in available_controllers()
        controller = get_controller("sc", timeout=10)
        assert isinstance(controller, ScServiceController)
        assert controller.timeout == 10

    def test_unknown_controller(self):
        """Test that an unknown name is a config error."""
        with pytest.raises(ConfigError, match="Unknown service manager"):
            get_controller("systemd-nope")

    def test_register_custom(self, fake_controller, monkeypatch):
        """Test registering another controller."""
        monkeypatch.setattr(
            "svcupdater.service.base._CONTROLLER_REGISTRY",
            dict(base._CONTROLLER_REGISTRY),
        )
        register_controller("fake", fake_controller)
        assert "fake" in available_controllers()
        assert isinstance(get_controller("fake", exists=False), fake_controller)


class TestScServiceController:
    """Tests for ScServiceController with sc.exe mocked."""

    def test_query_registered_service(self):
        """Test parsing BINARY_PATH_NAME and STATE."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=[completed(QC_OUTPUT), completed(_query_output("RUNNING"))],
        ) as mock_run:
            info = _controller().query("gitlab-runner")

        assert info.exists
        assert info.executable == r"C:\Program Files\GitLab Runner\gitlab-runner.exe"
        assert info.state == "RUNNING"
        assert mock_run.call_args_list[0].args[0] == ["sc.exe", "qc", "gitlab-runner"]

    def test_query_missing_service(self):
        """Test that error 1060 means not registered."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            return_value=completed(NOT_FOUND, returncode=1060),
        ):
            info = _controller().query("gitlab-runner")

        assert info.exists is False
        assert info.executable is None

    def test_query_access_denied(self):
        """Test that other failures raise ServiceError."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            return_value=completed("[SC] OpenService FAILED 5:\n\nAccess denied.", 5),
        ):
            with pytest.raises(ServiceError, match="code 5"):
                _controller().query("gitlab-runner")

    def test_stop_waits_for_stopped(self):
        """Test that stop polls until STOPPED."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=[
                completed("stopping"),
                completed(_query_output("STOP_PENDING")),
                completed(_query_output("STOPPED")),
            ],
        ) as mock_run:
            _controller().stop("gitlab-runner")

        assert mock_run.call_count == 3

    def test_stop_not_started_is_ok(self):
        """Test that 1062 (not started) is not an error."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=[
                completed("[SC] ControlService FAILED 1062:", 1062),
                completed(_query_output("STOPPED")),
            ],
        ):
            _controller().stop("gitlab-runner")

    def test_stop_failure_raises(self):
        """Test that other stop failures raise ServiceError."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            return_value=completed("[SC] ControlService FAILED 1051:", 1051),
        ):
            with pytest.raises(ServiceError, match="could not stop"):
                _controller().stop("gitlab-runner")

    def test_stop_timeout_raises(self):
        """Test that a service stuck in STOP_PENDING times out."""
        controller = ScServiceController(
            timeout=0, poll_interval=0, sleep=lambda _s: None
        )
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=[
                completed("stopping"),
                completed(_query_output("STOP_PENDING")),
            ],
        ):
            with pytest.raises(ServiceError, match="did not reach STOPPED"):
                controller.stop("gitlab-runner")

    def test_start_already_running_is_ok(self):
        """Test that 1056 (already running) is not an error."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=[
                completed("[SC] StartService FAILED 1056:", 1056),
                completed(_query_output("RUNNING")),
            ],
        ):
            _controller().start("gitlab-runner")

    def test_install_with_binary_args(self, tmp_path):
        """Test that the binary registers itself when install args are given."""
        exe = tmp_path / "gitlab-runner.exe"
        with patch(
            "svcupdater.service.windows.subprocess.run", return_value=completed("")
        ) as mock_run:
            _controller().install("gitlab-runner", exe, ["install"])

        assert mock_run.call_args.args[0] == [str(exe), "install"]

    def test_install_with_sc_create(self, tmp_path):
        """Test sc.exe create when no install args are given."""
        exe = tmp_path / "tool.exe"
        with patch(
            "svcupdater.service.windows.subprocess.run", return_value=completed("")
        ) as mock_run:
            _controller().install("tool", exe, [])

        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["sc.exe", "create", "tool"]
        assert f'"{exe}"' in cmd

    def test_install_failure(self, tmp_path):
        """Test that a failed registration raises ServiceError."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            return_value=completed("", returncode=1, stderr="access denied"),
        ):
            with pytest.raises(ServiceError, match="access denied"):
                _controller().install("gitlab-runner", tmp_path / "r.exe", ["install"])

    def test_status_not_installed(self):
        """Test status of an unregistered service."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            return_value=completed(NOT_FOUND, returncode=1060),
        ):
            assert _controller().status("gitlab-runner") == "NOT_INSTALLED"

    def test_sc_missing(self):
        """Test that a missing sc.exe raises ServiceError."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=FileNotFoundError("sc.exe"),
        ):
            with pytest.raises(ServiceError, match="could not run"):
                _controller().status("gitlab-runner")

    def test_sc_hangs(self):
        """Test that a hung sc.exe raises ServiceError."""
        with patch(
            "svcupdater.service.windows.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="sc.exe", timeout=30),
        ):
            with pytest.raises(ServiceError, match="timed out"):
                _controller().status("gitlab-runner")
