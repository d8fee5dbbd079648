# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Windows service control through sc.exe.

Commands used:

- ``sc.exe qc <name>``: service configuration, including BINARY_PATH_NAME
- ``sc.exe query <name>``: current STATE
- ``sc.exe stop <name>`` / ``sc.exe start <name>``: followed by polling
  ``query`` until the service reaches STOPPED / RUNNING
- ``<binary> <install args>``: the vendor binary registers itself (e.g.,
  ``gitlab-runner.exe install``); with no install args,
  ``sc.exe create <name> binPath= "<binary>" start= auto`` is used instead

sc.exe reports most failures as "[SC] ... FAILED <code>:". The codes handled
specially are 1060 (service does not exist), 1056 (already running) and
1062 (not started).

Example:
    ```python
    from svcupdater.service import get_controller

    sc = get_controller("sc", timeout=60)
    info = sc.query("gitlab-runner")
    if info.exists:
        sc.stop("gitlab-runner")
    ```

"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
import re
import subprocess
import time

from svcupdater.exceptions import ServiceError
from svcupdater.logging import get_global_logger

from .base import ServiceInfo, executable_from_command_line, register_controller

ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_DOES_NOT_EXIST = 1060
ERROR_SERVICE_NOT_ACTIVE = 1062

_FAILED_CODE = re.compile(r"FAILED\s+(\d+)")
_STATE_LINE = re.compile(r"^\s*STATE\s*:\s*\d+\s+(\w+)", re.MULTILINE)
_BINARY_PATH_LINE = re.compile(r"^\s*BINARY_PATH_NAME\s*:\s*(.+?)\s*$", re.MULTILINE)


def _failure_code(result: subprocess.CompletedProcess[str]) -> int | None:
    """Return the sc.exe error code of a failed command (None on success)."""
    if result.returncode == 0:
        return None
    m = _FAILED_CODE.search(result.stdout or "")
    return int(m.group(1)) if m else result.returncode


class ScServiceController:
    """ServiceController backed by sc.exe.

    Args:
        sc_path: sc.exe command (resolved through PATH by default).
        timeout: Seconds to wait for a stop/start to complete.
        poll_interval: Seconds between state polls.
        command_timeout: Seconds allowed for a single sc.exe invocation.
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        sc_path: str = "sc.exe",
        timeout: float = 60,
        poll_interval: float = 1.0,
        command_timeout: float = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sc_path = sc_path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.command_timeout = command_timeout
        self._sleep = sleep

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        logger = get_global_logger()
        logger.debug("SERVICE", f"Running: {' '.join(args)}")
        try:
            return subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as err:
            raise ServiceError(
                f"{args[0]} timed out after {err.timeout}s: {' '.join(args[1:])}"
            ) from err
        except OSError as err:
            raise ServiceError(f"could not run {args[0]}: {err}") from err

    def _sc(self, *args: str) -> subprocess.CompletedProcess[str]:
        return self._run([self.sc_path, *args])

    def _state(self, name: str) -> str:
        result = self._sc("query", name)
        code = _failure_code(result)
        if code == ERROR_SERVICE_DOES_NOT_EXIST:
            return "NOT_INSTALLED"
        if code is not None:
            raise ServiceError(
                f"sc.exe query {name} failed (code {code}): {result.stdout.strip()}"
            )
        m = _STATE_LINE.search(result.stdout)
        if not m:
            raise ServiceError(f"sc.exe query {name} reported no STATE")
        return m.group(1).upper()

    def _wait_for(self, name: str, wanted: str) -> None:
        deadline = time.monotonic() + self.timeout
        while True:
            state = self._state(name)
            if state == wanted:
                return
            if time.monotonic() >= deadline:
                raise ServiceError(
                    f"service {name} did not reach {wanted} within "
                    f"{self.timeout}s (state: {state})"
                )
            self._sleep(self.poll_interval)

    def query(self, name: str) -> ServiceInfo:
        result = self._sc("qc", name)
        code = _failure_code(result)
        if code == ERROR_SERVICE_DOES_NOT_EXIST:
            return ServiceInfo(name=name, exists=False)
        if code is not None:
            raise ServiceError(
                f"sc.exe qc {name} failed (code {code}): {result.stdout.strip()}"
            )

        m = _BINARY_PATH_LINE.search(result.stdout)
        command_line = m.group(1) if m else ""
        return ServiceInfo(
            name=name,
            exists=True,
            command_line=command_line,
            executable=executable_from_command_line(command_line),
            state=self._state(name),
        )

    def stop(self, name: str) -> None:
        result = self._sc("stop", name)
        code = _failure_code(result)
        if code not in (None, ERROR_SERVICE_NOT_ACTIVE):
            raise ServiceError(
                f"could not stop service {name} (code {code}): {result.stdout.strip()}"
            )
        self._wait_for(name, "STOPPED")

    def start(self, name: str) -> None:
        result = self._sc("start", name)
        code = _failure_code(result)
        if code not in (None, ERROR_SERVICE_ALREADY_RUNNING):
            raise ServiceError(
                f"could not start service {name} (code {code}): {result.stdout.strip()}"
            )
        self._wait_for(name, "RUNNING")

    def install(self, name: str, binary_path: Path, args: Sequence[str]) -> None:
        if args:
            result = self._run([str(binary_path), *args])
        else:
            result = self._sc(
                "create", name, "binPath=", f'"{binary_path}"', "start=", "auto"
            )
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise ServiceError(
                f"could not install service {name} (exit {result.returncode}): {output}"
            )

    def status(self, name: str) -> str:
        return self._state(name)


register_controller("sc", ScServiceController)
