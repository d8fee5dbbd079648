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

"""Service controller protocol and registry for svcupdater.

The install orchestrator never talks to the OS service manager directly.
It goes through a ServiceController, which keeps the stop/replace/start
sequence testable with an in-memory fake and lets another service manager
be plugged in without touching the orchestrator.

Components:

- ServiceInfo: What a query returned about a named service
- ServiceController protocol: query / stop / start / install / status
- Controller registry: register_controller() and get_controller()
- Command-line helpers: split a service invocation string and pull out the
  executable path, tolerating quoted segments with spaces

Example:
    Implementing a custom controller:
        ```python
        from svcupdater.service.base import ServiceInfo, register_controller

        class MyController:
            def query(self, name): ...
            def stop(self, name): ...
            def start(self, name): ...
            def install(self, name, binary_path, args): ...
            def status(self, name): ...

        register_controller("mine", MyController)
        ```

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
import shlex
from typing import Any, Protocol

from svcupdater.exceptions import ConfigError

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class ServiceInfo:
    """Result of querying a named service.

    Attributes:
        name: Service name that was queried.
        exists: False if no service is registered under that name.
        command_line: Full invocation string the service manager runs.
        executable: First token of command_line (None if not registered).
        state: Service manager state (e.g., "RUNNING", "STOPPED").

    """

    name: str
    exists: bool
    command_line: str = ""
    executable: str | None = None
    state: str = ""


# -------------------------------
# Controller Protocol
# -------------------------------


class ServiceController(Protocol):
    """Protocol for OS service control.

    stop(), start() and install() raise ServiceError on failure. status()
    returns the state string and may raise ServiceError.
    """

    def query(self, name: str) -> ServiceInfo:
        """Look up a service by name (exists=False when not registered)."""
        ...

    def stop(self, name: str) -> None:
        """Stop a service and wait until it has stopped."""
        ...

    def start(self, name: str) -> None:
        """Start a service and wait until it is running."""
        ...

    def install(self, name: str, binary_path: Path, args: Sequence[str]) -> None:
        """Register binary_path as service name."""
        ...

    def status(self, name: str) -> str:
        """Return the current service state."""
        ...


# -------------------------------
# Command-line parsing
# -------------------------------


def split_command_line(command_line: str) -> list[str]:
    """Split a service invocation string into arguments.

    Double-quoted segments may contain spaces. Backslashes are ordinary
    characters (Windows paths), so no escape processing happens.

    Example:
        ```python
        split_command_line('"C:\\Program Files\\Runner\\runner.exe" run --service r')
        # ['C:\\Program Files\\Runner\\runner.exe', 'run', '--service', 'r']
        ```
    """
    lexer = shlex.shlex(command_line, posix=True)
    lexer.whitespace_split = True
    lexer.escape = ""
    lexer.quotes = '"'
    lexer.commenters = ""
    return list(lexer)


def executable_from_command_line(command_line: str) -> str | None:
    """Return the executable path a service invocation string starts with."""
    if not command_line or not command_line.strip():
        return None
    try:
        tokens = split_command_line(command_line)
    except ValueError:
        # Unbalanced quote: take everything up to the first space.
        tokens = command_line.strip().strip('"').split(" ", 1)
    return tokens[0] if tokens else None


def same_executable(a: str | Path, b: str | Path) -> bool:
    """Compare two executable paths the way Windows does (case-insensitive)."""
    return PureWindowsPath(str(a)) == PureWindowsPath(str(b))


# -------------------------------
# Controller Registry
# -------------------------------

_CONTROLLER_REGISTRY: dict[str, type[Any]] = {}


def register_controller(name: str, controller_class: type[Any]) -> None:
    """Register a service controller class under a name.

    Registering the same name twice overwrites the previous registration
    (handy for tests).
    """
    _CONTROLLER_REGISTRY[name] = controller_class


def available_controllers() -> list[str]:
    """Names of the registered service controllers."""
    return sorted(_CONTROLLER_REGISTRY)


def get_controller(name: str, **options: Any) -> ServiceController:
    """Instantiate a registered service controller.

    Args:
        name: Registered controller name (e.g., "sc").
        **options: Keyword arguments passed to the controller constructor.

    Raises:
        ConfigError: If no controller is registered under name.
    """
    if name not in _CONTROLLER_REGISTRY:
        available = ", ".join(_CONTROLLER_REGISTRY.keys())
        raise ConfigError(
            f"Unknown service manager: {name!r}. Available: {available or '(none)'}"
        )
    return _CONTROLLER_REGISTRY[name](**options)
