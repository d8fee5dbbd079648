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

"""Progress and diagnostic output for svcupdater.

The updater usually runs unattended (a scheduled task or a CI job), and its
stdout ends up in a log file. Library modules never print; they report
through a Logger, and the CLI picks the implementation.

What gets printed:

- step: "[n/total] ..." for each stage of a run (feed, inspect, decide,
  download, install)
- warning: "[WARNING] ..." for problems the run continued past (no published
  checksum, unreadable installed version, service bound elsewhere)
- verbose: "[PREFIX] ..." details, only with --verbose
- debug: "[PREFIX] ..." config dumps and raw commands, only with --debug

With ``timestamps=True`` every line starts with the local time, which makes
scheduled-task logs readable after the fact.

Example:
    ```python
    from svcupdater.logging import get_logger, set_global_logger

    set_global_logger(get_logger(verbose=True, timestamps=True))
    # 2025-01-01 03:00:00 [1/5] Fetching release feed...
    ```

Note:
    The global logger is silent until the CLI (or another caller) sets one.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Protocol


class Logger(Protocol):
    """Protocol for logger implementations."""

    def step(self, step: int, total: int, message: str) -> None:
        """Report the start of a run stage.

        Args:
            step: Current stage number (1-based).
            total: Number of stages in the run.
            message: Stage description.
        """
        ...

    def warning(self, message: str) -> None:
        """Report a recoverable problem."""
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Report a detail, tagged with the component (e.g., "SERVICE")."""
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Report a low-level detail."""
        ...


class DefaultLogger:
    """Prints to stdout according to the verbose/debug flags.

    Args:
        verbose: Print verbose messages.
        debug: Print debug messages (implies verbose).
        timestamps: Prefix every line with the local time.
        clock: Time source (injectable for tests).
    """

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        timestamps: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._verbose = verbose or debug
        self._debug = debug
        self._timestamps = timestamps
        self._clock = clock

    def _emit(self, line: str) -> None:
        if self._timestamps:
            line = f"{self._clock():%Y-%m-%d %H:%M:%S} {line}"
        print(line)

    def step(self, step: int, total: int, message: str) -> None:
        self._emit(f"[{step}/{total}] {message}")

    def warning(self, message: str) -> None:
        self._emit(f"[WARNING] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            self._emit(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            self._emit(f"[{prefix}] {message}")


class SilentLogger:
    """Discards everything."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(
    verbose: bool = False, debug: bool = False, timestamps: bool = False
) -> Logger:
    """Build the stdout logger used by the CLI."""
    return DefaultLogger(verbose=verbose, debug=debug, timestamps=timestamps)


def get_global_logger() -> Logger:
    """Return the logger used when a function is not handed one."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Replace the global logger.

    Affects every library call made without an explicit ``logger`` argument,
    including the service controller's command tracing.
    """
    global _global_logger
    _global_logger = logger
