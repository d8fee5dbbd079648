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

"""Installed-version detection for svcupdater.

Asks the binary already sitting at the install path which version it is.
The executable is run with its version flag and must print a line such as:

    Version:      17.2.0

Outcomes:
    - absent: nothing at the install path (fresh install)
    - present: the version line parsed
    - indeterminate: the file exists but could not be run or its output did
      not parse; the run continues with a warning

The state is re-derived on every run and never cached.

Example:
    ```python
    from pathlib import Path
    from svcupdater.detection import inspect_installed

    state = inspect_installed(Path(r"C:\\GitLab-Runner\\gitlab-runner.exe"))
    if state.status == "present":
        print(state.version)
    ```

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
import re
import subprocess
from typing import Literal

from svcupdater.exceptions import MalformedVersionError
from svcupdater.io.download import sha256_file
from svcupdater.logging import Logger, get_global_logger
from svcupdater.versioning import Version, parse_version

InstalledStatus = Literal["absent", "present", "indeterminate"]

DEFAULT_VERSION_ARGS: tuple[str, ...] = ("--version",)
DEFAULT_VERSION_PATTERN = r"^\s*Version:\s*(\S+)"


@dataclass(frozen=True)
class InstalledState:
    """What is currently installed at the target path.

    Attributes:
        path: Install path that was inspected.
        status: "absent", "present" or "indeterminate".
        version: Parsed version when status is "present".
        sha256: Hash of the existing file (None when absent or unreadable).
        raw_output: Version-report output, kept for diagnostics.
        reason: Why the state is indeterminate (empty otherwise).

    """

    path: Path
    status: InstalledStatus
    version: Version | None = None
    sha256: str | None = None
    raw_output: str = ""
    reason: str = ""


def parse_version_output(
    output: str, pattern: str = DEFAULT_VERSION_PATTERN
) -> Version:
    """Extract the version from a version-report output.

    Args:
        output: Combined stdout of the version command.
        pattern: Regex with one capture group for the version value, matched
            per line.

    Returns:
        The parsed version.

    Raises:
        MalformedVersionError: If no line matches or the value does not parse.
    """
    regex = re.compile(pattern, re.MULTILINE)
    m = regex.search(output)
    if not m:
        raise MalformedVersionError(output.strip()[:80], "no 'Version:' line")
    version, _ = parse_version(m.group(1))
    return version


def inspect_installed(
    path: Path,
    *,
    version_args: Sequence[str] = DEFAULT_VERSION_ARGS,
    version_pattern: str = DEFAULT_VERSION_PATTERN,
    timeout: int = 30,
    logger: Logger | None = None,
) -> InstalledState:
    """Determine which version, if any, is installed at path.

    Args:
        path: Install path of the executable.
        version_args: Arguments that make the executable report its version.
        version_pattern: Regex capturing the version value.
        timeout: Seconds to wait for the version command.
        logger: Optional logger (global logger otherwise).

    Returns:
        The installed state. Never raises for a broken executable; that is
        reported as "indeterminate".

    """
    if logger is None:
        logger = get_global_logger()

    path = Path(path)
    if not path.is_file():
        logger.verbose("DETECT", f"No executable at {path} (fresh install)")
        return InstalledState(path=path, status="absent")

    try:
        sha256: str | None = sha256_file(path)
    except OSError as err:
        logger.debug("DETECT", f"Could not hash {path}: {err}")
        sha256 = None

    cmd = [str(path), *version_args]
    logger.verbose("DETECT", f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        reason = f"version command timed out after {timeout}s"
        logger.verbose("DETECT", f"Installed version unknown: {reason}")
        return InstalledState(
            path=path, status="indeterminate", sha256=sha256, reason=reason
        )
    except OSError as err:
        reason = f"could not run {path.name}: {err}"
        logger.verbose("DETECT", f"Installed version unknown: {reason}")
        return InstalledState(
            path=path, status="indeterminate", sha256=sha256, reason=reason
        )

    output = result.stdout or ""
    if result.stderr:
        output = f"{output}\n{result.stderr}" if output else result.stderr

    try:
        version = parse_version_output(output, version_pattern)
    except MalformedVersionError as err:
        reason = str(err)
        logger.verbose("DETECT", f"Installed version unknown: {reason}")
        return InstalledState(
            path=path,
            status="indeterminate",
            sha256=sha256,
            raw_output=output,
            reason=reason,
        )

    logger.verbose("DETECT", f"Installed version: {version}")
    return InstalledState(
        path=path,
        status="present",
        version=version,
        sha256=sha256,
        raw_output=output,
    )
