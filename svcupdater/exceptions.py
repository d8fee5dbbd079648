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

"""Exception hierarchy for svcupdater.

All exceptions inherit from UpdaterError so callers can catch every
svcupdater failure with a single except clause:

- ConfigError: Configuration problems (YAML parse, missing fields, templates)
- NetworkError: Release feed, index page, probe or download failures
- MalformedVersionError: A tag or version string that does not parse
- InstallError: Filesystem or service failures while swapping the binary

Example:
    Catching specific error types:
        ```python
        from svcupdater.core import run_update
        from svcupdater.exceptions import ChecksumMismatchError, ServiceError

        try:
            result = run_update(config)
        except ChecksumMismatchError as e:
            print(f"Refusing to install: {e}")
        except ServiceError as e:
            print(f"Service control failed: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "UpdaterError",
    "ConfigError",
    "NetworkError",
    "NoReleaseFoundError",
    "DownloadLinkUnresolvedError",
    "ChecksumMismatchError",
    "MalformedVersionError",
    "InstallError",
    "ServiceError",
    "BackupError",
]


class UpdaterError(Exception):
    """Base exception for all svcupdater errors."""

    pass


class ConfigError(UpdaterError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Missing or invalid configuration fields
    - URL templates that cannot be expanded
    """

    pass


class NetworkError(UpdaterError):
    """Raised for network-related errors.

    This exception is raised when there are problems with:

    - The release feed (unreachable, HTTP errors, malformed JSON)
    - The checksum index page
    - Binary downloads
    """

    pass


class NoReleaseFoundError(NetworkError):
    """Raised when no release satisfies the prerelease filter."""

    pass


class DownloadLinkUnresolvedError(NetworkError):
    """Raised when the inferred binary URL fails its HEAD probe.

    There is deliberately no fallback URL; the run stops here.
    """

    def __init__(self, url: str, status: int | str) -> None:
        super().__init__(f"download link unresolved: {url} (probe returned {status})")
        self.url = url
        self.status = status


class ChecksumMismatchError(NetworkError):
    """Raised when a downloaded artifact does not match its published SHA-256.

    Attributes:
        filename: Name of the artifact that failed verification.
        expected: Checksum published on the index page.
        actual: Checksum computed from the downloaded bytes.
    """

    def __init__(self, filename: str, expected: str, actual: str) -> None:
        super().__init__(
            f"sha256 mismatch for {filename}: expected {expected}, got {actual}"
        )
        self.filename = filename
        self.expected = expected
        self.actual = actual


class MalformedVersionError(UpdaterError, ValueError):
    """Raised when a tag or version string is not a dotted numeric version."""

    def __init__(self, tag: str, detail: str = "") -> None:
        message = f"malformed version tag: {tag!r}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.tag = tag


class InstallError(UpdaterError):
    """Raised for failures while installing the artifact into its target.

    This exception is raised when there are problems with:

    - Creating the install directory
    - Replacing the target binary
    - Service control (see ServiceError)
    - The optional backup copy (see BackupError)
    """

    pass


class ServiceError(InstallError):
    """Raised when a service query, stop, start or install fails."""

    pass


class BackupError(InstallError):
    """Raised when the requested backup copy cannot be written."""

    pass
