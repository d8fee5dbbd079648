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

"""Public API return types for svcupdater.

This module defines dataclasses for return values from public API functions
(check_for_update, run_update, validate_config).

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from svcupdater.config import load_effective_config
        from svcupdater.core import run_update

        result = run_update(load_effective_config(Path("updater.yaml")))
        print(result.status)  # Attribute access, not dict access
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like Release or InstalledState) stay next to their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class UpdateCheckResult:
    """Result from checking for an update (no downloads, no changes).

    Attributes:
        latest_tag: Tag of the selected release.
        latest_version: Dotted version of the selected release.
        latest_is_prerelease: Whether the selected release is a prerelease.
        install_path: Path of the install target.
        installed_status: "absent", "present" or "indeterminate".
        installed_version: Dotted installed version (None if unknown).
        action: Decision ("proceed" or "skip").
        reason: Decision explanation.
        warnings: Warnings collected so far.
    """

    latest_tag: str
    latest_version: str
    latest_is_prerelease: bool
    install_path: Path
    installed_status: str
    installed_version: str | None
    action: str
    reason: str
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class UpdateResult:
    """Result from a full update run.

    Attributes:
        status: "skipped", "already_current", "installed" or "updated".
        latest_tag: Tag of the selected release.
        installed_version: Version installed before the run (None if unknown).
        install_path: Path of the install target.
        reason: Decision explanation.
        artifact_path: Downloaded file (None when nothing was downloaded).
        sha256: SHA-256 of the downloaded file.
        checksum_status: "verified", "missing" or "mismatch_forced".
        backup_path: Backup of the previous binary, if one was made.
        service_action: What was done to the service.
        service_status: Final service state.
        warnings: Warnings from every stage, in order.
    """

    status: str
    latest_tag: str
    installed_version: str | None
    install_path: Path
    reason: str
    artifact_path: Path | None = None
    sha256: str | None = None
    checksum_status: str | None = None
    backup_path: Path | None = None
    service_action: str = "none"
    service_status: str = ""
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a configuration file.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        config_path: String path to the validated file.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    config_path: str
