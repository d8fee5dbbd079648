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

"""Upgrade decision policy for svcupdater.

Decides whether the latest release should be downloaded and installed,
given what is currently on disk. The rules are evaluated in order and the
first match wins:

1. Nothing installed: proceed (fresh install).
2. Installed version unknown: proceed, flagged as "comparison unavailable".
3. Latest is a stable release not newer than the installed one: skip,
   unless force (reinstall).
4. Prereleases allowed and latest is one: proceed.
5. Latest is a stable release newer than the installed one: proceed.
6. Anything else: proceed with an "ambiguous comparison" warning.

Example:
    ```python
    from svcupdater.policy import decide

    decision = decide(latest, installed, allow_prerelease=False, force=False)
    if decision.action == "skip":
        print(decision.reason)
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from svcupdater.detection import InstalledState
from svcupdater.discovery.releases import Release

Action = Literal["proceed", "skip"]


@dataclass(frozen=True)
class UpdateDecision:
    """Outcome of comparing the latest release with the installed binary.

    Attributes:
        action: "proceed" or "skip".
        reason: Human-readable explanation.
        warning: Set when the decision was made without a trustworthy
            comparison.
        comparison_available: False when the installed version is unknown.

    """

    action: Action
    reason: str
    warning: str | None = None
    comparison_available: bool = True

    @property
    def proceed(self) -> bool:
        return self.action == "proceed"


def decide(
    latest: Release,
    installed: InstalledState,
    allow_prerelease: bool,
    force: bool,
) -> UpdateDecision:
    """Decide whether to install latest over the installed state.

    Args:
        latest: Release picked by the release resolver.
        installed: Current state of the install target.
        allow_prerelease: Whether prereleases may be installed.
        force: Reinstall even when the installed version is current.

    Returns:
        The decision. Never raises.

    """
    if installed.status == "absent":
        return UpdateDecision(
            "proceed", f"no binary at {installed.path}; fresh install"
        )

    if installed.status == "indeterminate" or installed.version is None:
        return UpdateDecision(
            "proceed",
            f"installed version unknown; installing {latest.tag}",
            warning=(
                f"comparison unavailable for {installed.path}"
                + (f": {installed.reason}" if installed.reason else "")
            ),
            comparison_available=False,
        )

    current = installed.version
    if not latest.is_prerelease and latest.version <= current:
        if force:
            return UpdateDecision(
                "proceed", f"reinstalling {latest.tag} over {current} (force)"
            )
        return UpdateDecision(
            "skip", f"installed {current} is up to date (latest {latest.tag})"
        )

    if allow_prerelease and latest.is_prerelease:
        return UpdateDecision(
            "proceed", f"installing prerelease {latest.tag} over {current}"
        )

    if not latest.is_prerelease and latest.version > current:
        return UpdateDecision("proceed", f"upgrading {current} -> {latest.tag}")

    return UpdateDecision(
        "proceed",
        f"installing {latest.tag} over {current}",
        warning=(
            f"ambiguous comparison between latest {latest.tag} "
            f"and installed {current}"
        ),
    )
