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

"""Core orchestration for svcupdater.

This module wires the pipeline together:

    release feed -> installed state -> decision -> (gate) download -> install

Every stage receives its inputs as parameters and hands back a value; nothing
is shared through module state. Warnings from every stage are collected in
order and returned with the result.

Design Principles:

- Each function has a single, clear responsibility
- Functions return structured data (dataclasses) for easy testing
- Error handling uses exceptions; the CLI layer formats them for display
- A "skip" decision ends the run after the release feed request

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from svcupdater.config import load_effective_config
        from svcupdater.core import run_update

        config = load_effective_config(Path("updater.yaml"))
        result = run_update(config)

        print(f"Status: {result.status}")
        for warning in result.warnings:
            print(f"Warning: {warning}")
        ```

"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from svcupdater.detection import InstalledState, inspect_installed
from svcupdater.discovery import (
    DownloadArtifact,
    Release,
    fetch_releases,
    resolve_and_fetch,
    select_latest,
)
from svcupdater.exceptions import ConfigError
from svcupdater.install import InstallTarget, install
from svcupdater.logging import Logger, get_global_logger
from svcupdater.policy import UpdateDecision, decide
from svcupdater.results import UpdateCheckResult, UpdateResult
from svcupdater.service import ServiceController, get_controller

_TOTAL_STEPS = 5


@dataclass(frozen=True)
class _Check:
    latest: Release
    installed: InstalledState
    decision: UpdateDecision
    warnings: list[str]


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    block = config.get(name, {})
    if not isinstance(block, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(block).__name__}")
    return block


def _require(block: dict[str, Any], section: str, key: str) -> Any:
    value = block.get(key)
    if value is None or value == "":
        raise ConfigError(f"missing required config value: {section}.{key}")
    return value


def _checksum_warning(artifact: DownloadArtifact) -> str | None:
    if artifact.checksum_status == "missing":
        return f"no published checksum for {artifact.local_path.name}; not verified"
    if artifact.checksum_status == "mismatch_forced":
        return (
            f"checksum mismatch for {artifact.local_path.name} accepted (force): "
            f"expected {artifact.expected_sha256}, got {artifact.actual_sha256}"
        )
    return None


def _check(config: dict[str, Any], logger: Logger) -> _Check:
    releases_cfg = _section(config, "releases")
    install_cfg = _section(config, "install")
    options = _section(config, "options")
    http = _section(config, "http")

    allow_prerelease = bool(options.get("allow_prerelease", False))
    force = bool(options.get("force", False))
    timeout = int(http.get("timeout", 60))
    retries = int(http.get("retries", 3))
    install_path = Path(_require(install_cfg, "install", "path"))
    warnings: list[str] = []

    # 1. Release feed
    logger.step(1, _TOTAL_STEPS, "Fetching release feed...")
    releases = fetch_releases(
        _require(releases_cfg, "releases", "api_url"),
        per_page=int(releases_cfg.get("per_page", 100)),
        max_pages=int(releases_cfg.get("max_pages", 1)),
        token=releases_cfg.get("token") or None,
        token_header=releases_cfg.get("token_header", "PRIVATE-TOKEN"),
        timeout=timeout,
        retries=retries,
        logger=logger,
    )
    rc_kwargs = {}
    if releases_cfg.get("rc_pattern"):
        rc_kwargs["rc_pattern"] = releases_cfg["rc_pattern"]
    latest = select_latest(releases, allow_prerelease, **rc_kwargs)
    logger.verbose("RELEASES", f"Latest release: {latest.tag} ({latest.name})")

    # 2. Installed state
    logger.step(2, _TOTAL_STEPS, "Inspecting installed binary...")
    detect_kwargs: dict[str, Any] = {
        "timeout": int(install_cfg.get("version_timeout", 30)),
        "logger": logger,
    }
    if install_cfg.get("version_args"):
        detect_kwargs["version_args"] = tuple(install_cfg["version_args"])
    if install_cfg.get("version_pattern"):
        detect_kwargs["version_pattern"] = install_cfg["version_pattern"]
    installed = inspect_installed(install_path, **detect_kwargs)

    # 3. Decision
    logger.step(3, _TOTAL_STEPS, "Comparing versions...")
    decision = decide(latest, installed, allow_prerelease, force)
    logger.verbose("POLICY", f"{decision.action}: {decision.reason}")
    if decision.warning:
        logger.warning(decision.warning)
        warnings.append(decision.warning)

    return _Check(latest, installed, decision, warnings)


def check_for_update(
    config: dict[str, Any], logger: Logger | None = None
) -> UpdateCheckResult:
    """Report the latest release, the installed version and the decision.

    No downloads happen and nothing on disk or in the service manager
    changes.

    Args:
        config: Effective configuration (see load_effective_config).
        logger: Optional logger (global logger otherwise).

    Returns:
        UpdateCheckResult describing latest vs installed.

    Raises:
        ConfigError: On missing configuration values.
        NetworkError: If the release feed is unreachable or has no candidate.

    """
    if logger is None:
        logger = get_global_logger()

    checked = _check(config, logger)
    installed = checked.installed
    return UpdateCheckResult(
        latest_tag=checked.latest.tag,
        latest_version=str(checked.latest.version),
        latest_is_prerelease=checked.latest.is_prerelease,
        install_path=installed.path,
        installed_status=installed.status,
        installed_version=str(installed.version) if installed.version else None,
        action=checked.decision.action,
        reason=checked.decision.reason,
        warnings=checked.warnings,
    )


def run_update(
    config: dict[str, Any],
    controller: ServiceController | None = None,
    logger: Logger | None = None,
) -> UpdateResult:
    """Check for an update and, if warranted, download and install it.

    Args:
        config: Effective configuration (see load_effective_config).
        controller: Service controller. Defaults to the one named by
            service.manager.
        logger: Optional logger (global logger otherwise).

    Returns:
        UpdateResult with status "skipped", "already_current", "installed"
        or "updated".

    Raises:
        ConfigError: On missing configuration values.
        NetworkError: Feed, index page or download failures, including
            NoReleaseFoundError, DownloadLinkUnresolvedError and
            ChecksumMismatchError.
        InstallError: Filesystem or service failures during install.

    """
    if logger is None:
        logger = get_global_logger()

    checked = _check(config, logger)
    latest, installed, decision = checked.latest, checked.installed, checked.decision
    warnings = list(checked.warnings)
    installed_version = str(installed.version) if installed.version else None

    if not decision.proceed:
        logger.step(4, _TOTAL_STEPS, "Up to date; skipping download")
        logger.step(5, _TOTAL_STEPS, "Nothing to install")
        return UpdateResult(
            status="skipped",
            latest_tag=latest.tag,
            installed_version=installed_version,
            install_path=installed.path,
            reason=decision.reason,
            warnings=warnings,
        )

    product = _section(config, "product")
    download = _section(config, "download")
    service = _section(config, "service")
    options = _section(config, "options")
    http = _section(config, "http")
    force = bool(options.get("force", False))

    # 4. Download
    logger.step(4, _TOTAL_STEPS, f"Downloading {latest.tag}...")
    artifact = resolve_and_fetch(
        latest,
        Path(download.get("directory") or "downloads"),
        force,
        index_url_template=_require(download, "download", "index_url"),
        binary_name=_require(product, "product", "binary_name"),
        binary_path=_require(download, "download", "binary_path"),
        index_page_name=download.get("index_page_name", "index.html"),
        timeout=int(http.get("timeout", 60)),
        retries=int(http.get("retries", 3)),
        logger=logger,
    )
    checksum_warning = _checksum_warning(artifact)
    if checksum_warning:
        warnings.append(checksum_warning)

    # 5. Install
    logger.step(5, _TOTAL_STEPS, f"Installing to {installed.path}...")
    if controller is None:
        controller = get_controller(
            service.get("manager", "sc"), timeout=int(service.get("timeout", 60))
        )
    target = InstallTarget(
        path=installed.path,
        service_name=_require(service, "service", "name"),
        install_args=tuple(service.get("install_args") or ()),
    )
    outcome = install(
        artifact,
        target,
        backup=bool(options.get("backup", True)),
        force=force,
        controller=controller,
        logger=logger,
    )
    warnings.extend(outcome.warnings)

    return UpdateResult(
        status=outcome.status,
        latest_tag=latest.tag,
        installed_version=installed_version,
        install_path=outcome.target_path,
        reason=decision.reason,
        artifact_path=artifact.local_path,
        sha256=artifact.actual_sha256,
        checksum_status=artifact.checksum_status,
        backup_path=outcome.backup_path,
        service_action=outcome.service_action,
        service_status=outcome.service_status,
        warnings=warnings,
    )
