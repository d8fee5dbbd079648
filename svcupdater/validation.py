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

"""Configuration validation module.

This module checks an updater config file without making network calls,
running the installed binary or touching the service. This is useful for
quick feedback when editing a config and in CI pipelines.

Validation Checks:

- YAML syntax is valid and the top level is a mapping
- Merged with packaged defaults, every required value is present
- Values have the right types (strings, positive integers, booleans, lists)
- Regexes compile; the version pattern has a capture group
- The index URL template has a {tag} placeholder and contains the index
  page name
- The service manager is registered

Example:
    Validate a config and handle results:
        ```python
        from pathlib import Path
        from svcupdater.validation import validate_config

        result = validate_config(Path("updater.yaml"))
        if result.status == "valid":
            print("Config is valid")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```

"""

from __future__ import annotations

from pathlib import Path
import re
from typing import Any

import yaml

from svcupdater.config.loader import _deep_merge_dicts, _load_packaged_defaults
from svcupdater.logging import get_global_logger
from svcupdater.results import ValidationResult
from svcupdater.service import available_controllers

__all__ = ["validate_config"]

_KNOWN_SECTIONS = {
    "product",
    "releases",
    "download",
    "install",
    "service",
    "options",
    "http",
}


def _get(cfg: dict[str, Any], dotted: str) -> Any:
    node: Any = cfg
    for part in dotted.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _check_str(cfg: dict[str, Any], key: str, errors: list[str]) -> str | None:
    value = _get(cfg, key)
    if value is None or value == "":
        errors.append(f"Missing required field: {key}")
        return None
    if not isinstance(value, str):
        errors.append(f"{key} must be a string")
        return None
    return value


def _check_int(
    cfg: dict[str, Any], key: str, errors: list[str], minimum: int = 1
) -> None:
    value = _get(cfg, key)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        errors.append(f"{key} must be an integer >= {minimum}")


def _check_bool(cfg: dict[str, Any], key: str, errors: list[str]) -> None:
    value = _get(cfg, key)
    if not isinstance(value, bool):
        errors.append(f"{key} must be true or false")


def _check_str_list(cfg: dict[str, Any], key: str, errors: list[str]) -> None:
    value = _get(cfg, key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"{key} must be a list of strings")


def _check_regex(
    cfg: dict[str, Any], key: str, errors: list[str], groups: int = 0
) -> None:
    value = _check_str(cfg, key, errors)
    if value is None:
        return
    try:
        compiled = re.compile(value)
    except re.error as err:
        errors.append(f"{key} is not a valid regex: {err}")
        return
    if compiled.groups < groups:
        errors.append(f"{key} must contain a capture group for the value")


def _invalid(errors: list[str], warnings: list[str], path: Path) -> ValidationResult:
    return ValidationResult("invalid", errors, warnings, str(path))


def validate_config(config_path: Path) -> ValidationResult:
    """Validate a config file without any network or system access.

    Does NOT:

    - Call the release API or the download bucket
    - Run the installed binary
    - Query or change the service

    Args:
        config_path: Path to the YAML config file.

    Returns:
        ValidationResult with status "valid" or "invalid", the errors and
        warnings found, and the validated path.

    """
    logger = get_global_logger()
    errors: list[str] = []
    warnings: list[str] = []

    logger.verbose("VALIDATION", f"Validating config: {config_path}")

    if not config_path.exists():
        errors.append(f"Config file not found: {config_path}")
        return _invalid(errors, warnings, config_path)

    try:
        with open(config_path, encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f)
    except yaml.YAMLError as err:
        errors.append(f"Invalid YAML syntax: {err}")
        return _invalid(errors, warnings, config_path)
    except OSError as err:
        errors.append(f"Failed to read config file: {err}")
        return _invalid(errors, warnings, config_path)

    if user_cfg is None:
        user_cfg = {}
        warnings.append("Config file is empty; packaged defaults apply unchanged")
    if not isinstance(user_cfg, dict):
        errors.append("Config must be a YAML dictionary/mapping")
        return _invalid(errors, warnings, config_path)

    logger.verbose("VALIDATION", "[OK] YAML syntax is valid")

    for section, value in user_cfg.items():
        if section not in _KNOWN_SECTIONS:
            warnings.append(f"Unknown section '{section}' is ignored")
        elif not isinstance(value, dict):
            errors.append(f"Section '{section}' must be a mapping")
    if errors:
        return _invalid(errors, warnings, config_path)

    cfg = _deep_merge_dicts(_load_packaged_defaults(), user_cfg)

    # product / releases
    _check_str(cfg, "product.binary_name", errors)
    api_url = _check_str(cfg, "releases.api_url", errors)
    if api_url and not api_url.startswith(("http://", "https://")):
        errors.append("releases.api_url must be an http(s) URL")
    _check_int(cfg, "releases.per_page", errors)
    _check_int(cfg, "releases.max_pages", errors)
    _check_regex(cfg, "releases.rc_pattern", errors)
    token = _get(user_cfg, "releases.token")
    if isinstance(token, str) and token and "${" not in token:
        warnings.append(
            "releases.token is stored in plain text; "
            "prefer an environment reference like ${GITLAB_TOKEN}"
        )

    # download
    index_url = _check_str(cfg, "download.index_url", errors)
    page_name = _check_str(cfg, "download.index_page_name", errors)
    _check_str(cfg, "download.binary_path", errors)
    _check_str(cfg, "download.directory", errors)
    if index_url:
        if "{tag}" not in index_url:
            errors.append("download.index_url must contain a {tag} placeholder")
        else:
            try:
                index_url.format(tag="v0.0.0")
            except (KeyError, IndexError, ValueError) as err:
                errors.append(f"download.index_url has an invalid placeholder: {err}")
        if page_name and page_name not in index_url:
            errors.append(
                f"download.index_page_name '{page_name}' does not occur in "
                "download.index_url"
            )

    # install
    _check_str(cfg, "install.path", errors)
    _check_str_list(cfg, "install.version_args", errors)
    _check_regex(cfg, "install.version_pattern", errors, groups=1)
    _check_int(cfg, "install.version_timeout", errors)

    # service
    _check_str(cfg, "service.name", errors)
    manager = _check_str(cfg, "service.manager", errors)
    if manager and manager not in available_controllers():
        errors.append(
            f"Unknown service.manager '{manager}' "
            f"(available: {', '.join(available_controllers())})"
        )
    _check_str_list(cfg, "service.install_args", errors)
    _check_int(cfg, "service.timeout", errors)

    # options / http
    for key in ("allow_prerelease", "backup", "force"):
        _check_bool(cfg, f"options.{key}", errors)
    _check_int(cfg, "http.timeout", errors)
    _check_int(cfg, "http.retries", errors, minimum=0)

    if _get(cfg, "options.force") is True:
        warnings.append(
            "options.force is set: checksum mismatches will be accepted and "
            "current binaries reinstalled"
        )

    status = "invalid" if errors else "valid"
    logger.verbose("VALIDATION", f"Result: {status}")
    return ValidationResult(status, errors, warnings, str(config_path))
