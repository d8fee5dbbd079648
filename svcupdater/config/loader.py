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

"""Configuration loading and merging for svcupdater.

Configuration Layers:

1. **Packaged defaults** (svcupdater/config/defaults.yaml)
    - Targets GitLab Runner on Windows out of the box
    - Always loaded

2. **User config file** (e.g., updater.yaml)
    - Optional; must be a YAML mapping
    - Overrides packaged defaults

3. **Command-line overrides**
    - Nested dict built by the CLI (e.g., {"options": {"force": True}})
    - Overrides everything else

Merge Behavior:

The loader performs deep merging with "last wins" semantics:

- **Dicts**: Recursively merged (keys from overlay override base)
- **Lists**: Completely replaced (NOT appended/extended)
- **Scalars**: Overwritten (strings, numbers, booleans)

Environment Expansion:

"${VAR}" references inside string values are replaced with the value of the
environment variable VAR after loading a .env file found from the working
directory upward (python-dotenv). Unset variables expand to an empty
string, so an unset token simply disables authentication.

Path Resolution:

Relative paths in a config file are resolved against that file's directory,
making config files relocatable. Currently resolved paths:

- install.path
- download.directory

Error Handling:

- ConfigError: Config file missing, YAML parse errors, empty files, or a
  top-level value that is not a mapping
- All errors are chained with "from err" for better debugging

Example:
    ```python
    from pathlib import Path
    from svcupdater.config import load_effective_config

    cfg = load_effective_config(
        Path("updater.yaml"), overrides={"options": {"force": True}}
    )
    print(cfg["service"]["name"])  # gitlab-runner
    ```

"""

from __future__ import annotations

from importlib import resources
from pathlib import Path, PureWindowsPath
import os
import re
from typing import Any

from dotenv import find_dotenv, load_dotenv
import yaml

from svcupdater.exceptions import ConfigError
from svcupdater.logging import get_global_logger

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# (section, key) pairs holding filesystem paths.
_PATH_KEYS = (("install", "path"), ("download", "directory"))

# (section, key) pairs never printed in debug dumps.
_SECRET_KEYS = (("releases", "token"),)


def _load_yaml_file(p: Path) -> Any:
    """Load a YAML file and return the parsed Python object.

    Raises:
        ConfigError: When file does not exist, invalid YAML (parse error), or
            empty files.
    """
    if not p.exists():
        raise ConfigError(f"file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    except OSError as err:
        raise ConfigError(f"could not read {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


def _load_packaged_defaults() -> dict[str, Any]:
    text = resources.files("svcupdater.config").joinpath("defaults.yaml").read_text(
        encoding="utf-8"
    )
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ConfigError("packaged defaults.yaml is not a mapping")
    return data


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge two dicts with "overlay wins".

    Rules:
        - dict + dict -> deep merge
        - list + list -> overlay REPLACES base (not concatenated)
        - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            # Replace lists and scalars entirely
            result[k] = v
    return result


def _expand_env(value: Any) -> Any:
    """Recursively expand "${VAR}" references in string values."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _is_absolute(raw: str) -> bool:
    # Windows drive paths ("C:/...") count as absolute on any host.
    return Path(raw).is_absolute() or PureWindowsPath(raw).is_absolute()


def _resolve_known_paths(cfg: dict[str, Any], base_dir: Path) -> None:
    """Resolve relative path fields against base_dir. Modifies cfg in place."""
    for section, key in _PATH_KEYS:
        block = cfg.get(section)
        if not isinstance(block, dict):
            continue
        raw_path = block.get(key)
        if isinstance(raw_path, str) and raw_path and not _is_absolute(raw_path):
            block[key] = str((base_dir / raw_path).resolve())


def _redacted(cfg: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of cfg with secret values masked.

    Unexpanded "${VAR}" references are kept since they reveal nothing.
    """
    result = dict(cfg)
    for section, key in _SECRET_KEYS:
        block = result.get(section)
        if not isinstance(block, dict):
            continue
        value = block.get(key)
        if isinstance(value, str) and value and not _ENV_REF.fullmatch(value):
            result[section] = {**block, key: "***"}
    return result


def _print_yaml_content(data: dict[str, Any], indent: int = 0) -> None:
    """Print YAML content in a readable format for debug mode."""
    logger = get_global_logger()

    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    for line in yaml_str.split("\n"):
        if line.strip():
            logger.debug("CONFIG", " " * indent + line)


def load_effective_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Load and merge the effective configuration.

    Steps:
        1. Load packaged defaults.
        2. Read the user config file, if given, and resolve its relative
           paths against its directory.
        3. Merge: defaults -> config file -> overrides.
        4. Load .env and expand "${VAR}" references.
        5. Resolve any remaining relative paths against the working
           directory.

    Args:
        config_path: Optional user config file.
        overrides: Optional nested dict applied last.

    Returns:
        A merged configuration dict.

    Raises:
        ConfigError: On YAML parse errors, empty files, invalid structure,
            or if the config file is missing.

    """
    logger = get_global_logger()

    merged = _load_packaged_defaults()
    layers_merged = 1
    logger.verbose("CONFIG", "Loaded packaged defaults")

    if config_path is not None:
        config_path = Path(config_path).resolve()
        logger.verbose("CONFIG", f"Loading: {config_path}")
        user_obj = _load_yaml_file(config_path)
        if not isinstance(user_obj, dict):
            raise ConfigError(
                f"top-level YAML must be a mapping (dict): {config_path}"
            )
        logger.debug("CONFIG", f"--- Content from {config_path.name} ---")
        _print_yaml_content(_redacted(user_obj))
        _resolve_known_paths(user_obj, config_path.parent)
        merged = _deep_merge_dicts(merged, user_obj)
        layers_merged += 1

    if overrides:
        merged = _deep_merge_dicts(merged, overrides)
        layers_merged += 1

    logger.verbose("CONFIG", f"Deep merging {layers_merged} layer(s)")

    load_dotenv(find_dotenv(usecwd=True))
    merged = _expand_env(merged)
    _resolve_known_paths(merged, Path.cwd())

    logger.debug("CONFIG", "--- Final Merged Configuration ---")
    _print_yaml_content(_redacted(merged))

    return merged
