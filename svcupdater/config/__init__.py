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

"""Configuration loading for svcupdater.

This module loads YAML configuration in layers:

  - Packaged defaults (svcupdater/config/defaults.yaml)
  - An optional user config file
  - Command-line overrides

The loader performs deep merging where dicts are merged recursively and
lists/scalars are replaced (last wins). Relative paths are resolved against
the config file location for relocatability.

Public API:

- load_effective_config: Load and merge the effective configuration

Example:
    Basic usage:

        from pathlib import Path
        from svcupdater.config import load_effective_config

        config = load_effective_config(Path("updater.yaml"))
        print(config["install"]["path"])

"""

from .loader import load_effective_config

__all__ = ["load_effective_config"]
