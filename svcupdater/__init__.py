"""
svcupdater - service binary updater

A Python CLI and library that keeps a vendor-distributed executable running
as an OS service on its latest release. The packaged defaults target GitLab
Runner on Windows.

svcupdater provides:
  - Release discovery from a paginated release API, with prerelease policy
  - Installed-version detection by running the binary's version command
  - An ordered upgrade decision (fresh install, skip, upgrade, reinstall)
  - Download-link inference and SHA-256 verification from the release index
  - A guarded stop -> backup -> replace -> start sequence for the service

Quick Start
-----------
Check whether an update is available:

    $ svcupdater check --config updater.yaml

Install it:

    $ svcupdater update --config updater.yaml

For full CLI documentation:

    $ svcupdater --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    High-level orchestration functions.
config : package
    Layered YAML configuration.
discovery : package
    Release feed and download resolution.
detection : module
    Installed-version inspection.
policy : package
    Upgrade decision engine.
install : module
    Install orchestration around the service.
service : package
    Service controller protocol and the sc.exe implementation.
versioning : package
    Version parsing and comparison.
io : package
    HTTP transfer primitives.

Public API
----------
    from svcupdater.core import check_for_update, run_update
    from svcupdater.config import load_effective_config
    from svcupdater.validation import validate_config
    from svcupdater.versioning import parse_version, compare_versions

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Keep a service-hosted executable on its latest release"

# Re-export commonly used functions for convenience
from svcupdater.config import load_effective_config
from svcupdater.core import check_for_update, run_update
from svcupdater.validation import validate_config
from svcupdater.versioning import compare_versions, parse_version

__all__ = [
    "__version__",
    "check_for_update",
    "compare_versions",
    "load_effective_config",
    "parse_version",
    "run_update",
    "validate_config",
]
