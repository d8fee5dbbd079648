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

"""Command-line interface for svcupdater.

Commands:

    check: Compare the latest release with the installed binary
    update: Download and install the latest release if warranted
    validate: Validate a config file (no network calls)

Example:
    Check for an update using the packaged defaults:
        ```bash
        $ svcupdater check
        ```

    Update with a config file, keeping a backup:
        ```bash
        $ svcupdater update --config updater.yaml --backup
        ```

    Allow prereleases and show progress:
        ```bash
        $ svcupdater update --config updater.yaml --prerelease --verbose
        ```

    Validate a config file:
        ```bash
        $ svcupdater validate updater.yaml
        ```

Exit Codes:

- 0: Success (including "already up to date")
- 1: Error (configuration, network, checksum, install or service failure)

Note:
    Each command has its own handler function (cmd_<command>).
    Verbose mode shows full tracebacks on errors for debugging.
    Debug mode implies verbose mode and shows configuration dumps.

"""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import sys
import traceback
from typing import Any

from svcupdater import __version__
from svcupdater.config import load_effective_config
from svcupdater.core import check_for_update, run_update
from svcupdater.exceptions import UpdaterError
from svcupdater.logging import get_logger, set_global_logger
from svcupdater.validation import validate_config


def _build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Turn command-line flags into a nested config overlay."""
    overrides: dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    if args.install_path:
        put("install", "path", str(Path(args.install_path).resolve()))
    if args.download_dir:
        put("download", "directory", str(Path(args.download_dir).resolve()))
    if args.api_url:
        put("releases", "api_url", args.api_url)
    if args.service_name:
        put("service", "name", args.service_name)
    if args.prerelease:
        put("options", "allow_prerelease", True)
    if args.backup is not None:
        put("options", "backup", args.backup)
    if args.force:
        put("options", "force", True)
    return overrides


def _load(args: argparse.Namespace) -> dict[str, Any]:
    config_path = Path(args.config) if args.config else None
    return load_effective_config(config_path, overrides=_build_overrides(args))


def _print_error(err: Exception, args: argparse.Namespace) -> None:
    print(f"Error: {err}")
    if args.verbose or args.debug:
        traceback.print_exc()


def _print_warnings(warnings: list[str]) -> None:
    if warnings:
        print(f"Warnings ({len(warnings)}):")
        for warning in warnings:
            print(f"  [WARNING] {warning}")


def cmd_check(args: argparse.Namespace) -> int:
    """Handler for 'svcupdater check' command.

    Fetches the release feed, inspects the installed binary and prints the
    decision. Nothing is downloaded or changed.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).

    """
    logger = get_logger(
        verbose=args.verbose, debug=args.debug, timestamps=args.timestamps
    )
    set_global_logger(logger)

    try:
        result = check_for_update(_load(args), logger=logger)
    except UpdaterError as err:
        _print_error(err, args)
        return 1

    print("=" * 70)
    print("UPDATE CHECK")
    print("=" * 70)
    latest = result.latest_tag
    if result.latest_is_prerelease:
        latest += " (prerelease)"
    print(f"Latest Release:  {latest}")
    print(f"Install Path:    {result.install_path}")
    print(f"Installed:       {result.installed_version or result.installed_status}")
    print(f"Decision:        {result.action}")
    print(f"Reason:          {result.reason}")
    print("=" * 70)
    _print_warnings(result.warnings)
    print()
    if result.action == "skip":
        print("[SUCCESS] Installed version is up to date.")
    else:
        print(f"[SUCCESS] Update available: {result.latest_tag}")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    """Handler for 'svcupdater update' command.

    Runs the full pipeline: release feed, installed state, decision, then
    download, verification and the stop/replace/start sequence when the
    decision is to proceed.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success or no-op, 1 for failure).

    """
    logger = get_logger(
        verbose=args.verbose, debug=args.debug, timestamps=args.timestamps
    )
    set_global_logger(logger)

    try:
        result = run_update(_load(args), logger=logger)
    except UpdaterError as err:
        _print_error(err, args)
        return 1

    print("=" * 70)
    print("UPDATE RESULTS")
    print("=" * 70)
    print(f"Status:          {result.status}")
    print(f"Latest Release:  {result.latest_tag}")
    print(f"Previous:        {result.installed_version or '(none)'}")
    print(f"Install Path:    {result.install_path}")
    print(f"Reason:          {result.reason}")
    if result.artifact_path:
        print(f"SHA-256:         {result.sha256} ({result.checksum_status})")
    if result.backup_path:
        print(f"Backup:          {result.backup_path}")
    if result.service_action != "none":
        print(f"Service:         {result.service_action} ({result.service_status})")
    print("=" * 70)
    _print_warnings(result.warnings)
    print()

    messages = {
        "skipped": "[SUCCESS] Already up to date; nothing to do.",
        "already_current": "[SUCCESS] Installed binary is identical; no changes.",
        "installed": f"[SUCCESS] Installed {result.latest_tag}.",
        "updated": f"[SUCCESS] Updated to {result.latest_tag}.",
    }
    print(messages.get(result.status, f"[SUCCESS] {result.status}"))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'svcupdater validate' command.

    Validates a config file without network calls or system changes.

    Args:
        args: Parsed command-line arguments containing the config path.

    Returns:
        Exit code (0 for valid config, 1 for invalid).

    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    config_path = Path(args.config_file).resolve()

    print(f"Validating config: {config_path}")
    print()

    result = validate_config(config_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Config:      {result.config_path}")
    print(f"Status:      {result.status.upper()}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Config is valid!")
        return 0
    print()
    print(f"[FAILED] Config validation failed with {len(result.errors)} error(s).")
    return 1


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to the config YAML file (default: packaged defaults only)",
    )
    parser.add_argument(
        "--install-path",
        default=None,
        help="Path of the service executable to manage",
    )
    parser.add_argument(
        "--download-dir",
        default=None,
        help="Directory for downloaded binaries",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Release feed URL",
    )
    parser.add_argument(
        "--service-name",
        default=None,
        help="OS service name",
    )
    parser.add_argument(
        "--prerelease",
        action="store_true",
        help="Allow release-candidate versions",
    )
    parser.add_argument(
        "--backup",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep a timestamped copy of the previous binary",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Reinstall current versions and accept checksum mismatches",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    parser.add_argument(
        "--timestamps",
        action="store_true",
        help="Prefix progress lines with the local time (for scheduled runs)",
    )


def _package_version() -> str:
    try:
        return version("svcupdater")
    except PackageNotFoundError:
        return __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the svcupdater CLI."""
    parser = argparse.ArgumentParser(
        prog="svcupdater",
        description="Keep a service-hosted executable on its latest release",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"svcupdater {_package_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'check' command
    parser_check = subparsers.add_parser(
        "check",
        help="Compare the latest release with the installed binary",
        description="Report the latest release, the installed version and the "
        "update decision without downloading anything.",
    )
    _add_run_options(parser_check)
    parser_check.set_defaults(func=cmd_check)

    # 'update' command
    parser_update = subparsers.add_parser(
        "update",
        help="Download and install the latest release if needed",
        description="Download, verify and install the latest release, stopping "
        "and restarting the service around the swap.",
    )
    _add_run_options(parser_update)
    parser_update.set_defaults(func=cmd_update)

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate config syntax and values (no network calls)",
        description="Check a config YAML file for syntax errors and invalid values.",
    )
    parser_validate.add_argument(
        "config_file",
        help="Path to the config YAML file",
    )
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the svcupdater CLI.

    This function is registered as the 'svcupdater' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
