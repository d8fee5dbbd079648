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

"""Install orchestration for svcupdater.

Swaps a verified artifact into the service's binary slot:

1. Ensure the install directory exists.
2. If the installed binary already has the artifact's SHA-256, stop here
   (already current) unless force is set. The artifact is discarded.
3. Query the service. If it is registered but runs a different executable,
   warn and leave it alone.
4. If the service runs the target binary, stop it. A stop failure aborts.
5. Optionally copy the previous binary to
   ``<stem>.<YYYYmmdd-HHMMSS><suffix>.bak`` beside it. A backup failure
   aborts (after restarting the service).
6. Move the artifact over the target (os.replace; copy then replace when
   the download folder is on another volume).
7. Start the service, registering it first if none exists.

A service this module stopped is always started again, even when a later
step fails. A final status query always runs; its own failure is logged and
never hides an earlier error.

Example:
    ```python
    from svcupdater.install import InstallTarget, install
    from svcupdater.service import get_controller

    result = install(
        artifact,
        InstallTarget(Path("C:/GitLab-Runner/gitlab-runner.exe"), "gitlab-runner"),
        backup=True,
        force=False,
        controller=get_controller("sc"),
    )
    print(result.status, result.service_status)
    ```

"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import errno
import os
from pathlib import Path
import shutil
from typing import Literal

from svcupdater.discovery.artifact import DownloadArtifact
from svcupdater.exceptions import BackupError, InstallError
from svcupdater.io.download import sha256_file
from svcupdater.logging import Logger, get_global_logger
from svcupdater.service.base import ServiceController, same_executable

InstallStatus = Literal["installed", "updated", "already_current"]
ServiceAction = Literal["none", "restarted", "registered", "left_alone"]


@dataclass(frozen=True)
class InstallTarget:
    """Where the binary goes and which service runs it.

    Attributes:
        path: Final path of the executable.
        service_name: OS service name.
        install_args: Arguments the binary takes to register itself as a
            service. Empty means register through the service manager.

    """

    path: Path
    service_name: str
    install_args: tuple[str, ...] = ("install",)


@dataclass(frozen=True)
class InstallResult:
    """Outcome of an install run.

    Attributes:
        status: "installed", "updated" or "already_current".
        target_path: Path of the installed executable.
        backup_path: Backup of the previous binary, if one was made.
        service_action: What was done to the service.
        service_status: Final service state ("" if the query failed or
            nothing was touched).
        warnings: Non-fatal issues in the order they occurred.

    """

    status: InstallStatus
    target_path: Path
    backup_path: Path | None = None
    service_action: ServiceAction = "none"
    service_status: str = ""
    warnings: list[str] = field(default_factory=list)


def backup_name(path: Path, now: datetime | None = None) -> Path:
    """Backup path: ``runner.exe`` -> ``runner.20250101-120000.exe.bak``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return path.with_name(f"{path.stem}.{stamp}{path.suffix}.bak")


def backup_binary(
    path: Path, now: datetime | None = None, logger: Logger | None = None
) -> Path:
    """Copy path to its timestamped backup name.

    Raises:
        BackupError: If the copy fails.
    """
    if logger is None:
        logger = get_global_logger()
    dest = backup_name(path, now)
    logger.verbose("INSTALL", f"Backing up {path.name} -> {dest.name}")
    try:
        shutil.copy2(path, dest)
    except OSError as err:
        raise BackupError(f"could not back up {path} to {dest}: {err}") from err
    return dest


def replace_binary(source: Path, target: Path, logger: Logger | None = None) -> None:
    """Move source over target.

    os.replace is atomic on one volume. Across volumes the file is first
    copied next to the target and then renamed into place.

    Raises:
        InstallError: If the move fails.
    """
    if logger is None:
        logger = get_global_logger()
    try:
        os.replace(source, target)
        logger.verbose("INSTALL", f"Moved {source.name} -> {target}")
        return
    except OSError as err:
        if err.errno != errno.EXDEV:
            raise InstallError(f"could not replace {target}: {err}") from err

    staging = target.with_name(target.name + ".new")
    logger.verbose("INSTALL", f"Cross-volume move via {staging.name}")
    try:
        shutil.copy2(source, staging)
        os.replace(staging, target)
    except OSError as err:
        staging.unlink(missing_ok=True)
        raise InstallError(f"could not replace {target}: {err}") from err
    source.unlink(missing_ok=True)


def _report_status(controller: ServiceController, name: str, logger: Logger) -> str:
    try:
        state = controller.status(name)
    except Exception as err:
        logger.warning(f"could not query status of service {name}: {err}")
        return ""
    logger.verbose("SERVICE", f"{name}: {state}")
    return state


def install(
    artifact: DownloadArtifact,
    target: InstallTarget,
    *,
    backup: bool,
    force: bool,
    controller: ServiceController,
    logger: Logger | None = None,
) -> InstallResult:
    """Install artifact at target and bring the service back up.

    Args:
        artifact: Verified download.
        target: Install path and service name.
        backup: Keep a timestamped copy of the previous binary.
        force: Install even if the binary is already identical.
        controller: Service controller used for query/stop/start/install.
        logger: Optional logger (global logger otherwise).

    Returns:
        The install result.

    Raises:
        InstallError: If the install directory cannot be created or the
            binary cannot be replaced.
        ServiceError: If the service cannot be stopped, started or
            registered.
        BackupError: If the backup copy fails.

    """
    if logger is None:
        logger = get_global_logger()

    target_path = Path(target.path)
    name = target.service_name
    warnings: list[str] = []

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise InstallError(
            f"could not create install directory {target_path.parent}: {err}"
        ) from err

    existed = target_path.is_file()
    if existed and not force:
        try:
            current = sha256_file(target_path)
        except OSError as err:
            raise InstallError(
                f"could not read installed binary {target_path}: {err}"
            ) from err
        if current.lower() == artifact.actual_sha256.lower():
            logger.verbose("INSTALL", f"{target_path.name} already matches {current}")
            artifact.local_path.unlink(missing_ok=True)
            return InstallResult("already_current", target_path)

    info = controller.query(name)
    bound_here = bool(
        info.exists
        and info.executable
        and same_executable(info.executable, target_path)
    )
    if info.exists and not bound_here:
        msg = (
            f"service {name} runs {info.executable or info.command_line or '?'}, "
            f"not {target_path}; leaving it alone"
        )
        logger.warning(msg)
        warnings.append(msg)

    backup_path: Path | None = None
    service_action: ServiceAction = "left_alone" if info.exists else "none"
    stopped = False
    started = False
    service_status = ""
    try:
        if bound_here:
            logger.verbose("SERVICE", f"Stopping {name}")
            # A stop that fails midway may still leave the service down.
            stopped = True
            controller.stop(name)

        if backup and existed:
            backup_path = backup_binary(target_path, logger=logger)

        replace_binary(artifact.local_path, target_path, logger=logger)

        if bound_here:
            logger.verbose("SERVICE", f"Starting {name}")
            controller.start(name)
            started = True
            service_action = "restarted"
        elif not info.exists:
            logger.verbose("SERVICE", f"Registering {name} -> {target_path}")
            controller.install(name, target_path, target.install_args)
            controller.start(name)
            started = True
            service_action = "registered"
    except Exception:
        if stopped and not started:
            logger.verbose("SERVICE", f"Restarting {name} after failure")
            try:
                controller.start(name)
            except Exception as restart_err:
                logger.warning(f"could not restart service {name}: {restart_err}")
        raise
    finally:
        service_status = _report_status(controller, name, logger)

    return InstallResult(
        status="updated" if existed else "installed",
        target_path=target_path,
        backup_path=backup_path,
        service_action=service_action,
        service_status=service_status,
        warnings=warnings,
    )
