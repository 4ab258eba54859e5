"""Local implementations of the operations a plan is handed to.

Each function is idempotent: run it twice and the second call changes
nothing. None of them ever deletes or replaces an existing staged file.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from .errors import ConfigError, StagingPermissionError, TransferError
from .models import DirectCopy, RunCommand

log = logging.getLogger(__name__)


def apply_ownership(
    path: Path,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[str] = None,
) -> None:
    """Set owner, group and mode on *path*; unset values are left alone."""
    if mode is not None:
        try:
            perms = int(str(mode), 8)
        except ValueError:
            raise ConfigError(f"invalid file mode '{mode}'; expected an octal string like 0644") from None
    try:
        if owner or group:
            shutil.chown(path, user=owner, group=group)
        if mode is not None:
            os.chmod(path, perms)
    except (OSError, LookupError) as exc:
        raise StagingPermissionError(f"cannot set ownership/mode on {path}: {exc}", str(path)) from exc


def ensure_directory(
    path: str,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[str] = None,
) -> None:
    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StagingPermissionError(f"cannot create directory {directory}: {exc}", path) from exc
    apply_ownership(directory, owner, group, mode)


def local_source_path(source: str, fileserver_root: Optional[str] = None) -> Path:
    """Map a DirectCopy source (path, file://, puppet://) onto the local filesystem."""
    if source.startswith("file://"):
        return Path(urlparse(source).path)
    if source.startswith("puppet://"):
        if not fileserver_root:
            raise ConfigError(f"{source} needs a fileserver root (FILESTAGE_FILESERVER_ROOT)")
        return Path(fileserver_root) / urlparse(source).path.lstrip("/")
    return Path(source)


def copy_file(action: DirectCopy, dest: str, fileserver_root: Optional[str] = None) -> bool:
    """Copy the action's source to *dest*. Returns False if *dest* already exists.

    An existing *dest* keeps its content but still gets owner, group and mode.
    """
    target = Path(dest)
    if target.exists():
        log.debug("Copy skipped, %s already exists", target)
        apply_ownership(target, action.owner, action.group, action.mode)
        return False

    src = local_source_path(action.source, fileserver_root)
    if not src.is_file():
        raise TransferError(f"source file does not exist: {src}")

    # Drive-letter sources do not carry meaningful POSIX permissions.
    copy = shutil.copyfile if action.ignore_source_permissions else shutil.copy2
    try:
        copy(src, target)
    except OSError as exc:
        raise TransferError(f"cannot copy {src} to {target}: {exc}") from exc
    log.info("Copied %s -> %s", src, target)
    apply_ownership(target, action.owner, action.group, action.mode)
    return True


def build_environment(entries: tuple[str, ...], exec_path: str) -> dict[str, str]:
    env = dict(os.environ)
    env["PATH"] = exec_path
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise ConfigError(f"environment entry must look like KEY=VALUE, got '{entry}'")
        env[key] = value
    return env


def run_command(action: RunCommand, exec_path: str) -> bool:
    """Run the action's command unless its creates-guard file exists.

    Returns True when the command ran. A nonzero exit or timeout on the last
    of ``tries`` attempts raises TransferError.
    """
    if Path(action.creates).exists():
        log.debug("Command skipped, %s already exists", action.creates)
        return False

    env = build_environment(action.environment, exec_path)
    tries = max(1, action.tries or 1)
    failure = ""
    returncode: Optional[int] = None
    output = ""

    for attempt in range(tries):
        log.debug("Fetching %s (attempt %s/%s)", action.creates, attempt + 1, tries)
        try:
            proc = subprocess.run(
                action.commandline,
                shell=True,
                cwd=action.cwd,
                env=env,
                timeout=action.timeout,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except subprocess.TimeoutExpired:
            failure = f"timed out after {action.timeout}s"
            returncode = None
            output = ""
        except OSError as exc:
            failure = str(exc)
            returncode = None
            output = ""
        else:
            if proc.returncode == 0:
                return True
            failure = f"exited with status {proc.returncode}"
            returncode = proc.returncode
            output = proc.stdout or ""

        if attempt < tries - 1:
            log.warning("Command %s (attempt %s/%s); retrying", failure, attempt + 1, tries)
            if action.try_sleep:
                time.sleep(action.try_sleep)

    raise TransferError(
        f"fetching {action.creates} {failure} after {tries} attempt(s)",
        returncode=returncode,
        output=output,
    )


def ensure_file(
    path: str,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    mode: Optional[str] = None,
) -> None:
    target = Path(path)
    if not target.is_file():
        raise TransferError(f"expected staged file is missing: {target}")
    apply_ownership(target, owner, group, mode)
