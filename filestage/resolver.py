"""Staging resolver: turn a RetrievalRequest into a ResolvedPlan.

``resolve`` is pure. It reads nothing from the filesystem or the environment;
the flavor and settings it needs are passed in explicitly.
"""

from __future__ import annotations

import ntpath
import posixpath
import re
from typing import Optional

from .config import Settings
from .errors import ConfigError
from .models import (
    NETWORK_SCHEMES,
    DirectCopy,
    DownloaderFlavor,
    ResolvedPlan,
    RetrievalRequest,
    RunCommand,
    Scheme,
)
from .templates import build_command, build_s3_command

# Checked in order; the first match wins.
SCHEME_PATTERNS: list[tuple[re.Pattern[str], Scheme]] = [
    (re.compile(r"^/"), Scheme.LOCAL),
    (re.compile(r"^[A-Za-z]:"), Scheme.DRIVE),
    (re.compile(r"^file://"), Scheme.FILE),
    (re.compile(r"^puppet://"), Scheme.PUPPET),
    (re.compile(r"^http://"), Scheme.HTTP),
    (re.compile(r"^https://"), Scheme.HTTPS),
    (re.compile(r"^ftp://"), Scheme.FTP),
    (re.compile(r"^s3://"), Scheme.S3),
]


def classify(source: str) -> Scheme:
    for pattern, scheme in SCHEME_PATTERNS:
        if pattern.match(source):
            return scheme
    raise ConfigError(f"unrecognized source scheme: {source}")


def target_paths(request: RetrievalRequest, settings: Settings) -> tuple[str, str, bool]:
    """Return (target_file, staging_dir, needs_directory)."""
    if request.target:
        pathmod = ntpath if "\\" in request.target else posixpath
        return request.target, pathmod.dirname(request.target), False
    subdir = request.subdir or settings.default_subdir
    staging_dir = f"{settings.path}/{subdir}".rstrip("/")
    return f"{staging_dir}/{request.name}", staging_dir, True


def resolve(
    request: RetrievalRequest,
    flavor: DownloaderFlavor = DownloaderFlavor.CURL,
    settings: Optional[Settings] = None,
) -> ResolvedPlan:
    """Resolve *request* for the active *flavor*. Raises ConfigError."""
    settings = settings or Settings()
    scheme = classify(request.source)
    target_file, staging_dir, needs_directory = target_paths(request, settings)

    if scheme in (Scheme.LOCAL, Scheme.DRIVE, Scheme.FILE, Scheme.PUPPET):
        action = DirectCopy(
            source=request.source,
            owner=request.owner,
            group=request.group,
            mode=request.mode,
            ignore_source_permissions=scheme is Scheme.DRIVE,
        )
    else:
        if scheme is Scheme.S3:
            commandline = build_s3_command(request.source, target_file)
        else:
            commandline = build_command(flavor, scheme.value, request, target_file)
        action = RunCommand(
            commandline=commandline,
            cwd=staging_dir,
            creates=target_file,
            environment=request.environment,
            timeout=request.timeout,
            tries=request.tries,
            try_sleep=request.try_sleep,
        )

    return ResolvedPlan(
        source=request.source,
        target_file=target_file,
        staging_dir=staging_dir,
        needs_directory=needs_directory,
        scheme=scheme,
        action=action,
        needs_permission_fix=isinstance(action, RunCommand) and scheme in NETWORK_SCHEMES,
        owner=request.owner,
        group=request.group,
        mode=request.mode,
    )
