"""Drive resolved plans through the local capabilities.

The chain for one request is strictly ordered:

    ensure directory -> copy or guarded download -> permission fix

Any error stops the chain for that request. In particular the permission
fix never runs after a failed download, and a file whose permissions could
not be fixed is left where it is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from . import capabilities
from .config import Settings
from .errors import StagingError
from .models import DirectCopy, DownloaderFlavor, ResolvedPlan, RetrievalRequest
from .resolver import resolve
from .state import StateFile

log = logging.getLogger(__name__)

STAGED = "staged"
SKIPPED = "skipped"
PLANNED = "planned"


@dataclass
class StageResult:
    name: str
    target_file: str
    status: str


@dataclass
class StageReport:
    staged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    planned: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.staged) + len(self.skipped) + len(self.planned) + len(self.errors)


class Stager:
    """Resolves and applies RetrievalRequests for one flavor and settings."""

    def __init__(
        self,
        settings: Settings,
        flavor: DownloaderFlavor = DownloaderFlavor.CURL,
        state: Optional[StateFile] = None,
        dry_run: bool = False,
    ) -> None:
        self.settings = settings
        self.flavor = flavor
        self.state = state
        self.dry_run = dry_run
        self._declared_dirs: set[str] = set()

    def plan(self, request: RetrievalRequest) -> ResolvedPlan:
        return resolve(request, self.flavor, self.settings)

    def ensure_staging_dir(self, plan: ResolvedPlan) -> None:
        """Create the plan's staging directory once per Stager."""
        if not plan.needs_directory or plan.staging_dir in self._declared_dirs:
            return
        capabilities.ensure_directory(
            plan.staging_dir,
            owner=self.settings.owner,
            group=self.settings.group,
            mode=self.settings.mode,
        )
        self._declared_dirs.add(plan.staging_dir)

    def apply(self, plan: ResolvedPlan, name: str = "") -> StageResult:
        name = name or Path(plan.target_file).name
        if self.dry_run:
            status = SKIPPED if Path(plan.target_file).exists() else PLANNED
            return StageResult(name, plan.target_file, status)

        self.ensure_staging_dir(plan)

        if isinstance(plan.action, DirectCopy):
            changed = capabilities.copy_file(
                plan.action, plan.target_file, fileserver_root=self.settings.fileserver_root
            )
        else:
            changed = capabilities.run_command(plan.action, self.settings.exec_path)

        if plan.needs_permission_fix:
            capabilities.ensure_file(plan.target_file, plan.owner, plan.group, plan.mode)

        if changed:
            log.info("Staged %s from %s", plan.target_file, plan.scheme.value)
            if self.state is not None:
                self.state.record(Path(plan.target_file), plan.source)
        return StageResult(name, plan.target_file, STAGED if changed else SKIPPED)

    def stage(self, request: RetrievalRequest) -> StageResult:
        return self.apply(self.plan(request), request.name)

    def stage_all(self, requests: Iterable[RetrievalRequest]) -> StageReport:
        """Stage every request; one failure does not stop the others."""
        report = StageReport()
        for request in requests:
            try:
                result = self.stage(request)
            except StagingError as exc:
                log.error("Staging %s failed: %s", request.name, exc)
                report.errors.append((request.name, str(exc)))
                continue
            if result.status == STAGED:
                report.staged.append(result.name)
            elif result.status == PLANNED:
                report.planned.append(result.name)
            else:
                report.skipped.append(result.name)
        return report
