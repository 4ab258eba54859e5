"""fstage — filestage CLI."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from .applier import PLANNED, SKIPPED, StageReport, Stager
from .config import Settings
from .errors import StagingError
from .manifest import default_name, load_manifest
from .models import DownloaderFlavor, ResolvedPlan, RetrievalRequest, RunCommand
from .state import INTACT, MISSING, MODIFIED, StateFile

app = typer.Typer(
    name="fstage",
    help="Stage local and remote files into a managed directory.",
    add_completion=False,
    no_args_is_help=True,
)

_FLAVORS_DISPLAY = " | ".join(f.value for f in DownloaderFlavor)
_console = Console()

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_CONDITION_STYLE = {
    INTACT: "[green]intact[/green]",
    MODIFIED: "[yellow]modified[/yellow]",
    MISSING: "[red]missing[/red]",
}


@dataclass
class _Context:
    settings: Settings
    flavor: DownloaderFlavor


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

NameOpt = Annotated[Optional[str], typer.Option("--name", help="File name under the staging dir. Defaults to the source basename.")]
TargetOpt = Annotated[Optional[str], typer.Option("--target", help="Explicit destination path.")]
SubdirOpt = Annotated[Optional[str], typer.Option("--subdir", help="Folder under the staging root.")]
UsernameOpt = Annotated[Optional[str], typer.Option("--username")]
PasswordOpt = Annotated[Optional[str], typer.Option("--password")]
CertificateOpt = Annotated[Optional[str], typer.Option("--certificate", help="Client certificate for https sources (ignored by powershell).")]
NovalidateOpt = Annotated[bool, typer.Option("--novalidate", help="Skip TLS validation (powershell only).")]
CurlOpt = Annotated[str, typer.Option("--curl-option", help="Extra options passed to curl.")]
WgetOpt = Annotated[str, typer.Option("--wget-option", help="Extra options passed to wget.")]
EnvOpt = Annotated[Optional[list[str]], typer.Option("--env", help="KEY=VALUE for the download command. Repeatable.")]
TimeoutOpt = Annotated[Optional[float], typer.Option("--timeout", help="Seconds before the download is killed.")]
TriesOpt = Annotated[Optional[int], typer.Option("--tries", help="Attempts before giving up.")]
TrySleepOpt = Annotated[Optional[float], typer.Option("--try-sleep", help="Seconds between attempts.")]
OwnerOpt = Annotated[Optional[str], typer.Option("--owner")]
GroupOpt = Annotated[Optional[str], typer.Option("--group")]
ModeOpt = Annotated[Optional[str], typer.Option("--mode", help="Octal mode, e.g. 0644.")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")


def _fail(message: str, code: int = 1) -> None:
    _console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code)


def _build_request(source: str, **options) -> RetrievalRequest:
    name = options.pop("name", None) or default_name(source)
    env = options.pop("env", None) or []
    return RetrievalRequest.from_dict(
        {"source": source, "name": name, "environment": env, **{k: v for k, v in options.items() if v is not None}}
    )


def _print_plan(plan: ResolvedPlan) -> None:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Field", style="cyan", min_width=18)
    table.add_column("Value", no_wrap=False)

    table.add_row("Scheme", plan.scheme.value)
    table.add_row("Target", plan.target_file)
    table.add_row("Staging dir", plan.staging_dir)
    table.add_row("Create dir", "yes" if plan.needs_directory else "[dim]no[/dim]")
    if isinstance(plan.action, RunCommand):
        table.add_row("Action", "run command")
        table.add_row("Command", plan.action.commandline, style="bold")
    else:
        table.add_row("Action", "copy (never replaces)")
        table.add_row("Copy from", plan.action.source)
    table.add_row("Permission fix", "yes" if plan.needs_permission_fix else "[dim]no[/dim]")

    _console.print(Rule("[bold]fstage plan[/bold]"))
    _console.print(table)


def _print_report(report: StageReport, dry_run: bool) -> None:
    tag = "[dim](dry run)[/dim] " if dry_run else ""

    if report.staged:
        _console.print(f"  {tag}[green]Staged:[/green] {len(report.staged)}")
        for name in report.staged:
            _console.print(f"    [green]✓[/green] {name}")

    if report.planned:
        _console.print(f"  {tag}[green]Would stage:[/green] {len(report.planned)}")
        for name in report.planned:
            _console.print(f"    [green]→[/green] {name}")

    if report.skipped:
        _console.print(f"  {tag}[dim]Already present:[/dim] {len(report.skipped)}")

    if report.errors:
        _console.print(f"  {tag}[red]Errors:[/red] {len(report.errors)}")
        for name, reason in report.errors:
            _console.print(f"    [red]✗[/red] {name}: {reason}")

    if not report.total:
        _console.print("  [dim]Nothing to do.[/dim]")


def _format_size(n: int) -> str:
    size, unit = float(n), 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {_SIZE_UNITS[unit]}"


def _format_timestamp(iso: str) -> str:
    stamp = datetime.fromisoformat(iso).astimezone(timezone.utc)
    return f"{stamp:%Y-%m-%d %H:%M} UTC"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main_options(
    ctx: typer.Context,
    flavor: Annotated[
        Optional[str],
        typer.Option("--flavor", help=f"Download tool: {_FLAVORS_DISPLAY}. Env: FILESTAGE_FLAVOR."),
    ] = None,
    path: Annotated[
        Optional[str],
        typer.Option("--path", help="Staging root directory. Env: FILESTAGE_PATH."),
    ] = None,
    strict_flavor: Annotated[
        bool,
        typer.Option("--strict-flavor", help="Reject unknown flavors instead of falling back to curl."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """Stage local and remote files into a managed directory."""
    configure_logging(verbose)
    settings = Settings.from_env().override(flavor=flavor, path=path)
    try:
        resolved = settings.resolve_flavor(strict=strict_flavor)
    except StagingError as exc:
        _fail(str(exc))
    ctx.obj = _Context(settings=settings, flavor=resolved)


@app.command()
def plan(
    ctx: typer.Context,
    source: Annotated[str, typer.Argument(help="Local path, file://, puppet://, http(s)://, ftp:// or s3:// source.")],
    name: NameOpt = None,
    target: TargetOpt = None,
    subdir: SubdirOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    certificate: CertificateOpt = None,
    novalidate: NovalidateOpt = False,
    curl_option: CurlOpt = "",
    wget_option: WgetOpt = "",
    env: EnvOpt = None,
    timeout: TimeoutOpt = None,
    tries: TriesOpt = None,
    try_sleep: TrySleepOpt = None,
    owner: OwnerOpt = None,
    group: GroupOpt = None,
    mode: ModeOpt = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the plan as JSON.")] = False,
) -> None:
    """Show what staging SOURCE would do, without touching the filesystem."""
    context: _Context = ctx.obj
    try:
        request = _build_request(
            source, name=name, target=target, subdir=subdir, username=username,
            password=password, certificate=certificate, novalidate=novalidate,
            curl_option=curl_option, wget_option=wget_option, env=env, timeout=timeout,
            tries=tries, try_sleep=try_sleep, owner=owner, group=group, mode=mode,
        )
        resolved = Stager(context.settings, context.flavor).plan(request)
    except StagingError as exc:
        _fail(str(exc))

    if as_json:
        typer.echo(json.dumps(resolved.describe(), indent=2))
    else:
        _print_plan(resolved)


@app.command()
def stage(
    ctx: typer.Context,
    source: Annotated[str, typer.Argument(help="Local path, file://, puppet://, http(s)://, ftp:// or s3:// source.")],
    name: NameOpt = None,
    target: TargetOpt = None,
    subdir: SubdirOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    certificate: CertificateOpt = None,
    novalidate: NovalidateOpt = False,
    curl_option: CurlOpt = "",
    wget_option: WgetOpt = "",
    env: EnvOpt = None,
    timeout: TimeoutOpt = None,
    tries: TriesOpt = None,
    try_sleep: TrySleepOpt = None,
    owner: OwnerOpt = None,
    group: GroupOpt = None,
    mode: ModeOpt = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report what would happen without writing to disk."),
    ] = False,
) -> None:
    """Stage a single SOURCE. An existing target is never fetched again."""
    context: _Context = ctx.obj
    state = None if dry_run else StateFile(Path(context.settings.path))
    stager = Stager(context.settings, context.flavor, state=state, dry_run=dry_run)
    try:
        request = _build_request(
            source, name=name, target=target, subdir=subdir, username=username,
            password=password, certificate=certificate, novalidate=novalidate,
            curl_option=curl_option, wget_option=wget_option, env=env, timeout=timeout,
            tries=tries, try_sleep=try_sleep, owner=owner, group=group, mode=mode,
        )
        with _console.status("Staging..."):
            result = stager.stage(request)
    except StagingError as exc:
        _fail(str(exc))

    if result.status == PLANNED:
        _console.print(f"[dim](dry run)[/dim] Would stage {result.target_file}")
    elif result.status == SKIPPED:
        _console.print(f"[dim]Already present:[/dim] {result.target_file}")
    else:
        _console.print(f"[green]✓[/green] Staged {result.target_file}")


@app.command()
def apply(
    ctx: typer.Context,
    manifest: Annotated[Path, typer.Argument(help="JSON manifest listing the files to stage.")],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report what would happen without writing to disk."),
    ] = False,
) -> None:
    """Stage every file listed in MANIFEST."""
    context: _Context = ctx.obj
    try:
        requests = load_manifest(manifest)
    except StagingError as exc:
        _fail(str(exc))

    label = f"{manifest.name} [dim](dry run)[/dim]" if dry_run else manifest.name
    _console.print(Rule(f"[bold cyan]{label}[/bold cyan]"))

    state = None if dry_run else StateFile(Path(context.settings.path))
    stager = Stager(context.settings, context.flavor, state=state, dry_run=dry_run)
    with _console.status("Working..."):
        report = stager.stage_all(requests)
    _print_report(report, dry_run)

    _console.print(Rule())
    _console.print(
        f"[bold]Done.[/bold]  "
        f"Staged: [green]{len(report.staged)}[/green]  "
        f"Present: [dim]{len(report.skipped)}[/dim]  "
        f"Errors: [red]{len(report.errors)}[/red]"
    )

    # Exit codes: 0 = clean, 1 = partial, 2 = errors and nothing staged
    if report.errors:
        raise typer.Exit(1 if report.staged else 2)


@app.command()
def status(
    ctx: typer.Context,
    check: Annotated[
        bool,
        typer.Option("--check", help="Exit 1 if any staged file was modified or removed."),
    ] = False,
) -> None:
    """Show staged files and whether each is still as it was staged."""
    context: _Context = ctx.obj
    verified = StateFile(Path(context.settings.path)).verify()

    if not verified:
        _console.print(
            "[dim]Nothing staged yet. Run [bold]fstage stage[/bold] to get started.[/dim]"
        )
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("File", style="cyan", no_wrap=False)
    table.add_column("Source", no_wrap=False)
    table.add_column("Size", justify="right", min_width=10)
    table.add_column("Staged")
    table.add_column("State")

    drifted = 0
    for entry, condition in verified:
        if condition != INTACT:
            drifted += 1
        table.add_row(
            entry.key,
            entry.source,
            _format_size(entry.size),
            _format_timestamp(entry.recorded_at),
            _CONDITION_STYLE[condition],
        )

    _console.print(Rule(f"[bold]fstage status[/bold] [dim]{context.settings.path}[/dim]"))
    _console.print(table)
    _console.print(Rule())
    total = sum(entry.size for entry, _ in verified)
    summary = f"{len(verified)} files  {_format_size(total)}"
    if drifted:
        summary += f"  [yellow]{drifted} changed since staging[/yellow]"
    _console.print(f"[dim]{summary}[/dim]")

    if check and drifted:
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
