"""Command-line interface for dotsync."""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.table import Table

from .config import DEFAULT_COMMIT_MESSAGE, DEFAULT_CONFIG_FILENAME, DEFAULT_IGNORE, ConfigError, load_config
from .logger import setup_logging
from .manager import SyncError, SyncManager
from .models import (
    FileStatus,
    ManagedPath,
    MutationAction,
    MutationResult,
    Resolution,
    StatusReport,
    SyncPlan,
    SyncResult,
    TrackedFile,
)
from .vcs import VcsError

app = typer.Typer(help="Keep dotfiles in sync between your home directory and a git repository")
console = Console()

STATUS_STYLES = {
    FileStatus.SYNCED: ("green", "✓"),
    FileStatus.LOCAL: ("yellow", "↑"),
    FileStatus.REMOTE: ("blue", "↓"),
    FileStatus.CONFLICT: ("red", "!"),
    FileStatus.DIVERGED: ("magenta", "≠"),
    FileStatus.UNLINKED: ("dim", "○"),
}

RESOLUTION_ANSWERS = {
    "l": Resolution.KEEP_LOCAL,
    "local": Resolution.KEEP_LOCAL,
    "r": Resolution.KEEP_REMOTE,
    "remote": Resolution.KEEP_REMOTE,
    "s": Resolution.SKIP,
    "skip": Resolution.SKIP,
}


class KeepChoice(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


KEEP_RESOLUTIONS = {KeepChoice.LOCAL: Resolution.KEEP_LOCAL, KeepChoice.REMOTE: Resolution.KEEP_REMOTE}


@dataclass
class CliState:
    config: Path | None = None
    project: Path | None = None


def _load_manager(config: Path | None) -> SyncManager:
    config_obj = load_config(config)
    return SyncManager(config_obj)


def _state(ctx: typer.Context) -> CliState:
    return ctx.ensure_object(CliState)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, typer.Exit):
        raise exc
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that you can write to the home and repository directories.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dotsync init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, SyncError):
        if exc.results:
            _format_results(exc.results)
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, VcsError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Path")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")

    for entry in report.entries:
        style, icon = STATUS_STYLES.get(entry.status, ("white", " "))
        table.add_row(
            entry.path.group,
            entry.path.relative_path.as_posix(),
            f"[{style}]{icon} {entry.status.value}[/{style}]",
            entry.details or "",
        )

    console.print(f"[dim]{report.mode.value} mode → {report.target_root}[/dim]")
    console.print(table)


def _format_tracked(paths: Iterable[ManagedPath]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Path")

    for managed_path in paths:
        table.add_row(managed_path.group, managed_path.relative_path.as_posix())

    console.print(table)


def _format_plan(plan: SyncPlan) -> None:
    for label, bucket in (("pull", plan.pull), ("push", plan.push), (plan.mode.value, plan.link)):
        if bucket:
            console.print(f"[bold]{label}[/bold]: " + ", ".join(entry.key() for entry in bucket))
    if plan.deferred:
        console.print("[yellow]deferred[/yellow]: " + ", ".join(entry.key() for entry in plan.deferred))


def _format_results(results: Iterable[MutationResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path")
    table.add_column("Operation")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    for result in results:
        action = result.action.value
        if result.action is MutationAction.FAILED:
            action = f"[red]{action}[/red]"
        details = result.details or ""
        if result.backup is not None:
            details = f"backup: {result.backup}"
        table.add_row(result.path.as_posix(), result.operation.value, action, details)

    console.print(table)


def _report_outcome(outcome: SyncResult) -> None:
    if outcome.results:
        _format_results(outcome.results)
    if outcome.pulled:
        console.print("[blue]Pulled latest changes.[/blue]")
    if outcome.pushed:
        console.print("[green]Pushed changes.[/green]")
    if outcome.plan.deferred:
        console.print(
            "[yellow]Left untouched: "
            + ", ".join(entry.key() for entry in outcome.plan.deferred)
            + "[/yellow]"
        )
    if outcome.failures:
        console.print(f"[red]{len(outcome.failures)} operation(s) failed.[/red]")
        raise typer.Exit(code=1)


def _prompt_resolution(entry: TrackedFile) -> Resolution:
    while True:
        answer = typer.prompt(
            f"{entry.key()} is {entry.status.value}: keep [l]ocal, keep [r]emote or [s]kip?",
            default="s",
        )
        resolution = RESOLUTION_ANSWERS.get(answer.strip().lower())
        if resolution is not None:
            return resolution
        console.print("[yellow]Please answer l, r or s.[/yellow]")


def _interactive(manager: SyncManager, project: Path | None) -> None:
    if manager.ensure_repo():
        console.print(f"[green]Cloned {manager.settings.repo_url}.[/green]")

    report = manager.status(project)
    _format_status(report)
    if report.in_sync():
        console.print("[green]Everything is in sync.[/green]")
        return
    if not typer.confirm("Reconcile out-of-sync files?", default=True):
        return

    plan = manager.plan(report, decide=_prompt_resolution)
    if plan.is_empty():
        _format_plan(plan)
        console.print("[yellow]Nothing to do.[/yellow]")
        return

    _format_plan(plan)
    message = None
    if plan.push:
        message = typer.prompt("Commit message", default=manager.settings.commit_message)
    _report_outcome(manager.execute(plan, message))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotsync.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    project: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Copy files into this project directory instead of linking into home",
        file_okay=False,
    ),
) -> None:
    """Run an interactive reconciliation when no command is given."""

    setup_logging(verbose)
    state = _state(ctx)
    state.config = config
    state.project = project
    if ctx.invoked_subcommand is not None:
        return

    try:
        _interactive(_load_manager(config), project)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def sync(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(None, help="Tracked paths to reconcile (default: all)"),
    group: list[str] = typer.Option(None, "--group", "-g", help="Limit to specific group(s)"),
    project: Path | None = typer.Option(None, "--project", "-p", help="Copy into a project directory", file_okay=False),
    keep: KeepChoice | None = typer.Option(
        None,
        "--keep",
        help="Resolve every conflict the same way instead of prompting",
        case_sensitive=False,
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not prompt; unresolved conflicts are left untouched"),
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message for pushed files"),
) -> None:
    """Reconcile tracked files in one pass: pull, push, then link or copy."""

    try:
        state = _state(ctx)
        manager = _load_manager(state.config)
        manager.ensure_repo()
        report = manager.status(project or state.project)

        selected: list[str] | None = list(paths) if paths else None
        if group:
            wanted = set(group)
            grouped = [entry.key() for entry in report.entries if entry.path.group in wanted]
            selected = (selected or []) + [key for key in grouped if key not in (selected or [])]

        if keep is not None:
            resolution = KEEP_RESOLUTIONS[keep]
            decide = lambda _entry: resolution  # noqa: E731
        elif yes:
            decide = None
        else:
            decide = _prompt_resolution

        plan = manager.plan(report, selected, decide)
        if plan.is_empty():
            _format_plan(plan)
            console.print("[green]Nothing to do.[/green]")
            return
        _report_outcome(manager.execute(plan, message))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    ctx: typer.Context,
    project: Path | None = typer.Option(None, "--project", "-p", help="Compare against a project directory", file_okay=False),
    offline: bool = typer.Option(False, "--offline", help="Skip git queries; compare files only"),
) -> None:
    """Show tracked files and their current state."""

    try:
        state = _state(ctx)
        manager = _load_manager(state.config)
        manager.ensure_repo()
        report = manager.status(project or state.project, use_vcs=not offline)
        _format_status(report)
        if not report.in_sync():
            console.print("[yellow]Some files are out of sync. Run 'dotsync sync' to reconcile them.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("list")
def list_(ctx: typer.Context) -> None:
    """List tracked files by group."""

    try:
        manager = _load_manager(_state(ctx).config)
        _format_tracked(manager.tracked())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def add(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="File or directory under the home directory"),
    push: bool = typer.Option(True, "--push/--no-push", help="Commit and push the new file"),
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message"),
) -> None:
    """Start tracking a file: copy it into the repository and link it back."""

    try:
        manager = _load_manager(_state(ctx).config)
        results = manager.add(path, push=push, message=message)
        _format_results(results)
        if any(result.action is MutationAction.FAILED for result in results):
            raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def remove(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Tracked file or directory under the home directory"),
    push: bool = typer.Option(True, "--push/--no-push", help="Commit and push the removal"),
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message"),
) -> None:
    """Stop tracking a file, leaving a regular copy in the home directory."""

    try:
        manager = _load_manager(_state(ctx).config)
        results = manager.remove(path, push=push, message=message)
        _format_results(results)
        if any(result.action is MutationAction.FAILED for result in results):
            raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def _render_init_config(*, repo_url: str | None, repo_root: str, tracking: str) -> str:
    settings: dict[str, object] = {
        "repo_root": repo_root,
        "home_root": "~",
        "backup_root": "~/.dotfiles-backup",
        "tracking": tracking,
        "ignore": list(DEFAULT_IGNORE),
        "commit_message": DEFAULT_COMMIT_MESSAGE,
    }
    if repo_url:
        settings["repo_url"] = repo_url

    data: dict[str, object] = {"settings": settings}
    if tracking == "manifest":
        data["categories"] = {
            "Shell": {"paths": [".zshrc", ".bashrc", ".aliases"]},
            "Git": {"paths": [".gitconfig", ".gitignore"]},
        }

    buffer = io.StringIO()
    buffer.write("# dotsync configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    repo_url: str | None = typer.Option(None, "--repo-url", help="Remote dotfiles repository to clone"),
    repo_root: str = typer.Option("~/.dotfiles", "--repo-root", help="Where the repository clone lives"),
    manifest: bool = typer.Option(
        False,
        "--manifest/--discover",
        help="Track a fixed list of categories instead of everything in the repository",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotsync configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(
        _render_init_config(
            repo_url=repo_url,
            repo_root=repo_root,
            tracking="manifest" if manifest else "discover",
        )
    )
    console.print(f"[green]Created '{config}'.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
