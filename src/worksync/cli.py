"""worksync CLI — Typer application over the synchronization core."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console

from worksync import __version__

app = typer.Typer(
    name="worksync",
    help="Keep a working copy's diff, branches and status in step with a git backend.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console(stderr=True)
stdout = Console()

T = TypeVar("T")


# ── shared plumbing ───────────────────────────────────────────────────────────


def _load_config(ctx: typer.Context):
    """Load config and set up logging, exit 2 on failure."""
    from worksync.config.loader import ConfigError, load_config
    from worksync.logging_setup import configure_logging

    opts = ctx.obj or {}
    try:
        cfg = load_config(Path.cwd(), opts.get("config"))
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    level = "DEBUG" if opts.get("verbose") else cfg.logging.level
    configure_logging(
        level,
        log_file=cfg.logging.file,
        max_bytes=cfg.logging.max_bytes,
        backup_count=cfg.logging.backup_count,
    )
    return cfg


def _resolve_handle(cfg, repo: str):
    """Turn an alias or a path into a RepositoryHandle, exit 2 on failure."""
    from worksync.repos.registry import RegistryError, build_registry

    try:
        registry = build_registry(cfg.repositories.file, Path.cwd())
    except RegistryError as exc:
        console.print(f"[bold red]Repositories error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc
    return registry.resolve(repo)


def _run_session(
    cfg,
    handle,
    body: Callable[..., Awaitable[T]],
    *,
    poll: bool = False,
    on_change: Optional[Callable[[str], None]] = None,
) -> T:
    """Open *handle* in a fresh session, run *body(session)*, tear down."""
    from worksync.backend.client import BackendClient
    from worksync.output import terminal
    from worksync.sync.session import SessionContext

    def show_outcome(outcome) -> None:
        # Opening is implicit for one-shot commands; only report it when it fails
        if outcome.action == "open" and outcome.ok:
            return
        terminal.render_outcome(console, outcome)

    async def main() -> T:
        async with BackendClient(cfg.backend.url, timeout=cfg.backend.timeout) as client:
            session = SessionContext(
                client,
                interval=cfg.polling.interval,
                poll_diff=poll and cfg.polling.diff,
                poll_status=poll and cfg.polling.status,
                message_prefix=cfg.commit.message_prefix,
                on_change=on_change,
                on_outcome=show_outcome,
            )
            async with session:
                opened = await session.open_repository(handle)
                if not opened.ok:
                    raise typer.Exit(code=2)
                return await body(session)

    return asyncio.run(main())


def _exit_for(outcome) -> None:
    from worksync.sync.outcomes import OutcomeStatus

    if outcome.status in (OutcomeStatus.FAILURE, OutcomeStatus.REJECTED):
        raise typer.Exit(code=1)
    raise typer.Exit(code=0)


def _check_format(format: str) -> None:
    if format not in ("terminal", "json"):
        console.print(f"[bold red]Invalid format:[/bold red] {format}")
        raise typer.Exit(code=2)


# ── diff ──────────────────────────────────────────────────────────────────────


@app.command()
def diff(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Show only this file's section"),
    format: str = typer.Option("terminal", "--format", help="Output format: terminal | json"),
    show_all: bool = typer.Option(False, "--all", "-a", help="List every changed file"),
    names_only: bool = typer.Option(False, "--names-only", help="List files without the diff body"),
) -> None:
    """Show uncommitted changes of a working copy."""
    from worksync.output import json_report, terminal

    _check_format(format)
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        engine = session.engine
        if engine.snapshot is None:
            console.print("[bold red]Backend error:[/bold red] could not fetch the diff")
            raise typer.Exit(code=2)
        if file and not engine.select_file(file):
            console.print(f"[yellow]⚠[/yellow]  {file} has no changes")
            raise typer.Exit(code=1)
        if format == "json":
            print(json_report.render(session.handle, engine, session.branches.state, include_diff=not names_only))
            return
        terminal.render_changes(stdout, engine.file_changes, selected=engine.selected_path, show_all=show_all)
        if not names_only:
            terminal.render_diff(stdout, engine.displayed_diff())

    _run_session(cfg, handle, body)


# ── status ────────────────────────────────────────────────────────────────────


@app.command()
def status(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    format: str = typer.Option("terminal", "--format", help="Output format: terminal | json"),
) -> None:
    """Show branch, upstream ahead/behind and latest commits."""
    from worksync.output import json_report, terminal

    _check_format(format)
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        engine = session.engine
        if format == "json":
            print(json_report.render(session.handle, engine, session.branches.state))
            return
        terminal.render_status(stdout, session.branches.state, engine.pull_status, engine.commits)
        stdout.print()
        terminal.render_log(stdout, engine.commits, limit=5)
        stdout.print()
        terminal.render_changes(stdout, engine.file_changes)

    _run_session(cfg, handle, body)


# ── branches ──────────────────────────────────────────────────────────────────


@app.command()
def branches(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
) -> None:
    """List local branches, marking the current one."""
    from worksync.output import terminal

    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        terminal.render_branches(stdout, session.branches.state)

    _run_session(cfg, handle, body)


@app.command()
def checkout(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    branch: str = typer.Argument(..., help="Branch to switch to"),
) -> None:
    """Switch the working copy to another branch."""
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        return await session.branches.checkout(branch)

    _exit_for(_run_session(cfg, handle, body))


@app.command()
def branch(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    name: str = typer.Argument(..., help="Name of the new branch"),
    source: Optional[str] = typer.Option(None, "--from", help="Branch to create from (default: current)"),
) -> None:
    """Create a branch and switch to it."""
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        return await session.branches.create_branch(name, source)

    _exit_for(_run_session(cfg, handle, body))


# ── pull / push / rollback ────────────────────────────────────────────────────


@app.command()
def pull(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
) -> None:
    """Pull upstream commits into the working copy."""
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        return await session.actions.pull()

    _exit_for(_run_session(cfg, handle, body))


@app.command()
def push(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
) -> None:
    """Commit all pending changes with a timestamped message and push."""
    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def body(session):
        return await session.actions.commit_and_push()

    outcome = _run_session(cfg, handle, body)
    if outcome.ok and outcome.detail:
        # Full hash on stdout so it can be piped to a clipboard tool
        print(outcome.detail)
    _exit_for(outcome)


@app.command()
def rollback(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Discard every uncommitted change (irreversible)."""
    from worksync.sync.outcomes import OutcomeStatus

    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)

    async def confirm(prompt: str) -> bool:
        if yes:
            return True
        # The prompt blocks on stdin, so read it off the event loop
        return await asyncio.to_thread(typer.confirm, prompt, default=False)

    async def body(session):
        return await session.actions.rollback(confirm)

    outcome = _run_session(cfg, handle, body)
    if outcome.status == OutcomeStatus.SKIPPED:
        console.print("[dim]Rollback cancelled.[/dim]")
    _exit_for(outcome)


# ── watch ─────────────────────────────────────────────────────────────────────


@app.command()
def watch(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository alias or local path"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Follow only this file's diff"),
    names_only: bool = typer.Option(False, "--names-only", help="Do not print diff bodies"),
) -> None:
    """Poll the working copy and print changes as they happen (Ctrl-C to stop)."""
    from worksync.output import terminal

    cfg = _load_config(ctx)
    handle = _resolve_handle(cfg, repo)
    changed: Optional[asyncio.Event] = None

    def on_change(topic: str) -> None:
        if changed is not None:
            changed.set()

    def render(session) -> None:
        engine = session.engine
        stdout.rule(f"{handle.full_name} @ {session.branches.state.current or '?'}")
        terminal.render_status(stdout, session.branches.state, engine.pull_status, engine.commits)
        terminal.render_changes(stdout, engine.file_changes, selected=engine.selected_path)
        if not names_only:
            terminal.render_diff(stdout, engine.displayed_diff())

    async def body(session):
        nonlocal changed
        changed = asyncio.Event()
        if file:
            session.engine.select_file(file)
        render(session)
        while True:
            await changed.wait()
            changed.clear()
            if file and session.engine.selected_path is None:
                session.engine.select_file(file)
            render(session)

    try:
        _run_session(cfg, handle, body, poll=True, on_change=on_change)
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


# ── repos ─────────────────────────────────────────────────────────────────────


@app.command()
def repos(ctx: typer.Context) -> None:
    """List repositories declared in the repositories file."""
    cfg = _load_config(ctx)
    from worksync.repos.registry import RegistryError, build_registry

    try:
        registry = build_registry(cfg.repositories.file, Path.cwd())
    except RegistryError as exc:
        console.print(f"[bold red]Repositories error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    if not registry.aliases:
        console.print(f"[dim]No repositories declared in {cfg.repositories.file}.[/dim]")
        raise typer.Exit(code=0)
    for alias in registry.aliases:
        handle = registry.get(alias)
        assert handle is not None
        where = handle.path or handle.clone_url or "-"
        stdout.print(f"[cyan]{alias}[/cyan]  {handle.provider}/{handle.full_name}  [dim]{where}[/dim]")


# ── init ──────────────────────────────────────────────────────────────────────


@app.command()
def init(
    with_repos: bool = typer.Option(False, "--repos", help="Also write a starter repositories file"),
) -> None:
    """Generate a starter .worksync.toml in the current directory."""
    from worksync.config.defaults import DEFAULT_TOML, REPOS_YAML
    from worksync.config.loader import CONFIG_FILENAME
    from worksync.config.schema import RepositoriesConfig

    config_path = Path.cwd() / CONFIG_FILENAME
    if config_path.exists():
        console.print(f"[yellow]⚠[/yellow]  {CONFIG_FILENAME} already exists at {config_path}")
        raise typer.Exit(code=1)
    config_path.write_text(DEFAULT_TOML, encoding="utf-8")
    console.print(f"[green]✓[/green] Created {config_path}")

    if with_repos:
        repos_path = Path.cwd() / RepositoriesConfig().file
        if repos_path.exists():
            console.print(f"[yellow]⚠[/yellow]  {repos_path.name} already exists, left untouched")
        else:
            repos_path.write_text(REPOS_YAML, encoding="utf-8")
            console.print(f"[green]✓[/green] Created {repos_path}")


# ── version ───────────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        print(f"worksync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .worksync.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback,
        is_eager=True, help="Show version and exit",
    ),
) -> None:
    """worksync — keep a working copy in step with its git backend."""
    ctx.obj = {"config": config, "verbose": verbose}
