"""Rich terminal rendering — changed files, branches, status, log, outcomes."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from worksync.git.models import BranchState, CommitLogEntry, FileChange, PullStatus
from worksync.sync.outcomes import Outcome, OutcomeStatus

_STATUS_STYLE = {
    "added": "bold green",
    "modified": "bold yellow",
    "deleted": "bold red",
    "renamed": "bold cyan",
}

_STATUS_ICON = {
    "added": "A",
    "modified": "M",
    "deleted": "D",
    "renamed": "R",
}

_OUTCOME_STYLE = {
    OutcomeStatus.SUCCESS: ("green", "✓"),
    OutcomeStatus.FAILURE: ("bold red", "✗"),
    OutcomeStatus.REJECTED: ("yellow", "⚠"),
}

MAX_CHIPS = 10


def _status_pill(change: FileChange) -> Text:
    status = change.status.value
    return Text(f" {_STATUS_ICON.get(status, '?')} ", style=_STATUS_STYLE.get(status, ""))


def render_changes(
    console: Console,
    changes: Sequence[FileChange],
    *,
    selected: Optional[str] = None,
    show_all: bool = False,
) -> None:
    """Print the changed-file list, capped at MAX_CHIPS unless *show_all*."""
    if not changes:
        console.print("[dim]No uncommitted changes.[/dim]")
        return

    table = Table(title=f"Changes ({len(changes)})", title_style="bold", border_style="dim")
    table.add_column("", justify="center", width=3)
    table.add_column("File", style="magenta")
    table.add_column("Status")

    shown = changes if show_all else changes[:MAX_CHIPS]
    for change in shown:
        path = Text(change.path, style="bold magenta" if change.path == selected else "magenta")
        table.add_row(_status_pill(change), path, change.status.value)
    console.print(table)

    hidden = len(changes) - len(shown)
    if hidden > 0:
        console.print(f"[dim]+{hidden} more[/dim]")


def render_diff(console: Console, diff_text: str) -> None:
    if not diff_text.strip():
        return
    console.print(Syntax(diff_text, "diff", theme="ansi_dark", word_wrap=True))


def render_branches(console: Console, state: BranchState) -> None:
    if not state.all:
        console.print(f"[dim]Current branch:[/dim] {state.current or '-'}")
        return
    for branch in state.all:
        if branch == state.current:
            console.print(f"[green]* {branch}[/green]")
        else:
            console.print(f"  {branch}")


def render_status(
    console: Console,
    branches: BranchState,
    pull: PullStatus,
    commits: Iterable[CommitLogEntry],
) -> None:
    head = next(iter(commits), None)
    console.print(f"[dim]Branch:[/dim]   {branches.current or '-'}")
    if head is not None:
        console.print(f"[dim]Head:[/dim]     [cyan]{head.short_hash}[/cyan] {head.message}")
    if pull.up_to_date is None:
        console.print("[dim]Upstream:[/dim] unknown")
    elif pull.behind_count > 0:
        noun = "commit" if pull.behind_count == 1 else "commits"
        console.print(f"[dim]Upstream:[/dim] [yellow]{pull.behind_count} {noun} behind[/yellow]")
    else:
        console.print("[dim]Upstream:[/dim] [green]up to date[/green]")


def render_log(console: Console, commits: Sequence[CommitLogEntry], *, limit: int = 10) -> None:
    if not commits:
        console.print("[dim]No commits.[/dim]")
        return
    table = Table(show_header=False, border_style="dim", box=None)
    table.add_column("Hash", style="cyan")
    table.add_column("Message")
    for entry in commits[:limit]:
        hash_text = Text(entry.short_hash, style="cyan")
        if entry.web_url:
            hash_text.stylize(f"link {entry.web_url}")
        table.add_row(hash_text, entry.message)
    console.print(table)


def render_outcome(console: Console, outcome: Outcome) -> None:
    if outcome.status == OutcomeStatus.SKIPPED:
        return
    style, icon = _OUTCOME_STYLE[outcome.status]
    console.print(f"[{style}]{icon}[/{style}] {outcome.message}")
