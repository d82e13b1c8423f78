"""CLI entry point for gitlayer."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from gitlayer import __version__
from gitlayer.config import get_settings, load_settings
from gitlayer.errors import GitLayerError
from gitlayer.git.repository import WorkspaceFolder
from gitlayer.git.service import GitService
from gitlayer.utils.logging import setup_logging

app = typer.Typer(
    name="gitlayer",
    help="Inspect git repositories through the gitlayer cache",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]gitlayer[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    trace_git: bool = typer.Option(
        False,
        "--trace-git",
        help="Show each git command and its duration",
    ),
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """gitlayer - git process orchestration and caching."""
    if config:
        load_settings(config_path=config, force_reload=True)

    settings = get_settings()
    setup_logging(
        level=logging.WARNING,
        log_file=settings.resolved_log_file,
        verbose=verbose,
        trace_git=trace_git,
    )


async def _open(path: Path) -> tuple[GitService, str]:
    """Start a service on ``path`` and resolve its repository."""
    folder = path.resolve()
    service = GitService(get_settings())
    await service.initialize([WorkspaceFolder(str(folder), folder.name, 0)])

    repo_path = await service.get_repo_path(str(folder), is_directory=folder.is_dir())
    if repo_path is None:
        await service.shutdown()
        console.print(f"[red]Not a git repository: {path}[/red]")
        raise typer.Exit(1)
    return service, repo_path


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except GitLayerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def repos(
    path: Path = typer.Argument(Path("."), help="Folder to search"),
    depth: Optional[int] = typer.Option(None, "--depth", "-d", help="Nested repository search depth"),
) -> None:
    """List the repositories found in a folder."""
    if depth is not None:
        get_settings().advanced.repository_search_depth = depth
    _run(_repos(path))


async def _repos(path: Path) -> None:
    folder = path.resolve()
    service = GitService(get_settings())
    try:
        await service.initialize([WorkspaceFolder(str(folder), folder.name, 0)])

        repositories = service.get_ordered_repositories()
        if not repositories:
            console.print(f"[dim]No repositories found in {folder}[/dim]")
            return

        table = Table(title="Repositories")
        table.add_column("Name", style="cyan")
        table.add_column("Path", style="blue")
        table.add_column("Branch", style="green")
        table.add_column("Root", justify="center")

        for repository in repositories:
            branch = await service.get_branch(repository.path)
            table.add_row(
                repository.name,
                repository.path,
                branch.name if branch is not None else "-",
                "✓" if repository.root else "",
            )

        console.print(table)
    finally:
        await service.shutdown()


@app.command()
def status(
    path: Path = typer.Argument(Path("."), help="Path inside the repository"),
) -> None:
    """Show the working tree status."""
    _run(_status(path))


async def _status(path: Path) -> None:
    service, repo_path = await _open(path)
    try:
        result = await service.get_status_for_repo(repo_path)
        if result is None:
            console.print("[dim]No status available[/dim]")
            return

        console.print(result.summary())
        if result.files:
            table = Table()
            table.add_column("Status", justify="center", style="yellow")
            table.add_column("File", style="cyan")
            table.add_column("Staged", justify="center")
            for file in result.files:
                name = f"{file.original_path} → {file.path}" if file.original_path else file.path
                table.add_row(file.status, name, "✓" if file.staged else "")
            console.print(table)
    finally:
        await service.shutdown()


@app.command()
def branches(
    path: Path = typer.Argument(Path("."), help="Path inside the repository"),
    remotes: bool = typer.Option(False, "--remotes", "-r", help="Include remote branches"),
    tags: bool = typer.Option(False, "--tags", "-t", help="Include tags"),
) -> None:
    """List branches (and optionally tags)."""
    _run(_branches(path, remotes, tags))


async def _branches(path: Path, remotes: bool, tags: bool) -> None:
    service, repo_path = await _open(path)
    try:
        refs = await service.get_branches_and_or_tags(
            repo_path,
            include="all" if tags else "branches",
            filter_branches=None if remotes else (lambda b: not b.remote),
            sort=True,
        )
        if not refs:
            console.print("[dim]No branches found[/dim]")
            return

        table = Table(title="Branches")
        table.add_column("", justify="center")
        table.add_column("Name", style="green")
        table.add_column("Type", style="dim")
        table.add_column("Upstream", style="blue")
        table.add_column("Ahead/Behind", justify="right")
        table.add_column("Sha", style="yellow")

        for ref in refs:
            if ref.ref_type == "tag":
                table.add_row("", ref.name, "tag", "", "", ref.sha[:7])
                continue

            upstream = ref.upstream.name if ref.upstream is not None else ""
            if ref.upstream is not None and ref.upstream.missing:
                upstream += " (gone)"
            table.add_row(
                "*" if ref.current else "",
                ref.name,
                "remote" if ref.remote else "local",
                upstream,
                f"{ref.state.ahead}/{ref.state.behind}" if ref.upstream is not None else "",
                (ref.sha or "")[:7],
            )

        console.print(table)
    finally:
        await service.shutdown()


@app.command()
def log(
    path: Path = typer.Argument(Path("."), help="Repository path, or a file for its history"),
    ref: Optional[str] = typer.Option(None, "--ref", help="Start from this revision"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of commits to show"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search pattern (e.g. '@:alice fix')"),
) -> None:
    """Show commit history."""
    _run(_log(path, ref, limit, search))


async def _log(path: Path, ref: Optional[str], limit: int, search: Optional[str]) -> None:
    from gitlayer.git.search import SearchPattern

    service, repo_path = await _open(path)
    try:
        target = str(path.resolve())
        if search:
            result = await service.get_log_for_search(repo_path, SearchPattern(search), limit=limit)
        elif os.path.isfile(target):
            result = await service.get_log_for_file(target, repo_path, limit=limit, ref=ref)
        else:
            result = await service.get_log(repo_path, ref, limit=limit)

        if result is None or not result.commits:
            console.print("[dim]No commits found[/dim]")
            return

        table = Table(title=f"Log ({result.count}{'+' if result.has_more else ''})")
        table.add_column("Sha", style="yellow", no_wrap=True)
        table.add_column("Author", style="green")
        table.add_column("Date", style="blue")
        table.add_column("Message")

        for commit in result.commits.values():
            table.add_row(commit.short_sha, commit.author, commit.date.strftime("%Y-%m-%d %H:%M"), commit.summary)

        console.print(table)
    finally:
        await service.shutdown()


@app.command()
def blame(
    file: Path = typer.Argument(..., help="File to blame"),
    ref: Optional[str] = typer.Option(None, "--ref", help="Blame the file as of this revision"),
    start: Optional[int] = typer.Option(None, "--start", help="First line (1-based)"),
    end: Optional[int] = typer.Option(None, "--end", help="Last line (1-based)"),
) -> None:
    """Show who last changed each line of a file."""
    _run(_blame(file, ref, start, end))


async def _blame(file: Path, ref: Optional[str], start: Optional[int], end: Optional[int]) -> None:
    service, repo_path = await _open(file)
    try:
        target = str(file.resolve())
        result = await service.get_blame_for_file(target, repo_path, ref)
        if result is None:
            console.print(f"[dim]No blame available for {file}[/dim]")
            return

        if start is not None or end is not None:
            first = (start or 1) - 1
            last = (end or len(result.lines)) - 1
            ranged = service.get_blame_for_range_sync(result, (first, last))
            lines = ranged.lines if ranged is not None else ()
            authors = ranged.authors if ranged is not None else {}
        else:
            lines, authors = result.lines, result.authors

        table = Table(title=str(file))
        table.add_column("Line", justify="right", style="dim")
        table.add_column("Sha", style="yellow", no_wrap=True)
        table.add_column("Author", style="green")
        table.add_column("Date", style="blue")
        table.add_column("Summary")

        for line in lines:
            commit = result.commits[line.sha]
            table.add_row(
                str(line.line + 1),
                commit.sha[:7],
                commit.author,
                commit.date.strftime("%Y-%m-%d"),
                commit.message,
            )

        console.print(table)
        console.print(
            "[bold]Authors:[/bold] " + ", ".join(f"{a.name} ({a.line_count})" for a in authors.values())
        )
    finally:
        await service.shutdown()


if __name__ == "__main__":
    app()
