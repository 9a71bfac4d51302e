"""CLI for repomap."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import IndexConfig, load_index_config
from .core import ChangeSet
from .errors import InvalidConfigError, RepoRootError, StateCorruptError
from .meta import read_git_root
from .pipeline import IndexRunResult, run_index
from .store import load_catalogue, load_changes, load_meta
from .utils import format_iso_date, humanize_size
from .walker import SymlinkPolicy


app = typer.Typer(help="""\
Structural index of a source repository: files, modules and what changed
since the last run. Output is written to .repomap/ in the repository root.""")

console = Console()

# How many paths of each change kind 'status' lists before eliding
STATUS_PATH_LIMIT = 10


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress and debug details"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _resolve_repo_root(path: Optional[Path]) -> Path:
    """Explicit path, else the enclosing git work tree, else the cwd."""
    if path is not None:
        return path.resolve()
    cwd = Path.cwd()
    return read_git_root(cwd) or cwd


def _load_config(root: Path, overrides: Dict[str, Any]) -> IndexConfig:
    try:
        return load_index_config(root, overrides)
    except InvalidConfigError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _print_run(result: IndexRunResult) -> None:
    plan = result.plan
    console.print(
        f"[green]✓[/green] Indexed {result.file_count} files "
        f"({humanize_size(result.total_size)}) in {len(result.catalogue.modules)} modules"
    )
    console.print(f"  Mode: [bold]{plan.mode.value}[/bold] ({plan.reason})")
    console.print(f"  Changes: {plan.change_set.summary()}")
    if not plan.is_full:
        console.print(f"  Modules refreshed: {len(plan.affected_modules)}")
    if result.warnings:
        console.print(f"[yellow]⚠[/yellow]  {len(result.warnings)} paths skipped (use -v for details)")
    console.print(f"  Output: {result.out_dir}")


def _index(
    path: Optional[Path],
    force_full: bool,
    overrides: Dict[str, Any],
) -> None:
    root = _resolve_repo_root(path)
    config = _load_config(root, overrides)
    try:
        result = run_index(root, config, force_full=force_full)
    except RepoRootError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)
    _print_run(result)


def _overrides(
    out: Optional[str],
    ignore: Optional[List[str]],
    symlinks: Optional[SymlinkPolicy],
    max_depth: Optional[int],
    hash_algorithm: Optional[str],
    concurrency: Optional[int],
    no_gitignore: bool,
    workspace: Optional[List[str]],
) -> Dict[str, Any]:
    return {
        "out_dir": out,
        "ignore": ignore or None,
        "symlinks": symlinks,
        "max_depth": max_depth,
        "hash_algorithm": hash_algorithm,
        "concurrency": concurrency,
        "use_gitignore": False if no_gitignore else None,
        "workspace_patterns": workspace or None,
    }


@app.command()
def build(
    path: Optional[Path] = typer.Argument(None, help="Repository root (default: git top-level or cwd)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output directory, relative to the root"),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", "-i", help="Extra ignore pattern (repeatable, '!' re-includes)"),
    symlinks: Optional[SymlinkPolicy] = typer.Option(None, "--symlinks", help="Symlink policy"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="Deepest directory level to walk"),
    hash_algorithm: Optional[str] = typer.Option(None, "--hash", help="Content hash: sha256 or sha1"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", min=1, help="Hashing workers"),
    no_gitignore: bool = typer.Option(False, "--no-gitignore", help="Do not read .gitignore files"),
    workspace: Optional[List[str]] = typer.Option(None, "--workspace", "-w", help="Workspace glob (repeatable)"),
):
    """Index the repository from scratch.

    Examples:
        repomap build                        # Index the current repository
        repomap build ../other --hash sha1   # Index another tree with SHA-1
        repomap build -i '!node_modules/pkg/**'
    """
    _index(path, True, _overrides(out, ignore, symlinks, max_depth, hash_algorithm, concurrency, no_gitignore, workspace))


@app.command()
def update(
    path: Optional[Path] = typer.Argument(None, help="Repository root (default: git top-level or cwd)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output directory, relative to the root"),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", "-i", help="Extra ignore pattern (repeatable, '!' re-includes)"),
    symlinks: Optional[SymlinkPolicy] = typer.Option(None, "--symlinks", help="Symlink policy"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="Deepest directory level to walk"),
    hash_algorithm: Optional[str] = typer.Option(None, "--hash", help="Content hash: sha256 or sha1"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", min=1, help="Hashing workers"),
    no_gitignore: bool = typer.Option(False, "--no-gitignore", help="Do not read .gitignore files"),
    workspace: Optional[List[str]] = typer.Option(None, "--workspace", "-w", help="Workspace glob (repeatable)"),
):
    """Refresh the index, touching only modules affected by changes.

    Falls back to a full rebuild when there is no previous index, when a
    workspace configuration file changed, or when too many files changed.
    """
    _index(path, False, _overrides(out, ignore, symlinks, max_depth, hash_algorithm, concurrency, no_gitignore, workspace))


def _print_changes(changes: ChangeSet) -> None:
    console.print(f"\n[bold]Last changes:[/bold] {changes.summary()}")
    for label, marker, paths in (
        ("added", "[green]+[/green]", changes.added),
        ("modified", "[yellow]Δ[/yellow]", changes.modified),
        ("deleted", "[red]−[/red]", changes.deleted),
    ):
        for changed in paths[:STATUS_PATH_LIMIT]:
            console.print(f"  {marker} {changed}")
        if len(paths) > STATUS_PATH_LIMIT:
            console.print(f"  [dim]... and {len(paths) - STATUS_PATH_LIMIT} more {label}[/dim]")


@app.command()
def status(
    path: Optional[Path] = typer.Argument(None, help="Repository root (default: git top-level or cwd)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output directory, relative to the root"),
):
    """Show the module catalogue and the changes found by the last run."""
    root = _resolve_repo_root(path)
    config = _load_config(root, {"out_dir": out})
    out_dir = config.output_path(root)

    try:
        meta = load_meta(out_dir)
        catalogue = load_catalogue(out_dir)
        changes = load_changes(out_dir)
    except StateCorruptError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if meta is None or catalogue is None:
        console.print(f"[red]✗[/red] No index found in {out_dir}. Run 'repomap build' first.")
        raise typer.Exit(1)

    console.print(f"[bold]Repository:[/bold] {meta.repo_root}")
    console.print(f"  Indexed: {format_iso_date(meta.generated_at)} (repomap {meta.tool_version})")
    if meta.git_commit:
        console.print(f"  Commit: {meta.git_commit[:12]}")
    console.print(f"  Hash: {meta.hash_algorithm}")

    table = Table(title="Modules")
    table.add_column("Path", style="cyan")
    table.add_column("Name")
    table.add_column("Language")
    table.add_column("Files", justify="right")
    for module in catalogue.modules:
        table.add_row(module.path, module.name, module.language, str(module.file_count))
    console.print(table)

    if changes is not None:
        _print_changes(changes)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
