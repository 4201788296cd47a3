"""
Command line interface for PromptHive versioning and sync.

Usage:
    ph version greeting v1.0 -m "first cut"
    ph versions greeting --verbose
    ph diff greeting@v1.0 greeting --format side-by-side
    ph rollback greeting v1.0 --backup
    ph sync status
"""

import functools
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import click
from rich.console import Console
from rich.table import Table

from prompthive.config import config
from prompthive.logging import initialize_logging
from prompthive.sync import SyncCoordinator, SyncStateKind
from prompthive.version_control import DiffFormat, PromptRepository, VersionControlError

console = Console()
err_console = Console(stderr=True)

STATE_STYLES = {
    SyncStateKind.SYNCED: "green",
    SyncStateKind.LOCAL_AHEAD: "cyan",
    SyncStateKind.REMOTE_AHEAD: "yellow",
    SyncStateKind.DIVERGED: "red",
}


def handle_errors(func: Callable) -> Callable:
    """Print version control errors as ``Error: ...`` and exit 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (VersionControlError, ValueError) as e:
            err_console.print(f"Error: {e}", style="red", markup=False, highlight=False)
            sys.exit(1)

    return wrapper


def _repo(ctx: click.Context) -> PromptRepository:
    return ctx.obj["repo"]


def _coordinator(ctx: click.Context) -> SyncCoordinator:
    if "coordinator" not in ctx.obj:
        ctx.obj["coordinator"] = SyncCoordinator(_repo(ctx), transport=ctx.obj.get("transport"))
    return ctx.obj["coordinator"]


def _targets(ctx: click.Context, artifact: Optional[str]) -> List[str]:
    if artifact:
        return [artifact]
    artifacts = _repo(ctx).list_artifacts()
    if not artifacts:
        console.print("No versioned prompts yet")
    return artifacts


@click.group()
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Storage directory (default: PROMPTHIVE_BASE_DIR or ~/.prompthive)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, base_dir: Optional[str], verbose: bool):
    """PromptHive - versioned prompts with registry sync."""
    initialize_logging(
        log_dir=config.logging.log_path,
        level="DEBUG" if verbose else config.logging.level,
        rotation=config.logging.rotation,
        retention=config.logging.retention,
        enable_file_logging=config.logging.enable_file_logging,
        enable_console_logging=config.logging.enable_console_logging,
    )
    ctx.ensure_object(dict)
    if "repo" not in ctx.obj:
        ctx.obj["repo"] = PromptRepository(Path(base_dir) if base_dir else None)


@cli.command()
@click.argument("artifact")
@click.argument("tag")
@click.option("--message", "-m", default="", help="Version message")
@click.option("--parent", "parent_ref", default=None, help="Create from this version instead of head")
@click.option(
    "--file",
    "content_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Take content from a file instead of the working copy",
)
@click.pass_context
@handle_errors
def version(
    ctx: click.Context,
    artifact: str,
    tag: str,
    message: str,
    parent_ref: Optional[str],
    content_file: Optional[str],
):
    """Create a tagged version of ARTIFACT from its current content."""
    content = Path(content_file).read_text(encoding="utf-8") if content_file else None
    entry = _repo(ctx).create_version(
        artifact, content, message=message, tag=tag, parent_ref=parent_ref
    )
    console.print(f"[green]Created version {tag} ({entry.short_id}) for '{artifact}'[/green]")
    if parent_ref and _repo(ctx).head(artifact).id != entry.id:
        console.print(f"Head unchanged; merge with: ph merge {artifact}@{tag} {artifact}")


@cli.command()
@click.argument("artifact")
@click.option("--verbose", "-v", "show_details", is_flag=True, help="Show parents and digests")
@click.option("--limit", type=int, default=None, help="Maximum versions to show")
@click.pass_context
@handle_errors
def versions(ctx: click.Context, artifact: str, show_details: bool, limit: Optional[int]):
    """Show version history of ARTIFACT, newest first."""
    repo = _repo(ctx)
    head_id = repo.head(artifact).id

    table = Table(title=f"Versions of {artifact}", show_header=True, header_style="bold cyan")
    table.add_column("Tag")
    table.add_column("ID")
    table.add_column("Date")
    table.add_column("Message")
    table.add_column("Author")
    if show_details:
        table.add_column("Parents")
        table.add_column("Content")

    for n, entry in enumerate(repo.history(artifact)):
        if limit is not None and n >= limit:
            break
        marker = "* " if entry.id == head_id else ""
        row = [
            f"{marker}{entry.tag or ''}",
            entry.short_id,
            entry.timestamp[:19].replace("T", " "),
            entry.message,
            entry.author,
        ]
        if show_details:
            row.append(", ".join(p[:8] for p in entry.parent_ids) or "(root)")
            row.append(entry.content_digest[:12])
        table.add_row(*row)

    console.print(table)


@cli.command()
@click.argument("artifact")
@click.argument("ref")
@click.option("--backup", is_flag=True, help="Tag current content as backup-<ts> first")
@click.pass_context
@handle_errors
def rollback(ctx: click.Context, artifact: str, ref: str, backup: bool):
    """Restore ARTIFACT to the content of version REF."""
    result = _repo(ctx).rollback(artifact, ref, backup=backup)
    if result.backup:
        console.print(f"Backup created: {result.backup.tag} ({result.backup.short_id})")
    console.print(
        f"[green]Rolled back '{artifact}' to {ref} as {result.entry.short_id}[/green]"
    )


@cli.command()
@click.argument("a")
@click.argument("b")
@click.option(
    "--format",
    "fmt",
    type=click.Choice([f.value for f in DiffFormat]),
    default=DiffFormat.UNIFIED.value,
    help="Output format",
)
@click.option("--context", "-c", type=int, default=None, help="Context lines")
@click.option("--width", type=int, default=None, help="Side-by-side column width")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write to file")
@click.pass_context
@handle_errors
def diff(
    ctx: click.Context,
    a: str,
    b: str,
    fmt: str,
    context: Optional[int],
    width: Optional[int],
    output: Optional[str],
):
    """Compare two versions (artifact@ref, or artifact for its head)."""
    text = _repo(ctx).diff(a, b, fmt=fmt, context=context, width=width)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"Diff written to {output}")
    elif text:
        click.echo(text, nl=False)
    else:
        click.echo("No differences")


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option("--backup", is_flag=True, help="Tag the target head as backup-<ts> first")
@click.option("--preview", is_flag=True, help="Show the result without committing")
@click.option(
    "--strategy",
    type=click.Choice(["ours", "theirs", "manual"]),
    default=None,
    help="Settle conflicts for one side, or commit --file as the resolution",
)
@click.option(
    "--file",
    "content_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Resolved content for --strategy manual",
)
@click.pass_context
@handle_errors
def merge(
    ctx: click.Context,
    source: str,
    target: str,
    backup: bool,
    preview: bool,
    strategy: Optional[str],
    content_file: Optional[str],
):
    """
    Merge version SOURCE (artifact@ref) into the head of TARGET.

    Versions of the same prompt are merged three-way with both heads as
    parents. A SOURCE from another prompt replaces TARGET's content.
    """
    content = Path(content_file).read_text(encoding="utf-8") if content_file else None
    outcome = _repo(ctx).merge(
        source, target, backup=backup, preview=preview, strategy=strategy, content=content
    )
    conflicts = outcome.result.conflicts

    if outcome.up_to_date:
        console.print(f"'{target}' already contains {source}")
        return
    if preview:
        click.echo(outcome.result.content, nl=False)
        console.print(f"Preview: {len(conflicts)} conflict(s), nothing committed")
        return
    if outcome.entry is None:
        click.echo(outcome.result.content, nl=False)
        err_console.print(
            f"[red]Merge has {len(conflicts)} conflict(s); nothing committed.[/red] "
            f"Resolve with: ph merge {source} {target} --strategy ours|theirs, "
            f"or save the text above, edit it and pass --strategy manual --file <path>"
        )
        sys.exit(1)

    if outcome.backup:
        console.print(f"Backup created: {outcome.backup.tag} ({outcome.backup.short_id})")
    kind = "Fast-forwarded" if outcome.fast_forward and not outcome.backup else "Merged"
    console.print(f"[green]{kind} {source} into '{target}' ({outcome.entry.short_id})[/green]")


@cli.command()
@click.argument("ref_spec")
@click.pass_context
@handle_errors
def show(ctx: click.Context, ref_spec: str):
    """Print the content of a version (artifact@ref, or artifact for its head)."""
    click.echo(_repo(ctx).show(ref_spec), nl=False)


@cli.group(invoke_without_command=True)
@click.pass_context
@handle_errors
def sync(ctx: click.Context):
    """Synchronize with the registry (fast-forwards only without a subcommand)."""
    if ctx.invoked_subcommand is not None:
        return
    coordinator = _coordinator(ctx)
    diverged = []
    for artifact in _targets(ctx, None):
        status = coordinator.synchronize(artifact)
        if status.state == SyncStateKind.DIVERGED:
            diverged.append(artifact)
            console.print(f"[red]{status.summary()}[/red]")
        elif status.state == SyncStateKind.SYNCED:
            console.print(f"{artifact}: up to date")
        else:
            direction = "pushed" if status.state == SyncStateKind.LOCAL_AHEAD else "pulled"
            console.print(f"[green]{artifact}: {direction}[/green]")
    if diverged:
        err_console.print(f"Run 'ph sync reconcile <artifact>' for: {', '.join(diverged)}")
        sys.exit(1)


@sync.command("status")
@click.argument("artifact", required=False)
@click.pass_context
@handle_errors
def sync_status(ctx: click.Context, artifact: Optional[str]):
    """Show sync state of ARTIFACT (or all artifacts)."""
    coordinator = _coordinator(ctx)
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Artifact")
    table.add_column("State")
    table.add_column("Local")
    table.add_column("Remote")
    table.add_column("Ahead")
    table.add_column("Behind")

    for name in _targets(ctx, artifact):
        status = coordinator.status(name)
        style = STATE_STYLES[status.state]
        table.add_row(
            name,
            f"[{style}]{status.state.value}[/{style}]",
            status.local_head[:8] if status.local_head else "-",
            status.remote_head[:8] if status.remote_head else "-",
            str(status.local_ahead),
            str(status.remote_ahead),
        )
    console.print(table)


@sync.command("push")
@click.argument("artifact", required=False)
@click.pass_context
@handle_errors
def sync_push(ctx: click.Context, artifact: Optional[str]):
    """Push local versions of ARTIFACT (or all artifacts)."""
    coordinator = _coordinator(ctx)
    for name in _targets(ctx, artifact):
        result = coordinator.push(name)
        if result.was_noop:
            console.print(f"{name}: up to date")
        else:
            console.print(f"[green]{name}: pushed {len(result.entries)} version(s)[/green]")


@sync.command("pull")
@click.argument("artifact", required=False)
@click.pass_context
@handle_errors
def sync_pull(ctx: click.Context, artifact: Optional[str]):
    """Pull remote versions of ARTIFACT (or all artifacts)."""
    coordinator = _coordinator(ctx)
    for name in _targets(ctx, artifact):
        result = coordinator.pull(name)
        if result.was_noop:
            console.print(f"{name}: nothing to pull")
        else:
            console.print(
                f"[green]{name}: pulled {len(result.entries)} version(s), "
                f"head {result.head.short_id}[/green]"
            )


@sync.command("reconcile")
@click.argument("artifact")
@click.pass_context
@handle_errors
def sync_reconcile(ctx: click.Context, artifact: str):
    """Merge diverged local and remote histories of ARTIFACT."""
    result = _coordinator(ctx).reconcile(artifact)
    if result.has_conflicts:
        click.echo(result.result.content, nl=False)
        err_console.print(
            f"[red]{len(result.conflict.conflicting_regions)} conflict(s); nothing written.[/red] "
            f"Resolve with: ph sync resolve {artifact} --strategy ours|theirs|manual"
        )
        sys.exit(1)
    console.print(
        f"[green]Merged as {result.entry.short_id}; run 'ph sync push {artifact}'[/green]"
    )


@sync.command("resolve")
@click.argument("artifact")
@click.option(
    "--strategy",
    type=click.Choice(["ours", "theirs", "manual"]),
    required=True,
    help="Which side wins conflicting regions, or manual content",
)
@click.option(
    "--file",
    "content_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Resolved content for --strategy manual",
)
@click.pass_context
@handle_errors
def sync_resolve(ctx: click.Context, artifact: str, strategy: str, content_file: Optional[str]):
    """Commit a resolution of diverged histories of ARTIFACT."""
    content = Path(content_file).read_text(encoding="utf-8") if content_file else None
    entry = _coordinator(ctx).resolve(artifact, strategy, content=content)
    console.print(
        f"[green]Resolved '{artifact}' as {entry.short_id}; run 'ph sync push {artifact}'[/green]"
    )


if __name__ == "__main__":
    cli()
