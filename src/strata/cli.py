"""Operator CLI for the content tiers."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from strata.config import load_config, merge_cli_overrides
from strata.content.models import ContentFilter, ContentKind, ContentRecord, SortOrder
from strata.service import ContentService, build_service
from strata.shared.errors import FatalError, InvalidContentError, NotFoundError

app = typer.Typer(
    name="strata",
    help="Inspect and synchronize the tiered content snapshot.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from strata import __version__

        console.print(f"strata {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .strata.toml file."),
    ] = None,
    snapshot: Annotated[
        Optional[Path],
        typer.Option("--snapshot", help="Override the snapshot file location."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Strata - tiered content cache and fallback sync."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = merge_cli_overrides(load_config(config_path), snapshot_path=snapshot)
    ctx.obj = build_service(config)


def _service(ctx: typer.Context) -> ContentService:
    return ctx.obj


def _print_record(record: ContentRecord) -> None:
    console.print(f"[bold]{record.title}[/bold]")
    console.print(f"  id:       {record.id}")
    console.print(f"  kind:     {record.kind}    status: {record.status}")
    console.print(f"  slug:     {record.slug}")
    if record.category:
        console.print(f"  category: {record.category}")
    if record.location_tags:
        console.print(f"  location: {', '.join(record.location_tags)}")
    console.print(f"  date:     {record.effective_date:%Y-%m-%d %H:%M}")
    flags = [p.value for p, on in record.placements.items() if on]
    if flags:
        console.print(f"  placed:   {', '.join(flags)}")
    if not record.is_reconciled:
        console.print("  [yellow]not yet reconciled with the source[/yellow]")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    kind: Annotated[Optional[ContentKind], typer.Option("--kind", "-k")] = None,
    category: Annotated[Optional[str], typer.Option("--category")] = None,
    location: Annotated[Optional[str], typer.Option("--location", "-l")] = None,
    status: Annotated[
        Optional[str], typer.Option("--status", help="published, draft or all.")
    ] = None,
    search: Annotated[Optional[str], typer.Option("--search", "-s")] = None,
    placement: Annotated[
        Optional[str], typer.Option("--placement", help="e.g. trending_home")
    ] = None,
    sort: Annotated[SortOrder, typer.Option("--sort")] = SortOrder.NEWEST,
    page: Annotated[int, typer.Option("--page", "-p")] = 1,
    page_size: Annotated[int, typer.Option("--page-size")] = 20,
) -> None:
    """List content from the local tiers."""
    service = _service(ctx)
    try:
        flt = ContentFilter(
            kind=kind,
            category=category,
            location=location,
            status=status,
            search=search,
            placement=placement,
        )
        result = service.list_content(flt, sort, page, page_size)
    except (InvalidContentError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    except FatalError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        raise typer.Exit(2)

    table = Table(title=f"Page {result.page}/{max(result.total_pages, 1)} ({result.total} total)")
    table.add_column("id", style="dim")
    table.add_column("kind")
    table.add_column("title")
    table.add_column("date")
    table.add_column("status")
    for record in result.items:
        table.add_row(
            record.id,
            record.kind.value,
            record.title,
            f"{record.effective_date:%Y-%m-%d}",
            record.status.value,
        )
    console.print(table)
    console.print(f"[dim]served from {result.served_from}[/dim]")


@app.command("get")
def get_cmd(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record id.")],
    authoritative: Annotated[
        bool,
        typer.Option("--authoritative", help="Read from the source, bypassing the cache."),
    ] = False,
) -> None:
    """Show a single record by id."""
    service = _service(ctx)
    try:
        if authoritative:
            record = service.get_by_id_authoritative(record_id)
        else:
            record = service.get_by_id(record_id)
    except NotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except FatalError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        raise typer.Exit(2)
    _print_record(record)


@app.command("slug")
def slug_cmd(
    ctx: typer.Context,
    slug: Annotated[str, typer.Argument(help="URL slug, case-insensitive.")],
    drafts: Annotated[bool, typer.Option("--drafts", help="Include drafts.")] = False,
) -> None:
    """Show a single record by slug."""
    try:
        record = _service(ctx).get_by_slug(slug, include_drafts=drafts)
    except NotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    _print_record(record)


@app.command("delete")
def delete_cmd(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete a record from every tier."""
    if not yes:
        typer.confirm(f"Delete {record_id}?", abort=True)
    try:
        result = _service(ctx).delete_content(record_id)
    except FatalError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        raise typer.Exit(2)
    if not result.deleted:
        console.print(f"[yellow]Nothing deleted:[/yellow] {record_id} not found")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] {record_id}")
    if not result.reconciled:
        console.print("[yellow]Warning:[/yellow] source unreachable; a resync may restore it.")


@app.command("resync")
def resync_cmd(ctx: typer.Context) -> None:
    """Replace the snapshot with a full pull from the source."""
    try:
        status = _service(ctx).force_resync()
    except FatalError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        raise typer.Exit(2)
    if status.last_error:
        console.print(f"[red]Resync failed:[/red] {status.last_error}")
        raise typer.Exit(1)
    console.print(f"[green]Resynced[/green] {status.record_count} records")


@app.command("push-pending")
def push_pending_cmd(ctx: typer.Context) -> None:
    """Send locally created records to the source."""
    try:
        pushed = _service(ctx).push_pending()
    except FatalError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        raise typer.Exit(2)
    if not pushed:
        console.print("No records pushed.")
        return
    for local_id, record in pushed.items():
        console.print(f"{local_id} -> [green]{record.id}[/green]")


@app.command("invalidate")
def invalidate_cmd(ctx: typer.Context) -> None:
    """Drop the in-process memory cache."""
    _service(ctx).invalidate_caches()
    console.print("Memory cache invalidated.")


@app.command("stats")
def stats_cmd(ctx: typer.Context) -> None:
    """Show snapshot file statistics."""
    stats = _service(ctx).snapshot_stats()
    if not stats.exists:
        console.print("[yellow]No snapshot file yet.[/yellow]")
        return
    console.print(f"Records:       {stats.record_count}")
    console.print(f"Size:          {stats.size_kb} KB")
    if stats.last_modified:
        console.print(f"Last modified: {stats.last_modified:%Y-%m-%d %H:%M:%S %Z}")


if __name__ == "__main__":
    app()
