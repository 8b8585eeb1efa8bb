"""CLI command for flushing cached responses by tag or entirely.

Usage:
    respcache flush --tags posts,feed
    respcache flush --all
    respcache flush --all --yes
"""

from __future__ import annotations

import typer
from rich.console import Console

from respcache.cli.common import fail, get_invalidation_service, run

app = typer.Typer(help="Flush response cache by tags or entirely")


@app.callback(invoke_without_command=True)
def flush(
    tags: str | None = typer.Option(
        None,
        "--tags",
        "-t",
        help="Comma-separated list of tags to flush",
    ),
    flush_all: bool = typer.Option(
        False,
        "--all",
        help="Flush entire cache store (use with caution)",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt for --all",
    ),
) -> None:
    """Flush cached responses by tags, or the whole store with --all."""
    console = Console()

    if flush_all:
        if not yes and not typer.confirm(
            "This will clear the ENTIRE cache store. Are you sure?", default=False
        ):
            console.print("Operation cancelled.")
            return

        service = get_invalidation_service()
        run(service.clear_all())
        console.print("[green]Entire cache cleared.[/green]")
        return

    tag_list = [tag.strip() for tag in (tags or "").split(",") if tag.strip()]
    if not tag_list:
        fail("Please provide --tags=tag1,tag2 or use --all flag")

    service = get_invalidation_service()
    if not service.supports_tags():
        fail(
            "The configured cache store does not support tags.",
            hint="Consider using Redis or another tag-supporting store.",
        )

    flushed = run(service.invalidate_by_tags(tag_list))
    console.print(f"[green]Flushed tags:[/green] {', '.join(flushed)}")
