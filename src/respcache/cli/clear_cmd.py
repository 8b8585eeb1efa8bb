"""CLI command for clearing cached responses by key or route.

Usage:
    respcache clear --key resp_cache:3f2a...
    respcache clear --route list_posts
"""

from __future__ import annotations

import typer
from rich.console import Console

from respcache.cli.common import fail, get_invalidation_service, run

app = typer.Typer(help="Clear cached responses by key or route index")


@app.callback(invoke_without_command=True)
def clear(
    key: str | None = typer.Option(
        None,
        "--key",
        "-k",
        help="Cache key to forget",
    ),
    route: str | None = typer.Option(
        None,
        "--route",
        "-r",
        help="Route name whose cached responses should be forgotten",
    ),
) -> None:
    """Clear a single cached response or every response of a route."""
    console = Console()

    if key:
        service = get_invalidation_service()
        run(service.forget_by_key(key))
        console.print(f"Cleared key: {key}")
        return

    if route:
        service = get_invalidation_service()
        removed = run(service.forget_route(route))
        suffix = f" ({len(removed)} keys)" if removed else ""
        console.print(f"Cleared route: {route}{suffix}")
        return

    fail("Please specify either --key or --route option.")
