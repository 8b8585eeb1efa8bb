"""CLI command for showing response cache statistics.

Usage:
    respcache stats
    respcache stats --format json
"""

from __future__ import annotations

import orjson
import typer
from rich.console import Console

from respcache.cli.common import get_invalidation_service, run

app = typer.Typer(help="Show basic response cache statistics")


@app.callback(invoke_without_command=True)
def stats(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Show store driver, tag support and entry counts where available."""
    service = get_invalidation_service()
    data = run(service.stats())

    if output_format == "json":
        typer.echo(orjson.dumps(data).decode())
        return

    console = Console()
    for name, value in data.items():
        rendered = value
        if not isinstance(value, (str, int, float, bool)):
            rendered = orjson.dumps(value).decode()
        console.print(f"{name}: {rendered}", highlight=False)
