"""CLI commands for the response cache.

Provides command-line interface using Typer:
- respcache flush: Flush cached responses by tags or entirely
- respcache clear: Clear cached responses by key or route
- respcache stats: Show store statistics

Usage:
    respcache --help
    respcache flush --tags posts,feed
    respcache flush --all --yes
    respcache clear --route list_posts
    respcache stats --format json
"""

import typer

from respcache.cli.clear_cmd import app as clear_app
from respcache.cli.flush_cmd import app as flush_app
from respcache.cli.stats_cmd import app as stats_app
from respcache.config import settings
from respcache.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="respcache",
    help="Manage the HTTP response cache",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(flush_app, name="flush")
app.add_typer(clear_app, name="clear")
app.add_typer(stats_app, name="stats")


@app.callback()
def callback() -> None:
    """Manage the HTTP response cache."""
    configure_logging(
        json_format=settings.log_json,
        level="DEBUG" if settings.debug else settings.log_level,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
