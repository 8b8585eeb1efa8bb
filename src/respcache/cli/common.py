"""Shared helpers for CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, NoReturn, TypeVar

import typer
from rich.console import Console

from respcache.cache.factory import build_store
from respcache.cache.invalidation import InvalidationService
from respcache.config import settings
from respcache.errors import ResponseCacheError

T = TypeVar("T")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def get_invalidation_service() -> InvalidationService:
    """Build the invalidation service for the configured store.

    The memory store lives inside each server process, so a CLI process
    would only see its own empty copy; that configuration is refused.
    """
    if settings.store.lower() == "memory":
        fail(
            "The memory store is local to each server process and cannot be "
            "managed from the command line.",
            hint="Set RESPCACHE_STORE=redis (and RESPCACHE_REDIS_URL) to share the cache.",
        )
    return InvalidationService(build_store(settings), settings)


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a service coroutine, mapping cache errors to exit code 1."""
    try:
        return asyncio.run(coro)
    except ResponseCacheError as e:
        Console(stderr=True).print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_FAILURE) from e


def fail(message: str, hint: str | None = None) -> NoReturn:
    """Print an error (and optional hint) and exit with code 1."""
    console = Console(stderr=True)
    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(hint)
    raise typer.Exit(code=EXIT_FAILURE)
