"""Tests for the respcache command line.

Covers:
- flush --tags flushes tagged entries, and fails on stores without tags
- flush --all asks for confirmation unless --yes is given
- clear --key / --route evict entries
- stats in text and JSON form
- missing arguments and store outages exit with code 1
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from unittest.mock import patch

import orjson
import pytest
from typer.testing import CliRunner

from respcache.cache.invalidation import InvalidationService
from respcache.cache.store import CacheStore, MemoryStore
from respcache.cli import app
from respcache.cli.common import get_invalidation_service
from respcache.config import CacheSettings

runner = CliRunner()

COMMAND_MODULES = ("flush_cmd", "clear_cmd", "stats_cmd")


@pytest.fixture(autouse=True)
def _no_logging_setup() -> Iterator[None]:
    """Keep the CLI from replacing the root logging handlers under pytest."""
    with patch("respcache.cli.configure_logging"):
        yield


def use_store(store: CacheStore):
    """Route every command to an invalidation service over store."""
    service = InvalidationService(store, CacheSettings(_env_file=None))
    patchers = [
        patch(f"respcache.cli.{module}.get_invalidation_service", return_value=service)
        for module in COMMAND_MODULES
    ]
    for patcher in patchers:
        patcher.start()
    return patchers


@pytest.fixture
def store() -> Iterator[MemoryStore]:
    store = MemoryStore()
    asyncio.run(store.put("posts-1", b"1", ttl=60, tags=["posts"]))
    asyncio.run(store.put("users-1", b"2", ttl=60, tags=["users"]))
    patchers = use_store(store)
    yield store
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def untagged() -> Iterator[MemoryStore]:
    store = MemoryStore(tags=False)
    asyncio.run(store.put("posts-1", b"1", ttl=60))
    patchers = use_store(store)
    yield store
    for patcher in patchers:
        patcher.stop()


def get(store: MemoryStore, key: str) -> bytes | None:
    return asyncio.run(store.get(key))


class TestFlush:
    """Tests for respcache flush."""

    def test_flush_tags(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["flush", "--tags", "posts, feed"])

        assert result.exit_code == 0
        assert "Flushed tags: posts, feed" in result.output
        assert get(store, "posts-1") is None
        assert get(store, "users-1") == b"2"

    def test_flush_tags_unsupported(self, untagged: MemoryStore) -> None:
        """Tag flushes on a store without tags fail with exit code 1."""
        result = runner.invoke(app, ["flush", "--tags", "posts"])

        assert result.exit_code == 1
        assert "does not support tags" in result.output
        assert get(untagged, "posts-1") == b"1"

    def test_missing_arguments(self, store: MemoryStore) -> None:
        """Without --tags or --all nothing is flushed."""
        result = runner.invoke(app, ["flush"])

        assert result.exit_code == 1
        assert "--tags" in result.output
        assert get(store, "posts-1") == b"1"

    def test_blank_tags_are_missing_arguments(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["flush", "--tags", " , "])

        assert result.exit_code == 1

    def test_flush_all_with_yes(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["flush", "--all", "--yes"])

        assert result.exit_code == 0
        assert "Entire cache cleared." in result.output
        assert get(store, "posts-1") is None
        assert get(store, "users-1") is None

    def test_flush_all_confirmed(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["flush", "--all"], input="y\n")

        assert result.exit_code == 0
        assert get(store, "users-1") is None

    def test_flush_all_declined(self, store: MemoryStore) -> None:
        """Declining the confirmation leaves the store untouched."""
        result = runner.invoke(app, ["flush", "--all"], input="n\n")

        assert result.exit_code == 0
        assert "Operation cancelled." in result.output
        assert get(store, "posts-1") == b"1"

    def test_store_outage(self, failing_store) -> None:
        patchers = use_store(failing_store)
        try:
            result = runner.invoke(app, ["flush", "--tags", "posts"])
        finally:
            for patcher in patchers:
                patcher.stop()

        assert result.exit_code == 1
        assert "Cache store unavailable" in result.output


class TestClear:
    """Tests for respcache clear."""

    def test_clear_key(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["clear", "--key", "posts-1"])

        assert result.exit_code == 0
        assert "Cleared key: posts-1" in result.output
        assert get(store, "posts-1") is None
        assert get(store, "users-1") == b"2"

    def test_clear_route_with_index(self, untagged: MemoryStore) -> None:
        """Route clearing on an untagged store evicts the indexed keys."""
        index_key = "resp_cache:index:list_posts"
        asyncio.run(untagged.put(index_key, orjson.dumps(["posts-1"]), ttl=60))

        result = runner.invoke(app, ["clear", "--route", "list_posts"])

        assert result.exit_code == 0
        assert "Cleared route: list_posts (1 keys)" in result.output
        assert get(untagged, "posts-1") is None

    def test_clear_route_with_tags(self, store: MemoryStore) -> None:
        asyncio.run(store.put("route-entry", b"x", ttl=60, tags=["route:list_posts"]))

        result = runner.invoke(app, ["clear", "--route", "list_posts"])

        assert result.exit_code == 0
        assert get(store, "route-entry") is None
        assert get(store, "posts-1") == b"1"

    def test_missing_arguments(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["clear"])

        assert result.exit_code == 1
        assert "--key or --route" in result.output


class TestStats:
    """Tests for respcache stats."""

    def test_text(self, store: MemoryStore) -> None:
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "driver: MemoryStore" in result.output
        assert "supports_tags: True" in result.output
        assert "entries: 2" in result.output

    def test_json(self, untagged: MemoryStore) -> None:
        result = runner.invoke(app, ["stats", "--format", "json"])

        assert result.exit_code == 0
        assert orjson.loads(result.output) == {
            "driver": "MemoryStore",
            "supports_tags": False,
            "entries": 1,
        }



class TestProcessLocalStore:
    """Tests for commands run against the per-process memory store."""

    @pytest.fixture(autouse=True)
    def _memory_settings(self) -> Iterator[None]:
        with patch(
            "respcache.cli.common.settings", CacheSettings(_env_file=None, store="memory")
        ):
            yield

    @pytest.mark.parametrize(
        "args",
        [
            ["flush", "--all", "--yes"],
            ["flush", "--tags", "posts"],
            ["clear", "--key", "posts-1"],
            ["clear", "--route", "posts.index"],
            ["stats"],
        ],
    )
    def test_refused_with_hint(self, args: list[str]) -> None:
        """Nothing is reported as done on a store the server cannot see."""
        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "RESPCACHE_STORE=redis" in result.output
        assert "cleared" not in result.output
        assert "Flushed" not in result.output

    def test_redis_store_accepted(self) -> None:
        config = CacheSettings(_env_file=None, store="redis")
        with patch("respcache.cli.common.settings", config):
            service = get_invalidation_service()

        assert service.supports_tags()


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("flush", "clear", "stats"):
        assert command in result.output
