"""Stored representation of a cached response.

A CachedPayload holds status, headers and body of a response in a form that
can be written to any byte-oriented store. Headers that must not be replayed
(cookies, connection management, transport framing, debug tooling) are
dropped on encode. Header names are stored in Title-Case so replayed
responses are byte-identical regardless of how the handler spelled them.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import orjson
from starlette.responses import Response

CACHE_HIT = "HIT"
DEFAULT_CACHE_HEADER = "X-Cache"

EXCLUDED_HEADERS = frozenset(
    {
        "set-cookie",
        "transfer-encoding",
        "content-length",
        "connection",
        "keep-alive",
        "proxy-connection",
        "proxy-authenticate",
        "upgrade",
        "te",
        "trailer",
        # Debug instrumentation
        "x-debug-token",
        "x-debug-token-link",
        "x-debug-info",
        "server-timing",
        "x-clockwork-id",
        "x-clockwork-version",
    }
)


def canonical_header_name(name: str) -> str:
    """Title-Case a header name segment by segment (content-type -> Content-Type)."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def is_excluded(name: str) -> bool:
    return name.lower() in EXCLUDED_HEADERS


@dataclass(frozen=True)
class CachedPayload:
    """Immutable cached response record."""

    status: int
    headers: tuple[tuple[str, tuple[str, ...]], ...] = ()
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """First value of a header, case-insensitive."""
        wanted = name.lower()
        for key, values in self.headers:
            if key.lower() == wanted and values:
                return values[0]
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "headers": [[name, list(values)] for name, values in self.headers],
            "body": base64.b64encode(self.body).decode("ascii"),
        }

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> CachedPayload:
        """Deserialize from JSON bytes."""
        parsed = orjson.loads(data)
        return cls(
            status=int(parsed["status"]),
            headers=tuple(
                (str(name), tuple(str(v) for v in values)) for name, values in parsed["headers"]
            ),
            body=base64.b64decode(parsed["body"]),
        )


def group_headers(raw: Iterable[tuple[str, str]]) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """Group (name, value) pairs into an ordered multi-map, dropping excluded names."""
    grouped: dict[str, list[str]] = {}
    for name, value in raw:
        if is_excluded(name):
            continue
        grouped.setdefault(canonical_header_name(name), []).append(value)
    return tuple((name, tuple(values)) for name, values in grouped.items())


def encode(response: Response) -> CachedPayload:
    """Build a CachedPayload from a fully-buffered response."""
    raw = [
        (name.decode("latin-1"), value.decode("latin-1")) for name, value in response.raw_headers
    ]
    return CachedPayload(
        status=response.status_code,
        headers=group_headers(raw),
        body=bytes(response.body),
    )


def decode(payload: CachedPayload, cache_header: str = DEFAULT_CACHE_HEADER) -> Response:
    """Rebuild a response from a payload and mark it as served from cache.

    The hit indicator overwrites any stored header of the same name.
    """
    response = Response(content=payload.body, status_code=payload.status)
    indicator = cache_header.lower()
    for name, values in payload.headers:
        if name.lower() in (indicator, "content-length"):
            continue
        for value in values:
            response.headers.append(name, value)
    response.headers[cache_header] = CACHE_HIT
    return response
