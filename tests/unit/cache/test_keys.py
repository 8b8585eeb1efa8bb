"""Tests for cache key derivation."""

from __future__ import annotations

from starlette.requests import Request

from respcache.cache.keys import (
    GUEST,
    KeyResolver,
    RequestAttributes,
    client_ip,
    filter_query,
    route_tag,
)


def make_request(
    path: str = "/posts",
    query_string: bytes = b"",
    headers: list[tuple[bytes, bytes]] | None = None,
    client: tuple[str, int] | None = ("127.0.0.1", 50000),
) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "root_path": "",
            "path": path,
            "query_string": query_string,
            "headers": headers or [],
            "client": client,
        }
    )


class TestFilterQuery:
    """Tests for query parameter filtering and ordering."""

    def test_sorted_by_name(self) -> None:
        """Parameters are sorted by name."""
        assert filter_query([("b", "1"), ("a", "2")]) == [("a", "2"), ("b", "1")]

    def test_repeated_names_keep_order(self) -> None:
        """Sorting is stable for repeated parameter names."""
        params = [("tag", "z"), ("a", "1"), ("tag", "b")]
        assert filter_query(params) == [("a", "1"), ("tag", "z"), ("tag", "b")]

    def test_ignore_exact_and_wildcard(self) -> None:
        """Ignore entries match exact names and trailing-* prefixes."""
        params = [("page", "2"), ("utm_source", "x"), ("utm_medium", "y"), ("fbclid", "z")]
        result = filter_query(params, ignore=["utm_*", "fbclid"])
        assert result == [("page", "2")]

    def test_include_applied_before_ignore(self) -> None:
        """The include list selects first, then ignore entries remove."""
        params = [("page", "2"), ("sort", "asc"), ("debug", "1")]
        result = filter_query(params, include=["page", "sort"], ignore=["sort"])
        assert result == [("page", "2")]


class TestKeyResolver:
    """Tests for KeyResolver."""

    def test_key_has_prefix_and_sha256_digest(self) -> None:
        """Keys are the prefix followed by a 64-char hex digest."""
        resolver = KeyResolver(prefix="resp_cache:")
        key, _ = resolver.resolve(RequestAttributes(method="GET", path="/posts"))

        assert key.startswith("resp_cache:")
        digest = key[len("resp_cache:") :]
        assert len(digest) == 64
        int(digest, 16)

    def test_identical_requests_share_key(self) -> None:
        """Resolution is deterministic and side-effect free."""
        resolver = KeyResolver(vary_headers=["Accept"])
        attrs = RequestAttributes(
            method="get",
            path="/posts",
            query=[("b", "1"), ("a", "2")],
            headers={"accept": "application/json"},
        )

        first = resolver.resolve(attrs)
        second = resolver.resolve(attrs)

        assert first == second

    def test_query_order_does_not_matter(self) -> None:
        """Reordered query strings produce the same key."""
        resolver = KeyResolver()
        one = RequestAttributes(method="GET", path="/p", query=[("b", "1"), ("a", "2")])
        two = RequestAttributes(method="GET", path="/p", query=[("a", "2"), ("b", "1")])

        assert resolver.resolve(one)[0] == resolver.resolve(two)[0]

    def test_vary_header_differences_change_key(self) -> None:
        """A different value in a configured vary header yields a different key."""
        resolver = KeyResolver(vary_headers=["Accept-Language"])
        de = RequestAttributes(method="GET", path="/p", headers={"accept-language": "de"})
        en = RequestAttributes(method="GET", path="/p", headers={"accept-language": "en"})

        assert resolver.resolve(de)[0] != resolver.resolve(en)[0]

    def test_unconfigured_headers_ignored(self) -> None:
        """Headers outside the vary list do not affect the key."""
        resolver = KeyResolver(vary_headers=["Accept"])
        one = RequestAttributes(method="GET", path="/p", headers={"user-agent": "a"})
        two = RequestAttributes(method="GET", path="/p", headers={"user-agent": "b"})

        assert resolver.resolve(one)[0] == resolver.resolve(two)[0]

    def test_vary_cookies(self) -> None:
        """Configured cookies participate in the key."""
        resolver = KeyResolver(vary_cookies=["locale"])
        de = RequestAttributes(method="GET", path="/p", cookies={"locale": "de"})
        fr = RequestAttributes(method="GET", path="/p", cookies={"locale": "fr"})

        key_de, context = resolver.resolve(de)

        assert context["cookie:locale"] == "de"
        assert key_de != resolver.resolve(fr)[0]

    def test_ip_only_when_enabled(self) -> None:
        """Client IP is part of the context only with include_ip."""
        attrs = RequestAttributes(method="GET", path="/p", client_ip="10.0.0.1")
        other = RequestAttributes(method="GET", path="/p", client_ip="10.0.0.2")

        assert "ip" not in KeyResolver().context(attrs)
        assert KeyResolver().resolve(attrs)[0] == KeyResolver().resolve(other)[0]

        with_ip = KeyResolver(include_ip=True)
        assert with_ip.context(attrs)["ip"] == "10.0.0.1"
        assert with_ip.resolve(attrs)[0] != with_ip.resolve(other)[0]

    def test_principal_defaults_to_guest(self) -> None:
        """Anonymous requests use the guest sentinel; principals get their own key."""
        resolver = KeyResolver()
        guest = RequestAttributes(method="GET", path="/p")
        alice = RequestAttributes(method="GET", path="/p", principal="alice")

        assert resolver.context(guest)["principal"] == GUEST
        assert resolver.resolve(guest)[0] != resolver.resolve(alice)[0]

    def test_method_and_route_in_context(self) -> None:
        """Context carries the upper-cased method and the route name."""
        resolver = KeyResolver()
        context = resolver.context(
            RequestAttributes(method="head", path="/items/1", route_name="show_item")
        )

        assert list(context)[:4] == ["method", "route", "path", "query"]
        assert context["method"] == "HEAD"
        assert context["route"] == "show_item"

    def test_same_route_different_path(self) -> None:
        """Path parameters keep entries of one route apart."""
        resolver = KeyResolver()
        one = RequestAttributes(method="GET", path="/items/1", route_name="show_item")
        two = RequestAttributes(method="GET", path="/items/2", route_name="show_item")

        assert resolver.resolve(one)[0] != resolver.resolve(two)[0]


class TestRequestAttributes:
    """Tests for collecting key attributes from a Starlette request."""

    def test_from_request(self) -> None:
        """Method, path, query, headers and cookies are collected."""
        request = make_request(
            query_string=b"b=1&a=2",
            headers=[
                (b"accept", b"application/json"),
                (b"cookie", b"locale=de"),
            ],
        )

        attrs = RequestAttributes.from_request(request, route_name="list_posts")

        assert attrs.method == "GET"
        assert attrs.path == "/posts"
        assert attrs.route_name == "list_posts"
        assert list(attrs.query) == [("b", "1"), ("a", "2")]
        assert attrs.headers["accept"] == "application/json"
        assert attrs.cookies == {"locale": "de"}
        assert attrs.client_ip == "127.0.0.1"
        assert attrs.principal is None


class TestClientIp:
    """Tests for client IP extraction."""

    def test_forwarded_for_first_hop(self) -> None:
        request = make_request(headers=[(b"x-forwarded-for", b"1.2.3.4, 5.6.7.8")])
        assert client_ip(request) == "1.2.3.4"

    def test_real_ip(self) -> None:
        request = make_request(headers=[(b"x-real-ip", b"9.8.7.6")])
        assert client_ip(request) == "9.8.7.6"

    def test_socket_peer(self) -> None:
        assert client_ip(make_request()) == "127.0.0.1"

    def test_unknown(self) -> None:
        assert client_ip(make_request(client=None)) == "unknown"


def test_route_tag() -> None:
    """Route association uses the reserved route: tag namespace."""
    assert route_tag("list_posts") == "route:list_posts"
