"""
Unit tests for URL router.
"""

import pytest

from nekhttp.http.request import HTTPRequest
from nekhttp.http.response import HTTPResponse
from nekhttp.http.router import Router

from conftest import FakeConnection


def make_request(method: str, path: str) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def dummy_handler(request: HTTPRequest, response: HTTPResponse) -> None:
    """Dummy handler for testing."""
    response.send(request.path)


class TestRegistration:
    """Tests for adding routes."""

    def test_register(self):
        router = Router()
        router.register("GET", "/users", dummy_handler)

        routes = router.routes()
        assert len(routes) == 1
        assert routes[0].path == "/users"
        assert routes[0].method == "GET"

    def test_method_upper_cased(self):
        router = Router()
        router.register("post", "/users", dummy_handler)
        assert router.routes()[0].method == "POST"

    @pytest.mark.parametrize("method, path", [
        ("", "/users"),
        ("GET", "users"),
        ("GET", "/users/:"),
        ("GET", "/users/:1bad"),
    ])
    def test_invalid_registration(self, method: str, path: str):
        with pytest.raises(ValueError):
            Router().register(method, path, dummy_handler)

    def test_decorators(self):
        """Test decorator-based route registration."""
        router = Router()

        @router.get("/a")
        def get_a(request, response): ...

        @router.post("/a")
        def post_a(request, response): ...

        @router.put("/a")
        def put_a(request, response): ...

        @router.delete("/a")
        def delete_a(request, response): ...

        @router.route("PATCH", "/a")
        def patch_a(request, response): ...

        assert [r.method for r in router.routes()] == ["GET", "POST", "PUT", "DELETE", "PATCH"]
        assert router.match("PUT", "/a").route.handler is put_a

    def test_routes_returns_copy(self):
        router = Router()
        router.register("GET", "/", dummy_handler)
        router.routes().clear()
        assert len(router.routes()) == 1


class TestMatching:
    """Tests for Router.match()."""

    def test_match_static_path(self):
        router = Router()
        router.register("GET", "/users", dummy_handler)
        router.register("GET", "/posts", dummy_handler)

        assert router.match("GET", "/users").route.path == "/users"
        assert router.match("GET", "/posts").route.path == "/posts"
        assert router.match("GET", "/comments") is None

    def test_root(self):
        router = Router()
        router.register("GET", "/", dummy_handler)

        assert router.match("GET", "/") is not None
        assert router.match("GET", "/x") is None

    def test_match_with_method(self):
        """Test method-based routing."""
        router = Router()
        router.register("GET", "/users", dummy_handler)
        router.register("POST", "/users", dummy_handler)

        assert router.match("GET", "/users").route.method == "GET"
        assert router.match("POST", "/users").route.method == "POST"
        assert router.match("DELETE", "/users") is None

    def test_method_case_sensitive(self):
        """Test that request methods are compared exactly."""
        router = Router()
        router.register("get", "/", dummy_handler)

        assert router.match("GET", "/") is not None
        assert router.match("get", "/") is None

    def test_trailing_slash(self):
        router = Router()
        router.register("GET", "/users", dummy_handler)
        assert router.match("GET", "/users/") is not None

    def test_path_parameter(self):
        """Test :name captures exactly one segment."""
        router = Router()
        router.register("GET", "/users/:id", dummy_handler)

        match = router.match("GET", "/users/123")
        assert match.params == {"id": "123"}
        assert router.match("GET", "/users/123/posts") is None
        assert router.match("GET", "/users") is None

    def test_multiple_parameters(self):
        router = Router()
        router.register("GET", "/users/:user_id/posts/:post_id", dummy_handler)

        match = router.match("GET", "/users/1/posts/42")
        assert match.params == {"user_id": "1", "post_id": "42"}

    def test_wildcard(self):
        """Test *name captures the rest of the path."""
        router = Router()
        router.register("GET", "/files/*path", dummy_handler)

        assert router.match("GET", "/files/a/b/c.txt").params == {"path": "a/b/c.txt"}

    def test_wildcard_matches_bare_prefix(self):
        """Test that /files/*path also matches /files with an empty capture."""
        router = Router()
        router.register("GET", "/files/*path", dummy_handler)

        assert router.match("GET", "/files").params == {"path": ""}
        assert router.match("GET", "/files/").params == {"path": ""}
        assert router.match("GET", "/filesystem") is None

    @pytest.mark.parametrize("target", ["abc", "*", "http://example.com/abc", "//abc", ""])
    def test_non_origin_targets_never_match(self, target: str):
        """Test that targets not starting with a single "/" are not rewritten into a match."""
        router = Router()
        router.register("GET", "/abc", dummy_handler)
        router.register("GET", "/*rest", dummy_handler)

        assert router.match("GET", target) is None

    def test_non_origin_target_dispatches_404(self, fake_connection: FakeConnection):
        router = Router()
        router.register("GET", "/abc", dummy_handler)
        response = HTTPResponse(fake_connection)

        assert router.dispatch(make_request("GET", "abc"), response) is False
        assert response.status == 404

    def test_regex_characters_are_literal(self):
        router = Router()
        router.register("GET", "/a.b", dummy_handler)

        assert router.match("GET", "/a.b") is not None
        assert router.match("GET", "/axb") is None

    def test_registration_order_wins(self):
        """Test that overlapping patterns resolve in registration order."""
        def first(request, response): ...
        def second(request, response): ...

        router = Router()
        router.register("GET", "/users/:id", first)
        router.register("GET", "/users/me", second)

        for _ in range(5):
            assert router.match("GET", "/users/me").route.handler is first

    def test_matches_yields_all_in_order(self):
        router = Router()
        router.register("GET", "/*rest", dummy_handler)
        router.register("GET", "/x", dummy_handler)

        assert [m.route.path for m in router.matches("GET", "/x")] == ["/*rest", "/x"]


class TestDispatch:
    """Tests for Router.dispatch()."""

    def test_calls_handler_with_params(self, fake_connection: FakeConnection):
        seen = {}

        def show_user(request, response):
            seen.update(request.path_params)
            response.send("ok")

        router = Router()
        router.register("GET", "/users/:id", show_user)
        response = HTTPResponse(fake_connection)

        assert router.dispatch(make_request("GET", "/users/7"), response) is True
        assert seen == {"id": "7"}
        assert response.sent

    def test_no_match_sends_404(self, fake_connection: FakeConnection):
        router = Router()
        response = HTTPResponse(fake_connection)

        assert router.dispatch(make_request("GET", "/missing"), response) is False
        assert response.status == 404
        assert fake_connection.data.startswith(b"HTTP/1.1 404 Not Found\r\n")

    def test_404_escapes_path(self, fake_connection: FakeConnection):
        router = Router()
        router.dispatch(make_request("GET", "/<script>"), HTTPResponse(fake_connection))

        assert b"<script>" not in fake_connection.data
        assert b"&lt;script&gt;" in fake_connection.data

    def test_handlers_run_until_one_sends(self, fake_connection: FakeConnection):
        """Test that matching handlers share the response and stop at send()."""
        calls = []

        def tag(request, response):
            calls.append("tag")
            response.set_header("X-Tag", "1")

        def reply(request, response):
            calls.append("reply")
            response.send("done")

        def never(request, response):
            calls.append("never")

        router = Router()
        router.register("GET", "/*rest", tag)
        router.register("GET", "/page", reply)
        router.register("GET", "/page", never)

        router.dispatch(make_request("GET", "/page"), HTTPResponse(fake_connection))

        assert calls == ["tag", "reply"]
        assert b"x-tag: 1\r\n" in fake_connection.data

    def test_matched_but_unsent(self, fake_connection: FakeConnection):
        """Test that a match without send() is reported and left to the caller."""
        router = Router()
        router.register("GET", "/", lambda request, response: None)
        response = HTTPResponse(fake_connection)

        assert router.dispatch(make_request("GET", "/"), response) is True
        assert response.sent is False
        assert fake_connection.sent == []

    def test_handler_exception_propagates(self, fake_connection: FakeConnection):
        def boom(request, response):
            raise RuntimeError("boom")

        router = Router()
        router.register("GET", "/", boom)

        with pytest.raises(RuntimeError):
            router.dispatch(make_request("GET", "/"), HTTPResponse(fake_connection))
