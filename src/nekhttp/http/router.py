"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to handler functions.

=============================================================================
ROUTE TABLE
=============================================================================

Routes live in a plain list and are tried in the order they were
registered:

    router.get("/users/me", show_me)        ← tried first
    router.get("/users/:id", show_user)     ← tried second
    router.get("/*rest", fallback)          ← tried last

So "GET /users/me" always reaches show_me first, on every run.

=============================================================================
PATTERN SYNTAX
=============================================================================

    /users            exact segments           matches /users and /users/
    /users/:id        one segment → id         /users/42      {"id": "42"}
    /files/*path      rest of path → path      /files/a/b.txt {"path": "a/b.txt"}
                                               /files         {"path": ""}

Patterns are compiled into anchored regular expressions once, at
registration. Anything else in a pattern is matched literally.
Only origin-form targets are routed: "*", "abc" or "//x" match nothing
and end in 404.

=============================================================================
METHODS
=============================================================================

Method names are upper-cased when a route is registered and compared
case-sensitively with the request method (HTTP methods are
case-sensitive), so register("get", ...) serves "GET" but not "get".

=============================================================================
DISPATCH
=============================================================================

Handlers have the signature handler(request, response) and return
nothing. Every matching route runs in order with the same response until
one of them sends it:

    GET /users/me
        │
        ├── add_headers(request, response)   matches, sets a header
        ├── show_me(request, response)       matches, calls send() → stop
        └── show_user(...)                   never runs

No matching route at all → 404 Not Found.
=============================================================================
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from .request import HTTPRequest
from .response import HTTPResponse
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)

# A handler receives the request and the shared response, returns nothing
Handler = Callable[[HTTPRequest, HTTPResponse], None]


@dataclass
class Route:
    """
    A single registered route.

        Route(
            method="GET",
            path="/users/:id",
            handler=show_user,
            _pattern=re.compile(r"^/users/(?P<id>[^/]+)$"),
            _param_names=["id"],
        )
    """

    method: str
    path: str
    handler: Handler

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """A route plus the parameters extracted from the path."""

    route: Route
    params: Dict[str, str]


class Router:
    """
    Ordered route table.

    Usage:
        router = Router()

        @router.get("/")
        def index(request, response):
            response.send("<h1>Hello</h1>")

        router.register("POST", "/echo", echo)
    """

    def __init__(self):
        self._routes: List[Route] = []

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, method: str, path: str, handler: Handler) -> Route:
        """
        Add a route at the end of the table.

        Raises:
            ValueError: Empty method, path not starting with "/", or an
                        invalid parameter name.
        """
        if not method or not method.strip():
            raise ValueError("method must not be empty")
        if not path.startswith("/"):
            raise ValueError(f"route path must start with '/': {path!r}")

        pattern, param_names = self._compile_pattern(path)
        route = Route(
            method=method.strip().upper(),
            path=path,
            handler=handler,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        logger.debug(f"Registered route {route.method} {route.path}")
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a route pattern into an anchored regex.

            "/users/:id/posts/*rest"
                → ^/users/(?P<id>[^/]+)/posts(?:/(?P<rest>.*))?$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                name = self._param_name(segment[1:], path)
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>[^/]+)")

            elif segment.startswith("*"):
                name = self._param_name(segment[1:] or "wildcard", path)
                param_names.append(name)
                # The slash before a wildcard is optional: "/files/*path" matches "/files"
                regex_parts[-1] = f"(?:/(?P<{name}>.*))?"
                break  # Wildcard consumes the rest

            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")  # The root route "/"

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    @staticmethod
    def _param_name(name: str, path: str) -> str:
        if not name.isidentifier():
            raise ValueError(f"invalid parameter name {name!r} in route {path!r}")
        return name

    # =========================================================================
    # MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> Optional[str]:
        """
        "/users/" → "/users". Targets not starting with a single "/"
        ("*", "abc", "http://host/x", "//x") give None and match nothing.
        """
        if not path.startswith("/") or path.startswith("//"):
            return None
        if len(path) > 1 and path.endswith("/"):
            return path[:-1]
        return path

    def matches(self, method: str, path: str) -> Iterator[RouteMatch]:
        """Yield every matching route, in registration order."""
        path = self._normalize(path)
        if path is None:
            return

        for route in self._routes:
            if route.method != method:
                continue
            found = route._pattern.match(path)
            if found:
                yield RouteMatch(route=route, params=found.groupdict(""))

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """The first matching route, or None."""
        return next(self.matches(method, path), None)

    def routes(self) -> List[Route]:
        return list(self._routes)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, request: HTTPRequest, response: HTTPResponse) -> bool:
        """
        Run matching handlers in order until one sends the response.

        Returns:
            True if at least one route matched. When none matched, a
            404 Not Found response has been sent.
        """
        matched = False

        for found in self.matches(request.method, request.path):
            matched = True
            found.route.handler(request.with_path_params(found.params), response)
            if response.sent:
                break

        if not matched and not response.sent:
            response.set_status(HTTPStatus.NOT_FOUND).send(
                "<h1>404 Not Found</h1><p>No route for "
                f"{html.escape(request.method)} {html.escape(request.path)}</p>"
            )

        return matched

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(self, method: str, path: str) -> Callable[[Handler], Handler]:
        """
        Decorator form of register().

            @router.route("PUT", "/items/:id")
            def put_item(request, response): ...
        """
        def decorator(handler: Handler) -> Handler:
            self.register(method, path, handler)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route("GET", path)

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route("POST", path)

    def put(self, path: str) -> Callable[[Handler], Handler]:
        return self.route("PUT", path)

    def delete(self, path: str) -> Callable[[Handler], Handler]:
        return self.route("DELETE", path)
