"""
=============================================================================
INDEX PAGE HANDLER
=============================================================================

Serves index.html from a directory, with a visit counter baked in.

The page is read from disk once, when the handler is created. On every
request the first "{}" in it is replaced with a running counter:

    index.html                     response body, third request
    ┌──────────────────────────┐   ┌──────────────────────────┐
    │ <p>You are visitor {}</p>│ → │ <p>You are visitor 2</p> │
    └──────────────────────────┘   └──────────────────────────┘

Only the first placeholder is replaced; any later "{}" is sent as-is.
The counter starts at 0 and advances only when a placeholder was
actually replaced, so a page without one never consumes a number. It
lives as long as the handler object.
=============================================================================
"""

import logging
from pathlib import Path
from typing import Union

from ..http import HTTPRequest, HTTPResponse


logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"
PLACEHOLDER = "{}"


class IndexPageHandler:
    """
    Handler for GET / rendering index.html with a visit counter.

    Usage:
        server.register("GET", "/", IndexPageHandler("./public"))

    A missing or unreadable index.html is logged once and an empty page
    is served in its place.
    """

    def __init__(self, directory: Union[str, Path] = "."):
        self.path = Path(directory) / INDEX_FILE
        self.template = self._load()
        self.visits = 0

    def _load(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read {self.path}: {e}; serving an empty page")
            return ""

    def render(self) -> str:
        """The page for the next visit; advances the counter if it was used."""
        if PLACEHOLDER not in self.template:
            return self.template

        page = self.template.replace(PLACEHOLDER, str(self.visits), 1)
        self.visits += 1
        return page

    def __call__(self, request: HTTPRequest, response: HTTPResponse) -> None:
        # Only the accept-loop thread calls handlers
        response.send(self.render())
