"""HTTP service that refreshes the git cache on request."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .gitcache import CacheService, GitCacheError

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


class GitCacheHandler(BaseHTTPRequestHandler):
    """POST ``{"url": ...}`` updates the cache; GET answers liveness probes."""

    blob_url = ""
    temp_dir = ""

    def _reply(self, status: int, text: str) -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self) -> None:
        self._reply(200, "I am alive.")

    def do_POST(self) -> None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
            document = json.loads(self.rfile.read(length) or b"")
            if document is None:
                document = {}
            if not isinstance(document, dict):
                raise ValueError("expected a JSON object")
            url = document.get("url") or ""
            if not isinstance(url, str):
                raise ValueError("url must be a string")
        except ValueError as exc:
            self._reply(400, f"{exc}\n")
            return
        try:
            service = CacheService(self.blob_url, self.temp_dir, logger.info)
            service.update_cache(url)
        except GitCacheError as exc:
            self._reply(500, f"{exc}\n")
            return
        self._reply(200, "")

    def _method_not_allowed(self) -> None:
        self._reply(405, "I can't do that.")

    do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_HEAD = _method_not_allowed

    def log_message(self, format: str, *args: object) -> None:
        logger.debug(format, *args)


def make_server(blob_url: str, temp_dir: str, port: int) -> ThreadingHTTPServer:
    """Return a server for the git cache bound to ``port`` on all interfaces."""
    handler = type(
        "BoundGitCacheHandler",
        (GitCacheHandler,),
        {"blob_url": blob_url, "temp_dir": temp_dir},
    )
    return ThreadingHTTPServer(("", port), handler)


def main(argv: list[str] | None = None) -> int:
    """Serve the git cache on port 8080, configured from BLOB_URL and TEMP_DIR."""
    parser = argparse.ArgumentParser(description="Git cache HTTP service.")
    parser.add_argument(
        "-verbosity", "--verbosity", default="info", choices=sorted(_LEVELS),
        help="override the default log level",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=_LEVELS[args.verbosity])

    blob_url = os.environ.get("BLOB_URL", "")
    if not blob_url:
        logger.error("BLOB_URL env is not set.")
        return 1
    # Not a tmpfs: some repositories are large.
    temp_dir = os.environ.get("TEMP_DIR", "")
    if not temp_dir:
        logger.error("TEMP_DIR env is not set.")
        return 1
    logger.info("BLOB_URL:%s", blob_url)
    logger.info("TEMP_DIR:%s", temp_dir)

    try:
        server = make_server(blob_url, temp_dir, 8080)
    except OSError as exc:
        logger.error("unable to start server: %s", exc)
        return 1
    logger.info("Starting server for testing HTTP POST...")
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())