"""Composable HTTP transports: authentication, rate limits, stats and caching."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Protocol

import requests
from requests.structures import CaseInsensitiveDict

from .stats import HTTP_REQUESTS, REQUEST_TAG, StatsRecorder, default_recorder

_log = logging.getLogger(__name__)

X_FROM_CACHE = "X-From-Cache"

_ATOI_PATTERN = re.compile(r"[+-]?[0-9]+")
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
    }
)


class TransportError(Exception):
    """An HTTP round trip failed."""


class Transport(Protocol):
    def round_trip(self, request: requests.PreparedRequest) -> requests.Response: ...


class Cache(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


def _atoi(text: str | None) -> int | None:
    if text is None or not _ATOI_PATTERN.fullmatch(text):
        return None
    return int(text)


class RoundRobinTokens:
    """Hands out access tokens in turn; safe to share between threads."""

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = list(tokens)
        if not self._tokens:
            raise ValueError("at least one access token is required")
        self._counter = 0
        self._lock = threading.Lock()

    def next(self) -> str:
        """Return the next token."""
        with self._lock:
            self._counter += 1
            return self._tokens[self._counter % len(self._tokens)]


class SessionTransport:
    """The innermost transport: sends requests with a ``requests`` session."""

    def __init__(
        self, session: requests.Session | None = None, timeout: float | None = None
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def round_trip(self, request: requests.PreparedRequest) -> requests.Response:
        try:
            return self.session.send(request, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"error in HTTP request: {exc}") from exc


class GitHubTransport:
    """Adds a bearer token from a rotating set to each request."""

    def __init__(self, inner: Transport, access_tokens: Iterable[str]) -> None:
        self.inner = inner
        self.tokens = RoundRobinTokens(access_tokens)

    def round_trip(self, request: requests.PreparedRequest) -> requests.Response:
        request = request.copy()
        request.headers["Authorization"] = f"Bearer {self.tokens.next()}"
        try:
            return self.inner.round_trip(request)
        except Exception as exc:
            raise TransportError(f"error in HTTP: {exc}") from exc


class RateLimitTransport:
    """Waits out an exhausted GitHub rate limit and retries the request."""

    def __init__(
        self,
        inner: Transport,
        logger: logging.Logger | None = None,
        recorder: StatsRecorder | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.inner = inner
        self.logger = logger if logger is not None else _log
        self.recorder = recorder if recorder is not None else default_recorder
        self.sleep = sleep
        self.clock = clock

    def round_trip(self, request: requests.PreparedRequest) -> requests.Response:
        while True:
            self.recorder.record(HTTP_REQUESTS, 1, **{REQUEST_TAG: "actual"})
            try:
                response = self.inner.round_trip(request)
            except Exception as exc:
                raise TransportError(f"error in round trip: {exc}") from exc
            remaining = _atoi(response.headers.get("X-RateLimit-Remaining"))
            if remaining is None or remaining > 0:
                return response
            reset = _atoi(response.headers.get("X-RateLimit-Reset"))
            if reset is None:
                return response
            duration = reset - self.clock()
            self.logger.warning(
                "Rate limit exceeded. Waiting %.0fs to retry...", max(duration, 0.0)
            )
            self.sleep(max(duration, 0.0))
            self.logger.warning("Rate limit exceeded. Retrying...")


class CensusTransport:
    """Counts every request that is made, whether or not a cache answers it."""

    def __init__(self, inner: Transport, recorder: StatsRecorder | None = None) -> None:
        self.inner = inner
        self.recorder = recorder if recorder is not None else default_recorder

    def round_trip(self, request: requests.PreparedRequest) -> requests.Response:
        self.recorder.record(HTTP_REQUESTS, 1, **{REQUEST_TAG: "requested"})
        try:
            return self.inner.round_trip(request)
        except Exception as exc:
            raise TransportError(f"error in RoundTrip: {exc}") from exc


class MemoryCache:
    """A thread-safe in-memory byte cache."""

    def __init__(self) -> None:
        self._items: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, data: bytes) -> None:
        with self._lock:
            self._items[key] = bytes(data)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class DiskCache:
    """A byte cache stored as files, one per key, named by the key's MD5.

    Up to ``cache_size_max`` bytes of recently used entries are also kept
    in memory.
    """

    def __init__(self, base_path: str | os.PathLike[str], cache_size_max: int = 0) -> None:
        self.base_path = Path(base_path)
        self.cache_size_max = cache_size_max
        self._memory: OrderedDict[str, bytes] = OrderedDict()
        self._memory_size = 0
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.base_path / hashlib.md5(key.encode("utf-8")).hexdigest()

    def _remember(self, name: str, data: bytes) -> None:
        self._forget(name)
        if len(data) > self.cache_size_max:
            return
        self._memory[name] = data
        self._memory_size += len(data)
        while self._memory_size > self.cache_size_max:
            _, evicted = self._memory.popitem(last=False)
            self._memory_size -= len(evicted)

    def _forget(self, name: str) -> None:
        old = self._memory.pop(name, None)
        if old is not None:
            self._memory_size -= len(old)

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        with self._lock:
            if path.name in self._memory:
                self._memory.move_to_end(path.name)
                return self._memory[path.name]
            try:
                data = path.read_bytes()
            except OSError:
                return None
            self._remember(path.name, data)
            return data

    def set(self, key: str, data: bytes) -> None:
        path = self._path(key)
        data = bytes(data)
        with self._lock:
            try:
                self.base_path.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(dir=self.base_path, delete=False) as tmp:
                    tmp.write(data)
                os.replace(tmp.name, path)
            except OSError as exc:
                _log.warning("unable to write cache entry %s: %s", path, exc)
                return
            self._remember(path.name, data)

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            self._forget(path.name)
            try:
                path.unlink()
            except OSError:
                pass


def _cache_key(request: requests.PreparedRequest) -> str:
    url = request.url or ""
    if request.method == "GET":
        return url
    return f"{request.method} {url}"


def _cache_control(headers: CaseInsensitiveDict) -> dict[str, str]:
    directives: dict[str, str] = {}
    for part in headers.get("Cache-Control", "").split(","):
        part = part.strip()
        if not part:
            continue
        name, _, value = part.partition("=")
        directives[name.strip().lower()] = value.strip().strip('"')
    return directives


def _http_time(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


def _dump_response(response: requests.Response) -> bytes:
    document = {
        "status": response.status_code,
        "reason": response.reason,
        "url": response.url,
        "headers": [
            [name, value]
            for name, value in response.headers.items()
            if name.lower() != X_FROM_CACHE.lower()
        ],
        "body": base64.b64encode(response.content or b"").decode("ascii"),
    }
    return json.dumps(document).encode("utf-8")


def _load_response(
    data: bytes, request: requests.PreparedRequest
) -> requests.Response | None:
    try:
        document = json.loads(data)
        body = base64.b64decode(document["body"], validate=True)
        response = requests.Response()
        response.status_code = int(document["status"])
        response.reason = document.get("reason")
        response.url = document.get("url") or request.url
        response.headers = CaseInsensitiveDict(
            {name: value for name, value in document["headers"]}
        )
    except (ValueError, KeyError, TypeError, binascii.Error):
        return None
    response._content = body
    response.request = request
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    return response


class CachedTransport:
    """Answers GET and HEAD requests from a cache when the entry is fresh.

    Stale entries with an ETag or Last-Modified are revalidated; a 304
    reply is answered from the cache.
    """

    def __init__(
        self, inner: Transport, cache: Cache, clock: Callable[[], float] = time.time
    ) -> None:
        self.inner = inner
        self.cache = cache
        self.clock = clock

    def _is_fresh(self, response: requests.Response) -> bool:
        directives = _cache_control(response.headers)
        if "no-cache" in directives:
            return False
        date = _http_time(response.headers.get("Date"))
        if date is None:
            return False
        age = self.clock() - date
        if "max-age" in directives:
            lifetime = _atoi(directives["max-age"]) or 0
        else:
            expires = _http_time(response.headers.get("Expires"))
            lifetime = expires - date if expires is not None else 0
        return lifetime > age

    def round_trip(self, request: requests.PreparedRequest) -> requests.Response:
        key = _cache_key(request)
        cacheable = request.method in ("GET", "HEAD") and "Range" not in request.headers
        cached = None
        if cacheable:
            data = self.cache.get(key)
            if data is not None:
                cached = _load_response(data, request)
        if cached is not None:
            cached.headers[X_FROM_CACHE] = "1"
            if self._is_fresh(cached):
                return cached
            request = request.copy()
            etag = cached.headers.get("ETag")
            if etag:
                request.headers["If-None-Match"] = etag
            last_modified = cached.headers.get("Last-Modified")
            if last_modified:
                request.headers["If-Modified-Since"] = last_modified

        try:
            response = self.inner.round_trip(request)
        except Exception as exc:
            raise TransportError(f"error in cached round trip: {exc}") from exc

        if cached is not None and response.status_code == 304:
            for name, value in response.headers.items():
                if name.lower() not in _HOP_BY_HOP:
                    cached.headers[name] = value
            response = cached

        storable = (
            cacheable
            and "no-store" not in _cache_control(request.headers)
            and "no-store" not in _cache_control(response.headers)
        )
        if storable:
            self.cache.set(key, _dump_response(response))
        else:
            self.cache.delete(key)
        return response


def make_blob_cache_transport(inner: Transport, blob_cache: Cache) -> CachedTransport:
    """Cache responses in a blob-storage cache."""
    return CachedTransport(inner, blob_cache)


def make_disk_cache_transport(
    inner: Transport, cache_path: str | os.PathLike[str], cache_size: int
) -> CachedTransport:
    """Cache responses in files under ``cache_path``."""
    return CachedTransport(inner, DiskCache(cache_path, cache_size))


def make_in_memory_cache_transport(inner: Transport) -> CachedTransport:
    """Cache responses in memory."""
    return CachedTransport(inner, MemoryCache())