"""Blob storage buckets and a cache built on them."""

from __future__ import annotations

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit


class BlobError(Exception):
    """A blob storage operation failed."""


class Bucket(ABC):
    """A flat key/value store of byte blobs addressed by a URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._closed = False

    def read_all(self, key: str) -> bytes:
        """Return the blob stored under ``key``."""
        self._check(key)
        return self._read(key)

    def write_all(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any existing blob."""
        self._check(key)
        self._write(key, bytes(data))

    def delete(self, key: str) -> None:
        """Remove the blob stored under ``key``."""
        self._check(key)
        self._delete(key)

    def close(self) -> None:
        """Release the bucket; later operations fail."""
        self._closed = True

    def __enter__(self) -> Bucket:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _check(self, key: str) -> None:
        if self._closed:
            raise BlobError(f"bucket {self.url} is closed")
        if not key:
            raise BlobError("blob key must not be empty")

    @abstractmethod
    def _read(self, key: str) -> bytes: ...

    @abstractmethod
    def _write(self, key: str, data: bytes) -> None: ...

    @abstractmethod
    def _delete(self, key: str) -> None: ...


_MEMORY_STORES: dict[str, dict[str, bytes]] = {}
_MEMORY_LOCK = threading.Lock()


class _MemoryBucket(Bucket):
    """In-process bucket; buckets opened with the same name share contents."""

    def __init__(self, url: str, name: str) -> None:
        super().__init__(url)
        if name:
            with _MEMORY_LOCK:
                self._store = _MEMORY_STORES.setdefault(name, {})
        else:
            self._store = {}

    def _read(self, key: str) -> bytes:
        with _MEMORY_LOCK:
            try:
                return self._store[key]
            except KeyError:
                raise BlobError(f"blob not found: {key}") from None

    def _write(self, key: str, data: bytes) -> None:
        with _MEMORY_LOCK:
            self._store[key] = data

    def _delete(self, key: str) -> None:
        with _MEMORY_LOCK:
            if self._store.pop(key, None) is None:
                raise BlobError(f"blob not found: {key}")


class _FileBucket(Bucket):
    """Bucket whose blobs are files under an existing directory."""

    def __init__(self, url: str, root: Path) -> None:
        super().__init__(url)
        if not root.is_dir():
            raise BlobError(f"error in opening the bucket {url}: {root} is not a directory")
        self._root = root.resolve()

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise BlobError(f"invalid blob key: {key}")
        return self._root.joinpath(*parts)

    def _read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise BlobError(f"blob not found: {key}") from None
        except OSError as exc:
            raise BlobError(f"error reading blob {key}: {exc}") from exc

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=path.parent, delete=False) as tmp:
                tmp.write(data)
            os.replace(tmp.name, path)
        except OSError as exc:
            raise BlobError(f"error writing blob {key}: {exc}") from exc

    def _delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise BlobError(f"blob not found: {key}") from None
        except OSError as exc:
            raise BlobError(f"error deleting blob {key}: {exc}") from exc


def open_bucket(url: str) -> Bucket:
    """Open the bucket at ``url`` (``mem://[name]`` or ``file:///path``)."""
    parsed = urlsplit(url)
    if parsed.scheme == "mem":
        return _MemoryBucket(url, parsed.netloc + parsed.path)
    if parsed.scheme == "file":
        if parsed.netloc not in ("", "localhost"):
            raise BlobError(f"error in opening the bucket {url}: unexpected host")
        return _FileBucket(url, Path(unquote(parsed.path)))
    raise BlobError(f"error in opening the bucket {url}: unsupported scheme {parsed.scheme!r}")


@dataclass
class BlobCache:
    """A byte cache stored in a bucket.

    When ``strict`` is false, failures to store or delete are ignored, as a
    cache may lose entries without harm.
    """

    bucket: Bucket
    strict: bool = False

    def get(self, key: str) -> bytes | None:
        """Return the cached bytes for ``key``, or None when absent."""
        try:
            return self.bucket.read_all(key)
        except BlobError:
            return None

    def set(self, key: str, data: bytes) -> None:
        """Cache ``data`` under ``key``."""
        try:
            self.bucket.write_all(key, data)
        except BlobError:
            if self.strict:
                raise

    def delete(self, key: str) -> None:
        """Remove ``key`` from the cache."""
        try:
            self.bucket.delete(key)
        except BlobError:
            if self.strict:
                raise


def new_blob_cache(bucket_url: str, strict: bool = False) -> BlobCache:
    """Open the bucket at ``bucket_url`` for caching."""
    try:
        bucket = open_bucket(bucket_url)
    except BlobError as exc:
        raise BlobError(f"error in opening the bucket {bucket_url}: {exc}") from exc
    return BlobCache(bucket=bucket, strict=strict)