"""Shard file naming, blob writes and the CSV repository iterator."""

from __future__ import annotations

import csv
from collections.abc import Iterable, Iterator
from datetime import datetime as DateTime

from .blobstore import open_bucket
from .config import SHARD_NUM_FILENAME
from .repo_url import RepoURL

# Lexicographic order of these prefixes matches chronological order.
_FILE_PREFIX_FORMAT = "%Y.%m.%d/%H%M%S/"


def write_to_blob_store(bucket_url: str, filename: str, data: bytes) -> None:
    """Write ``data`` to ``filename`` in the bucket at ``bucket_url``."""
    with open_bucket(bucket_url) as bucket:
        bucket.write_all(filename, data)


def get_blob_filename(filename: str, datetime: DateTime) -> str:
    """Prefix ``filename`` with the ``YYYY.MM.DD/HHMMSS/`` of ``datetime``."""
    return datetime.strftime(_FILE_PREFIX_FORMAT) + filename


def get_shard_num_filename(datetime: DateTime) -> str:
    """Return the blob name holding the number of shards for a job."""
    return get_blob_filename(SHARD_NUM_FILENAME, datetime)


class CsvRepoIterator(Iterator[RepoURL]):
    """Yields validated GitHub repositories from CSV with a ``repo`` column.

    A row that cannot be used raises from ``__next__``; iteration may go on
    with the following rows afterwards.
    """

    def __init__(self, reader: Iterable[str]) -> None:
        self._rows = csv.reader(reader)
        header = next((row for row in self._rows if row), None)
        if header is None:
            raise ValueError("error in CSV header: no header row")
        self._header = header

    def __iter__(self) -> CsvRepoIterator:
        return self

    def __next__(self) -> RepoURL:
        for row in self._rows:
            if not row:
                continue
            if len(row) != len(self._header):
                raise csv.Error(
                    f"record on line {self._rows.line_num}: wrong number of fields"
                )
            record = dict(zip(self._header, row))
            repo = RepoURL()
            repo.set(record.get("repo", ""))
            repo.validate_github()
            return repo
        raise StopIteration


def make_iterator_from(reader: Iterable[str]) -> CsvRepoIterator:
    """Return an iterator of repositories read from CSV text."""
    return CsvRepoIterator(reader)