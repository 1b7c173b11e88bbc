"""Measures, tag keys and views for request and runtime statistics."""

from __future__ import annotations

import threading
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

Number = Union[int, float]

UNIT_SECONDS = "s"
UNIT_DIMENSIONLESS = "1"


@dataclass(frozen=True)
class Measure:
    """A named quantity that can be recorded."""

    name: str
    description: str
    unit: str


CPU_RUNTIME_IN_SEC = Measure(
    "CPURuntimeInSec", "Measures the CPU runtime in seconds", UNIT_SECONDS
)
HTTP_REQUESTS = Measure(
    "HTTPRequests", "Measures the count of HTTP requests", UNIT_DIMENSIONLESS
)

# Tag keys.
CHECK_NAME = "checkName"
REPO = "repo"
REQUEST_TAG = "requestTag"
CLIENT_PATH = "http_client_path"


class Aggregation(Enum):
    """How a view combines recorded values."""

    COUNT = "count"
    DISTRIBUTION = "distribution"


@dataclass(frozen=True)
class View:
    """An aggregation of one measure, broken down by tag keys."""

    name: str
    description: str
    measure: Measure
    tag_keys: tuple[str, ...]
    aggregation: Aggregation
    bucket_bounds: tuple[Number, ...] = field(default=())

    def bucket_for(self, value: Number) -> int:
        """Return the index of the distribution bucket holding ``value``.

        Bucket ``i`` holds values below ``bucket_bounds[i]``; values at or
        above the last bound fall in the final overflow bucket.
        """
        if self.aggregation is not Aggregation.DISTRIBUTION:
            raise ValueError(f"view {self.name} is not a distribution")
        return bisect_right(self.bucket_bounds, value)


CHECK_RUNTIME = View(
    name="CheckRuntime",
    description="CPU runtime stats per repo per check",
    measure=CPU_RUNTIME_IN_SEC,
    tag_keys=(REPO, CHECK_NAME),
    aggregation=Aggregation.DISTRIBUTION,
    bucket_bounds=tuple(1 << shift for shift in range(2, 17)),
)

OUTGOING_HTTP_REQUESTS = View(
    name="OutgoingHTTPRequests",
    description="HTTPRequests made per repo per check per URL path",
    measure=HTTP_REQUESTS,
    tag_keys=(REPO, CHECK_NAME, CLIENT_PATH, REQUEST_TAG),
    aggregation=Aggregation.COUNT,
)


class StatsRecorder:
    """Thread-safe store of recorded measurements and their tags."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[tuple[Measure, dict[str, str], Number]] = []

    def record(self, measure: Measure, value: Number, **kwargs: str) -> None:
        """Record ``value`` for ``measure`` with the given tags."""
        with self._lock:
            self._records.append((measure, dict(kwargs), value))

    def _matching(self, measure: Measure, tags: dict[str, str]) -> list[Number]:
        with self._lock:
            records = list(self._records)
        return [
            value
            for recorded, recorded_tags, value in records
            if recorded == measure
            and all(recorded_tags.get(key) == wanted for key, wanted in tags.items())
        ]

    def count(self, measure: Measure, **kwargs: str) -> int:
        """Return how many values were recorded with at least these tags."""
        return len(self._matching(measure, kwargs))

    def total(self, measure: Measure, **kwargs: str) -> Number:
        """Return the sum of values recorded with at least these tags."""
        return sum(self._matching(measure, kwargs))


default_recorder = StatsRecorder()