"""Batch request messages and the publisher and subscriber that carry them."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_TIMESTAMP_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})"
)
_INT_TEXT_PATTERN = re.compile(r"-?[0-9]+")

_FIELD_ALIASES = {
    "repos": "repos",
    "jobTime": "job_time",
    "job_time": "job_time",
    "shardNum": "shard_num",
    "shard_num": "shard_num",
}


class ParseError(ValueError):
    """A batch request message could not be decoded."""


class PublishError(Exception):
    """One or more messages failed to publish."""

    def __init__(self, total_errors: int) -> None:
        super().__init__(f"total errors when publishing: {total_errors}")
        self.total_errors = total_errors


class SubscriberError(Exception):
    """A subscriber operation failed."""


class _Sender(Protocol):
    def send(self, body: bytes) -> None: ...


class _Message(Protocol):
    body: bytes

    def ack(self) -> None: ...

    def nack(self) -> None: ...


class _Receiver(Protocol):
    def receive(self) -> _Message: ...

    def shutdown(self) -> None: ...


def _format_timestamp(value: datetime) -> str:
    # Naive datetimes are taken to be in UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    micro = value.microsecond
    if micro:
        if micro % 1000 == 0:
            text += f".{micro // 1000:03d}"
        else:
            text += f".{micro:06d}"
    return text + "Z"


def _parse_timestamp(text: Any) -> datetime:
    if not isinstance(text, str):
        raise ParseError(f"invalid value for jobTime: {text!r}")
    match = _TIMESTAMP_PATTERN.fullmatch(text)
    if match is None:
        raise ParseError(f"invalid google.protobuf.Timestamp value {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "").ljust(9, "0")[:6])
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        value = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
    except ValueError as exc:
        raise ParseError(f"invalid google.protobuf.Timestamp value {text!r}") from exc
    return value.astimezone(timezone.utc)


def _parse_int32(value: Any) -> int:
    if isinstance(value, bool):
        raise ParseError(f"invalid value for int32 field shardNum: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and _INT_TEXT_PATTERN.fullmatch(value):
        value = int(value)
    if not isinstance(value, int):
        raise ParseError(f"invalid value for int32 field shardNum: {value!r}")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ParseError(f"value out of range for int32 field shardNum: {value}")
    return value


def _parse_repos(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(r, str) for r in value):
        raise ParseError(f"invalid value for repeated string field repos: {value!r}")
    return list(value)


@dataclass
class BatchRequest:
    """A batch of repositories to score, sent as one shard of a job."""

    repos: list[str] = field(default_factory=list)
    job_time: datetime | None = None
    shard_num: int | None = None

    def to_json(self) -> bytes:
        """Encode as compact JSON; empty fields are left out."""
        document: dict[str, Any] = {}
        if self.repos:
            document["repos"] = list(self.repos)
        if self.shard_num is not None:
            document["shardNum"] = self.shard_num
        if self.job_time is not None:
            document["jobTime"] = _format_timestamp(self.job_time)
        return json.dumps(document, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> BatchRequest:
        """Decode JSON; unknown fields are rejected."""
        try:
            document = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise ParseError(f"invalid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise ParseError("expected a JSON object")
        values: dict[str, Any] = {}
        for key, raw in document.items():
            name = _FIELD_ALIASES.get(key)
            if name is None:
                raise ParseError(f"unknown field {key!r}")
            if name in values:
                raise ParseError(f"duplicate field {key!r}")
            if name == "repos":
                values[name] = _parse_repos(raw)
            elif raw is None:
                values[name] = None
            elif name == "job_time":
                values[name] = _parse_timestamp(raw)
            else:
                values[name] = _parse_int32(raw)
        return cls(
            repos=values.get("repos") or [],
            job_time=values.get("job_time"),
            shard_num=values.get("shard_num"),
        )


def parse_json_to_request(data: bytes | str) -> BatchRequest:
    """Decode a message body into a :class:`BatchRequest`."""
    try:
        return BatchRequest.from_json(data)
    except ParseError as exc:
        raise ParseError(f"error during JSON decoding of request: {exc}") from exc


class Publisher:
    """Sends batch requests to a topic in the background.

    Send failures are counted and reported by :meth:`close`.
    """

    def __init__(self, topic: _Sender) -> None:
        self.topic = topic
        self.total_errors = 0
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    def publish(self, request: BatchRequest) -> None:
        """Encode ``request`` now and send it in the background."""
        body = request.to_json()
        thread = threading.Thread(target=self._send, args=(body,), daemon=True)
        with self._lock:
            self._threads.append(thread)
        thread.start()

    def _send(self, body: bytes) -> None:
        try:
            self.topic.send(body)
        except Exception as exc:  # any failure of the topic counts as an error
            logger.error("Error when publishing message %s: %s", body.decode(), exc)
            with self._lock:
                self.total_errors += 1
            return
        logger.info("Successfully published message")

    def close(self) -> None:
        """Wait for pending sends; raise if any of them failed."""
        with self._lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join()
        if self.total_errors > 0:
            raise PublishError(self.total_errors)

    def __enter__(self) -> Publisher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Subscriber:
    """Pulls batch requests one at a time from a subscription."""

    def __init__(self, subscription: _Receiver) -> None:
        self.subscription = subscription
        self._message: _Message | None = None

    def synchronous_pull(self) -> BatchRequest | None:
        """Return the next request, or None when receiving fails."""
        try:
            message = self.subscription.receive()
        except Exception as exc:  # a failed receive ends the stream
            logger.error("error during Receive: %s", exc)
            return None
        self._message = message
        return parse_json_to_request(message.body)

    def _current(self) -> _Message:
        if self._message is None:
            raise SubscriberError("no message has been received")
        return self._message

    def ack(self) -> None:
        """Acknowledge the last received message."""
        self._current().ack()

    def nack(self) -> None:
        """Reject the last received message so it can be redelivered."""
        self._current().nack()

    def close(self) -> None:
        """Shut the subscription down."""
        try:
            self.subscription.shutdown()
        except Exception as exc:
            raise SubscriberError(f"error during subscription shutdown: {exc}") from exc