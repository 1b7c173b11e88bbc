"""Configuration for the batch jobs, from environment or YAML."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, fields
from typing import Any

import yaml

SHARD_NUM_FILENAME = ".shard_num"

PROJECT_ID_ENV = "SCORECARD_PROJECT_ID"
RESULT_DATA_BUCKET_URL_ENV = "SCORECARD_DATA_BUCKET_URL"
REQUEST_TOPIC_URL_ENV = "SCORECARD_REQUEST_TOPIC_URL"
REQUEST_SUBSCRIPTION_URL_ENV = "SCORECARD_REQUEST_SUBSCRIPTION_URL"
BIGQUERY_DATASET_ENV = "SCORECARD_BIGQUERY_DATASET"
BIGQUERY_TABLE_ENV = "SCORECARD_BIQQUERY_TABLE"
SHARD_SIZE_ENV = "SCORECARD_SHARD_SIZE"
METRIC_EXPORTER_ENV = "SCORECARD_METRIC_EXPORTER"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


class ConfigError(ValueError):
    """A configuration value could not be obtained."""


class EmptyConfigValueError(ConfigError):
    """The value for the configuration option was empty."""


class ValueConversionError(ConfigError):
    """The configuration value had an unexpected type."""


@dataclass(frozen=True)
class Config:
    """Values read from the YAML configuration file."""

    project_id: str = ""
    result_data_bucket_url: str = ""
    request_topic_url: str = ""
    request_subscription_url: str = ""
    bigquery_dataset: str = ""
    bigquery_table: str = ""
    metric_exporter: str = ""
    shard_size: int = 0


_YAML_KEYS = {
    "project_id": "project-id",
    "result_data_bucket_url": "result-data-bucket-url",
    "request_topic_url": "request-topic-url",
    "request_subscription_url": "request-subscription-url",
    "bigquery_dataset": "bigquery-dataset",
    "bigquery_table": "bigquery-table",
    "metric_exporter": "metric-exporter",
    "shard_size": "shard-size",
}
_INT_FIELDS = frozenset({"shard_size"})
_FIELD_NAMES = frozenset(f.name for f in fields(Config))


def _as_string(key: str, raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (str, int, float)):
        return str(raw)
    raise ConfigError(f"error during yaml.Unmarshal: cannot read {key} as a string")


def _as_int(key: str, raw: Any) -> int:
    if raw is None:
        return 0
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    raise ConfigError(f"error during yaml.Unmarshal: cannot read {key} as an int")


def parse_config(data: bytes | str | None) -> Config:
    """Parse YAML configuration; unknown keys are ignored."""
    try:
        raw = yaml.safe_load(data) if data else None
    except yaml.YAMLError as exc:
        raise ConfigError(f"error during yaml.Unmarshal: {exc}") from exc
    if raw is None:
        return Config()
    if not isinstance(raw, dict):
        raise ConfigError("error during yaml.Unmarshal: expected a mapping")
    values: dict[str, Any] = {}
    for name, key in _YAML_KEYS.items():
        if key not in raw:
            continue
        convert = _as_int if name in _INT_FIELDS else _as_string
        values[name] = convert(key, raw[key])
    return Config(**values)


def _get_config_value(env_var: str, data: bytes | str | None, field_name: str) -> Any:
    if env_var in os.environ:
        return os.environ[env_var]
    try:
        parsed = parse_config(data)
    except ConfigError as exc:
        raise ConfigError(f"error parsing config file: {exc}") from exc
    if field_name not in _FIELD_NAMES:
        raise ConfigError(f"unknown config field: {field_name}")
    return getattr(parsed, field_name)


def get_string_config_value(
    env_var: str, data: bytes | str | None, field_name: str, config_name: str
) -> str:
    """Return a non-empty string from ``env_var`` or else the parsed ``data``."""
    try:
        value = _get_config_value(env_var, data, field_name)
    except ConfigError as exc:
        raise ConfigError(f"error getting config value {config_name}: {exc}") from exc
    if not isinstance(value, str):
        raise ValueConversionError(
            "unexpected type, cannot convert value: "
            f"{type(value).__name__}, {config_name}"
        )
    if not value:
        raise EmptyConfigValueError(f"config value set to empty: {config_name}")
    return value


def get_int_config_value(
    env_var: str, data: bytes | str | None, field_name: str, config_name: str
) -> int:
    """Return an integer from ``env_var`` or else the parsed ``data``."""
    try:
        value = _get_config_value(env_var, data, field_name)
    except ConfigError as exc:
        raise ConfigError(f"error getting config value {config_name}: {exc}") from exc
    if isinstance(value, bool):
        raise ValueConversionError(
            f"unexpected type, cannot convert value: bool, {config_name}"
        )
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not _INT_PATTERN.fullmatch(value):
            raise ConfigError(f"invalid integer {value!r} for {config_name}")
        return int(value)
    raise ValueConversionError(
        f"unexpected type, cannot convert value: {type(value).__name__}, {config_name}"
    )


def get_project_id(data: bytes | str | None) -> str:
    return get_string_config_value(PROJECT_ID_ENV, data, "project_id", "project-id")


def get_result_data_bucket_url(data: bytes | str | None) -> str:
    return get_string_config_value(
        RESULT_DATA_BUCKET_URL_ENV, data, "result_data_bucket_url", "result-data-bucket-url"
    )


def get_request_topic_url(data: bytes | str | None) -> str:
    return get_string_config_value(
        REQUEST_TOPIC_URL_ENV, data, "request_topic_url", "request-topic-url"
    )


def get_request_subscription_url(data: bytes | str | None) -> str:
    return get_string_config_value(
        REQUEST_SUBSCRIPTION_URL_ENV,
        data,
        "request_subscription_url",
        "request-subscription-url",
    )


def get_bigquery_dataset(data: bytes | str | None) -> str:
    return get_string_config_value(
        BIGQUERY_DATASET_ENV, data, "bigquery_dataset", "bigquery-dataset"
    )


def get_bigquery_table(data: bytes | str | None) -> str:
    return get_string_config_value(
        BIGQUERY_TABLE_ENV, data, "bigquery_table", "bigquery-table"
    )


def get_shard_size(data: bytes | str | None) -> int:
    return get_int_config_value(SHARD_SIZE_ENV, data, "shard_size", "shard-size")


def get_metric_exporter(data: bytes | str | None) -> str:
    return get_string_config_value(
        METRIC_EXPORTER_ENV, data, "metric_exporter", "metric-exporter"
    )