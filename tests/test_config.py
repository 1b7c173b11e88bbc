import pytest

from scorecard import config
from scorecard.config import (
    Config,
    ConfigError,
    EmptyConfigValueError,
    ValueConversionError,
    get_int_config_value,
    get_string_config_value,
    parse_config,
)

TEST_ENV_VAR = "TEST_ENV_VAR"

PROD_PROJECT_ID = "openssf"
PROD_BUCKET = "gs://ossf-scorecard-data"
PROD_TOPIC = "gcppubsub://projects/openssf/topics/scorecard-batch-requests"
PROD_SUBSCRIPTION = "gcppubsub://projects/openssf/subscriptions/scorecard-batch-worker"
PROD_BIGQUERY_DATASET = "scorecardcron"
PROD_BIGQUERY_TABLE = "scorecard"
PROD_SHARD_SIZE = 10
PROD_METRIC_EXPORTER = "stackdriver"

PROD_YAML = f"""\
project-id: {PROD_PROJECT_ID}
result-data-bucket-url: {PROD_BUCKET}
request-topic-url: {PROD_TOPIC}
request-subscription-url: {PROD_SUBSCRIPTION}
bigquery-dataset: {PROD_BIGQUERY_DATASET}
bigquery-table: {PROD_BIGQUERY_TABLE}
shard-size: {PROD_SHARD_SIZE}
metric-exporter: {PROD_METRIC_EXPORTER}
""".encode()

BASIC_YAML = b"""\
result-data-bucket-url: gs://ossf-scorecard-data
request-topic-url: gcppubsub://projects/openssf/topics/scorecard-batch-requests
shard-size: 250
"""

MISSING_FIELD_YAML = b"""\
result-data-bucket-url: gs://ossf-scorecard-data
request-topic-url: gcppubsub://projects/openssf/topics/scorecard-batch-requests
shard-size: 250
unknown-field: ignored
"""

BASIC_CONFIG = Config(
    result_data_bucket_url="gs://ossf-scorecard-data",
    request_topic_url="gcppubsub://projects/openssf/topics/scorecard-batch-requests",
    shard_size=250,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        (
            PROD_YAML,
            Config(
                project_id=PROD_PROJECT_ID,
                result_data_bucket_url=PROD_BUCKET,
                request_topic_url=PROD_TOPIC,
                request_subscription_url=PROD_SUBSCRIPTION,
                bigquery_dataset=PROD_BIGQUERY_DATASET,
                bigquery_table=PROD_BIGQUERY_TABLE,
                shard_size=PROD_SHARD_SIZE,
                metric_exporter=PROD_METRIC_EXPORTER,
            ),
        ),
        (BASIC_YAML, BASIC_CONFIG),
        (MISSING_FIELD_YAML, BASIC_CONFIG),
    ],
    ids=["validate", "basic", "missingField"],
)
def test_yaml_parsing(data, expected):
    assert parse_config(data) == expected


def test_empty_data_gives_defaults():
    assert parse_config(b"") == Config()


def test_invalid_yaml_raises():
    with pytest.raises(ConfigError):
        parse_config(b"key: [unclosed")


def test_non_mapping_yaml_raises():
    with pytest.raises(ConfigError):
        parse_config(b"- a\n- b\n")


def test_wrong_int_type_raises():
    with pytest.raises(ConfigError):
        parse_config(b"shard-size: many\n")


def test_string_value_from_env(monkeypatch):
    monkeypatch.setenv(TEST_ENV_VAR, "test")
    assert get_string_config_value(TEST_ENV_VAR, None, "", "test-config") == "test"


def test_string_value_from_file(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    value = get_string_config_value(
        TEST_ENV_VAR, BASIC_YAML, "result_data_bucket_url", "test-config"
    )
    assert value == "gs://ossf-scorecard-data"


def test_string_value_empty_raises(monkeypatch):
    monkeypatch.setenv(TEST_ENV_VAR, "")
    with pytest.raises(EmptyConfigValueError):
        get_string_config_value(TEST_ENV_VAR, None, "", "test-config")


def test_string_value_missing_in_file_raises(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    with pytest.raises(EmptyConfigValueError):
        get_string_config_value(TEST_ENV_VAR, BASIC_YAML, "project_id", "test-config")


def test_string_value_of_int_field_raises(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    with pytest.raises(ValueConversionError):
        get_string_config_value(TEST_ENV_VAR, BASIC_YAML, "shard_size", "test-config")


def test_unknown_field_raises(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    with pytest.raises(ConfigError):
        get_string_config_value(TEST_ENV_VAR, BASIC_YAML, "NoSuchField", "test-config")


def test_int_value_from_env(monkeypatch):
    monkeypatch.setenv(TEST_ENV_VAR, "11")
    assert get_int_config_value(TEST_ENV_VAR, None, "", "test-config") == 11


def test_int_value_from_file(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    assert get_int_config_value(TEST_ENV_VAR, BASIC_YAML, "shard_size", "test-config") == 250


def test_int_value_bad_env_raises(monkeypatch):
    monkeypatch.setenv(TEST_ENV_VAR, "eleven")
    with pytest.raises(ConfigError):
        get_int_config_value(TEST_ENV_VAR, None, "", "test-config")


def test_int_value_of_string_field_raises(monkeypatch):
    monkeypatch.delenv(TEST_ENV_VAR, raising=False)
    with pytest.raises(ValueConversionError):
        get_int_config_value(TEST_ENV_VAR, BASIC_YAML, "request_topic_url", "test-config")


@pytest.mark.parametrize(
    "getter, env_var, expected",
    [
        (config.get_project_id, config.PROJECT_ID_ENV, PROD_PROJECT_ID),
        (config.get_result_data_bucket_url, config.RESULT_DATA_BUCKET_URL_ENV, PROD_BUCKET),
        (config.get_request_topic_url, config.REQUEST_TOPIC_URL_ENV, PROD_TOPIC),
        (
            config.get_request_subscription_url,
            config.REQUEST_SUBSCRIPTION_URL_ENV,
            PROD_SUBSCRIPTION,
        ),
        (config.get_bigquery_dataset, config.BIGQUERY_DATASET_ENV, PROD_BIGQUERY_DATASET),
        (config.get_bigquery_table, config.BIGQUERY_TABLE_ENV, PROD_BIGQUERY_TABLE),
        (config.get_shard_size, config.SHARD_SIZE_ENV, PROD_SHARD_SIZE),
        (config.get_metric_exporter, config.METRIC_EXPORTER_ENV, PROD_METRIC_EXPORTER),
    ],
)
def test_production_getters(monkeypatch, getter, env_var, expected):
    monkeypatch.delenv(env_var, raising=False)
    assert getter(PROD_YAML) == expected


def test_env_overrides_file(monkeypatch):
    monkeypatch.setenv(config.PROJECT_ID_ENV, "other-project")
    assert config.get_project_id(PROD_YAML) == "other-project"


def test_shard_size_env_overrides_file(monkeypatch):
    monkeypatch.setenv(config.SHARD_SIZE_ENV, "42")
    assert config.get_shard_size(PROD_YAML) == 42