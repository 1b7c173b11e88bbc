from datetime import datetime, timezone

import pytest

from scorecard.controller import publish_to_repo_request_topic
from scorecard.pubsub import BatchRequest, PublishError, Publisher
from scorecard.repo_url import RepoURL, RepoURLError, parse_repo_url

JOB_TIME = datetime(2021, 4, 23, 15, 6, 43, tzinfo=timezone.utc)


class RecordingTopic:
    def __init__(self):
        self.bodies = []

    def send(self, body):
        self.bodies.append(body)


class FailTopic:
    def send(self, body):
        raise RuntimeError("send failed")


def _repos(count):
    return [parse_repo_url(f"github.com/owner{i}/repo{i}") for i in range(count)]


def _failing_repos():
    yield RepoURL("github.com", "owner", "repo")
    raise RepoURLError("bad row")


def _published(topic):
    requests = [BatchRequest.from_json(body) for body in topic.bodies]
    return sorted(requests, key=lambda r: r.shard_num)


def test_shards_with_remainder():
    repos = _repos(5)
    topic = RecordingTopic()
    shard_num = publish_to_repo_request_topic(repos, JOB_TIME, Publisher(topic), 2)
    requests = _published(topic)
    assert shard_num == len(requests) - 1
    assert [r.shard_num for r in requests] == list(range(len(requests)))
    assert [url for r in requests for url in r.repos] == [r.url() for r in repos]
    assert all(len(r.repos) <= 2 for r in requests)
    assert all(r.job_time == JOB_TIME for r in requests)
    assert requests[0].repos == ["github.com/owner0/repo0", "github.com/owner1/repo1"]


def test_exact_multiple_publishes_no_trailing_shard():
    repos = _repos(4)
    topic = RecordingTopic()
    shard_num = publish_to_repo_request_topic(repos, JOB_TIME, Publisher(topic), 2)
    requests = _published(topic)
    assert shard_num == len(requests)
    assert all(len(r.repos) == 2 for r in requests)


def test_empty_input():
    topic = RecordingTopic()
    assert publish_to_repo_request_topic([], JOB_TIME, Publisher(topic), 10) == 0
    assert topic.bodies == []


def test_fewer_than_shard_size():
    topic = RecordingTopic()
    repos = _repos(3)
    shard_num = publish_to_repo_request_topic(repos, JOB_TIME, Publisher(topic), 10)
    requests = _published(topic)
    assert shard_num == 0
    assert [r.repos for r in requests] == [[r.url() for r in repos]]
    assert requests[0].shard_num == 0


def test_publish_failure_raises():
    with pytest.raises(PublishError):
        publish_to_repo_request_topic(_repos(3), JOB_TIME, Publisher(FailTopic()), 1)


def test_iterator_error_propagates():
    topic = RecordingTopic()
    with pytest.raises(RepoURLError, match="bad row"):
        publish_to_repo_request_topic(_failing_repos(), JOB_TIME, Publisher(topic), 5)
    assert topic.bodies == []