"""Split the list of repositories into shards and publish them."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from .pubsub import BatchRequest, Publisher
from .repo_url import RepoURL


def publish_to_repo_request_topic(
    repo_urls: Iterable[RepoURL],
    job_time: datetime,
    publisher: Publisher,
    shard_size: int,
) -> int:
    """Publish ``repo_urls`` in shards of ``shard_size`` and close ``publisher``.

    Returns the number of full shards sent, which is also the shard number
    given to a trailing partial shard when there is one.
    """
    shard_num = 0
    batch: list[str] = []
    for repo_url in repo_urls:
        batch.append(repo_url.url())
        if len(batch) < shard_size:
            continue
        publisher.publish(BatchRequest(repos=batch, job_time=job_time, shard_num=shard_num))
        batch = []
        shard_num += 1
    if batch:
        publisher.publish(BatchRequest(repos=batch, job_time=job_time, shard_num=shard_num))
    publisher.close()
    return shard_num