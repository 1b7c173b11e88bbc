# scorecard

Building blocks for scoring the security health of open source repositories
on GitHub, plus three command-line tools.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## What is in the package

| Module | Contents |
| --- | --- |
| `scorecard.repo_url` | `RepoURL`, `parse_repo_url` and the `RepoURLError` family |
| `scorecard.repo_result` | `CheckResult`, `RepoResult` and `display_result` |
| `scorecard.runner` | `run_scorecards`, which runs check functions concurrently |
| `scorecard.config` | batch configuration from YAML with environment overrides |
| `scorecard.blobstore` | `open_bucket`, `Bucket`, `BlobCache`, `new_blob_cache` |
| `scorecard.data` | shard file names, `write_to_blob_store`, `CsvRepoIterator` |
| `scorecard.pubsub` | `BatchRequest`, `Publisher`, `Subscriber` |
| `scorecard.controller` | `publish_to_repo_request_topic` |
| `scorecard.stats` | measures, views and `StatsRecorder` |
| `scorecard.transport` | HTTP transports for tokens, rate limits, counting and caching |
| `scorecard.storage` | `StoragePath`, the working paths for one cached repository |
| `scorecard.gitcache` | `CacheService` and `archive_folder` |
| `scorecard.server` | the git cache HTTP service |
| `scorecard.validate` | duplicate check for a projects CSV file |
| `scorecard.update` | adds project dependencies to a projects CSV file |

## Repository URLs

```python
from scorecard.repo_url import parse_repo_url

repo = parse_repo_url("github.com/owner/repo")   # scheme defaults to https
print(repo.url())                                 # github.com/owner/repo
print(repo.non_url_string())                      # github.com-owner-repo
repo.validate_github()
```

A URL without both an owner and a repository part raises `InvalidURLError`.
`validate_github` raises `UnsupportedHostError` for a host other than
`github.com`, and `InvalidGitHubURLError` when the owner or repository is
blank. All of them derive from `RepoURLError`, itself a `ValueError`.

## Running checks and writing results

A check is any callable that takes a `RepoURL` and returns a `CheckResult`.
`run_scorecards` runs them all at once, names each result after its key and
collects them in the order they finish, with today's date:

```python
import sys
from scorecard.repo_result import CheckResult
from scorecard.runner import run_scorecards

def has_readme(repo):
    return CheckResult(name="", passed=True, confidence=10, details=["found"])

result = run_scorecards(repo, {"Readme": has_readme})
result.as_json(False, sys.stdout)    # one JSON line; name, pass and confidence only
result.as_csv(True, sys.stdout)      # header line and one record, with details
result.as_string(True, sys.stdout)   # "Readme: Pass 10" followed by the details
```

## Batch configuration

`scorecard.config` reads a YAML document with the keys `project-id`,
`result-data-bucket-url`, `request-topic-url`, `request-subscription-url`,
`bigquery-dataset`, `bigquery-table`, `metric-exporter` and `shard-size`.
`parse_config(data)` returns a `Config`. Each getter (`get_project_id(data)`,
`get_shard_size(data)`, `get_result_data_bucket_url(data)` and the rest)
takes the YAML document and lets an environment variable override the value,
for example `SCORECARD_PROJECT_ID` or `SCORECARD_SHARD_SIZE`. An empty string
value raises `EmptyConfigValueError`; a value of the wrong type raises
`ValueConversionError`; both derive from `ConfigError`.

## Blob storage

`open_bucket(url)` understands two kinds of URL:

- `mem://name` — an in-process store; buckets opened with the same name share contents
- `file:///path/to/dir` — one file per key under an existing directory

`BlobCache` wraps a bucket as a byte cache whose `get` returns `None` for a
missing key. `write_to_blob_store` writes one blob, and `get_blob_filename`
prefixes a name with `YYYY.MM.DD/HHMMSS/` so that names sort by time.

## Sharding and messages

`CsvRepoIterator` (or `make_iterator_from`) reads CSV text with a `repo`
column and yields validated GitHub `RepoURL`s; a bad row raises from `next`
and iteration may continue. `publish_to_repo_request_topic` groups URLs into
`BatchRequest`s of `shard_size`, publishes them and closes the publisher.

`Publisher` sends to any object with a `send(body)` method, in the
background; `close` waits and raises `PublishError` if any send failed.
`Subscriber` pulls from any object with `receive()` and `shutdown()`, where a
received message has `body`, `ack()` and `nack()`. `BatchRequest.to_json` and
`BatchRequest.from_json` use the field names `repos`, `jobTime` and `shardNum`.

## HTTP transports

Each transport has a `round_trip(request)` method taking a
`requests.PreparedRequest`, and wraps an inner transport:

- `SessionTransport` sends through a `requests.Session`
- `GitHubTransport` adds `Authorization: Bearer <token>` from a rotating set of tokens
- `RateLimitTransport` sleeps until `X-RateLimit-Reset` when `X-RateLimit-Remaining` reaches zero, then retries
- `CensusTransport` counts every request made
- `CachedTransport` answers GET and HEAD from a cache while fresh and revalidates with ETag or Last-Modified

`make_in_memory_cache_transport`, `make_disk_cache_transport` and
`make_blob_cache_transport` build a `CachedTransport` over a `MemoryCache`,
a `DiskCache` or a `BlobCache`. Counts are kept by a `StatsRecorder`
(`scorecard.stats.default_recorder` unless one is given), which can be
queried with `count` and `total`.

## Command-line tools

Check a projects file for duplicate repositories (exit status 1 on a
duplicate):

```
scorecard-validate projects.csv
```

Append the dependencies of a fixed set of Bazel and Go projects to a
projects file, skipping repositories already listed. It calls the GitHub
API and needs `git` and `go` on the path:

```
scorecard-update projects.csv
```

Run the git cache service on port 8080. It needs `git` on the path, reads
the bucket URL from `BLOB_URL` and a scratch directory from `TEMP_DIR`, and
takes `--verbosity` to set the log level:

```
BLOB_URL=file:///var/cache/gitcache-blobs TEMP_DIR=/var/tmp/gitcache scorecard-gitcache
```

A `GET` answers as a liveness probe. A `POST` with a JSON body such as
`{"url": "github.com/owner/repo"}` clones the repository, or restores and
fetches the cached copy, and stores in the bucket an archive with `.git`,
an archive without it, the last commit time and the last sync time. Other
methods get 405.

## What the package does not do

- It ships no security checks of its own; `run_scorecards` runs the checks you pass it.
- Buckets are in-memory or on the local file system only; there is no cloud object storage.
- There is no cloud message queue; `Publisher` and `Subscriber` work with objects you supply.
- Statistics stay in the process; nothing exports them to a monitoring service.
- There is no command for the batch controller or worker, and nothing loads results into a data warehouse.