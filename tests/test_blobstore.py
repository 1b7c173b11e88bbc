import pytest

from scorecard.blobstore import BlobCache, BlobError, new_blob_cache, open_bucket


def test_memory_round_trip():
    with open_bucket("mem://") as bucket:
        bucket.write_all("a/b", b"payload")
        assert bucket.read_all("a/b") == b"payload"
        bucket.delete("a/b")
        with pytest.raises(BlobError):
            bucket.read_all("a/b")


def test_named_memory_buckets_share_contents():
    first = open_bucket("mem://shared-test-bucket")
    first.write_all("key", b"value")
    second = open_bucket("mem://shared-test-bucket")
    assert second.read_all("key") == b"value"


def test_anonymous_memory_buckets_are_separate():
    first = open_bucket("mem://")
    first.write_all("key", b"value")
    second = open_bucket("mem://")
    with pytest.raises(BlobError):
        second.read_all("key")


def test_file_round_trip(tmp_path):
    bucket = open_bucket(tmp_path.as_uri())
    bucket.write_all("dir/blob", b"\x00\x01data")
    assert bucket.read_all("dir/blob") == b"\x00\x01data"
    assert (tmp_path / "dir" / "blob").read_bytes() == b"\x00\x01data"
    bucket.write_all("dir/blob", b"new")
    assert bucket.read_all("dir/blob") == b"new"
    bucket.delete("dir/blob")
    assert not (tmp_path / "dir" / "blob").exists()


def test_file_bucket_requires_directory(tmp_path):
    with pytest.raises(BlobError):
        open_bucket((tmp_path / "missing").as_uri())


def test_file_bucket_rejects_escaping_keys(tmp_path):
    bucket = open_bucket(tmp_path.as_uri())
    with pytest.raises(BlobError):
        bucket.write_all("../outside", b"x")


def test_delete_missing_raises():
    bucket = open_bucket("mem://")
    with pytest.raises(BlobError):
        bucket.delete("nothing")


def test_empty_key_raises():
    bucket = open_bucket("mem://")
    with pytest.raises(BlobError):
        bucket.write_all("", b"x")


def test_unsupported_scheme():
    with pytest.raises(BlobError):
        open_bucket("gopher://bucket")


def test_closed_bucket_raises():
    bucket = open_bucket("mem://")
    bucket.close()
    with pytest.raises(BlobError):
        bucket.read_all("key")


def test_cache_get_set_delete():
    cache = new_blob_cache("mem://")
    assert cache.get("E2E_TEST_BUCKET") is None
    cache.set("E2E_TEST_BUCKET", b"E2E_TEST_BUCKET")
    assert cache.get("E2E_TEST_BUCKET") == b"E2E_TEST_BUCKET"
    cache.delete("E2E_TEST_BUCKET")
    assert cache.get("E2E_TEST_BUCKET") is None


def test_lenient_cache_ignores_failures():
    bucket = open_bucket("mem://")
    bucket.close()
    cache = BlobCache(bucket=bucket, strict=False)
    cache.set("key", b"value")
    cache.delete("key")
    assert cache.get("key") is None


def test_strict_cache_raises():
    cache = new_blob_cache("mem://", strict=True)
    with pytest.raises(BlobError):
        cache.delete("missing")


def test_new_blob_cache_bad_url():
    with pytest.raises(BlobError):
        new_blob_cache("unknown://bucket")