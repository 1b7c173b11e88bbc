import base64
import subprocess
from unittest import mock

import pytest
import requests

from scorecard.update import (
    DepsSource,
    Repository,
    extract_bazel_deps,
    get_bazel_deps,
    get_go_deps,
    main,
    parse_go_mod_url,
    select_new_repos,
)


class FakeResponse:
    def __init__(self, document=None, text="", status=200):
        self._document = document
        self.text = text
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"status {self.status}")

    def json(self):
        return self._document


def contents_response(text):
    encoded = base64.b64encode(text.encode()).decode()
    return FakeResponse({"content": encoded, "encoding": "base64"})


def test_extract_bazel_deps_trims_git_suffix():
    content = (
        'urls = ["https://github.com/foo/bar/archive/v1.tar.gz"],\n'
        'remote = "https://github.com/abc/def.git"\n'
    )
    assert extract_bazel_deps(content) == [
        Repository("github.com/foo/bar"),
        Repository("github.com/abc/def"),
    ]


def test_extract_bazel_deps_without_references():
    assert extract_bazel_deps("nothing here") == []


def test_parse_go_mod_url():
    assert parse_go_mod_url("github.com/foo/bar/v2") == Repository("github.com/foo/bar")
    assert parse_go_mod_url("gopkg.in/yaml.v2") is None
    assert parse_go_mod_url("") is None


def test_select_new_repos_skips_existing_and_duplicates():
    candidates = [
        Repository("github.com/a/one"),
        Repository("github.com/b/two"),
        Repository("github.com/a/one"),
        Repository("github.com/c/three"),
    ]
    assert select_new_repos(["github.com/b/two"], candidates) == [
        Repository("github.com/a/one"),
        Repository("github.com/c/three"),
    ]


def test_get_bazel_deps_reads_file_content():
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return contents_response('"github.com/dep/one.git"')

    source = DepsSource("owner", "project", "deps.bzl")
    with mock.patch("requests.get", side_effect=fake_get):
        deps = get_bazel_deps(source)
    assert deps == [Repository("github.com/dep/one")]
    assert calls[0].endswith("/repos/owner/project/contents/deps.bzl")


def test_get_bazel_deps_raises_on_http_error():
    with mock.patch("requests.get", return_value=FakeResponse(status=404)):
        with pytest.raises(requests.HTTPError):
            get_bazel_deps(DepsSource("owner", "project", "deps.bzl"))


def _fake_run(stdout):
    def run(args, **kwargs):
        return subprocess.CompletedProcess(args, 0, stdout=stdout if args[0] == "go" else "", stderr="")
    return run


def test_get_go_deps_resolves_modules(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    stdout = (
        "github.com/owner/project\n"
        "github.com/foo/bar v1.2.0\n"
        "example.com/lib v0.1.0\n"
    )
    page = '<html><head><meta name="go-import" content="example.com/lib git https://github.com/example/lib"></head></html>'
    with mock.patch("subprocess.run", side_effect=_fake_run(stdout)), \
            mock.patch("requests.get", return_value=FakeResponse(text=page)):
        deps = get_go_deps(DepsSource("owner", "project"))
    assert deps == [
        Repository("github.com/owner/project"),
        Repository("github.com/foo/bar"),
        Repository("github.com/example/lib"),
    ]


def test_get_go_deps_returns_empty_when_clone_fails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    error = subprocess.CalledProcessError(128, ["git"], stderr="fatal")
    with mock.patch("subprocess.run", side_effect=error):
        assert get_go_deps(DepsSource("owner", "project")) == []


def test_main_appends_new_repos(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    projects = tmp_path / "projects.csv"
    original = "repo,metadata\ngithub.com/old/repo,\n"
    projects.write_text(original)

    def fake_get(url, **kwargs):
        if "api.github.com" in url:
            return contents_response('"github.com/dep/one"')
        raise requests.ConnectionError("offline")

    stdout = "github.com/new/mod v1.0.0\ngithub.com/old/repo v1.0.0\n"
    with mock.patch("requests.get", side_effect=fake_get), \
            mock.patch("subprocess.run", side_effect=_fake_run(stdout)):
        assert main([str(projects)]) == 0
    assert projects.read_text() == original + "github.com/dep/one,\ngithub.com/new/mod,\n"


def test_main_reports_missing_file(tmp_path):
    assert main([str(tmp_path / "absent.csv")]) == 1