"""Add the dependencies of selected projects to the projects CSV file."""

from __future__ import annotations

import argparse
import base64
import csv
import logging
import os
import re
import subprocess
import sys
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from html.parser import HTMLParser

import requests

from .repo_url import RepoURL, RepoURLError

logger = logging.getLogger(__name__)

_GITHUB_API = "https://api.github.com"
_TIMEOUT = 30
# Matches every github.com/{owner}/{repo} reference.
_GITHUB_REFERENCE = re.compile(r'github.com/[^/]*/[^/"]*')


@dataclass(frozen=True)
class Repository:
    """One row of the projects file."""

    repo: str
    metadata: str = ""


@dataclass(frozen=True)
class DepsSource:
    """A project whose dependencies are to be listed.

    ``file`` names a Bazel file holding the dependencies; without it the
    project is treated as a Go module.
    """

    owner: str
    repo: str
    file: str = ""
    vendor: bool = False


BAZEL_SOURCES = (
    DepsSource("envoyproxy", "envoy", "bazel/repository_locations.bzl"),
    DepsSource("envoyproxy", "envoy", "api/bazel/repository_locations.bzl"),
    DepsSource("grpc", "grpc", "bazel/grpc_deps.bzl"),
)

GO_SOURCES = (
    DepsSource("ossf", "scorecard"),
    DepsSource("sigstore", "cosign"),
    DepsSource("kubernetes", "kubernetes", vendor=True),
)


def extract_bazel_deps(content: str) -> list[Repository]:
    """Return every GitHub repository referenced in ``content``."""
    return [
        Repository(match.removesuffix(".git"))
        for match in _GITHUB_REFERENCE.findall(content)
    ]


def _file_content(document: dict) -> str:
    encoding = document.get("encoding") or ""
    content = document.get("content") or ""
    if encoding == "base64":
        return base64.b64decode(content).decode("utf-8")
    if encoding == "":
        return content
    raise ValueError(f"unsupported content encoding: {encoding}")


def get_bazel_deps(source: DepsSource) -> list[Repository]:
    """Fetch the Bazel file of ``source`` from GitHub and list its dependencies."""
    url = f"{_GITHUB_API}/repos/{source.owner}/{source.repo}/contents/{source.file}"
    response = requests.get(url, timeout=_TIMEOUT)
    response.raise_for_status()
    document = response.json()
    if not isinstance(document, dict):
        raise ValueError(f"{source.file} is not a file")
    return extract_bazel_deps(_file_content(document))


def parse_go_mod_url(dependency: str) -> Repository | None:
    """Return the repository of a module path, or None if it has none."""
    parts = dependency.split("/")
    if len(parts) < 3:
        return None
    repo_url = RepoURL()
    try:
        repo_url.set("/".join(parts[:3]))
    except RepoURLError:
        return None
    return Repository(repo_url.url())


class _GoImportParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__()
        self.imports: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag != "meta":
            return
        values = dict(attrs)
        if values.get("name") != "go-import":
            return
        fields = (values.get("content") or "").split()
        if len(fields) == 3:
            self.imports.append((fields[0], fields[1], fields[2]))


def _vanity_repo_root(import_path: str) -> str:
    """Return the repository behind a vanity import path, or "" if unknown."""
    try:
        response = requests.get(f"https://{import_path}?go-get=1", timeout=_TIMEOUT)
        response.raise_for_status()
        parser = _GoImportParser()
        parser.feed(response.text)
    except (requests.RequestException, ValueError) as exc:
        logger.warning("unable to parse the vanity URL %s: %s", import_path, exc)
        return ""
    for prefix, _vcs, repo in parser.imports:
        if import_path == prefix or import_path.startswith(prefix + "/"):
            return repo
    logger.warning("unable to parse the vanity URL %s: no go-import meta tag", import_path)
    return ""


def get_go_deps(source: DepsSource) -> list[Repository]:
    """Clone ``source`` and list the repositories of its Go module dependencies.

    Failures are logged and give an empty list.
    """
    if source.vendor:
        command = ["go", "list", "-e", "mod=vendor", "all"]
    else:
        command = ["go", "list", "-m", "all"]
    try:
        with tempfile.TemporaryDirectory(dir=os.getcwd()) as git_dir:
            subprocess.run(
                ["git", "clone", "--quiet",
                 f"http://github.com/{source.owner}/{source.repo}", git_dir],
                check=True, capture_output=True, text=True,
            )
            completed = subprocess.run(
                command, cwd=git_dir, check=True, capture_output=True, text=True
            )
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("unable to list Go dependencies of %s/%s: %s",
                       source.owner, source.repo, exc)
        return []

    # Lines look like "gopkg.in/tomb.v1 v1.0.0-20141024135613-dd632973f1e7".
    repos: list[Repository] = []
    for line in completed.stdout.split("\n"):
        dependency = line.split(" ")[0]
        if not dependency:
            continue
        if not dependency.startswith("github.com"):
            dependency = _vanity_repo_root(dependency).split("://", 1)[-1]
        repo = parse_go_mod_url(dependency)
        if repo is not None:
            repos.append(repo)
    return repos


def select_new_repos(
    existing: Iterable[str], candidates: Iterable[Repository]
) -> list[Repository]:
    """Return the candidates not in ``existing``, each repository once."""
    seen = set(existing)
    new: list[Repository] = []
    for candidate in candidates:
        if candidate.repo not in seen:
            seen.add(candidate.repo)
            new.append(candidate)
    return new


def _candidates() -> Iterable[Repository]:
    for source in BAZEL_SOURCES:
        yield from get_bazel_deps(source)
    for source in GO_SOURCES:
        yield from get_go_deps(source)


def main(argv: list[str] | None = None) -> int:
    """Append the dependencies of the selected projects to the projects file."""
    parser = argparse.ArgumentParser(
        description="Add project dependencies to the projects CSV file."
    )
    parser.add_argument("projects", help="path to the projects CSV file")
    args = parser.parse_args(argv)
    try:
        with open(args.projects, "r+", newline="", encoding="utf-8") as handle:
            existing = [row.get("repo") or "" for row in csv.DictReader(handle)]
            new_repos = select_new_repos(existing, _candidates())
            handle.seek(0, os.SEEK_END)
            writer = csv.writer(handle, lineterminator="\n")
            writer.writerows((repo.repo, repo.metadata) for repo in new_repos)
    except (OSError, ValueError, csv.Error, requests.RequestException) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())