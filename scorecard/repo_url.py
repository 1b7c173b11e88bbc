"""Parsing and validation of repository URLs."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

GITHUB_HOST = "github.com"


class RepoURLError(ValueError):
    """Base error for repository URL problems."""


class UnsupportedHostError(RepoURLError):
    """The repository's host is not supported."""

    def __init__(self, host: str) -> None:
        super().__init__(f"unsupported host: {host}")
        self.host = host


class InvalidGitHubURLError(RepoURLError):
    """The GitHub URL is not in the proper format."""

    def __init__(self, url: str) -> None:
        super().__init__(
            f"invalid GitHub repo URL: [{url}], pass the full repository URL"
        )
        self.url = url


class InvalidURLError(RepoURLError):
    """The full repository URL was not passed."""

    def __init__(self, url: str) -> None:
        super().__init__(f"invalid repo flag: [{url}], pass the full repository URL")
        self.url = url


@dataclass
class RepoURL:
    """A repository location split into host, owner and repository name."""

    host: str = ""
    owner: str = ""
    repo: str = ""

    def set(self, s: str) -> None:
        """Parse ``s`` and store its host, owner and repository name."""
        # Allow skipping the scheme for ease of use; default to https.
        if "://" not in s:
            s = "https://" + s
        try:
            parsed = urlsplit(s)
        except ValueError as exc:
            raise RepoURLError(f"error parsing repo URL: {exc}") from exc

        parts = parsed.path.strip("/").split("/", 1)
        if len(parts) != 2:
            raise InvalidURLError(s)

        host = parsed.netloc.rpartition("@")[2]
        self.host, self.owner, self.repo = host, parts[0], parts[1]

    def url(self) -> str:
        """Return ``host/owner/repo``."""
        return f"{self.host}/{self.owner}/{self.repo}"

    def non_url_string(self) -> str:
        """Return ``host-owner-repo``, usable as a file or directory name."""
        return f"{self.host}-{self.owner}-{self.repo}"

    def validate_github(self) -> None:
        """Raise unless this is a complete GitHub repository URL."""
        if self.host != GITHUB_HOST:
            raise UnsupportedHostError(self.host)
        if not self.owner.strip() or not self.repo.strip():
            raise InvalidGitHubURLError(self.url())

    def __str__(self) -> str:
        return self.url()


def parse_repo_url(s: str) -> RepoURL:
    """Parse ``s`` into a new :class:`RepoURL`."""
    repo = RepoURL()
    repo.set(s)
    return repo