"""Check a projects CSV file for duplicate repositories."""

from __future__ import annotations

import argparse
import csv
import sys
from collections.abc import Iterable


class DuplicateRepoError(ValueError):
    """A repository appears more than once in the projects list."""

    def __init__(self, repo: str) -> None:
        super().__init__(f"Item already in the list {repo}")
        self.repo = repo


def validate_projects(reader: Iterable[str]) -> list[str]:
    """Return the repositories listed in CSV text; raise on duplicates."""
    rows = csv.reader(reader)
    header = next((row for row in rows if row), None)
    if header is None:
        raise ValueError("error in CSV header: no header row")
    seen: set[str] = set()
    repos: list[str] = []
    for row in rows:
        if not row:
            continue
        if len(row) != len(header):
            raise csv.Error(f"record on line {rows.line_num}: wrong number of fields")
        repo = dict(zip(header, row)).get("repo", "")
        if repo in seen:
            raise DuplicateRepoError(repo)
        seen.add(repo)
        repos.append(repo)
    return repos


def main(argv: list[str] | None = None) -> int:
    """Validate the projects file named on the command line."""
    parser = argparse.ArgumentParser(
        description="Check a projects CSV file for duplicate repositories."
    )
    parser.add_argument("projects", help="path to the projects CSV file")
    args = parser.parse_args(argv)
    try:
        with open(args.projects, newline="", encoding="utf-8") as handle:
            validate_projects(handle)
    except (OSError, ValueError, csv.Error) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())