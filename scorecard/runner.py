"""Run a set of checks against one repository."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import date

from .repo_result import CheckResult, RepoResult
from .repo_url import RepoURL

CheckFn = Callable[[RepoURL], CheckResult]


def run_scorecards(repo: RepoURL, checks_to_run: Mapping[str, CheckFn]) -> RepoResult:
    """Run every check concurrently and collect the results.

    Results appear in the order the checks finish. Each result is named after
    the key its check was given under. An exception raised by a check is
    raised from here.
    """
    result = RepoResult(repo=repo.url(), date=date.today().strftime("%Y-%m-%d"))
    if not checks_to_run:
        return result
    with ThreadPoolExecutor(max_workers=len(checks_to_run)) as pool:
        futures = {
            pool.submit(check_fn, repo): check_name
            for check_name, check_fn in checks_to_run.items()
        }
        for future in as_completed(futures):
            result.checks.append(replace(future.result(), name=futures[future]))
    return result