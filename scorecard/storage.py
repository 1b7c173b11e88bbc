"""Local and blob paths used while caching one git repository."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass

from .repo_url import RepoURL


def _remove_all(path: str) -> None:
    if not path:
        return
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path, ignore_errors=True)
        return
    try:
        os.remove(path)
    except OSError:
        pass


@dataclass
class StoragePath:
    """Where a repository is cloned, archived and stored in the bucket."""

    bucket_path: str
    git_dir: str
    git_tar_file: str
    blob_archive_dir: str
    blob_archive_file: str
    blob_last_commit_path: str
    blob_last_sync_path: str
    blob_git_folder_path: str
    blob_archive_path: str
    git_tar_dir: str = ""

    @classmethod
    def create(cls, repo: RepoURL, temp_dir: str | os.PathLike[str]) -> StoragePath:
        """Compute the paths for ``repo`` and create its working directories."""
        bucket_path = f"gitcache/{repo.host}/{repo.owner}/{repo.repo}"
        git_dir = os.path.join(os.fspath(temp_dir), repo.non_url_string())
        os.mkdir(git_dir, 0o755)
        blob_archive_dir = git_dir + "tar"
        try:
            os.mkdir(blob_archive_dir, 0o755)
        except OSError:
            _remove_all(git_dir)
            raise
        return cls(
            bucket_path=bucket_path,
            git_dir=git_dir,
            git_tar_file=os.path.join(git_dir, "gitfolder.tar.gz"),
            blob_archive_dir=blob_archive_dir,
            blob_archive_file=os.path.join(blob_archive_dir, f"{repo.repo}.tar.gz"),
            blob_last_commit_path=f"{bucket_path}/lastcommit",
            blob_last_sync_path=f"{bucket_path}/lastsync",
            blob_git_folder_path=f"{bucket_path}/gitfolder",
            blob_archive_path=f"{bucket_path}/tar",
        )

    def cleanup(self) -> None:
        """Remove the directories and files that were created."""
        for path in (self.git_dir, self.git_tar_dir, self.git_tar_file, self.blob_archive_dir):
            _remove_all(path)

    def __enter__(self) -> StoragePath:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()