"""Keep a copy of a git repository, and an archive of its files, in a bucket."""

from __future__ import annotations

import os
import shutil
import subprocess
import tarfile
import tempfile
import time
from collections.abc import Callable
from typing import Protocol

from .blobstore import BlobCache, BlobError, new_blob_cache
from .repo_url import RepoURL, RepoURLError
from .storage import StoragePath

LogFunc = Callable[[str], None]


class GitCacheError(Exception):
    """Updating the git cache failed."""


class _GitClient(Protocol):
    def clone(self, url: str, dest: str) -> None: ...

    def fetch(self, repo_dir: str) -> bool: ...

    def head_commit_time(self, repo_dir: str) -> int: ...


class _GitCli:
    """Runs the ``git`` command."""

    def _run(self, *args: str, cwd: str | None = None) -> str:
        try:
            completed = subprocess.run(
                ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
            )
        except FileNotFoundError as exc:
            raise GitCacheError("git executable not found") from exc
        except subprocess.CalledProcessError as exc:
            raise GitCacheError(f"git {args[0]} failed: {exc.stderr.strip()}") from exc
        return completed.stdout

    def clone(self, url: str, dest: str) -> None:
        self._run("clone", "--quiet", url, dest)

    def _remote_refs(self, repo_dir: str) -> str:
        return self._run(
            "for-each-ref", "--format=%(refname) %(objectname)", "refs/remotes/origin",
            cwd=repo_dir,
        )

    def fetch(self, repo_dir: str) -> bool:
        """Fetch from origin; return whether any remote ref changed."""
        before = self._remote_refs(repo_dir)
        self._run("fetch", "--quiet", "origin", cwd=repo_dir)
        return self._remote_refs(repo_dir) != before

    def head_commit_time(self, repo_dir: str) -> int:
        output = self._run("log", "-1", "--format=%at", "HEAD", cwd=repo_dir).strip()
        try:
            return int(output)
        except ValueError as exc:
            raise GitCacheError(f"unexpected commit time {output!r}") from exc


def _encode_time(seconds: float) -> bytes:
    return format(int(seconds), "64b").encode("ascii")


def archive_folder(folder: str | os.PathLike[str], archive_path: str | os.PathLike[str]) -> bytes:
    """Write ``folder`` as a gzipped tar to ``archive_path`` and return its bytes.

    The folder is the archive's single top-level entry. The archive file
    itself is left out when it lies inside the folder.
    """
    folder_abs = os.path.abspath(os.fspath(folder))
    archive_abs = os.path.abspath(os.fspath(archive_path))
    root_name = os.path.basename(folder_abs)
    excluded = None
    if archive_abs.startswith(folder_abs + os.sep):
        relative = os.path.relpath(archive_abs, folder_abs).replace(os.sep, "/")
        excluded = f"{root_name}/{relative}"

    def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
        return None if info.name == excluded else info

    try:
        with tarfile.open(archive_abs, "w:gz") as tar:
            tar.add(folder_abs, arcname=root_name, filter=_filter)
        with open(archive_abs, "rb") as handle:
            return handle.read()
    except (OSError, tarfile.TarError) as exc:
        raise GitCacheError(
            f"unable to archive the folder {folder_abs} to the archive path {archive_abs}: {exc}"
        ) from exc


def _unarchive(archive_file: str, dest: str) -> None:
    dest_abs = os.path.realpath(dest)
    with tarfile.open(archive_file, "r:gz") as tar:
        for member in tar.getmembers():
            target = os.path.realpath(os.path.join(dest_abs, member.name))
            if os.path.commonpath([dest_abs, target]) != dest_abs:
                raise GitCacheError(f"archive entry {member.name} escapes {dest}")
        if hasattr(tarfile, "fully_trusted_filter"):
            tar.extractall(dest_abs, filter="fully_trusted")
        else:
            tar.extractall(dest_abs)


class CacheService:
    """Updates the git cache of repositories in blob storage."""

    def __init__(
        self,
        blob_url: str,
        temp_dir: str,
        logf: LogFunc | None,
        git: _GitClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not blob_url:
            raise GitCacheError("BLOB_URL env cannot be empty")
        if not temp_dir:
            raise GitCacheError("TEMP_DIR  env cannot be empty")
        if logf is None:
            raise GitCacheError("log function cannot be None")
        self.blob_url = blob_url
        self.temp_dir = os.fspath(temp_dir)
        self.logf = logf
        self.git = git if git is not None else _GitCli()
        self.clock = clock

    def _put(self, bucket: BlobCache, key: str, data: bytes) -> None:
        try:
            bucket.set(key, data)
        except BlobError as exc:
            raise GitCacheError(f"unable to set blob content for {key}: {exc}") from exc

    def _fetch(self, storage: StoragePath, data: bytes) -> bool:
        """Restore the cached repository and fetch; return whether it was up to date."""
        archive_file = os.path.join(self.temp_dir, "gitfolder.tar.gz")
        try:
            with open(archive_file, "wb") as handle:
                handle.write(data)
            os.chmod(archive_file, 0o600)
            with tempfile.TemporaryDirectory(dir=self.temp_dir) as staging:
                _unarchive(archive_file, staging)
                roots = os.listdir(staging)
                root = os.path.join(staging, roots[0]) if len(roots) == 1 else ""
                if not os.path.isdir(root):
                    raise GitCacheError("cached git archive has an unexpected layout")
                for name in os.listdir(root):
                    shutil.move(os.path.join(root, name), os.path.join(storage.git_dir, name))
        except (OSError, tarfile.TarError) as exc:
            raise GitCacheError(
                f"unable to unarchive targz file into {storage.git_dir}: {exc}"
            ) from exc
        finally:
            try:
                os.remove(archive_file)
            except OSError:
                pass
        return not self.git.fetch(storage.git_dir)

    def update_cache(self, url: str) -> None:
        """Clone or fetch the repository at ``url`` and store it in the bucket."""
        try:
            bucket = new_blob_cache(self.blob_url, strict=True)
        except BlobError as exc:
            raise GitCacheError(f"unable to open the bucket {self.blob_url}: {exc}") from exc

        repo = RepoURL()
        try:
            repo.set(url)
        except RepoURLError as exc:
            raise GitCacheError(f"unable parse the URL {url}: {exc}") from exc

        try:
            storage = StoragePath.create(repo, self.temp_dir)
        except OSError as exc:
            raise GitCacheError(f"unable get storage: {exc}") from exc

        with storage:
            cached = bucket.get(storage.blob_git_folder_path)
            if cached is not None:
                self.logf(f"bucket {self.blob_url} already has git folder")
                up_to_date = self._fetch(storage, cached)
            else:
                self.logf(f"bucket {self.blob_url} does not have a git folder")
                self.git.clone(f"http://{repo.host}/{repo.owner}/{repo.repo}", storage.git_dir)
                up_to_date = False

            if up_to_date:
                self.logf(f"bucket {self.blob_url} git folder is already up to date.")
                self._put(bucket, storage.blob_last_sync_path, _encode_time(self.clock()))
                self.logf(f"Finished processing {repo}")
                return

            commit_time = self.git.head_commit_time(storage.git_dir)

            data = archive_folder(storage.git_dir, storage.git_tar_file)
            self._put(bucket, storage.blob_git_folder_path, data)

            # The plain archive holds the working tree only.
            try:
                shutil.rmtree(os.path.join(storage.git_dir, ".git"), ignore_errors=False)
                os.remove(storage.git_tar_file)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise GitCacheError(f"unable to remove .git folder {storage.git_dir}: {exc}") from exc

            data = archive_folder(storage.git_dir, storage.blob_archive_file)
            self._put(bucket, storage.blob_archive_path, data)

            self.logf(f"Storing the last commit {commit_time}")
            self._put(bucket, storage.blob_last_commit_path, _encode_time(commit_time))
            self._put(bucket, storage.blob_last_sync_path, _encode_time(self.clock()))
            self.logf(f"Finished processing for the first time {repo}")