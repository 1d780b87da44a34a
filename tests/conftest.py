"""Pytest configuration and fixtures for eipbot tests"""

import hashlib
import itertools
import sys
import threading
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

# Ensure src directory is in Python path before any imports
src_path = Path(__file__).resolve().parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from eipbot.config import Settings  # noqa: E402
from eipbot.exceptions import GitHubAPIError, NotFoundError  # noqa: E402
from eipbot.models import (  # noqa: E402
    Commit,
    FileChange,
    PullRequest,
    RepositoryRef,
    TreeEntry,
)

BASE_REPO = RepositoryRef("ethereum", "EIPs")
FORK_REPO = RepositoryRef("alice", "EIPs")


def blob_url(repo: RepositoryRef, sha: str) -> str:
    return f"https://api.github.com/repos/{repo.owner}/{repo.name}/git/blobs/{sha}"


class FakeGitHost:
    """In-memory GitHost: per-repository object stores, refs and pull requests.

    ``fail_on`` maps a method name to an exception raised when it is called.
    Every call is appended to ``calls`` as ``(method, args)``.
    """

    def __init__(self, default_branch: str = "master"):
        self.default_branch = default_branch
        self.blobs: Dict[str, Dict[str, Tuple[str, str]]] = defaultdict(dict)
        self.trees: Dict[str, Dict[str, List[TreeEntry]]] = defaultdict(dict)
        self.commits: Dict[str, Dict[str, Commit]] = defaultdict(dict)
        self.refs: Dict[str, Dict[str, str]] = defaultdict(dict)
        self.directories: Dict[str, Dict[str, List[str]]] = defaultdict(dict)
        self.pull_requests: Dict[Tuple[str, int], PullRequest] = {}
        self.pull_request_files: Dict[Tuple[str, int], List[FileChange]] = {}
        self.base_history: List[str] = []
        self.reviews: List[Tuple[int, str, str]] = []
        self.auto_merges: List[Tuple[str, str, str, str]] = []
        self.calls: List[Tuple[str, tuple]] = []
        self.fail_on: Dict[str, Exception] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    @staticmethod
    def _key(repo: RepositoryRef) -> str:
        return repo.full_name.lower()

    def _record(self, method: str, *args) -> None:
        with self._lock:
            self.calls.append((method, args))
        if method in self.fail_on:
            raise self.fail_on[method]

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    # Seeding helpers

    def seed_blob(self, repo: RepositoryRef, content: str, encoding: str = "utf-8") -> str:
        sha = hashlib.sha1(f"{encoding}:{content}".encode()).hexdigest()
        with self._lock:
            self.blobs[self._key(repo)][sha] = (content, encoding)
        return sha

    def seed_branch(
        self,
        repo: RepositoryRef,
        branch: str,
        files: Dict[str, Tuple[RepositoryRef, str]],
        parents: Iterable[str] = ("base-commit",),
    ) -> str:
        """Create a branch whose tree holds ``path -> (storing repo, content)``."""
        entries = []
        directories = set()
        for path, (owner_repo, content) in files.items():
            sha = self.seed_blob(owner_repo, content)
            entries.append(
                TreeEntry(path=path, mode="100644", type="blob", sha=sha, url=blob_url(owner_repo, sha))
            )
            parts = path.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                directories.add("/".join(parts[:i]))
        for directory in sorted(directories):
            entries.append(
                TreeEntry(path=directory, mode="040000", type="tree", sha=f"tree-{directory}",
                          url=f"https://api.github.com/repos/{repo.owner}/{repo.name}/git/trees/x")
            )
        tree_sha = f"tree-{next(self._counter)}"
        self.trees[self._key(repo)][tree_sha] = entries
        commit_sha = f"commit-{next(self._counter)}"
        self.commits[self._key(repo)][commit_sha] = Commit(
            sha=commit_sha, tree_sha=tree_sha, parents=list(parents)
        )
        self.refs[self._key(repo)][f"heads/{branch}"] = commit_sha
        return commit_sha

    def seed_pull_request(self, pull_request: PullRequest, files: Optional[List[FileChange]] = None):
        self.pull_requests[(self._key(pull_request.base), pull_request.number)] = pull_request
        self.pull_request_files[(self._key(pull_request.base), pull_request.number)] = files or []

    def pull_request(self, repo: RepositoryRef, number: int) -> PullRequest:
        return self.pull_requests[(self._key(repo), number)]

    # Git object storage

    def get_ref(self, repo, ref):
        self._record("get_ref", repo, ref)
        try:
            return self.refs[self._key(repo)][ref]
        except KeyError:
            raise NotFoundError(f"ref {ref} not found")

    def create_ref(self, repo, ref, sha):
        self._record("create_ref", repo, ref, sha)
        if ref in self.refs[self._key(repo)]:
            raise GitHubAPIError("Reference already exists", status_code=422)
        self.refs[self._key(repo)][ref] = sha

    def delete_ref(self, repo, ref):
        self._record("delete_ref", repo, ref)
        if ref not in self.refs[self._key(repo)]:
            raise NotFoundError(f"ref {ref} not found")
        del self.refs[self._key(repo)][ref]

    def get_commit(self, repo, sha):
        self._record("get_commit", repo, sha)
        return self.commits[self._key(repo)][sha]

    def create_commit(self, repo, message, tree_sha, parents):
        self._record("create_commit", repo, message, tree_sha, tuple(parents))
        sha = f"commit-{next(self._counter)}"
        self.commits[self._key(repo)][sha] = Commit(sha=sha, tree_sha=tree_sha, parents=list(parents))
        return sha

    def create_blob(self, repo, content, encoding="utf-8"):
        self._record("create_blob", repo)
        return self.seed_blob(repo, content, encoding)

    def get_blob(self, repo, sha):
        self._record("get_blob", repo, sha)
        try:
            return self.blobs[self._key(repo)][sha]
        except KeyError:
            raise NotFoundError(f"blob {sha} not found")

    def get_tree(self, repo, sha, recursive=True):
        self._record("get_tree", repo, sha)
        return list(self.trees[self._key(repo)][sha])

    def create_tree(self, repo, entries):
        self._record("create_tree", repo)
        paths = [entry.path for entry in entries]
        if len(paths) != len(set(paths)):
            raise GitHubAPIError("duplicate tree paths", status_code=422)
        known = self.blobs[self._key(repo)]
        for entry in entries:
            if entry.sha not in known:
                raise GitHubAPIError(f"tree.sha {entry.sha} is not a valid blob", status_code=422)
        sha = f"tree-{next(self._counter)}"
        self.trees[self._key(repo)][sha] = list(entries)
        return sha

    # Repository contents

    def get_default_branch(self, repo):
        self._record("get_default_branch", repo)
        return self.default_branch

    def list_directory(self, repo, path):
        self._record("list_directory", repo, path)
        try:
            return list(self.directories[self._key(repo)][path])
        except KeyError:
            raise NotFoundError(f"{path} not found")

    # Pull requests

    def get_pull_request(self, repo, number):
        self._record("get_pull_request", repo, number)
        return self.pull_request(repo, number)

    def list_pull_request_files(self, repo, number):
        self._record("list_pull_request_files", repo, number)
        return list(self.pull_request_files[(self._key(repo), number)])

    def update_pull_request_base(self, repo, number, base):
        self._record("update_pull_request_base", repo, number, base)
        self.pull_request(repo, number).base_ref = base
        self.base_history.append(base)

    def update_pull_request_branch(self, repo, number):
        self._record("update_pull_request_branch", repo, number, self.pull_request(repo, number).base_ref)

    def create_review(self, repo, number, event, body):
        self._record("create_review", repo, number, event, body)
        self.reviews.append((number, event, body))

    # GraphQL

    def get_pull_request_node_id(self, repo, number):
        self._record("get_pull_request_node_id", repo, number)
        return f"PR_node_{number}"

    def enable_auto_merge(self, pull_request_id, commit_headline, commit_body, merge_method):
        self._record("enable_auto_merge", pull_request_id, commit_headline, commit_body, merge_method)
        self.auto_merges.append((pull_request_id, commit_headline, commit_body, merge_method))


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings isolated from .env files."""
    monkeypatch.setenv("EIPBOT_GITHUB_TOKEN", "test-token")
    return Settings(
        _env_file=None,
        lock_dir=str(tmp_path / "locks"),
        max_workers=4,
    )


@pytest.fixture
def host():
    return FakeGitHost()


def make_pull_request(number: int = 7, head: RepositoryRef = FORK_REPO, title: str = "Add EIP") -> PullRequest:
    return PullRequest(
        number=number,
        title=title,
        head=head,
        head_ref="my-proposal",
        base=BASE_REPO,
        base_ref="master",
        node_id=f"PR_node_{number}",
    )


def document(preamble: str, body: str = "## Abstract\n\nSomething.\n") -> str:
    return f"---\n{preamble.strip()}\n---\n\n{body}"
