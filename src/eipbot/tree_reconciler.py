"""
Tree reconciliation and commit synthesis.

Builds the full replacement tree for a pull request branch in the base
repository:

- every rewritten file becomes a fresh blob in the base repository
- every other file of the head branch is carried over, copying the blob into
  the base repository when it only exists in the fork
- files the pull request touched but no longer lists (removed, or renamed
  away by the rewriter) are dropped

The tree is created without a base tree so that dropped paths disappear.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Protocol, Set, TypeVar

from .config import Settings
from .github_client import GitHost
from .models import Commit, FileChange, PullRequest, RepositoryRef, TreeEntry
from .object_location import ObjectLocationResolver, resolve_from_object_url

logger = logging.getLogger(__name__)

FILE_MODE = "100644"

T = TypeVar("T")
R = TypeVar("R")


class ParentPolicy(Protocol):
    """Chooses the parent of the synthesized commit."""

    def select_parents(self, head_commit: Commit) -> Optional[List[str]]:
        """Return the parent list, or None if the head branch must first be
        brought up to date with the default branch (its own commit is then
        used as the parent)."""
        ...


class FirstParentOfMergeCommit:
    """Treat the first parent of a merge commit as the fork point.

    Holds when the head commit was produced by the platform's update-branch
    merge, which is the only merge commit this bot creates.
    """

    def select_parents(self, head_commit: Commit) -> Optional[List[str]]:
        if head_commit.is_merge:
            return [head_commit.parents[0]]
        return None


@dataclass
class ReconciledCommit:
    sha: str
    tree_sha: str
    parents: List[str]
    entries: List[TreeEntry] = field(default_factory=list)


class TreeReconciler:
    """Synthesizes the replacement commit for one pull request."""

    def __init__(
        self,
        host: GitHost,
        settings: Settings,
        parent_policy: Optional[ParentPolicy] = None,
        resolve_location: Optional[ObjectLocationResolver] = None,
    ):
        self.host = host
        self.settings = settings
        self.parent_policy = parent_policy or FirstParentOfMergeCommit()
        self.resolve_location = resolve_location or resolve_from_object_url

    def _map(self, func: Callable[[T], R], items: Iterable[T]) -> List[R]:
        # Results come back in input order, so staging stays deterministic
        items = list(items)
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            return list(executor.map(func, items))

    def stage_new_files(self, base: RepositoryRef, new_files: List[FileChange]) -> List[TreeEntry]:
        """Create a base-repository blob for every rewritten file with content."""
        with_content = [file for file in new_files if file.contents is not None]
        shas = self._map(
            lambda file: self.host.create_blob(base, file.contents, file.encoding), with_content
        )
        return [
            TreeEntry(path=file.filename, mode=FILE_MODE, type="blob", sha=sha)
            for file, sha in zip(with_content, shas)
        ]

    def resolve_entry(
        self,
        entry: TreeEntry,
        head: RepositoryRef,
        base: RepositoryRef,
        changed_paths: Set[str],
    ) -> TreeEntry:
        """
        Make a head-branch tree entry usable in a base-repository tree.

        Args:
            entry: File entry from the head branch's recursive tree
            head: Head repository of the pull request
            base: Base repository the new tree is created in
            changed_paths: Paths in the pull request's original diff

        Returns:
            The entry itself when its object is reachable from the base
            repository, otherwise an entry pointing at a copied blob
        """
        staged = TreeEntry(path=entry.path, mode=entry.mode, type=entry.type, sha=entry.sha)
        location = self.resolve_location(entry)
        if base.matches(location):
            return staged

        # Untouched files came from the base branch, so the base has them
        if entry.path not in changed_paths:
            return staged

        source = location or head
        content, encoding = self.host.get_blob(source, entry.sha)
        sha = self.host.create_blob(base, content, encoding)
        logger.debug(f"[TREE] Copied {entry.path} from {source} into {base} ({entry.sha} -> {sha})")
        return TreeEntry(path=entry.path, mode=entry.mode, type=entry.type, sha=sha)

    def carry_over_entries(
        self,
        head_tree: List[TreeEntry],
        head: RepositoryRef,
        base: RepositoryRef,
        old_files: List[FileChange],
        new_files: List[FileChange],
    ) -> List[TreeEntry]:
        """Stage every head-branch file the pull request does not rewrite or drop."""
        old_paths = {file.filename for file in old_files}
        skip = old_paths | {file.filename for file in new_files}
        candidates = [
            entry for entry in head_tree if entry.type != "tree" and entry.path not in skip
        ]
        return self._map(lambda entry: self.resolve_entry(entry, head, base, old_paths), candidates)

    def choose_parents(
        self, pull_request: PullRequest, head_commit: Commit, default_branch: str
    ) -> List[str]:
        parents = self.parent_policy.select_parents(head_commit)
        if parents is not None:
            return parents

        # Fold upstream changes into the branch before building on it
        logger.info(
            f"[TREE] Updating #{pull_request.number} from {default_branch} before committing"
        )
        self.host.update_pull_request_base(pull_request.base, pull_request.number, default_branch)
        self.host.update_pull_request_branch(pull_request.base, pull_request.number)
        return [head_commit.sha]

    def reconcile(
        self,
        pull_request: PullRequest,
        old_files: List[FileChange],
        new_files: List[FileChange],
        default_branch: str,
    ) -> ReconciledCommit:
        """
        Build and store the replacement tree and commit in the base repository.

        Args:
            pull_request: Pull request being rewritten
            old_files: File changes as submitted
            new_files: File changes after rewriting
            default_branch: Canonical branch of the base repository

        Returns:
            ReconciledCommit describing the new commit
        """
        head, base = pull_request.head, pull_request.base

        head_sha = self.host.get_ref(head, f"heads/{pull_request.head_ref}")
        head_commit = self.host.get_commit(head, head_sha)
        head_tree = self.host.get_tree(head, head_commit.tree_sha, recursive=True)

        entries = self.stage_new_files(base, new_files)
        entries.extend(self.carry_over_entries(head_tree, head, base, old_files, new_files))

        parents = self.choose_parents(pull_request, head_commit, default_branch)

        tree_sha = self.host.create_tree(base, entries)
        commit_sha = self.host.create_commit(base, self.settings.commit_message, tree_sha, parents)
        logger.info(
            f"[TREE] Created commit {commit_sha} for #{pull_request.number} "
            f"({len(entries)} entries, parents={parents})"
        )
        return ReconciledCommit(sha=commit_sha, tree_sha=tree_sha, parents=parents, entries=entries)
