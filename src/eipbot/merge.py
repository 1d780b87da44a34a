"""
Pre-merge rewriting and automatic merge of proposal pull requests.

``pre_merge_changes`` renumbers and normalizes a pull request's documents and,
if anything changed, pushes the result into the pull request.
``perform_merge_action`` does the same with final numbering, then enables
squash auto-merge and approves.
"""

from __future__ import annotations

import logging
import random
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .branch_redirect import redirect_pull_request
from .config import Settings
from .file_rewriter import FileSetRewriter
from .github_client import GitHost
from .models import FileChange, PullRequest, RepositoryRef
from .pr_lock import PullRequestLock
from .tree_reconciler import ParentPolicy, TreeReconciler

logger = logging.getLogger(__name__)

MERGE_METHOD = "SQUASH"
APPROVE_EVENT = "APPROVE"


def update_files(
    host: GitHost,
    settings: Settings,
    pull_request: PullRequest,
    old_files: List[FileChange],
    new_files: List[FileChange],
    parent_policy: Optional[ParentPolicy] = None,
) -> str:
    """Replace the pull request's content with ``new_files``; returns the new commit sha."""
    default_branch = host.get_default_branch(pull_request.base)
    reconciler = TreeReconciler(host, settings, parent_policy=parent_policy)

    lock = (
        PullRequestLock(pull_request.base, pull_request.number, Path(settings.lock_dir))
        if settings.serialize_invocations
        else nullcontext()
    )
    with lock:
        commit = reconciler.reconcile(pull_request, old_files, new_files, default_branch)
        redirect_pull_request(host, pull_request, commit.sha, default_branch, settings)
    return commit.sha


def pre_merge_changes(
    host: GitHost,
    settings: Settings,
    repository: RepositoryRef,
    pull_number: int,
    files: List[FileChange],
    is_merging: bool = False,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    parent_policy: Optional[ParentPolicy] = None,
) -> bool:
    """
    Number and normalize a pull request's documents, pushing any changes.

    Args:
        host: Platform client
        settings: Bot settings
        repository: Canonical repository the pull request targets
        pull_number: Pull request number
        files: The pull request's changed files with contents
        is_merging: Final merge pass; drafts receive real numbers
        now: Clock override for last-call deadlines
        rng: Random source for number allocation
        parent_policy: Override for choosing the new commit's parent

    Returns:
        True if the pull request content was rewritten
    """
    pull_request = host.get_pull_request(repository, pull_number)

    rewriter = FileSetRewriter(
        host, repository, settings, is_merging=is_merging, now=now, rng=rng
    )
    result = rewriter.rewrite(files)
    if not result.changed:
        logger.info(f"[MERGE] #{pull_number}: nothing to rewrite")
        return False

    logger.info(f"[MERGE] #{pull_number}: rewriting {len(result.files)} files")
    update_files(host, settings, pull_request, files, result.files, parent_policy=parent_policy)
    return True


def perform_merge_action(
    host: GitHost,
    settings: Settings,
    repository: RepositoryRef,
    pull_number: int,
    files: List[FileChange],
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> None:
    """Finalize numbering, enable squash auto-merge and approve the pull request."""
    title = host.get_pull_request(repository, pull_number).title

    pre_merge_changes(host, settings, repository, pull_number, files, is_merging=True, now=now, rng=rng)

    node_id = host.get_pull_request_node_id(repository, pull_number)
    host.enable_auto_merge(node_id, title, settings.merge_commit_body, MERGE_METHOD)
    host.create_review(repository, pull_number, APPROVE_EVENT, settings.approval_message)
    logger.info(f"[MERGE] #{pull_number}: auto-merge enabled and approved")
