"""
Publish a synthesized commit as a pull request's content.

GitHub refuses ref updates on a pull request's head branch from this bot, so
the commit is pushed in through the pull request itself:

1. create ``<prefix>/<number>`` in the base repository at the new commit
2. retarget the pull request at that branch
3. ask GitHub to update the pull request branch from its (temporary) base
4. retarget back to the default branch and delete the temporary branch

Step 4 always runs. Concurrent invocations on the same pull request share the
branch name; ``pr_lock.PullRequestLock`` serializes them on one host.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .config import Settings
from .exceptions import NotFoundError
from .github_client import GitHost
from .models import PullRequest, RepositoryRef

logger = logging.getLogger(__name__)


def temp_branch_name(settings: Settings, pull_number: int) -> str:
    return f"{settings.temp_branch_prefix}/{pull_number}"


def _delete_stale_branch(host: GitHost, repository: RepositoryRef, ref: str) -> None:
    try:
        host.get_ref(repository, ref)
        host.delete_ref(repository, ref)
        logger.warning(f"[REDIRECT] Deleted leftover {ref} in {repository}")
    except NotFoundError:
        pass


@contextmanager
def temporary_base_branch(
    host: GitHost,
    repository: RepositoryRef,
    pull_number: int,
    commit_sha: str,
    default_branch: str,
    settings: Settings,
) -> Iterator[str]:
    """Create the temporary branch; on exit restore the base and delete it."""
    branch = temp_branch_name(settings, pull_number)
    ref = f"heads/{branch}"

    _delete_stale_branch(host, repository, ref)
    host.create_ref(repository, ref, commit_sha)
    logger.info(f"[REDIRECT] Created {branch} at {commit_sha}")
    try:
        yield branch
    finally:
        try:
            host.update_pull_request_base(repository, pull_number, default_branch)
        finally:
            host.delete_ref(repository, ref)
            logger.info(f"[REDIRECT] #{pull_number} back on {default_branch}, {branch} deleted")


def redirect_pull_request(
    host: GitHost,
    pull_request: PullRequest,
    commit_sha: str,
    default_branch: str,
    settings: Settings,
) -> None:
    """Make ``commit_sha`` the content of the pull request."""
    repository = pull_request.base
    with temporary_base_branch(
        host, repository, pull_request.number, commit_sha, default_branch, settings
    ) as branch:
        host.update_pull_request_base(repository, pull_request.number, branch)
        host.update_pull_request_branch(repository, pull_request.number)
