"""
GitHub access layer.

``GitHost`` is the interface the engine talks to: git object storage (blobs,
trees, commits, refs), pull request operations and the two GraphQL calls used
for auto-merge. ``GitHubClient`` implements it over REST/GraphQL with
``requests``; tests substitute an in-memory implementation.
"""

from __future__ import annotations

import base64
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests

from .config import Settings
from .exceptions import GitHubAPIError, NotFoundError
from .models import Commit, FileChange, FileStatus, PullRequest, RepositoryRef, TreeEntry

logger = logging.getLogger(__name__)

_PULL_REQUEST_ID_QUERY = """
query GetPullRequestId($owner: String!, $repo: String!, $pullRequestNumber: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pullRequestNumber) {
      id
    }
  }
}
"""

_ENABLE_AUTO_MERGE_MUTATION = """
mutation EnableAutoMerge(
  $pullRequestId: ID!,
  $commitHeadline: String,
  $commitBody: String,
  $mergeMethod: PullRequestMergeMethod!
) {
  enablePullRequestAutoMerge(input: {
    pullRequestId: $pullRequestId,
    commitHeadline: $commitHeadline,
    commitBody: $commitBody,
    mergeMethod: $mergeMethod
  }) {
    pullRequest {
      autoMergeRequest {
        enabledAt
        enabledBy {
          login
        }
      }
    }
  }
}
"""

# Platform file statuses that are not one of the four the rewriter knows
_STATUS_ALIASES = {
    "copied": FileStatus.ADDED,
    "changed": FileStatus.MODIFIED,
    "unchanged": FileStatus.MODIFIED,
}


def _parse_status(raw_status: str, filename: str) -> FileStatus:
    if raw_status in _STATUS_ALIASES:
        return _STATUS_ALIASES[raw_status]
    try:
        return FileStatus(raw_status)
    except ValueError:
        raise GitHubAPIError(f"Unknown file status {raw_status!r} for {filename}") from None


class GitHost(Protocol):
    """Operations the engine needs from the hosting platform.

    Every method raises ``GitHubAPIError`` on failure, ``NotFoundError`` for a
    missing object or ref.
    """

    # Git object storage

    def get_ref(self, repo: RepositoryRef, ref: str) -> str:
        """Return the commit sha a ref such as ``heads/main`` points at."""
        ...

    def create_ref(self, repo: RepositoryRef, ref: str, sha: str) -> None:
        ...

    def delete_ref(self, repo: RepositoryRef, ref: str) -> None:
        ...

    def get_commit(self, repo: RepositoryRef, sha: str) -> Commit:
        ...

    def create_commit(
        self, repo: RepositoryRef, message: str, tree_sha: str, parents: List[str]
    ) -> str:
        ...

    def create_blob(self, repo: RepositoryRef, content: str, encoding: str = "utf-8") -> str:
        ...

    def get_blob(self, repo: RepositoryRef, sha: str) -> Tuple[str, str]:
        """Return ``(content, encoding)`` exactly as stored."""
        ...

    def get_tree(self, repo: RepositoryRef, sha: str, recursive: bool = True) -> List[TreeEntry]:
        ...

    def create_tree(self, repo: RepositoryRef, entries: List[TreeEntry]) -> str:
        """Create a tree from scratch (no base tree) and return its sha."""
        ...

    # Repository contents

    def get_default_branch(self, repo: RepositoryRef) -> str:
        ...

    def list_directory(self, repo: RepositoryRef, path: str) -> List[str]:
        """Return the names of the entries directly under ``path``."""
        ...

    # Pull requests

    def get_pull_request(self, repo: RepositoryRef, number: int) -> PullRequest:
        ...

    def list_pull_request_files(self, repo: RepositoryRef, number: int) -> List[FileChange]:
        ...

    def update_pull_request_base(self, repo: RepositoryRef, number: int, base: str) -> None:
        ...

    def update_pull_request_branch(self, repo: RepositoryRef, number: int) -> None:
        """Merge the pull request's base into its head branch."""
        ...

    def create_review(self, repo: RepositoryRef, number: int, event: str, body: str) -> None:
        ...

    # GraphQL

    def get_pull_request_node_id(self, repo: RepositoryRef, number: int) -> str:
        ...

    def enable_auto_merge(
        self, pull_request_id: str, commit_headline: str, commit_body: str, merge_method: str
    ) -> None:
        ...


class GitHubClient:
    """``GitHost`` implementation backed by the GitHub REST and GraphQL APIs."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        """
        Args:
            settings: API endpoints, token and timeout
            session: Session shared by every thread. When omitted each thread
                gets its own session, since the tree engine calls the client
                from a worker pool.
        """
        self.settings = settings
        self.api_url = settings.api_url.rstrip("/")
        self._shared_session = self._configure(session) if session is not None else None
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._configure(requests.Session())
        return session

    def _configure(self, session: requests.Session) -> requests.Session:
        session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "eipbot",
            }
        )
        if self.settings.github_token:
            session.headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return session

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        if not url.startswith("http"):
            url = f"{self.api_url}{url}"
        kwargs.setdefault("timeout", self.settings.request_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise GitHubAPIError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            try:
                data = response.json()
            except ValueError:
                data = {"message": response.text}
            message = f"{method} {url} returned {response.status_code}: {data.get('message', '')}"
            if response.status_code == 404:
                raise NotFoundError(message, response_data=data)
            raise GitHubAPIError(message, status_code=response.status_code, response_data=data)

        logger.debug(f"[GITHUB] {method} {url} -> {response.status_code}")
        return response

    def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = self._request(method, url, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _repo_path(self, repo: RepositoryRef) -> str:
        return f"/repos/{repo.owner}/{repo.name}"

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        payload = self._json(
            "POST", self.settings.graphql_url, json={"query": query, "variables": variables}
        )
        if payload.get("errors"):
            messages = "; ".join(err.get("message", "") for err in payload["errors"])
            raise GitHubAPIError(f"GraphQL error: {messages}", response_data=payload)
        return payload["data"]

    # Git object storage

    def get_ref(self, repo: RepositoryRef, ref: str) -> str:
        data = self._json("GET", f"{self._repo_path(repo)}/git/ref/{ref}")
        return data["object"]["sha"]

    def create_ref(self, repo: RepositoryRef, ref: str, sha: str) -> None:
        self._json("POST", f"{self._repo_path(repo)}/git/refs", json={"ref": f"refs/{ref}", "sha": sha})

    def delete_ref(self, repo: RepositoryRef, ref: str) -> None:
        self._request("DELETE", f"{self._repo_path(repo)}/git/refs/{ref}")

    def get_commit(self, repo: RepositoryRef, sha: str) -> Commit:
        data = self._json("GET", f"{self._repo_path(repo)}/git/commits/{sha}")
        return Commit(
            sha=data["sha"],
            tree_sha=data["tree"]["sha"],
            parents=[parent["sha"] for parent in data.get("parents", [])],
        )

    def create_commit(
        self, repo: RepositoryRef, message: str, tree_sha: str, parents: List[str]
    ) -> str:
        data = self._json(
            "POST",
            f"{self._repo_path(repo)}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": parents},
        )
        return data["sha"]

    def create_blob(self, repo: RepositoryRef, content: str, encoding: str = "utf-8") -> str:
        data = self._json(
            "POST",
            f"{self._repo_path(repo)}/git/blobs",
            json={"content": content, "encoding": encoding},
        )
        return data["sha"]

    def get_blob(self, repo: RepositoryRef, sha: str) -> Tuple[str, str]:
        data = self._json("GET", f"{self._repo_path(repo)}/git/blobs/{sha}")
        return data["content"], data.get("encoding", "base64")

    def get_tree(self, repo: RepositoryRef, sha: str, recursive: bool = True) -> List[TreeEntry]:
        params = {"recursive": "true"} if recursive else None
        data = self._json("GET", f"{self._repo_path(repo)}/git/trees/{sha}", params=params)
        if data.get("truncated"):
            logger.warning(f"[GITHUB] Tree {sha} in {repo} was truncated by the API")
        return [
            TreeEntry(
                path=item["path"],
                mode=item["mode"],
                type=item["type"],
                sha=item["sha"],
                url=item.get("url"),
            )
            for item in data["tree"]
        ]

    def create_tree(self, repo: RepositoryRef, entries: List[TreeEntry]) -> str:
        data = self._json(
            "POST",
            f"{self._repo_path(repo)}/git/trees",
            json={"tree": [entry.to_api() for entry in entries]},
        )
        return data["sha"]

    # Repository contents

    def get_default_branch(self, repo: RepositoryRef) -> str:
        return self._json("GET", self._repo_path(repo))["default_branch"]

    def list_directory(self, repo: RepositoryRef, path: str) -> List[str]:
        data = self._json("GET", f"{self._repo_path(repo)}/contents/{path}")
        if not isinstance(data, list):
            raise GitHubAPIError(f"{path} in {repo} is not a directory", response_data=data)
        return [item["name"] for item in data]

    def _get_raw_contents(self, contents_url: str) -> Tuple[str, str]:
        """Fetch a file's bytes as ``(contents, encoding)``.

        Text comes back decoded; anything that is not valid UTF-8 (images and
        other binary assets) is kept as base64 so it can be re-stored as is.
        """
        response = self._request(
            "GET", contents_url, headers={"Accept": "application/vnd.github.raw+json"}
        )
        try:
            return response.content.decode("utf-8"), "utf-8"
        except UnicodeDecodeError:
            return base64.b64encode(response.content).decode("ascii"), "base64"

    # Pull requests

    def get_pull_request(self, repo: RepositoryRef, number: int) -> PullRequest:
        return PullRequest.from_api(self._json("GET", f"{self._repo_path(repo)}/pulls/{number}"))

    def list_pull_request_files(self, repo: RepositoryRef, number: int) -> List[FileChange]:
        files: List[FileChange] = []
        url: Optional[str] = f"{self._repo_path(repo)}/pulls/{number}/files"
        params: Optional[Dict[str, Any]] = {"per_page": 100}
        while url:
            response = self._request("GET", url, params=params)
            for item in response.json():
                raw_status = item["status"]
                status = _parse_status(raw_status, item["filename"])
                contents, encoding = None, "utf-8"
                if status is not FileStatus.REMOVED:
                    contents, encoding = self._get_raw_contents(item["contents_url"])
                files.append(
                    FileChange(
                        filename=item["filename"], status=status, contents=contents, encoding=encoding
                    )
                )
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None
        return files

    def update_pull_request_base(self, repo: RepositoryRef, number: int, base: str) -> None:
        self._json("PATCH", f"{self._repo_path(repo)}/pulls/{number}", json={"base": base})

    def update_pull_request_branch(self, repo: RepositoryRef, number: int) -> None:
        self._json("PUT", f"{self._repo_path(repo)}/pulls/{number}/update-branch")

    def create_review(self, repo: RepositoryRef, number: int, event: str, body: str) -> None:
        self._json(
            "POST",
            f"{self._repo_path(repo)}/pulls/{number}/reviews",
            json={"event": event, "body": body},
        )

    # GraphQL

    def get_pull_request_node_id(self, repo: RepositoryRef, number: int) -> str:
        data = self.graphql(
            _PULL_REQUEST_ID_QUERY,
            {"owner": repo.owner, "repo": repo.name, "pullRequestNumber": number},
        )
        return data["repository"]["pullRequest"]["id"]

    def enable_auto_merge(
        self, pull_request_id: str, commit_headline: str, commit_body: str, merge_method: str
    ) -> None:
        self.graphql(
            _ENABLE_AUTO_MERGE_MUTATION,
            {
                "pullRequestId": pull_request_id,
                "commitHeadline": commit_headline,
                "commitBody": commit_body,
                "mergeMethod": merge_method,
            },
        )
