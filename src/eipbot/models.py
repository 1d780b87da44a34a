"""Data types passed between the rewriter, the tree engine and the platform client.

All of these live for one pull request invocation only.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


class FileStatus(str, Enum):
    """How a pull request touches a file."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


@dataclass
class FileChange:
    """One file as touched by a pull request."""

    filename: str
    status: FileStatus
    contents: Optional[str] = None
    # "utf-8" for text, "base64" for content that is not valid UTF-8
    encoding: str = "utf-8"

    def copy(self) -> "FileChange":
        return replace(self)


@dataclass(frozen=True)
class RepositoryRef:
    """An ``owner/name`` repository location."""

    owner: str
    name: str

    @classmethod
    def parse(cls, full_name: str) -> "RepositoryRef":
        owner, sep, name = full_name.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Expected 'owner/name', got {full_name!r}")
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def matches(self, other: Optional["RepositoryRef"]) -> bool:
        """GitHub owner and repository names are case-insensitive."""
        return other is not None and self.full_name.lower() == other.full_name.lower()

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class TreeEntry:
    """One addressable object in a git tree.

    ``url`` is only populated on entries read back from the platform; it is
    never sent when creating a tree.
    """

    path: str
    mode: str
    type: str
    sha: str
    url: Optional[str] = None

    def to_api(self) -> Dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


@dataclass
class Commit:
    sha: str
    tree_sha: str
    parents: list[str] = field(default_factory=list)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass
class PullRequest:
    """The subset of pull request metadata the engine needs."""

    number: int
    title: str
    head: RepositoryRef
    head_ref: str
    base: RepositoryRef
    base_ref: str
    node_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PullRequest":
        head = data["head"]
        base = data["base"]
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            head=RepositoryRef(head["repo"]["owner"]["login"], head["repo"]["name"]),
            head_ref=head["ref"],
            base=RepositoryRef(base["repo"]["owner"]["login"], base["repo"]["name"]),
            base_ref=base["ref"],
            node_id=data.get("node_id"),
        )
