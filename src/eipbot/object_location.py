"""Resolve which repository physically stores a git object.

Tree entries read from the API carry a self URL such as
``https://api.github.com/repos/<owner>/<repo>/git/blobs/<sha>``; for a fork
that URL may point at either the fork or its parent network.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from .models import RepositoryRef, TreeEntry

ObjectLocationResolver = Callable[[TreeEntry], Optional[RepositoryRef]]

_REPOS_URL_RE = re.compile(r"/repos/(?P<owner>[\w.-]+)/(?P<name>[\w.-]+)/")


def location_from_url(url: Optional[str]) -> Optional[RepositoryRef]:
    if not url:
        return None
    match = _REPOS_URL_RE.search(url)
    if not match:
        return None
    return RepositoryRef(owner=match.group("owner"), name=match.group("name"))


def resolve_from_object_url(entry: TreeEntry) -> Optional[RepositoryRef]:
    """Default resolver: parse the entry's API URL."""
    return location_from_url(entry.url)
