"""EIP number allocation.

A proposal is identified either by a draft mnemonic (new drafts, before the
final merge pass) or by a number. Numbers already in the filename are kept;
new numbers are picked just above the highest one in the repository.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Any, Dict, Optional

from .config import Settings
from .github_client import GitHost
from .models import FileChange, FileStatus, RepositoryRef

logger = logging.getLogger(__name__)

DRAFT_PREFIX = "draft_"
MAX_MNEMONIC_LENGTH = 30

# New numbers land 1-3 above the current maximum so that two pull requests
# allocated at the same time rarely collide and nobody can reserve a number.
MIN_OFFSET = 1
MAX_OFFSET = 3

_NUMBERED_NAME_RE = re.compile(r"^eip-(\d+)\.md$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def draft_mnemonic(title: str) -> str:
    """Derive the ``draft_...`` identifier for a title.

    >>> draft_mnemonic("My Cool Proposal!!")
    'draft_my_cool_proposal'
    """
    slug = _NON_ALNUM_RE.sub("_", str(title).lower()).strip("_")
    return f"{DRAFT_PREFIX}{slug[:MAX_MNEMONIC_LENGTH]}"


def number_from_filename(filename: str, document_dir: str) -> Optional[str]:
    """Return the number encoded in ``<document_dir>/eip-<n>.md``, if any."""
    directory, _, name = filename.rpartition("/")
    if directory != document_dir:
        return None
    match = _NUMBERED_NAME_RE.match(name)
    return match.group(1) if match else None


def _scan_number(name: str) -> int:
    match = _NUMBERED_NAME_RE.match(name)
    return int(match.group(1)) if match else 0


def highest_eip_number(host: GitHost, repository: RepositoryRef, document_dir: str) -> int:
    names = [name for name in host.list_directory(repository, document_dir) if name.startswith("eip-")]
    return max((_scan_number(name) for name in names), default=0)


def generate_eip_number(
    host: GitHost,
    repository: RepositoryRef,
    front_matter: Dict[str, Any],
    file: FileChange,
    settings: Settings,
    is_merging: bool = False,
    rng: Optional[random.Random] = None,
    floor: int = 0,
) -> str:
    """
    Decide the identifier for one document.

    Args:
        host: Platform client, only used when a fresh number is needed
        repository: Canonical repository holding the document directory
        front_matter: Parsed front matter of the document
        file: The pull request's change record for the document
        settings: Repository layout settings
        is_merging: True on the final merge pass, where drafts get numbers too
        rng: Random source for the collision-avoidance offset
        floor: Numbers up to this one are taken even if not yet in the
            repository (other documents of the same pull request)

    Returns:
        The identifier as a string
    """
    if not is_merging and front_matter.get("status") == "Draft" and file.status == FileStatus.ADDED:
        return draft_mnemonic(front_matter.get("title", ""))

    existing = number_from_filename(file.filename, settings.document_dir)
    if existing is not None:
        return existing

    highest = max(highest_eip_number(host, repository, settings.document_dir), floor)
    number = highest + (rng or random).randint(MIN_OFFSET, MAX_OFFSET)
    logger.info(f"[ALLOC] Assigned EIP-{number} to {file.filename} (highest existing: {highest})")
    return str(number)
