"""
Pull request file-set rewriting.

Walks a pull request's changed files in order and:
- numbers each proposal document and moves it to ``<document_dir>/eip-<id>.md``
- normalizes its preamble
- moves asset directories (``<asset_dir>/eip-<id>/...``) along with their
  document, including assets that were seen before the document itself
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .config import Settings
from .eip_number import generate_eip_number, number_from_filename
from .exceptions import FrontMatterError
from .frontmatter import parse_document
from .github_client import GitHost
from .models import FileChange, FileStatus, RepositoryRef
from .preamble import normalize_front_matter, render_document

logger = logging.getLogger(__name__)


class ProvenanceMap:
    """Old document identifier -> new canonical document filename."""

    def __init__(self):
        self._renames: Dict[str, str] = {}

    def record(self, old_identifier: str, new_filename: str) -> None:
        self._renames[old_identifier] = new_filename

    def __contains__(self, old_identifier: str) -> bool:
        return old_identifier in self._renames

    def filename_for(self, old_identifier: str) -> str:
        return self._renames[old_identifier]

    def identifier_for(self, old_identifier: str) -> str:
        return document_identifier(self._renames[old_identifier])

    def as_dict(self) -> Dict[str, str]:
        return dict(self._renames)


@dataclass
class RewriteResult:
    files: List[FileChange]
    changed: bool
    provenance: Dict[str, str] = field(default_factory=dict)


_DOCUMENT_NAME_RE = re.compile(r"^eip-(?P<id>.+)\.md$")


def document_identifier(filename: str) -> str:
    """Identifier a document path refers to: ``eip-<id>.md`` or else its stem."""
    name = filename.rpartition("/")[2]
    match = _DOCUMENT_NAME_RE.match(name)
    if match:
        return match.group("id")
    return name[:-3] if name.endswith(".md") else name


class FileSetRewriter:
    """Applies numbering and preamble normalization to one pull request's files."""

    def __init__(
        self,
        host: GitHost,
        repository: RepositoryRef,
        settings: Settings,
        is_merging: bool = False,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
    ):
        self.host = host
        self.repository = repository
        self.settings = settings
        self.is_merging = is_merging
        self.now = now
        self.rng = rng
        self._floor = 0
        self._asset_re = re.compile(rf"^{re.escape(settings.asset_dir)}/eip-(?P<id>[^/]+)/")

    def is_document(self, filename: str) -> bool:
        directory, _, name = filename.rpartition("/")
        return directory == self.settings.document_dir and name.endswith(".md")

    def asset_identifier(self, filename: str) -> Optional[str]:
        match = self._asset_re.match(filename)
        return match.group("id") if match else None

    def document_filename(self, eip: str) -> str:
        return f"{self.settings.document_dir}/eip-{eip}.md"

    def rename_asset(self, filename: str, new_identifier: str) -> str:
        old_identifier = self.asset_identifier(filename)
        old_prefix = f"{self.settings.asset_dir}/eip-{old_identifier}/"
        return f"{self.settings.asset_dir}/eip-{new_identifier}/{filename[len(old_prefix):]}"

    def rewrite(self, files: List[FileChange]) -> RewriteResult:
        """
        Rewrite a pull request's file list.

        Args:
            files: Changed files as reported by the platform

        Returns:
            RewriteResult with the rewritten copies and whether anything changed
        """
        provenance = ProvenanceMap()
        new_files: List[FileChange] = []
        changed = False
        # Fresh numbers go above every number this pull request already uses
        numbers = [
            number_from_filename(file.filename, self.settings.document_dir)
            for file in files
            if file.status != FileStatus.REMOVED
        ]
        self._floor = max((int(number) for number in numbers if number is not None), default=0)

        for original in files:
            file = original.copy()
            if file.status == FileStatus.REMOVED:
                new_files.append(file)
                continue

            if self.is_document(file.filename):
                changed = self._rewrite_document(file, provenance, new_files) or changed
            else:
                old_identifier = self.asset_identifier(file.filename)
                if old_identifier is not None and old_identifier in provenance:
                    old_filename = file.filename
                    file.filename = self.rename_asset(
                        file.filename, provenance.identifier_for(old_identifier)
                    )
                    if file.filename != old_filename:
                        logger.info(f"[REWRITE] Asset {old_filename} -> {file.filename}")
                        changed = True

            new_files.append(file)

        return RewriteResult(files=new_files, changed=changed, provenance=provenance.as_dict())

    def _rewrite_document(
        self, file: FileChange, provenance: ProvenanceMap, processed: List[FileChange]
    ) -> bool:
        if file.encoding != "utf-8":
            raise FrontMatterError(f"{file.filename} is not a UTF-8 text document")
        front_matter, body = parse_document(file.contents or "")
        eip = generate_eip_number(
            self.host,
            self.repository,
            front_matter,
            file,
            self.settings,
            is_merging=self.is_merging,
            rng=self.rng,
            floor=self._floor,
        )
        if eip.isdigit():
            self._floor = max(self._floor, int(eip))

        changed = False
        old_filename = file.filename
        identifier_changed = str(front_matter.get("eip")) != eip
        file.filename = self.document_filename(eip)

        if old_filename != file.filename or identifier_changed:
            changed = True
            old_identifier = document_identifier(old_filename)
            provenance.record(old_identifier, file.filename)
            logger.info(f"[REWRITE] Document {old_filename} -> {file.filename}")

            # Assets listed before their document were passed through unrenamed
            if old_identifier != eip:
                for earlier in processed:
                    if earlier.status == FileStatus.REMOVED:
                        continue
                    if self.asset_identifier(earlier.filename) == old_identifier:
                        renamed = self.rename_asset(earlier.filename, eip)
                        logger.info(f"[REWRITE] Asset {earlier.filename} -> {renamed}")
                        earlier.filename = renamed

        normalized, preamble_changed = normalize_front_matter(front_matter, eip, now=self.now)
        file.contents = render_document(normalized, body)
        return changed or preamble_changed
