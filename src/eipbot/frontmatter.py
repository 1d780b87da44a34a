"""Front-matter document parsing and serialization.

A document is ``---``, a YAML mapping, ``---``, then the body. Parsing drops
the blank lines between the closing delimiter and the body; ``assemble``
puts exactly one back, so parse/assemble is stable.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Tuple

import yaml

from .exceptions import FrontMatterError

DELIMITER = "---"

_DOCUMENT_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(?P<yaml>.*?)^(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)(?:[ \t]*\r?\n)*",
    re.DOTALL | re.MULTILINE,
)


class _NoAliasDumper(yaml.SafeDumper):
    """SafeDumper that never emits anchors or references."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def parse_document(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a document into its front-matter mapping and body text."""
    match = _DOCUMENT_RE.match(text)
    if not match:
        raise FrontMatterError("Document does not start with a front-matter block")
    try:
        attributes = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as e:
        raise FrontMatterError(f"Invalid front matter: {e}") from e
    if attributes is None:
        attributes = {}
    if not isinstance(attributes, dict):
        raise FrontMatterError("Front matter must be a mapping")
    return attributes, text[match.end():]


def dump_front_matter(attributes: Dict[str, Any]) -> str:
    """Serialize a mapping in insertion order, without line wrapping."""
    return yaml.dump(
        attributes,
        Dumper=_NoAliasDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
    ).strip()


def assemble_document(front_matter: str, body: str) -> str:
    return f"{DELIMITER}\n{front_matter}\n{DELIMITER}\n\n{body}"
