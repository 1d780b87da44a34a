"""Preamble (front matter) normalization.

Normalizing fills in the fields the bot owns (number, default status, last
call deadline) and renders the preamble in the order and formatting EIP-1
mandates.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from .frontmatter import assemble_document, dump_front_matter

logger = logging.getLogger(__name__)

PREAMBLE_ORDER = [
    "eip",
    "title",
    "description",
    "author",
    "discussions-to",
    "status",
    "last-call-deadline",
    "type",
    "category",
    "created",
    "requires",
    "withdrawal-reason",
]

DATE_FIELDS = ("created", "last-call-deadline")
DEFAULT_STATUS = "Draft"
LAST_CALL_STATUS = "Last Call"
LAST_CALL_WINDOW = timedelta(days=14)

_MIDNIGHT_SUFFIX_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})[T ]00:00:00(?:\.0+)?(?:Z|[+-]00:?00)?"
)


def normalize_front_matter(
    front_matter: Dict[str, Any], eip: str, now: Optional[datetime] = None
) -> Tuple[Dict[str, Any], bool]:
    """
    Fill in the bot-owned preamble fields.

    Args:
        front_matter: Parsed preamble, left untouched
        eip: Identifier chosen by the allocator
        now: Current time, defaults to the UTC clock

    Returns:
        (normalized copy, whether any field changed)
    """
    result = dict(front_matter)
    changed = False

    if "eip" not in result or str(result["eip"]) != eip:
        changed = True
    result["eip"] = eip

    if not result.get("status"):
        result["status"] = DEFAULT_STATUS
        changed = True

    if result["status"] == LAST_CALL_STATUS and not result.get("last-call-deadline"):
        now = now or datetime.now(timezone.utc)
        result["last-call-deadline"] = (now + LAST_CALL_WINDOW).date()
        logger.info(f"[PREAMBLE] EIP {eip} entered Last Call, deadline {result['last-call-deadline']}")
        changed = True

    return result, changed


def _as_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


def _coerce(key: str, value: Any) -> Any:
    if key == "eip" and isinstance(value, str) and value.isdigit():
        return int(value)
    if key == "requires" and isinstance(value, str) and "," not in value and value.strip().isdigit():
        return int(value.strip())
    if key in DATE_FIELDS:
        return _as_date(value)
    return value


def _preamble_rank(key: str) -> int:
    # Unrecognized keys sort ahead of the known ones, keeping their own order
    return PREAMBLE_ORDER.index(key) if key in PREAMBLE_ORDER else -1


def serialize_preamble(front_matter: Dict[str, Any]) -> str:
    """Render a preamble as YAML in canonical order with plain dates."""
    ordered = {
        key: _coerce(key, front_matter[key]) for key in sorted(front_matter, key=_preamble_rank)
    }
    return _MIDNIGHT_SUFFIX_RE.sub(r"\1", dump_front_matter(ordered))


def render_document(front_matter: Dict[str, Any], body: str) -> str:
    return assemble_document(serialize_preamble(front_matter), body)
