"""Lenient coercion of loosely-typed step fields.

Every helper accepts any value and returns either a cleaned string or a
default; none of them raise.
"""

from __future__ import annotations

import re
from typing import Any

from orgflow.services.process_defaults import DEFAULT_PROCESS_TITLE

ROLE_ID_PATTERN = re.compile(
    r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$", re.IGNORECASE
)


def _trimmed_or_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_name_key(value: Any) -> str | None:
    """Case-insensitive lookup key for department and role names."""
    trimmed = _trimmed_or_none(value)
    return trimmed.lower() if trimmed is not None else None


def normalize_branch_target(value: Any) -> str | None:
    return _trimmed_or_none(value)


def normalize_department_id(value: Any) -> str | None:
    return _trimmed_or_none(value)


def normalize_draft_name(value: Any) -> str | None:
    return _trimmed_or_none(value)


def normalize_role_id(value: Any) -> str | None:
    trimmed = _trimmed_or_none(value)
    if trimmed is None or not ROLE_ID_PATTERN.match(trimmed):
        return None
    return trimmed


def normalize_process_title(value: Any) -> str:
    return _trimmed_or_none(value) or DEFAULT_PROCESS_TITLE
