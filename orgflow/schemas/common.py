from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

HEX_COLOR_INPUT_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


class CamelModel(BaseModel):
    """Base for payloads exchanged with the web client (camelCase JSON keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def validate_name(value: str, label: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{label} name must contain at least one character")
    if len(trimmed) > 120:
        raise ValueError(f"{label} name cannot exceed 120 characters")
    return trimmed


def validate_hex_color(value: str) -> str:
    trimmed = value.strip()
    if not HEX_COLOR_INPUT_PATTERN.match(trimmed):
        raise ValueError("Color must be a 6-digit hexadecimal code such as #C7D2FE")
    return trimmed.upper()
