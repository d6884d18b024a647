"""Decoding of the persisted ``steps`` column.

Rows written by older clients hold the step array as a JSON-encoded
string inside the JSONB column. Decoding happens in two stages: the raw
value is first classified as one ``RawSteps`` variant, then the array is
validated against ``ProcessStep``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import TypeAdapter, ValidationError

from orgflow.schemas.process import ProcessStep

logger = logging.getLogger(__name__)

_steps_adapter = TypeAdapter(list[ProcessStep])


@dataclass
class RawSteps:
    kind: Literal["list", "encoded", "invalid"]
    items: list[Any] = field(default_factory=list)


def decode_raw_steps(value: Any) -> RawSteps:
    if isinstance(value, list):
        return RawSteps("list", value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            logger.warning("Stored steps hold an undecodable string")
            return RawSteps("invalid")
        if isinstance(parsed, list):
            return RawSteps("encoded", parsed)
    return RawSteps("invalid")


def decode_steps(value: Any) -> list[ProcessStep] | None:
    """Typed steps for a stored value, or None when it cannot be decoded."""
    raw = decode_raw_steps(value)
    if raw.kind == "invalid":
        return None
    try:
        return _steps_adapter.validate_python(raw.items)
    except ValidationError as exc:
        logger.warning("Stored steps failed validation: %s", exc.error_count())
        return None


def encode_steps(steps: list[ProcessStep]) -> list[dict]:
    """JSON-ready dicts with camelCase keys, as the web client reads them."""
    return [step.model_dump(mode="json", by_alias=True) for step in steps]
