from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field, field_validator

from orgflow.schemas.common import CamelModel


class JobDescriptionSections(CamelModel):
    """Reconciled sections of a job description; every list holds at least one entry."""

    title: str = Field(..., min_length=1)
    general_description: str = Field(..., min_length=1)
    responsibilities: list[str] = Field(..., min_length=1)
    objectives: list[str] = Field(..., min_length=1)
    collaboration: list[str] = Field(..., min_length=1)

    @field_validator("responsibilities", "objectives", "collaboration")
    @classmethod
    def check_items(cls, v: list[str]) -> list[str]:
        if any(not item.strip() for item in v):
            raise ValueError("Section entries must not be blank")
        return v


class PartialSections(CamelModel):
    """Caller-supplied sections; any field may be missing."""

    title: str | None = None
    general_description: str | None = None
    responsibilities: list[str] | None = None
    objectives: list[str] | None = None
    collaboration: list[str] | None = None


class GeneratedJobDescription(CamelModel):
    """Shape of the JSON object the language model is asked to return."""

    title: str | None = None
    general_description: str | None = None
    responsibilities: list[str] = []
    objectives: list[str] = []
    collaboration: list[str] = []
    content: str | None = None

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str | None) -> str | None:
        if v is None:
            return None
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Title must not be blank")
        return trimmed

    @field_validator("responsibilities", "objectives", "collaboration")
    @classmethod
    def check_items(cls, v: list[str]) -> list[str]:
        stripped = [item.strip() for item in v]
        if any(not item for item in stripped):
            raise ValueError("Section entries must not be blank")
        return stripped


class JobDescriptionRead(CamelModel):
    role_id: uuid.UUID
    organization_id: uuid.UUID
    content: str = Field(..., min_length=1)
    sections: JobDescriptionSections
    updated_at: datetime


class JobDescriptionResponse(CamelModel):
    job_description: JobDescriptionRead | None = None


# JSON schema passed as the chat-completion response format
GENERATION_JSON_SCHEMA: dict = {
    "name": "job_description_generation",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "title": {"type": "string"},
            "generalDescription": {"type": "string"},
            "responsibilities": {"type": "array", "items": {"type": "string"}, "minItems": 1},
            "objectives": {"type": "array", "items": {"type": "string"}, "minItems": 1},
            "collaboration": {"type": "array", "items": {"type": "string"}, "minItems": 1},
            "content": {"type": "string"},
        },
        "required": [
            "title",
            "generalDescription",
            "responsibilities",
            "objectives",
            "collaboration",
            "content",
        ],
    },
    "strict": True,
}
