from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from orgflow.models.role import DEFAULT_ROLE_COLOR
from orgflow.schemas.common import CamelModel, validate_hex_color, validate_name

StepType = Literal["start", "action", "decision", "finish"]
STEP_TYPES: tuple[str, ...] = ("start", "action", "decision", "finish")


class ProcessStep(CamelModel):
    """One node of a process step graph."""

    id: str = Field(..., min_length=1)
    label: str
    type: StepType
    department_id: str | None = None
    draft_department_name: str | None = None
    role_id: str | None = None
    draft_role_name: str | None = None
    yes_target_id: str | None = None
    no_target_id: str | None = None


def _validate_title(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("Title must contain at least one character")
    if len(trimmed) > 120:
        raise ValueError("Title cannot exceed 120 characters")
    return trimmed


class ProcessPayload(CamelModel):
    title: str
    steps: list[ProcessStep] = Field(..., min_length=2)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)


class ProcessResponse(CamelModel):
    id: uuid.UUID
    title: str
    steps: list[ProcessStep]
    updated_at: datetime | None = None


class ProcessSummary(CamelModel):
    id: uuid.UUID
    title: str
    updated_at: datetime | None = None


class ProcessCreate(CamelModel):
    title: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return _validate_title(v) if v is not None else None


class ProcessRename(CamelModel):
    title: str

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)


class ProcessMetadata(CamelModel):
    id: uuid.UUID
    title: str

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)


class RoleDefinition(CamelModel):
    id: uuid.UUID | None = None
    name: str
    color: str = DEFAULT_ROLE_COLOR

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v, "Role")

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        return validate_hex_color(v)


class DepartmentDefinition(CamelModel):
    id: uuid.UUID | None = None
    name: str
    color: str
    roles: list[RoleDefinition] = []

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v, "Department")

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        return validate_hex_color(v)


class ProcessContextUpdate(CamelModel):
    """Full save of a process together with the departments/roles it uses."""

    process: ProcessMetadata
    steps: list[ProcessStep] = Field(..., min_length=2)
    departments: list[DepartmentDefinition] = []


class DraftMergeRequest(CamelModel):
    steps: list[ProcessStep]


EntityStatus = Literal["persisted", "draft"]


class AssistantRole(CamelModel):
    id: str
    name: str
    status: EntityStatus = "persisted"

    @field_validator("id", "name")
    @classmethod
    def check_filled(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Value must contain at least one character")
        return trimmed


class AssistantDepartment(CamelModel):
    """A department as listed to the assistant, possibly not yet saved."""

    id: str
    name: str
    status: EntityStatus = "persisted"
    roles: list[AssistantRole] = []

    @field_validator("id", "name")
    @classmethod
    def check_filled(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Value must contain at least one character")
        return trimmed


class ProcessAssistantRequest(CamelModel):
    process_id: uuid.UUID
    prompt: str
    context: str = ""
    departments: list[AssistantDepartment] = []

    @field_validator("prompt")
    @classmethod
    def check_prompt(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Prompt must contain at least one character")
        if len(trimmed) > 4000:
            raise ValueError("Prompt cannot exceed 4000 characters")
        return trimmed

    @field_validator("context")
    @classmethod
    def check_context(cls, v: str) -> str:
        trimmed = v.strip()
        if len(trimmed) > 6000:
            raise ValueError("Context cannot exceed 6000 characters")
        return trimmed


class ProcessProposal(CamelModel):
    id: uuid.UUID
    title: str
    steps: list[ProcessStep]


class ProcessAssistantResponse(CamelModel):
    process: ProcessProposal
    reply: str


def _nullable(schema: dict) -> dict:
    return {"anyOf": [schema, {"type": "null"}]}


PROPOSAL_JSON_SCHEMA: dict = {
    "name": "process_payload",
    "schema": {
        "type": "object",
        "properties": {
            "process": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "format": "uuid"},
                    "title": {"type": "string", "minLength": 1, "maxLength": 120},
                    "steps": {
                        "type": "array",
                        "minItems": 2,
                        "items": {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "id": {"type": "string", "minLength": 1},
                                "label": {"type": "string"},
                                "type": {"type": "string", "enum": list(STEP_TYPES)},
                                "departmentId": _nullable({"type": "string", "format": "uuid"}),
                                "draftDepartmentName": _nullable(
                                    {"type": "string", "minLength": 1}
                                ),
                                "roleId": _nullable({"type": "string", "format": "uuid"}),
                                "draftRoleName": _nullable({"type": "string", "minLength": 1}),
                                "yesTargetId": _nullable({"type": "string", "minLength": 1}),
                                "noTargetId": _nullable({"type": "string", "minLength": 1}),
                            },
                            "required": [
                                "id",
                                "label",
                                "type",
                                "departmentId",
                                "draftDepartmentName",
                                "roleId",
                                "draftRoleName",
                                "yesTargetId",
                                "noTargetId",
                            ],
                        },
                    },
                },
                "required": ["title", "steps"],
                "additionalProperties": False,
            },
            "reply": {"type": "string", "minLength": 1, "maxLength": 1200},
        },
        "required": ["process", "reply"],
        "additionalProperties": False,
    },
}
