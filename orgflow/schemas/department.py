from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import field_validator

from orgflow.models.department import DEFAULT_DEPARTMENT_COLOR
from orgflow.models.role import DEFAULT_ROLE_COLOR
from orgflow.schemas.common import CamelModel, validate_hex_color, validate_name


class RoleRead(CamelModel):
    id: uuid.UUID
    department_id: uuid.UUID
    name: str
    color: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DepartmentRead(CamelModel):
    id: uuid.UUID
    name: str
    color: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    roles: list[RoleRead] = []


class DepartmentCreate(CamelModel):
    name: str
    color: str = DEFAULT_DEPARTMENT_COLOR

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v, "Department")

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        return validate_hex_color(v)


class DepartmentUpdate(CamelModel):
    name: str | None = None
    color: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        return validate_name(v, "Department") if v is not None else None

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str | None) -> str | None:
        return validate_hex_color(v) if v is not None else None


class RoleCreate(CamelModel):
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


class RoleUpdate(CamelModel):
    name: str | None = None
    color: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        return validate_name(v, "Role") if v is not None else None

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str | None) -> str | None:
        return validate_hex_color(v) if v is not None else None


class CascadeRole(RoleCreate):
    """Role entry of a cascade update; ``id`` is absent for new roles."""

    id: uuid.UUID | None = None


class DepartmentCascade(CamelModel):
    """Replace a department's name, color and full role list in one request."""

    name: str
    color: str
    roles: list[CascadeRole] = []

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v, "Department")

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        return validate_hex_color(v)
