from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import EmailStr, field_validator

from orgflow.schemas.common import CamelModel

OrganizationRole = Literal["owner", "admin", "member"]
InvitationRole = Literal["admin", "member"]


class OrganizationMembership(CamelModel):
    organization_id: uuid.UUID
    organization_name: str
    role: OrganizationRole


class OrganizationRead(CamelModel):
    id: uuid.UUID
    name: str
    role: OrganizationRole
    created_at: datetime | None = None


class OrganizationRename(CamelModel):
    name: str

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        trimmed = v.strip()
        if len(trimmed) < 3:
            raise ValueError("Organization name must contain at least 3 characters")
        if len(trimmed) > 80:
            raise ValueError("Organization name cannot exceed 80 characters")
        return trimmed


class MemberRead(CamelModel):
    user_id: uuid.UUID
    email: str
    display_name: str | None = None
    role: OrganizationRole
    joined_at: datetime | None = None


class MemberRoleUpdate(CamelModel):
    role: OrganizationRole


class InvitationCreate(CamelModel):
    email: EmailStr
    role: InvitationRole = "member"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class InvitationRead(CamelModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: InvitationRole
    status: Literal["pending", "accepted", "revoked"]
    invited_by: uuid.UUID | None = None
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime | None = None


class InvitationCreated(InvitationRead):
    """Returned once, at creation; carries the token to deliver to the invitee."""

    token: str


class InvitationAccept(CamelModel):
    token: str
