"""Organization memberships of the current user."""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.core.logging_config import bind_request_context
from orgflow.models.organization import MANAGER_ROLES, Organization, OrganizationMember
from orgflow.models.user import User
from orgflow.schemas.organization import OrganizationMembership
from orgflow.services.job_description_format import normalize_label

ROLE_RANK = {"owner": 0, "admin": 1}


async def fetch_user_organizations(db: AsyncSession, user: User) -> list[OrganizationMembership]:
    result = await db.execute(
        select(Organization.id, Organization.name, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user.id)
        .order_by(Organization.name)
    )
    return [
        OrganizationMembership(organization_id=oid, organization_name=name, role=role)
        for oid, name, role in result.all()
    ]


def select_default_organization(
    memberships: Iterable[OrganizationMembership],
) -> OrganizationMembership | None:
    """Owner memberships first, then admin, then member; ties broken by name."""
    ordered = sorted(
        memberships,
        key=lambda m: (ROLE_RANK.get(m.role, 2), normalize_label(m.organization_name)),
    )
    return ordered[0] if ordered else None


def get_accessible_organization_ids(
    memberships: Iterable[OrganizationMembership],
) -> list[uuid.UUID]:
    return [m.organization_id for m in memberships]


def get_manageable_organization_ids(
    memberships: Iterable[OrganizationMembership],
) -> list[uuid.UUID]:
    return [m.organization_id for m in memberships if m.role in MANAGER_ROLES]


async def get_membership(
    db: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
) -> OrganizationMember | None:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def require_membership(
    db: AsyncSession, organization_id: uuid.UUID, user: User, *, manage: bool = False
) -> OrganizationMember:
    """Return the user's membership or raise 404/403.

    Non-members get 404 so other tenants' ids are not disclosed.
    """
    membership = await get_membership(db, organization_id, user.id)
    if membership is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    if manage and membership.role not in MANAGER_ROLES:
        raise HTTPException(status_code=403, detail="Owner or admin role required")
    return membership


async def resolve_active_organization(
    db: AsyncSession, user: User, organization_id: uuid.UUID | None = None
) -> OrganizationMembership:
    """Organization a request acts on: the requested one, else the default one."""
    memberships = await fetch_user_organizations(db, user)
    if organization_id is not None:
        for membership in memberships:
            if membership.organization_id == organization_id:
                bind_request_context(organization_id=membership.organization_id)
                return membership
        raise HTTPException(status_code=404, detail="Organization not found")
    default = select_default_organization(memberships)
    if default is None:
        raise HTTPException(status_code=403, detail="No accessible organization")
    bind_request_context(organization_id=default.organization_id)
    return default
