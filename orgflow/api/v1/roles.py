from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.api.deps import get_current_user
from orgflow.core.logging_config import bind_request_context
from orgflow.database import get_db
from orgflow.models.role import Role
from orgflow.models.user import User
from orgflow.schemas.department import RoleRead, RoleUpdate
from orgflow.schemas.raci import RoleActionSummary
from orgflow.schemas.role_profile import RoleProfile
from orgflow.services.membership_service import (
    fetch_user_organizations,
    get_accessible_organization_ids,
    get_manageable_organization_ids,
)
from orgflow.services.raci_service import load_role_action_summaries
from orgflow.services.role_profile import (
    RoleNotFoundError,
    RoleProfileError,
    build_role_profile,
)

router = APIRouter(prefix="/roles", tags=["roles"])


async def load_scoped_role(
    db: AsyncSession, user: User, role_id: uuid.UUID, *, manage: bool = False
) -> Role:
    memberships = await fetch_user_organizations(db, user)
    org_ids = (
        get_manageable_organization_ids(memberships)
        if manage
        else get_accessible_organization_ids(memberships)
    )
    if not org_ids:
        raise HTTPException(404, "Role not found")
    result = await db.execute(
        select(Role).where(Role.id == role_id, Role.organization_id.in_(org_ids))
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise HTTPException(404, "Role not found")
    bind_request_context(organization_id=role.organization_id)
    return role


@router.get("/actions", response_model=list[RoleActionSummary])
async def list_role_actions(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    memberships = await fetch_user_organizations(db, user)
    return await load_role_action_summaries(db, get_accessible_organization_ids(memberships))


@router.get("/{role_id}/profile", response_model=RoleProfile)
async def get_role_profile(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    role = await load_scoped_role(db, user, role_id)
    try:
        return await build_role_profile(db, role.organization_id, role.id)
    except RoleNotFoundError:
        raise HTTPException(404, "Role not found")
    except RoleProfileError as exc:
        raise HTTPException(404, str(exc))


@router.patch("/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    role = await load_scoped_role(db, user, role_id, manage=True)
    if body.name is not None:
        role.name = body.name
    if body.color is not None:
        role.color = body.color
    await db.commit()
    await db.refresh(role)
    return role


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    role = await load_scoped_role(db, user, role_id, manage=True)
    await db.delete(role)
    await db.commit()
