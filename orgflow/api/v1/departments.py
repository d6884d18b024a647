from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.api.deps import get_current_user
from orgflow.core.logging_config import bind_request_context
from orgflow.database import get_db
from orgflow.models.department import Department
from orgflow.models.role import Role
from orgflow.models.user import User
from orgflow.schemas.department import (
    DepartmentCascade,
    DepartmentCreate,
    DepartmentRead,
    DepartmentUpdate,
    RoleCreate,
    RoleRead,
)
from orgflow.services.membership_service import (
    fetch_user_organizations,
    get_manageable_organization_ids,
    resolve_active_organization,
)
from orgflow.services.process_service import load_departments

router = APIRouter(prefix="/departments", tags=["departments"])


async def _manageable_department(
    db: AsyncSession, user: User, department_id: uuid.UUID
) -> Department:
    memberships = await fetch_user_organizations(db, user)
    org_ids = get_manageable_organization_ids(memberships)
    if not org_ids:
        raise HTTPException(403, "Owner or admin role required")
    result = await db.execute(
        select(Department).where(
            Department.id == department_id, Department.organization_id.in_(org_ids)
        )
    )
    department = result.scalar_one_or_none()
    if department is None:
        raise HTTPException(404, "Department not found")
    bind_request_context(organization_id=department.organization_id)
    return department


async def _ensure_name_available(
    db: AsyncSession,
    organization_id: uuid.UUID,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    stmt = select(Department.id).where(
        Department.organization_id == organization_id,
        func.lower(Department.name) == name.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Department.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(409, f"A department named '{name}' already exists")


async def _reload(db: AsyncSession, department_id: uuid.UUID) -> DepartmentRead:
    result = await db.execute(
        select(Department)
        .where(Department.id == department_id)
        .execution_options(populate_existing=True)
    )
    return DepartmentRead.model_validate(result.scalar_one())


@router.get("", response_model=list[DepartmentRead])
async def list_departments(
    organization_id: uuid.UUID | None = Query(None, alias="organizationId"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    membership = await resolve_active_organization(db, user, organization_id)
    return await load_departments(db, membership.organization_id)


@router.post("", response_model=DepartmentRead, status_code=201)
async def create_department(
    body: DepartmentCreate,
    organization_id: uuid.UUID | None = Query(None, alias="organizationId"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    membership = await resolve_active_organization(db, user, organization_id)
    if membership.role not in ("owner", "admin"):
        raise HTTPException(403, "Owner or admin role required")
    await _ensure_name_available(db, membership.organization_id, body.name)
    department = Department(
        organization_id=membership.organization_id,
        owner_id=user.id,
        name=body.name,
        color=body.color,
    )
    db.add(department)
    await db.commit()
    return await _reload(db, department.id)


@router.patch("/{department_id}", response_model=DepartmentRead)
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    department = await _manageable_department(db, user, department_id)
    if body.name is not None:
        await _ensure_name_available(db, department.organization_id, body.name, department.id)
        department.name = body.name
    if body.color is not None:
        department.color = body.color
    await db.commit()
    return await _reload(db, department.id)


@router.delete("/{department_id}", status_code=204)
async def delete_department(
    department_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    department = await _manageable_department(db, user, department_id)
    await db.delete(department)
    await db.commit()


@router.post("/{department_id}/roles", response_model=RoleRead, status_code=201)
async def create_role(
    department_id: uuid.UUID,
    body: RoleCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    department = await _manageable_department(db, user, department_id)
    role = Role(
        organization_id=department.organization_id,
        department_id=department.id,
        owner_id=user.id,
        name=body.name,
        color=body.color,
    )
    db.add(role)
    await db.commit()
    await db.refresh(role)
    return role


@router.put("/{department_id}/cascade", response_model=DepartmentRead)
async def cascade_department(
    department_id: uuid.UUID,
    body: DepartmentCascade,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Replace the department's name, color and full role list.

    Roles absent from the body are deleted; roles without an id are created.
    """
    department = await _manageable_department(db, user, department_id)
    await _ensure_name_available(db, department.organization_id, body.name, department.id)
    department.name = body.name
    department.color = body.color

    result = await db.execute(select(Role).where(Role.department_id == department.id))
    current = {r.id: r for r in result.scalars().all()}
    kept: set[uuid.UUID] = set()

    for entry in body.roles:
        role = current.get(entry.id) if entry.id is not None else None
        if entry.id is not None and role is None:
            raise HTTPException(404, "Role not found in this department")
        if role is None:
            db.add(
                Role(
                    organization_id=department.organization_id,
                    department_id=department.id,
                    owner_id=user.id,
                    name=entry.name,
                    color=entry.color,
                )
            )
            continue
        role.name = entry.name
        role.color = entry.color
        kept.add(role.id)

    for role_id, role in current.items():
        if role_id not in kept:
            await db.delete(role)

    await db.commit()
    return await _reload(db, department.id)
