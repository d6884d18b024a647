"""Loading and saving processes together with their departments and roles."""

from __future__ import annotations

import logging
import uuid

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.models.department import Department
from orgflow.models.process_snapshot import ProcessSnapshot
from orgflow.models.role import Role
from orgflow.models.user import User
from orgflow.schemas.department import DepartmentRead
from orgflow.schemas.process import (
    DepartmentDefinition,
    ProcessContextUpdate,
    ProcessResponse,
    ProcessSummary,
)
from orgflow.services.normalizers import normalize_name_key, normalize_process_title
from orgflow.services.process_defaults import default_process_steps
from orgflow.services.process_steps import (
    clone_steps,
    ensure_entity_ids,
    resolve_steps_with_drafts,
)
from orgflow.services.step_codec import decode_steps, encode_steps

logger = logging.getLogger(__name__)


class StoredStepsError(Exception):
    """Raised when a stored process holds steps that cannot be decoded."""


def to_process_response(process: ProcessSnapshot) -> ProcessResponse:
    steps = decode_steps(process.steps)
    if steps is None:
        logger.error("Process %s holds undecodable steps", process.id)
        raise StoredStepsError(f"Process {process.id} holds undecodable steps")
    return ProcessResponse(
        id=process.id,
        title=normalize_process_title(process.title),
        steps=clone_steps(steps),
        updated_at=process.updated_at,
    )


def to_process_summary(process: ProcessSnapshot) -> ProcessSummary:
    return ProcessSummary(
        id=process.id,
        title=normalize_process_title(process.title),
        updated_at=process.updated_at,
    )


async def list_processes(
    db: AsyncSession, organization_ids: list[uuid.UUID]
) -> list[ProcessSnapshot]:
    if not organization_ids:
        return []
    result = await db.execute(
        select(ProcessSnapshot)
        .where(ProcessSnapshot.organization_id.in_(organization_ids))
        .order_by(ProcessSnapshot.updated_at.desc())
    )
    return list(result.scalars().all())


async def get_process(
    db: AsyncSession, process_id: uuid.UUID, organization_ids: list[uuid.UUID]
) -> ProcessSnapshot | None:
    if not organization_ids:
        return None
    result = await db.execute(
        select(ProcessSnapshot).where(
            ProcessSnapshot.id == process_id,
            ProcessSnapshot.organization_id.in_(organization_ids),
        )
    )
    return result.scalar_one_or_none()


async def create_process(
    db: AsyncSession, organization_id: uuid.UUID, user: User, title: str | None = None
) -> ProcessSnapshot:
    process = ProcessSnapshot(
        organization_id=organization_id,
        owner_id=user.id,
        title=normalize_process_title(title),
        steps=encode_steps(default_process_steps()),
    )
    db.add(process)
    await db.commit()
    await db.refresh(process)
    return process


async def load_departments(db: AsyncSession, organization_id: uuid.UUID) -> list[DepartmentRead]:
    result = await db.execute(
        select(Department)
        .where(Department.organization_id == organization_id)
        .order_by(Department.created_at)
        .execution_options(populate_existing=True)
    )
    return [DepartmentRead.model_validate(d) for d in result.scalars().all()]


async def _check_entity_ownership(
    db: AsyncSession, organization_id: uuid.UUID, departments: list[DepartmentDefinition]
) -> None:
    """Reject ids that already belong to another organization.

    Unknown ids are accepted; they name entities created by this save.
    """
    department_ids = [d.id for d in departments if d.id is not None]
    role_ids = [r.id for d in departments for r in d.roles if r.id is not None]

    if department_ids:
        foreign = await db.execute(
            select(func.count())
            .select_from(Department)
            .where(Department.id.in_(department_ids), Department.organization_id != organization_id)
        )
        if foreign.scalar_one():
            raise HTTPException(403, "Some departments are not accessible for this process")

    if role_ids:
        foreign = await db.execute(
            select(func.count())
            .select_from(Role)
            .where(Role.id.in_(role_ids), Role.organization_id != organization_id)
        )
        if foreign.scalar_one():
            raise HTTPException(403, "Some roles are not accessible for this process")


async def _upsert_departments(
    db: AsyncSession, organization_id: uuid.UUID, user: User, departments: list[DepartmentDefinition]
) -> None:
    existing_result = await db.execute(
        select(Department).where(Department.organization_id == organization_id)
    )
    existing = {d.id: d for d in existing_result.scalars().all()}
    names_taken = {normalize_name_key(d.name): d.id for d in existing.values()}

    for definition in departments:
        key = normalize_name_key(definition.name)
        other = names_taken.get(key)
        if other is not None and other != definition.id:
            raise HTTPException(409, f"A department named '{definition.name}' already exists")

        department = existing.get(definition.id)
        if department is None:
            department = Department(
                id=definition.id,
                organization_id=organization_id,
                owner_id=user.id,
                name=definition.name,
                color=definition.color,
            )
            db.add(department)
            existing[definition.id] = department
        else:
            names_taken.pop(normalize_name_key(department.name), None)
            department.name = definition.name
            department.color = definition.color
        names_taken[key] = definition.id

    await db.flush()

    role_ids = [r.id for d in departments for r in d.roles]
    roles_result = await db.execute(select(Role).where(Role.id.in_(role_ids))) if role_ids else None
    existing_roles = {r.id: r for r in roles_result.scalars().all()} if roles_result else {}

    for definition in departments:
        for role_definition in definition.roles:
            role = existing_roles.get(role_definition.id)
            if role is None:
                db.add(
                    Role(
                        id=role_definition.id,
                        organization_id=organization_id,
                        department_id=definition.id,
                        owner_id=user.id,
                        name=role_definition.name,
                        color=role_definition.color,
                    )
                )
            else:
                role.department_id = definition.id
                role.name = role_definition.name
                role.color = role_definition.color


async def save_process_context(
    db: AsyncSession, process: ProcessSnapshot, payload: ProcessContextUpdate, user: User
) -> ProcessSnapshot:
    """Persist a process and the departments and roles its steps use.

    Draft department and role names in the steps are resolved to the ids
    of the saved entities before the steps are stored.
    """
    departments = ensure_entity_ids(payload.departments)
    await _check_entity_ownership(db, process.organization_id, departments)
    await _upsert_departments(db, process.organization_id, user, departments)

    steps = resolve_steps_with_drafts(payload.steps, departments)
    process.title = normalize_process_title(payload.process.title)
    process.steps = encode_steps(steps)
    await db.commit()
    await db.refresh(process)
    logger.info(
        "Saved process %s with %d steps and %d departments",
        process.id,
        len(steps),
        len(departments),
    )
    return process
