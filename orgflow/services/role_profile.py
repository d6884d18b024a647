"""Role profile: where a role acts across its organization's processes.

The profile lists, per process, the action and decision steps assigned to
the role together with the roles of the neighboring steps, and collects
the roles and departments the role interacts with directly. It feeds the
job description prompt.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.models.department import Department
from orgflow.models.process_snapshot import ProcessSnapshot
from orgflow.models.role import Role
from orgflow.schemas.process import ProcessStep
from orgflow.schemas.role_profile import (
    ProcessInvolvement,
    RoleDescriptor,
    RoleInteractions,
    RoleLookups,
    RoleProfile,
    RoleProfileStep,
)
from orgflow.services.normalizers import normalize_process_title
from orgflow.services.step_codec import decode_steps

logger = logging.getLogger(__name__)

DEFAULT_ROLE_NAME = "Rôle"
DEFAULT_DEPARTMENT_NAME = "Département"


class RoleProfileError(Exception):
    """Raised when no profile can be built for a role."""


class RoleNotFoundError(RoleProfileError):
    """Raised when the role does not exist in the requested organization."""


def _unique(values: Iterable[str | None]) -> list[str]:
    """Distinct non-empty strings, in first-seen order."""
    return list(dict.fromkeys(value for value in values if value))


def _profile_step(
    step: ProcessStep, steps: list[ProcessStep], steps_by_id: dict[str, ProcessStep]
) -> tuple[RoleProfileStep, list[ProcessStep], list[ProcessStep]]:
    # yes and no branches count the same way for predecessors
    previous_nodes = [
        candidate
        for candidate in steps
        if step.id in (candidate.yes_target_id, candidate.no_target_id)
    ]
    next_nodes = [
        steps_by_id[target_id]
        for target_id in _unique([step.yes_target_id, step.no_target_id])
        if target_id in steps_by_id
    ]
    profile_step = RoleProfileStep(
        node_id=step.id,
        type=step.type,
        label=step.label,
        department_id=step.department_id,
        previous_role_ids=_unique(node.role_id for node in previous_nodes),
        next_role_ids=_unique(node.role_id for node in next_nodes),
    )
    return profile_step, previous_nodes, next_nodes


def compute_role_profile(
    role: RoleDescriptor,
    role_ids: set[str],
    department_ids: set[str],
    processes: Iterable[Any],
) -> RoleProfile:
    """Build the profile of ``role`` from already loaded processes.

    ``processes`` are objects with ``id``, ``title`` and raw ``steps``;
    processes whose steps cannot be decoded are skipped. ``role_ids`` and
    ``department_ids`` are the ids known to the organization; neighbors
    outside them are not reported as interactions.
    """
    involvements: list[ProcessInvolvement] = []
    direct_roles: dict[str, None] = {}
    direct_departments: dict[str, None] = {}

    for process in processes:
        steps = decode_steps(process.steps)
        if steps is None:
            logger.warning("Skipping process %s with undecodable steps", process.id)
            continue

        actionable = [
            step
            for step in steps
            if step.type in ("action", "decision") and step.role_id == role.id
        ]
        if not actionable:
            continue

        steps_by_id = {step.id: step for step in steps}
        relevant: list[RoleProfileStep] = []
        for step in actionable:
            profile_step, previous_nodes, next_nodes = _profile_step(step, steps, steps_by_id)

            for neighbor_role_id in profile_step.previous_role_ids + profile_step.next_role_ids:
                if neighbor_role_id != role.id and neighbor_role_id in role_ids:
                    direct_roles[neighbor_role_id] = None

            neighbor_departments = _unique(
                [step.department_id]
                + [node.department_id for node in previous_nodes]
                + [node.department_id for node in next_nodes]
            )
            for department_id in neighbor_departments:
                if department_id in department_ids:
                    direct_departments[department_id] = None

            relevant.append(profile_step)

        involvements.append(
            ProcessInvolvement(
                process_id=str(process.id),
                process_name=normalize_process_title(process.title),
                steps=relevant,
            )
        )

    if not involvements:
        raise RoleProfileError("No process references this role")

    return RoleProfile(
        role=role,
        processes_involved_in=involvements,
        interactions=RoleInteractions(
            direct_roles=list(direct_roles),
            direct_departments=list(direct_departments),
        ),
    )


async def build_role_profile(
    db: AsyncSession, organization_id: uuid.UUID, role_id: uuid.UUID
) -> RoleProfile:
    result = await db.execute(
        select(Role).where(Role.id == role_id, Role.organization_id == organization_id)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise RoleNotFoundError("Role not found")

    descriptor = RoleDescriptor(
        id=str(role.id),
        name=(role.name or "").strip() or DEFAULT_ROLE_NAME,
        department_id=str(role.department_id) if role.department_id else None,
        organization_id=str(role.organization_id),
    )

    role_rows = await db.execute(select(Role.id).where(Role.organization_id == organization_id))
    department_rows = await db.execute(
        select(Department.id).where(Department.organization_id == organization_id)
    )
    process_rows = await db.execute(
        select(ProcessSnapshot)
        .where(ProcessSnapshot.organization_id == organization_id)
        .order_by(ProcessSnapshot.created_at)
    )

    return compute_role_profile(
        descriptor,
        {str(rid) for rid in role_rows.scalars().all()},
        {str(did) for did in department_rows.scalars().all()},
        process_rows.scalars().all(),
    )


async def fetch_role_and_department_lookups(
    db: AsyncSession, organization_id: uuid.UUID
) -> RoleLookups:
    """Id to display-name maps used to make a role profile readable."""
    role_rows = await db.execute(
        select(Role.id, Role.name, Role.department_id).where(
            Role.organization_id == organization_id
        )
    )
    department_rows = await db.execute(
        select(Department.id, Department.name).where(
            Department.organization_id == organization_id
        )
    )

    lookups = RoleLookups()
    for rid, name, department_id in role_rows.all():
        lookups.roles[str(rid)] = (name or "").strip() or DEFAULT_ROLE_NAME
        lookups.role_departments[str(rid)] = str(department_id) if department_id else None
    for did, name in department_rows.all():
        lookups.departments[str(did)] = (name or "").strip() or DEFAULT_DEPARTMENT_NAME
    return lookups
