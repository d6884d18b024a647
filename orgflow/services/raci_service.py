"""RACI summaries: the steps each role is responsible or accountable for."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.models.process_snapshot import ProcessSnapshot
from orgflow.models.role import Role
from orgflow.schemas.raci import RoleActionItem, RoleActionSummary
from orgflow.services.job_description_format import normalize_label
from orgflow.services.normalizers import normalize_process_title
from orgflow.services.role_profile import DEFAULT_DEPARTMENT_NAME, DEFAULT_ROLE_NAME
from orgflow.services.step_codec import decode_steps

logger = logging.getLogger(__name__)


def build_role_action_summaries(
    roles: Iterable[Role], processes: Iterable[Any]
) -> list[RoleActionSummary]:
    """One summary per role listing its action (R) and decision (A) steps.

    Actions are ordered by process title then step label, summaries by
    role name; both comparisons ignore case and accents.
    """
    summaries: dict[str, RoleActionSummary] = {}
    for role in roles:
        department = role.department
        summaries[str(role.id)] = RoleActionSummary(
            role_id=role.id,
            role_name=(role.name or "").strip() or DEFAULT_ROLE_NAME,
            department_id=role.department_id,
            department_name=((department.name if department else "") or "").strip()
            or DEFAULT_DEPARTMENT_NAME,
            role_color=role.color,
        )

    for process in processes:
        steps = decode_steps(process.steps)
        if steps is None:
            logger.warning("Skipping process %s with undecodable steps", process.id)
            continue
        title = normalize_process_title(process.title)
        for step in steps:
            if step.type not in ("action", "decision") or not step.role_id:
                continue
            summary = summaries.get(step.role_id)
            if summary is None:
                continue
            summary.actions.append(
                RoleActionItem(
                    process_id=process.id,
                    process_title=title,
                    step_id=step.id,
                    step_label=step.label,
                    responsibility="A" if step.type == "decision" else "R",
                )
            )

    for summary in summaries.values():
        summary.actions.sort(
            key=lambda a: (normalize_label(a.process_title), normalize_label(a.step_label))
        )
    return sorted(summaries.values(), key=lambda s: normalize_label(s.role_name))


async def load_role_action_summaries(
    db: AsyncSession, organization_ids: list[uuid.UUID]
) -> list[RoleActionSummary]:
    if not organization_ids:
        return []
    roles = await db.execute(
        select(Role)
        .where(Role.organization_id.in_(organization_ids))
        .execution_options(populate_existing=True)
    )
    processes = await db.execute(
        select(ProcessSnapshot).where(ProcessSnapshot.organization_id.in_(organization_ids))
    )
    return build_role_action_summaries(roles.scalars().all(), processes.scalars().all())
