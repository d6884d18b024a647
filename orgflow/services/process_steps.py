"""Step list operations: normalization, comparison and draft materialization.

A step may reference a department or role either by id or, before the
entity exists, by a draft name typed into the editor. Normalization keeps
exactly one of the two; ``merge_draft_entities_from_steps`` and
``resolve_steps_with_drafts`` turn draft names into real entities and ids.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from orgflow.models.department import DEFAULT_DEPARTMENT_COLOR
from orgflow.models.role import DEFAULT_ROLE_COLOR
from orgflow.schemas.department import DepartmentRead, RoleRead
from orgflow.schemas.process import DepartmentDefinition, ProcessStep
from orgflow.services.normalizers import (
    normalize_branch_target,
    normalize_department_id,
    normalize_draft_name,
    normalize_name_key,
    normalize_role_id,
)

# Fields compared by are_steps_equal, in order
STEP_FIELDS = (
    "id",
    "label",
    "type",
    "department_id",
    "draft_department_name",
    "role_id",
    "draft_role_name",
    "yes_target_id",
    "no_target_id",
)


def normalize_step(step: ProcessStep) -> ProcessStep:
    department_id = normalize_department_id(step.department_id)
    role_id = normalize_role_id(step.role_id)
    return step.model_copy(
        update={
            "department_id": department_id,
            "draft_department_name": None
            if department_id
            else normalize_draft_name(step.draft_department_name),
            "role_id": role_id,
            "draft_role_name": None if role_id else normalize_draft_name(step.draft_role_name),
            "yes_target_id": normalize_branch_target(step.yes_target_id),
            "no_target_id": normalize_branch_target(step.no_target_id),
        }
    )


def clone_steps(steps: Iterable[ProcessStep]) -> list[ProcessStep]:
    return [normalize_step(step.model_copy()) for step in steps]


def are_steps_equal(a: Sequence[ProcessStep], b: Sequence[ProcessStep]) -> bool:
    """Positional comparison of two step lists after normalization."""
    if len(a) != len(b):
        return False
    for left, right in zip(a, b):
        left_n, right_n = normalize_step(left), normalize_step(right)
        if any(getattr(left_n, f) != getattr(right_n, f) for f in STEP_FIELDS):
            return False
    return True


def generate_step_id() -> str:
    return str(uuid.uuid4())


def generate_client_uuid() -> str:
    return str(uuid.uuid4())


def merge_draft_entities_from_steps(
    steps: Iterable[ProcessStep],
    base_departments: Iterable[DepartmentRead],
) -> list[DepartmentRead]:
    """Return the base departments plus the ones (and roles) named only as drafts.

    Departments are keyed by their trimmed, lower-cased name; the first
    department seen for a key wins. Base departments are copied, never
    mutated. Running the merge again over its own output with the same
    steps adds nothing.
    """
    now = datetime.now(timezone.utc)
    by_name: dict[str, DepartmentRead] = {}

    for department in base_departments:
        key = normalize_name_key(department.name)
        if key is None or key in by_name:
            continue
        by_name[key] = department.model_copy(deep=True)

    for step in steps:
        draft_department_name = normalize_draft_name(step.draft_department_name)
        if draft_department_name is None:
            continue
        department_key = normalize_name_key(draft_department_name)

        department = by_name.get(department_key)
        if department is None:
            department = DepartmentRead(
                id=uuid.UUID(generate_client_uuid()),
                name=draft_department_name,
                color=DEFAULT_DEPARTMENT_COLOR,
                created_at=now,
                updated_at=now,
                roles=[],
            )
            by_name[department_key] = department

        draft_role_name = normalize_draft_name(step.draft_role_name)
        if draft_role_name is None:
            continue
        role_key = normalize_name_key(draft_role_name)
        if any(normalize_name_key(role.name) == role_key for role in department.roles):
            continue
        department.roles.append(
            RoleRead(
                id=uuid.UUID(generate_client_uuid()),
                department_id=department.id,
                name=draft_role_name,
                color=DEFAULT_ROLE_COLOR,
                created_at=now,
                updated_at=now,
            )
        )

    return list(by_name.values())


def ensure_entity_ids(departments: Iterable[DepartmentDefinition]) -> list[DepartmentDefinition]:
    """Copy of ``departments`` where every department and role carries an id."""
    result: list[DepartmentDefinition] = []
    for department in departments:
        roles = [
            role.model_copy(update={"id": role.id or uuid.uuid4()}) for role in department.roles
        ]
        result.append(
            department.model_copy(update={"id": department.id or uuid.uuid4(), "roles": roles})
        )
    return result


def resolve_steps_with_drafts(
    steps: Iterable[ProcessStep],
    departments: Iterable[DepartmentDefinition],
) -> list[ProcessStep]:
    """Swap draft names for the ids of materialized departments and roles.

    Roles are matched by name inside the step's resolved department only.
    Every draft field is cleared, whether or not it resolved.
    """
    department_by_name: dict[str, str] = {}
    roles_by_department: dict[str, dict[str, str]] = {}
    for department in departments:
        if department.id is None:
            continue
        department_id = str(department.id)
        department_by_name.setdefault(normalize_name_key(department.name) or "", department_id)
        roles_by_department[department_id] = {
            normalize_name_key(role.name) or "": str(role.id)
            for role in department.roles
            if role.id is not None
        }

    resolved: list[ProcessStep] = []
    for step in steps:
        step = normalize_step(step)
        department_id = step.department_id
        if department_id is None and step.draft_department_name:
            department_id = department_by_name.get(normalize_name_key(step.draft_department_name))

        role_id = step.role_id
        if role_id is None and step.draft_role_name and department_id:
            role_id = roles_by_department.get(department_id, {}).get(
                normalize_name_key(step.draft_role_name)
            )

        resolved.append(
            step.model_copy(
                update={
                    "department_id": department_id,
                    "role_id": role_id,
                    "draft_department_name": None,
                    "draft_role_name": None,
                }
            )
        )
    return resolved
