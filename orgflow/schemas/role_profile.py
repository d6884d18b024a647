from __future__ import annotations

from typing import Literal

from orgflow.schemas.common import CamelModel


class RoleDescriptor(CamelModel):
    id: str
    name: str
    department_id: str | None = None
    organization_id: str


class RoleProfileStep(CamelModel):
    node_id: str
    type: Literal["action", "decision"]
    label: str
    department_id: str | None = None
    previous_role_ids: list[str] = []
    next_role_ids: list[str] = []


class ProcessInvolvement(CamelModel):
    process_id: str
    process_name: str
    steps: list[RoleProfileStep]


class RoleInteractions(CamelModel):
    direct_roles: list[str] = []
    direct_departments: list[str] = []


class RoleProfile(CamelModel):
    """Where a role acts across its organization's processes and whom it works with."""

    role: RoleDescriptor
    processes_involved_in: list[ProcessInvolvement]
    interactions: RoleInteractions


class RoleLookups(CamelModel):
    roles: dict[str, str] = {}
    role_departments: dict[str, str | None] = {}
    departments: dict[str, str] = {}
