from __future__ import annotations

import uuid
from typing import Literal

from orgflow.schemas.common import CamelModel

Responsibility = Literal["R", "A"]


class RoleActionItem(CamelModel):
    process_id: uuid.UUID
    process_title: str
    step_id: str
    step_label: str
    responsibility: Responsibility


class RoleActionSummary(CamelModel):
    role_id: uuid.UUID
    role_name: str
    department_id: uuid.UUID
    department_name: str
    role_color: str
    actions: list[RoleActionItem] = []
