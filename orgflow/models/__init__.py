from orgflow.models.base import Base
from orgflow.models.department import Department
from orgflow.models.job_description import JobDescription
from orgflow.models.organization import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
)
from orgflow.models.process_snapshot import ProcessSnapshot
from orgflow.models.role import Role
from orgflow.models.user import User

__all__ = [
    "Base",
    "User",
    "Organization",
    "OrganizationMember",
    "OrganizationInvitation",
    "Department",
    "Role",
    "ProcessSnapshot",
    "JobDescription",
]
