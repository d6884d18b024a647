"""initial schema: organizations, departments, roles, processes, job descriptions

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _tenant_column() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.UUID(as_uuid=True),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def _owner_column(name: str = "owner_id") -> sa.Column:
    return sa.Column(
        name,
        sa.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "organizations",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        _owner_column("created_by"),
        *_timestamps(),
    )

    op.create_table(
        "organization_members",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        _tenant_column(),
        sa.Column(
            "user_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("role", sa.String(20), server_default="member"),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
    )

    op.create_table(
        "organization_invitations",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        _tenant_column(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("token", sa.String(128), nullable=False, unique=True),
        sa.Column("status", sa.String(20), server_default="pending"),
        _owner_column("invited_by"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        _tenant_column(),
        _owner_column(),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("color", sa.String(7), server_default="#C7D2FE"),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "name", name="uq_department_name_per_org"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        _tenant_column(),
        sa.Column(
            "department_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        _owner_column(),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("color", sa.String(7), server_default="#C7D2FE"),
        *_timestamps(),
    )

    op.create_table(
        "process_snapshots",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        _tenant_column(),
        _owner_column(),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("steps", postgresql.JSONB(), nullable=False, server_default="[]"),
        *_timestamps(),
    )

    op.create_table(
        "job_descriptions",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "role_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        _tenant_column(),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("general_description", sa.Text(), nullable=True),
        sa.Column("responsibilities", postgresql.JSONB(), server_default="[]"),
        sa.Column("objectives", postgresql.JSONB(), server_default="[]"),
        sa.Column("collaboration", postgresql.JSONB(), server_default="[]"),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("job_descriptions")
    op.drop_table("process_snapshots")
    op.drop_table("roles")
    op.drop_table("departments")
    op.drop_table("organization_invitations")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")
