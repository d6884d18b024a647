from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from orgflow.models.base import Base, TimestampMixin, UUIDMixin


class JobDescription(Base, UUIDMixin, TimestampMixin):
    """Generated job description; at most one per role."""

    __tablename__ = "job_descriptions"

    role_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    title: Mapped[str | None] = mapped_column(String(200))
    general_description: Mapped[str | None] = mapped_column(Text)
    responsibilities: Mapped[list | None] = mapped_column(JSONB, default=list)
    objectives: Mapped[list | None] = mapped_column(JSONB, default=list)
    collaboration: Mapped[list | None] = mapped_column(JSONB, default=list)
