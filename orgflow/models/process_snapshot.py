from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from orgflow.models.base import Base, TimestampMixin, UUIDMixin


class ProcessSnapshot(Base, UUIDMixin, TimestampMixin):
    """Persisted title + ordered step list of one process.

    ``steps`` is read through ``orgflow.services.step_codec`` because older
    rows hold the array as a JSON-encoded string.
    """

    __tablename__ = "process_snapshots"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    steps: Mapped[list | str] = mapped_column(JSONB, nullable=False, default=list)
