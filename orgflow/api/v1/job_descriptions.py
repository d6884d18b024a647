from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.api.deps import get_current_user, get_llm_client
from orgflow.api.v1.roles import load_scoped_role
from orgflow.database import get_db
from orgflow.models.user import User
from orgflow.schemas.job_description import JobDescriptionResponse
from orgflow.services.job_description_export import ExportFormat, export_job_description
from orgflow.services.job_description_service import (
    InvalidGenerationError,
    generate_job_description,
    get_job_description,
)
from orgflow.services.llm_client import ChatCompletionClient, LLMError
from orgflow.services.role_profile import RoleProfileError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/job-descriptions", tags=["job-descriptions"])


@router.get("/{role_id}", response_model=JobDescriptionResponse)
async def read_job_description(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    role = await load_scoped_role(db, user, role_id)
    try:
        description = await get_job_description(db, role)
    except ValidationError:
        logger.exception("Stored job description for role %s is invalid", role.id)
        raise HTTPException(500, "The stored job description is invalid")
    return JobDescriptionResponse(job_description=description)


@router.post("/{role_id}", response_model=JobDescriptionResponse, status_code=201)
async def create_job_description(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    llm: ChatCompletionClient = Depends(get_llm_client),
):
    role = await load_scoped_role(db, user, role_id)
    try:
        description = await generate_job_description(db, llm, role, role.organization_id)
    except RoleProfileError as exc:
        raise HTTPException(404, str(exc))
    except LLMError as exc:
        logger.warning("Job description generation failed for role %s: %s", role.id, exc)
        raise HTTPException(502, str(exc))
    except (InvalidGenerationError, ValidationError):
        logger.exception("Job description generation for role %s produced invalid output", role.id)
        raise HTTPException(500, "The generation returned unusable content")
    return JobDescriptionResponse(job_description=description)


@router.get("/{role_id}/export")
async def download_job_description(
    role_id: uuid.UUID,
    export_format: ExportFormat = Query("pdf", alias="format"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    role = await load_scoped_role(db, user, role_id)
    try:
        document = await export_job_description(db, role, export_format)
    except ValidationError:
        logger.exception("Stored job description for role %s is invalid", role.id)
        raise HTTPException(500, "The stored job description is invalid")
    if document is None:
        raise HTTPException(404, "Job description not found")
    return Response(
        content=document.body,
        media_type=document.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"',
            "Cache-Control": "no-store, max-age=0, must-revalidate",
        },
    )
