from __future__ import annotations

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.api.deps import get_current_user, get_llm_client
from orgflow.core.logging_config import bind_request_context
from orgflow.core.rate_limit import limiter
from orgflow.database import get_db
from orgflow.models.user import User
from orgflow.schemas.department import DepartmentRead
from orgflow.schemas.process import (
    DraftMergeRequest,
    ProcessAssistantRequest,
    ProcessAssistantResponse,
    ProcessContextUpdate,
    ProcessCreate,
    ProcessRename,
    ProcessResponse,
    ProcessSummary,
)
from orgflow.services import process_service
from orgflow.services.llm_client import ChatCompletionClient, LLMError
from orgflow.services.membership_service import (
    fetch_user_organizations,
    get_accessible_organization_ids,
    get_manageable_organization_ids,
    resolve_active_organization,
)
from orgflow.services.mermaid_format import build_process_diagram
from orgflow.services.process_assistant import (
    InvalidAnswerError,
    UnknownReferenceError,
    propose_process,
)
from orgflow.services.process_service import StoredStepsError
from orgflow.services.process_steps import merge_draft_entities_from_steps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/processes", tags=["processes"])


def _response(process) -> ProcessResponse:
    try:
        return process_service.to_process_response(process)
    except StoredStepsError:
        raise HTTPException(500, "The stored process has an unexpected format")


async def _load(db: AsyncSession, user: User, process_id: uuid.UUID, *, manage: bool = False):
    memberships = await fetch_user_organizations(db, user)
    org_ids = (
        get_manageable_organization_ids(memberships)
        if manage
        else get_accessible_organization_ids(memberships)
    )
    process = await process_service.get_process(db, process_id, org_ids)
    if process is None:
        raise HTTPException(404, "Process not found")
    bind_request_context(organization_id=process.organization_id, process_id=process.id)
    return process


@router.get("", response_model=list[ProcessSummary])
async def list_processes(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    memberships = await fetch_user_organizations(db, user)
    processes = await process_service.list_processes(
        db, get_accessible_organization_ids(memberships)
    )
    return [process_service.to_process_summary(p) for p in processes]


@router.post("", response_model=ProcessResponse, status_code=201)
async def create_process(
    body: ProcessCreate | None = None,
    organization_id: uuid.UUID | None = Query(None, alias="organizationId"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    membership = await resolve_active_organization(db, user, organization_id)
    if membership.role not in ("owner", "admin"):
        raise HTTPException(403, "You are not allowed to create processes")
    process = await process_service.create_process(
        db, membership.organization_id, user, body.title if body else None
    )
    return _response(process)


@router.post("/merge-drafts", response_model=list[DepartmentRead])
async def merge_drafts(
    body: DraftMergeRequest,
    organization_id: uuid.UUID | None = Query(None, alias="organizationId"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Preview the department list once the steps' draft names are materialized."""
    membership = await resolve_active_organization(db, user, organization_id)
    departments = await process_service.load_departments(db, membership.organization_id)
    return merge_draft_entities_from_steps(body.steps, departments)


@router.post("/ai", response_model=ProcessAssistantResponse)
@limiter.limit("10/minute")
async def assist_process(
    request: Request,
    response: Response,
    body: ProcessAssistantRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    llm: ChatCompletionClient = Depends(get_llm_client),
):
    """Propose a reworked version of a process. The proposal is not saved."""
    response.headers["Cache-Control"] = "no-store, max-age=0, must-revalidate"
    memberships = await fetch_user_organizations(db, user)
    org_ids = get_manageable_organization_ids(memberships)
    if not org_ids:
        raise HTTPException(403, "You are not allowed to edit this process")
    process = await process_service.get_process(db, body.process_id, org_ids)
    if process is None:
        raise HTTPException(404, "Process not found")
    bind_request_context(organization_id=process.organization_id, process_id=process.id)
    try:
        return await propose_process(db, llm, _response(process), process.organization_id, body)
    except LLMError as exc:
        logger.warning("Process assistant failed for %s: %s", process.id, exc)
        raise HTTPException(502, str(exc))
    except InvalidAnswerError as exc:
        raise HTTPException(502, str(exc))
    except UnknownReferenceError as exc:
        raise HTTPException(422, str(exc))


@router.get("/{process_id}", response_model=ProcessResponse)
async def get_process(
    process_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _response(await _load(db, user, process_id))


@router.get("/{process_id}/diagram", response_class=PlainTextResponse)
async def get_process_diagram(
    process_id: uuid.UUID,
    direction: Literal["TD", "LR"] = "TD",
    show_departments: bool = Query(True, alias="showDepartments"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    process = await _load(db, user, process_id)
    response = _response(process)
    departments = await process_service.load_departments(db, process.organization_id)
    return build_process_diagram(
        response.steps, departments, direction=direction, show_departments=show_departments
    )


@router.put("/{process_id}", response_model=ProcessResponse)
async def save_process(
    process_id: uuid.UUID,
    body: ProcessContextUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if body.process.id != process_id:
        raise HTTPException(400, "Payload does not match the requested process")
    process = await _load(db, user, process_id, manage=True)
    process = await process_service.save_process_context(db, process, body, user)
    return _response(process)


@router.patch("/{process_id}", response_model=ProcessSummary)
async def rename_process(
    process_id: uuid.UUID,
    body: ProcessRename,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    process = await _load(db, user, process_id, manage=True)
    process.title = body.title
    await db.commit()
    await db.refresh(process)
    return process_service.to_process_summary(process)


@router.delete("/{process_id}", status_code=204)
async def delete_process(
    process_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    process = await _load(db, user, process_id, manage=True)
    await db.delete(process)
    await db.commit()
