from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.api.deps import get_current_user
from orgflow.config import settings
from orgflow.database import get_db
from orgflow.models.organization import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
)
from orgflow.models.user import User
from orgflow.schemas.organization import (
    InvitationAccept,
    InvitationCreate,
    InvitationCreated,
    InvitationRead,
    MemberRead,
    MemberRoleUpdate,
    OrganizationRead,
    OrganizationRename,
)
from orgflow.services.membership_service import (
    fetch_user_organizations,
    get_membership,
    require_membership,
    select_default_organization,
)

router = APIRouter(prefix="/organizations", tags=["organizations"])


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(48)


def _member_response(member: OrganizationMember) -> MemberRead:
    return MemberRead(
        user_id=member.user_id,
        email=member.user.email,
        display_name=member.user.display_name,
        role=member.role,
        joined_at=member.created_at,
    )


async def _owner_count(db: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == "owner",
        )
    )
    return result.scalar_one()


async def _load_organization(db: AsyncSession, organization_id: uuid.UUID) -> Organization:
    result = await db.execute(select(Organization).where(Organization.id == organization_id))
    return result.scalar_one()


@router.get("", response_model=list[OrganizationRead])
async def list_my_organizations(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    memberships = await fetch_user_organizations(db, user)
    default = select_default_organization(memberships)
    # default organization first, the rest by name
    ordered = sorted(memberships, key=lambda m: m != default)
    return [
        OrganizationRead(id=m.organization_id, name=m.organization_name, role=m.role)
        for m in ordered
    ]


@router.post("/invitations/accept", response_model=OrganizationRead)
async def accept_invitation(
    body: InvitationAccept,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = await db.execute(
        select(OrganizationInvitation).where(OrganizationInvitation.token == body.token)
    )
    invitation = result.scalar_one_or_none()
    if invitation is None or invitation.status != "pending":
        raise HTTPException(404, "Invitation not found")
    if invitation.expires_at < datetime.now(timezone.utc):
        raise HTTPException(410, "Invitation has expired")
    if invitation.email != user.email.lower():
        raise HTTPException(403, "This invitation was sent to another email address")

    membership = await get_membership(db, invitation.organization_id, user.id)
    if membership is None:
        membership = OrganizationMember(
            organization_id=invitation.organization_id,
            user_id=user.id,
            role=invitation.role,
        )
        db.add(membership)
    invitation.status = "accepted"
    invitation.accepted_at = datetime.now(timezone.utc)
    await db.commit()

    organization = await _load_organization(db, invitation.organization_id)
    return OrganizationRead(
        id=organization.id,
        name=organization.name,
        role=membership.role,
        created_at=organization.created_at,
    )


@router.get("/{organization_id}", response_model=OrganizationRead)
async def get_organization(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    membership = await require_membership(db, organization_id, user)
    organization = await _load_organization(db, organization_id)
    return OrganizationRead(
        id=organization.id,
        name=organization.name,
        role=membership.role,
        created_at=organization.created_at,
    )


@router.patch("/{organization_id}", response_model=OrganizationRead)
async def rename_organization(
    organization_id: uuid.UUID,
    body: OrganizationRename,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    membership = await require_membership(db, organization_id, user, manage=True)
    organization = await _load_organization(db, organization_id)
    organization.name = body.name
    await db.commit()
    await db.refresh(organization)
    return OrganizationRead(
        id=organization.id,
        name=organization.name,
        role=membership.role,
        created_at=organization.created_at,
    )


@router.get("/{organization_id}/members", response_model=list[MemberRead])
async def list_members(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_membership(db, organization_id, user)
    result = await db.execute(
        select(OrganizationMember)
        .where(OrganizationMember.organization_id == organization_id)
        .order_by(OrganizationMember.created_at)
        .execution_options(populate_existing=True)
    )
    return [_member_response(m) for m in result.scalars().all()]


@router.patch("/{organization_id}/members/{user_id}", response_model=MemberRead)
async def update_member_role(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    body: MemberRoleUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = await require_membership(db, organization_id, user, manage=True)
    member = await get_membership(db, organization_id, user_id)
    if member is None:
        raise HTTPException(404, "Member not found")
    if "owner" in (member.role, body.role) and actor.role != "owner":
        raise HTTPException(403, "Only owners can grant or revoke the owner role")
    if member.role == "owner" and body.role != "owner":
        if await _owner_count(db, organization_id) <= 1:
            raise HTTPException(400, "An organization needs at least one owner")
    member.role = body.role
    await db.commit()
    await db.refresh(member)
    return _member_response(member)


@router.delete("/{organization_id}/members/{user_id}", status_code=204)
async def remove_member(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = await require_membership(db, organization_id, user, manage=True)
    member = await get_membership(db, organization_id, user_id)
    if member is None:
        raise HTTPException(404, "Member not found")
    if member.role == "owner":
        if actor.role != "owner":
            raise HTTPException(403, "Only owners can remove an owner")
        if await _owner_count(db, organization_id) <= 1:
            raise HTTPException(400, "An organization needs at least one owner")
    await db.delete(member)
    await db.commit()


@router.get("/{organization_id}/invitations", response_model=list[InvitationRead])
async def list_invitations(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_membership(db, organization_id, user, manage=True)
    result = await db.execute(
        select(OrganizationInvitation)
        .where(OrganizationInvitation.organization_id == organization_id)
        .order_by(OrganizationInvitation.created_at.desc())
    )
    return result.scalars().all()


@router.post(
    "/{organization_id}/invitations", response_model=InvitationCreated, status_code=201
)
async def create_invitation(
    organization_id: uuid.UUID,
    body: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_membership(db, organization_id, user, manage=True)

    already_member = await db.execute(
        select(OrganizationMember.id)
        .join(User, User.id == OrganizationMember.user_id)
        .where(
            OrganizationMember.organization_id == organization_id,
            func.lower(User.email) == body.email,
        )
    )
    if already_member.first() is not None:
        raise HTTPException(409, "This user is already a member of the organization")

    pending = await db.execute(
        select(OrganizationInvitation.id).where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.email == body.email,
            OrganizationInvitation.status == "pending",
        )
    )
    if pending.first() is not None:
        raise HTTPException(409, "An invitation for this email is already pending")

    invitation = OrganizationInvitation(
        organization_id=organization_id,
        email=body.email,
        role=body.role,
        token=generate_invitation_token(),
        status="pending",
        invited_by=user.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
    )
    db.add(invitation)
    await db.commit()
    await db.refresh(invitation)
    return invitation


@router.delete("/{organization_id}/invitations/{invitation_id}", response_model=InvitationRead)
async def revoke_invitation(
    organization_id: uuid.UUID,
    invitation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await require_membership(db, organization_id, user, manage=True)
    result = await db.execute(
        select(OrganizationInvitation).where(
            OrganizationInvitation.id == invitation_id,
            OrganizationInvitation.organization_id == organization_id,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise HTTPException(404, "Invitation not found")
    if invitation.status != "pending":
        raise HTTPException(400, "Only pending invitations can be revoked")
    invitation.status = "revoked"
    await db.commit()
    await db.refresh(invitation)
    return invitation
