from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, get_request_context
from ..config import settings
from ..core.request_context import RequestContext
from ..models.models import OrganizationMember, User
from ..schemas.schemas import (
    InvitationCreate,
    InvitationCreated,
    InvitationRead,
    MemberAdd,
    MemberDetail,
    MemberRead,
    MemberRoleResponse,
    MemberRoleUpdate,
    OrganizationCreate,
    OrganizationRead,
    OrganizationWithRole,
)
from ..services import organizations as organization_service

router = APIRouter()
invitations_router = APIRouter()


def _member_detail(member: OrganizationMember) -> MemberDetail:
    return MemberDetail(
        id=member.id,
        user_id=member.user_id,
        role=member.role,
        permissions=list(member.permissions or []),
        invited_by=member.invited_by,
        joined_at=member.joined_at,
        email=member.user.email if member.user else None,
        name=member.user.name if member.user else None,
    )


def _invite_url(token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/invitations/{token}"


@router.get("", response_model=List[OrganizationWithRole])
def list_organizations(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[OrganizationWithRole]:
    return [
        OrganizationWithRole(**OrganizationRead.model_validate(organization).model_dump(), role=role)
        for organization, role in organization_service.list_user_organizations(db, ctx.user_id)
    ]


@router.post("", response_model=OrganizationRead, status_code=201)
def create_organization(
    payload: OrganizationCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    organization = organization_service.create_organization(db, ctx.user_id, payload.name, payload.slug)
    db.commit()
    db.refresh(organization)
    return organization


@router.get("/{org_id}", response_model=OrganizationRead)
def get_organization(
    org_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return organization_service.get_organization_for_member(db, org_id, ctx.user_id)


# --- Members ---


@router.get("/{org_id}/members", response_model=List[MemberDetail])
def list_members(
    org_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[MemberDetail]:
    return [_member_detail(member) for member in organization_service.list_members(db, org_id, ctx.user_id)]


@router.post("/{org_id}/members", response_model=MemberDetail, status_code=201)
def add_member(
    org_id: str,
    payload: MemberAdd,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> MemberDetail:
    member = organization_service.add_member(db, org_id, payload.user_id, payload.role, ctx.user_id)
    db.commit()
    db.refresh(member)
    return _member_detail(member)


@router.patch("/{org_id}/members/{user_id}", response_model=MemberRoleResponse)
def update_member_role(
    org_id: str,
    user_id: str,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> MemberRoleResponse:
    member = organization_service.update_member_role(db, org_id, user_id, payload.role, ctx.user_id)
    db.commit()
    db.refresh(member)
    return MemberRoleResponse(
        member=MemberRead.model_validate(member),
        message="Member role updated successfully",
    )


@router.delete("/{org_id}/members/{user_id}")
def remove_member(
    org_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    organization_service.remove_member(db, org_id, user_id, ctx.user_id)
    db.commit()
    return {"success": True, "message": "Member removed successfully"}


# --- Invitations ---


@router.get("/{org_id}/invitations", response_model=List[InvitationRead])
def list_invitations(
    org_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return organization_service.list_invitations(db, org_id, ctx.user_id)


@router.post("/{org_id}/invitations", response_model=InvitationCreated, status_code=201)
def create_invitation(
    org_id: str,
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> InvitationCreated:
    invitation = organization_service.create_invitation(db, org_id, payload.email, payload.role, ctx.user_id)
    db.commit()
    db.refresh(invitation)
    return InvitationCreated(
        **InvitationRead.model_validate(invitation).model_dump(),
        token=invitation.token,
        invite_url=_invite_url(invitation.token),
    )


@router.post("/{org_id}/invitations/{invitation_id}/resend", response_model=InvitationRead)
def resend_invitation(
    org_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    invitation = organization_service.resend_invitation(db, org_id, invitation_id, ctx.user_id)
    db.commit()
    db.refresh(invitation)
    return invitation


@router.delete("/{org_id}/invitations/{invitation_id}")
def cancel_invitation(
    org_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    organization_service.cancel_invitation(db, org_id, invitation_id, ctx.user_id)
    db.commit()
    return {"success": True}


@invitations_router.post("/{token}/accept", response_model=MemberDetail)
def accept_invitation(
    token: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MemberDetail:
    member = organization_service.accept_invitation(db, token, user)
    db.commit()
    db.refresh(member)
    return _member_detail(member)
