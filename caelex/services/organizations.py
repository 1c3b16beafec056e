from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..constants import PLAN_MAX_USERS
from ..core.errors import ForbiddenError, InvalidInputError, NotFoundError
from ..models.models import Organization, OrganizationInvitation, OrganizationMember, User
from ..services import notifications as notification_service
from ..services.audit import audit_log
from ..services.permissions import (
    OrganizationRole,
    effective_permissions,
    get_default_permissions_for_role,
    has_permission,
    parse_role,
)
from ..utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug[:50].strip("-") or "organization"


def is_slug_available(session: Session, slug: str) -> bool:
    return session.query(Organization.id).filter(Organization.slug == slug).first() is None


def generate_unique_slug(session: Session, name: str) -> str:
    base = generate_slug(name)
    slug = base
    suffix = 0
    while not is_slug_available(session, slug):
        suffix += 1
        slug = f"{base}-{suffix}"
    return slug


def _sorted_permissions(role: OrganizationRole) -> List[str]:
    return sorted(get_default_permissions_for_role(role))


def get_membership(session: Session, organization_id: str, user_id: str) -> Optional[OrganizationMember]:
    return (
        session.query(OrganizationMember)
        .filter(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
        .first()
    )


def get_user_role(session: Session, organization_id: str, user_id: str) -> Optional[str]:
    membership = get_membership(session, organization_id, user_id)
    return membership.role if membership else None


def require_membership(session: Session, organization_id: str, user_id: str) -> OrganizationMember:
    membership = get_membership(session, organization_id, user_id)
    if not membership:
        raise ForbiddenError("You are not a member of this organization")
    return membership


def require_permission(
    session: Session,
    organization_id: str,
    user_id: str,
    permission: str,
) -> OrganizationMember:
    membership = require_membership(session, organization_id, user_id)
    if not has_permission(effective_permissions(membership.role, membership.permissions), permission):
        raise ForbiddenError(f"You do not have permission to perform this action ({permission})")
    return membership


def _owner_count(session: Session, organization_id: str) -> int:
    return (
        session.query(OrganizationMember)
        .filter(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == OrganizationRole.OWNER.value,
        )
        .count()
    )


# --- Organizations ---


def create_organization(session: Session, user_id: str, name: str, slug: Optional[str] = None) -> Organization:
    if slug:
        if not is_slug_available(session, slug):
            raise InvalidInputError("Organization slug is already taken")
    else:
        slug = generate_unique_slug(session, name)

    organization = Organization(name=name, slug=slug, plan="FREE", max_users=PLAN_MAX_USERS["FREE"])
    session.add(organization)
    session.flush()
    session.add(
        OrganizationMember(
            organization_id=organization.id,
            user_id=user_id,
            role=OrganizationRole.OWNER.value,
            permissions=_sorted_permissions(OrganizationRole.OWNER),
        )
    )
    session.flush()
    audit_log(
        session,
        actor_user_id=user_id,
        action="organization_created",
        entity_type="organization",
        entity_id=organization.id,
        after={"name": organization.name, "slug": organization.slug},
        description=f'Created organization "{organization.name}"',
    )
    return organization


def get_organization(session: Session, organization_id: str) -> Organization:
    organization = session.get(Organization, organization_id)
    if not organization:
        raise NotFoundError("Organization not found")
    return organization


def get_organization_for_member(session: Session, organization_id: str, user_id: str) -> Organization:
    organization = get_organization(session, organization_id)
    require_permission(session, organization_id, user_id, "org:read")
    return organization


def list_user_organizations(session: Session, user_id: str) -> List[Tuple[Organization, str]]:
    memberships = (
        session.query(OrganizationMember)
        .options(joinedload(OrganizationMember.organization))
        .filter(OrganizationMember.user_id == user_id)
        .order_by(OrganizationMember.joined_at.asc())
        .all()
    )
    return [(membership.organization, membership.role) for membership in memberships]


def list_members(session: Session, organization_id: str, acting_user_id: str) -> List[OrganizationMember]:
    require_permission(session, organization_id, acting_user_id, "members:read")
    members = (
        session.query(OrganizationMember)
        .options(joinedload(OrganizationMember.user))
        .filter(OrganizationMember.organization_id == organization_id)
        .order_by(OrganizationMember.joined_at.asc())
        .all()
    )
    order = {role.value: index for index, role in enumerate(OrganizationRole)}
    return sorted(members, key=lambda member: order.get(member.role, len(order)))


def _check_capacity(session: Session, organization: Organization) -> None:
    if organization.max_users < 0:
        return
    count = (
        session.query(OrganizationMember)
        .filter(OrganizationMember.organization_id == organization.id)
        .count()
    )
    if count >= organization.max_users:
        raise InvalidInputError(f"Organization has reached maximum user limit ({organization.max_users})")


def add_member(
    session: Session,
    organization_id: str,
    user_id: str,
    role: str,
    acting_user_id: str,
) -> OrganizationMember:
    actor = require_permission(session, organization_id, acting_user_id, "members:invite")
    new_role = parse_role(role)
    if new_role == OrganizationRole.OWNER and actor.role != OrganizationRole.OWNER.value:
        raise ForbiddenError("Only owners can add other owners")
    organization = get_organization(session, organization_id)
    if not session.get(User, user_id):
        raise NotFoundError("User not found")
    if get_membership(session, organization_id, user_id):
        raise InvalidInputError("User is already a member of this organization")
    _check_capacity(session, organization)

    member = OrganizationMember(
        organization_id=organization_id,
        user_id=user_id,
        role=new_role.value,
        invited_by=acting_user_id,
        permissions=_sorted_permissions(new_role),
    )
    session.add(member)
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="member_added",
        entity_type="organization",
        entity_id=organization_id,
        after={"userId": user_id, "role": new_role.value},
        description=f'Added member to organization "{organization.name}" with role {new_role.value}',
    )
    notification_service.notify_organization(
        session,
        organization_id,
        "MEMBER_JOINED",
        "New team member",
        f"A new member joined {organization.name} as {new_role.value}.",
        exclude_user_ids=[user_id],
    )
    return member


def update_member_role(
    session: Session,
    organization_id: str,
    target_user_id: str,
    new_role: str,
    acting_user_id: str,
) -> OrganizationMember:
    """Change a member's role.

    Checks run in a fixed order: actor membership, ``members:role``, the role
    value itself, OWNER promotion, then owner self-demotion. An owner can never
    demote themself, even when other owners exist.
    """
    actor = require_permission(session, organization_id, acting_user_id, "members:role")
    role = parse_role(new_role)
    actor_is_owner = actor.role == OrganizationRole.OWNER.value

    if role == OrganizationRole.OWNER and not actor_is_owner:
        raise ForbiddenError("Only owners can assign the OWNER role")
    if target_user_id == acting_user_id and actor_is_owner and role != OrganizationRole.OWNER:
        raise InvalidInputError("Owners cannot demote themselves")

    membership = get_membership(session, organization_id, target_user_id)
    if not membership:
        raise NotFoundError("User is not a member of this organization")

    previous_role = membership.role
    if previous_role == OrganizationRole.OWNER.value and role != OrganizationRole.OWNER:
        if not actor_is_owner:
            raise ForbiddenError("Only owners can change an owner's role")
        if _owner_count(session, organization_id) <= 1:
            raise InvalidInputError("Cannot change role: organization must have at least one owner")

    membership.role = role.value
    membership.permissions = _sorted_permissions(role)
    session.flush()

    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="member_role_updated",
        entity_type="organization",
        entity_id=organization_id,
        before={"userId": target_user_id, "role": previous_role},
        after={"userId": target_user_id, "role": role.value},
        description=f"Changed member role from {previous_role} to {role.value}",
    )
    if target_user_id != acting_user_id:
        notification_service.notify_user(
            session,
            user_id=target_user_id,
            notification_type="MEMBER_ROLE_CHANGED",
            title="Your role has changed",
            message=f"Your role was changed from {previous_role} to {role.value}.",
            entity_type="organization",
            entity_id=organization_id,
            organization_id=organization_id,
        )
    logger.info("Member %s in %s: %s -> %s", target_user_id, organization_id, previous_role, role.value)
    return membership


def remove_member(
    session: Session,
    organization_id: str,
    target_user_id: str,
    acting_user_id: str,
) -> None:
    """Remove a member. Leaving an organization never needs a permission."""
    if target_user_id == acting_user_id:
        require_membership(session, organization_id, acting_user_id)
    else:
        require_permission(session, organization_id, acting_user_id, "members:remove")

    membership = get_membership(session, organization_id, target_user_id)
    if not membership:
        raise NotFoundError("User is not a member of this organization")
    if membership.role == OrganizationRole.OWNER.value and _owner_count(session, organization_id) <= 1:
        raise InvalidInputError("Cannot remove: organization must have at least one owner")

    previous = {"userId": target_user_id, "role": membership.role}
    session.delete(membership)
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="member_removed",
        entity_type="organization",
        entity_id=organization_id,
        before=previous,
        description="Left organization" if target_user_id == acting_user_id else "Removed member from organization",
    )
    notification_service.notify_organization(
        session,
        organization_id,
        "MEMBER_LEFT",
        "Team member left",
        "A member is no longer part of the organization.",
        exclude_user_ids=[target_user_id],
    )


# --- Invitations ---


def _new_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def create_invitation(
    session: Session,
    organization_id: str,
    email: str,
    role: str,
    acting_user_id: str,
) -> OrganizationInvitation:
    require_permission(session, organization_id, acting_user_id, "members:invite")
    invited_role = parse_role(role)
    if invited_role == OrganizationRole.OWNER:
        raise InvalidInputError("Cannot invite a member as OWNER")
    organization = get_organization(session, organization_id)
    email = email.lower()

    existing_user = session.query(User).filter(User.email == email).first()
    if existing_user and get_membership(session, organization_id, existing_user.id):
        raise InvalidInputError("User is already a member of this organization")

    now = utcnow()
    pending = (
        session.query(OrganizationInvitation)
        .filter(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.email == email,
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at > now,
        )
        .first()
    )
    if pending:
        raise InvalidInputError("An invitation has already been sent to this email")

    invitation = OrganizationInvitation(
        organization_id=organization_id,
        email=email,
        role=invited_role.value,
        token=_new_invitation_token(),
        invited_by=acting_user_id,
        expires_at=now + timedelta(days=settings.invitation_ttl_days),
    )
    session.add(invitation)
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="invitation_created",
        entity_type="organization",
        entity_id=organization_id,
        after={"email": email, "role": invited_role.value},
        description=f"Invited {email} to {organization.name} as {invited_role.value}",
    )
    if existing_user:
        notification_service.notify_user(
            session,
            user_id=existing_user.id,
            notification_type="INVITATION_RECEIVED",
            title="Organization invitation",
            message=f"You have been invited to join {organization.name}.",
            entity_type="organization",
            entity_id=organization_id,
        )
    return invitation


def list_invitations(session: Session, organization_id: str, acting_user_id: str) -> List[OrganizationInvitation]:
    require_permission(session, organization_id, acting_user_id, "members:invite")
    return (
        session.query(OrganizationInvitation)
        .filter(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at > utcnow(),
        )
        .order_by(OrganizationInvitation.created_at.desc())
        .all()
    )


def _get_invitation(session: Session, organization_id: str, invitation_id: str) -> OrganizationInvitation:
    invitation = (
        session.query(OrganizationInvitation)
        .filter(
            OrganizationInvitation.id == invitation_id,
            OrganizationInvitation.organization_id == organization_id,
        )
        .first()
    )
    if not invitation:
        raise NotFoundError("Invitation not found")
    return invitation


def cancel_invitation(session: Session, organization_id: str, invitation_id: str, acting_user_id: str) -> None:
    require_permission(session, organization_id, acting_user_id, "members:invite")
    invitation = _get_invitation(session, organization_id, invitation_id)
    previous = {"email": invitation.email, "role": invitation.role}
    session.delete(invitation)
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="invitation_cancelled",
        entity_type="organization",
        entity_id=organization_id,
        before=previous,
        description=f"Cancelled invitation for {previous['email']}",
    )


def resend_invitation(
    session: Session,
    organization_id: str,
    invitation_id: str,
    acting_user_id: str,
) -> OrganizationInvitation:
    require_permission(session, organization_id, acting_user_id, "members:invite")
    invitation = _get_invitation(session, organization_id, invitation_id)
    if invitation.accepted_at:
        raise InvalidInputError("Invitation has already been accepted")
    invitation.token = _new_invitation_token()
    invitation.expires_at = utcnow() + timedelta(days=settings.invitation_ttl_days)
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="invitation_resent",
        entity_type="organization",
        entity_id=organization_id,
        description=f"Resent invitation to {invitation.email}",
    )
    return invitation


def accept_invitation(session: Session, token: str, user: User) -> OrganizationMember:
    invitation = (
        session.query(OrganizationInvitation)
        .options(joinedload(OrganizationInvitation.organization))
        .filter(OrganizationInvitation.token == token)
        .first()
    )
    if not invitation:
        raise NotFoundError("Invalid invitation token")
    if invitation.accepted_at:
        raise InvalidInputError("Invitation has already been accepted")
    if as_utc(invitation.expires_at) < utcnow():
        raise InvalidInputError("Invitation has expired")
    if invitation.email.lower() != (user.email or "").lower():
        raise ForbiddenError("This invitation was sent to a different email address")
    if get_membership(session, invitation.organization_id, user.id):
        raise InvalidInputError("User is already a member of this organization")
    _check_capacity(session, invitation.organization)

    role = parse_role(invitation.role)
    invitation.accepted_at = utcnow()
    member = OrganizationMember(
        organization_id=invitation.organization_id,
        user_id=user.id,
        role=role.value,
        invited_by=invitation.invited_by,
        permissions=_sorted_permissions(role),
    )
    session.add(member)
    session.flush()
    audit_log(
        session,
        actor_user_id=user.id,
        action="invitation_accepted",
        entity_type="organization",
        entity_id=invitation.organization_id,
        after={"role": role.value},
        description=f'Accepted invitation to join "{invitation.organization.name}"',
    )
    return member


def cleanup_expired_invitations(session: Session) -> int:
    return (
        session.query(OrganizationInvitation)
        .filter(
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at < utcnow(),
        )
        .delete(synchronize_session=False)
    )


# --- Admin ---


def list_all_organizations(session: Session, limit: int = 50, offset: int = 0) -> Tuple[List[Dict], int]:
    query = session.query(Organization).order_by(Organization.created_at.desc())
    total = query.count()
    organizations = query.offset(offset).limit(limit).all()
    rows = []
    for organization in organizations:
        member_count = (
            session.query(OrganizationMember)
            .filter(OrganizationMember.organization_id == organization.id)
            .count()
        )
        rows.append({"organization": organization, "member_count": member_count})
    return rows, total


def admin_update_organization(
    session: Session,
    organization_id: str,
    acting_user_id: str,
    plan: Optional[str] = None,
    is_active: Optional[bool] = None,
    max_users: Optional[int] = None,
) -> Organization:
    organization = get_organization(session, organization_id)
    before = {"plan": organization.plan, "isActive": organization.is_active, "maxUsers": organization.max_users}
    if plan is not None:
        organization.plan = plan
        if max_users is None:
            organization.max_users = PLAN_MAX_USERS[plan]
    if max_users is not None:
        organization.max_users = max_users
    if is_active is not None:
        organization.is_active = is_active
    session.flush()
    audit_log(
        session,
        actor_user_id=acting_user_id,
        action="organization_admin_updated",
        entity_type="organization",
        entity_id=organization.id,
        before=before,
        after={"plan": organization.plan, "isActive": organization.is_active, "maxUsers": organization.max_users},
    )
    return organization
