"""Supplier data requests and the token-gated public portal suppliers answer them through."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import InvalidInputError, InvalidStateError, NotFoundError
from ..core.request_context import RequestContext
from ..models.models import SupplierDataRequest, SupplierPortalToken
from ..schemas.schemas import SupplierRequestCreate
from ..services.audit import audit_log
from ..utils.dates import as_utc, isoformat, utcnow
from ..utils.json_fields import safe_json_parse_array, serialize

logger = logging.getLogger(__name__)

REPLACED_TOKEN_REASON = "Replaced with new token"


def generate_portal_token() -> str:
    return secrets.token_urlsafe(32)


def build_portal_url(token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/supplier/{token}"


def _is_token_active(token: SupplierPortalToken, now: datetime) -> bool:
    return not token.is_revoked and token.completed_at is None and as_utc(token.expires_at) > now


def get_owned_request(session: Session, ctx: RequestContext, request_id: str) -> SupplierDataRequest:
    request = (
        session.query(SupplierDataRequest)
        .filter(SupplierDataRequest.id == request_id, SupplierDataRequest.user_id == ctx.user_id)
        .first()
    )
    if not request:
        raise NotFoundError("Supplier data request not found")
    return request


def create_supplier_request(session: Session, ctx: RequestContext, payload: SupplierRequestCreate) -> SupplierDataRequest:
    request = SupplierDataRequest(
        user_id=ctx.user_id,
        assessment_id=payload.assessment_id,
        supplier_name=payload.supplier_name,
        supplier_email=payload.supplier_email,
        component_type=payload.component_type,
        data_required=serialize(payload.data_required),
        notes=payload.notes,
        deadline=payload.deadline,
        status="pending",
    )
    session.add(request)
    session.flush()
    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="supplier_request_created",
        entity_type="supplier_request",
        entity_id=request.id,
        after={"supplierName": request.supplier_name, "componentType": request.component_type},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return request


def issue_portal_token(
    session: Session,
    ctx: RequestContext,
    request_id: str,
    expiration_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SupplierPortalToken:
    """Create a fresh portal token for the request and mark it sent.

    Any token still active for the request is revoked first, so a supplier only
    ever holds one working link.
    """
    now = now or utcnow()
    request = get_owned_request(session, ctx, request_id)
    if not request.supplier_email:
        raise InvalidInputError("Supplier email not configured")

    for existing in request.tokens:
        if _is_token_active(existing, now):
            existing.is_revoked = True
            existing.revoked_at = now
            existing.revoke_reason = REPLACED_TOKEN_REASON

    days = expiration_days if expiration_days is not None else settings.supplier_token_ttl_days
    token = SupplierPortalToken(token=generate_portal_token(), expires_at=now + timedelta(days=days))
    request.tokens.append(token)
    request.status = "sent"
    request.sent_at = now
    session.flush()

    logger.info(
        "Supplier outreach queued",
        extra={"to": request.supplier_email, "subject": f"Environmental Data Request: {request.component_type}"},
    )
    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="supplier_outreach_sent",
        entity_type="supplier_request",
        entity_id=request.id,
        after={"tokenId": token.id, "expiresAt": isoformat(token.expires_at)},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return token


def revoke_portal_token(
    session: Session,
    ctx: RequestContext,
    token_id: str,
    reason: Optional[str] = None,
) -> SupplierPortalToken:
    token = (
        session.query(SupplierPortalToken)
        .join(SupplierDataRequest, SupplierPortalToken.request_id == SupplierDataRequest.id)
        .filter(SupplierPortalToken.id == token_id, SupplierDataRequest.user_id == ctx.user_id)
        .first()
    )
    if not token:
        raise NotFoundError("Portal token not found")
    if not token.is_revoked:
        token.is_revoked = True
        token.revoked_at = utcnow()
        token.revoked_by = ctx.user_id
        token.revoke_reason = reason
        session.flush()
        audit_log(
            session,
            actor_user_id=ctx.user_id,
            action="supplier_token_revoked",
            entity_type="supplier_request",
            entity_id=token.request_id,
            after={"tokenId": token.id, "reason": reason},
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
    return token


def _public_request_view(request: SupplierDataRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "supplierName": request.supplier_name,
        "componentType": request.component_type,
        "dataRequired": safe_json_parse_array(request.data_required),
        "notes": request.notes,
        "deadline": isoformat(request.deadline),
        "status": request.status,
    }


def validate_portal_token(session: Session, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    portal_token = session.query(SupplierPortalToken).filter(SupplierPortalToken.token == token).first()
    if not portal_token:
        return {"valid": False}
    if portal_token.is_revoked:
        return {"valid": False, "revoked": True}
    if as_utc(portal_token.expires_at) <= now:
        return {"valid": False, "expired": True}
    if portal_token.completed_at is not None:
        return {"valid": False, "completed": True}

    portal_token.access_count = (portal_token.access_count or 0) + 1
    portal_token.last_accessed_at = now
    session.flush()
    return {"valid": True, "request": _public_request_view(portal_token.request)}


def submit_supplier_data(
    session: Session,
    token: str,
    response_data: Dict[str, Any],
    now: Optional[datetime] = None,
) -> SupplierDataRequest:
    now = now or utcnow()
    portal_token = session.query(SupplierPortalToken).filter(SupplierPortalToken.token == token).first()
    if not portal_token:
        raise NotFoundError("Invalid portal link")
    if portal_token.is_revoked:
        raise InvalidStateError("This portal link has been revoked")
    if as_utc(portal_token.expires_at) <= now:
        raise InvalidStateError("This portal link has expired")
    if portal_token.completed_at is not None:
        raise InvalidStateError("Data has already been submitted for this request")

    request = portal_token.request
    request.response_data = serialize(response_data)
    request.status = "received"
    request.received_at = now
    portal_token.completed_at = now
    session.flush()

    audit_log(
        session,
        actor_user_id=None,
        action="supplier_data_received",
        entity_type="supplier_request",
        entity_id=request.id,
        after={"fields": sorted(response_data)},
        description=f"{request.supplier_name} submitted {request.component_type} data",
    )
    logger.info("Supplier data received for request %s", request.id)
    return request


def get_outreach_status(
    session: Session,
    ctx: RequestContext,
    assessment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    query = session.query(SupplierDataRequest).filter(SupplierDataRequest.user_id == ctx.user_id)
    if assessment_id:
        query = query.filter(SupplierDataRequest.assessment_id == assessment_id)
    requests = query.order_by(SupplierDataRequest.created_at.asc()).all()

    return {
        "total": len(requests),
        "pending": sum(1 for r in requests if r.status == "pending"),
        "sent": sum(1 for r in requests if r.status == "sent"),
        "received": sum(1 for r in requests if r.status == "received"),
        "overdue": sum(1 for r in requests if r.status == "sent" and r.deadline and as_utc(r.deadline) < now),
        "requests": [
            {
                "id": r.id,
                "supplierName": r.supplier_name,
                "componentType": r.component_type,
                "status": r.status,
                "sentAt": isoformat(r.sent_at),
                "receivedAt": isoformat(r.received_at),
                "deadline": isoformat(r.deadline),
                "hasActiveToken": any(_is_token_active(t, now) for t in r.tokens),
            }
            for r in requests
        ],
    }
