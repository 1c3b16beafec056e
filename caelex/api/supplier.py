from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..schemas.schemas import (
    OutreachStatus,
    PortalTokenIssued,
    SupplierDataSubmit,
    SupplierRequestCreate,
    SupplierRequestRead,
    SupplierTokenRevoke,
)
from ..services import supplier_portal as supplier_service

# Public portal, reached through the emailed link
portal_router = APIRouter()
router = APIRouter()


@portal_router.get("/{token}/validate")
def validate_token(token: str, db: Session = Depends(get_db)):
    result = supplier_service.validate_portal_token(db, token)
    db.commit()
    # Unknown token
    if result == {"valid": False}:
        return JSONResponse(status_code=404, content=result)
    return result


@portal_router.post("/{token}")
def submit_data(token: str, payload: SupplierDataSubmit, db: Session = Depends(get_db)) -> dict:
    supplier_service.submit_supplier_data(db, token, payload.response_data)
    db.commit()
    return {"success": True, "message": "Thank you. Your data has been received."}


@router.post("/supplier-requests", response_model=SupplierRequestRead, status_code=201)
def create_request(
    payload: SupplierRequestCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    request = supplier_service.create_supplier_request(db, ctx, payload)
    db.commit()
    db.refresh(request)
    return request


@router.get("/supplier-requests/status", response_model=OutreachStatus)
def outreach_status(
    assessment_id: Optional[str] = Query(None, alias="assessmentId"),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> OutreachStatus:
    return OutreachStatus(**supplier_service.get_outreach_status(db, ctx, assessment_id))


@router.post("/supplier-requests/{request_id}/outreach", response_model=PortalTokenIssued, status_code=201)
def send_outreach(
    request_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> PortalTokenIssued:
    token = supplier_service.issue_portal_token(db, ctx, request_id)
    db.commit()
    return PortalTokenIssued(
        token=token.token,
        portal_url=supplier_service.build_portal_url(token.token),
        expires_at=token.expires_at,
    )


@router.delete("/supplier-tokens/{token_id}")
def revoke_token(
    token_id: str,
    payload: Optional[SupplierTokenRevoke] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    supplier_service.revoke_portal_token(db, ctx, token_id, reason=payload.reason if payload else None)
    db.commit()
    return {"success": True}
