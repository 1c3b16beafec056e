from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..schemas.schemas import AuditLogList, AuditLogRead, AuditSummaryResponse
from ..services import audit as audit_service
from ..utils.dates import utcnow

router = APIRouter()


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def audit_filters(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    actions: Optional[str] = Query(None, description="Comma separated actions."),
    entity_types: Optional[str] = Query(None, alias="entityTypes", description="Comma separated entity types."),
    entity_id: Optional[str] = Query(None, alias="entityId"),
) -> audit_service.AuditFilters:
    return audit_service.AuditFilters(
        start_date=start_date,
        end_date=end_date,
        actions=_split(actions),
        entity_types=_split(entity_types),
        entity_id=entity_id,
    )


def _read(entries) -> List[AuditLogRead]:
    return [AuditLogRead.model_validate(audit_service.serialize_entry(entry)) for entry in entries]


@router.get("", response_model=AuditLogList)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    filters: audit_service.AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> AuditLogList:
    entries, total = audit_service.get_audit_logs(db, ctx.user_id, filters, limit=limit, offset=offset)
    return AuditLogList(entries=_read(entries), **page_meta(total, limit, offset))


@router.get("/summary", response_model=AuditSummaryResponse)
def audit_summary(
    filters: audit_service.AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> AuditSummaryResponse:
    return AuditSummaryResponse(
        summary=audit_service.get_audit_summary(db, ctx.user_id, filters),
        filter_options=audit_service.get_audit_filter_options(db, ctx.user_id),
    )


@router.get("/export")
def export_audit_logs(
    format: str = Query("json"),
    filters: audit_service.AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Response:
    export_format = format.lower()
    content, media_type = audit_service.export_audit_logs(db, ctx.user_id, filters, export_format)
    filename = f"audit-log-{utcnow().date().isoformat()}.{export_format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/search", response_model=List[AuditLogRead])
def search_audit_logs(
    q: str = Query(...),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[AuditLogRead]:
    return _read(audit_service.search_audit_logs(db, ctx.user_id, q, limit=limit))


@router.get("/entity/{entity_type}/{entity_id}", response_model=List[AuditLogRead])
def entity_history(
    entity_type: str,
    entity_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[AuditLogRead]:
    return _read(audit_service.get_entity_audit_logs(db, ctx.user_id, entity_type, entity_id))
