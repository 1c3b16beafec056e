from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..schemas.schemas import SupervisionReportList, SupervisionReportRead, SupervisionReportSummary
from ..services import supervision as supervision_service

router = APIRouter()


@router.get("/reports", response_model=SupervisionReportList)
def list_reports(
    report_type: Optional[str] = Query(None, alias="reportType"),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> SupervisionReportList:
    filters = supervision_service.ReportFilters(report_type=report_type, status=status)
    rows, total = supervision_service.list_reports(db, ctx, filters, limit=limit, offset=offset)
    return SupervisionReportList(
        reports=[SupervisionReportRead.model_validate(row) for row in rows],
        **page_meta(total, limit, offset),
    )


@router.get("/reports/summary", response_model=SupervisionReportSummary)
def report_summary(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> SupervisionReportSummary:
    return SupervisionReportSummary(**supervision_service.get_report_summary(db, ctx))


@router.get("/reports/history", response_model=List[SupervisionReportRead])
def report_history(
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[SupervisionReportRead]:
    config = supervision_service.get_supervision_config(db, ctx)
    if not config:
        return []
    rows = supervision_service.get_report_history(db, config.id, limit=limit)
    return [SupervisionReportRead.model_validate(row) for row in rows]
