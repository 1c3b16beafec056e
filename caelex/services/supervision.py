from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..constants import SUBMITTABLE_REPORT_STATUSES
from ..core.request_context import RequestContext
from ..models.models import SupervisionConfig, SupervisionReport


@dataclass
class ReportFilters:
    report_type: Optional[str] = None
    status: Optional[str] = None


def get_supervision_config(session: Session, ctx: RequestContext) -> Optional[SupervisionConfig]:
    return session.query(SupervisionConfig).filter(SupervisionConfig.user_id == ctx.user_id).first()


def list_reports(
    session: Session,
    ctx: RequestContext,
    filters: Optional[ReportFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[SupervisionReport], int]:
    """Reports from the caller's supervision config. Users without one simply have none."""
    config = get_supervision_config(session, ctx)
    if not config:
        return [], 0
    query = session.query(SupervisionReport).filter(SupervisionReport.supervision_id == config.id)
    if filters:
        if filters.report_type:
            query = query.filter(SupervisionReport.report_type == filters.report_type)
        if filters.status:
            query = query.filter(SupervisionReport.status == filters.status.lower())
    total = query.count()
    rows = (
        query.order_by(SupervisionReport.created_at.desc(), SupervisionReport.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def get_report_summary(session: Session, ctx: RequestContext) -> Dict[str, Any]:
    config = get_supervision_config(session, ctx)
    reports = (
        session.query(SupervisionReport).filter(SupervisionReport.supervision_id == config.id).all()
        if config
        else []
    )
    return {
        "total": len(reports),
        "by_type": dict(Counter(report.report_type for report in reports)),
        "by_status": dict(Counter(report.status for report in reports)),
        "pending_submission": sum(1 for report in reports if report.status in SUBMITTABLE_REPORT_STATUSES),
    }


def get_report_history(session: Session, supervision_id: str, limit: int = 50) -> List[SupervisionReport]:
    return (
        session.query(SupervisionReport)
        .filter(SupervisionReport.supervision_id == supervision_id)
        .order_by(SupervisionReport.created_at.desc())
        .limit(limit)
        .all()
    )
