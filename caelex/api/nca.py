from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..models.models import NCASubmission
from ..schemas.schemas import (
    CorrespondenceCreate,
    CorrespondenceRead,
    NCAAcknowledgeRequest,
    NCAPriorityUpdate,
    NCAResendRequest,
    NCAStatusUpdate,
    NCASubmissionList,
    NCASubmissionRead,
    NCASubmissionStats,
    NCASubmitRequest,
)
from ..services import nca_portal as portal_service
from ..services import nca_submissions as submission_service

router = APIRouter()


def _read(submission: NCASubmission) -> NCASubmissionRead:
    return NCASubmissionRead.model_validate(submission_service.enrich_submission(submission))


# --- Submissions ---


@router.get("/submissions", response_model=NCASubmissionList)
def list_submissions(
    report_id: Optional[str] = Query(None, alias="reportId"),
    nca_authority: Optional[str] = Query(None, alias="ncaAuthority"),
    status: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    include_stats: bool = Query(False, alias="includeStats"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionList:
    filters = submission_service.SubmissionFilters(
        report_id=report_id,
        nca_authority=nca_authority,
        status=status.upper() if status else None,
        from_date=from_date,
        to_date=to_date,
    )
    rows, total = submission_service.list_submissions(db, ctx, filters, limit=limit, offset=offset)
    stats = NCASubmissionStats.model_validate(submission_service.get_submission_stats(db, ctx)) if include_stats else None
    return NCASubmissionList(
        submissions=[_read(row) for row in rows],
        stats=stats,
        **page_meta(total, limit, offset),
    )


@router.post("/submit", response_model=NCASubmissionRead, status_code=201)
def submit_report(
    payload: NCASubmitRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    submission = submission_service.submit_to_nca(db, ctx, payload)
    db.commit()
    db.refresh(submission)
    return _read(submission)


@router.get("/submissions/active", response_model=List[NCASubmissionRead])
def list_active_submissions(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> List[NCASubmissionRead]:
    return [_read(row) for row in submission_service.get_active_submissions(db, ctx)]


@router.get("/submissions/{submission_id}", response_model=NCASubmissionRead)
def get_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    return _read(submission_service.get_submission(db, ctx, submission_id))


@router.patch("/submissions/{submission_id}/status", response_model=NCASubmissionRead)
def update_status(
    submission_id: str,
    payload: NCAStatusUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    submission = submission_service.update_submission_status(db, ctx, submission_id, payload)
    db.commit()
    db.refresh(submission)
    return _read(submission)


@router.post("/submissions/{submission_id}/acknowledge", response_model=NCASubmissionRead)
def acknowledge_submission(
    submission_id: str,
    payload: NCAAcknowledgeRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    submission = submission_service.record_acknowledgment(
        db,
        ctx,
        submission_id,
        nca_reference=payload.nca_reference,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(submission)
    return _read(submission)


@router.post("/submissions/{submission_id}/resend", response_model=NCASubmissionRead, status_code=201)
def resend_submission(
    submission_id: str,
    payload: Optional[NCAResendRequest] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    submission = submission_service.resend_submission(db, ctx, submission_id, payload)
    db.commit()
    db.refresh(submission)
    return _read(submission)


@router.patch("/submissions/{submission_id}/priority", response_model=NCASubmissionRead)
def update_priority(
    submission_id: str,
    payload: NCAPriorityUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NCASubmissionRead:
    submission = submission_service.update_priority(db, ctx, submission_id, payload.priority)
    db.commit()
    db.refresh(submission)
    return _read(submission)


# --- Correspondence ---


@router.get("/submissions/{submission_id}/correspondence", response_model=List[CorrespondenceRead])
def list_correspondence(
    submission_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return portal_service.list_correspondence(db, ctx, submission_id)


@router.post(
    "/submissions/{submission_id}/correspondence",
    response_model=CorrespondenceRead,
    status_code=201,
)
def add_correspondence(
    submission_id: str,
    payload: CorrespondenceCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    entry = portal_service.add_correspondence(db, ctx, submission_id, payload)
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/correspondence/{correspondence_id}/read", response_model=CorrespondenceRead)
def mark_correspondence_read(
    correspondence_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    entry = portal_service.mark_correspondence_read(db, ctx, correspondence_id)
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/correspondence/{correspondence_id}/respond", response_model=CorrespondenceRead)
def record_response(
    correspondence_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    entry = portal_service.record_response(db, ctx, correspondence_id)
    db.commit()
    db.refresh(entry)
    return entry


# --- Portal views ---


@router.get("/portal/dashboard")
def portal_dashboard(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    return portal_service.get_portal_dashboard(db, ctx)


@router.get("/portal/pipeline")
def portal_pipeline(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    return {"pipeline": portal_service.get_submission_pipeline(db, ctx)}


@router.get("/portal/analytics")
def portal_analytics(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    return portal_service.get_analytics(db, ctx)


@router.get("/portal/submissions/{submission_id}/timeline")
def submission_timeline(
    submission_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Dict[str, Any]:
    return {"timeline": portal_service.get_submission_timeline(db, ctx, submission_id)}
