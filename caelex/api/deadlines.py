from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..schemas.schemas import (
    DeadlineCreate,
    DeadlineExtendRequest,
    DeadlineExtendResponse,
    DeadlineList,
    DeadlineRead,
)
from ..services import deadlines as deadline_service

router = APIRouter()


@router.get("", response_model=DeadlineList)
def list_deadlines(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None, alias="from"),
    to_date: Optional[datetime] = Query(None, alias="to"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> DeadlineList:
    filters = deadline_service.DeadlineFilters(
        status=status,
        category=category,
        from_date=from_date,
        to_date=to_date,
    )
    rows, total = deadline_service.list_deadlines(db, ctx, filters, limit=limit, offset=offset)
    return DeadlineList(
        deadlines=[DeadlineRead.model_validate(row) for row in rows],
        **page_meta(total, limit, offset),
    )


@router.post("", response_model=DeadlineRead, status_code=201)
def create_deadline(
    payload: DeadlineCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> DeadlineRead:
    deadline = deadline_service.create_deadline(db, ctx, payload)
    db.commit()
    db.refresh(deadline)
    return DeadlineRead.model_validate(deadline)


@router.post("/{deadline_id}/extend", response_model=DeadlineExtendResponse)
def extend_deadline(
    deadline_id: str,
    payload: DeadlineExtendRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> DeadlineExtendResponse:
    deadline = deadline_service.extend_deadline(
        db,
        ctx,
        deadline_id,
        new_due_date=payload.new_due_date,
        reason=payload.reason,
        approved_by=payload.approved_by,
    )
    db.commit()
    db.refresh(deadline)
    return DeadlineExtendResponse(deadline=DeadlineRead.model_validate(deadline))


@router.post("/{deadline_id}/complete", response_model=DeadlineRead)
def complete_deadline(
    deadline_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> DeadlineRead:
    deadline = deadline_service.complete_deadline(db, ctx, deadline_id)
    db.commit()
    db.refresh(deadline)
    return DeadlineRead.model_validate(deadline)
