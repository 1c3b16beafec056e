from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, page_meta
from ..auth.jwt import get_request_context
from ..core.request_context import RequestContext
from ..schemas.schemas import (
    CountResponse,
    MarkReadRequest,
    NotificationList,
    NotificationPreferencesRead,
    NotificationPreferencesUpdate,
    NotificationRead,
)
from ..services import notifications as notification_service

router = APIRouter()


@router.get("", response_model=NotificationList)
def list_notifications(
    read: Optional[bool] = Query(None),
    type: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None, alias="from"),
    to_date: Optional[datetime] = Query(None, alias="to"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> NotificationList:
    filters = notification_service.NotificationFilters(
        read=read,
        type=type,
        severity=severity.upper() if severity else None,
        from_date=from_date,
        to_date=to_date,
    )
    rows, total, unread = notification_service.list_notifications(db, ctx.user_id, filters, limit, offset)
    return NotificationList(
        notifications=[NotificationRead.model_validate(row) for row in rows],
        unread_count=unread,
        **page_meta(total, limit, offset),
    )


@router.get("/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    return {"count": notification_service.get_unread_count(db, ctx.user_id)}


@router.post("/mark-read", response_model=CountResponse)
def mark_read(
    payload: MarkReadRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> CountResponse:
    if payload.all:
        count = notification_service.mark_all_as_read(db, ctx.user_id)
    else:
        count = notification_service.mark_as_read(db, ctx.user_id, payload.notification_ids or [])
    db.commit()
    return CountResponse(count=count)


@router.post("/dismiss-all", response_model=CountResponse)
def dismiss_all(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> CountResponse:
    count = notification_service.dismiss_all_notifications(db, ctx.user_id)
    db.commit()
    return CountResponse(count=count)


@router.post("/{notification_id}/dismiss")
def dismiss(
    notification_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    notification_service.dismiss_notification(db, ctx.user_id, notification_id)
    db.commit()
    return {"success": True}


@router.get("/preferences", response_model=NotificationPreferencesRead)
def get_preferences(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return notification_service.get_or_default_preferences(db, ctx.user_id)


@router.put("/preferences", response_model=NotificationPreferencesRead)
def update_preferences(
    payload: NotificationPreferencesUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    preferences = notification_service.update_preferences(db, ctx.user_id, payload)
    db.commit()
    db.refresh(preferences)
    return preferences
