from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import DEFAULT_REMINDER_DAYS
from ..core.errors import InvalidInputError, InvalidStateError, NotFoundError
from ..core.request_context import RequestContext
from ..models.models import Deadline
from ..schemas.schemas import DeadlineCreate
from ..services.audit import audit_log
from ..utils.dates import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {"COMPLETED", "CANCELLED"}


@dataclass
class DeadlineFilters:
    status: Optional[str] = None
    category: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


def _due_soon_window() -> timedelta:
    return timedelta(days=settings.deadline_due_soon_days)


def derive_status(due_date: datetime, now: Optional[datetime] = None) -> str:
    """Status for a freshly scheduled deadline."""
    now = now or utcnow()
    due = as_utc(due_date)
    if due < now:
        return "OVERDUE"
    if due <= now + _due_soon_window():
        return "DUE_SOON"
    return "UPCOMING"


def derive_extension_status(new_due_date: datetime, now: Optional[datetime] = None) -> str:
    """Extensions landing in the past or at ``now`` are EXTENDED, never OVERDUE."""
    now = now or utcnow()
    due = as_utc(new_due_date)
    if due > now + _due_soon_window():
        return "UPCOMING"
    if due > now:
        return "DUE_SOON"
    return "EXTENDED"


def get_owned_deadline(session: Session, ctx: RequestContext, deadline_id: str) -> Deadline:
    deadline = (
        session.query(Deadline)
        .filter(Deadline.id == deadline_id, Deadline.user_id == ctx.user_id)
        .first()
    )
    if not deadline:
        raise NotFoundError("Deadline not found")
    return deadline


def create_deadline(session: Session, ctx: RequestContext, payload: DeadlineCreate) -> Deadline:
    deadline = Deadline(
        user_id=ctx.user_id,
        title=payload.title,
        description=payload.description,
        due_date=payload.due_date,
        category=payload.category,
        priority=payload.priority,
        status=derive_status(payload.due_date),
        module_source=payload.module_source,
        regulatory_ref=payload.regulatory_ref,
        reminder_days=payload.reminder_days or list(DEFAULT_REMINDER_DAYS),
    )
    session.add(deadline)
    session.flush()
    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="deadline_created",
        entity_type="deadline",
        entity_id=deadline.id,
        after={"title": deadline.title, "dueDate": isoformat(deadline.due_date), "status": deadline.status},
        description=f'Created deadline "{deadline.title}"',
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return deadline


def list_deadlines(
    session: Session,
    ctx: RequestContext,
    filters: Optional[DeadlineFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Deadline], int]:
    query = session.query(Deadline).filter(Deadline.user_id == ctx.user_id)
    if filters:
        if filters.status == "active":
            query = query.filter(Deadline.status.notin_(CLOSED_STATUSES))
        elif filters.status:
            query = query.filter(Deadline.status == filters.status.upper())
        if filters.category:
            query = query.filter(Deadline.category == filters.category)
        if filters.from_date:
            query = query.filter(Deadline.due_date >= as_utc(filters.from_date))
        if filters.to_date:
            query = query.filter(Deadline.due_date <= as_utc(filters.to_date))
    total = query.count()
    rows = query.order_by(Deadline.due_date.asc(), Deadline.id.asc()).offset(offset).limit(limit).all()
    return rows, total


def extend_deadline(
    session: Session,
    ctx: RequestContext,
    deadline_id: str,
    new_due_date: datetime,
    reason: str,
    approved_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Deadline:
    deadline = get_owned_deadline(session, ctx, deadline_id)
    if deadline.status == "COMPLETED":
        raise InvalidStateError("Cannot extend a completed deadline")

    new_due = as_utc(new_due_date)
    current_due = as_utc(deadline.due_date)
    if new_due <= current_due:
        raise InvalidInputError("New due date must be after the current due date")
    if not reason or not reason.strip():
        raise InvalidInputError("Extension reason is required")

    now = now or utcnow()
    before = {"dueDate": isoformat(current_due), "status": deadline.status}

    if deadline.original_due_date is None:
        deadline.original_due_date = current_due
    deadline.due_date = new_due
    deadline.status = derive_extension_status(new_due, now)
    deadline.extension_reason = reason.strip()
    deadline.extension_approved_by = approved_by
    deadline.extended_at = now
    session.flush()

    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="deadline_extended",
        entity_type="deadline",
        entity_id=deadline.id,
        before=before,
        after={"dueDate": isoformat(new_due), "status": deadline.status},
        description=(
            f'Extended deadline "{deadline.title}" from {current_due.date().isoformat()} '
            f"to {new_due.date().isoformat()}: {deadline.extension_reason}"
        ),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    logger.info("Deadline %s extended to %s (status=%s)", deadline.id, new_due.isoformat(), deadline.status)
    return deadline


def complete_deadline(session: Session, ctx: RequestContext, deadline_id: str) -> Deadline:
    deadline = get_owned_deadline(session, ctx, deadline_id)
    if deadline.status == "COMPLETED":
        raise InvalidStateError("Deadline is already completed")
    previous_status = deadline.status
    deadline.status = "COMPLETED"
    deadline.completed_at = utcnow()
    session.flush()
    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="deadline_status_changed",
        entity_type="deadline",
        entity_id=deadline.id,
        before={"status": previous_status},
        after={"status": "COMPLETED"},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return deadline
