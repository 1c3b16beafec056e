"""Portal views over NCA submissions: correspondence, dashboard, pipeline, timeline and analytics."""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..constants import NCA_SUBMISSION_STATUSES, NCA_TERMINAL_STATUSES
from ..core.errors import InvalidInputError, NotFoundError
from ..core.request_context import RequestContext
from ..models.models import NCACorrespondence, NCASubmission
from ..schemas.schemas import CorrespondenceCreate
from ..services import notifications as notification_service
from ..services.audit import audit_log
from ..services.nca_submissions import get_status_label, get_submission
from ..utils.dates import as_utc, isoformat, parse_datetime, utcnow
from ..utils.json_fields import safe_json_parse_array

logger = logging.getLogger(__name__)

UPCOMING_WINDOW = timedelta(days=7)
TIMELINE_PREVIEW_CHARS = 200


def _response_days(submitted_at: datetime, acknowledged_at: datetime) -> int:
    return math.ceil((as_utc(acknowledged_at) - as_utc(submitted_at)).total_seconds() / 86400)


def _average_response_days(rows: Iterable[NCASubmission]) -> int:
    durations = [_response_days(row.submitted_at, row.acknowledged_at) for row in rows if row.acknowledged_at]
    if not durations:
        return 0
    return round(sum(durations) / len(durations))


def is_correspondence_overdue(entry: NCACorrespondence, now: Optional[datetime] = None) -> bool:
    if not entry.requires_response or entry.responded_at is not None or entry.response_deadline is None:
        return False
    return as_utc(entry.response_deadline) < (now or utcnow())


# --- Correspondence ---


def add_correspondence(
    session: Session,
    ctx: RequestContext,
    submission_id: str,
    payload: CorrespondenceCreate,
) -> NCACorrespondence:
    submission = get_submission(session, ctx, submission_id)
    if payload.requires_response and payload.response_deadline is None:
        raise InvalidInputError("A response deadline is required when a response is expected")

    entry = NCACorrespondence(
        submission_id=submission.id,
        direction=payload.direction,
        message_type=payload.message_type,
        subject=payload.subject,
        content=payload.content,
        sent_by=ctx.user_id if payload.direction == "OUTBOUND" else None,
        is_read=payload.direction == "OUTBOUND",
        requires_response=payload.requires_response,
        response_deadline=payload.response_deadline,
    )
    session.add(entry)
    session.flush()

    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="nca_correspondence_added",
        entity_type="nca_submission",
        entity_id=submission.id,
        after={"direction": entry.direction, "messageType": entry.message_type, "subject": entry.subject},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    if entry.direction == "INBOUND" and entry.requires_response:
        notification_service.notify_user(
            session,
            user_id=submission.user_id,
            notification_type="NCA_DEADLINE_APPROACHING",
            title="Authority response required",
            message=f"{submission.nca_authority_name or submission.nca_authority} expects a reply: {entry.subject}",
            entity_type="nca_submission",
            entity_id=submission.id,
        )
    return entry


def list_correspondence(session: Session, ctx: RequestContext, submission_id: str) -> List[NCACorrespondence]:
    submission = get_submission(session, ctx, submission_id)
    return (
        session.query(NCACorrespondence)
        .filter(NCACorrespondence.submission_id == submission.id)
        .order_by(NCACorrespondence.created_at.asc())
        .all()
    )


def _owned_correspondence(session: Session, ctx: RequestContext, correspondence_id: str) -> NCACorrespondence:
    entry = (
        session.query(NCACorrespondence)
        .join(NCASubmission, NCACorrespondence.submission_id == NCASubmission.id)
        .filter(NCACorrespondence.id == correspondence_id, NCASubmission.user_id == ctx.user_id)
        .first()
    )
    if not entry:
        raise NotFoundError("Correspondence not found")
    return entry


def mark_correspondence_read(session: Session, ctx: RequestContext, correspondence_id: str) -> NCACorrespondence:
    entry = _owned_correspondence(session, ctx, correspondence_id)
    if not entry.is_read:
        entry.is_read = True
        entry.read_at = utcnow()
        session.flush()
    return entry


def record_response(session: Session, ctx: RequestContext, correspondence_id: str) -> NCACorrespondence:
    entry = _owned_correspondence(session, ctx, correspondence_id)
    if not entry.requires_response:
        raise InvalidInputError("This correspondence does not require a response")
    if entry.responded_at is None:
        entry.responded_at = utcnow()
        session.flush()
    return entry


# --- Dashboard and views ---


def get_portal_dashboard(session: Session, ctx: RequestContext, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    horizon = now + UPCOMING_WINDOW
    active = session.query(NCASubmission).filter(
        NCASubmission.user_id == ctx.user_id,
        NCASubmission.status.notin_(NCA_TERMINAL_STATUSES),
    )
    active_count = active.count()
    pending_follow_ups = active.filter(NCASubmission.follow_up_required.is_(True)).count()
    upcoming_deadlines = active.filter(
        or_(
            and_(NCASubmission.sla_deadline >= now, NCASubmission.sla_deadline <= horizon),
            and_(NCASubmission.follow_up_deadline >= now, NCASubmission.follow_up_deadline <= horizon),
        )
    ).count()

    submissions = session.query(NCASubmission).filter(NCASubmission.user_id == ctx.user_id).all()
    recent = (
        session.query(NCACorrespondence, NCASubmission.nca_authority)
        .join(NCASubmission, NCACorrespondence.submission_id == NCASubmission.id)
        .filter(NCASubmission.user_id == ctx.user_id)
        .order_by(NCACorrespondence.created_at.desc())
        .limit(10)
        .all()
    )
    return {
        "activeSubmissions": active_count,
        "pendingFollowUps": pending_follow_ups,
        "upcomingDeadlines": upcoming_deadlines,
        "avgResponseDays": _average_response_days(submissions),
        "recentCorrespondence": [
            {
                "id": entry.id,
                "submissionId": entry.submission_id,
                "ncaAuthority": authority,
                "subject": entry.subject,
                "direction": entry.direction,
                "createdAt": isoformat(entry.created_at),
                "isRead": entry.is_read,
                "isOverdue": is_correspondence_overdue(entry, now),
            }
            for entry, authority in recent
        ],
        "submissionsByStatus": dict(Counter(row.status for row in submissions)),
    }


def _last_status_change(submission: NCASubmission) -> datetime:
    history = safe_json_parse_array(submission.status_history)
    if history and isinstance(history[-1], dict):
        try:
            parsed = parse_datetime(history[-1].get("timestamp"))
        except ValueError:
            parsed = None
        if parsed:
            return parsed
    return as_utc(submission.updated_at)


def get_submission_pipeline(
    session: Session,
    ctx: RequestContext,
    now: Optional[datetime] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    now = now or utcnow()
    pipeline: Dict[str, List[Dict[str, Any]]] = {status: [] for status in NCA_SUBMISSION_STATUSES}
    submissions = (
        session.query(NCASubmission)
        .filter(NCASubmission.user_id == ctx.user_id)
        .order_by(NCASubmission.updated_at.desc())
        .all()
    )
    for submission in submissions:
        if submission.status not in pipeline:
            continue
        days_in_status = math.ceil((now - _last_status_change(submission)).total_seconds() / 86400)
        pipeline[submission.status].append(
            {
                "id": submission.id,
                "ncaAuthority": submission.nca_authority,
                "ncaAuthorityName": submission.nca_authority_name,
                "status": submission.status,
                "priority": submission.priority,
                "submittedAt": isoformat(submission.submitted_at),
                "updatedAt": isoformat(submission.updated_at),
                "ncaReference": submission.nca_reference,
                "slaDeadline": isoformat(submission.sla_deadline),
                "correspondenceCount": len(submission.correspondence),
                "reportTitle": submission.report.title if submission.report else None,
                "daysInStatus": max(days_in_status, 0),
            }
        )
    return pipeline


def get_submission_timeline(session: Session, ctx: RequestContext, submission_id: str) -> List[Dict[str, Any]]:
    submission = get_submission(session, ctx, submission_id)
    entries: List[Dict[str, Any]] = []

    for item in safe_json_parse_array(submission.status_history):
        if not isinstance(item, dict) or "status" not in item:
            continue
        try:
            timestamp = parse_datetime(item.get("timestamp"))
        except ValueError:
            continue
        if timestamp is None:
            continue
        entries.append(
            {
                "id": f"status-{item.get('timestamp')}",
                "type": "status_change",
                "timestamp": timestamp,
                "title": f"Status changed to {get_status_label(item['status'])}",
                "description": item.get("notes") or "",
                "metadata": {"status": item["status"]},
            }
        )

    for entry in submission.correspondence:
        prefix = "Received" if entry.direction == "INBOUND" else "Sent"
        entries.append(
            {
                "id": f"corr-{entry.id}",
                "type": "correspondence",
                "timestamp": as_utc(entry.created_at),
                "title": f"{prefix}: {entry.subject}",
                "description": entry.content[:TIMELINE_PREVIEW_CHARS],
                "metadata": {
                    "correspondenceId": entry.id,
                    "direction": entry.direction,
                    "messageType": entry.message_type,
                    "requiresResponse": entry.requires_response,
                },
            }
        )

    entries.sort(key=lambda item: item["timestamp"], reverse=True)
    for item in entries:
        item["timestamp"] = item["timestamp"].isoformat()
    return entries


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=utcnow().tzinfo)


def get_analytics(session: Session, ctx: RequestContext, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    submissions = session.query(NCASubmission).filter(NCASubmission.user_id == ctx.user_id).all()

    approved = sum(1 for row in submissions if row.status == "APPROVED")
    terminal = sum(1 for row in submissions if row.status in NCA_TERMINAL_STATUSES)
    approval_rate = round(approved / terminal * 100) if terminal else 0

    by_authority: Dict[str, Dict[str, Any]] = {}
    for row in submissions:
        bucket = by_authority.setdefault(
            row.nca_authority,
            {"authority": row.nca_authority, "name": row.nca_authority_name, "total": 0, "approved": 0, "_rows": []},
        )
        bucket["total"] += 1
        if row.status == "APPROVED":
            bucket["approved"] += 1
        bucket["_rows"].append(row)
    authorities = []
    for bucket in by_authority.values():
        rows = bucket.pop("_rows")
        bucket["avgDays"] = _average_response_days(rows)
        authorities.append(bucket)

    by_month = []
    for offset in range(11, -1, -1):
        month_index = now.year * 12 + (now.month - 1) - offset
        start = _month_start(month_index // 12, month_index % 12 + 1)
        following = month_index + 1
        end = _month_start(following // 12, following % 12 + 1)
        in_month = [row for row in submissions if start <= as_utc(row.submitted_at) < end]
        by_month.append(
            {
                "month": start.strftime("%Y-%m"),
                "submitted": len(in_month),
                "approved": sum(1 for row in in_month if row.status == "APPROVED"),
                "rejected": sum(1 for row in in_month if row.status == "REJECTED"),
            }
        )

    return {
        "totalSubmissions": len(submissions),
        "approvalRate": approval_rate,
        "avgResponseDays": _average_response_days(submissions),
        "byAuthority": authorities,
        "byMonth": by_month,
    }
