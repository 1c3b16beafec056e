from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..constants import (
    NCA_AUTHORITY_INFO,
    NCA_STATUS_COLORS,
    NCA_STATUS_LABELS,
    NCA_TERMINAL_STATUSES,
    SUBMISSION_METHOD_LABELS,
    SUBMITTABLE_REPORT_STATUSES,
)
from ..core.errors import InvalidInputError, InvalidStateError, NotFoundError
from ..core.request_context import RequestContext
from ..models.models import NCASubmission, SupervisionConfig, SupervisionReport
from ..schemas.schemas import NCAResendRequest, NCAStatusUpdate, NCASubmitRequest
from ..services import notifications as notification_service
from ..services.audit import audit_log
from ..utils.dates import as_utc, utcnow
from ..utils.json_fields import safe_json_parse_array

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"SUBMITTED", "WITHDRAWN"},
    "SUBMITTED": {"RECEIVED", "ACKNOWLEDGED", "UNDER_REVIEW", "WITHDRAWN"},
    "RECEIVED": {"UNDER_REVIEW", "ACKNOWLEDGED", "WITHDRAWN"},
    "ACKNOWLEDGED": {"UNDER_REVIEW", "APPROVED", "REJECTED", "WITHDRAWN"},
    "UNDER_REVIEW": {"INFORMATION_REQUESTED", "ACKNOWLEDGED", "APPROVED", "REJECTED", "WITHDRAWN"},
    "INFORMATION_REQUESTED": {"UNDER_REVIEW", "WITHDRAWN"},
    "APPROVED": set(),
    "REJECTED": set(),
    "WITHDRAWN": set(),
}

# Follow-ups stop counting once the authority has acknowledged the filing
FOLLOW_UP_CLOSED_STATUSES = NCA_TERMINAL_STATUSES | {"ACKNOWLEDGED"}


@dataclass
class SubmissionFilters:
    report_id: Optional[str] = None
    nca_authority: Optional[str] = None
    status: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


def get_authority_label(authority: str) -> str:
    info = NCA_AUTHORITY_INFO.get(authority)
    return info["name"] if info else authority


def get_authority_country(authority: str) -> str:
    info = NCA_AUTHORITY_INFO.get(authority)
    return info["country"] if info else "Unknown"


def get_status_label(status: str) -> str:
    return NCA_STATUS_LABELS.get(status, status)


def get_status_color(status: str) -> str:
    return NCA_STATUS_COLORS.get(status, "gray")


def get_method_label(method: str) -> str:
    return SUBMISSION_METHOD_LABELS.get(method, method)


def enrich_submission(submission: NCASubmission) -> Dict[str, Any]:
    """Row fields plus display labels, with the encoded JSON columns decoded."""
    data = {column.key: getattr(submission, column.key) for column in NCASubmission.__table__.columns}
    data["attachments"] = safe_json_parse_array(submission.attachments)
    data["status_history"] = safe_json_parse_array(submission.status_history)
    data["nca_authority_label"] = get_authority_label(submission.nca_authority)
    data["nca_authority_country"] = get_authority_country(submission.nca_authority)
    data["submission_method_label"] = get_method_label(submission.submission_method)
    data["status_label"] = get_status_label(submission.status)
    data["status_color"] = get_status_color(submission.status)
    return data


def _history_entry(status: str, notes: Optional[str], changed_by: Optional[str]) -> Dict[str, Any]:
    return {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "notes": notes,
        "changedBy": changed_by,
    }


def _append_history(submission: NCASubmission, entry: Dict[str, Any]) -> None:
    raw = submission.status_history
    history = safe_json_parse_array(raw)
    if not history and raw and raw.strip() != "[]":
        # Unreadable history is carried forward verbatim, never overwritten
        logger.warning("Submission %s has malformed status history; keeping it as a legacy entry", submission.id)
        history = [{"legacy": raw}]
    history.append(entry)
    submission.status_history = json.dumps(history)


def get_submission(session: Session, ctx: RequestContext, submission_id: str) -> NCASubmission:
    submission = (
        session.query(NCASubmission)
        .filter(NCASubmission.id == submission_id, NCASubmission.user_id == ctx.user_id)
        .first()
    )
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


def list_submissions(
    session: Session,
    ctx: RequestContext,
    filters: Optional[SubmissionFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[NCASubmission], int]:
    query = session.query(NCASubmission).filter(NCASubmission.user_id == ctx.user_id)
    if filters:
        if filters.report_id:
            query = query.filter(NCASubmission.report_id == filters.report_id)
        if filters.nca_authority:
            query = query.filter(NCASubmission.nca_authority == filters.nca_authority)
        if filters.status:
            query = query.filter(NCASubmission.status == filters.status)
        if filters.from_date:
            query = query.filter(NCASubmission.submitted_at >= as_utc(filters.from_date))
        if filters.to_date:
            query = query.filter(NCASubmission.submitted_at <= as_utc(filters.to_date))
    total = query.count()
    submissions = (
        query.order_by(NCASubmission.submitted_at.desc(), NCASubmission.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return submissions, total


def get_submission_stats(session: Session, ctx: RequestContext, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    recent_cutoff = now - timedelta(days=30)
    rows = (
        session.query(
            NCASubmission.status,
            NCASubmission.nca_authority,
            NCASubmission.submitted_at,
            NCASubmission.follow_up_required,
        )
        .filter(NCASubmission.user_id == ctx.user_id)
        .all()
    )
    by_status: Counter = Counter()
    by_authority: Counter = Counter()
    pending_follow_ups = 0
    recent = 0
    for status, authority, submitted_at, follow_up_required in rows:
        by_status[status] += 1
        by_authority[authority] += 1
        if follow_up_required and status not in FOLLOW_UP_CLOSED_STATUSES:
            pending_follow_ups += 1
        if as_utc(submitted_at) >= recent_cutoff:
            recent += 1
    return {
        "total": len(rows),
        "byStatus": dict(by_status),
        "byAuthority": dict(by_authority),
        "pendingFollowUps": pending_follow_ups,
        "recentSubmissions": recent,
    }


def submit_to_nca(session: Session, ctx: RequestContext, payload: NCASubmitRequest) -> NCASubmission:
    report = (
        session.query(SupervisionReport)
        .join(SupervisionConfig, SupervisionReport.supervision_id == SupervisionConfig.id)
        .filter(SupervisionReport.id == payload.report_id, SupervisionConfig.user_id == ctx.user_id)
        .first()
    )
    if not report:
        raise NotFoundError("Report not found or access denied")
    if report.status not in SUBMITTABLE_REPORT_STATUSES:
        raise InvalidInputError("Report must be in 'generated' or 'ready' state")

    info = NCA_AUTHORITY_INFO[payload.nca_authority]
    now = utcnow()
    submission = NCASubmission(
        user_id=ctx.user_id,
        report_id=report.id,
        nca_authority=payload.nca_authority,
        nca_authority_name=info["name"],
        nca_portal_url=info["portal_url"],
        submission_method=payload.submission_method,
        status="SUBMITTED",
        priority=payload.priority,
        submitted_at=now,
        submitted_by=ctx.user_id,
        cover_letter=payload.cover_letter,
        attachments=json.dumps(payload.attachments) if payload.attachments else None,
        status_history=json.dumps([_history_entry("SUBMITTED", "Initial submission", ctx.user_id)]),
        sla_deadline=payload.sla_deadline,
    )
    session.add(submission)

    report.status = "submitted"
    report.submitted_at = now
    session.flush()

    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="NCA_REPORT_SUBMITTED",
        entity_type="nca_submission",
        entity_id=submission.id,
        after={
            "reportId": report.id,
            "ncaAuthority": submission.nca_authority,
            "submissionMethod": submission.submission_method,
        },
        description=f"Submitted {report.report_type} report to {info['name']}",
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    notification_service.notify_user(
        session,
        user_id=ctx.user_id,
        notification_type="REPORT_SUBMITTED",
        title="Report submitted",
        message=f"Your report was submitted to {info['name']}.",
        entity_type="nca_submission",
        entity_id=submission.id,
    )
    logger.info("Submission %s filed with %s", submission.id, submission.nca_authority)
    return submission


def update_submission_status(
    session: Session,
    ctx: RequestContext,
    submission_id: str,
    update: NCAStatusUpdate,
    acknowledged_by: Optional[str] = None,
) -> NCASubmission:
    submission = get_submission(session, ctx, submission_id)
    current = submission.status
    target = update.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStateError(f"Cannot transition from {current} to {target}")

    now = utcnow()
    _append_history(submission, _history_entry(target, update.notes, ctx.user_id))
    submission.status = target

    if update.nca_reference:
        submission.nca_reference = update.nca_reference
    if update.response_notes or update.notes:
        submission.response_notes = update.response_notes or update.notes
    if update.follow_up_required is not None:
        submission.follow_up_required = update.follow_up_required
    if update.follow_up_deadline:
        submission.follow_up_deadline = update.follow_up_deadline
    if update.follow_up_notes:
        submission.follow_up_notes = update.follow_up_notes

    if target in ("ACKNOWLEDGED", "APPROVED"):
        submission.acknowledged_at = now
        if acknowledged_by:
            submission.acknowledged_by = acknowledged_by
    if target == "REJECTED":
        submission.rejected_at = now
        if update.rejection_reason:
            submission.rejection_reason = update.rejection_reason
    session.flush()

    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="nca_submission_status_changed",
        entity_type="nca_submission",
        entity_id=submission.id,
        before={"status": current},
        after={"status": target},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    if target == "ACKNOWLEDGED":
        notification_service.notify_user(
            session,
            user_id=submission.user_id,
            notification_type="NCA_ACKNOWLEDGED",
            title="Submission acknowledged",
            message=f"{get_authority_label(submission.nca_authority)} acknowledged your submission.",
            entity_type="nca_submission",
            entity_id=submission.id,
        )
    logger.info("Submission %s moved %s -> %s", submission.id, current, target)
    return submission


def record_acknowledgment(
    session: Session,
    ctx: RequestContext,
    submission_id: str,
    nca_reference: str,
    notes: Optional[str] = None,
    acknowledged_by: Optional[str] = None,
) -> NCASubmission:
    update = NCAStatusUpdate(status="ACKNOWLEDGED", nca_reference=nca_reference, notes=notes)
    return update_submission_status(session, ctx, submission_id, update, acknowledged_by=acknowledged_by)


def resend_submission(
    session: Session,
    ctx: RequestContext,
    submission_id: str,
    options: Optional[NCAResendRequest] = None,
) -> NCASubmission:
    original = get_submission(session, ctx, submission_id)
    options = options or NCAResendRequest()
    attachments = safe_json_parse_array(original.attachments) + list(options.additional_attachments or [])

    resend_count = original.resend_count + 1
    resent = NCASubmission(
        user_id=ctx.user_id,
        report_id=original.report_id,
        nca_authority=original.nca_authority,
        nca_authority_name=original.nca_authority_name,
        nca_portal_url=original.nca_portal_url,
        submission_method=options.submission_method or original.submission_method,
        status="SUBMITTED",
        priority=original.priority,
        submitted_at=utcnow(),
        submitted_by=ctx.user_id,
        cover_letter=options.cover_letter or original.cover_letter,
        attachments=json.dumps(attachments) if attachments else None,
        status_history=json.dumps(
            [_history_entry("SUBMITTED", f"Resend of submission {original.id}", ctx.user_id)]
        ),
        sla_deadline=original.sla_deadline,
        original_submission_id=original.id,
        resend_count=resend_count,
    )
    session.add(resent)
    original.resend_count = resend_count
    session.flush()

    audit_log(
        session,
        actor_user_id=ctx.user_id,
        action="nca_submission_resent",
        entity_type="nca_submission",
        entity_id=resent.id,
        after={"originalSubmissionId": original.id, "resendCount": resend_count},
        description=f"Resent submission {original.id} to {get_authority_label(original.nca_authority)}",
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return resent


def update_priority(session: Session, ctx: RequestContext, submission_id: str, priority: str) -> NCASubmission:
    submission = get_submission(session, ctx, submission_id)
    submission.priority = priority
    session.flush()
    return submission


def get_active_submissions(session: Session, ctx: RequestContext) -> List[NCASubmission]:
    return (
        session.query(NCASubmission)
        .filter(
            NCASubmission.user_id == ctx.user_id,
            NCASubmission.status.notin_(NCA_TERMINAL_STATUSES),
        )
        .order_by(NCASubmission.updated_at.desc())
        .all()
    )
