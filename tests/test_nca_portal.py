import json
from datetime import datetime, timedelta, timezone

import pytest

from caelex.core.errors import InvalidInputError, NotFoundError
from caelex.models.models import NCACorrespondence, Notification
from caelex.schemas.schemas import CorrespondenceCreate
from caelex.services import nca_portal as portal_service
from caelex.utils.dates import utcnow


def _inbound(subject="Request for clarification", requires_response=False, deadline=None):
    return CorrespondenceCreate(
        direction="inbound",
        message_type="email",
        subject=subject,
        content="Please provide the debris mitigation annex." * 20,
        requires_response=requires_response,
        response_deadline=deadline,
    )


def test_inbound_correspondence_requiring_reply_notifies_owner(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user)

    entry = portal_service.add_correspondence(
        db_session,
        ctx_for(user),
        submission.id,
        _inbound(requires_response=True, deadline=utcnow() + timedelta(days=5)),
    )

    assert entry.direction == "INBOUND"
    assert entry.is_read is False
    assert entry.sent_by is None
    assert db_session.query(Notification).filter(Notification.user_id == user.id).count() == 1


def test_reply_expected_needs_a_deadline(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user)
    with pytest.raises(InvalidInputError):
        portal_service.add_correspondence(db_session, ctx_for(user), submission.id, _inbound(requires_response=True))


def test_correspondence_is_scoped_to_submission_owner(db_session, create_user, create_submission, ctx_for):
    owner = create_user()
    other = create_user()
    submission = create_submission(owner)
    entry = portal_service.add_correspondence(db_session, ctx_for(owner), submission.id, _inbound())

    with pytest.raises(NotFoundError):
        portal_service.list_correspondence(db_session, ctx_for(other), submission.id)
    with pytest.raises(NotFoundError):
        portal_service.mark_correspondence_read(db_session, ctx_for(other), entry.id)


def test_overdue_is_derived_and_cleared_by_response(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user)
    entry = NCACorrespondence(
        submission_id=submission.id,
        direction="INBOUND",
        message_type="LETTER",
        subject="Missing data",
        content="Send the data",
        requires_response=True,
        response_deadline=utcnow() - timedelta(days=1),
    )
    db_session.add(entry)
    db_session.commit()

    assert portal_service.is_correspondence_overdue(entry)
    portal_service.record_response(db_session, ctx_for(user), entry.id)
    assert entry.responded_at is not None
    assert not portal_service.is_correspondence_overdue(entry)


def test_dashboard_counts(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    now = utcnow()
    create_submission(
        user,
        status="UNDER_REVIEW",
        follow_up_required=True,
        sla_deadline=now + timedelta(days=3),
        submitted_at=now - timedelta(days=10),
        acknowledged_at=now - timedelta(days=6),
    )
    create_submission(user, status="APPROVED", follow_up_required=True, sla_deadline=now + timedelta(days=2))
    create_submission(user, status="SUBMITTED", follow_up_deadline=now + timedelta(days=30))

    dashboard = portal_service.get_portal_dashboard(db_session, ctx_for(user), now=now)

    assert dashboard["activeSubmissions"] == 2
    assert dashboard["pendingFollowUps"] == 1
    assert dashboard["upcomingDeadlines"] == 1
    assert dashboard["avgResponseDays"] == 4
    assert dashboard["submissionsByStatus"] == {"UNDER_REVIEW": 1, "APPROVED": 1, "SUBMITTED": 1}
    assert dashboard["recentCorrespondence"] == []


def test_pipeline_buckets_every_status(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    now = utcnow()
    history = json.dumps([{"status": "UNDER_REVIEW", "timestamp": (now - timedelta(days=4)).isoformat()}])
    create_submission(user, status="UNDER_REVIEW", status_history=history)

    pipeline = portal_service.get_submission_pipeline(db_session, ctx_for(user), now=now)

    assert list(pipeline)[0] == "DRAFT"
    assert "WITHDRAWN" in pipeline
    [item] = pipeline["UNDER_REVIEW"]
    assert item["daysInStatus"] == 4
    assert item["correspondenceCount"] == 0


def test_timeline_merges_history_and_correspondence_newest_first(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    history = json.dumps(
        [
            {"status": "SUBMITTED", "timestamp": "2030-01-01T10:00:00+00:00", "notes": "Initial submission"},
            "garbage",
            {"status": "RECEIVED", "timestamp": "not a date"},
        ]
    )
    submission = create_submission(user, status_history=history)
    db_session.add(
        NCACorrespondence(
            submission_id=submission.id,
            direction="OUTBOUND",
            message_type="EMAIL",
            subject="Cover letter",
            content="x" * 500,
            created_at=datetime(2030, 1, 2, tzinfo=timezone.utc),
        )
    )
    db_session.commit()

    timeline = portal_service.get_submission_timeline(db_session, ctx_for(user), submission.id)

    assert [item["type"] for item in timeline] == ["correspondence", "status_change"]
    assert timeline[0]["title"] == "Sent: Cover letter"
    assert len(timeline[0]["description"]) == 200
    assert timeline[1]["title"] == "Status changed to Submitted"
    assert timeline[1]["description"] == "Initial submission"


def test_analytics_approval_rate_and_months(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    now = datetime(2030, 6, 15, tzinfo=timezone.utc)
    create_submission(user, status="APPROVED", submitted_at=datetime(2030, 6, 1, tzinfo=timezone.utc))
    create_submission(user, status="APPROVED", submitted_at=datetime(2030, 5, 1, tzinfo=timezone.utc))
    create_submission(user, status="REJECTED", submitted_at=datetime(2030, 5, 3, tzinfo=timezone.utc))
    create_submission(user, status="UNDER_REVIEW", submitted_at=datetime(2030, 6, 2, tzinfo=timezone.utc))

    analytics = portal_service.get_analytics(db_session, ctx_for(user), now=now)

    assert analytics["totalSubmissions"] == 4
    assert analytics["approvalRate"] == 67
    assert len(analytics["byMonth"]) == 12
    assert analytics["byMonth"][-1] == {"month": "2030-06", "submitted": 2, "approved": 1, "rejected": 0}
    assert analytics["byMonth"][-2] == {"month": "2030-05", "submitted": 2, "approved": 1, "rejected": 1}
    assert analytics["byMonth"][0]["month"] == "2029-07"
    assert analytics["byAuthority"][0]["total"] == 4


def test_portal_dashboard_endpoint(db_session, create_user, create_submission, client_for):
    user = create_user()
    create_submission(user)
    client = client_for(user)

    response = client.get("/nca/portal/dashboard")

    assert response.status_code == 200
    assert response.json()["activeSubmissions"] == 1
