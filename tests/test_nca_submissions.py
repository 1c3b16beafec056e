import json
from datetime import timedelta

import pytest

from caelex.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from caelex.models.models import AuditLog, Notification
from caelex.schemas.schemas import NCAResendRequest, NCAStatusUpdate, NCASubmitRequest
from caelex.services import nca_submissions as submission_service
from caelex.utils.dates import utcnow


def test_malformed_attachments_decode_to_empty_list(db_session, create_user, create_submission):
    user = create_user()
    submission = create_submission(user, attachments="{not json", status_history='{"status": "SUBMITTED"}')

    enriched = submission_service.enrich_submission(submission)

    assert enriched["attachments"] == []
    assert enriched["status_history"] == []
    assert enriched["status_label"] == "Submitted"
    assert enriched["nca_authority_label"].startswith("Federal Ministry")


def test_submit_requires_owned_report(db_session, create_user, create_report, ctx_for):
    owner = create_user()
    other = create_user()
    report = create_report(owner)
    payload = NCASubmitRequest(report_id=report.id, nca_authority="DE_BMWK", submission_method="EMAIL")

    with pytest.raises(NotFoundError, match="Report not found or access denied"):
        submission_service.submit_to_nca(db_session, ctx_for(other), payload)


def test_submit_requires_generated_or_ready_report(db_session, create_user, create_report, ctx_for):
    user = create_user()
    report = create_report(user, status="draft")
    payload = NCASubmitRequest(report_id=report.id, nca_authority="DE_BMWK", submission_method="EMAIL")

    with pytest.raises(InvalidInputError):
        submission_service.submit_to_nca(db_session, ctx_for(user), payload)


def test_submit_marks_report_and_records_history(db_session, create_user, create_report, ctx_for):
    user = create_user()
    report = create_report(user, status="ready")
    payload = NCASubmitRequest(
        report_id=report.id,
        nca_authority="fr_cnes",
        submission_method="portal",
        attachments=[{"name": "annex.pdf"}],
    )

    submission = submission_service.submit_to_nca(db_session, ctx_for(user), payload)
    db_session.commit()

    assert submission.status == "SUBMITTED"
    assert submission.nca_authority == "FR_CNES"
    assert report.status == "submitted"
    history = json.loads(submission.status_history)
    assert [entry["status"] for entry in history] == ["SUBMITTED"]
    assert db_session.query(AuditLog).filter(AuditLog.action == "NCA_REPORT_SUBMITTED").count() == 1
    assert db_session.query(Notification).filter(Notification.type == "REPORT_SUBMITTED").count() == 1


def test_status_transition_table_is_enforced(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user, status="SUBMITTED")

    with pytest.raises(InvalidStateError):
        submission_service.update_submission_status(
            db_session, ctx_for(user), submission.id, NCAStatusUpdate(status="APPROVED")
        )

    submission_service.update_submission_status(
        db_session, ctx_for(user), submission.id, NCAStatusUpdate(status="UNDER_REVIEW", notes="Picked up")
    )
    updated = submission_service.update_submission_status(
        db_session,
        ctx_for(user),
        submission.id,
        NCAStatusUpdate(status="REJECTED", rejection_reason="Missing annex"),
    )
    assert updated.status == "REJECTED"
    assert updated.rejected_at is not None
    assert updated.rejection_reason == "Missing annex"
    statuses = [entry["status"] for entry in json.loads(updated.status_history)]
    assert statuses == ["UNDER_REVIEW", "REJECTED"]

    with pytest.raises(InvalidStateError):
        submission_service.update_submission_status(
            db_session, ctx_for(user), submission.id, NCAStatusUpdate(status="UNDER_REVIEW")
        )


def test_acknowledgment_sets_reference_and_notifies(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user, status="RECEIVED")

    updated = submission_service.record_acknowledgment(
        db_session, ctx_for(user), submission.id, nca_reference="BMWK-2030-17"
    )

    assert updated.status == "ACKNOWLEDGED"
    assert updated.nca_reference == "BMWK-2030-17"
    assert updated.acknowledged_at is not None
    assert db_session.query(Notification).filter(Notification.type == "NCA_ACKNOWLEDGED").count() == 1


def test_resend_links_original_and_merges_attachments(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    original = create_submission(user, status="REJECTED", attachments=json.dumps([{"name": "a.pdf"}]))

    resent = submission_service.resend_submission(
        db_session,
        ctx_for(user),
        original.id,
        NCAResendRequest(additional_attachments=[{"name": "b.pdf"}]),
    )

    assert resent.original_submission_id == original.id
    assert resent.resend_count == 1
    assert original.resend_count == 1
    assert [item["name"] for item in json.loads(resent.attachments)] == ["a.pdf", "b.pdf"]


def test_stats_count_recent_and_follow_ups(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    create_submission(user, status="UNDER_REVIEW", follow_up_required=True)
    create_submission(user, status="APPROVED", follow_up_required=True)
    create_submission(user, status="SUBMITTED", nca_authority="FR_CNES", submitted_at=utcnow() - timedelta(days=60))

    stats = submission_service.get_submission_stats(db_session, ctx_for(user))

    assert stats["total"] == 3
    assert stats["byStatus"] == {"UNDER_REVIEW": 1, "APPROVED": 1, "SUBMITTED": 1}
    assert stats["byAuthority"] == {"DE_BMWK": 2, "FR_CNES": 1}
    assert stats["pendingFollowUps"] == 1
    assert stats["recentSubmissions"] == 2


def test_list_endpoint_includes_stats_on_request(db_session, create_user, create_submission, client_for):
    user = create_user()
    create_submission(user, attachments="not-json")
    client = client_for(user)

    response = client.get("/nca/submissions", params={"includeStats": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["hasMore"] is False
    assert body["submissions"][0]["attachments"] == []
    assert body["submissions"][0]["statusColor"]
    assert body["stats"]["total"] == 1


def test_list_endpoint_omits_stats_by_default(db_session, create_user, create_submission, client_for):
    user = create_user()
    create_submission(user)
    client = client_for(user)

    response = client.get("/nca/submissions")

    assert response.status_code == 200
    assert response.json()["stats"] is None


def test_malformed_history_is_kept_when_status_changes(db_session, create_user, create_submission, ctx_for):
    user = create_user()
    submission = create_submission(user, status="SUBMITTED", status_history="SUBMITTED by fax, 2024-01-03")

    updated = submission_service.update_submission_status(
        db_session, ctx_for(user), submission.id, NCAStatusUpdate(status="UNDER_REVIEW")
    )

    history = json.loads(updated.status_history)
    assert history[0] == {"legacy": "SUBMITTED by fax, 2024-01-03"}
    assert history[1]["status"] == "UNDER_REVIEW"


def test_list_endpoint_tolerates_malformed_stored_json(db_session, create_user, create_submission, client_for):
    user = create_user()
    create_submission(user, attachments="{not json", status_history='{"status": "SUBMITTED"}')

    response = client_for(user).get("/nca/submissions", params={"includeStats": "true"})

    assert response.status_code == 200
    body = response.json()
    submission = body["submissions"][0]
    assert submission["attachments"] == []
    assert submission["statusHistory"] == []
    assert submission["ncaAuthorityCountry"] == "Germany"
    assert body["stats"]["byStatus"] == {"SUBMITTED": 1}


def test_active_endpoint_excludes_terminal_submissions(db_session, create_user, create_submission, client_for):
    user = create_user()
    open_submission = create_submission(user, status="UNDER_REVIEW")
    create_submission(user, status="APPROVED")
    create_submission(user, status="WITHDRAWN")
    create_submission(create_user(), status="SUBMITTED")

    response = client_for(user).get("/nca/submissions/active")

    assert response.status_code == 200
    assert [row["id"] for row in response.json()] == [open_submission.id]
