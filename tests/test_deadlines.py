from datetime import datetime, timedelta, timezone

import pytest

from caelex.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from caelex.models.models import AuditLog, Deadline
from caelex.services import deadlines as deadline_service
from caelex.utils.dates import as_utc, utcnow


def test_extension_status_depends_on_new_date():
    now = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert deadline_service.derive_extension_status(now + timedelta(days=8), now) == "UPCOMING"
    assert deadline_service.derive_extension_status(now + timedelta(days=3), now) == "DUE_SOON"
    assert deadline_service.derive_extension_status(now - timedelta(days=1), now) == "EXTENDED"
    assert deadline_service.derive_extension_status(now, now) == "EXTENDED"


def test_creation_status_uses_overdue_for_past_dates():
    now = datetime(2030, 6, 1, tzinfo=timezone.utc)
    assert deadline_service.derive_status(now - timedelta(days=1), now) == "OVERDUE"
    assert deadline_service.derive_status(now + timedelta(days=2), now) == "DUE_SOON"
    assert deadline_service.derive_status(now + timedelta(days=20), now) == "UPCOMING"


def test_extend_to_earlier_or_same_date_is_rejected_and_row_unchanged(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    due = datetime(2030, 1, 1, tzinfo=timezone.utc)
    deadline = create_deadline(user, due_date=due)

    for candidate in (due, due - timedelta(days=1)):
        with pytest.raises(InvalidInputError):
            deadline_service.extend_deadline(db_session, ctx_for(user), deadline.id, candidate, "Need more time")

    db_session.refresh(deadline)
    assert as_utc(deadline.due_date) == due
    assert deadline.status == "UPCOMING"
    assert deadline.original_due_date is None
    assert db_session.query(AuditLog).count() == 0


def test_extend_requires_a_reason(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    deadline = create_deadline(user)
    with pytest.raises(InvalidInputError):
        deadline_service.extend_deadline(
            db_session, ctx_for(user), deadline.id, utcnow() + timedelta(days=90), "   "
        )


def test_completed_deadline_cannot_be_extended(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    deadline = create_deadline(user, status="COMPLETED")
    with pytest.raises(InvalidStateError):
        deadline_service.extend_deadline(
            db_session, ctx_for(user), deadline.id, utcnow() + timedelta(days=90), "Late data"
        )


def test_other_users_deadline_is_not_found(db_session, create_user, create_deadline, ctx_for):
    owner = create_user()
    intruder = create_user()
    deadline = create_deadline(owner)
    with pytest.raises(NotFoundError):
        deadline_service.extend_deadline(
            db_session, ctx_for(intruder), deadline.id, utcnow() + timedelta(days=90), "Mine now"
        )


def test_second_extension_keeps_first_original_date(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    first_due = datetime(2030, 1, 1, tzinfo=timezone.utc)
    deadline = create_deadline(user, due_date=first_due)
    ctx = ctx_for(user)

    deadline_service.extend_deadline(db_session, ctx, deadline.id, first_due + timedelta(days=30), "Supplier delay")
    deadline_service.extend_deadline(db_session, ctx, deadline.id, first_due + timedelta(days=60), "Second delay")
    db_session.commit()

    db_session.refresh(deadline)
    assert as_utc(deadline.original_due_date) == first_due
    assert as_utc(deadline.due_date) == first_due + timedelta(days=60)
    assert deadline.extension_reason == "Second delay"
    actions = [row.action for row in db_session.query(AuditLog).all()]
    assert actions.count("deadline_extended") == 2


def test_complete_twice_is_invalid_state(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    deadline = create_deadline(user)
    deadline_service.complete_deadline(db_session, ctx_for(user), deadline.id)
    assert deadline.status == "COMPLETED"
    assert deadline.completed_at is not None
    with pytest.raises(InvalidStateError):
        deadline_service.complete_deadline(db_session, ctx_for(user), deadline.id)


def test_list_active_excludes_closed(db_session, create_user, create_deadline, ctx_for):
    user = create_user()
    create_deadline(user, title="Open")
    create_deadline(user, title="Done", status="COMPLETED")
    create_deadline(user, title="Dropped", status="CANCELLED")

    rows, total = deadline_service.list_deadlines(
        db_session, ctx_for(user), deadline_service.DeadlineFilters(status="active")
    )
    assert total == 1
    assert [row.title for row in rows] == ["Open"]


def test_extend_endpoint_returns_updated_deadline(db_session, create_user, create_deadline, client_for):
    user = create_user()
    deadline = create_deadline(user, due_date=datetime(2030, 1, 1, tzinfo=timezone.utc))
    client = client_for(user)

    response = client.post(
        f"/deadlines/{deadline.id}/extend",
        json={"newDueDate": "2099-01-01", "reason": "Awaiting authority feedback"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["deadline"]["status"] == "UPCOMING"
    assert body["deadline"]["originalDueDate"].startswith("2030-01-01")
    assert body["deadline"]["dueDate"].startswith("2099-01-01")


def test_extend_endpoint_rejects_blank_reason(db_session, create_user, create_deadline, client_for):
    user = create_user()
    deadline = create_deadline(user)
    client = client_for(user)

    response = client.post(f"/deadlines/{deadline.id}/extend", json={"newDueDate": "2099-01-01", "reason": ""})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_extend_endpoint_maps_missing_deadline_to_404(db_session, create_user, client_for):
    user = create_user()
    client = client_for(user)

    response = client.post("/deadlines/missing/extend", json={"newDueDate": "2099-01-01", "reason": "x"})

    assert response.status_code == 404
    assert response.json() == {"error": "Deadline not found"}


def test_list_endpoint_derives_overdue_without_persisting(db_session, create_user, create_deadline, client_for):
    user = create_user()
    past = create_deadline(user, due_date=utcnow() - timedelta(days=2), status="UPCOMING")
    client = client_for(user)

    response = client.get("/deadlines")

    assert response.status_code == 200
    item = response.json()["deadlines"][0]
    assert item["isOverdue"] is True
    assert item["effectiveStatus"] == "OVERDUE"
    db_session.refresh(past)
    assert db_session.get(Deadline, past.id).status == "UPCOMING"
