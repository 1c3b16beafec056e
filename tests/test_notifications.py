from datetime import datetime, timezone

import pytest

from caelex.core.errors import InvalidInputError, NotFoundError
from caelex.models.models import Notification, NotificationPreference
from caelex.schemas.schemas import NotificationPreferencesUpdate
from caelex.services import notifications as notification_service


def _quiet_preferences(start="22:00", end="08:00", timezone_name="UTC"):
    return NotificationPreference(
        user_id="u",
        email_enabled=True,
        push_enabled=True,
        quiet_hours_enabled=True,
        quiet_hours_start=start,
        quiet_hours_end=end,
        quiet_hours_timezone=timezone_name,
    )


def test_mark_as_read_ignores_other_users_rows(db_session, create_user, create_notification):
    alice = create_user()
    bob = create_user()
    mine = create_notification(alice)
    theirs = create_notification(bob)

    count = notification_service.mark_as_read(db_session, alice.id, [mine.id, theirs.id])
    db_session.commit()

    assert count == 1
    db_session.refresh(theirs)
    assert theirs.read is False
    assert theirs.read_at is None
    db_session.refresh(mine)
    assert mine.read is True


def test_mark_as_read_deduplicates_and_bounds_ids(db_session, create_user, create_notification):
    user = create_user()
    notification = create_notification(user)

    assert notification_service.mark_as_read(db_session, user.id, [notification.id, notification.id]) == 1
    with pytest.raises(InvalidInputError):
        notification_service.mark_as_read(db_session, user.id, [])
    with pytest.raises(InvalidInputError):
        notification_service.mark_as_read(db_session, user.id, [f"id-{i}" for i in range(101)])


def test_marking_read_notification_again_still_counts(db_session, create_user, create_notification):
    user = create_user()
    notification = create_notification(user, read=True)

    assert notification_service.mark_as_read(db_session, user.id, [notification.id]) == 1
    assert notification_service.mark_as_read(db_session, user.id, [notification.id]) == 1
    db_session.refresh(notification)
    assert notification.read is True


def test_mark_all_only_touches_unread(db_session, create_user, create_notification):
    user = create_user()
    create_notification(user)
    create_notification(user)
    create_notification(user, read=True)

    assert notification_service.mark_all_as_read(db_session, user.id) == 2
    assert notification_service.get_unread_count(db_session, user.id) == 0


def test_dismiss_unknown_notification_is_not_found(db_session, create_user, create_notification):
    owner = create_user()
    other = create_user()
    notification = create_notification(owner)

    with pytest.raises(NotFoundError):
        notification_service.dismiss_notification(db_session, other.id, notification.id)


def test_notify_organization_skips_excluded_members(
    db_session, create_user, create_organization, add_member
):
    owner = create_user()
    joiner = create_user()
    organization = create_organization(owner)
    add_member(organization, joiner)

    created = notification_service.notify_organization(
        db_session,
        organization.id,
        "MEMBER_JOINED",
        "New team member",
        "Someone joined.",
        exclude_user_ids=[joiner.id],
    )

    assert created == 1
    [row] = db_session.query(Notification).all()
    assert row.user_id == owner.id
    assert row.organization_id == organization.id


def test_unknown_notification_type_is_rejected(db_session, create_user):
    user = create_user()
    with pytest.raises(InvalidInputError):
        notification_service.create_notification(db_session, user.id, "NOT_A_TYPE", "t", "m")


def test_quiet_hours_window_crossing_midnight():
    preferences = _quiet_preferences()

    assert notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 23, 30, tzinfo=timezone.utc))
    assert notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 7, 59, tzinfo=timezone.utc))
    assert not notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc))
    assert not notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc))


def test_quiet_hours_same_day_window_and_disabled():
    preferences = _quiet_preferences(start="12:00", end="14:00")
    assert notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 13, 0, tzinfo=timezone.utc))
    preferences.quiet_hours_enabled = False
    assert not notification_service.is_in_quiet_hours(preferences, datetime(2030, 1, 1, 13, 0, tzinfo=timezone.utc))


def test_should_send_email_respects_category_opt_out():
    preferences = NotificationPreference(email_enabled=True, categories={"deadlines": {"email": False}})

    assert not notification_service.should_send_email(preferences, "DEADLINE_REMINDER")
    assert notification_service.should_send_email(preferences, "COMPLIANCE_GAP")
    assert notification_service.should_send_email(None, "DEADLINE_REMINDER")
    preferences.email_enabled = False
    assert not notification_service.should_send_email(preferences, "COMPLIANCE_GAP")


def test_dispatch_marks_email_sent(db_session, create_user):
    user = create_user()

    notification = notification_service.create_notification(
        db_session, user.id, "DEADLINE_REMINDER", "Annual report due", "Due in 7 days"
    )

    assert notification.email_sent is True
    assert notification.severity == "INFO"


def test_update_preferences_merges_categories(db_session, create_user):
    user = create_user()

    notification_service.update_preferences(
        db_session,
        user.id,
        NotificationPreferencesUpdate(categories={"deadlines": {"email": False, "push": True}}),
    )
    preferences = notification_service.update_preferences(
        db_session,
        user.id,
        NotificationPreferencesUpdate(categories={"reports": {"email": True, "push": False}}),
    )

    assert set(preferences.categories) == {"deadlines", "reports"}


def test_update_preferences_rejects_unknown_timezone(db_session, create_user):
    user = create_user()
    with pytest.raises(InvalidInputError):
        notification_service.update_preferences(
            db_session, user.id, NotificationPreferencesUpdate(quiet_hours_timezone="Mars/Olympus")
        )


def test_mark_read_endpoint_requires_ids_or_all(db_session, create_user, client_for):
    client = client_for(create_user())

    response = client.post("/notifications/mark-read", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_mark_read_endpoint_all(db_session, create_user, create_notification, client_for):
    user = create_user()
    create_notification(user)
    create_notification(user)
    client = client_for(user)

    response = client.post("/notifications/mark-read", json={"all": True})

    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 2}
    assert client.get("/notifications/unread-count").json() == {"count": 0}


def test_list_endpoint_reports_unread_count(db_session, create_user, create_notification, client_for):
    user = create_user()
    create_notification(user)
    create_notification(user, read=True)
    client = client_for(user)

    response = client.get("/notifications", params={"read": "false"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["unreadCount"] == 1
    assert body["notifications"][0]["read"] is False


def test_dismiss_endpoint_missing_notification(db_session, create_user, client_for):
    client = client_for(create_user())

    response = client.post("/notifications/missing/dismiss")

    assert response.status_code == 404
    assert response.json() == {"error": "Notification not found"}


def test_preferences_endpoint_defaults(db_session, create_user, client_for):
    client = client_for(create_user())

    response = client.get("/notifications/preferences")

    assert response.status_code == 200
    body = response.json()
    assert body["emailEnabled"] is True
    assert body["categories"] == {}
    assert body["quietHoursTimezone"] == "Europe/Berlin"


def test_delete_old_notifications_keeps_undismissed(db_session, create_user, create_notification):
    user = create_user()
    stale = create_notification(user)
    kept = create_notification(user)
    for notification in (stale, kept):
        notification.created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    stale.dismissed = True
    db_session.commit()

    assert notification_service.delete_old_notifications(db_session, older_than_days=30) == 1
    assert [row.id for row in db_session.query(Notification).all()] == [kept.id]
