from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import NOTIFICATION_CONFIG
from ..core.errors import InvalidInputError, NotFoundError
from ..models.models import Notification, NotificationPreference, OrganizationMember, User
from ..schemas.schemas import NotificationPreferencesUpdate
from ..utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_QUIET_HOURS_TIMEZONE = "Europe/Berlin"
MAX_MARK_READ_IDS = 100


@dataclass
class NotificationFilters:
    read: Optional[bool] = None
    type: Optional[str] = None
    severity: Optional[str] = None
    dismissed: bool = False
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


def get_notification_config(notification_type: str) -> Dict[str, Any]:
    config = NOTIFICATION_CONFIG.get(notification_type)
    if not config:
        raise InvalidInputError(f"Unknown notification type: {notification_type}")
    return config


def create_notification(
    session: Session,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    severity: Optional[str] = None,
    organization_id: Optional[str] = None,
    dispatch: bool = True,
) -> Notification:
    config = get_notification_config(notification_type)
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        action_url=action_url,
        entity_type=entity_type,
        entity_id=entity_id,
        severity=severity or config["severity"],
        organization_id=organization_id,
    )
    session.add(notification)
    session.flush()
    if dispatch:
        dispatch_notification(session, notification)
    return notification


notify_user = create_notification


def create_bulk_notifications(
    session: Session,
    user_ids: Iterable[str],
    notification_type: str,
    title: str,
    message: str,
    **options: Any,
) -> List[Notification]:
    """Create one notification per user. Bulk creation skips dispatch."""
    return [
        create_notification(session, user_id, notification_type, title, message, dispatch=False, **options)
        for user_id in user_ids
    ]


def notify_organization(
    session: Session,
    organization_id: str,
    notification_type: str,
    title: str,
    message: str,
    exclude_user_ids: Sequence[str] = (),
    **options: Any,
) -> int:
    excluded = set(exclude_user_ids)
    user_ids = [
        row[0]
        for row in session.query(OrganizationMember.user_id)
        .filter(OrganizationMember.organization_id == organization_id)
        .all()
        if row[0] not in excluded
    ]
    if not user_ids:
        return 0
    created = create_bulk_notifications(
        session,
        user_ids,
        notification_type,
        title,
        message,
        organization_id=organization_id,
        **options,
    )
    return len(created)


def list_notifications(
    session: Session,
    user_id: str,
    filters: Optional[NotificationFilters] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Notification], int, int]:
    filters = filters or NotificationFilters()
    query = session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.dismissed.is_(filters.dismissed),
    )
    if filters.read is not None:
        query = query.filter(Notification.read.is_(filters.read))
    if filters.type:
        query = query.filter(Notification.type == filters.type)
    if filters.severity:
        query = query.filter(Notification.severity == filters.severity)
    if filters.from_date:
        query = query.filter(Notification.created_at >= as_utc(filters.from_date))
    if filters.to_date:
        query = query.filter(Notification.created_at <= as_utc(filters.to_date))

    total = query.count()
    notifications = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return notifications, total, get_unread_count(session, user_id)


def get_unread_count(session: Session, user_id: str) -> int:
    return (
        session.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.read.is_(False),
            Notification.dismissed.is_(False),
        )
        .count()
    )


def mark_as_read(session: Session, user_id: str, notification_ids: Sequence[str]) -> int:
    """Mark the given notifications read. Ids owned by other users are ignored.

    Already-read rows are counted again, so retries return the same count.
    """
    ids = list(dict.fromkeys(notification_ids))
    if not ids or len(ids) > MAX_MARK_READ_IDS:
        raise InvalidInputError(f"Provide between 1 and {MAX_MARK_READ_IDS} notification ids")
    return (
        session.query(Notification)
        .filter(Notification.id.in_(ids), Notification.user_id == user_id)
        .update({"read": True, "read_at": utcnow()}, synchronize_session="fetch")
    )


def mark_all_as_read(session: Session, user_id: str) -> int:
    return (
        session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .update({"read": True, "read_at": utcnow()}, synchronize_session="fetch")
    )


def dismiss_notification(session: Session, user_id: str, notification_id: str) -> None:
    updated = (
        session.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .update({"dismissed": True}, synchronize_session="fetch")
    )
    if not updated:
        raise NotFoundError("Notification not found")


def dismiss_all_notifications(session: Session, user_id: str) -> int:
    return (
        session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.dismissed.is_(False))
        .update({"dismissed": True}, synchronize_session="fetch")
    )


def delete_old_notifications(session: Session, older_than_days: Optional[int] = None) -> int:
    days = older_than_days if older_than_days is not None else settings.notification_retention_days
    cutoff = utcnow() - timedelta(days=days)
    deleted = (
        session.query(Notification)
        .filter(Notification.created_at < cutoff, Notification.dismissed.is_(True))
        .delete(synchronize_session=False)
    )
    logger.info("Deleted %s dismissed notifications older than %s days", deleted, days)
    return deleted


# --- Preferences ---


def get_preferences(session: Session, user_id: str) -> Optional[NotificationPreference]:
    return session.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).first()


def get_or_default_preferences(session: Session, user_id: str) -> NotificationPreference:
    preferences = get_preferences(session, user_id)
    if preferences:
        return preferences
    return NotificationPreference(
        user_id=user_id,
        email_enabled=True,
        push_enabled=True,
        categories={},
        quiet_hours_enabled=False,
        quiet_hours_timezone=DEFAULT_QUIET_HOURS_TIMEZONE,
        digest_enabled=False,
    )


def update_preferences(
    session: Session,
    user_id: str,
    payload: NotificationPreferencesUpdate,
) -> NotificationPreference:
    preferences = get_preferences(session, user_id)
    if not preferences:
        preferences = get_or_default_preferences(session, user_id)
        session.add(preferences)

    changes = payload.model_dump(exclude_unset=True)
    if "categories" in changes and changes["categories"] is not None:
        merged = dict(preferences.categories or {})
        merged.update(changes.pop("categories"))
        preferences.categories = merged
    for field, value in changes.items():
        setattr(preferences, field, value)
    if preferences.quiet_hours_timezone:
        _resolve_timezone(preferences.quiet_hours_timezone)
    session.flush()
    return preferences


# --- Dispatch ---


def _resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_QUIET_HOURS_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInputError(f"Unknown timezone: {name}") from exc


def _parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_in_quiet_hours(preferences: NotificationPreference, now: Optional[datetime] = None) -> bool:
    if not preferences.quiet_hours_enabled:
        return False
    if not preferences.quiet_hours_start or not preferences.quiet_hours_end:
        return False
    local_now = (now or utcnow()).astimezone(_resolve_timezone(preferences.quiet_hours_timezone))
    current = local_now.time().replace(second=0, microsecond=0)
    start = _parse_clock(preferences.quiet_hours_start)
    end = _parse_clock(preferences.quiet_hours_end)
    # Window crosses midnight, e.g. 22:00 - 08:00
    if start > end:
        return current >= start or current < end
    return start <= current < end


def should_send_email(preferences: Optional[NotificationPreference], notification_type: str) -> bool:
    if preferences is None:
        return True
    if not preferences.email_enabled:
        return False
    category = NOTIFICATION_CONFIG.get(notification_type, {}).get("category")
    category_prefs = (preferences.categories or {}).get(category) or {}
    return category_prefs.get("email", True) is not False


def dispatch_notification(session: Session, notification: Notification, now: Optional[datetime] = None) -> bool:
    """Deliver the email copy of a notification when the user's preferences allow it."""
    preferences = get_preferences(session, notification.user_id)
    if preferences and is_in_quiet_hours(preferences, now):
        logger.debug("Notification %s held back during quiet hours", notification.id)
        return False
    if not should_send_email(preferences, notification.type):
        logger.debug("Email disabled for notification %s", notification.id)
        return False

    user = session.get(User, notification.user_id)
    if not user or not user.email:
        return False

    prefix = NOTIFICATION_CONFIG.get(notification.type, {}).get("email_prefix")
    subject = f"{prefix}: {notification.title}" if prefix else notification.title
    notification.email_sent = True
    notification.email_sent_at = utcnow()
    session.flush()
    logger.info("Notification email queued", extra={"to": user.email, "subject": subject})
    return True
