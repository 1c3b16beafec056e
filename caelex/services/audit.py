import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..constants import AUDIT_MAX_PAGE_SIZE
from ..core.errors import InvalidInputError
from ..models.models import AuditLog
from ..utils.csv_utils import audit_entries_to_csv
from ..utils.dates import as_utc, isoformat, utcnow
from ..utils.json_fields import parse_stored_value, serialize

logger = logging.getLogger(__name__)


@dataclass
class AuditFilters:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    actions: List[str] = field(default_factory=list)
    entity_types: List[str] = field(default_factory=list)
    entity_id: Optional[str] = None


def audit_log(
    db_session: Session,
    actor_user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    before: Any = None,
    after: Any = None,
    description: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    entry = AuditLog(
        timestamp=utcnow(),
        user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        previous_value=serialize(before),
        new_value=serialize(after),
        description=description or generate_audit_description(action, entity_type, before, after),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db_session.add(entry)
    db_session.flush()
    logger.info("audit %s %s:%s by %s", action, entity_type, entity_id, actor_user_id)
    return entry


def generate_audit_description(action: str, entity_type: str, before: Any = None, after: Any = None) -> str:
    if action.endswith("status_changed"):
        previous = before.get("status") if isinstance(before, dict) else None
        current = after.get("status") if isinstance(after, dict) else None
        return f'Changed {entity_type} status from "{previous or "none"}" to "{current or "unknown"}"'
    if action.endswith("_created"):
        return f"Created {entity_type}"
    if action.endswith("_deleted") or action.endswith("_removed"):
        return f"Removed {entity_type}"
    return f"{action} on {entity_type}"


def _apply_filters(query, filters: Optional[AuditFilters]):
    if not filters:
        return query
    # Inclusive at both ends
    if filters.start_date:
        query = query.filter(AuditLog.timestamp >= as_utc(filters.start_date))
    if filters.end_date:
        query = query.filter(AuditLog.timestamp <= as_utc(filters.end_date))
    if filters.actions:
        query = query.filter(AuditLog.action.in_(filters.actions))
    if filters.entity_types:
        query = query.filter(AuditLog.entity_type.in_(filters.entity_types))
    if filters.entity_id:
        query = query.filter(AuditLog.entity_id == filters.entity_id)
    return query


def get_audit_logs(
    session: Session,
    user_id: str,
    filters: Optional[AuditFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    limit = max(1, min(limit, AUDIT_MAX_PAGE_SIZE))
    query = _apply_filters(session.query(AuditLog).filter(AuditLog.user_id == user_id), filters)
    total = query.count()
    entries = (
        query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return entries, total


def get_entity_audit_logs(session: Session, user_id: str, entity_type: str, entity_id: str) -> List[AuditLog]:
    return (
        session.query(AuditLog)
        .filter(
            AuditLog.user_id == user_id,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
        )
        .order_by(AuditLog.timestamp.desc())
        .all()
    )


def search_audit_logs(session: Session, user_id: str, term: str, limit: int = 50) -> List[AuditLog]:
    term = (term or "").strip()
    if len(term) < 2:
        raise InvalidInputError("Search query must be at least 2 characters")
    pattern = f"%{term.lower()}%"
    return (
        session.query(AuditLog)
        .filter(AuditLog.user_id == user_id)
        .filter(
            or_(
                func.lower(AuditLog.action).like(pattern),
                func.lower(AuditLog.entity_type).like(pattern),
                func.lower(AuditLog.entity_id).like(pattern),
                func.lower(AuditLog.description).like(pattern),
            )
        )
        .order_by(AuditLog.timestamp.desc())
        .limit(max(1, min(limit, AUDIT_MAX_PAGE_SIZE)))
        .all()
    )


def serialize_entry(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": isoformat(entry.timestamp),
        "userId": entry.user_id,
        "action": entry.action,
        "entityType": entry.entity_type,
        "entityId": entry.entity_id,
        "previousValue": parse_stored_value(entry.previous_value),
        "newValue": parse_stored_value(entry.new_value),
        "description": entry.description,
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
    }


def export_audit_logs(
    session: Session,
    user_id: str,
    filters: Optional[AuditFilters] = None,
    export_format: str = "json",
) -> Tuple[str, str]:
    """Return ``(content, media_type)`` for every matching entry, oldest first."""
    entries = (
        _apply_filters(session.query(AuditLog).options(joinedload(AuditLog.user)), filters)
        .filter(AuditLog.user_id == user_id)
        .order_by(AuditLog.timestamp.asc())
        .all()
    )
    if export_format == "csv":
        return audit_entries_to_csv(entries), "text/csv"
    if export_format != "json":
        raise InvalidInputError(f"Unsupported export format: {export_format}")
    return json.dumps([serialize_entry(entry) for entry in entries], indent=2), "application/json"


def get_audit_summary(session: Session, user_id: str, filters: Optional[AuditFilters] = None) -> Dict[str, Any]:
    logs: Sequence[AuditLog] = (
        _apply_filters(session.query(AuditLog).filter(AuditLog.user_id == user_id), filters)
        .order_by(AuditLog.timestamp.desc())
        .all()
    )
    by_action: Counter = Counter()
    by_entity_type: Counter = Counter()
    by_day: Counter = Counter()
    by_entity: Counter = Counter()
    for entry in logs:
        by_action[entry.action] += 1
        by_entity_type[entry.entity_type] += 1
        by_day[as_utc(entry.timestamp).date().isoformat()] += 1
        by_entity[(entry.entity_type, entry.entity_id)] += 1

    recent = (
        session.query(AuditLog)
        .filter(AuditLog.user_id == user_id)
        .order_by(AuditLog.timestamp.desc())
        .limit(10)
        .all()
    )
    return {
        "totalEvents": len(logs),
        "eventsByAction": dict(by_action),
        "eventsByEntityType": dict(by_entity_type),
        "eventsByDay": [{"date": day, "count": count} for day, count in sorted(by_day.items())],
        "topEntities": [
            {"entityType": entity_type, "entityId": entity_id, "count": count}
            for (entity_type, entity_id), count in by_entity.most_common(10)
        ],
        "recentActivity": [serialize_entry(entry) for entry in recent],
    }


def get_audit_filter_options(session: Session, user_id: str) -> Dict[str, Any]:
    actions = [
        row[0]
        for row in session.query(AuditLog.action)
        .filter(AuditLog.user_id == user_id)
        .distinct()
        .order_by(AuditLog.action)
        .all()
    ]
    entity_types = [
        row[0]
        for row in session.query(AuditLog.entity_type)
        .filter(AuditLog.user_id == user_id)
        .distinct()
        .order_by(AuditLog.entity_type)
        .all()
    ]
    earliest, latest = (
        session.query(func.min(AuditLog.timestamp), func.max(AuditLog.timestamp))
        .filter(AuditLog.user_id == user_id)
        .one()
    )
    return {
        "actions": actions,
        "entityTypes": entity_types,
        "dateRange": {"earliest": isoformat(earliest), "latest": isoformat(latest)},
    }
