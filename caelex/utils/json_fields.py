"""Helpers for JSON payloads stored in text columns."""

import json
import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


def serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    try:
        return json.dumps(data, default=str)
    except (TypeError, ValueError):
        return str(data)


def safe_json_parse_array(raw: Optional[str]) -> List[Any]:
    """Decode a stored JSON list. Anything that is not a valid list decodes to []."""
    if raw is None or raw == "":
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed JSON array value (%d chars)", len(raw))
        return []
    if not isinstance(parsed, list):
        return []
    return parsed


def safe_json_parse_object(raw: Optional[str]) -> Optional[dict]:
    if raw is None or raw == "":
        return None
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_stored_value(raw: Optional[str]) -> Any:
    """Audit values are JSON when possible and plain strings otherwise."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw
