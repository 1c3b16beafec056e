import csv
from io import StringIO
from typing import Any, Iterable, List, Sequence

from ..constants import AUDIT_EXPORT_HEADERS
from .dates import isoformat

# Leading characters spreadsheets treat as a formula
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def escape_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([escape_cell(cell) for cell in row])
    return buffer.getvalue()


def audit_entries_to_csv(entries: List) -> str:
    """Render audit entries oldest first as they were passed, one row each."""
    rows = [
        [
            isoformat(entry.timestamp),
            entry.user.email if entry.user else entry.user_id,
            entry.action,
            entry.entity_type,
            entry.entity_id,
            entry.description,
            entry.previous_value,
            entry.new_value,
        ]
        for entry in entries
    ]
    return rows_to_csv(AUDIT_EXPORT_HEADERS, rows)
