from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from .models import COMPARABLE_FIELDS, TodoNode
from .utils import parse_timestamp

_TIMESTAMP_FIELDS = frozenset({"due_date", "created_at", "updated_at"})


def _normalize(field: str, value: Any) -> Any:
    if field in _TIMESTAMP_FIELDS:
        try:
            return parse_timestamp(value)
        except ValueError:
            # Unparsable remote value: compare raw so the node value wins.
            return value
    if field == "completed":
        return bool(value)
    if value == "" and field in {"project_id", "assigned_to"}:
        return None
    return value


# PUBLIC_INTERFACE
def diff_todo(
    record: Mapping[str, Any],
    node: TodoNode,
    fields: Iterable[str] = COMPARABLE_FIELDS,
) -> Dict[str, Any]:
    """
    Return the record fields whose value differs from the node, mapped to the
    node's value. ``updated_at`` is never compared.
    """
    wanted = node.record_fields()
    changed: Dict[str, Any] = {}
    for field in fields:
        if field == "updated_at" or field not in wanted:
            continue
        if _normalize(field, record.get(field)) != _normalize(field, wanted[field]):
            changed[field] = wanted[field]
    return changed


# PUBLIC_INTERFACE
def has_changed(
    record: Mapping[str, Any],
    node: TodoNode,
    fields: Iterable[str] = COMPARABLE_FIELDS,
) -> bool:
    """True when a remote write is required to bring ``record`` in line with ``node``."""
    return bool(diff_todo(record, node, fields))
