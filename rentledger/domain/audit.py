# rentledger/domain/audit.py
from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent

# Bookkeeping columns that change on every write and say nothing about the edit.
_NOISE = frozenset({"updated_at", "version"})


def changed_fields(before: Optional[dict[str, Any]], after: Optional[dict[str, Any]]) -> list[str]:
    if before is None or after is None:
        return []
    keys = (set(before) | set(after)) - _NOISE
    return sorted(k for k in keys if before.get(k) != after.get(k))


def _snapshot(d: Optional[dict[str, Any]], keys: Optional[list[str]]) -> Optional[str]:
    if d is None:
        return None
    if keys is not None:
        d = {k: d.get(k) for k in keys}
    return json.dumps(d, sort_keys=True, default=str)


def audit_write(
    db: Session,
    *,
    org_id: int,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Adds an audit row to the current transaction; the caller commits.

    Creates and deletes keep the full snapshot. Updates keep only the fields
    that actually moved, so a status flip on an installment is one small row.
    """
    keys = changed_fields(before, after) if before is not None and after is not None else None
    row = AuditEvent(
        org_id=int(org_id),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_snapshot(before, keys),
        after_json=_snapshot(after, keys),
    )
    db.add(row)
    return row
