"""
Normalization of raw ClickUp task payloads into TaskRecord.

``normalize_task`` is pure and total: any JSON value yields a TaskRecord,
with missing or odd sub-fields falling back to defaults. Tags, project and
deadline come from custom fields only; the native ``tags`` attribute is
ignored because tags are modelled as a selectable custom field.
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any, Iterable, Optional

from connectors.custom_fields import (
    CustomFieldIds,
    parse_timestamp,
    resolve_deadline,
    resolve_project_name,
    resolve_tags,
)
from connectors.models import (
    Assignee,
    StatusKind,
    TaskPriority,
    TaskRecord,
    TaskStatus,
)

CLOSED_STATUS_VALUES: frozenset[str] = frozenset(
    {"closed", "done", "completed", "complete", "resolved"}
)


def _string(value: Any) -> Optional[str]:
    """Non-blank string form of a scalar, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value
    return None


# ── Identity ─────────────────────────────────────────────────────────────


def _resolve_task_id(raw: dict[str, Any]) -> str:
    """Prefer the user-facing custom id, then the internal id."""
    task_id = _string(raw.get("custom_id")) or _string(raw.get("id"))
    if task_id:
        return task_id
    digest = hashlib.sha1(
        json.dumps(raw, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"task-{digest[:12]}"


# ── Status ───────────────────────────────────────────────────────────────


def _resolve_status(raw_status: Any) -> TaskStatus:
    if isinstance(raw_status, str):
        raw_status = {"status": raw_status}
    if not isinstance(raw_status, dict):
        return TaskStatus()

    status_text = _string(raw_status.get("status"))
    status_type = _string(raw_status.get("type"))
    category: Optional[str] = status_type.lower() if status_type else None
    if category == "done":
        category = "closed"

    is_closed = bool(
        (status_text and status_text.lower() in CLOSED_STATUS_VALUES)
        or (category and category in CLOSED_STATUS_VALUES)
    )

    return TaskStatus(
        label=status_text or status_type or "Unknown",
        color_hint=_string(raw_status.get("color")),
        kind=StatusKind.CLOSED if is_closed else StatusKind.OPEN,
        category=category,
    )


# ── Priority ─────────────────────────────────────────────────────────────


def _resolve_priority(raw_priority: Any) -> TaskPriority:
    if isinstance(raw_priority, dict):
        label = _string(raw_priority.get("priority"))
        return TaskPriority(
            label=label.strip() if label else "None",
            color_hint=_string(raw_priority.get("color")),
        )
    label = _string(raw_priority)
    return TaskPriority(label=label.strip() if label else "None")


# ── Assignees ────────────────────────────────────────────────────────────


def _resolve_assignees(raw_assignees: Any) -> tuple[Assignee, ...]:
    if not isinstance(raw_assignees, list):
        return ()

    assignees: list[Assignee] = []
    for entry in raw_assignees:
        if not isinstance(entry, dict):
            continue
        name = (
            _string(entry.get("username"))
            or _string(entry.get("email"))
            or _string(entry.get("id"))
        )
        if not name:
            continue
        avatar = _string(entry.get("profilePicture")) or _string(entry.get("avatar"))
        assignees.append(Assignee(name=name, avatar_url=avatar))
    return tuple(assignees)


# ── Dates ────────────────────────────────────────────────────────────────


def _resolve_due_date(raw_due: Any) -> Optional[datetime]:
    """Parse the epoch-ms ``due_date`` ("0" and empty mean no due date)."""
    if isinstance(raw_due, (dict, list)):
        return None
    return parse_timestamp(raw_due)


# ── Task ─────────────────────────────────────────────────────────────────


def normalize_task(raw: Any, field_ids: CustomFieldIds = CustomFieldIds()) -> TaskRecord:
    """Map one raw ClickUp task to a TaskRecord."""
    if not isinstance(raw, dict):
        raw = {}

    custom_fields = raw.get("custom_fields")
    assignees = _resolve_assignees(raw.get("assignees"))
    name = raw.get("name")

    return TaskRecord(
        id=_resolve_task_id(raw),
        name=name if isinstance(name, str) else (_string(name) or ""),
        status=_resolve_status(raw.get("status")),
        assignees=assignees,
        assignee=", ".join(a.name for a in assignees) or None,
        due_date=_resolve_due_date(raw.get("due_date")),
        priority=_resolve_priority(raw.get("priority")),
        tags=resolve_tags(custom_fields, field_ids.tags),
        project_name=resolve_project_name(custom_fields, field_ids.project),
        deadline=resolve_deadline(custom_fields, field_ids.deadline),
        external_url=_string(raw.get("url")),
    )


def normalize_tasks(
    raws: Iterable[Any], field_ids: CustomFieldIds = CustomFieldIds()
) -> tuple[TaskRecord, ...]:
    """Normalize a sequence of raw tasks, preserving order."""
    return tuple(normalize_task(raw, field_ids) for raw in raws)
