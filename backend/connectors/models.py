"""
Canonical Pydantic record models for normalized tracker tasks.

Connectors return instances of these models from ``fetch_tasks``.  Records
are frozen: a task list produced for one refresh cycle is never mutated,
the next cycle replaces it wholesale.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_serializer

from config import to_iso8601


class StatusKind(str, Enum):
    """Whether a task is still being worked on."""

    OPEN = "open"
    CLOSED = "closed"


class TaskStatus(BaseModel):
    """Workflow status of a task."""

    model_config = ConfigDict(frozen=True)

    label: str = "Unknown"
    color_hint: Optional[str] = None
    kind: StatusKind = StatusKind.OPEN
    category: Optional[str] = None


class Assignee(BaseModel):
    """A person assigned to a task."""

    model_config = ConfigDict(frozen=True)

    name: str
    avatar_url: Optional[str] = None


class TaskPriority(BaseModel):
    """Priority label and accent color."""

    model_config = ConfigDict(frozen=True)

    label: str = "None"
    color_hint: Optional[str] = None


class TaskTag(BaseModel):
    """A tag resolved from the tag custom field."""

    model_config = ConfigDict(frozen=True)

    name: str
    color_hint: Optional[str] = None


class TaskRecord(BaseModel):
    """A display-ready task from the tracker."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    status: TaskStatus = TaskStatus()
    assignees: tuple[Assignee, ...] = ()
    assignee: Optional[str] = None  # legacy display string, names joined with ", "
    due_date: Optional[datetime] = None
    priority: TaskPriority = TaskPriority()
    tags: tuple[TaskTag, ...] = ()
    project_name: Optional[str] = None
    deadline: Optional[datetime] = None
    external_url: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def primary_assignee_name(self) -> Optional[str]:
        return self.assignees[0].name if self.assignees else None

    @property
    def is_closed(self) -> bool:
        return self.status.kind is StatusKind.CLOSED

    @field_serializer("due_date", "deadline")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso8601(value)
