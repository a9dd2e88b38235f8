"""
Task board schema and status vocabularies.

Status lifecycle (canonical):
  TODO, IN_PROGRESS, BLOCKED, DONE (any status may move to any other)

Two external vocabularies describe the same statuses:
  KANBAN - board column ids (todo / inprogress / done), no column for BLOCKED
  LIST   - filter and list-view labels (Open / InProgress / Blocked / Closed)

Values crossing the boundary are parsed into Status; unknown values are
rejected on write and loaded as "unmatched" (status=None) on read.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable


class ValidationError(Exception):
    """Raised when a value falls outside a known vocabulary."""
    pass


class Status(Enum):
    """Canonical task statuses."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"


class Priority(Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValidationError(f"Invalid priority: '{value}'. Allowed: {allowed}")


class Vocabulary:
    """
    A named external representation of Status.

    The table maps each external value to exactly one canonical status.
    The reverse direction is partial: statuses missing from the table
    have no representation in this vocabulary.
    """

    def __init__(self, name: str, table: Dict[str, Status]):
        self.name = name
        self._to_status = dict(table)
        self._to_value: Dict[Status, str] = {}
        for value, status in table.items():
            if status in self._to_value:
                raise ValueError(f"{name}: {status.name} mapped twice")
            self._to_value[status] = value

    @property
    def values(self) -> List[str]:
        return list(self._to_status)

    def parse(self, value: Any) -> Status:
        """External value -> Status. Raises ValidationError if unknown."""
        if isinstance(value, Status):
            if value not in self._to_value:
                raise ValidationError(f"{value.name} has no {self.name} representation")
            return value
        status = self._to_status.get(value)
        if status is None:
            raise ValidationError(
                f"Invalid {self.name} status: '{value}'. "
                f"Allowed: {', '.join(self.values)}"
            )
        return status

    def format(self, status: Optional[Status]) -> Optional[str]:
        """Status -> external value, or None when not representable."""
        if status is None:
            return None
        return self._to_value.get(status)

    def __contains__(self, value: Any) -> bool:
        return value in self._to_status

    def __repr__(self) -> str:
        return f"Vocabulary({self.name!r})"


KANBAN = Vocabulary("kanban", {
    "todo": Status.TODO,
    "inprogress": Status.IN_PROGRESS,
    "done": Status.DONE,
})

LIST = Vocabulary("list", {
    "Open": Status.TODO,
    "InProgress": Status.IN_PROGRESS,
    "Blocked": Status.BLOCKED,
    "Closed": Status.DONE,
})

VOCABULARIES = (KANBAN, LIST)


def normalize_status(value: Any) -> Status:
    """
    Accept a Status, a canonical wire value, or a value from any vocabulary.

    Raises ValidationError for anything else.
    """
    if isinstance(value, Status):
        return value
    if isinstance(value, str):
        try:
            return Status(value)
        except ValueError:
            pass
        for vocabulary in VOCABULARIES:
            if value in vocabulary:
                return vocabulary.parse(value)
    known = [s.value for s in Status]
    for vocabulary in VOCABULARIES:
        known.extend(v for v in vocabulary.values if v not in known)
    raise ValidationError(f"Invalid status: '{value}'. Allowed: {', '.join(known)}")


def load_status(value: Any) -> Optional[Status]:
    """Lenient read-side parse: unknown values become None (unmatched)."""
    if value is None:
        return None
    try:
        return normalize_status(value)
    except ValidationError:
        return None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Client:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        return cls(id=int(data["id"]), name=data.get("name", ""))


@dataclass
class Project:
    id: int
    name: str
    client_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "client_id": self.client_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        client_id = data.get("client_id")
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            client_id=int(client_id) if client_id is not None else None,
        )


@dataclass
class Task:
    """A task on the board."""

    id: int
    title: str
    description: Optional[str] = None

    # None means the stored status matched no vocabulary
    status: Optional[Status] = Status.TODO
    priority: Priority = Priority.MEDIUM

    project_id: Optional[int] = None
    assignee: Optional[str] = None
    due_date: Optional[datetime] = None
    progress: int = 0

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Past due date and not done."""
        if self.due_date is None or self.status == Status.DONE:
            return False
        now = now or datetime.now(timezone.utc)
        due = self.due_date
        if due.tzinfo is None and now.tzinfo is not None:
            due = due.replace(tzinfo=timezone.utc)
        return due < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value if self.status else None,
            "priority": self.priority.value,
            "project_id": self.project_id,
            "assignee": self.assignee,
            "due_date": _iso(self.due_date),
            "progress": self.progress,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from dict. Unknown status values load as None."""
        try:
            priority = Priority.parse(data.get("priority") or "medium")
        except ValidationError:
            priority = Priority.MEDIUM

        project_id = data.get("project_id")
        progress = int(data.get("progress") or 0)

        now = datetime.now(timezone.utc)
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            description=data.get("description"),
            status=load_status(data.get("status")),
            priority=priority,
            project_id=int(project_id) if project_id is not None else None,
            assignee=data.get("assignee") or None,
            due_date=_parse_dt(data.get("due_date")),
            progress=max(0, min(100, progress)),
            created_at=_parse_dt(data.get("created_at")) or now,
            updated_at=_parse_dt(data.get("updated_at")) or now,
        )


@dataclass
class Activity:
    """One entry in the activity feed."""
    id: int
    type: str
    description: str
    task_id: Optional[int] = None
    project_id: Optional[int] = None
    user: str = "system"
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "task_id": self.task_id,
            "project_id": self.project_id,
            "user": self.user,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=int(data["id"]),
            type=data.get("type", ""),
            description=data.get("description", ""),
            task_id=data.get("task_id"),
            project_id=data.get("project_id"),
            user=data.get("user") or "system",
            created_at=data.get("created_at") or "",
        )


def index_by_id(items: Iterable[Any]) -> Dict[int, Any]:
    """Map objects with an ``id`` attribute by that id."""
    return {item.id: item for item in items}
