"""
Cascading filters over the task collection.

Five dimensions: client → project → assignee form a chain, status and
priority are independent. Each is either unset (None, matches everything)
or a concrete value. Setting an upstream dimension resets everything
downstream of it, so a selection can never point outside the options its
parent allows.

All derivations are pure and recomputed from scratch on every call.
"""
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .schema import (
    KANBAN,
    LIST,
    Priority,
    Project,
    Status,
    Task,
    ValidationError,
    Vocabulary,
    index_by_id,
    normalize_status,
)

ALL = "all"


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or value == ALL


def _id(value: Any, name: str) -> Optional[int]:
    if _is_unset(value):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name} id: '{value}'")


def _status(value: Any) -> Optional[Status]:
    return None if _is_unset(value) else normalize_status(value)


def _priority(value: Any) -> Optional[Priority]:
    return None if _is_unset(value) else Priority.parse(value)


def _assignee(value: Any) -> Optional[str]:
    return None if _is_unset(value) else str(value)


@dataclass(frozen=True)
class FilterState:
    """The selected value of every filter dimension."""
    client_id: Optional[int] = None
    project_id: Optional[int] = None
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    assignee: Optional[str] = None

    def with_client(self, value: Any) -> "FilterState":
        return replace(self, client_id=_id(value, "client"), project_id=None, assignee=None)

    def with_project(self, value: Any) -> "FilterState":
        return replace(self, project_id=_id(value, "project"), assignee=None)

    def with_status(self, value: Any) -> "FilterState":
        return replace(self, status=_status(value))

    def with_priority(self, value: Any) -> "FilterState":
        return replace(self, priority=_priority(value))

    def with_assignee(self, value: Any) -> "FilterState":
        return replace(self, assignee=_assignee(value))

    def cleared(self) -> "FilterState":
        return FilterState()

    @property
    def is_active(self) -> bool:
        return any(
            v is not None
            for v in (self.client_id, self.project_id, self.status, self.priority, self.assignee)
        )

    def to_params(self, vocabulary: Vocabulary = LIST) -> Dict[str, str]:
        """Query-string form; unset dimensions are "all"."""
        status = vocabulary.format(self.status) if self.status else None
        if self.status is not None and status is None:
            status = self.status.value
        return {
            "client": ALL if self.client_id is None else str(self.client_id),
            "project": ALL if self.project_id is None else str(self.project_id),
            "status": status or ALL,
            "priority": ALL if self.priority is None else self.priority.value,
            "assignee": ALL if self.assignee is None else self.assignee,
        }

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "FilterState":
        """
        Build a state from query parameters.

        Goes through the same transitions as interactive selection, so a
        project without a client or an assignee without a project is dropped.
        """
        state = cls().with_client(params.get("client"))
        if state.client_id is not None:
            state = state.with_project(params.get("project"))
            if state.project_id is not None:
                state = state.with_assignee(params.get("assignee"))
        return state.with_status(params.get("status")).with_priority(params.get("priority"))


def available_projects(state: FilterState, projects: Iterable[Project]) -> List[Project]:
    """Projects of the selected client; empty until a client is selected."""
    if state.client_id is None:
        return []
    return [p for p in projects if p.client_id == state.client_id]


def available_assignees(state: FilterState, tasks: Iterable[Task]) -> List[str]:
    """Distinct assignees on the selected project's tasks; empty until client and project are set."""
    if state.client_id is None or state.project_id is None:
        return []
    names = {t.assignee for t in tasks if t.project_id == state.project_id and t.assignee}
    return sorted(names)


def matches(state: FilterState, task: Task, projects_by_id: Dict[int, Project]) -> bool:
    """True when the task satisfies every set dimension."""
    if state.client_id is not None:
        project = projects_by_id.get(task.project_id) if task.project_id is not None else None
        if project is None or project.client_id != state.client_id:
            return False
    if state.project_id is not None and task.project_id != state.project_id:
        return False
    # Unknown task statuses are None and never equal a selected status
    if state.status is not None and task.status != state.status:
        return False
    if state.priority is not None and task.priority != state.priority:
        return False
    if state.assignee is not None and task.assignee != state.assignee:
        return False
    return True


def apply_filters(state: FilterState, tasks: Iterable[Task], projects: Iterable[Project]) -> List[Task]:
    projects_by_id = index_by_id(projects)
    return [t for t in tasks if matches(state, t, projects_by_id)]


@dataclass(frozen=True)
class BoardView:
    """Everything one render of the task board needs."""
    filtered_tasks: List[Task]
    available_projects: List[Project]
    available_assignees: List[str]
    dimension_state: FilterState
    query: str = ""
    search_error: Optional[str] = None

    def columns(self, vocabulary: Vocabulary = KANBAN) -> Dict[str, List[Task]]:
        """Filtered tasks grouped by column; tasks without a column are left out."""
        grouped: Dict[str, List[Task]] = {value: [] for value in vocabulary.values}
        for task in self.filtered_tasks:
            column = vocabulary.format(task.status)
            if column is not None:
                grouped[column].append(task)
        return grouped

    def to_dict(self, vocabulary: Vocabulary = LIST) -> Dict[str, Any]:
        return {
            "filtered_tasks": [t.to_dict() for t in self.filtered_tasks],
            "available_projects": [p.to_dict() for p in self.available_projects],
            "available_assignees": list(self.available_assignees),
            "dimension_state": self.dimension_state.to_params(vocabulary),
            "query": self.query,
            "search_error": self.search_error,
            "count": len(self.filtered_tasks),
        }


def resolve(
    state: FilterState,
    tasks: Sequence[Task],
    projects: Sequence[Project],
    search_results: Optional[Sequence[Task]] = None,
    query: str = "",
    search_error: Optional[str] = None,
) -> BoardView:
    """
    Derive the board view.

    search_results, when given, replaces the full task list as the source
    the filters run over. Assignee options always come from the full list.
    """
    source = tasks if search_results is None else search_results
    return BoardView(
        filtered_tasks=apply_filters(state, source, projects),
        available_projects=available_projects(state, projects),
        available_assignees=available_assignees(state, tasks),
        dimension_state=state,
        query=query,
        search_error=search_error,
    )
