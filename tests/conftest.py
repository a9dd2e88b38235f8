"""Shared test fixtures for task board tests."""

import sys
import tempfile
from dataclasses import replace
from pathlib import Path

import pytest

# Ensure the repository root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.taskboard.schema import Client, Priority, Project, Status, Task, normalize_status
from pkg.taskboard.store import NotFound, TaskStore, validate_patch


class FakeSource:
    """In-memory async task source that records every update call."""

    def __init__(self, tasks=(), projects=(), clients=()):
        self.tasks = {t.id: t for t in tasks}
        self.projects = list(projects)
        self.clients = list(clients)
        self.search_results = {}
        self.updates = []
        self.searches = []
        self.list_calls = 0
        self.fail_update = None
        self.fail_search = None

    async def list_tasks(self):
        self.list_calls += 1
        return list(self.tasks.values())

    async def search_tasks(self, query):
        self.searches.append(query)
        if self.fail_search is not None:
            raise self.fail_search
        return list(self.search_results.get(query, []))

    async def update_task_field(self, task_id, patch):
        self.updates.append((task_id, dict(patch)))
        if self.fail_update is not None:
            raise self.fail_update
        validate_patch(patch)
        if task_id not in self.tasks:
            raise NotFound(f"Task {task_id} not found")
        task = self.tasks[task_id]
        if "status" in patch:
            task = replace(task, status=normalize_status(patch["status"]))
        if "priority" in patch:
            task = replace(task, priority=Priority.parse(patch["priority"]))
        self.tasks[task_id] = task
        return task

    async def list_projects(self):
        return list(self.projects)

    async def list_clients(self):
        return list(self.clients)

    async def list_activities(self, limit=50):
        return []


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        path = tmp.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        Path(path + suffix).unlink(missing_ok=True)


@pytest.fixture
def store(db_path):
    return TaskStore(db_path)


@pytest.fixture
def scenario():
    """Project 10 belongs to client 5; task 1 is todo, task 2 is done."""
    clients = [Client(id=5, name="Acme"), Client(id=6, name="Globex")]
    projects = [
        Project(id=10, name="Website", client_id=5),
        Project(id=11, name="Mobile", client_id=5),
        Project(id=20, name="Intranet", client_id=6),
    ]
    tasks = [
        Task(id=1, title="Landing page", status=Status.TODO, project_id=10, assignee="alice"),
        Task(id=2, title="Footer", status=Status.DONE, project_id=10, assignee="bob",
             priority=Priority.HIGH),
        Task(id=3, title="Login bug", status=Status.IN_PROGRESS, project_id=11, assignee="carol"),
        Task(id=4, title="Wiki", status=Status.BLOCKED, project_id=20, assignee="dave",
             priority=Priority.LOW),
    ]
    return {"clients": clients, "projects": projects, "tasks": tasks}


@pytest.fixture
def fake_source(scenario):
    return FakeSource(scenario["tasks"], scenario["projects"], scenario["clients"])
