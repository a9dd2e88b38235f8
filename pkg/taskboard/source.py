"""
Task sources: the async contract the engine reads and writes through.

LocalTaskSource wraps a TaskStore directly; HttpTaskSource talks to the
board server. Both push blocking I/O onto a worker thread so awaiting
them never blocks the event loop.
"""
import asyncio
import logging
import sqlite3
from typing import Any, Dict, List, Optional

import requests

from .schema import Activity, Client, Project, Task, ValidationError
from .store import NotFound, TaskStore

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the board server cannot be reached or answers badly."""
    pass


# Everything a task source may raise for a failed read or write
SOURCE_ERRORS = (ValidationError, NotFound, TransportError, sqlite3.Error)


class LocalTaskSource:
    """Async adapter over a local TaskStore."""

    def __init__(self, store: TaskStore, search_limit: int = 200):
        self.store = store
        self.search_limit = search_limit

    def _run(self, method, *args):
        try:
            return method(*args)
        except sqlite3.Error as e:
            name = getattr(method, "__name__", "store call")
            logger.error(f"{name} failed on {self.store.db_path}: {e}")
            raise TransportError(f"Task store unavailable: {e}") from e

    async def _call(self, method, *args):
        return await asyncio.to_thread(self._run, method, *args)

    async def list_tasks(self) -> List[Task]:
        return await self._call(self.store.list_tasks)

    async def search_tasks(self, query: str) -> List[Task]:
        return await self._call(self.store.search_tasks, query, self.search_limit)

    async def update_task_field(self, task_id: int, patch: Dict[str, Any]) -> Task:
        return await self._call(self.store.update_task_field, task_id, patch)

    async def list_projects(self) -> List[Project]:
        return await self._call(self.store.list_projects)

    async def list_clients(self) -> List[Client]:
        return await self._call(self.store.list_clients)

    async def list_activities(self, limit: int = 50) -> List[Activity]:
        return await self._call(self.store.list_activities, limit)


class HttpTaskSource:
    """Async client for the board server JSON API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None
        message = body.get("error") if isinstance(body, dict) else None

        if r.status_code == 400:
            raise ValidationError(message or "Invalid request")
        if r.status_code == 404:
            raise NotFound(message or f"{path} not found")
        if not r.ok:
            raise TransportError(f"{method} {path} returned {r.status_code}: {message or r.reason}")
        if not isinstance(body, dict):
            raise TransportError(f"{method} {path} returned a non-object body")
        return body

    async def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def list_tasks(self) -> List[Task]:
        body = await self._call("GET", "/api/tasks")
        return [Task.from_dict(t) for t in body.get("tasks", [])]

    async def search_tasks(self, query: str) -> List[Task]:
        body = await self._call("GET", "/api/tasks/search", params={"q": query})
        return [Task.from_dict(t) for t in body.get("tasks", [])]

    async def update_task_field(self, task_id: int, patch: Dict[str, Any]) -> Task:
        body = await self._call("PATCH", f"/api/tasks/{task_id}", json=patch)
        return Task.from_dict(body["task"])

    async def list_projects(self) -> List[Project]:
        body = await self._call("GET", "/api/projects")
        return [Project.from_dict(p) for p in body.get("projects", [])]

    async def list_clients(self) -> List[Client]:
        body = await self._call("GET", "/api/clients")
        return [Client.from_dict(c) for c in body.get("clients", [])]

    async def list_activities(self, limit: int = 50) -> List[Activity]:
        body = await self._call("GET", "/api/activities", params={"limit": limit})
        return [Activity.from_dict(a) for a in body.get("activities", [])]


def open_source(config):
    """Build the task source a Config points at: the board server if
    server_url is set, the local store otherwise."""
    if config.server_url:
        logger.info(f"Using board server at {config.server_url}")
        return HttpTaskSource(
            config.server_url,
            api_key=config.api_secret,
            timeout=config.request_timeout,
        )
    return LocalTaskSource(TaskStore(config.db_path), search_limit=config.search_limit)
