"""
Task board storage backend (SQLite).

Holds the authoritative task collection plus the read-only project and
client lists, the activity feed, and full-text search over tasks.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any

from .schema import (
    Activity,
    Client,
    Priority,
    Project,
    Status,
    Task,
    ValidationError,
    load_status,
    normalize_status,
)

logger = logging.getLogger(__name__)

# Fields a patch may touch, in column order
UPDATABLE_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "project_id",
    "assignee",
    "due_date",
    "progress",
)


class NotFound(Exception):
    """Raised when a task id does not exist in the store."""
    pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def validate_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and coerce a task patch into storage values.

    Returns:
        dict of column -> value ready for SQL.

    Raises:
        ValidationError with a user-friendly message on failure.
    """
    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    result: Dict[str, Any] = {}
    for name, value in patch.items():
        if name == "status":
            result[name] = normalize_status(value).value
        elif name == "priority":
            result[name] = Priority.parse(value).value
        elif name == "title":
            title = str(value or "").strip()
            if not title:
                raise ValidationError("title is required")
            result[name] = title
        elif name == "progress":
            try:
                progress = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"progress must be an integer, got: '{value}'")
            if not 0 <= progress <= 100:
                raise ValidationError(f"progress must be between 0 and 100, got: {progress}")
            result[name] = progress
        elif name == "project_id":
            if value in (None, ""):
                result[name] = None
            else:
                try:
                    result[name] = int(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"project_id must be an integer, got: '{value}'")
        elif name == "due_date":
            if value in (None, ""):
                result[name] = None
            elif isinstance(value, datetime):
                result[name] = value.isoformat()
            else:
                try:
                    result[name] = datetime.fromisoformat(str(value)).isoformat()
                except ValueError:
                    raise ValidationError(f"due_date must be ISO-8601, got: '{value}'")
        else:
            result[name] = value or None
    return result


class TaskStore:
    """SQLite-backed store for tasks, projects, clients and activities."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskdash" / "tasks.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS clients (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    client_id INTEGER REFERENCES clients(id)
                )
            """)
            # project_id is not a foreign key: dangling references must load
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    project_id INTEGER,
                    assignee TEXT,
                    due_date TEXT,
                    progress INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    description TEXT NOT NULL,
                    task_id INTEGER,
                    project_id INTEGER,
                    user TEXT NOT NULL DEFAULT 'system',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_client ON projects(client_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_activities_created ON activities(created_at)")
            conn.commit()

    # ── Clients / projects ──────────────────────────────────────────────────

    def create_client(self, name: str) -> Client:
        with _connect(self.db_path) as conn:
            cursor = conn.execute("INSERT INTO clients (name) VALUES (?)", (name,))
            conn.commit()
            return Client(id=cursor.lastrowid, name=name)

    def create_project(self, name: str, client_id: Optional[int] = None) -> Project:
        with _connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT INTO projects (name, client_id) VALUES (?, ?)",
                (name, client_id),
            )
            conn.commit()
            return Project(id=cursor.lastrowid, name=name, client_id=client_id)

    def list_clients(self) -> List[Client]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM clients ORDER BY name, id").fetchall()
        return [Client.from_dict(dict(r)) for r in rows]

    def list_projects(self, client_id: Optional[int] = None) -> List[Project]:
        with _connect(self.db_path) as conn:
            if client_id is None:
                rows = conn.execute("SELECT * FROM projects ORDER BY name, id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM projects WHERE client_id = ? ORDER BY name, id",
                    (client_id,),
                ).fetchall()
        return [Project.from_dict(dict(r)) for r in rows]

    def get_project(self, project_id: int) -> Optional[Project]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return Project.from_dict(dict(row)) if row else None

    # ── Tasks ───────────────────────────────────────────────────────────────

    def create_task(self, title: str, user: str = "system", **fields) -> Task:
        """Insert a task and record a 'created' activity."""
        values = validate_patch({"title": title, **fields})
        values.setdefault("status", Status.TODO.value)
        values.setdefault("priority", Priority.MEDIUM.value)
        values.setdefault("progress", 0)
        now = _now()
        values["created_at"] = now
        values["updated_at"] = now

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            with _connect(self.db_path) as conn:
                cursor = conn.execute(
                    f"INSERT INTO tasks ({columns}) VALUES ({placeholders})",
                    tuple(values.values()),
                )
                task_id = cursor.lastrowid
                self._log_activity(
                    conn, "created", f"Created task \"{values['title']}\"",
                    task_id, values.get("project_id"), user,
                )
                conn.commit()
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to create task \"{values['title']}\": {e}")
            raise
        return Task.from_dict(dict(row))

    def get_task(self, task_id: int) -> Optional[Task]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return Task.from_dict(dict(row)) if row else None

    def list_tasks(self, filters: Optional[Dict[str, Any]] = None) -> List[Task]:
        """
        List tasks, newest first.

        Args:
            filters: optional equality filters on project_id, status,
                     priority or assignee (values already in storage form).
        """
        conditions = []
        params: List[Any] = []
        for name, value in (filters or {}).items():
            if name not in ("project_id", "status", "priority", "assignee"):
                raise ValidationError(f"Cannot filter on {name}")
            conditions.append(f"{name} = ?")
            params.append(value)
        sql = "SELECT * FROM tasks"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, id DESC"
        with _connect(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Task.from_dict(dict(r)) for r in rows]

    def search_tasks(self, query: str, limit: int = 200) -> List[Task]:
        """Case-insensitive substring match on title, description and assignee."""
        pattern = f"%{_escape_like(query.strip())}%"
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM tasks
                WHERE title LIKE ? ESCAPE '\\'
                   OR description LIKE ? ESCAPE '\\'
                   OR assignee LIKE ? ESCAPE '\\'
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (pattern, pattern, pattern, limit),
            ).fetchall()
        return [Task.from_dict(dict(r)) for r in rows]

    def update_task_field(self, task_id: int, patch: Dict[str, Any], user: str = "system") -> Task:
        """
        Apply a partial update to a task.

        Re-applying a value the task already holds is a no-op: nothing is
        written and no activity is recorded.

        Raises:
            ValidationError: patch has an unknown field or out-of-vocabulary value
            NotFound: task_id does not exist
            sqlite3.Error: the write failed (logged, then re-raised)
        """
        values = validate_patch(patch)
        try:
            return self._write_patch(task_id, values, user)
        except sqlite3.Error as e:
            logger.error(f"Failed to update task {task_id}: {e}")
            raise

    def _write_patch(self, task_id: int, values: Dict[str, Any], user: str) -> Task:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if not row:
                raise NotFound(f"Task {task_id} not found")

            current = dict(row)
            changed = {k: v for k, v in values.items() if current.get(k) != v}
            if not changed:
                return Task.from_dict(current)

            changed["updated_at"] = _now()
            assignments = ", ".join(f"{name} = ?" for name in changed)
            conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*changed.values(), task_id),
            )

            if "status" in changed:
                activity_type = "status_changed"
                description = (
                    f"Moved \"{current['title']}\" from {current['status']} "
                    f"to {changed['status']}"
                )
            else:
                activity_type = "updated"
                fields = ", ".join(k for k in changed if k != "updated_at")
                description = f"Updated {fields} on \"{current['title']}\""
            project_id = changed.get("project_id", current.get("project_id"))
            self._log_activity(conn, activity_type, description, task_id, project_id, user)
            conn.commit()

            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        logger.info(f"Task {task_id} updated: {sorted(k for k in changed if k != 'updated_at')}")
        return Task.from_dict(dict(row))

    # ── Activities / stats ──────────────────────────────────────────────────

    def _log_activity(self, conn, activity_type, description, task_id, project_id, user):
        conn.execute(
            """
            INSERT INTO activities (type, description, task_id, project_id, user, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (activity_type, description, task_id, project_id, user or "system", _now()),
        )

    def list_activities(self, limit: int = 50, task_id: Optional[int] = None) -> List[Activity]:
        """Most recent activities first, optionally for one task."""
        with _connect(self.db_path) as conn:
            if task_id is not None:
                rows = conn.execute(
                    "SELECT * FROM activities WHERE task_id = ? ORDER BY id DESC LIMIT ?",
                    (task_id, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM activities ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [Activity.from_dict(dict(r)) for r in rows]

    def get_stats(self) -> Dict[str, Any]:
        """Task counts per canonical status plus project total."""
        stats: Dict[str, Any] = {
            "total_tasks": 0,
            "total_projects": 0,
            "by_status": {s.value: 0 for s in Status},
            "unmatched": 0,
        }
        with _connect(self.db_path) as conn:
            for row in conn.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status"):
                stats["total_tasks"] += row[1]
                status = load_status(row[0])
                if status is None:
                    stats["unmatched"] += row[1]
                else:
                    stats["by_status"][status.value] += row[1]
            stats["total_projects"] = conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0]
        return stats
