#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over the SQLite task store, consumed by the board UI and by
pkg.taskboard.source.HttpTaskSource.

Usage:
    python board_server.py --db ./tasks.db --port 3000

API:
    GET   /api/tasks                 → { tasks, count }   (?projectId ?status ?priority ?assignee)
    GET   /api/tasks/search?q=       → { tasks, count }
    GET   /api/tasks/<id>            → { task }
    POST  /api/tasks                 → { task }            (X-API-Key)
    PATCH /api/tasks/<id>            → { task }            (X-API-Key)
    PATCH /api/tasks/<id>/status     → { task }            (X-API-Key)
    GET   /api/projects              → { projects }        (?clientId)
    GET   /api/clients               → { clients }
    GET   /api/activities            → { activities }      (?limit ?taskId)
    GET   /api/board                 → BoardView           (?client ?project ?status ?priority ?assignee ?q)
    GET   /api/stats                 → counts per status
    GET   /health
"""

import hmac
import logging
import os
from functools import wraps

from flask import Flask, jsonify, request

from pkg.taskboard.config import Config
from pkg.taskboard.filters import FilterState, resolve
from pkg.taskboard.schema import Priority, ValidationError, normalize_status
from pkg.taskboard.store import NotFound, TaskStore

app = Flask(__name__)

# camelCase names the dashboard forms send
FIELD_ALIASES = {"projectId": "project_id", "dueDate": "due_date"}


# ── Config ───────────────────────────────────────────────────────────────────

def get_config() -> Config:
    return Config.load(os.environ.get("TASKDASH_CONFIG"))


def get_store() -> TaskStore:
    return TaskStore(get_config().db_path)


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = get_config().api_secret
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


def _patch_from_json(data: dict) -> dict:
    return {FIELD_ALIASES.get(k, k): v for k, v in data.items()}


def _task_filters(args) -> dict:
    """Translate query-string filters into storage values."""
    filters = {}
    if args.get("projectId"):
        try:
            filters["project_id"] = int(args["projectId"])
        except ValueError:
            raise ValidationError(f"Invalid projectId: '{args['projectId']}'")
    if args.get("status"):
        filters["status"] = normalize_status(args["status"]).value
    if args.get("priority"):
        filters["priority"] = Priority.parse(args["priority"]).value
    if args.get("assignee"):
        filters["assignee"] = args["assignee"]
    return filters


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/api/tasks", methods=["GET"])
def api_tasks():
    try:
        tasks = get_store().list_tasks(_task_filters(request.args))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        app.logger.error(f"list_tasks error: {e}")
        return jsonify({"error": "Failed to fetch tasks"}), 500
    return jsonify({"tasks": [t.to_dict() for t in tasks], "count": len(tasks)})


@app.route("/api/tasks/search", methods=["GET"])
def api_search_tasks():
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"error": "Search query is required"}), 400
    try:
        tasks = get_store().search_tasks(query, get_config().search_limit)
    except Exception as e:
        app.logger.error(f"search_tasks error: {e}")
        return jsonify({"error": "Failed to search tasks"}), 500
    return jsonify({"tasks": [t.to_dict() for t in tasks], "count": len(tasks)})


@app.route("/api/tasks/<int:task_id>", methods=["GET"])
def api_get_task(task_id):
    try:
        task = get_store().get_task(task_id)
    except Exception as e:
        app.logger.error(f"get_task error: {e}")
        return jsonify({"error": "Failed to fetch task"}), 500
    if not task:
        return jsonify({"error": "Task not found"}), 404
    return jsonify({"task": task.to_dict()})


@app.route("/api/tasks", methods=["POST"])
@require_api_key
def api_create_task():
    """Create a new task."""
    data = _patch_from_json(request.get_json(force=True, silent=True) or {})
    title = str(data.pop("title", "") or "").strip()
    if not title:
        return jsonify({"error": "title is required"}), 400
    user = data.pop("user", "api")
    try:
        task = get_store().create_task(title, user=user, **data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        app.logger.error(f"create_task error: {e}")
        return jsonify({"error": "Failed to create task"}), 500
    return jsonify({"task": task.to_dict(), "id": task.id}), 201


@app.route("/api/tasks/<int:task_id>", methods=["PATCH"])
@require_api_key
def api_update_task(task_id):
    """Apply a partial update to a task."""
    data = _patch_from_json(request.get_json(force=True, silent=True) or {})
    user = data.pop("user", "api")
    if not data:
        return jsonify({"error": "Nothing to update"}), 400
    return _update(task_id, data, user)


@app.route("/api/tasks/<int:task_id>/status", methods=["PATCH"])
@require_api_key
def api_update_task_status(task_id):
    """Move a task to a new status."""
    data = request.get_json(force=True, silent=True) or {}
    status = data.get("status")
    if not isinstance(status, str) or not status.strip():
        return jsonify({"error": "status is required"}), 400
    return _update(task_id, {"status": status.strip()}, data.get("user", "api"))


def _update(task_id: int, patch: dict, user: str):
    try:
        task = get_store().update_task_field(task_id, patch, user=user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFound:
        return jsonify({"error": "Task not found"}), 404
    except Exception as e:
        app.logger.error(f"update_task error: {e}")
        return jsonify({"error": "Failed to update task"}), 500
    return jsonify({"task": task.to_dict()})


@app.route("/api/projects")
def api_projects():
    client_id = request.args.get("clientId", type=int)
    try:
        projects = get_store().list_projects(client_id)
    except Exception as e:
        app.logger.error(f"list_projects error: {e}")
        return jsonify({"error": "Failed to fetch projects"}), 500
    return jsonify({"projects": [p.to_dict() for p in projects]})


@app.route("/api/clients")
def api_clients():
    try:
        clients = get_store().list_clients()
    except Exception as e:
        app.logger.error(f"list_clients error: {e}")
        return jsonify({"error": "Failed to fetch clients"}), 500
    return jsonify({"clients": [c.to_dict() for c in clients]})


@app.route("/api/activities")
def api_activities():
    limit = request.args.get("limit", default=get_config().activity_limit, type=int)
    task_id = request.args.get("taskId", type=int)
    try:
        activities = get_store().list_activities(limit=limit, task_id=task_id)
    except Exception as e:
        app.logger.error(f"list_activities error: {e}")
        return jsonify({"error": "Failed to fetch activities"}), 500
    return jsonify({"activities": [a.to_dict() for a in activities]})


@app.route("/api/board")
def api_board():
    """Filtered board view for the given filter and search parameters."""
    try:
        state = FilterState.from_params(request.args)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    query = request.args.get("q", "")
    search_results = None
    try:
        store = get_store()
        tasks = store.list_tasks()
        projects = store.list_projects()
        if query.strip():
            search_results = store.search_tasks(query, get_config().search_limit)
    except Exception as e:
        app.logger.error(f"board error: {e}")
        return jsonify({"error": "Failed to build board"}), 500

    view = resolve(state, tasks, projects, search_results=search_results, query=query)
    body = view.to_dict()
    body["columns"] = {
        column: [t.id for t in column_tasks]
        for column, column_tasks in view.columns().items()
    }
    return jsonify(body)


@app.route("/api/stats")
def api_stats():
    """Task counts per canonical status."""
    try:
        stats = get_store().get_stats()
    except Exception as e:
        app.logger.error(f"stats error: {e}")
        return jsonify({"error": "Failed to fetch stats"}), 500
    return jsonify(stats)


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": get_config().db_path})


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--host", help="Bind address (default from config)")
    parser.add_argument("--port", type=int, help="Port (default from config)")
    parser.add_argument("--db", help="Path to tasks.db (overrides TASKDASH_DB env var)")
    parser.add_argument("--config", help="Path to taskdash.yaml")
    args = parser.parse_args()

    if args.db:
        os.environ["TASKDASH_DB"] = args.db
    if args.config:
        os.environ["TASKDASH_CONFIG"] = args.config

    cfg = get_config()
    host = args.host or cfg.host
    port = args.port or cfg.port
    TaskStore(cfg.db_path)

    print(f"""
╔═══════════════════════════════════════╗
║  Task Board Server                    ║
╠═══════════════════════════════════════╣
║  URL:  http://{host}:{port:<20}║
║  DB:   {cfg.db_path:<31}║
╚═══════════════════════════════════════╝
""")

    app.run(host=host, port=port, debug=False, threaded=True)
