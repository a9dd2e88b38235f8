"""
End-to-end tests for the TaskBoard session over a real SQLite store.
"""
import asyncio
import sqlite3

import pytest

from pkg.taskboard.board import TaskBoard
from pkg.taskboard.cache import TASKS
from pkg.taskboard.schema import Status, ValidationError
from pkg.taskboard.source import LocalTaskSource, TransportError
from pkg.taskboard.store import NotFound
from pkg.taskboard.transitions import DragLocation, DragResult


@pytest.fixture
def seeded(store):
    """Client Acme owns Website; Globex owns Intranet."""
    acme = store.create_client("Acme")
    globex = store.create_client("Globex")
    web = store.create_project("Website", acme.id)
    intranet = store.create_project("Intranet", globex.id)
    landing = store.create_task("Landing page", project_id=web.id, assignee="alice")
    footer = store.create_task("Footer", status="done", project_id=web.id, assignee="bob")
    wiki = store.create_task("Wiki bug", status="Blocked", project_id=intranet.id, assignee="dave")
    return {
        "store": store,
        "acme": acme, "globex": globex,
        "web": web, "intranet": intranet,
        "landing": landing, "footer": footer, "wiki": wiki,
    }


@pytest.fixture
def board(seeded):
    board = TaskBoard(LocalTaskSource(seeded["store"]))
    assert asyncio.run(board.refresh())
    return board


def ids(tasks):
    return sorted(t.id for t in tasks)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Loading
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_refresh_loads_every_collection(board, seeded):
    assert ids(board.view().filtered_tasks) == ids([seeded["landing"], seeded["footer"], seeded["wiki"]])
    assert [c.name for c in board.clients] == ["Acme", "Globex"]
    assert len(board.activities) == 3


def test_refresh_failure_is_reported(fake_source):
    async def broken():
        raise TransportError("server down")

    fake_source.list_tasks = broken
    board = TaskBoard(fake_source)
    assert asyncio.run(board.refresh()) is False
    assert board.view().filtered_tasks == []
    assert "server down" in board.events.recent("error")[0].message


def test_refresh_skips_fresh_collections(fake_source):
    board = TaskBoard(fake_source)
    asyncio.run(board.refresh())
    asyncio.run(board.refresh())
    assert fake_source.list_calls == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cascading selection
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_cascade(board, seeded):
    view = board.select_client(seeded["acme"].id)
    assert [p.name for p in view.available_projects] == ["Website"]
    assert view.available_assignees == []

    view = board.select_project(seeded["web"].id)
    assert view.available_assignees == ["alice", "bob"]

    view = board.select_assignee("bob")
    assert ids(view.filtered_tasks) == [seeded["footer"].id]

    view = board.select_client(seeded["globex"].id)
    assert view.dimension_state.project_id is None
    assert view.dimension_state.assignee is None
    assert ids(view.filtered_tasks) == [seeded["wiki"].id]


def test_status_filter_and_clear(board, seeded):
    view = board.select_status("Closed")
    assert ids(view.filtered_tasks) == [seeded["footer"].id]
    assert board.state.is_active

    view = board.clear_filters()
    assert not view.dimension_state.is_active
    assert len(view.filtered_tasks) == 3


def test_bad_selection_leaves_state_unchanged(board):
    board.select_status("todo")
    with pytest.raises(ValidationError):
        board.select_status("archived")
    assert board.state.status == Status.TODO


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drag and drop
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_drag_moves_task_between_columns(board, seeded):
    landing = seeded["landing"]
    result = DragResult(task_id=str(landing.id), source=DragLocation("todo", 0),
                        destination=DragLocation("inprogress", 0))
    outcome = asyncio.run(board.drag_end(result))
    assert outcome.ok

    columns = board.view().columns()
    assert landing.id in [t.id for t in columns["inprogress"]]
    assert landing.id not in [t.id for t in columns["todo"]]
    assert board.activities[0].type == "status_changed"
    assert seeded["store"].get_task(landing.id).status == Status.IN_PROGRESS


def test_drag_respects_active_filters(board, seeded):
    board.select_status("todo")
    result = DragResult(task_id=seeded["landing"].id, source=DragLocation("todo", 0),
                        destination=DragLocation("done", 0))
    asyncio.run(board.drag_end(result))
    assert board.view().filtered_tasks == []


def test_drag_of_deleted_task_resyncs(board, seeded):
    result = DragResult(task_id=999, source=DragLocation("todo", 0),
                        destination=DragLocation("done", 0))
    outcome = asyncio.run(board.drag_end(result))
    assert not outcome.ok
    assert not board.cache.is_stale(TASKS)
    assert board.events.recent("error")[0].message == "Task 999 no longer exists."


def test_drag_refreshes_active_search(board, seeded):
    asyncio.run(board.set_query("bug"))
    assert ids(board.view().filtered_tasks) == [seeded["wiki"].id]

    seeded["store"].create_task("Login bug")
    result = DragResult(task_id=seeded["landing"].id, source=DragLocation("todo", 0),
                        destination=DragLocation("done", 0))
    asyncio.run(board.drag_end(result))
    assert len(board.view().filtered_tasks) == 2


def test_drop_within_column_keeps_cache(board, seeded):
    result = DragResult(task_id=seeded["landing"].id, source=DragLocation("todo", 0),
                        destination=DragLocation("todo", 2))
    outcome = asyncio.run(board.drag_end(result))
    assert outcome.ok and outcome.change is None
    assert not board.cache.is_stale(TASKS)


@pytest.mark.parametrize("error", [
    NotFound("/api/projects not found"),
    sqlite3.OperationalError("database is locked"),
])
def test_refresh_reports_any_source_failure(fake_source, error):
    async def broken():
        raise error

    fake_source.list_projects = broken
    board = TaskBoard(fake_source)
    assert asyncio.run(board.refresh()) is False
    assert len(board.events.recent("error")) == 1


def test_refresh_over_locked_store(seeded):
    store = seeded["store"]

    def locked():
        raise sqlite3.OperationalError("database is locked")

    store.list_clients = locked
    board = TaskBoard(LocalTaskSource(store))
    assert asyncio.run(board.refresh()) is False
    assert "Task store unavailable" in board.events.recent("error")[0].message
