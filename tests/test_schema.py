"""
Tests for schema: status vocabularies, normalization, Task serialization.
"""
from datetime import datetime, timedelta, timezone

import pytest

from pkg.taskboard.schema import (
    KANBAN,
    LIST,
    Priority,
    Status,
    Task,
    ValidationError,
    Vocabulary,
    load_status,
    normalize_status,
)


class TestVocabularies:

    def test_kanban_columns(self):
        assert KANBAN.values == ["todo", "inprogress", "done"]
        assert KANBAN.parse("todo") == Status.TODO
        assert KANBAN.parse("inprogress") == Status.IN_PROGRESS
        assert KANBAN.parse("done") == Status.DONE

    def test_list_labels(self):
        assert LIST.parse("Open") == Status.TODO
        assert LIST.parse("InProgress") == Status.IN_PROGRESS
        assert LIST.parse("Blocked") == Status.BLOCKED
        assert LIST.parse("Closed") == Status.DONE

    def test_every_status_has_a_list_label(self):
        for status in Status:
            assert LIST.parse(LIST.format(status)) == status

    def test_blocked_has_no_kanban_column(self):
        assert KANBAN.format(Status.BLOCKED) is None
        with pytest.raises(ValidationError):
            KANBAN.parse(Status.BLOCKED)

    def test_format_none(self):
        assert KANBAN.format(None) is None

    def test_vocabularies_do_not_cross(self):
        with pytest.raises(ValidationError):
            KANBAN.parse("Open")
        with pytest.raises(ValidationError):
            LIST.parse("todo")

    def test_duplicate_mapping_rejected(self):
        with pytest.raises(ValueError):
            Vocabulary("bad", {"a": Status.TODO, "b": Status.TODO})


class TestNormalizeStatus:

    @pytest.mark.parametrize("value,expected", [
        ("todo", Status.TODO),
        ("Open", Status.TODO),
        ("inprogress", Status.IN_PROGRESS),
        ("in_progress", Status.IN_PROGRESS),
        ("InProgress", Status.IN_PROGRESS),
        ("Blocked", Status.BLOCKED),
        ("blocked", Status.BLOCKED),
        ("done", Status.DONE),
        ("Closed", Status.DONE),
        (Status.DONE, Status.DONE),
    ])
    def test_known_values(self, value, expected):
        assert normalize_status(value) == expected

    @pytest.mark.parametrize("value", ["archived", "DONE", "", None, 3])
    def test_unknown_values_rejected(self, value):
        with pytest.raises(ValidationError):
            normalize_status(value)

    def test_load_status_is_lenient(self):
        assert load_status("archived") is None
        assert load_status(None) is None
        assert load_status("Closed") == Status.DONE


class TestPriority:

    def test_parse(self):
        assert Priority.parse("high") == Priority.HIGH
        assert Priority.parse(" Low ") == Priority.LOW
        assert Priority.parse(Priority.MEDIUM) == Priority.MEDIUM

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValidationError):
            Priority.parse("urgent")


class TestTask:

    def test_defaults(self):
        task = Task(id=1, title="Write docs")
        assert task.status == Status.TODO
        assert task.priority == Priority.MEDIUM
        assert task.progress == 0
        assert task.project_id is None

    def test_from_dict_unknown_status_is_unmatched(self):
        task = Task.from_dict({"id": 7, "title": "Legacy", "status": "archived"})
        assert task.status is None
        assert task.to_dict()["status"] is None

    def test_from_dict_accepts_either_vocabulary(self):
        assert Task.from_dict({"id": 1, "title": "a", "status": "Open"}).status == Status.TODO
        assert Task.from_dict({"id": 1, "title": "a", "status": "inprogress"}).status == Status.IN_PROGRESS

    def test_from_dict_clamps_progress(self):
        assert Task.from_dict({"id": 1, "title": "a", "progress": 150}).progress == 100
        assert Task.from_dict({"id": 1, "title": "a", "progress": -5}).progress == 0

    def test_from_dict_bad_priority_falls_back(self):
        assert Task.from_dict({"id": 1, "title": "a", "priority": "urgent"}).priority == Priority.MEDIUM

    def test_to_dict_uses_canonical_values(self):
        task = Task(id=3, title="Ship", status=Status.IN_PROGRESS, priority=Priority.HIGH,
                    project_id=10, assignee="alice")
        data = task.to_dict()
        assert data["status"] == "in_progress"
        assert data["priority"] == "high"
        assert data["project_id"] == 10
        assert data["assignee"] == "alice"

    def test_is_overdue(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        past = now - timedelta(days=1)
        future = now + timedelta(days=1)
        assert Task(id=1, title="a", due_date=past).is_overdue(now)
        assert not Task(id=1, title="a", due_date=future).is_overdue(now)
        assert not Task(id=1, title="a", due_date=past, status=Status.DONE).is_overdue(now)
        assert not Task(id=1, title="a").is_overdue(now)

    def test_is_overdue_naive_due_date(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert Task(id=1, title="a", due_date=datetime(2026, 2, 1)).is_overdue(now)
