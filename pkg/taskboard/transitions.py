"""
Status transitions driven by drag-and-drop on the kanban board.

A drop becomes at most one single-field status update. Local task state is
never patched: success and failure both end in a cache invalidation, so the
board always re-reads the store's version of the task.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .cache import ACTIVITIES, TASKS, QueryCache
from .events import BoardEvents
from .schema import KANBAN, Status, Task, ValidationError, Vocabulary
from .source import SOURCE_ERRORS
from .store import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragLocation:
    """A position on the board: column id plus index within the column."""
    column_id: str
    index: int


@dataclass(frozen=True)
class DragResult:
    """What the drag-and-drop layer reports when a drag ends."""
    task_id: Union[int, str]
    source: DragLocation
    destination: Optional[DragLocation] = None


@dataclass(frozen=True)
class StatusChange:
    """A status update a drop requires."""
    task_id: int
    status: Status


@dataclass
class DropOutcome:
    """Result of handling one drop."""
    change: Optional[StatusChange] = None
    task: Optional[Task] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _task_id(value: Union[int, str]) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid task id: '{value}'")


def plan_drop(result: DragResult, vocabulary: Vocabulary = KANBAN) -> Optional[StatusChange]:
    """
    Decide whether a drop needs a status update.

    Returns None for cancelled drops, drops back onto the same slot and
    reorders within one column. Raises ValidationError when the destination
    column is not part of the vocabulary.
    """
    destination = result.destination
    if destination is None:
        return None
    if destination.column_id == result.source.column_id:
        return None
    status = vocabulary.parse(destination.column_id)
    return StatusChange(task_id=_task_id(result.task_id), status=status)


class StatusTransitionEngine:
    """Turns drops into status updates against a task source."""

    def __init__(
        self,
        source,
        cache: QueryCache,
        events: BoardEvents,
        vocabulary: Vocabulary = KANBAN,
    ):
        self.source = source
        self.cache = cache
        self.events = events
        self.vocabulary = vocabulary
        self.in_flight: Dict[int, StatusChange] = {}

    async def handle_drag_end(self, result: DragResult) -> DropOutcome:
        """Handle a completed drag. Never raises for store or transport failures."""
        try:
            change = plan_drop(result, self.vocabulary)
        except ValidationError as e:
            self.events.notify_error(f"Failed to update task status: {e}")
            return DropOutcome(error=str(e))

        if change is None:
            return DropOutcome()
        return await self.apply(change)

    async def apply(self, change: StatusChange) -> DropOutcome:
        """Issue the update for one status change and re-sync the board."""
        self.in_flight[change.task_id] = change
        try:
            task = await self.source.update_task_field(
                change.task_id, {"status": change.status.value}
            )
        except SOURCE_ERRORS as e:
            return self._fail(change, e)
        finally:
            if self.in_flight.get(change.task_id) is change:
                del self.in_flight[change.task_id]

        self.cache.invalidate(TASKS, ACTIVITIES)
        self.events.emit("status_changed", task_id=change.task_id, status=change.status)
        return DropOutcome(change=change, task=task)

    def _fail(self, change: StatusChange, error: Exception) -> DropOutcome:
        if isinstance(error, NotFound):
            message = f"Task {change.task_id} no longer exists."
        else:
            message = f"Failed to update task status: {error}"
        self.events.notify_error(message, task_id=change.task_id)
        self.cache.invalidate(TASKS)
        return DropOutcome(change=change, error=message)

    def is_pending(self, task_id: Any) -> bool:
        return _task_id(task_id) in self.in_flight
