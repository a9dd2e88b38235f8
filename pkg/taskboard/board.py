"""
Task board session: one filter state, one query, one cache, one source.

UI events map onto methods here. Each handler runs to completion and the
caller renders the BoardView returned by view().
"""
from typing import Any, List

from .cache import ACTIVITIES, CLIENTS, PROJECTS, TASKS, QueryCache
from .events import BoardEvents
from .filters import BoardView, FilterState, resolve
from .schema import KANBAN, Activity, Client, Vocabulary
from .search import SearchMerge
from .source import SOURCE_ERRORS
from .transitions import DragResult, DropOutcome, StatusTransitionEngine


class TaskBoard:
    """Wires the transition engine, filter resolver and search merge together."""

    def __init__(
        self,
        source,
        events: BoardEvents = None,
        vocabulary: Vocabulary = KANBAN,
        activity_limit: int = 50,
    ):
        self.source = source
        self.events = events or BoardEvents()
        self.cache = QueryCache(self.events)
        self.transitions = StatusTransitionEngine(source, self.cache, self.events, vocabulary)
        self.search = SearchMerge(source, self.events)
        self.state = FilterState()
        self.activity_limit = activity_limit

    # ── Loading ────────────────────────────────────────────────────────────

    async def refresh(self) -> bool:
        """
        Reload every stale collection. A stale task list also re-runs the
        active search so its results carry the same task versions.

        Returns False when a collection could not be loaded.
        """
        tasks_stale = self.cache.is_stale(TASKS)
        try:
            await self.cache.fetch(TASKS, self.source.list_tasks)
            await self.cache.fetch(PROJECTS, self.source.list_projects)
            await self.cache.fetch(CLIENTS, self.source.list_clients)
            await self.cache.fetch(
                ACTIVITIES, lambda: self.source.list_activities(self.activity_limit)
            )
        except SOURCE_ERRORS as e:
            self.events.notify_error(f"Failed to load board: {e}")
            return False
        if tasks_stale and self.search.active:
            await self.search.search()
        return True

    # ── Filter selection ───────────────────────────────────────────────────

    def select_client(self, value: Any) -> BoardView:
        self.state = self.state.with_client(value)
        return self.view()

    def select_project(self, value: Any) -> BoardView:
        self.state = self.state.with_project(value)
        return self.view()

    def select_status(self, value: Any) -> BoardView:
        self.state = self.state.with_status(value)
        return self.view()

    def select_priority(self, value: Any) -> BoardView:
        self.state = self.state.with_priority(value)
        return self.view()

    def select_assignee(self, value: Any) -> BoardView:
        self.state = self.state.with_assignee(value)
        return self.view()

    def clear_filters(self) -> BoardView:
        self.state = self.state.cleared()
        return self.view()

    # ── Search ─────────────────────────────────────────────────────────────

    async def set_query(self, query: str) -> BoardView:
        if self.search.set_query(query):
            await self.search.search()
        return self.view()

    # ── Drag and drop ──────────────────────────────────────────────────────

    async def drag_end(self, result: DragResult) -> DropOutcome:
        """Apply a drop, then re-read whatever it invalidated."""
        outcome = await self.transitions.handle_drag_end(result)
        if outcome.change is not None:
            await self.refresh()
        return outcome

    # ── Derived view ───────────────────────────────────────────────────────

    def view(self) -> BoardView:
        return resolve(
            self.state,
            self.cache.peek(TASKS, []),
            self.cache.peek(PROJECTS, []),
            search_results=self.search.results if self.search.active else None,
            query=self.search.query,
            search_error=self.search.error,
        )

    @property
    def clients(self) -> List[Client]:
        return self.cache.peek(CLIENTS, [])

    @property
    def activities(self) -> List[Activity]:
        return self.cache.peek(ACTIVITIES, [])
