"""
Search/filter merge.

With a non-blank query, filters run over the search results instead of the
full task collection; with a blank query, over the full collection. The
query and the filter dimensions never reset each other.

Search responses can arrive out of order. Each issued request carries a
generation number and only the latest one may update the results.
"""
import logging
from typing import List, Optional, Sequence

from .events import BoardEvents
from .schema import Task
from .source import SOURCE_ERRORS

logger = logging.getLogger(__name__)


class SearchMerge:
    """Tracks the current query and the results that belong to it."""

    def __init__(self, source, events: BoardEvents):
        self.source = source
        self.events = events
        self.query = ""
        self.results: Optional[List[Task]] = None  # None while no query is active
        self.error: Optional[str] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return bool(self.query.strip())

    def set_query(self, query: str) -> bool:
        """
        Record a new query. Returns True when a search must be issued.

        Any response still in flight for an older query is discarded.
        """
        query = query or ""
        if query.strip() == self.query.strip():
            self.query = query
            # A failed query is retried when submitted again
            return self.active and (self.results is None or self.error is not None)
        self.query = query
        self._generation += 1
        self.error = None
        self.results = [] if self.active else None
        return self.active

    async def search(self, query: Optional[str] = None) -> bool:
        """
        Run the search for the current (or given) query.

        Returns True when this response became the current results.
        """
        if query is not None:
            self.set_query(query)
        text = self.query.strip()
        if not text:
            return False

        self._generation += 1
        generation = self._generation
        try:
            results = await self.source.search_tasks(text)
        except SOURCE_ERRORS as e:
            if generation != self._generation:
                return False
            self.results = []
            self.error = str(e)
            self.events.notify_error(f"Search failed: {e}")
            return True

        if generation != self._generation:
            logger.debug(f"Dropped stale search response for '{text}'")
            return False
        self.results = list(results)
        self.error = None
        return True

    def source_tasks(self, tasks: Sequence[Task]) -> Sequence[Task]:
        """The set the filters should run over."""
        if not self.active or self.results is None:
            return tasks
        return self.results
