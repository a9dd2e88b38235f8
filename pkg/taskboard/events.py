"""
Board event bus: carries user-visible notifications and view updates.

Emitted events:
    status_changed  task_id, status
    invalidated     key
    error           message, task_id (optional)
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Callable, List

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A message the UI shows to the user (toast)."""
    level: str
    message: str
    task_id: Optional[int] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class BoardEvents:
    """Routes engine events to subscribers and keeps recent notifications."""

    def __init__(self, history: int = 50):
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks
        self.notifications = deque(maxlen=history)

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        if event_type not in self.subscribers:
            self.subscribers[event_type] = []
        self.subscribers[event_type].append(callback)

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers."""
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    def notify_error(self, message: str, task_id: Optional[int] = None) -> Notification:
        """Record and broadcast a user-visible error."""
        note = Notification(level="error", message=message, task_id=task_id)
        self.notifications.append(note)
        logger.warning(message)
        self.emit("error", message=message, task_id=task_id)
        return note

    def recent(self, level: Optional[str] = None) -> List[Notification]:
        return [n for n in self.notifications if level is None or n.level == level]
