"""
Recalculation coordinator.

Decides how much of the seating plan a change should rebuild, and makes sure
only one recalculation per event runs at a time.

    Manual --(mode=auto)--> Auto-Idle --(trigger)--> Auto-Recalculating
       ^                        |                          |
       +----(mode=manual, purge)+<------(done or failed)---+
"""

import enum
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy.orm import Session

from app.models.seating_settings import (
    MODE_AUTO,
    MODE_MANUAL,
    POLICY_ALL,
    POLICY_GROUP_ONLY,
    POLICY_MANUAL_ONLY,
)
from app.services.assignment_store import AssignmentStore

logger = logging.getLogger(__name__)


class SeatingState(str, enum.Enum):
    MANUAL = "manual"
    AUTO_IDLE = "auto_idle"
    AUTO_RECALCULATING = "auto_recalculating"


class RecalcTrigger(str, enum.Enum):
    RSVP_CHANGED = "rsvp_changed"
    GUEST_ADDED = "guest_added"
    GUEST_REMOVED = "guest_removed"
    SETTINGS_CHANGED = "settings_changed"
    EXPLICIT_FULL = "explicit_full"


class RecalcScope(str, enum.Enum):
    NONE = "none"
    GROUP = "group"
    FULL = "full"


GUEST_TRIGGERS = (RecalcTrigger.RSVP_CHANGED, RecalcTrigger.GUEST_ADDED, RecalcTrigger.GUEST_REMOVED)


def decide_scope(trigger: RecalcTrigger, mode: str, policy: str) -> RecalcScope:
    """How much to recalculate for a trigger, given the event's mode and policy"""
    if mode != MODE_AUTO:
        return RecalcScope.NONE
    if trigger == RecalcTrigger.EXPLICIT_FULL:
        return RecalcScope.FULL
    if trigger in GUEST_TRIGGERS:
        if policy == POLICY_GROUP_ONLY:
            return RecalcScope.GROUP
        if policy == POLICY_ALL:
            return RecalcScope.FULL
        if policy == POLICY_MANUAL_ONLY:
            return RecalcScope.NONE
        logger.warning(f"Unknown auto recalculation policy {policy!r}; skipping")
    return RecalcScope.NONE


class RecalculationCoordinator:
    """Per-event locks and the running/idle state of recalculations"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = defaultdict(threading.RLock)
        self._running: Dict[int, int] = defaultdict(int)

    def _lock_for(self, event_id: int) -> threading.RLock:
        with self._guard:
            return self._locks[event_id]

    def state(self, event_id: int, mode: str) -> SeatingState:
        if mode == MODE_MANUAL:
            return SeatingState.MANUAL
        with self._guard:
            running = self._running.get(event_id, 0)
        return SeatingState.AUTO_RECALCULATING if running else SeatingState.AUTO_IDLE

    @contextmanager
    def exclusive(self, event_id: int) -> Iterator[None]:
        """Hold the event's lock without changing state (promote, purge)"""
        lock = self._lock_for(event_id)
        with lock:
            yield

    @contextmanager
    def recalculating(self, event_id: int) -> Iterator[None]:
        """Hold the event's lock and report Auto-Recalculating until done"""
        lock = self._lock_for(event_id)
        with lock:
            with self._guard:
                self._running[event_id] += 1
            try:
                yield
            finally:
                with self._guard:
                    self._running[event_id] -= 1
                    if self._running[event_id] <= 0:
                        del self._running[event_id]

    def switch_mode(self, db: Session, event_id: int, previous: str, new: str) -> bool:
        """Apply side effects of a mode change; True when a purge ran.

        The purge is flushed, not committed: the caller commits it together
        with the mode change, while holding ``exclusive(event_id)``.
        """
        if previous == new:
            return False
        if new == MODE_MANUAL:
            with self.exclusive(event_id):
                AssignmentStore.purge_auto_seating(db, event_id, commit=False)
            logger.info(f"Event {event_id} switched to manual seating")
            return True
        logger.info(f"Event {event_id} switched to automatic seating")
        return False


# Global coordinator instance
coordinator = RecalculationCoordinator()
