"""Ordered task collection shared by local mutations and push events.

The reconciler is the single source of truth for the task list a dashboard
renders. Three streams mutate it:

- REST-confirmed creates, updates and deletes made by this session
- Optimistic completion toggles made before the server confirms
- Push events describing changes made by other sessions

Merging rules:
- Newest-created first. A create for an id already present replaces that
  entry in place, so the echo of our own create never duplicates it.
- Updates replace by id. An update for an absent id is dropped; it never
  re-inserts a task that a delete already removed.
- Deletes remove by id and are idempotent.
- Last write wins by arrival order. There are no versions or clocks, so a
  remote update arriving after an optimistic toggle overwrites it.

``incomplete`` and ``completed`` are filters over the one list and are
never stored separately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .models import Task


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskStats:
    """Counts derived from the current collection."""
    total: int
    completed: int
    pending: int
    completion_rate: int  # whole percent

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "pending": self.pending,
            "completion_rate": self.completion_rate,
        }


class TaskListReconciler:
    """Merges local and remote task mutations into one ordered list.

    Not thread-safe; it is owned by the event loop that drives the session.
    """

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: List[Task] = []
        if tasks is not None:
            self.replace_all(tasks)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @property
    def tasks(self) -> Tuple[Task, ...]:
        """All tasks in display order (newest-created first)."""
        return tuple(self._tasks)

    @property
    def incomplete(self) -> Tuple[Task, ...]:
        return tuple(t for t in self._tasks if not t.completed)

    @property
    def completed(self) -> Tuple[Task, ...]:
        return tuple(t for t in self._tasks if t.completed)

    def get(self, task_id: int) -> Optional[Task]:
        index = self._index_of(task_id)
        return self._tasks[index] if index is not None else None

    def stats(self) -> TaskStats:
        total = len(self._tasks)
        done = sum(1 for t in self._tasks if t.completed)
        rate = round(done * 100 / total) if total else 0
        return TaskStats(total=total, completed=done, pending=total - done, completion_rate=rate)

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(tuple(self._tasks))

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self._tasks)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Load a snapshot, keeping the first occurrence of each id."""
        seen = set()
        snapshot: List[Task] = []
        for task in tasks:
            if task.id in seen:
                logger.debug(f"Dropping duplicate task {task.id} from snapshot")
                continue
            seen.add(task.id)
            snapshot.append(task)
        self._tasks = snapshot

    def clear(self) -> None:
        self._tasks = []

    def apply_created(self, task: Task) -> bool:
        """Add a newly created task at the front.

        Returns:
            True if the task was inserted, False if an entry with the same id
            already existed and was replaced in place.
        """
        index = self._index_of(task.id)
        if index is not None:
            self._tasks[index] = task
            return False
        self._tasks.insert(0, task)
        return True

    def apply_updated(self, task: Task) -> bool:
        """Replace the task with the same id.

        Returns:
            True if applied, False if the id is absent (dropped).
        """
        index = self._index_of(task.id)
        if index is None:
            logger.debug(f"Dropping update for absent task {task.id}")
            return False
        self._tasks[index] = task
        return True

    def apply_deleted(self, task_id: int) -> bool:
        """Remove a task by id.

        Returns:
            True if a task was removed, False if it was already absent.
        """
        index = self._index_of(task_id)
        if index is None:
            return False
        del self._tasks[index]
        return True

    def toggle(self, task_id: int) -> Optional[Task]:
        """Flip a task's completion flag locally, ahead of confirmation.

        The flip is not reverted automatically if confirmation fails; callers
        that want that use ``set_completed`` with the previous value.

        Returns:
            The updated task, or None if the id is absent.
        """
        current = self.get(task_id)
        if current is None:
            return None
        return self.set_completed(task_id, not current.completed)

    def set_completed(self, task_id: int, completed: bool) -> Optional[Task]:
        """Set a task's completion flag.

        Returns:
            The updated task, or None if the id is absent.
        """
        index = self._index_of(task_id)
        if index is None:
            return None
        updated = replace(self._tasks[index], completed=completed)
        self._tasks[index] = updated
        return updated

    def _index_of(self, task_id: object) -> Optional[int]:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        return None
