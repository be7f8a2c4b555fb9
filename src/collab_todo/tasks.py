"""
Task Store: task records and the soft-delete / undo lifecycle.

    Active --soft_delete--> Tombstoned --expiry--> Purged
       ^                        |
       +---------undo-----------+   (only while now < expires_at)

Tasks are mutated by their owner only; group members can see them but not
edit them. The exception is clear_completed, which acts on every completed
task the caller can see.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import Expired, Forbidden, NotFound
from .models import Priority, TaskEntity, Tombstone
from .repositories import TASK_FIELDS, TaskRepository, utcnow
from .visibility import VisibilityResolver

logger = logging.getLogger(__name__)

DEFAULT_UNDO_WINDOW = timedelta(minutes=10)

Clock = Callable[[], datetime]


class TaskStore:
    def __init__(
        self,
        tasks: TaskRepository,
        resolver: VisibilityResolver,
        clock: Clock = utcnow,
        undo_window: timedelta = DEFAULT_UNDO_WINDOW,
    ) -> None:
        self._tasks = tasks
        self._resolver = resolver
        self._clock = clock
        self._undo_window = undo_window

    @property
    def undo_window(self) -> timedelta:
        return self._undo_window

    def _check_group(self, user_id: int, group_id: Optional[int]) -> None:
        if group_id is None:
            return
        if group_id not in {g["id"] for g in self._resolver.visible_groups(user_id)}:
            raise NotFound("Group not found")

    def _tombstone(self, acting_user_id: int) -> Tombstone:
        now = self._clock()
        return {"deleted_at": now, "expires_at": now + self._undo_window, "deleted_by": acting_user_id}

    def create(
        self,
        owner_id: int,
        name: str,
        date: Optional[str] = None,
        time: Optional[str] = None,
        priority: Priority = Priority.LOW,
        done: bool = False,
        group_id: Optional[int] = None,
    ) -> TaskEntity:
        self._check_group(owner_id, group_id)
        task = self._tasks.create(
            owner_id=owner_id,
            name=name,
            date=date,
            time=time,
            priority=Priority(priority).value,
            done=done,
            group_id=group_id,
            created_at=self._clock(),
        )
        logger.debug("User %s created task %s", owner_id, task["id"])
        return task

    def update(self, task_id: int, acting_user_id: int, fields: Mapping[str, Any]) -> TaskEntity:
        """
        Apply the fields the caller supplied.

        `fields` must contain only keys that were actually sent: a missing
        group_id leaves the group alone, while group_id=None ungroups the task.
        """
        unknown = set(fields) - TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")
        task = self._resolver.visible_task(acting_user_id, task_id)
        if task["owner_id"] != acting_user_id:
            logger.debug("User %s may not edit task %s", acting_user_id, task_id)
            raise Forbidden("Only the task owner can edit this task")
        changes: Dict[str, Any] = dict(fields)
        if "priority" in changes:
            changes["priority"] = Priority(changes["priority"]).value
        if "group_id" in changes:
            self._check_group(acting_user_id, changes["group_id"])
        updated = self._tasks.update(task_id, changes)
        if updated is None:
            raise NotFound("Task not found")
        return updated

    def soft_delete(self, task_id: int, acting_user_id: int) -> TaskEntity:
        """Tombstone an active task; it disappears from every listing until undone or purged."""
        task = self._resolver.visible_task(acting_user_id, task_id)
        if task["owner_id"] != acting_user_id:
            logger.debug("User %s may not delete task %s", acting_user_id, task_id)
            raise Forbidden("Only the task owner can delete this task")
        deleted = self._tasks.soft_delete(task_id, self._tombstone(acting_user_id))
        if deleted is None:
            raise NotFound("Task not found")
        logger.info("Task %s deleted by user %s", task_id, acting_user_id)
        return deleted

    def undo(self, task_id: int, acting_user_id: int) -> TaskEntity:
        """
        Restore a tombstoned task. Allowed for its owner and for whoever
        deleted it, and only before the tombstone expires.
        """
        task = self._tasks.get(task_id)
        if task is None or task["tombstone"] is None:
            raise NotFound("Task not found")
        if acting_user_id not in (task["owner_id"], task["tombstone"]["deleted_by"]):
            raise NotFound("Task not found")
        now = self._clock()
        restored = self._tasks.restore(task_id, now)
        if restored is None:
            current = self._tasks.get(task_id)
            if current is not None and current["tombstone"] is None:
                # a concurrent undo won
                return current
            purged = self._tasks.purge_expired(now)
            logger.info("Undo of task %s refused, window expired (%d purged)", task_id, purged)
            raise Expired("Task not found")
        logger.info("Task %s restored by user %s", task_id, acting_user_id)
        return restored

    def purge_expired(self) -> int:
        """Permanently destroy every tombstone whose undo window has elapsed."""
        purged = self._tasks.purge_expired(self._clock())
        if purged:
            logger.info("Purged %d expired tasks", purged)
        return purged

    def clear_completed(self, user_id: int) -> int:
        """Soft-delete every completed task visible to the user, shared ones included."""
        done_ids = [t["id"] for t in self._resolver.visible_tasks(user_id) if t["done"]]
        cleared = self._tasks.soft_delete_completed(done_ids, self._tombstone(user_id))
        logger.info("User %s cleared %d completed tasks", user_id, cleared)
        return cleared
