"""
Visibility resolution for groups and tasks.

A user sees a group when they own it or are one of its collaborators. A user
sees a task when it is active and they either own it or can see its group.
Listings, bulk actions and authorization checks all go through the predicates
and resolver defined here.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Collection, List, Tuple

from .errors import NotFound
from .models import GroupEntity, Priority, TaskEntity
from .repositories import TaskRepository

if TYPE_CHECKING:
    from .groups import GroupRegistry

_PRIORITY_RANK = {Priority.HIGH.value: 0, Priority.MID.value: 1, Priority.LOW.value: 2}


class TaskOrder(str, Enum):
    ADDED = "added"
    DUE = "due"
    PRIORITY = "priority"


# PUBLIC_INTERFACE
def group_visible_to(group: GroupEntity, user_id: int) -> bool:
    """True when the user owns the group or collaborates on it."""
    return group["owner_id"] == user_id or user_id in group["collaborator_ids"]


# PUBLIC_INTERFACE
def task_visible_to(task: TaskEntity, user_id: int, visible_group_ids: Collection[int]) -> bool:
    """True when the task is active and owned by the user or filed in one of their visible groups."""
    if task["tombstone"] is not None:
        return False
    return task["owner_id"] == user_id or (
        task["group_id"] is not None and task["group_id"] in visible_group_ids
    )


def sort_tasks(tasks: List[TaskEntity], order: TaskOrder) -> List[TaskEntity]:
    """
    Order tasks for display.

    - added: newest first
    - due: earliest date then time first, undated last
    - priority: High, Mid, Low

    Ties fall back to creation order (task id).
    """
    if order == TaskOrder.DUE:
        return sorted(
            tasks,
            key=lambda t: (t["date"] is None, t["date"] or "", t["time"] is None, t["time"] or "", t["id"]),
        )
    if order == TaskOrder.PRIORITY:
        return sorted(tasks, key=lambda t: (_PRIORITY_RANK.get(t["priority"], 3), t["id"]))
    return sorted(tasks, key=lambda t: (t["created_at"], t["id"]), reverse=True)


class VisibilityResolver:
    """Answers "which groups and tasks can this user see"."""

    def __init__(self, registry: GroupRegistry, tasks: TaskRepository) -> None:
        self._registry = registry
        self._tasks = tasks

    def visible_groups(self, user_id: int) -> List[GroupEntity]:
        return self._registry.visible_to(user_id)

    def visible_tasks(self, user_id: int, order: TaskOrder = TaskOrder.ADDED) -> List[TaskEntity]:
        group_ids = {g["id"] for g in self.visible_groups(user_id)}
        candidates = self._tasks.list_visible(user_id, group_ids)
        return sort_tasks([t for t in candidates if task_visible_to(t, user_id, group_ids)], order)

    def visible_task(self, user_id: int, task_id: int) -> TaskEntity:
        """Return the task if the user can see it, else raise NotFound."""
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound("Task not found")
        group_ids = {g["id"] for g in self.visible_groups(user_id)}
        if not task_visible_to(task, user_id, group_ids):
            raise NotFound("Task not found")
        return task

    def snapshot(
        self, user_id: int, order: TaskOrder = TaskOrder.ADDED
    ) -> Tuple[List[GroupEntity], List[TaskEntity]]:
        """Everything the user can see, as (groups, tasks)."""
        groups = self.visible_groups(user_id)
        group_ids = {g["id"] for g in groups}
        candidates = self._tasks.list_visible(user_id, group_ids)
        tasks = [t for t in candidates if task_visible_to(t, user_id, group_ids)]
        return groups, sort_tasks(tasks, order)
