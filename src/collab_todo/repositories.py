from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Collection, Dict, List, Mapping, Optional

from .errors import Conflict
from .models import GroupEntity, GroupKind, TaskEntity, Tombstone, UserEntity
from .settings import Settings

USER_FIELDS = frozenset({"name", "email", "password_hash", "recovery_question", "recovery_answer_hash"})
GROUP_FIELDS = frozenset({"name", "kind", "collaborator_ids"})
TASK_FIELDS = frozenset({"name", "date", "time", "priority", "done", "group_id"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract storage contract for User records."""

    @abstractmethod
    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        recovery_question: str,
        recovery_answer_hash: str,
    ) -> UserEntity:
        """Insert a user. Raise Conflict if the (lower-cased) email is taken."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return the user whose email equals `email` case-insensitively, or None."""

    @abstractmethod
    def search(self, query: str, limit: int) -> List[UserEntity]:
        """Case-insensitive substring match on name or email, in registration order."""

    @abstractmethod
    def update(self, user_id: int, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        """
        Apply a subset of USER_FIELDS. Return the updated user or None if absent.
        Raise Conflict if a new email belongs to another user.
        """

    @abstractmethod
    def delete(self, user_id: int) -> bool:
        """Delete a user. Return True if deleted."""


# PUBLIC_INTERFACE
class GroupRepository(ABC):
    """Abstract storage contract for Group records and their collaborator sets."""

    @abstractmethod
    def create(self, owner_id: int, name: str, kind: str, collaborator_ids: List[int]) -> GroupEntity:
        """Insert and return a group."""

    @abstractmethod
    def get(self, group_id: int) -> Optional[GroupEntity]:
        """Return a group by id, or None."""

    @abstractmethod
    def list_visible(self, user_id: int) -> List[GroupEntity]:
        """Groups the user owns or collaborates on, in creation order."""

    @abstractmethod
    def list_owned(self, user_id: int) -> List[GroupEntity]:
        """Groups the user owns, in creation order."""

    @abstractmethod
    def update(self, group_id: int, fields: Mapping[str, Any]) -> Optional[GroupEntity]:
        """Atomically apply a subset of GROUP_FIELDS. Return the updated group or None."""

    @abstractmethod
    def add_collaborator(self, group_id: int, user_id: int) -> bool:
        """
        Add-if-absent, applied only while the group is collaborative.
        Return True if the set changed.
        """

    @abstractmethod
    def remove_collaborator(self, group_id: int, user_id: int) -> bool:
        """Remove-if-present. Return True if the set changed."""

    @abstractmethod
    def remove_member_everywhere(self, user_id: int) -> int:
        """Pull the user from every collaborator set. Return the number of groups changed."""

    @abstractmethod
    def delete(self, group_id: int) -> bool:
        """Delete a group. Return True if deleted."""


# PUBLIC_INTERFACE
class TaskRepository(ABC):
    """Abstract storage contract for Task records, including their tombstones."""

    @abstractmethod
    def create(
        self,
        owner_id: int,
        name: str,
        date: Optional[str],
        time: Optional[str],
        priority: str,
        done: bool,
        group_id: Optional[int],
        created_at: datetime,
    ) -> TaskEntity:
        """Insert and return an active task."""

    @abstractmethod
    def get(self, task_id: int) -> Optional[TaskEntity]:
        """Return a task by id whatever its state, or None."""

    @abstractmethod
    def list_visible(self, user_id: int, group_ids: Collection[int]) -> List[TaskEntity]:
        """Active tasks owned by the user or in any of group_ids, in creation order."""

    @abstractmethod
    def update(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        """Apply a subset of TASK_FIELDS to an active task. Return it, or None if absent or tombstoned."""

    @abstractmethod
    def soft_delete(self, task_id: int, tombstone: Tombstone) -> Optional[TaskEntity]:
        """Tombstone an active task. Return it, or None if absent or already tombstoned."""

    @abstractmethod
    def soft_delete_completed(self, task_ids: Collection[int], tombstone: Tombstone) -> int:
        """Tombstone those of task_ids that are active and done. Return how many changed."""

    @abstractmethod
    def restore(self, task_id: int, now: datetime) -> Optional[TaskEntity]:
        """Clear the tombstone if it has not expired at `now`. Return the task, or None."""

    @abstractmethod
    def ungroup(self, group_id: int) -> int:
        """Set group_id to None on every task referencing the group. Return how many changed."""

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        """Destroy tombstoned tasks whose expiry is at or before `now`. Return how many."""

    @abstractmethod
    def delete_owned(self, owner_id: int) -> int:
        """Destroy every task owned by the user. Return how many."""


def _copy_group(group: GroupEntity) -> GroupEntity:
    copied = group.copy()
    copied["collaborator_ids"] = list(group["collaborator_ids"])
    return copied


def _copy_task(task: TaskEntity) -> TaskEntity:
    copied = task.copy()
    if task["tombstone"] is not None:
        copied["tombstone"] = task["tombstone"].copy()
    return copied


class _Sequence:
    def __init__(self) -> None:
        self._next_id = 1

    def allocate(self) -> int:
        i = self._next_id
        self._next_id += 1
        return i


class InMemoryUserRepository(UserRepository):
    """
    Thread-safe in-memory user store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[int, UserEntity] = {}
        self._ids = _Sequence()

    def _find_email(self, email: str) -> Optional[UserEntity]:
        needle = email.strip().lower()
        for user in self._items.values():
            if user["email"] == needle:
                return user
        return None

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        recovery_question: str,
        recovery_answer_hash: str,
    ) -> UserEntity:
        with self._lock:
            if self._find_email(email) is not None:
                raise Conflict("Email already registered")
            entity: UserEntity = {
                "id": self._ids.allocate(),
                "name": name,
                "email": email.strip().lower(),
                "password_hash": password_hash,
                "recovery_question": recovery_question,
                "recovery_answer_hash": recovery_answer_hash,
                "created_at": utcnow(),
            }
            self._items[entity["id"]] = entity
            return entity.copy()

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._lock:
            item = self._items.get(user_id)
            return None if item is None else item.copy()

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._find_email(email)
            return None if item is None else item.copy()

    def search(self, query: str, limit: int) -> List[UserEntity]:
        s = query.lower()
        with self._lock:
            matches = [
                u.copy()
                for u in self._items.values()
                if s in u["name"].lower() or s in u["email"]
            ]
        return matches[: max(limit, 0)]

    def update(self, user_id: int, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        with self._lock:
            existing = self._items.get(user_id)
            if existing is None:
                return None
            updated = existing.copy()
            for key, value in fields.items():
                if key in USER_FIELDS:
                    updated[key] = value  # type: ignore[literal-required]
            updated["email"] = updated["email"].strip().lower()
            other = self._find_email(updated["email"])
            if other is not None and other["id"] != user_id:
                raise Conflict("Email already in use")
            self._items[user_id] = updated
            return updated.copy()

    def delete(self, user_id: int) -> bool:
        with self._lock:
            return self._items.pop(user_id, None) is not None


class InMemoryGroupRepository(GroupRepository):
    """
    Thread-safe in-memory group store. Collaborator edits happen under the
    store lock, so they never lose concurrent updates.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[int, GroupEntity] = {}
        self._ids = _Sequence()

    def create(self, owner_id: int, name: str, kind: str, collaborator_ids: List[int]) -> GroupEntity:
        with self._lock:
            entity: GroupEntity = {
                "id": self._ids.allocate(),
                "name": name,
                "kind": kind,
                "owner_id": owner_id,
                "collaborator_ids": list(dict.fromkeys(collaborator_ids)),
                "created_at": utcnow(),
            }
            self._items[entity["id"]] = entity
            return _copy_group(entity)

    def get(self, group_id: int) -> Optional[GroupEntity]:
        with self._lock:
            item = self._items.get(group_id)
            return None if item is None else _copy_group(item)

    def list_visible(self, user_id: int) -> List[GroupEntity]:
        with self._lock:
            return [
                _copy_group(g)
                for g in self._items.values()
                if g["owner_id"] == user_id or user_id in g["collaborator_ids"]
            ]

    def list_owned(self, user_id: int) -> List[GroupEntity]:
        with self._lock:
            return [_copy_group(g) for g in self._items.values() if g["owner_id"] == user_id]

    def update(self, group_id: int, fields: Mapping[str, Any]) -> Optional[GroupEntity]:
        with self._lock:
            existing = self._items.get(group_id)
            if existing is None:
                return None
            updated = _copy_group(existing)
            if "name" in fields:
                updated["name"] = fields["name"]
            if "kind" in fields:
                updated["kind"] = fields["kind"]
            if "collaborator_ids" in fields:
                updated["collaborator_ids"] = list(dict.fromkeys(fields["collaborator_ids"]))
            self._items[group_id] = updated
            return _copy_group(updated)

    def add_collaborator(self, group_id: int, user_id: int) -> bool:
        with self._lock:
            group = self._items.get(group_id)
            if group is None or group["kind"] != GroupKind.COLLABORATIVE.value:
                return False
            if user_id in group["collaborator_ids"]:
                return False
            group["collaborator_ids"].append(user_id)
            return True

    def remove_collaborator(self, group_id: int, user_id: int) -> bool:
        with self._lock:
            group = self._items.get(group_id)
            if group is None or user_id not in group["collaborator_ids"]:
                return False
            group["collaborator_ids"].remove(user_id)
            return True

    def remove_member_everywhere(self, user_id: int) -> int:
        changed = 0
        with self._lock:
            for group in self._items.values():
                if user_id in group["collaborator_ids"]:
                    group["collaborator_ids"].remove(user_id)
                    changed += 1
        return changed

    def delete(self, group_id: int) -> bool:
        with self._lock:
            return self._items.pop(group_id, None) is not None


class InMemoryTaskRepository(TaskRepository):
    """
    Thread-safe in-memory task store. Every state transition is a single
    update under the store lock.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[int, TaskEntity] = {}
        self._ids = _Sequence()

    def create(
        self,
        owner_id: int,
        name: str,
        date: Optional[str],
        time: Optional[str],
        priority: str,
        done: bool,
        group_id: Optional[int],
        created_at: datetime,
    ) -> TaskEntity:
        with self._lock:
            entity: TaskEntity = {
                "id": self._ids.allocate(),
                "name": name,
                "date": date,
                "time": time,
                "priority": priority,
                "done": done,
                "created_at": created_at,
                "owner_id": owner_id,
                "group_id": group_id,
                "tombstone": None,
            }
            self._items[entity["id"]] = entity
            return _copy_task(entity)

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            return None if item is None else _copy_task(item)

    def list_visible(self, user_id: int, group_ids: Collection[int]) -> List[TaskEntity]:
        groups = set(group_ids)
        with self._lock:
            return [
                _copy_task(t)
                for t in self._items.values()
                if t["tombstone"] is None and (t["owner_id"] == user_id or t["group_id"] in groups)
            ]

    def update(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None or existing["tombstone"] is not None:
                return None
            updated = _copy_task(existing)
            for key, value in fields.items():
                if key in TASK_FIELDS:
                    updated[key] = value  # type: ignore[literal-required]
            self._items[task_id] = updated
            return _copy_task(updated)

    def soft_delete(self, task_id: int, tombstone: Tombstone) -> Optional[TaskEntity]:
        with self._lock:
            task = self._items.get(task_id)
            if task is None or task["tombstone"] is not None:
                return None
            task["tombstone"] = tombstone.copy()  # type: ignore[typeddict-item]
            return _copy_task(task)

    def soft_delete_completed(self, task_ids: Collection[int], tombstone: Tombstone) -> int:
        changed = 0
        with self._lock:
            for task_id in task_ids:
                task = self._items.get(task_id)
                if task is None or task["tombstone"] is not None or not task["done"]:
                    continue
                task["tombstone"] = tombstone.copy()  # type: ignore[typeddict-item]
                changed += 1
        return changed

    def restore(self, task_id: int, now: datetime) -> Optional[TaskEntity]:
        with self._lock:
            task = self._items.get(task_id)
            if task is None or task["tombstone"] is None:
                return None
            if now >= task["tombstone"]["expires_at"]:
                return None
            task["tombstone"] = None
            return _copy_task(task)

    def ungroup(self, group_id: int) -> int:
        changed = 0
        with self._lock:
            for task in self._items.values():
                if task["group_id"] == group_id:
                    task["group_id"] = None
                    changed += 1
        return changed

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [
                task_id
                for task_id, t in self._items.items()
                if t["tombstone"] is not None and t["tombstone"]["expires_at"] <= now
            ]
            for task_id in expired:
                del self._items[task_id]
        return len(expired)

    def delete_owned(self, owner_id: int) -> int:
        with self._lock:
            owned = [task_id for task_id, t in self._items.items() if t["owner_id"] == owner_id]
            for task_id in owned:
                del self._items[task_id]
        return len(owned)


@dataclass(frozen=True)
class Repositories:
    """The three stores a service container is built from."""

    users: UserRepository
    groups: GroupRepository
    tasks: TaskRepository


# PUBLIC_INTERFACE
def get_repositories(settings: Settings) -> Repositories:
    """
    Factory to return the configured repositories based on settings.
    - memory: in-memory stores (state lives for the process lifetime)
    - sqlite: SQLite stores sharing one database file
    """
    if settings.persistence_backend == "sqlite":
        from .db import open_sqlite_repositories

        return open_sqlite_repositories(settings.sqlite_db_path)
    return Repositories(
        users=InMemoryUserRepository(),
        groups=InMemoryGroupRepository(),
        tasks=InMemoryTaskRepository(),
    )
