from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, TypedDict


class GroupKind(str, Enum):
    PERSONAL = "personal"
    COLLABORATIVE = "collaborative"


class Priority(str, Enum):
    LOW = "Low"
    MID = "Mid"
    HIGH = "High"


class TaskState(str, Enum):
    ACTIVE = "active"
    TOMBSTONED = "tombstoned"


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    Identity record.

    Fields:
    - id: Unique integer identifier
    - name: Display name
    - email: Lower-cased, unique email address
    - password_hash: PBKDF2 hash of the password (see security.py)
    - recovery_question: Free-text question shown on password recovery
    - recovery_answer_hash: PBKDF2 hash of the normalized recovery answer
    - created_at: Registration timestamp
    """

    id: int
    name: str
    email: str
    password_hash: str
    recovery_question: str
    recovery_answer_hash: str
    created_at: datetime


# PUBLIC_INTERFACE
class GroupEntity(TypedDict):
    """
    A named collection of tasks with a visibility boundary.

    collaborator_ids is empty for personal groups and always contains owner_id
    for collaborative groups.
    """

    id: int
    name: str
    kind: str
    owner_id: int
    collaborator_ids: List[int]
    created_at: datetime


class Tombstone(TypedDict):
    deleted_at: datetime
    expires_at: datetime
    deleted_by: int


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A unit of work.

    Fields:
    - date/time: Opaque 'YYYY-MM-DD' / 'HH:MM' strings, or None
    - priority: One of Priority values
    - created_at: Server-side creation timestamp, used for "date added" ordering
    - group_id: None when the task is ungrouped
    - tombstone: None while the task is active; set while it awaits undo or purge
    """

    id: int
    name: str
    date: Optional[str]
    time: Optional[str]
    priority: str
    done: bool
    created_at: datetime
    owner_id: int
    group_id: Optional[int]
    tombstone: Optional[Tombstone]


def task_state(task: TaskEntity) -> TaskState:
    return TaskState.ACTIVE if task["tombstone"] is None else TaskState.TOMBSTONED
