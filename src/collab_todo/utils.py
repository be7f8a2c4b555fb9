from __future__ import annotations

from typing import Dict, Iterable, List

from .models import GroupEntity, TaskEntity, UserEntity
from .schemas import GroupOut, TaskOut, UserSummary
from .services import Services


def user_summary(user: UserEntity) -> UserSummary:
    return UserSummary(id=user["id"], name=user["name"], email=user["email"])


def task_out(task: TaskEntity) -> TaskOut:
    return TaskOut(
        id=task["id"],
        name=task["name"],
        date=task["date"],
        time=task["time"],
        priority=task["priority"],  # type: ignore[arg-type]
        done=task["done"],
        created_at=task["created_at"],
        owner_id=task["owner_id"],
        group_id=task["group_id"],
    )


# PUBLIC_INTERFACE
def groups_out(groups: Iterable[GroupEntity], services: Services) -> List[GroupOut]:
    """
    Expand owner and collaborator ids into user summaries.

    Args:
        groups: Group entities to render.
        services: Used to look up each referenced user once.

    Returns:
        GroupOut models in the same order. Ids whose user no longer exists are skipped.
    """
    materialized = list(groups)
    cache: Dict[int, UserSummary] = {}

    def lookup(user_id: int):
        if user_id not in cache:
            user = services.repositories.users.get(user_id)
            if user is None:
                return None
            cache[user_id] = user_summary(user)
        return cache[user_id]

    rendered: List[GroupOut] = []
    for g in materialized:
        owner = lookup(g["owner_id"])
        if owner is None:
            continue
        members = [m for m in (lookup(uid) for uid in g["collaborator_ids"]) if m is not None]
        rendered.append(
            GroupOut(
                id=g["id"],
                name=g["name"],
                kind=g["kind"],  # type: ignore[arg-type]
                owner=owner,
                collaborators=members,
                created_at=g["created_at"],
            )
        )
    return rendered
