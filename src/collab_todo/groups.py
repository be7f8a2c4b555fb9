"""
Group Registry: group records and owner/collaborator membership.

Only the owner mutates a group. A collaborative group always lists its owner
among the collaborators and a personal group never has any.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import Conflict, Forbidden, InvalidState, NotFound
from .models import GroupEntity, GroupKind
from .repositories import GroupRepository, TaskRepository, UserRepository
from .visibility import group_visible_to

logger = logging.getLogger(__name__)


def _seed_collaborators(kind: GroupKind, owner_id: int) -> List[int]:
    return [owner_id] if kind == GroupKind.COLLABORATIVE else []


class GroupRegistry:
    def __init__(self, groups: GroupRepository, tasks: TaskRepository, users: UserRepository) -> None:
        self._groups = groups
        self._tasks = tasks
        self._users = users

    def _visible(self, group_id: int, user_id: int) -> GroupEntity:
        group = self._groups.get(group_id)
        if group is None or not group_visible_to(group, user_id):
            raise NotFound("Group not found")
        return group

    def _owned(self, group_id: int, user_id: int, action: str) -> GroupEntity:
        group = self._visible(group_id, user_id)
        if group["owner_id"] != user_id:
            logger.debug("User %s may not %s group %s", user_id, action, group_id)
            raise Forbidden(f"Only the group owner can {action} this group")
        return group

    def _reload(self, group_id: int) -> GroupEntity:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFound("Group not found")
        return group

    def create(self, owner_id: int, name: str, kind: GroupKind = GroupKind.PERSONAL) -> GroupEntity:
        kind = GroupKind(kind)
        group = self._groups.create(owner_id, name, kind.value, _seed_collaborators(kind, owner_id))
        logger.info("User %s created %s group %s", owner_id, kind.value, group["id"])
        return group

    def get(self, group_id: int, acting_user_id: int) -> GroupEntity:
        return self._visible(group_id, acting_user_id)

    def visible_to(self, user_id: int) -> List[GroupEntity]:
        return self._groups.list_visible(user_id)

    def update(
        self,
        group_id: int,
        acting_user_id: int,
        name: Optional[str] = None,
        kind: Optional[GroupKind] = None,
    ) -> GroupEntity:
        """
        Rename and/or retype a group.

        Retyping to personal drops every collaborator; retyping to
        collaborative seeds the owner. Both happen in the same write as the
        kind change.
        """
        group = self._owned(group_id, acting_user_id, "update")
        fields: Dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if kind is not None:
            kind = GroupKind(kind)
            fields["kind"] = kind.value
            if kind.value != group["kind"]:
                fields["collaborator_ids"] = _seed_collaborators(kind, group["owner_id"])
        if not fields:
            return group
        updated = self._groups.update(group_id, fields)
        if updated is None:
            raise NotFound("Group not found")
        return updated

    def add_collaborator(self, group_id: int, acting_user_id: int, target_email: str) -> GroupEntity:
        group = self._owned(group_id, acting_user_id, "add collaborators to")
        target = self._users.get_by_email(target_email)
        if target is None:
            raise NotFound("User not found with that email")
        if group["kind"] != GroupKind.COLLABORATIVE.value:
            raise InvalidState("Collaborators can only be added to collaborative groups")
        if target["id"] == group["owner_id"]:
            raise Conflict("User is already the owner")
        if self._groups.add_collaborator(group_id, target["id"]):
            logger.info("Added user %s to group %s", target["id"], group_id)
            return self._reload(group_id)
        current = self._reload(group_id)
        # retyped to personal since the check above
        if current["kind"] != GroupKind.COLLABORATIVE.value:
            raise InvalidState("Collaborators can only be added to collaborative groups")
        return current

    def remove_collaborator(self, group_id: int, acting_user_id: int, target_user_id: int) -> GroupEntity:
        """
        Remove a collaborator. The owner may remove anyone; any collaborator may
        remove themselves. The owner cannot be removed from their own group.
        """
        group = self._visible(group_id, acting_user_id)
        is_owner = group["owner_id"] == acting_user_id
        if not is_owner and acting_user_id != target_user_id:
            logger.debug("User %s may not remove %s from group %s", acting_user_id, target_user_id, group_id)
            raise Forbidden("Not authorized to remove this collaborator")
        if target_user_id == group["owner_id"]:
            raise Conflict("The owner cannot leave the group; delete it instead")
        if self._groups.remove_collaborator(group_id, target_user_id):
            logger.info("Removed user %s from group %s", target_user_id, group_id)
        return self._reload(group_id)

    def delete(self, group_id: int, acting_user_id: int) -> None:
        """Ungroup every task filed in the group, then remove the group."""
        self._owned(group_id, acting_user_id, "delete")
        ungrouped = self._tasks.ungroup(group_id)
        self._groups.delete(group_id)
        logger.info("Deleted group %s, ungrouped %d tasks", group_id, ungrouped)
