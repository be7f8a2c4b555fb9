from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user_id
from ..schemas import CollaboratorAdd, GroupCreate, GroupOut, GroupUpdate, MessageOut
from ..services import Services, get_services
from ..utils import groups_out

router = APIRouter(
    prefix="/api/groups",
    tags=["groups"],
)


def _render(group, services: Services) -> GroupOut:
    return groups_out([group], services)[0]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=GroupOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Group",
    description="Create a group owned by the caller. Collaborative groups start with the owner as their only member.",
)
def create_group(
    payload: GroupCreate,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> GroupOut:
    """
    Create a new group owned by the caller.
    """
    group = services.groups.create(user_id, payload.name, payload.kind)
    return _render(group, services)


# PUBLIC_INTERFACE
@router.put(
    "/{group_id}",
    response_model=GroupOut,
    summary="Update Group",
    description=(
        "Rename or retype a group (owner only). Switching to personal removes every "
        "collaborator; switching to collaborative adds the owner."
    ),
    responses={
        403: {"description": "Caller is not the owner"},
        404: {"description": "Group not found"},
    },
)
def update_group(
    group_id: int,
    payload: GroupUpdate,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> GroupOut:
    """
    Rename and/or retype a group.
    """
    group = services.groups.update(group_id, user_id, name=payload.name, kind=payload.kind)
    return _render(group, services)


# PUBLIC_INTERFACE
@router.delete(
    "/{group_id}",
    response_model=MessageOut,
    summary="Delete Group",
    description="Delete a group (owner only). Its tasks are kept and become ungrouped.",
    responses={
        403: {"description": "Caller is not the owner"},
        404: {"description": "Group not found"},
    },
)
def delete_group(
    group_id: int,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> MessageOut:
    """
    Delete a group, keeping its tasks ungrouped.
    """
    services.groups.delete(group_id, user_id)
    return MessageOut(message="Group removed")


# PUBLIC_INTERFACE
@router.post(
    "/{group_id}/collaborators",
    response_model=GroupOut,
    summary="Add Collaborator",
    description="Add a user, looked up by email, to a collaborative group (owner only). Adding an existing member is a no-op.",
    responses={
        400: {"description": "Group is personal"},
        403: {"description": "Caller is not the owner"},
        404: {"description": "Group or user not found"},
        409: {"description": "User is already the owner"},
    },
)
def add_collaborator(
    group_id: int,
    payload: CollaboratorAdd,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> GroupOut:
    """
    Add a collaborator by email.
    """
    group = services.groups.add_collaborator(group_id, user_id, payload.email)
    return _render(group, services)


# PUBLIC_INTERFACE
@router.delete(
    "/{group_id}/collaborators/{member_id}",
    response_model=MessageOut,
    summary="Remove Collaborator",
    description="The owner may remove any collaborator; a collaborator may remove themselves.",
    responses={
        403: {"description": "Caller may not remove this user"},
        404: {"description": "Group not found"},
        409: {"description": "The owner cannot be removed"},
    },
)
def remove_collaborator(
    group_id: int,
    member_id: int,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> MessageOut:
    """
    Remove a collaborator, or leave the group.
    """
    services.groups.remove_collaborator(group_id, user_id, member_id)
    return MessageOut(message="Removed")
