from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user_id
from ..schemas import ClearedOut, DeletedTaskOut, TaskCreate, TaskOut, TaskUpdate
from ..services import Services, get_services
from ..utils import task_out

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task owned by the caller, optionally filed in a group the caller can see.",
    responses={
        201: {"description": "Task created successfully"},
        404: {"description": "Group not found"},
    },
)
def create_task(
    payload: TaskCreate,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> TaskOut:
    """
    Create a new Task.
    """
    created = services.tasks.create(
        owner_id=user_id,
        name=payload.name,
        date=payload.date,
        time=payload.time,
        priority=payload.priority,
        done=payload.done,
        group_id=payload.group_id,
    )
    return task_out(created)


# Registered before /{task_id} so that "completed" is never read as an id
# PUBLIC_INTERFACE
@router.delete(
    "/completed",
    response_model=ClearedOut,
    summary="Clear Completed",
    description=(
        "Delete every completed task the caller can see, including tasks other members "
        "filed in shared groups. Each can be restored with undo during the undo window."
    ),
)
def clear_completed(
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ClearedOut:
    """
    Soft-delete every completed task visible to the caller.
    """
    cleared = services.tasks.clear_completed(user_id)
    return ClearedOut(cleared=cleared, message=f"{cleared} tasks cleared")


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Partially update a task (owner only). Only fields present in the body change; "
        "send \"group_id\": null to ungroup."
    ),
    responses={
        200: {"description": "Task updated"},
        403: {"description": "Caller does not own the task"},
        404: {"description": "Task not found"},
    },
)
def update_task(
    task_id: int,
    payload: TaskUpdate,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> TaskOut:
    """
    Partially update a task.
    """
    updated = services.tasks.update(task_id, user_id, payload.to_fields())
    return task_out(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    response_model=DeletedTaskOut,
    summary="Delete Task",
    description="Mark a task as deleted. It can be restored with undo until expires_at.",
    responses={
        200: {"description": "Task marked as deleted"},
        403: {"description": "Caller does not own the task"},
        404: {"description": "Task not found"},
    },
)
def delete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> DeletedTaskOut:
    """
    Soft-delete a task, starting its undo window.
    """
    deleted = services.tasks.soft_delete(task_id, user_id)
    tombstone = deleted["tombstone"]
    assert tombstone is not None
    return DeletedTaskOut(id=deleted["id"], message="Task marked as deleted", expires_at=tombstone["expires_at"])


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/undo",
    response_model=TaskOut,
    summary="Undo Delete",
    description="Restore a deleted task with all its fields, if the undo window has not elapsed.",
    responses={
        200: {"description": "Task restored"},
        404: {"description": "Task not found or undo window expired"},
    },
)
def undo_delete(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> TaskOut:
    """
    Restore a deleted task.
    """
    return task_out(services.tasks.undo(task_id, user_id))
