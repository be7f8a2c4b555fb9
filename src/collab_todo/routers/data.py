from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_user_id
from ..schemas import DataOut, UserSummary
from ..services import Services, get_services
from ..utils import groups_out, task_out, user_summary
from ..visibility import TaskOrder

router = APIRouter(
    prefix="/api",
    tags=["data"],
)


# PUBLIC_INTERFACE
@router.get(
    "/data",
    response_model=DataOut,
    summary="Visible Groups and Tasks",
    description=(
        "Return every group the caller owns or collaborates on, and every active task "
        "the caller owns or that is filed in one of those groups.\n\n"
        "Query parameters:\n"
        "- sort: added (newest first, default), due, or priority"
    ),
)
def get_data(
    sort: TaskOrder = Query(TaskOrder.ADDED, description="Task order: added, due or priority"),
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> DataOut:
    """
    Return all groups and tasks visible to the caller.
    """
    groups, tasks = services.resolver.snapshot(user_id, sort)
    return DataOut(groups=groups_out(groups, services), tasks=[task_out(t) for t in tasks])


# PUBLIC_INTERFACE
@router.get(
    "/users/search",
    response_model=List[UserSummary],
    summary="Search Users",
    description=(
        "Case-insensitive substring match on name or email. Queries shorter than "
        "two characters return an empty list."
    ),
)
def search_users(
    q: str = Query("", description="Search text for name/email"),
    limit: Optional[int] = Query(None, ge=1, le=50, description="Maximum number of results"),
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> List[UserSummary]:
    """
    Find users by name or email.
    """
    return [user_summary(u) for u in services.directory.search(q, limit)]
