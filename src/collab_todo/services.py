from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from .directory import IdentityDirectory
from .groups import GroupRegistry
from .repositories import Repositories, get_repositories, utcnow
from .settings import Settings, get_settings
from .tasks import Clock, TaskStore
from .visibility import VisibilityResolver

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The wired-up components a request handler works with."""

    repositories: Repositories
    directory: IdentityDirectory
    groups: GroupRegistry
    resolver: VisibilityResolver
    tasks: TaskStore

    def close_account(self, user_id: int) -> None:
        """
        Delete a user and everything hanging off them.

        Dependents go first so nothing outlives the identity record: owned
        groups (their tasks are ungrouped, not deleted), owned tasks, then
        collaborator memberships, then the user.
        """
        self.directory.get(user_id)
        for group in self.repositories.groups.list_owned(user_id):
            self.groups.delete(group["id"], user_id)
        removed_tasks = self.repositories.tasks.delete_owned(user_id)
        left = self.repositories.groups.remove_member_everywhere(user_id)
        self.directory.delete(user_id)
        logger.info(
            "Closed account %s (%d tasks removed, left %d groups)", user_id, removed_tasks, left
        )


# PUBLIC_INTERFACE
def build_services(
    settings: Settings,
    repositories: Optional[Repositories] = None,
    clock: Clock = utcnow,
) -> Services:
    """Construct every component from settings, sharing one set of repositories and one clock."""
    repos = repositories or get_repositories(settings)
    directory = IdentityDirectory(
        repos.users,
        hash_iterations=settings.password_hash_iterations,
        search_limit=settings.user_search_limit,
    )
    registry = GroupRegistry(repos.groups, repos.tasks, repos.users)
    resolver = VisibilityResolver(registry, repos.tasks)
    store = TaskStore(
        repos.tasks,
        resolver,
        clock=clock,
        undo_window=timedelta(seconds=settings.undo_window_seconds),
    )
    return Services(
        repositories=repos,
        directory=directory,
        groups=registry,
        resolver=resolver,
        tasks=store,
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_services() -> Services:
    """Process-wide services, used as a FastAPI dependency (override it in tests)."""
    return build_services(get_settings())
