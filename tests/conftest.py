import os
from datetime import datetime, timedelta, timezone

import pytest

# Memory backend, cheap hashing and no background sweep for tests
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("PURGE_INTERVAL_SECONDS", "0")

from collab_todo.db import open_sqlite_repositories  # noqa: E402
from collab_todo.services import build_services  # noqa: E402
from collab_todo.settings import get_settings  # noqa: E402

PASSWORD = "secret-pass"


class FakeClock:
    """Deterministic clock handed to the task store."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def services(clock):
    return build_services(get_settings(), clock=clock)


@pytest.fixture
def sqlite_services(tmp_path, clock):
    repos = open_sqlite_repositories(str(tmp_path / "todo.db"))
    return build_services(get_settings(), repositories=repos, clock=clock)


def make_user(services, name, email=None, answer="Rex"):
    return services.directory.register(
        name=name,
        email=email or f"{name.lower()}@example.com",
        password=PASSWORD,
        recovery_question="First pet?",
        recovery_answer=answer,
    )


@pytest.fixture
def users(services):
    """Three registered users: alice, bob and carol."""
    return {name: make_user(services, name.capitalize()) for name in ("alice", "bob", "carol")}
