import itertools

import pytest

from collab_todo.errors import NotFound
from collab_todo.models import GroupKind
from collab_todo.visibility import TaskOrder, group_visible_to, task_visible_to


def names(tasks):
    return [t["name"] for t in tasks]


class TestTeamWalkthrough:
    def test_shared_task_follows_group_membership(self, services, users):
        alice, bob = users["alice"]["id"], users["bob"]["id"]

        team = services.groups.create(alice, "Team", GroupKind.COLLABORATIVE)
        assert team["collaborator_ids"] == [alice]

        services.groups.add_collaborator(team["id"], alice, "bob@example.com")
        assert [g["name"] for g in services.resolver.visible_groups(bob)] == ["Team"]

        ship = services.tasks.create(alice, "Ship v1", group_id=team["id"])
        assert "Ship v1" in names(services.resolver.visible_tasks(bob))

        services.groups.delete(team["id"], alice)
        assert "Ship v1" not in names(services.resolver.visible_tasks(bob))

        stored = services.repositories.tasks.get(ship["id"])
        assert stored["group_id"] is None
        assert stored["owner_id"] == alice
        assert "Ship v1" in names(services.resolver.visible_tasks(alice))


class TestVisibilityRule:
    def test_never_leaks_tasks_from_invisible_groups(self, services, users):
        alice, bob, carol = (users[n]["id"] for n in ("alice", "bob", "carol"))
        team = services.groups.create(alice, "Team", GroupKind.COLLABORATIVE)
        services.groups.add_collaborator(team["id"], alice, "bob@example.com")
        home = services.groups.create(carol, "Home", GroupKind.PERSONAL)
        side = services.groups.create(bob, "Side", GroupKind.COLLABORATIVE)

        for owner, group in itertools.product((alice, bob, carol), (None, team, home, side)):
            group_id = None if group is None else group["id"]
            try:
                services.tasks.create(owner, f"{owner}-{group_id}", group_id=group_id)
            except NotFound:
                pass

        everyone = services.repositories.groups
        for user in (alice, bob, carol):
            group_ids = {g["id"] for g in everyone.list_visible(user)}
            for task in services.resolver.visible_tasks(user):
                assert task["owner_id"] == user or task["group_id"] in group_ids

        assert all(t["owner_id"] == carol for t in services.resolver.visible_tasks(carol))

    def test_own_task_stays_visible_after_leaving_group(self, services, users):
        alice, bob = users["alice"]["id"], users["bob"]["id"]
        team = services.groups.create(alice, "Team", GroupKind.COLLABORATIVE)
        services.groups.add_collaborator(team["id"], alice, "bob@example.com")
        task = services.tasks.create(bob, "Bob's part", group_id=team["id"])

        services.groups.remove_collaborator(team["id"], bob, bob)

        assert task["id"] in [t["id"] for t in services.resolver.visible_tasks(bob)]
        assert task["id"] in [t["id"] for t in services.resolver.visible_tasks(alice)]

    def test_visible_task_hides_existence(self, services, users):
        task = services.tasks.create(users["alice"]["id"], "Private")
        with pytest.raises(NotFound):
            services.resolver.visible_task(users["bob"]["id"], task["id"])
        with pytest.raises(NotFound):
            services.resolver.visible_task(users["bob"]["id"], 9999)

    def test_predicates(self):
        group = {"id": 1, "owner_id": 1, "collaborator_ids": [1, 2]}
        assert group_visible_to(group, 1)
        assert group_visible_to(group, 2)
        assert not group_visible_to(group, 3)

        task = {"owner_id": 1, "group_id": 1, "tombstone": None}
        assert task_visible_to(task, 2, {1})
        assert not task_visible_to(task, 3, set())
        tombstoned = dict(task, tombstone={"deleted_at": 0, "expires_at": 1, "deleted_by": 1})
        assert not task_visible_to(tombstoned, 1, {1})


class TestOrdering:
    @pytest.fixture
    def tasks(self, services, users, clock):
        alice = users["alice"]["id"]
        services.tasks.create(alice, "first", date="2025-05-01", priority="Mid")
        clock.advance(minutes=1)
        services.tasks.create(alice, "second", priority="High")
        clock.advance(minutes=1)
        services.tasks.create(alice, "third", date="2025-04-01", time="18:00", priority="Low")
        clock.advance(minutes=1)
        services.tasks.create(alice, "fourth", date="2025-04-01", time="08:00", priority="High")
        return alice

    def test_added_is_newest_first(self, services, tasks):
        assert names(services.resolver.visible_tasks(tasks)) == ["fourth", "third", "second", "first"]

    def test_due_date_then_time_undated_last(self, services, tasks):
        ordered = services.resolver.visible_tasks(tasks, TaskOrder.DUE)
        assert names(ordered) == ["fourth", "third", "first", "second"]

    def test_priority_ties_by_creation(self, services, tasks):
        ordered = services.resolver.visible_tasks(tasks, TaskOrder.PRIORITY)
        assert names(ordered) == ["second", "fourth", "first", "third"]

    def test_same_timestamp_newest_id_first(self, services, users):
        alice = users["alice"]["id"]
        services.tasks.create(alice, "a")
        services.tasks.create(alice, "b")
        assert names(services.resolver.visible_tasks(alice)) == ["b", "a"]

    def test_snapshot_matches_resolver(self, services, users, tasks):
        groups, listed = services.resolver.snapshot(tasks, TaskOrder.DUE)
        assert groups == services.resolver.visible_groups(tasks)
        assert listed == services.resolver.visible_tasks(tasks, TaskOrder.DUE)
