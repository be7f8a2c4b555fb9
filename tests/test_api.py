import pytest
from fastapi.testclient import TestClient

from collab_todo.main import app
from collab_todo.services import get_services

from conftest import PASSWORD


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def register(client, name, answer="Rex"):
    email = f"{name.lower()}@example.com"
    res = client.post(
        "/auth/register",
        json={
            "name": name,
            "email": email,
            "password": PASSWORD,
            "recovery_question": "First pet?",
            "recovery_answer": answer,
        },
    )
    assert res.status_code == 201
    return res.json(), (email, PASSWORD)


@pytest.fixture
def alice(client):
    return register(client, "Alice")


@pytest.fixture
def bob(client):
    return register(client, "Bob")


@pytest.fixture
def carol(client):
    return register(client, "Carol")


def assert_task_shape(task: dict):
    for key in ["id", "name", "date", "time", "priority", "done", "created_at", "owner_id", "group_id"]:
        assert key in task
    assert isinstance(task["id"], int)
    assert isinstance(task["done"], bool)
    assert task["priority"] in ("Low", "Mid", "High")


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestAuthentication:
    def test_missing_credentials(self, client):
        res = client.get("/api/data")
        assert res.status_code == 401
        assert res.headers["WWW-Authenticate"] == "Basic"

    def test_wrong_password(self, client, alice):
        res = client.get("/api/data", auth=("alice@example.com", "nope"))
        assert res.status_code == 401
        assert res.json()["detail"] == "Invalid authentication credentials"

    def test_email_is_case_insensitive(self, client, alice):
        res = client.get("/api/data", auth=("ALICE@example.com", PASSWORD))
        assert res.status_code == 200


class TestAccounts:
    def test_register_duplicate_email(self, client, alice):
        res = client.post(
            "/auth/register",
            json={
                "name": "Alice Again",
                "email": "Alice@Example.com",
                "password": PASSWORD,
                "recovery_question": "q",
                "recovery_answer": "a",
            },
        )
        assert res.status_code == 409
        assert res.json() == {"error": "Conflict", "detail": "Email already registered"}

    def test_profile_never_exposes_secrets(self, client, alice):
        _, auth = alice
        res = client.get("/auth/profile", auth=auth)
        assert res.status_code == 200
        profile = res.json()
        assert profile["email"] == "alice@example.com"
        assert profile["recovery_question"] == "First pet?"
        assert "password_hash" not in profile
        assert "recovery_answer_hash" not in profile

    def test_profile_update_email_conflict(self, client, alice, bob):
        _, auth = bob
        res = client.put("/auth/profile", json={"email": "alice@example.com"}, auth=auth)
        assert res.status_code == 409

    def test_profile_update_name_only(self, client, alice):
        _, auth = alice
        res = client.put("/auth/profile", json={"name": "Alicia"}, auth=auth)
        assert res.status_code == 200
        assert res.json()["name"] == "Alicia"
        assert res.json()["email"] == "alice@example.com"

    def test_password_recovery(self, client, alice):
        res = client.post("/auth/forgot", json={"email": "alice@example.com"})
        assert res.json() == {"question": "First pet?"}

        bad = client.post(
            "/auth/forgot/reset",
            json={"email": "alice@example.com", "answer": "Fido", "new_password": "fresh-pass"},
        )
        assert bad.status_code == 403

        ok = client.post(
            "/auth/forgot/reset",
            json={"email": "alice@example.com", "answer": " rex", "new_password": "fresh-pass"},
        )
        assert ok.status_code == 200
        assert client.get("/api/data", auth=("alice@example.com", "fresh-pass")).status_code == 200

    def test_forgot_unknown_email(self, client):
        res = client.post("/auth/forgot", json={"email": "ghost@example.com"})
        assert res.status_code == 404

    def test_delete_account_cascades(self, client, alice, bob):
        _, alice_auth = alice
        bob_user, bob_auth = bob
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        bobs_task = client.post(
            "/api/tasks", json={"name": "Bob in team", "group_id": team["id"]}, auth=bob_auth
        ).json()
        client.post("/api/tasks", json={"name": "Alice alone"}, auth=alice_auth)

        res = client.delete("/auth/profile", auth=alice_auth)
        assert res.status_code == 200

        assert client.get("/api/data", auth=alice_auth).status_code == 401
        data = client.get("/api/data", auth=bob_auth).json()
        assert data["groups"] == []
        assert [(t["id"], t["group_id"]) for t in data["tasks"]] == [(bobs_task["id"], None)]


class TestGroupsAndData:
    def test_team_walkthrough(self, client, alice, bob):
        alice_user, alice_auth = alice
        bob_user, bob_auth = bob

        res = client.post("/api/groups", json={"name": "Team", "kind": "collaborative"}, auth=alice_auth)
        assert res.status_code == 201
        team = res.json()
        assert team["owner"]["id"] == alice_user["id"]
        assert [c["id"] for c in team["collaborators"]] == [alice_user["id"]]

        res = client.post(
            f"/api/groups/{team['id']}/collaborators", json={"email": "BOB@example.com"}, auth=alice_auth
        )
        assert res.status_code == 200
        assert [c["email"] for c in res.json()["collaborators"]] == ["alice@example.com", "bob@example.com"]

        res = client.post("/api/tasks", json={"name": "Ship v1", "group_id": team["id"]}, auth=alice_auth)
        assert res.status_code == 201
        ship = res.json()
        assert_task_shape(ship)

        bob_data = client.get("/api/data", auth=bob_auth).json()
        assert [g["name"] for g in bob_data["groups"]] == ["Team"]
        assert [t["name"] for t in bob_data["tasks"]] == ["Ship v1"]

        res = client.delete(f"/api/groups/{team['id']}", auth=alice_auth)
        assert res.status_code == 200

        assert client.get("/api/data", auth=bob_auth).json() == {"groups": [], "tasks": []}
        alice_tasks = client.get("/api/data", auth=alice_auth).json()["tasks"]
        assert [(t["id"], t["group_id"], t["owner_id"]) for t in alice_tasks] == [
            (ship["id"], None, alice_user["id"])
        ]

    def test_collaborator_errors(self, client, alice, bob, carol):
        _, alice_auth = alice
        _, bob_auth = bob
        _, carol_auth = carol
        home = client.post("/api/groups", json={"name": "Home"}, auth=alice_auth).json()
        assert home["kind"] == "personal"

        res = client.post(f"/api/groups/{home['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        assert res.status_code == 400
        assert res.json()["error"] == "InvalidState"

        res = client.post(f"/api/groups/{home['id']}/collaborators", json={"email": "bob@example.com"}, auth=carol_auth)
        assert res.status_code == 404

        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        res = client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "ghost@example.com"}, auth=alice_auth)
        assert res.status_code == 404
        res = client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "alice@example.com"}, auth=alice_auth)
        assert res.status_code == 409

        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        res = client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "carol@example.com"}, auth=bob_auth)
        assert res.status_code == 403
        assert res.json()["error"] == "Forbidden"

    def test_leave_and_remove(self, client, alice, bob, carol):
        alice_user, alice_auth = alice
        bob_user, bob_auth = bob
        carol_user, carol_auth = carol
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        for email in ("bob@example.com", "carol@example.com"):
            client.post(f"/api/groups/{team['id']}/collaborators", json={"email": email}, auth=alice_auth)

        res = client.delete(f"/api/groups/{team['id']}/collaborators/{carol_user['id']}", auth=bob_auth)
        assert res.status_code == 403

        res = client.delete(f"/api/groups/{team['id']}/collaborators/{bob_user['id']}", auth=bob_auth)
        assert res.status_code == 200
        assert client.get("/api/data", auth=bob_auth).json()["groups"] == []

        res = client.delete(f"/api/groups/{team['id']}/collaborators/{carol_user['id']}", auth=alice_auth)
        assert res.status_code == 200

        res = client.delete(f"/api/groups/{team['id']}/collaborators/{alice_user['id']}", auth=alice_auth)
        assert res.status_code == 409

    def test_retype_group(self, client, alice, bob):
        _, alice_auth = alice
        _, bob_auth = bob
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)

        res = client.put(f"/api/groups/{team['id']}", json={"name": "Solo"}, auth=bob_auth)
        assert res.status_code == 403

        res = client.put(f"/api/groups/{team['id']}", json={"kind": "personal"}, auth=alice_auth)
        assert res.status_code == 200
        assert res.json()["kind"] == "personal"
        assert res.json()["collaborators"] == []

    def test_delete_group_not_owner(self, client, alice, bob):
        _, alice_auth = alice
        _, bob_auth = bob
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        assert client.delete(f"/api/groups/{team['id']}", auth=bob_auth).status_code == 404
        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        assert client.delete(f"/api/groups/{team['id']}", auth=bob_auth).status_code == 403

    def test_data_sort_parameter(self, client, alice, clock):
        _, auth = alice
        client.post("/api/tasks", json={"name": "low", "priority": "Low"}, auth=auth)
        clock.advance(seconds=1)
        client.post("/api/tasks", json={"name": "high", "priority": "High"}, auth=auth)
        clock.advance(seconds=1)
        client.post("/api/tasks", json={"name": "mid", "priority": "Mid"}, auth=auth)

        by_priority = client.get("/api/data?sort=priority", auth=auth).json()["tasks"]
        assert [t["name"] for t in by_priority] == ["high", "mid", "low"]
        by_added = client.get("/api/data", auth=auth).json()["tasks"]
        assert [t["name"] for t in by_added] == ["mid", "high", "low"]
        assert client.get("/api/data?sort=bogus", auth=auth).status_code == 422


class TestUserSearch:
    def test_search(self, client, alice, bob, carol):
        _, auth = alice
        res = client.get("/api/users/search?q=ca", auth=auth)
        assert res.status_code == 200
        assert res.json() == [{"id": carol[0]["id"], "name": "Carol", "email": "carol@example.com"}]

    def test_short_query(self, client, alice):
        _, auth = alice
        res = client.get("/api/users/search?q=a", auth=auth)
        assert res.status_code == 200
        assert res.json() == []


class TestTasks:
    def test_create_defaults_and_validation(self, client, alice):
        _, auth = alice
        res = client.post("/api/tasks", json={"name": "  Buy milk  ", "date": "", "time": ""}, auth=auth)
        assert res.status_code == 201
        task = res.json()
        assert task["name"] == "Buy milk"
        assert task["priority"] == "Low"
        assert task["done"] is False
        assert task["date"] is None and task["time"] is None

        res = client.post("/api/tasks", json={"name": "Bad", "date": "not-a-date"}, auth=auth)
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

        res = client.post("/api/tasks", json={"name": "Bad", "priority": "Urgent"}, auth=auth)
        assert res.status_code == 422

    def test_partial_update_keeps_group(self, client, alice):
        _, auth = alice
        group = client.post("/api/groups", json={"name": "Home"}, auth=auth).json()
        task = client.post(
            "/api/tasks", json={"name": "Fix sink", "date": "2025-02-01", "group_id": group["id"]}, auth=auth
        ).json()

        res = client.put(f"/api/tasks/{task['id']}", json={"priority": "High"}, auth=auth)
        assert res.status_code == 200
        updated = res.json()
        assert updated["priority"] == "High"
        assert updated["group_id"] == group["id"]
        assert updated["date"] == "2025-02-01"

        res = client.put(f"/api/tasks/{task['id']}", json={"group_id": None}, auth=auth)
        assert res.json()["group_id"] is None

        res = client.put(f"/api/tasks/{task['id']}", json={"name": None}, auth=auth)
        assert res.status_code == 422

    def test_empty_group_means_ungrouped(self, client, alice):
        _, auth = alice
        group = client.post("/api/groups", json={"name": "Home"}, auth=auth).json()

        res = client.post("/api/tasks", json={"name": "Loose", "group_id": ""}, auth=auth)
        assert res.status_code == 201
        assert res.json()["group_id"] is None

        task = client.post("/api/tasks", json={"name": "Filed", "group_id": group["id"]}, auth=auth).json()
        res = client.put(f"/api/tasks/{task['id']}", json={"done": True}, auth=auth)
        assert res.json()["group_id"] == group["id"]

        res = client.put(f"/api/tasks/{task['id']}", json={"group_id": ""}, auth=auth)
        assert res.status_code == 200
        assert res.json()["group_id"] is None
        assert res.json()["done"] is True

    def test_update_permissions(self, client, alice, bob, carol):
        _, alice_auth = alice
        _, bob_auth = bob
        _, carol_auth = carol
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        task = client.post("/api/tasks", json={"name": "Ship", "group_id": team["id"]}, auth=alice_auth).json()

        assert client.put(f"/api/tasks/{task['id']}", json={"done": True}, auth=bob_auth).status_code == 403
        res = client.put(f"/api/tasks/{task['id']}", json={"done": True}, auth=carol_auth)
        assert res.status_code == 404
        assert res.json() == {"error": "NotFound", "detail": "Task not found"}

    def test_delete_and_undo(self, client, alice, clock):
        _, auth = alice
        task = client.post("/api/tasks", json={"name": "Oops", "priority": "Mid"}, auth=auth).json()

        res = client.delete(f"/api/tasks/{task['id']}", auth=auth)
        assert res.status_code == 200
        body = res.json()
        assert body["id"] == task["id"]
        assert "expires_at" in body
        assert client.get("/api/data", auth=auth).json()["tasks"] == []

        clock.advance(minutes=3)
        res = client.post(f"/api/tasks/{task['id']}/undo", auth=auth)
        assert res.status_code == 200
        assert res.json() == task

    def test_undo_expired(self, client, alice, clock):
        _, auth = alice
        task = client.post("/api/tasks", json={"name": "Oops"}, auth=auth).json()
        client.delete(f"/api/tasks/{task['id']}", auth=auth)
        clock.advance(minutes=11)
        res = client.post(f"/api/tasks/{task['id']}/undo", auth=auth)
        assert res.status_code == 404
        assert res.json()["error"] == "NotFound"

    def test_delete_missing(self, client, alice):
        _, auth = alice
        res = client.delete("/api/tasks/424242", auth=auth)
        assert res.status_code == 404
        assert res.json()["detail"] == "Task not found"

    def test_clear_completed_route(self, client, alice, bob):
        _, alice_auth = alice
        _, bob_auth = bob
        team = client.post("/api/groups", json={"name": "Team", "kind": "collab"}, auth=alice_auth).json()
        client.post(f"/api/groups/{team['id']}/collaborators", json={"email": "bob@example.com"}, auth=alice_auth)
        client.post("/api/tasks", json={"name": "Shared", "done": True, "group_id": team["id"]}, auth=alice_auth)
        client.post("/api/tasks", json={"name": "Mine", "done": True}, auth=bob_auth)
        keep = client.post("/api/tasks", json={"name": "Open"}, auth=bob_auth).json()

        res = client.delete("/api/tasks/completed", auth=bob_auth)
        assert res.status_code == 200
        assert res.json()["cleared"] == 2
        assert [t["id"] for t in client.get("/api/data", auth=bob_auth).json()["tasks"]] == [keep["id"]]
