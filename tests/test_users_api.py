import pytest
from fastapi.testclient import TestClient

from gatehouse.models.user import Role

PASSWORD = "TestPass123!"


def _token(client: TestClient, email: str) -> str:
    response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    return response.json()["access_token"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def people(make_user):
    return {
        "admin": make_user("admin", role=Role.ADMIN),
        "mod": make_user("mod", role=Role.MODERATOR),
        "alice": make_user("alice"),
        "bob": make_user("bob"),
    }


def test_listing_users_needs_moderator(client, people):
    as_user = client.get("/api/users", headers=_bearer(_token(client, "alice@example.com")))
    as_mod = client.get("/api/users", headers=_bearer(_token(client, "mod@example.com")))

    assert as_user.status_code == 403
    assert as_user.json() == {"detail": "Insufficient permissions", "code": "forbidden"}
    assert as_mod.status_code == 200
    assert {u["username"] for u in as_mod.json()} == {"admin", "mod", "alice", "bob"}


def test_reading_a_user_is_owner_or_admin(client, people):
    alice = _bearer(_token(client, "alice@example.com"))
    mod = _bearer(_token(client, "mod@example.com"))
    admin = _bearer(_token(client, "admin@example.com"))
    bob_id = people["bob"].id

    assert client.get(f"/api/users/{people['alice'].id}", headers=alice).status_code == 200
    assert client.get(f"/api/users/{bob_id}", headers=alice).status_code == 403
    assert client.get(f"/api/users/{bob_id}", headers=mod).status_code == 403
    assert client.get(f"/api/users/{bob_id}", headers=admin).status_code == 200
    assert client.get("/api/users/missing", headers=admin).status_code == 404


def test_owner_can_update_profile(client, people):
    alice = _bearer(_token(client, "alice@example.com"))

    response = client.patch(
        f"/api/users/{people['alice'].id}",
        json={"first_name": "Alice", "last_name": "Liddell"},
        headers=alice,
    )

    assert response.status_code == 200
    assert response.json()["first_name"] == "Alice"
    assert response.json()["last_name"] == "Liddell"
    assert response.json()["role"] == "user"


def test_role_change_is_admin_only_and_revokes_sessions(client, people):
    alice_token = _token(client, "alice@example.com")
    mod = _bearer(_token(client, "mod@example.com"))
    admin = _bearer(_token(client, "admin@example.com"))
    target = f"/api/users/{people['alice'].id}/role"

    assert client.put(target, json={"role": "moderator"}, headers=mod).status_code == 403
    assert client.put(target, json={"role": "overlord"}, headers=admin).status_code == 422

    response = client.put(target, json={"role": "moderator"}, headers=admin)
    assert response.status_code == 200
    assert response.json()["role"] == "moderator"

    # The old token carried the old role and must stop working
    assert client.get("/api/auth/me", headers=_bearer(alice_token)).status_code == 401
    fresh = _bearer(_token(client, "alice@example.com"))
    assert client.get("/api/users", headers=fresh).status_code == 200


def test_admin_cannot_change_own_role(client, people):
    admin = _bearer(_token(client, "admin@example.com"))

    response = client.put(f"/api/users/{people['admin'].id}/role", json={"role": "user"}, headers=admin)

    assert response.status_code == 400


def test_deactivated_user_is_signed_out_and_cannot_log_in(client, people):
    bob_token = _token(client, "bob@example.com")
    admin = _bearer(_token(client, "admin@example.com"))

    response = client.put(f"/api/users/{people['bob'].id}/status", json={"is_active": False}, headers=admin)

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert client.get("/api/auth/me", headers=_bearer(bob_token)).status_code == 401
    login = client.post("/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
    assert login.status_code == 401


def test_admin_unlock_clears_lockout(client, people, settings):
    for _ in range(settings.lockout_threshold):
        client.post("/api/auth/login", json={"email": "bob@example.com", "password": "WrongPass123!"})
    locked = client.post("/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
    assert locked.status_code == 401

    admin = _bearer(_token(client, "admin@example.com"))
    alice = _bearer(_token(client, "alice@example.com"))
    assert client.post(f"/api/users/{people['bob'].id}/unlock", headers=alice).status_code == 403
    assert client.post(f"/api/users/{people['bob'].id}/unlock", headers=admin).status_code == 200

    assert _token(client, "bob@example.com")
