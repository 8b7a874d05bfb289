from fastapi.testclient import TestClient

from gatehouse.models.user import TwoFactorMethod
from gatehouse.services.rate_limit import RateLimiter

COOKIE_NAME = "gatehouse_session"
PASSWORD = "TestPass123!"


def _cookie_value(set_cookie_header: str, cookie_name: str) -> str:
    token_part = set_cookie_header.split(";", 1)[0]
    name, value = token_part.split("=", 1)
    assert name == cookie_name
    return value


def _register(client: TestClient, username: str, email: str):
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": PASSWORD},
    )
    assert response.status_code == 201
    return response


def _login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_register_returns_token_and_secure_httponly_cookie(client):
    response = _register(client, "alpha", "alpha@example.com")
    data = response.json()
    set_cookie = response.headers.get("set-cookie", "")

    assert data["access_token"]
    assert data["token_type"] == "bearer"
    assert data["two_factor_required"] is False
    assert f"{COOKIE_NAME}=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "Secure" in set_cookie
    assert "samesite=lax" in set_cookie.lower()


def test_register_rejects_duplicate_email_case_insensitively(client):
    _register(client, "alpha", "alpha@example.com")

    response = client.post(
        "/api/auth/register",
        json={"username": "other", "email": "ALPHA@example.com", "password": PASSWORD},
    )

    assert response.status_code == 409
    assert response.json() == {"detail": "Email already registered", "code": "conflict"}


def test_register_validates_input(client):
    short = client.post(
        "/api/auth/register",
        json={"username": "alpha", "email": "alpha@example.com", "password": "short"},
    )
    too_long = client.post(
        "/api/auth/register",
        json={"username": "alpha", "email": "alpha@example.com", "password": "é" * 40},
    )

    assert short.status_code == 422
    assert too_long.status_code == 422


def test_me_requires_bearer_token(client):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"detail": "Unauthorized", "code": "unauthorized"}


def test_me_rejects_garbage_token(client):
    response = client.get("/api/auth/me", headers=_bearer("not-a-token"))

    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


def test_me_returns_current_user(client):
    token = _register(client, "alpha", "alpha@example.com").json()["access_token"]

    response = client.get("/api/auth/me", headers=_bearer(token))

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "alpha"
    assert body["role"] == "user"
    assert "password_hash" not in body


def test_login_failures_are_indistinguishable(client, settings):
    _register(client, "alpha", "alpha@example.com")

    unknown = _login(client, "nobody@example.com")
    wrong = _login(client, "alpha@example.com", "WrongPass123!")
    for _ in range(settings.lockout_threshold - 1):
        _login(client, "alpha@example.com", "WrongPass123!")
    locked = _login(client, "alpha@example.com")

    for response in (unknown, wrong, locked):
        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid credentials", "code": "unauthorized"}


def test_logout_revokes_bearer_token_immediately(client):
    login = _register(client, "beta", "beta@example.com")
    token = login.json()["access_token"]
    cookie = _cookie_value(login.headers["set-cookie"], COOKIE_NAME)

    logout = client.post(
        "/api/auth/logout",
        headers={**_bearer(token), "Cookie": f"{COOKIE_NAME}={cookie}"},
    )
    assert logout.status_code == 200
    assert f'{COOKIE_NAME}=""' in logout.headers["set-cookie"] or "Max-Age=0" in logout.headers["set-cookie"]

    after = client.get("/api/auth/me", headers=_bearer(token))
    assert after.status_code == 401
    assert after.json()["detail"] == "Invalid session"


def test_refresh_issues_working_token_until_logout(client):
    token = _register(client, "gamma", "gamma@example.com").json()["access_token"]

    refreshed = client.post("/api/auth/refresh", headers=_bearer(token))
    assert refreshed.status_code == 200
    new_token = refreshed.json()["access_token"]
    assert client.get("/api/auth/me", headers=_bearer(new_token)).status_code == 200

    client.post("/api/auth/logout", headers=_bearer(new_token))

    assert client.post("/api/auth/refresh", headers=_bearer(token)).status_code == 401


def test_logout_all_keeps_calling_session(client):
    first = _register(client, "delta", "delta@example.com").json()["access_token"]
    second = _login(client, "delta@example.com").json()["access_token"]

    response = client.post("/api/auth/logout-all", headers=_bearer(second))

    assert response.status_code == 200
    assert response.json()["message"] == "Revoked 1 session(s)"
    assert client.get("/api/auth/me", headers=_bearer(first)).status_code == 401
    assert client.get("/api/auth/me", headers=_bearer(second)).status_code == 200


def test_sessions_can_be_listed_and_revoked_by_owner_only(client):
    mine = _register(client, "eps", "eps@example.com").json()["access_token"]
    _login(client, "eps@example.com")
    theirs = _register(client, "zeta", "zeta@example.com").json()["access_token"]

    listing = client.get("/api/auth/sessions", headers=_bearer(mine))
    assert listing.status_code == 200
    sessions = listing.json()
    assert len(sessions) == 2
    assert sum(1 for s in sessions if s["current"]) == 1
    other_id = next(s["id"] for s in sessions if not s["current"])

    forbidden = client.delete(f"/api/auth/sessions/{other_id}", headers=_bearer(theirs))
    assert forbidden.status_code == 403

    revoked = client.delete(f"/api/auth/sessions/{other_id}", headers=_bearer(mine))
    assert revoked.status_code == 200
    assert len(client.get("/api/auth/sessions", headers=_bearer(mine)).json()) == 1

    missing = client.delete("/api/auth/sessions/nope", headers=_bearer(mine))
    assert missing.status_code == 404


def test_two_factor_login_over_http(client, sender):
    token = _register(client, "eta", "eta@example.com").json()["access_token"]
    enabled = client.post(
        "/api/auth/2fa/enable",
        json={"method": TwoFactorMethod.EMAIL.value},
        headers=_bearer(token),
    )
    assert enabled.status_code == 200
    assert enabled.json()["two_factor_enabled"] is True

    pending = _login(client, "eta@example.com")
    assert pending.status_code == 200
    body = pending.json()
    assert body["two_factor_required"] is True
    assert body["access_token"] is None
    assert "set-cookie" not in pending.headers

    wrong = client.post("/api/auth/2fa/verify", json={"user_id": body["user_id"], "code": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid or expired code"

    verified = client.post("/api/auth/2fa/verify", json={"user_id": body["user_id"], "code": sender.last_code})
    assert verified.status_code == 200
    assert verified.json()["access_token"]
    assert f"{COOKIE_NAME}=" in verified.headers["set-cookie"]


def test_password_change_and_reset(client, sender):
    token = _register(client, "theta", "theta@example.com").json()["access_token"]

    changed = client.post(
        "/api/auth/password/change",
        json={"current_password": PASSWORD, "new_password": "Changed123!"},
        headers=_bearer(token),
    )
    assert changed.status_code == 200
    assert _login(client, "theta@example.com", "Changed123!").status_code == 200

    unknown = client.post("/api/auth/password/forgot", json={"email": "nobody@example.com"})
    known = client.post("/api/auth/password/forgot", json={"email": "theta@example.com"})
    assert unknown.status_code == known.status_code == 202
    assert unknown.json() == known.json()

    reset = client.post(
        "/api/auth/password/reset",
        json={"email": "theta@example.com", "code": sender.last_code, "new_password": "ResetPass123!"},
    )
    assert reset.status_code == 200
    assert client.get("/api/auth/me", headers=_bearer(token)).status_code == 401
    assert _login(client, "theta@example.com", "ResetPass123!").status_code == 200


def test_email_verification_over_http(client, sender):
    token = _register(client, "iota", "iota@example.com").json()["access_token"]

    requested = client.post("/api/auth/email/verification", headers=_bearer(token))
    assert requested.status_code == 202

    verified = client.post("/api/auth/email/verify", json={"code": sender.last_code}, headers=_bearer(token))
    assert verified.status_code == 200
    assert verified.json()["email_verified"] is True


def test_rate_limited_login_returns_429(app):
    app.state.rate_limiter = RateLimiter(capacity=2, refill_per_minute=0)
    client = TestClient(app)

    statuses = [_login(client, "nobody@example.com").status_code for _ in range(3)]

    assert statuses == [401, 401, 429]


def test_forwarded_for_header_does_not_reset_rate_limit(app):
    app.state.rate_limiter = RateLimiter(capacity=2, refill_per_minute=0)
    client = TestClient(app)

    statuses = [
        client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": PASSWORD},
            headers={"X-Forwarded-For": f"10.0.0.{i}"},
        ).status_code
        for i in range(4)
    ]

    assert statuses == [401, 401, 429, 429]
