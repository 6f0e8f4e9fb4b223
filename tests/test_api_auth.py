import re

from conftest import auth_headers, make_user


def _register(client, email="new@example.com", password="password123"):
    return client.post("/api/auth/register", json={"name": "New Dancer", "email": email, "password": password})


def test_health_and_site_title(client):
    assert client.get("/api/health").json() == {"status": "healthy"}
    assert client.get("/api/public/site-title").json() == {"site_title": "Valqua Cup Dance Entry System"}


def test_security_headers(client):
    response = client.get("/api/health")
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"


def test_register_login_me(client):
    response = _register(client, email="New@Example.com")
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["role"] == "participant"
    assert body["token_type"] == "bearer"

    login = client.post("/api/auth/login", json={"email": "new@example.com", "password": "password123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "New Dancer"


def test_duplicate_register_conflict(client):
    assert _register(client).status_code == 201
    response = _register(client)
    assert response.status_code == 409
    assert response.json() == {"error": "User already exists"}


def test_register_validation_error_shape(client):
    response = _register(client, password="short")
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["details"]


def test_bad_credentials(client, participant):
    response = client.post("/api/auth/login", json={"email": participant.email, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_refresh_token(client):
    tokens = _register(client).json()
    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["access_token"]

    wrong_type = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert wrong_type.status_code == 401


def test_missing_token_rejected(client):
    response = client.get("/api/auth/me")
    assert response.status_code in (401, 403)
    assert "error" in response.json()


def test_login_rate_limited(client, participant):
    for _ in range(5):
        response = client.post("/api/auth/login", json={"email": participant.email, "password": "wrong-password"})
        assert response.status_code == 401
    denied = client.post("/api/auth/login", json={"email": participant.email, "password": "password123"})
    assert denied.status_code == 429
    body = denied.json()
    assert body["error"] == "Too many requests"
    assert body["retry_after"] >= 1
    assert int(denied.headers["retry-after"]) >= 1
    assert denied.headers["x-ratelimit-limit"] == "5"
    assert denied.headers["x-ratelimit-remaining"] == "0"


def test_auth_routes_keep_separate_limits(client, participant):
    for index in range(5):
        assert _register(client, email=f"dancer{index}@example.com").status_code == 201
    assert _register(client, email="dancer5@example.com").status_code == 429

    login = client.post("/api/auth/login", json={"email": participant.email, "password": "password123"})
    assert login.status_code == 200
    assert login.headers["x-ratelimit-remaining"] == "4"


def test_password_reset_flow(client, participant, sent_emails):
    response = client.post("/api/auth/forgot-password", json={"email": "DANCER@example.com"})
    assert response.status_code == 200
    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == participant.email
    token = re.search(r"token=([A-Za-z0-9_\-]+)", sent_emails[0]["text"]).group(1)

    reset = client.post("/api/auth/reset-password", json={"token": token, "new_password": "brand-new-pass"})
    assert reset.status_code == 200

    reused = client.post("/api/auth/reset-password", json={"token": token, "new_password": "another-pass"})
    assert reused.status_code == 400

    login = client.post("/api/auth/login", json={"email": participant.email, "password": "brand-new-pass"})
    assert login.status_code == 200


def test_forgot_password_unknown_email_looks_the_same(client, sent_emails):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert sent_emails == []


def test_participant_cannot_use_admin_routes(client, participant):
    response = client.get("/api/admin/entries", headers=auth_headers(participant))
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


def test_admin_token_accepted_on_admin_routes(client, db):
    from models import UserRole

    admin = make_user(db, "boss@example.com", role=UserRole.ADMIN)
    response = client.get("/api/admin/entries", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json() == []
