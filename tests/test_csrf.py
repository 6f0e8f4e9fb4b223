from csrf import CSRF_TOKEN_TTL_SECONDS, _cookie_secure, issue_csrf_token, verify_csrf_token


def test_fresh_token_passes():
    token, cookie = issue_csrf_token(now=1_000_000)
    assert verify_csrf_token(token, cookie, now=1_000_001)


def test_never_issued_token_fails():
    _token, cookie = issue_csrf_token(now=1_000_000)
    assert not verify_csrf_token("not-the-issued-token", cookie, now=1_000_001)


def test_expired_token_fails():
    token, cookie = issue_csrf_token(now=1_000_000)
    assert not verify_csrf_token(token, cookie, now=1_000_000 + CSRF_TOKEN_TTL_SECONDS + 1)


def test_missing_or_garbled_cookie_fails():
    token, cookie = issue_csrf_token(now=1_000_000)
    assert not verify_csrf_token(token, None, now=1_000_001)
    assert not verify_csrf_token(None, cookie, now=1_000_001)
    assert not verify_csrf_token(token, "garbage", now=1_000_001)
    assert not verify_csrf_token(token, "soon." + cookie.split(".", 1)[1], now=1_000_001)


def test_cookie_holds_hash_not_token():
    token, cookie = issue_csrf_token(now=1_000_000)
    assert token not in cookie
    expires, digest = cookie.split(".", 1)
    assert int(expires) == 1_000_000 + CSRF_TOKEN_TTL_SECONDS
    assert len(digest) == 64


def test_csrf_endpoint_sets_cookie(client):
    response = client.get("/api/auth/csrf")
    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert "csrf-token" in response.cookies
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie
    assert response.json()["csrf_token"]


def test_mutation_without_header_rejected(client, participant):
    from conftest import auth_headers

    client.get("/api/auth/csrf")
    response = client.put("/api/entry/program-info", json={"player_name": "A"}, headers=auth_headers(participant))
    assert response.status_code == 403
    assert response.json() == {"error": "Invalid CSRF token"}


def test_cookie_secure_follows_app_url(monkeypatch):
    monkeypatch.setenv("APP_URL", "https://entry.example.com")
    assert _cookie_secure()
    monkeypatch.setenv("APP_URL", "http://localhost:3000")
    assert not _cookie_secure()
    monkeypatch.delenv("APP_URL")
    assert not _cookie_secure()
