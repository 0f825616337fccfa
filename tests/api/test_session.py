"""
Tests for session cookie issuance and the authentication gate.
"""

from catalog_api.auth import SessionTokenService, get_token_service
from catalog_api.main import app


def test_jwt_sets_http_only_cookie(client):
    """Test that issuing a token sets the session cookie."""
    response = client.post("/jwt", json={"email": "a@b.com"})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith("token=")
    assert "HttpOnly" in set_cookie
    assert "SameSite=strict" in set_cookie
    assert "Secure" not in set_cookie
    assert client.cookies.get("token")


def test_jwt_cookie_in_production(client):
    """Test the cookie attributes of a production deployment."""
    app.dependency_overrides[get_token_service] = lambda: SessionTokenService(
        secret="prod-secret", secure_cookie=True, samesite="none"
    )

    response = client.post("/jwt", json={"email": "a@b.com"})
    set_cookie = response.headers["set-cookie"]
    assert "Secure" in set_cookie
    assert "SameSite=none" in set_cookie
    assert "HttpOnly" in set_cookie


def test_cookie_opens_gated_route(client):
    """Test that an issued cookie is accepted by the gate."""
    assert client.get("/borrowed-books/email/a@b.com").status_code == 401

    client.post("/jwt", json={"email": "a@b.com"})

    response = client.get("/borrowed-books/email/a@b.com")
    assert response.status_code == 200
    assert response.json() == []


def test_logout_clears_cookie(auth_client):
    """Test that logging out removes the cookie and closes gated routes."""
    assert auth_client.get("/borrowed-books").status_code == 200

    response = auth_client.post("/logout", json={})
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert "Max-Age=0" in response.headers["set-cookie"]

    assert auth_client.cookies.get("token") is None
    response = auth_client.get("/borrowed-books")
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized access"


def test_forged_token_rejected(client):
    """Test that a token signed with another key is rejected."""
    forged = SessionTokenService(secret="someone-else").issue({"email": "a@b.com"})
    client.cookies.set("token", forged)

    assert client.get("/borrowed-books").status_code == 401


def test_expired_token_rejected(client, token_service):
    """Test that an expired token is rejected."""
    expired = SessionTokenService(secret=token_service.secret, expires_minutes=-1).issue(
        {"email": "a@b.com"}
    )
    client.cookies.set("token", expired)

    assert client.get("/borrowed-books").status_code == 401


def test_garbage_token_rejected(client):
    """Test that a malformed token is rejected."""
    client.cookies.set("token", "not.a.token")

    assert client.get("/borrowed-books").status_code == 401


def test_jwt_requires_object_payload(client):
    """Test that the token payload must be a JSON object."""
    response = client.post("/jwt", json="a@b.com")
    assert response.status_code == 400
    assert "token" not in client.cookies


def test_cookie_with_numeric_subject(client):
    """Test that a payload carrying a numeric sub still opens gated routes."""
    client.post("/jwt", json={"email": "a@b.com", "sub": 42})

    response = client.get("/borrowed-books")
    assert response.status_code == 200
    assert response.json() == []
