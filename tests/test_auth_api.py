"""HTTP surface through the Flask test client."""

import pytest

from services.mailer import EmailResult
from tests.conftest import PASSWORD

NEW_PASSWORD = "Brand-New-Pass-7"
REGISTRATION = {
    "email": "Ada@Example.com",
    "password": PASSWORD,
    "name": "Ada",
    "birth_year": 1990,
    "gender": "female",
}


def _csrf(client):
    return {"X-CSRF-Token": client.get_cookie("csrf-token").value}


def _bearer(token, client=None):
    headers = {"Authorization": f"Bearer {token}"}
    if client is not None:
        headers.update(_csrf(client))
    return headers


@pytest.fixture
def signed_up(client):
    res = client.post("/api/v1/auth/register", json=REGISTRATION)
    assert res.status_code == 201
    return res.get_json()


class TestRegister:
    def test_register(self, client):
        res = client.post("/api/v1/auth/register", json=REGISTRATION)
        body = res.get_json()

        assert res.status_code == 201
        assert body["user"]["email"] == "ada@example.com"
        assert body["user"]["email_verified"] is False
        assert "password_hash" not in body["user"]
        assert body["access_token"]
        assert body["email_verification_sent"] is True

        set_cookies = res.headers.getlist("Set-Cookie")
        refresh_cookie = next(c for c in set_cookies if c.startswith("refreshToken="))
        assert "HttpOnly" in refresh_cookie
        assert "SameSite=Strict" in refresh_cookie
        assert "Path=/" in refresh_cookie
        assert "Max-Age=604800" in refresh_cookie
        csrf_cookie = next(c for c in set_cookies if c.startswith("csrf-token="))
        assert "HttpOnly" not in csrf_cookie

    def test_refresh_token_not_in_body(self, client):
        body = client.post("/api/v1/auth/register", json=REGISTRATION).get_json()
        assert "refresh_token" not in body

    def test_duplicate(self, client, signed_up):
        res = client.post("/api/v1/auth/register", json=REGISTRATION)
        assert res.status_code == 409
        assert res.get_json()["error"] == "CONFLICT"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("password", "short1A"),
            ("password", "alllowercase1"),
            ("password", "NoDigitsHere"),
            ("email", "not-an-email"),
            ("name", ""),
            ("birth_year", 1899),
            ("birth_year", 2100),
            ("gender", "robot"),
        ],
    )
    def test_validation(self, client, field, value):
        payload = dict(REGISTRATION, **{field: value})
        res = client.post("/api/v1/auth/register", json=payload)
        body = res.get_json()
        assert res.status_code == 400
        assert body["error"] == "VALIDATION_ERROR"
        assert field in body["details"]

    def test_missing_body(self, client):
        res = client.post("/api/v1/auth/register")
        assert res.status_code == 400


class TestLogin:
    def test_login(self, client, signed_up):
        res = client.post("/api/v1/auth/login", json={"email": "ADA@example.com", "password": PASSWORD})
        assert res.status_code == 200
        assert res.get_json()["user"]["id"] == signed_up["user"]["id"]
        assert client.get_cookie("refreshToken") is not None

    def test_generic_failure(self, client, signed_up):
        wrong = client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": "Nope-12345"})
        unknown = client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json()
        assert wrong.get_json()["message"] == "Invalid email or password"

    def test_lockout_message(self, client, signed_up):
        for _ in range(5):
            client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": "Nope-12345"})
        res = client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
        assert res.status_code == 401
        assert "temporarily locked" in res.get_json()["message"]


class TestRefresh:
    def test_rotates_cookie(self, client, signed_up):
        old = client.get_cookie("refreshToken").value
        res = client.post("/api/v1/auth/refresh")
        assert res.status_code == 200
        assert res.get_json()["access_token"]
        assert client.get_cookie("refreshToken").value != old

    def test_reused_cookie_rejected_and_cleared(self, client, signed_up):
        old = client.get_cookie("refreshToken").value
        client.post("/api/v1/auth/refresh")

        client.set_cookie("refreshToken", old)
        res = client.post("/api/v1/auth/refresh")
        body = res.get_json()
        assert res.status_code == 401
        assert body["error"] == "INVALID_TOKEN"
        assert body["message"] == "Invalid or expired token"
        assert client.get_cookie("refreshToken") is None

    def test_no_cookie(self, client):
        res = client.post("/api/v1/auth/refresh")
        assert res.status_code == 401
        assert res.get_json()["error"] == "INVALID_TOKEN"


class TestLogout:
    def test_requires_csrf(self, client, signed_up):
        res = client.post("/api/v1/auth/logout")
        assert res.status_code == 403
        assert res.get_json()["error"] == "CSRF_FAILED"

    def test_mismatched_csrf(self, client, signed_up):
        res = client.post("/api/v1/auth/logout", headers={"X-CSRF-Token": "forged"})
        assert res.status_code == 403

    def test_logout_twice(self, client, signed_up):
        refresh = client.get_cookie("refreshToken").value
        csrf = _csrf(client)

        res = client.post("/api/v1/auth/logout", headers=csrf)
        assert res.status_code == 200
        assert client.get_cookie("refreshToken") is None

        # Replay the same, now revoked, cookie: still a success
        client.set_cookie("refreshToken", refresh)
        client.set_cookie("csrf-token", csrf["X-CSRF-Token"])
        res = client.post("/api/v1/auth/logout", headers=csrf)
        assert res.status_code == 200

        res = client.post("/api/v1/auth/refresh")
        assert res.status_code == 401

    def test_logout_all(self, client, signed_up):
        client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
        res = client.post("/api/v1/auth/logout-all", headers=_bearer(signed_up["access_token"], client))
        assert res.status_code == 200
        assert res.get_json()["count"] == 2

    def test_logout_all_needs_bearer(self, client, signed_up):
        res = client.post("/api/v1/auth/logout-all", headers=_csrf(client))
        assert res.status_code == 401


class TestPasswordReset:
    def test_same_answer_for_unknown_email(self, client, signed_up):
        known = client.post("/api/v1/auth/password-reset", json={"email": "ada@example.com"})
        unknown = client.post("/api/v1/auth/password-reset", json={"email": "ghost@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json()

    def test_confirm(self, client, signed_up, mailer):
        client.post("/api/v1/auth/password-reset", json={"email": "ada@example.com"})
        token = mailer.last_token("password_reset")

        res = client.post(
            "/api/v1/auth/password-reset/confirm", json={"token": token, "new_password": NEW_PASSWORD}
        )
        assert res.status_code == 200

        again = client.post(
            "/api/v1/auth/password-reset/confirm", json={"token": token, "new_password": "Other-Pass-99"}
        )
        assert again.status_code == 401
        assert again.get_json()["message"] == "Invalid or expired token"

        login = client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": NEW_PASSWORD})
        assert login.status_code == 200

    def test_confirm_validates_password(self, client):
        res = client.post(
            "/api/v1/auth/password-reset/confirm", json={"token": "abc", "new_password": "weak"}
        )
        assert res.status_code == 400


class TestEmailVerification:
    def test_verify(self, client, signed_up, mailer):
        token = mailer.last_token("email_verification")
        res = client.get(f"/api/v1/auth/verify-email/{token}")
        assert res.status_code == 200
        assert res.get_json()["user"]["email_verified"] is True

        again = client.get(f"/api/v1/auth/verify-email/{token}")
        assert again.status_code == 401

    def test_resend(self, client, signed_up, mailer):
        res = client.post(
            "/api/v1/auth/resend-verification", headers=_bearer(signed_up["access_token"], client)
        )
        assert res.status_code == 200
        assert res.get_json()["sent"] is True

    def test_resend_delivery_failure_is_500(self, client, signed_up, mailer):
        mailer.result = EmailResult(success=False, error="smtp down")
        res = client.post(
            "/api/v1/auth/resend-verification", headers=_bearer(signed_up["access_token"], client)
        )
        assert res.status_code == 500
        assert res.get_json()["error"] == "INTERNAL_ERROR"


class TestUsers:
    def test_me(self, client, signed_up):
        res = client.get("/api/v1/users/me", headers=_bearer(signed_up["access_token"]))
        assert res.status_code == 200
        assert res.get_json()["data"]["email"] == "ada@example.com"

    def test_me_requires_token(self, client):
        res = client.get("/api/v1/users/me")
        assert res.status_code == 401
        assert res.get_json()["error"] == "INVALID_TOKEN"

    def test_refresh_token_is_not_a_bearer(self, client, signed_up):
        refresh = client.get_cookie("refreshToken").value
        res = client.get("/api/v1/users/me", headers=_bearer(refresh))
        assert res.status_code == 401

    def test_update(self, client, signed_up):
        res = client.patch(
            "/api/v1/users/me",
            json={"name": "Ada Lovelace", "gender": "other"},
            headers=_bearer(signed_up["access_token"], client),
        )
        assert res.status_code == 200
        assert res.get_json()["data"]["name"] == "Ada Lovelace"
        assert res.get_json()["data"]["gender"] == "other"

    def test_change_password(self, client, signed_up):
        refresh = client.get_cookie("refreshToken").value
        res = client.post(
            "/api/v1/users/me/password",
            json={"current_password": PASSWORD, "new_password": NEW_PASSWORD},
            headers=_bearer(signed_up["access_token"], client),
        )
        assert res.status_code == 200

        client.set_cookie("refreshToken", refresh)
        assert client.post("/api/v1/auth/refresh").status_code == 401

    def test_delete(self, client, signed_up):
        res = client.delete("/api/v1/users/me", headers=_bearer(signed_up["access_token"], client))
        assert res.status_code == 204

        res = client.get("/api/v1/users/me", headers=_bearer(signed_up["access_token"]))
        assert res.status_code == 404


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["error"] == "NOT_FOUND"


class TestMounting:
    @pytest.mark.parametrize("path", ["/api/v1/register", "/api/v1/login", "/api/v1/me"])
    def test_routes_live_under_their_prefix(self, client, path):
        assert client.post(path, json={}).status_code in (404, 405)

    def test_users_prefix(self, client, signed_up):
        res = client.get("/api/v1/users/me", headers=_bearer(signed_up["access_token"]))
        assert res.status_code == 200

    def test_default_testing_database_serves_other_threads(self, mailer):
        import threading

        from api import create_app

        app = create_app("test", mailer=mailer)
        statuses = []

        def attempt():
            res = app.test_client().post(
                "/api/v1/auth/login", json={"email": "nobody@example.com", "password": PASSWORD}
            )
            statuses.append(res.status_code)

        attempt()
        thread = threading.Thread(target=attempt)
        thread.start()
        thread.join(timeout=10)
        app.extensions["storage"].dispose()

        assert statuses == [401, 401]
