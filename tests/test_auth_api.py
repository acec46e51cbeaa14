"""HTTP surface of the auth blueprint, driven through the Flask test client."""
import pytest


def login(client, headers, username="ada", password="longpassword1"):
    return client.post(
        "/auth/login", json={"username": username, "password": password}, headers=headers
    )


def cookie(client, name):
    found = client.get_cookie(name)
    return found.value if found is not None else None


class TestRegister:
    def test_register_sets_session_cookies(self, client, csrf_headers, registration):
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 201
        body = response.get_json()
        assert set(body) == {"id", "name", "username", "email"}
        assert body["username"] == "ada"

        cookies = response.headers.getlist("Set-Cookie")
        for name in ("access_token=", "refresh_token="):
            header = next(h for h in cookies if h.startswith(name))
            assert "HttpOnly" in header
            assert "SameSite=Lax" in header
        assert cookie(client, "access_token")
        assert cookie(client, "refresh_token")

    def test_input_is_normalized(self, client, csrf_headers, registration):
        registration.update(name="  Ada  ", email="  ADA@X.COM ")
        body = client.post("/auth/register", json=registration, headers=csrf_headers).get_json()
        assert body["name"] == "Ada"
        assert body["email"] == "ada@x.com"

    def test_validation_errors(self, client, csrf_headers):
        response = client.post(
            "/auth/register",
            json={
                "name": "",
                "username": "ada",
                "email": "not-an-email",
                "password": "short",
                "password_confirmation": "different",
            },
            headers=csrf_headers,
        )
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "VALIDATION_ERROR"
        details = body["details"]
        assert "name" in details
        assert "email" in details
        assert details["password"] == ["Password must be at least 8 characters long."]

    def test_password_confirmation_mismatch(self, client, csrf_headers, registration):
        registration["password_confirmation"] = "longpassword2"
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 400
        assert response.get_json()["details"]["password_confirmation"] == [
            "Password confirmation doesn't match."
        ]

    def test_duplicate_username(self, client, csrf_headers, registered, registration):
        registration["email"] = "other@x.com"
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 400
        assert response.get_json()["details"] == {"username": ["Username has already been taken."]}

    def test_non_json_body(self, client, csrf_headers):
        response = client.post("/auth/register", data="nope", headers=csrf_headers)
        assert response.status_code == 400


class TestLogin:
    def test_login(self, client, csrf_headers, registered):
        client.delete_cookie("access_token", domain="localhost")
        response = login(client, csrf_headers)
        assert response.status_code == 200
        assert response.get_json()["id"] == registered["id"]
        assert cookie(client, "access_token")

    @pytest.mark.parametrize("username, password", [("ada", "wrongpassword"), ("nobody", "longpassword1")])
    def test_bad_credentials(self, client, csrf_headers, registered, username, password):
        response = login(client, csrf_headers, username, password)
        assert response.status_code == 401
        body = response.get_json()
        assert body["error"] == "UNAUTHORIZED"
        assert body["message"] == "Invalid credentials"

    def test_missing_fields(self, client, csrf_headers):
        response = client.post("/auth/login", json={}, headers=csrf_headers)
        assert response.status_code == 400
        assert set(response.get_json()["details"]) == {"username", "password"}


class TestRefresh:
    def test_refresh_from_cookie(self, client, csrf_headers, registered):
        old_access = cookie(client, "access_token")
        old_refresh = cookie(client, "refresh_token")
        response = client.post("/auth/refresh", headers=csrf_headers)
        assert response.status_code == 200
        assert response.get_json() == {"message": "Refresh token succeed"}
        assert cookie(client, "access_token") != old_access
        assert cookie(client, "refresh_token") == old_refresh

    def test_refresh_from_body(self, app, client, csrf_headers, registered):
        token = cookie(client, "refresh_token")
        other = app.test_client()
        headers = {"X-CSRF-Token": other.get("/csrf-token").get_json()["csrfToken"]}
        response = other.post("/auth/refresh", json={"refresh_token": token}, headers=headers)
        assert response.status_code == 200

    def test_missing_refresh_token(self, client, csrf_headers):
        response = client.post("/auth/refresh", headers=csrf_headers)
        assert response.status_code == 401

    def test_superseded_refresh_token(self, app, client, csrf_headers, registered):
        stale = cookie(client, "refresh_token")
        login(client, csrf_headers)
        other = app.test_client()
        headers = {"X-CSRF-Token": other.get("/csrf-token").get_json()["csrfToken"]}
        response = other.post("/auth/refresh", json={"refresh_token": stale}, headers=headers)
        assert response.status_code == 401

    def test_expired_access_then_refresh(self, client, csrf_headers, clock, registered):
        clock.advance(minutes=15)
        assert client.get("/auth/user").status_code == 401
        assert client.post("/auth/refresh", headers=csrf_headers).status_code == 200
        assert client.get("/auth/user").status_code == 200

    def test_expired_refresh_token(self, client, csrf_headers, clock, registered):
        clock.advance(days=1)
        assert client.post("/auth/refresh", headers=csrf_headers).status_code == 401


class TestLogout:
    def test_logout_clears_cookies(self, client, csrf_headers, registered):
        response = client.post("/auth/logout", headers=csrf_headers)
        assert response.status_code == 204
        assert cookie(client, "access_token") is None
        assert cookie(client, "refresh_token") is None
        assert client.get("/auth/session").get_json()["authenticated"] is False

    def test_logout_requires_session(self, client, csrf_headers):
        assert client.post("/auth/logout", headers=csrf_headers).status_code == 401


class TestIdentity:
    def test_current_user(self, client, registered):
        response = client.get("/auth/user")
        assert response.status_code == 200
        assert response.get_json() == registered

    def test_anonymous_user_route(self, client):
        assert client.get("/auth/user").status_code == 401

    def test_session_anonymous(self, client):
        response = client.get("/auth/session")
        assert response.status_code == 200
        assert response.get_json() == {"authenticated": False, "user": None}

    def test_session_authenticated(self, client, registered):
        body = client.get("/auth/session").get_json()
        assert body["authenticated"] is True
        assert body["user"]["id"] == registered["id"]

    def test_invalid_credential_is_not_anonymous(self, client):
        client.set_cookie("access_token", "garbage", domain="localhost")
        response = client.get("/auth/session")
        assert response.status_code == 401
        assert response.get_json()["error"] == "UNAUTHORIZED"

    def test_refresh_token_is_not_an_access_token(self, client, registered):
        client.set_cookie("access_token", cookie(client, "refresh_token"), domain="localhost")
        assert client.get("/auth/session").status_code == 401

    def test_bearer_header(self, app, client, registered):
        token = cookie(client, "access_token")
        other = app.test_client()
        response = other.get("/auth/user", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.get_json()["id"] == registered["id"]

    def test_deleted_user(self, client, storage, registered):
        from models.user import User

        with storage.transaction() as session:
            session.query(User).delete()
        assert client.get("/auth/session").status_code == 401


class TestAccountUpdates:
    def test_update_profile(self, client, csrf_headers, registered):
        response = client.post(
            "/auth/update-profile",
            json={"name": "Ada L", "username": "adal", "email": "adal@x.com"},
            headers=csrf_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["username"] == "adal"
        assert client.get("/auth/user").get_json()["email"] == "adal@x.com"

    def test_update_profile_requires_session(self, client, csrf_headers):
        response = client.post(
            "/auth/update-profile",
            json={"name": "Ada L", "username": "adal", "email": "adal@x.com"},
            headers=csrf_headers,
        )
        assert response.status_code == 401

    def test_update_password(self, client, csrf_headers, registered):
        response = client.post(
            "/auth/update-password",
            json={
                "current_password": "longpassword1",
                "password": "newpassword22",
                "password_confirmation": "newpassword22",
            },
            headers=csrf_headers,
        )
        assert response.status_code == 200
        assert response.get_json() == {"message": "Update password succeed"}
        assert login(client, csrf_headers, password="newpassword22").status_code == 200

    def test_update_password_wrong_current(self, client, csrf_headers, registered):
        response = client.post(
            "/auth/update-password",
            json={
                "current_password": "wrongpassword",
                "password": "newpassword22",
                "password_confirmation": "newpassword22",
            },
            headers=csrf_headers,
        )
        assert response.status_code == 400
        assert "current_password" in response.get_json()["details"]


class TestPasswordReset:
    def test_full_flow(self, client, csrf_headers, mailer, registered):
        response = client.post(
            "/auth/forgot-password", json={"email": "ada@x.com"}, headers=csrf_headers
        )
        assert response.status_code == 200
        assert response.get_json() == {"message": "Reset password link email has been sent"}

        token = mailer.last_token()
        payload = {
            "email": "ada@x.com",
            "token": token,
            "password": "brandnewpass",
            "password_confirmation": "brandnewpass",
        }
        response = client.post("/auth/reset-password", json=payload, headers=csrf_headers)
        assert response.status_code == 200
        assert response.get_json() == {"message": "Reset password succeed"}
        assert login(client, csrf_headers, password="brandnewpass").status_code == 200

        replay = client.post("/auth/reset-password", json=payload, headers=csrf_headers)
        assert replay.status_code == 400
        assert replay.get_json() == {
            "error": "INVALID_TOKEN",
            "message": "Invalid password reset token, please request another!",
            "status": 400,
        }

    def test_unknown_email_gets_same_answer(self, client, csrf_headers):
        response = client.post(
            "/auth/forgot-password", json={"email": "ghost@x.com"}, headers=csrf_headers
        )
        assert response.status_code == 200

    def test_cooldown(self, client, csrf_headers, clock, registered):
        def request_link():
            return client.post(
                "/auth/forgot-password", json={"email": "ada@x.com"}, headers=csrf_headers
            )

        assert request_link().status_code == 200
        response = request_link()
        assert response.status_code == 429
        assert response.get_json()["error"] == "TOO_MANY_REQUESTS"
        clock.advance(seconds=61)
        assert request_link().status_code == 200

    def test_mail_rejected(self, client, csrf_headers, mailer, registered):
        mailer.accept = False
        response = client.post(
            "/auth/forgot-password", json={"email": "ada@x.com"}, headers=csrf_headers
        )
        assert response.status_code == 424
        assert response.get_json()["message"] == "The email address has been rejected by the mail server"

    def test_invalid_email(self, client, csrf_headers):
        response = client.post(
            "/auth/forgot-password", json={"email": "nope"}, headers=csrf_headers
        )
        assert response.status_code == 400


class TestMisc:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_root(self, client):
        assert client.get("/").status_code == 200

    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.get_json()["error"] == "NOT_FOUND"


class TestLengthLimits:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("name", "n" * 256),
            ("username", "u" * 65),
            ("email", "a" * 250 + "@x.com"),
        ],
    )
    def test_register_field_caps(self, client, csrf_headers, registration, field, value):
        registration[field] = value
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 400
        assert field in response.get_json()["details"]

    def test_register_accepts_column_width(self, client, csrf_headers, registration):
        registration.update(name="n" * 255, username="u" * 64)
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 201

    def test_register_password_cap(self, client, csrf_headers, registration):
        registration["password"] = registration["password_confirmation"] = "p" * 129
        response = client.post("/auth/register", json=registration, headers=csrf_headers)
        assert response.status_code == 400
        assert response.get_json()["details"]["password"] == [
            "Password must be at most 128 characters long."
        ]

    def test_login_password_cap(self, client, csrf_headers, registered):
        response = login(client, csrf_headers, password="p" * 129)
        assert response.status_code == 400
        assert "password" in response.get_json()["details"]

    def test_update_profile_caps(self, client, csrf_headers, registered):
        response = client.post(
            "/auth/update-profile",
            json={"name": "n" * 256, "username": "u" * 65, "email": "ada@x.com"},
            headers=csrf_headers,
        )
        assert response.status_code == 400
        assert {"name", "username"} <= set(response.get_json()["details"])

    def test_update_password_current_password_cap(self, client, csrf_headers, registered):
        response = client.post(
            "/auth/update-password",
            json={
                "current_password": "p" * 129,
                "password": "newpassword22",
                "password_confirmation": "newpassword22",
            },
            headers=csrf_headers,
        )
        assert response.status_code == 400
        assert "current_password" in response.get_json()["details"]

    def test_reset_token_cap(self, client, csrf_headers):
        response = client.post(
            "/auth/reset-password",
            json={
                "email": "ada@x.com",
                "token": "a" * 129,
                "password": "brandnewpass",
                "password_confirmation": "brandnewpass",
            },
            headers=csrf_headers,
        )
        assert response.status_code == 400
        assert "token" in response.get_json()["details"]

    def test_oversized_refresh_token(self, client, csrf_headers):
        response = client.post("/auth/refresh", json={"refresh_token": "x" * 5000}, headers=csrf_headers)
        assert response.status_code == 401


def test_duplicate_lost_race_answers_validation_error(app, client, csrf_headers, registered, registration, monkeypatch):
    monkeypatch.setattr(app.extensions["session_manager"], "_ensure_unique", lambda *args, **kwargs: None)
    registration["email"] = "other@x.com"
    response = client.post("/auth/register", json=registration, headers=csrf_headers)
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "VALIDATION_ERROR"
    text = response.get_data(as_text=True).lower()
    assert "constraint" not in text
    assert "users.username" not in text
    assert "insert" not in text


class TestRouting:
    def test_unknown_post_route_is_not_a_csrf_failure(self, client):
        response = client.post("/no-such-route", json={})
        assert response.status_code == 404
        assert response.get_json()["error"] == "NOT_FOUND"

    def test_wrong_method(self, client):
        response = client.post("/health")
        assert response.status_code == 405

    def test_known_route_still_guarded(self, client):
        assert client.post("/auth/login", json={}).status_code == 403


class TestApiDocs:
    def test_swagger_json(self, client):
        response = client.get("/swagger.json")
        assert response.status_code == 200
        doc = response.get_json()
        assert "Bearer" in doc["securityDefinitions"]
        for path in ("/auth/register", "/auth/login", "/auth/refresh", "/csrf-token", "/health"):
            assert path in doc["paths"]
        assert "Auth" in doc["paths"]["/auth/login"]["post"]["tags"]

    def test_swagger_ui(self, client):
        assert client.get("/apidocs/").status_code == 200


class TestHeaders:
    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert "Strict-Transport-Security" not in response.headers

    def test_security_headers_on_errors(self, client):
        response = client.get("/nope")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_hsts_with_secure_cookies(self, storage, mailer, clock):
        from api import create_app

        app = create_app(
            "testing", storage=storage, mailer=mailer, clock=clock, overrides={"JWT_COOKIE_SECURE": True}
        )
        response = app.test_client().get("/health")
        assert response.headers["Strict-Transport-Security"].startswith("max-age=")

    def test_cors_preflight_allows_bearer_and_csrf_headers(self, client):
        response = client.options(
            "/auth/user",
            headers={
                "Origin": "http://app.test",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "Authorization, X-CSRF-Token",
            },
        )
        allowed = response.headers.get("Access-Control-Allow-Headers", "").lower()
        assert "authorization" in allowed
        assert "x-csrf-token" in allowed
