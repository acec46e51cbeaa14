"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/user
- GET  /auth/session
- POST /auth/update-profile
- POST /auth/update-password
- POST /auth/forgot-password
- POST /auth/reset-password

Access and refresh tokens travel in HttpOnly, SameSite=Lax cookies. All POST
routes are covered by the CSRF guard installed in create_app().
"""
from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from models.schemas.user import (
    ForgotPasswordSchema,
    LoginSchema,
    RegisterSchema,
    ResetPasswordSchema,
    UpdatePasswordSchema,
    UpdateProfileSchema,
    UserOutSchema,
)
from services.password_reset import PasswordResetManager
from services.session import SessionManager
from utils.decorators import auth_optional, auth_required
from utils.exceptions import DependencyFailure, NotFound, Unauthorized

bp = Blueprint("auth", __name__, url_prefix="/auth")

# Signed refresh JWTs are a few hundred bytes
MAX_REFRESH_TOKEN_LENGTH = 2048

register_schema = RegisterSchema()
login_schema = LoginSchema()
update_profile_schema = UpdateProfileSchema()
update_password_schema = UpdatePasswordSchema()
forgot_password_schema = ForgotPasswordSchema()
reset_password_schema = ResetPasswordSchema()
user_out_schema = UserOutSchema()


def _sessions() -> SessionManager:
    return current_app.extensions["session_manager"]


def _resets() -> PasswordResetManager:
    return current_app.extensions["reset_manager"]


def _set_token_cookie(response, name: str, token: str, ttl: timedelta):
    response.set_cookie(
        name,
        token,
        max_age=int(ttl.total_seconds()),
        domain=current_app.config["JWT_COOKIE_DOMAIN"],
        path="/",
        secure=current_app.config["JWT_COOKIE_SECURE"],
        httponly=True,
        samesite="Lax",
    )


def _session_response(tokens, status: int):
    config = current_app.config
    response = jsonify(user_out_schema.dump(tokens.user))
    response.status_code = status
    _set_token_cookie(response, config["JWT_ACCESS_TOKEN_COOKIE_NAME"], tokens.access_token,
                      config["JWT_ACCESS_TOKEN_EXPIRES"])
    _set_token_cookie(response, config["JWT_REFRESH_TOKEN_COOKIE_NAME"], tokens.refresh_token,
                      config["JWT_REFRESH_TOKEN_EXPIRES"])
    return response


@bp.post("/register")
def register():
    """
    Register a new account and open a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    security:
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [name, username, email, password, password_confirmation]
          properties:
            name: { type: string, maxLength: 255 }
            username: { type: string, maxLength: 64 }
            email: { type: string, maxLength: 255 }
            password: { type: string, minLength: 8, maxLength: 128 }
            password_confirmation: { type: string }
    responses:
      201:
        description: Created (sets access and refresh token cookies)
      400:
        description: Validation error
      403:
        description: Invalid CSRF token
    """
    data = register_schema.load(request.get_json(silent=True) or {})
    tokens = _sessions().register(data["name"], data["username"], data["email"], data["password"])
    return _session_response(tokens, 201)


@bp.post("/login")
def login():
    """
    Login: sets access and refresh token cookies
    ---
    tags:
      - Auth
    consumes:
      - application/json
    security:
      - CsrfToken: []
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns the user, sets cookies)
      400:
        description: Validation error
      401:
        description: Invalid credentials
    """
    data = login_schema.load(request.get_json(silent=True) or {})
    tokens = _sessions().login(data["username"], data["password"])
    return _session_response(tokens, 200)


@bp.post("/refresh")
def refresh():
    """
    Use the refresh token cookie to obtain a new access token
    ---
    tags:
      - Auth
    security:
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        required: false
        schema:
          type: object
          properties:
            refresh_token: { type: string, description: Used when no refresh cookie is sent }
    responses:
      200:
        description: New access token cookie set
      401:
        description: Missing, invalid or superseded refresh token
    """
    config = current_app.config
    token = request.cookies.get(config["JWT_REFRESH_TOKEN_COOKIE_NAME"])
    if not token:
        payload = request.get_json(silent=True) or {}
        token = payload.get("refresh_token") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token or len(token) > MAX_REFRESH_TOKEN_LENGTH:
        raise Unauthorized()

    try:
        access_token = _sessions().refresh(token)
    except (NotFound, Unauthorized) as exc:
        raise Unauthorized() from exc

    response = jsonify({"message": "Refresh token succeed"})
    _set_token_cookie(response, config["JWT_ACCESS_TOKEN_COOKIE_NAME"], access_token,
                      config["JWT_ACCESS_TOKEN_EXPIRES"])
    return response


@bp.post("/logout")
@auth_required()
def logout():
    """
    Logout: clears the token cookies
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CsrfToken: []
    responses:
      204:
        description: Logged out
      401:
        description: Unauthenticated
    """
    config = current_app.config
    response = current_app.response_class(status=204)
    for name in (config["JWT_ACCESS_TOKEN_COOKIE_NAME"], config["JWT_REFRESH_TOKEN_COOKIE_NAME"]):
        response.delete_cookie(
            name,
            domain=config["JWT_COOKIE_DOMAIN"],
            path="/",
            secure=config["JWT_COOKIE_SECURE"],
            httponly=True,
            samesite="Lax",
        )
    return response


@bp.get("/user")
@auth_required()
def user():
    """
    Current user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: id, name, username and email of the authenticated user
      401:
        description: Unauthenticated
    """
    return jsonify(user_out_schema.dump(g.current_user)), 200


@bp.get("/session")
@auth_optional()
def session_status():
    """
    Describe the current session; anonymous callers are allowed
    ---
    tags:
      - Auth
    responses:
      200:
        description: Session status
        schema:
          type: object
          properties:
            authenticated: { type: boolean }
            user: { type: object }
      401:
        description: A credential was sent but is invalid or expired
    """
    identity = g.current_user
    return jsonify(
        {
            "authenticated": identity.is_authenticated,
            "user": user_out_schema.dump(identity) if identity.is_authenticated else None,
        }
    ), 200


@bp.post("/update-profile")
@auth_required()
def update_profile():
    """
    Update name, username and email of the authenticated user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            username: { type: string }
            email: { type: string }
    responses:
      200:
        description: Updated user
      400:
        description: Validation error
      401:
        description: Unauthenticated
    """
    data = update_profile_schema.load(request.get_json(silent=True) or {})
    updated = _sessions().update_profile(g.current_user.id, data["name"], data["username"], data["email"])
    return jsonify(user_out_schema.dump(updated)), 200


@bp.post("/update-password")
@auth_required()
def update_password():
    """
    Change the password of the authenticated user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            current_password: { type: string }
            password: { type: string }
            password_confirmation: { type: string }
    responses:
      200:
        description: Password updated
      400:
        description: Validation error
      401:
        description: Unauthenticated
    """
    data = update_password_schema.load(request.get_json(silent=True) or {})
    _sessions().update_password(g.current_user.id, data["current_password"], data["password"])
    return jsonify({"message": "Update password succeed"}), 200


@bp.post("/forgot-password")
def forgot_password():
    """
    Email a password reset link
    ---
    tags:
      - Password reset
    security:
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200:
        description: Link sent (also returned for unknown emails)
      400:
        description: Validation error
      424:
        description: The mail server rejected the recipient
      429:
        description: A link was requested too recently
    """
    data = forgot_password_schema.load(request.get_json(silent=True) or {})
    if not _resets().forgot_password(data["email"]):
        raise DependencyFailure("The email address has been rejected by the mail server")
    return jsonify({"message": "Reset password link email has been sent"}), 200


@bp.post("/reset-password")
def reset_password():
    """
    Set a new password with a reset token
    ---
    tags:
      - Password reset
    security:
      - CsrfToken: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            token: { type: string }
            password: { type: string }
            password_confirmation: { type: string }
    responses:
      200:
        description: Password reset
      400:
        description: Validation error or invalid reset token
    """
    data = reset_password_schema.load(request.get_json(silent=True) or {})
    _resets().reset_password(data["email"], data["token"], data["password"])
    return jsonify({"message": "Reset password succeed"}), 200
