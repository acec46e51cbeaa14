"""
Authentication adapter: turns the bearer credential of a request into an identity.

- no credential        -> ANONYMOUS
- valid credential     -> CurrentUser (id, name, username, email; never the hash)
- invalid credential   -> Unauthorized, on every route, including the ones that
                          allow anonymous access
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, request

from utils.exceptions import InvalidToken, Unauthorized
from utils.security import ACCESS


@dataclass(frozen=True)
class CurrentUser:
    id: int
    name: str
    username: str
    email: str
    is_authenticated: bool = True


class AnonymousUser:
    id = None
    is_authenticated = False

    def __repr__(self):
        return "<AnonymousUser>"


ANONYMOUS = AnonymousUser()


def token_locations() -> list[str]:
    raw = current_app.config.get("JWT_TOKEN_LOCATION", "cookies")
    if isinstance(raw, str):
        raw = raw.split(",")
    return [loc.strip().lower() for loc in raw if loc.strip()]


def extract_access_token() -> str | None:
    """Access token from the configured locations, cookie first."""
    for location in token_locations():
        if location == "cookies":
            token = request.cookies.get(current_app.config["JWT_ACCESS_TOKEN_COOKIE_NAME"])
            if token:
                return token
        elif location == "headers":
            auth = request.headers.get("Authorization", "")
            if auth.startswith("Bearer "):
                token = auth.split(" ", 1)[1].strip()
                if token:
                    return token
    return None


def resolve_identity():
    """Resolve the request's identity; raises Unauthorized for a bad credential."""
    token = extract_access_token()
    if token is None:
        return ANONYMOUS

    signer = current_app.extensions["token_signer"]
    try:
        user_id = signer.subject(token, ACCESS)
    except InvalidToken as exc:
        raise Unauthorized() from exc

    row = current_app.extensions["session_manager"].get_profile(user_id)
    if row is None:
        raise Unauthorized()
    return CurrentUser(id=row.id, name=row.name, username=row.username, email=row.email)


def auth_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = resolve_identity()
            if not identity.is_authenticated:
                raise Unauthorized()
            g.current_user = identity
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def auth_optional():
    """Attach the identity (possibly ANONYMOUS) to g.current_user without requiring one."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.current_user = resolve_identity()
            return fn(*args, **kwargs)

        return wrapper

    return decorator
