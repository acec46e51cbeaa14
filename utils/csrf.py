"""
Double-submit CSRF protection.

A random per-client secret lives in an HttpOnly cookie. The token handed to
the client is that secret's digest, signed with the server-wide CSRF_SECRET
through itsdangerous. A state-changing request passes only when the token it
echoes (header or body) was derived from the secret in its cookie.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Any, Mapping

from flask import Request, Response
from itsdangerous import BadData, URLSafeSerializer

from utils.exceptions import Forbidden

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _digest(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class CsrfGuard:
    def __init__(
        self,
        secret: str,
        cookie_name: str,
        cookie_domain: str,
        *,
        cookie_secure: bool = False,
        header_name: str = "X-CSRF-Token",
        form_field: str = "csrf_token",
    ):
        if not secret:
            raise RuntimeError("Undefined CSRF secret")
        if not cookie_name:
            raise RuntimeError("Undefined CSRF cookie name")
        if not cookie_domain:
            raise RuntimeError("Undefined CSRF cookie domain")
        self.cookie_name = cookie_name
        self.cookie_domain = cookie_domain
        self.cookie_secure = cookie_secure
        self.header_name = header_name
        self.form_field = form_field
        self._serializer = URLSafeSerializer(secret, salt="vidshare-csrf")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CsrfGuard":
        return cls(
            config.get("CSRF_SECRET"),
            config.get("CSRF_COOKIE_NAME"),
            config.get("CSRF_COOKIE_DOMAIN"),
            cookie_secure=bool(config.get("CSRF_COOKIE_SECURE", False)),
            header_name=config.get("CSRF_HEADER_NAME", "X-CSRF-Token"),
        )

    def generate_token(self, response: Response, request: Request) -> str:
        """
        Return a token bound to the client's cookie secret, creating and
        setting the secret cookie when the request does not carry one.
        """
        client_secret = request.cookies.get(self.cookie_name)
        if not client_secret:
            client_secret = secrets.token_urlsafe(32)
        response.set_cookie(
            self.cookie_name,
            client_secret,
            domain=self.cookie_domain,
            path="/",
            secure=self.cookie_secure,
            httponly=True,
            samesite="Lax",
        )
        return self._serializer.dumps(_digest(client_secret))

    def _presented_token(self, request: Request) -> str | None:
        token = request.headers.get(self.header_name)
        if token:
            return token
        token = request.form.get(self.form_field)
        if token:
            return token
        payload = request.get_json(silent=True)
        if isinstance(payload, dict) and isinstance(payload.get(self.form_field), str):
            return payload[self.form_field]
        return None

    def validate_request(self, request: Request) -> bool:
        """True for safe methods, or when the echoed token matches the cookie secret."""
        if request.method.upper() in SAFE_METHODS:
            return True
        client_secret = request.cookies.get(self.cookie_name)
        token = self._presented_token(request)
        if not client_secret or not token:
            return False
        try:
            expected = self._serializer.loads(token)
        except BadData:
            return False
        if not isinstance(expected, str):
            return False
        return hmac.compare_digest(expected, _digest(client_secret))

    def protect(self, request: Request) -> None:
        """Raise Forbidden unless validate_request passes."""
        if not self.validate_request(request):
            logger.warning("CSRF validation failed for %s %s", request.method, request.path)
            raise Forbidden("Invalid CSRF token")
