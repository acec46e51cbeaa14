"""
Password reset flow.

forgot_password issues a single-use token (only its Argon2 hash is stored)
and mails a link carrying the plaintext token. reset_password consumes it.
Responses never reveal whether an account exists for the email.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import urlencode

from argon2 import PasswordHasher
from jinja2 import Environment

from models.db_storage import DBStorage
from models.reset_password_request import ResetPasswordRequest
from models.user import User
from services.mail import Mailer, redact_email
from utils.exceptions import InvalidToken, TooManyRequests
from utils.security import hash_password, ph, utcnow, verify_password

logger = logging.getLogger(__name__)

RESET_PASSWORD_SUBJECT = "Reset Password"

RESET_PASSWORD_TEMPLATE = """\
<p>Hello{% if name %} {{ name }}{% endif %},</p>
<p>We received a request to reset the password of your account.
Follow the link below to choose a new one. The link expires in {{ ttl_minutes }} minutes.</p>
<p><a href="{{ link }}">{{ link }}</a></p>
<p>If you did not ask for a password reset, you can ignore this email.</p>
"""

INVALID_TOKEN_MESSAGE = "Invalid password reset token, please request another!"


class PasswordResetManager:
    def __init__(
        self,
        storage: DBStorage,
        mailer: Mailer,
        *,
        app_url: str,
        token_ttl: timedelta = timedelta(hours=1),
        cooldown: timedelta = timedelta(minutes=1),
        hasher: PasswordHasher = ph,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.mailer = mailer
        self.app_url = app_url.rstrip("/")
        self.token_ttl = token_ttl
        self.cooldown = cooldown
        self.hasher = hasher
        self.clock = clock
        self._template = Environment(autoescape=True).from_string(RESET_PASSWORD_TEMPLATE)

    def _latest_request(self, email: str) -> ResetPasswordRequest | None:
        session = self.storage.get_session()
        return (
            session.query(ResetPasswordRequest)
            .filter(ResetPasswordRequest.email == email)
            .order_by(ResetPasswordRequest.created_at.desc(), ResetPasswordRequest.id.desc())
            .first()
        )

    def ensure_not_recently_requested(self, email: str) -> None:
        """Raise TooManyRequests while the latest request for email is inside the cooldown window."""
        latest = self._latest_request(email)
        if latest is not None and latest.created_at + self.cooldown >= self.clock():
            raise TooManyRequests("Please wait before retrying")

    def build_reset_link(self, email: str, token: str) -> str:
        return f"{self.app_url}/reset-password?{urlencode({'email': email, 'token': token})}"

    def forgot_password(self, email: str) -> bool:
        """
        Issue a reset token for email and mail the link.

        Returns whether the mail server accepted the recipient. Raises
        TooManyRequests during the cooldown window.
        """
        self.ensure_not_recently_requested(email)

        session = self.storage.get_session()
        user = session.query(User.name).filter(User.email == email).first()

        token = secrets.token_hex(32)
        with self.storage.transaction() as session:
            session.query(ResetPasswordRequest).filter(ResetPasswordRequest.email == email).delete()
            session.add(
                ResetPasswordRequest(
                    email=email,
                    token_hash=hash_password(token, self.hasher),
                    created_at=self.clock(),
                )
            )

        html = self._template.render(
            name=user.name if user else None,
            link=self.build_reset_link(email, token),
            ttl_minutes=int(self.token_ttl.total_seconds() // 60),
        )
        accepted = self.mailer.send(email, RESET_PASSWORD_SUBJECT, html)
        logger.info("Reset password link issued for %s (accepted=%s)", redact_email(email), accepted)
        return accepted

    def verify_token(self, email: str, token: str) -> ResetPasswordRequest:
        """
        Return the live request for email if token matches it.
        Missing, expired and mismatched tokens all raise the same InvalidToken.
        """
        request = self._latest_request(email)
        if request is None:
            raise InvalidToken(INVALID_TOKEN_MESSAGE)
        if request.created_at + self.token_ttl <= self.clock():
            raise InvalidToken(INVALID_TOKEN_MESSAGE)
        if not verify_password(token, request.token_hash, self.hasher):
            raise InvalidToken(INVALID_TOKEN_MESSAGE)
        return request

    def reset_password(self, email: str, token: str, password: str) -> None:
        """Set a new password and consume every reset request for email."""
        self.verify_token(email, token)

        with self.storage.transaction() as session:
            # Zero deleted rows means a concurrent reset already consumed the token.
            deleted = (
                session.query(ResetPasswordRequest)
                .filter(ResetPasswordRequest.email == email)
                .delete()
            )
            user = session.query(User).filter(User.email == email).first()
            if not deleted or user is None:
                raise InvalidToken(INVALID_TOKEN_MESSAGE)
            user.password_hash = hash_password(password, self.hasher)

        logger.info("Password reset completed for user %s", user.id)
