"""
Session lifecycle: register, login, refresh, profile and password updates.

Every register/login replaces the user's stored refresh token inside a single
transaction, so at most one refresh token is live per user. Refresh only mints
a new access token; the refresh token itself is rotated on the next login.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from argon2 import PasswordHasher
from marshmallow import ValidationError
from sqlalchemy.orm import Session

from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.user import User
from utils.exceptions import InvalidToken, NotFound, Unauthorized
from utils.security import REFRESH, TokenSigner, hash_password, ph, verify_password

logger = logging.getLogger(__name__)


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str
    user: User


class SessionManager:
    def __init__(self, storage: DBStorage, signer: TokenSigner, hasher: PasswordHasher = ph):
        self.storage = storage
        self.signer = signer
        self.hasher = hasher
        self._dummy_hash: str | None = None

    def _dummy_password_hash(self) -> str:
        # Unknown usernames still pay for one hash verification.
        if self._dummy_hash is None:
            self._dummy_hash = hash_password("not-a-real-password", self.hasher)
        return self._dummy_hash

    def _ensure_unique(self, username: str, email: str, ignore_user_id: int | None = None) -> None:
        session = self.storage.get_session()
        errors = {}
        query = session.query(User.id).filter(User.username == username)
        if ignore_user_id is not None:
            query = query.filter(User.id != ignore_user_id)
        if query.first():
            errors["username"] = ["Username has already been taken."]
        query = session.query(User.id).filter(User.email == email)
        if ignore_user_id is not None:
            query = query.filter(User.id != ignore_user_id)
        if query.first():
            errors["email"] = ["Email has already been taken."]
        if errors:
            raise ValidationError(errors)

    def _store_refresh_token(self, session: Session, user_id: int) -> str:
        """Sign a refresh token and make its hash the only one stored for the user."""
        token = self.signer.sign_refresh_token(user_id)
        session.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete()
        session.add(RefreshToken(user_id=user_id, token_hash=hash_password(token, self.hasher)))
        return token

    def issue_refresh_token(self, user_id: int) -> str:
        """Sign and persist a new refresh token for the user, replacing any prior one."""
        with self.storage.transaction() as session:
            return self._store_refresh_token(session, user_id)

    def register(self, name: str, username: str, email: str, password: str) -> SessionTokens:
        """
        Create an account and open a session for it.
        Raises ValidationError if the username or email is taken; a concurrent
        duplicate still fails at the unique constraint (IntegrityError).
        """
        self._ensure_unique(username, email)
        user = User(
            name=name,
            username=username,
            email=email,
            password_hash=hash_password(password, self.hasher),
        )
        with self.storage.transaction() as session:
            session.add(user)
            session.flush()
            refresh_token = self._store_refresh_token(session, user.id)

        logger.info("User %s registered", user.id)
        return SessionTokens(self.signer.sign_access_token(user.id), refresh_token, user)

    def login(self, username: str, password: str) -> SessionTokens:
        session = self.storage.get_session()
        user = session.query(User).filter(User.username == username).first()
        if user is None:
            verify_password(password, self._dummy_password_hash(), self.hasher)
            logger.info("Failed login attempt")
            raise Unauthorized("Invalid credentials")
        if not verify_password(password, user.password_hash, self.hasher):
            logger.info("Failed login attempt")
            raise Unauthorized("Invalid credentials")

        with self.storage.transaction() as session:
            refresh_token = self._store_refresh_token(session, user.id)

        logger.info("User %s logged in", user.id)
        return SessionTokens(self.signer.sign_access_token(user.id), refresh_token, user)

    def refresh(self, refresh_token: str) -> str:
        """
        Exchange a refresh token for a new access token.

        Unauthorized: signature, issuer or expiry check failed, or the token is
        not the one stored for its subject. NotFound: no token is stored.
        """
        try:
            user_id = self.signer.subject(refresh_token, REFRESH)
        except InvalidToken as exc:
            logger.info("Refresh token rejected: %s", exc.message)
            raise Unauthorized() from exc

        session = self.storage.get_session()
        stored = session.query(RefreshToken).filter(RefreshToken.user_id == user_id).first()
        if stored is None:
            raise NotFound("Refresh token not found")
        if not verify_password(refresh_token, stored.token_hash, self.hasher):
            logger.info("Refresh token for user %s does not match the stored one", user_id)
            raise Unauthorized("Refresh token does not match")

        return self.signer.sign_access_token(user_id)

    def get_profile(self, user_id: int):
        """Minimal projection (id, name, username, email) or None."""
        session = self.storage.get_session()
        return (
            session.query(User.id, User.name, User.username, User.email)
            .filter(User.id == user_id)
            .first()
        )

    def update_profile(self, user_id: int, name: str, username: str, email: str) -> User:
        self._ensure_unique(username, email, ignore_user_id=user_id)
        with self.storage.transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            user.name = name
            user.username = username
            user.email = email
        return user

    def update_password(self, user_id: int, current_password: str, password: str) -> None:
        """Overwrite the password hash. Existing refresh tokens stay valid."""
        with self.storage.transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            if not verify_password(current_password, user.password_hash, self.hasher):
                raise ValidationError({"current_password": ["Current password doesn't match."]})
            user.password_hash = hash_password(password, self.hasher)
        logger.info("User %s changed password", user_id)
