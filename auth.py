"""
auth.py
Authentication utilities (bcrypt hashing, user table, login/register, session).

The user table is one JSON document (email -> user) kept through the
persistence gateway. Older tables stored plaintext passwords; those are
compared in constant time on login, and every write of the table replaces
them with bcrypt hashes.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import replace

import bcrypt

from db import LocalCache
from models import User, new_id
from storage import PersistenceGateway

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session-"


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in the user table).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    try:
        return bcrypt.checkpw(secret, stored)
    except ValueError:
        # not a bcrypt hash
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def session_key(token: str) -> str:
    """Cache key of a remembered session; only the token's hash is stored."""
    return SESSION_KEY_PREFIX + hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserDirectory:
    def __init__(
        self,
        gateway: PersistenceGateway,
        rounds: int = 12,
        min_password_length: int = 6,
    ) -> None:
        self.gateway = gateway
        self.rounds = rounds
        self.min_password_length = min_password_length

    def users(self) -> dict[str, User]:
        return self.gateway.load_users()

    def get(self, email: str) -> User | None:
        return self.users().get(normalize_email(email))

    def _save(self, users: dict[str, User]) -> None:
        """
        Write the whole table back.

        The stored shape has no plaintext field, so any account still carrying
        an old plaintext password is hashed here before it is written.
        """
        for email, user in list(users.items()):
            if user.legacy_password is None:
                continue
            password_hash = user.password_hash or hash_password(user.legacy_password, self.rounds)
            users[email] = replace(user, password_hash=password_hash, legacy_password=None)
            logger.info("Upgraded plaintext password of %s to bcrypt", email)
        self.gateway.save_users(users)

    def _check_password(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise ValueError(f"Password must be at least {self.min_password_length} characters.")

    def ensure_default_admin(self, email: str, password: str) -> User | None:
        """Seed an admin (forced to change password) when the user table is empty."""
        users = self.users()
        if users:
            return None
        admin = User(
            id=new_id(),
            name="Admin",
            email=normalize_email(email),
            password_hash=hash_password(password, self.rounds),
            must_change_password=True,
        )
        users[admin.email] = admin
        self._save(users)
        logger.info("Created default admin %s", admin.email)
        return admin

    def register(self, name: str, email: str, password: str) -> User:
        email = normalize_email(email)
        if not name.strip() or not email:
            raise ValueError("Name and email are required.")
        self._check_password(password)
        users = self.users()
        if email in users:
            raise ValueError("An account with this email already exists.")
        user = User(
            id=new_id(),
            name=name.strip(),
            email=email,
            password_hash=hash_password(password, self.rounds),
        )
        users[email] = user
        self._save(users)
        logger.info("Registered user %s", email)
        return user

    def authenticate(self, email: str, password: str) -> User | None:
        users = self.users()
        user = users.get(normalize_email(email))
        if user is None:
            return None
        if user.password_hash:
            return user if verify_password(password, user.password_hash) else None
        if user.legacy_password is not None and hmac.compare_digest(
            user.legacy_password.encode("utf-8"), password.encode("utf-8")
        ):
            self._save(users)
            return users[normalize_email(email)]
        return None

    def change_password(self, email: str, new_password: str) -> User:
        self._check_password(new_password)
        users = self.users()
        key = normalize_email(email)
        if key not in users:
            raise ValueError(f"Unknown user {email!r}")
        updated = replace(
            users[key],
            password_hash=hash_password(new_password, self.rounds),
            must_change_password=False,
            legacy_password=None,
        )
        users[key] = updated
        self._save(users)
        return updated


class Session:
    """
    The signed-in user for one browser session.

    A "remember me" login issues a random token that the browser keeps and
    presents again on its next visit. The local cache stores only a hash of
    that token, so a visitor without it has nothing to restore. ``logout``
    drops the in-memory user and deletes the stored marker.
    """

    def __init__(self, directory: UserDirectory, cache: LocalCache) -> None:
        self.directory = directory
        self.cache = cache
        self.user: User | None = None
        self.token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def restore(self, token: str | None) -> User | None:
        if not token:
            return None
        key = session_key(token)
        raw = self.cache.get(key)
        if not raw:
            return None
        try:
            marker = json.loads(raw)
            user = self.directory.get(marker["email"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable session marker")
            self.cache.delete(key)
            return None
        if user is None or user.id != marker.get("id"):
            self.cache.delete(key)
            return None
        self.user = user
        self.token = token
        return user

    def login(self, email: str, password: str, remember: bool = False) -> bool:
        user = self.directory.authenticate(email, password)
        if user is None:
            logger.info("Login failed for %s", normalize_email(email))
            return False
        self._forget()
        self.user = user
        if remember:
            self.token = secrets.token_urlsafe(32)
            self.cache.set(session_key(self.token), json.dumps({"id": user.id, "email": user.email}))
        return True

    def refresh(self) -> None:
        if self.user is not None:
            self.user = self.directory.get(self.user.email)

    def logout(self) -> None:
        self.user = None
        self._forget()

    def _forget(self) -> None:
        if self.token is not None:
            self.cache.delete(session_key(self.token))
            self.token = None
