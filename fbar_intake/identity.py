"""Admin identity provider: password sign-in, session tokens, password change."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

from email_validator import EmailNotValidError, validate_email
from passlib.context import CryptContext

from .database import SQLiteRepository
from .exceptions import AuthError, ValidationError
from .models import AdminUser, Session

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_PERIOD = timedelta(minutes=15)
MIN_PASSWORD_LENGTH = 6


def hash_password(plain_password: str) -> str:
    return _pwd_context.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return _pwd_context.verify(plain_password, password_hash)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityProvider:
    """Authenticate review-console operators against ``admin_users``.

    Five consecutive wrong passwords lock the account for fifteen minutes.
    Sessions are opaque bearer tokens that expire after ``session_lifetime``.
    """

    def __init__(
        self,
        repository: SQLiteRepository,
        session_lifetime: timedelta = timedelta(hours=12),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._session_lifetime = session_lifetime
        self._clock = clock

    def ensure_admin(self, email: str, password: str) -> bool:
        """Create the admin account unless it exists. Returns ``True`` when created."""

        normalized_email = _normalise_email(email)
        if self._repository.get_admin(normalized_email) is not None:
            return False
        self._repository.insert_admin(normalized_email, hash_password(password))
        logger.info("Admin account %s created", normalized_email)
        return True

    def sign_in(self, email: str, password: str) -> Session:
        normalized_email = _normalise_email(email)
        user = self._repository.get_admin(normalized_email)
        if user is None:
            raise AuthError("user-not-found")
        if user.disabled:
            raise AuthError("user-disabled")

        now = self._clock()
        if user.locked_until is not None and user.locked_until > now:
            raise AuthError("too-many-requests")

        if not verify_password(password, user.password_hash):
            self._record_failure(user, now)
            raise AuthError("invalid-credential")

        self._repository.record_sign_in_attempt(normalized_email, 0, None)
        session = Session(
            token=secrets.token_urlsafe(32),
            email=normalized_email,
            created_at=now,
            expires_at=now + self._session_lifetime,
        )
        self._repository.insert_session(session)
        logger.info("Admin %s signed in", normalized_email)
        return session

    def authenticate(self, token: str) -> AdminUser:
        """Return the operator behind ``token``.

        Raises:
            AuthError: the token is unknown or expired, or the account is gone or disabled.
        """

        session = self._repository.get_session(token) if token else None
        if session is None:
            raise AuthError("session-expired")
        if session.expires_at <= self._clock():
            self._repository.delete_session(token)
            raise AuthError("session-expired")

        user = self._repository.get_admin(session.email)
        if user is None:
            raise AuthError("session-expired")
        if user.disabled:
            raise AuthError("user-disabled")
        return user

    def sign_out(self, token: str) -> None:
        self._repository.delete_session(token)

    def change_password(self, token: str, current_password: str, new_password: str, confirm_password: str) -> None:
        """Replace the operator's password after re-verifying the current one."""

        user = self.authenticate(token)

        if new_password != confirm_password:
            raise ValidationError("New passwords do not match", field="confirmPassword")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters long",
                field="newPassword",
            )
        if new_password == current_password:
            raise ValidationError("New password must be different from current password", field="newPassword")

        if not verify_password(current_password, user.password_hash):
            raise AuthError("wrong-password")

        self._repository.update_admin_password(user.email, hash_password(new_password))
        logger.info("Admin %s changed password", user.email)

    def _record_failure(self, user: AdminUser, now: datetime) -> None:
        attempts = user.failed_attempts + 1
        if attempts >= MAX_FAILED_ATTEMPTS:
            logger.warning("Admin %s locked after %d failed sign-ins", user.email, attempts)
            self._repository.record_sign_in_attempt(user.email, 0, now + LOCKOUT_PERIOD)
        else:
            self._repository.record_sign_in_attempt(user.email, attempts, None)


def _normalise_email(email: str) -> str:
    normalized_email = (email or "").strip().lower()
    try:
        validate_email(normalized_email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise AuthError("invalid-email") from exc
    return normalized_email
