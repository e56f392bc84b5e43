import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import Optional

from .errors import AuthenticationError, NotFoundError
from .schemas import (
    AuthPartition,
    AuthSession,
    LoginAttempts,
    UserPublic,
    utcnow,
)
from .users import UserDirectory

logger = logging.getLogger(__name__)


class AuthService:
    """
    Login, logout and session lifetime.

    Sessions are bearer tokens that expire `session_timeout` after they were
    issued or last refreshed. Failed logins are counted per identifier;
    after `max_attempts` failures the identifier is locked for
    `lockout` no matter which password is tried.
    """

    def __init__(
        self,
        users: UserDirectory,
        partition: Optional[AuthPartition] = None,
        session_timeout: timedelta = timedelta(hours=8),
        max_attempts: int = 5,
        lockout: timedelta = timedelta(minutes=10),
    ):
        self._users = users
        self._data = partition or AuthPartition()
        self.session_timeout = session_timeout
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.revision = 0

    def snapshot(self) -> AuthPartition:
        return self._data.model_copy(deep=True)

    def load(self, partition: AuthPartition) -> None:
        self._data = partition

    def _changed(self) -> None:
        self.revision += 1

    def _check_lockout(self, key: str, now: datetime) -> None:
        attempts = self._data.login_attempts.get(key)
        if attempts is None or attempts.failed < self.max_attempts:
            return
        if attempts.last_attempt is None:
            return
        elapsed = now - attempts.last_attempt
        if elapsed < self.lockout:
            minutes_left = math.ceil((self.lockout - elapsed).total_seconds() / 60)
            raise AuthenticationError(
                f"Demasiados intentos fallidos. Intente nuevamente en {minutes_left} minutos.",
                locked=True,
            )
        # Lockout served, start counting again.
        del self._data.login_attempts[key]
        self._changed()

    def _record_failure(self, key: str, now: datetime) -> None:
        attempts = self._data.login_attempts.get(key) or LoginAttempts()
        self._data.login_attempts[key] = LoginAttempts(
            failed=attempts.failed + 1, last_attempt=now
        )
        self._changed()

    def login(self, identifier: str, password: str, now: Optional[datetime] = None) -> AuthSession:
        now = now or utcnow()
        key = identifier.strip().lower()
        self._check_lockout(key, now)

        user = self._users.find_by_identifier(key)
        if user is None or not user.active:
            self._record_failure(key, now)
            logger.warning("Login failed for '%s': unknown or inactive user", key)
            raise AuthenticationError("Usuario no encontrado o inactivo")
        if user.password != password:
            self._record_failure(key, now)
            logger.warning("Login failed for '%s': wrong password", key)
            raise AuthenticationError("Credenciales inválidas")

        self._data.login_attempts.pop(key, None)
        session = AuthSession(
            user=UserPublic.model_validate(user),
            token=secrets.token_urlsafe(32),
            issued_at=now,
            expires_at=now + self.session_timeout,
        )
        self._data.sessions.append(session)
        self._prune(now)
        self._changed()
        logger.info("Login successful: %s (%s)", user.username, user.role.value)
        return session

    def logout(self, token: str) -> bool:
        before = len(self._data.sessions)
        self._data.sessions = [s for s in self._data.sessions if s.token != token]
        if len(self._data.sessions) == before:
            return False
        self._changed()
        logger.info("Session closed")
        return True

    def session_for_token(self, token: str) -> Optional[AuthSession]:
        return next((s for s in self._data.sessions if s.token == token), None)

    def current_session(self, token: str, now: Optional[datetime] = None) -> Optional[AuthSession]:
        """The session behind `token`, or None once it has expired."""
        session = self.session_for_token(token)
        if session is None or not session.is_valid(now):
            return None
        # Pick up role and active-flag changes made since login.
        if not self._is_active(session.user.id):
            return None
        user = self._users.get_user(session.user.id)
        if UserPublic.model_validate(user) != session.user:
            session = session.model_copy(update={"user": UserPublic.model_validate(user)})
            self._replace(session)
        return session

    def refresh_session(self, token: str, now: Optional[datetime] = None) -> Optional[AuthSession]:
        now = now or utcnow()
        session = self.current_session(token, now)
        if session is None:
            return None
        refreshed = session.model_copy(update={"expires_at": now + self.session_timeout})
        self._replace(refreshed)
        return refreshed

    def has_valid_session(self, now: Optional[datetime] = None) -> bool:
        """True when an unexpired session belongs to a user that still exists and is active."""
        return any(
            s.is_valid(now) and self._is_active(s.user.id) for s in self._data.sessions
        )

    def _is_active(self, user_id: str) -> bool:
        try:
            return self._users.get_user(user_id).active
        except NotFoundError:
            return False

    def reset_login_attempts(self, identifier: str) -> None:
        if self._data.login_attempts.pop(identifier.strip().lower(), None) is not None:
            self._changed()

    def _replace(self, session: AuthSession) -> None:
        for index, current in enumerate(self._data.sessions):
            if current.token == session.token:
                self._data.sessions[index] = session
                self._changed()
                return

    def _prune(self, now: datetime) -> None:
        self._data.sessions = [s for s in self._data.sessions if s.is_valid(now)]
