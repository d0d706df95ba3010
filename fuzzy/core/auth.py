"""Authentication, session table and login rate limiting.

Sessions and login attempts live in process memory only. Each table has its
own lock, separate from the entity store's lock.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from fuzzy.models import User
from fuzzy.models._time import utcnow

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 32
PASSWORD_SPECIALS = "!@#$%^&*"
# bcrypt only hashes the first 72 bytes and rejects longer input
PASSWORD_MAX_BYTES = 72


def generate_session_token() -> str:
    """64 hex chars from the OS CSPRNG."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass
class AuthResult:
    ok: bool
    reason: str  # ok|missing|invalid|disabled
    user: User | None = None


def authenticate(store, username: str, password: str) -> AuthResult:
    """Check credentials against the store.

    Fails for an unknown username, a wrong password or an inactive account.
    The username match is exact and case-sensitive.
    """
    if not username or not password:
        return AuthResult(ok=False, reason="missing")

    user = store.get_user_by_username(username)
    if user is None or not user.check_password(password):
        return AuthResult(ok=False, reason="invalid")
    if not user.active:
        return AuthResult(ok=False, reason="disabled", user=user)
    return AuthResult(ok=True, reason="ok", user=user)


def validate_password_strength(password: str) -> str | None:
    """Return an error message, or None if the password is acceptable."""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password must be at most {PASSWORD_MAX_BYTES} bytes long"
    if not any("A" <= c <= "Z" for c in password):
        return "Password must contain at least one uppercase letter"
    if not any("a" <= c <= "z" for c in password):
        return "Password must contain at least one lowercase letter"
    if not any("0" <= c <= "9" for c in password):
        return "Password must contain at least one number"
    if not any(c in PASSWORD_SPECIALS for c in password):
        return f"Password must contain at least one special character ({PASSWORD_SPECIALS})"
    return None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@dataclass
class Session:
    user_id: int
    csrf_token: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    issued_at: datetime = field(default_factory=utcnow)


class SessionManager:
    """Maps opaque session tokens to user IDs.

    Sessions expire server-side once ``duration`` has elapsed since issue,
    in addition to the cookie max-age sent to the browser.
    """

    def __init__(self, duration: timedelta):
        self._duration = duration
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @property
    def duration(self) -> timedelta:
        return self._duration

    def create_session(self, user_id: int) -> str:
        token = generate_session_token()
        with self._lock:
            self._sessions[token] = Session(user_id=user_id)
        logger.info("Session created for user %d", user_id)
        return token

    def get_session(self, token: str | None, now: datetime | None = None) -> Session | None:
        if not token:
            return None
        now = now or utcnow()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if now - session.issued_at >= self._duration:
                del self._sessions[token]
                logger.info("Session for user %d expired", session.user_id)
                return None
            return session

    def resolve_session(self, token: str | None, now: datetime | None = None) -> int | None:
        """User ID behind ``token``, or None if unknown or expired."""
        session = self.get_session(token, now=now)
        return session.user_id if session else None

    def destroy_session(self, token: str | None) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)

    def destroy_user_sessions(self, user_id: int) -> int:
        with self._lock:
            tokens = [t for t, s in self._sessions.items() if s.user_id == user_id]
            for token in tokens:
                del self._sessions[token]
        if tokens:
            logger.info("Dropped %d session(s) for user %d", len(tokens), user_id)
        return len(tokens)

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self._lock:
            expired = [
                t for t, s in self._sessions.items() if now - s.issued_at >= self._duration
            ]
            for token in expired:
                del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# ---------------------------------------------------------------------------
# Login rate limiting
# ---------------------------------------------------------------------------


class LoginRateLimiter:
    """Per-client-IP login attempt history, pruned lazily on each check."""

    def __init__(self):
        self._attempts: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def record_login_attempt(self, client_ip: str, at: datetime | None = None) -> None:
        with self._lock:
            self._attempts.setdefault(client_ip, []).append(at or utcnow())

    def is_rate_limited(
        self,
        client_ip: str,
        window_minutes: int,
        max_attempts: int,
        now: datetime | None = None,
    ) -> bool:
        cutoff = (now or utcnow()) - timedelta(minutes=window_minutes)
        with self._lock:
            attempts = self._attempts.get(client_ip)
            if not attempts:
                return False
            recent = [t for t in attempts if t > cutoff]
            if recent:
                self._attempts[client_ip] = recent
            else:
                del self._attempts[client_ip]
            return len(recent) >= max_attempts

    def clear_login_attempts(self, client_ip: str) -> None:
        with self._lock:
            self._attempts.pop(client_ip, None)

    def attempt_count(self, client_ip: str) -> int:
        with self._lock:
            return len(self._attempts.get(client_ip, []))
