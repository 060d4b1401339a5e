"""Authentication surface of the hosted backend.

WHAT:
    Sign-up, sign-in, sign-out, password reset/update and session retrieval,
    backed by the `users`/`auth_credentials` tables and signed JWTs.

WHY:
    The data-access layer resolves "who is calling" through `get_user()`
    before every query. Keeping that resolution here means a missing or
    invalid token simply yields None, and callers decide how to fail.

REFERENCES:
    - kpidash/security.py (hashing and JWT helpers)
    - kpidash/queries.py (calls get_user() first on every operation)
    - kpidash/routers/auth.py (HTTP endpoints)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import AuthApiError
from ..models import AuthCredential, Profile, User
from ..security import (
    JWT_EXPIRES_MINUTES,
    RECOVERY_EXPIRES_MINUTES,
    create_access_token,
    decode_token,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)


SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
USER_UPDATED = "USER_UPDATED"
PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass
class AuthSession:
    access_token: str
    user: User
    expires_in: int = JWT_EXPIRES_MINUTES * 60
    scope: str = "session"


def _log_recovery_link(email: str, link: str) -> None:
    logger.info("[AUTH] Password recovery link issued for %s", email)
    logger.debug("[AUTH] Recovery link: %s", link)


class AuthClient:
    """
    Per-client auth state: holds at most one access token.

    `notifier` receives (email, recovery_link) on password reset. The default
    only logs; deployments plug in their mailer.
    """

    def __init__(
        self,
        session: Session,
        access_token: Optional[str] = None,
        notifier: Optional[Callable[[str, str], None]] = None,
    ):
        self.db = session
        self.access_token = access_token
        self.notifier = notifier or _log_recovery_link
        self._listeners: List[Callable[[str, Optional[AuthSession]], None]] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_auth_state_change(self, callback: Callable[[str, Optional[AuthSession]], None]) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    # ------------------------------------------------------------------
    # Session resolution
    # ------------------------------------------------------------------

    def _claims(self) -> Optional[Dict[str, Any]]:
        if not self.access_token:
            return None
        token = self.access_token
        if token.startswith("Bearer "):
            token = token[len("Bearer "):]
        try:
            return decode_token(token)
        except JWTError:
            logger.debug("[AUTH] Rejected invalid access token")
            return None

    def get_user(self) -> Optional[User]:
        """Resolve the user behind the held token, or None."""
        claims = self._claims()
        if not claims or not claims.get("sub"):
            return None
        return self.db.query(User).filter(User.id == claims["sub"]).first()

    def get_session(self) -> Optional[AuthSession]:
        claims = self._claims()
        if not claims:
            return None
        user = self.get_user()
        if user is None:
            return None
        return AuthSession(access_token=self.access_token, user=user, scope=claims.get("scope", "session"))

    def _require_user(self) -> User:
        user = self.get_user()
        if user is None:
            raise AuthApiError("Auth session missing!", status=401, code="session_not_found")
        return user

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> AuthSession:
        """Create the identity, its credential and its profile, then sign in."""
        metadata = metadata or {}
        email = email.strip().lower()
        if self.db.query(User).filter(User.email == email).first():
            raise AuthApiError("User already registered", status=400, code="user_already_exists")

        try:
            user = User(email=email)
            self.db.add(user)
            self.db.flush()
            self.db.add(AuthCredential(user_id=user.id, password_hash=get_password_hash(password)))
            self.db.add(Profile(
                user_id=user.id,
                first_name=metadata.get("first_name", ""),
                last_name=metadata.get("last_name", ""),
                email=email,
                avatar_url=metadata.get("avatar_url"),
            ))
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AuthApiError(str(getattr(exc, "orig", exc)), status=400) from exc

        logger.info("[AUTH] User signed up: %s", user.id)
        return self._start_session(user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        email = email.strip().lower()
        user = self.db.query(User).filter(User.email == email).first()
        if not user or not user.credential or not verify_password(password, user.credential.password_hash):
            raise AuthApiError("Invalid login credentials", status=400, code="invalid_credentials")
        return self._start_session(user)

    def _start_session(self, user: User) -> AuthSession:
        self.access_token = create_access_token(user.id)
        session = AuthSession(access_token=self.access_token, user=user)
        self._emit(SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        self.access_token = None
        self._emit(SIGNED_OUT, None)

    def reset_password(self, email: str, redirect_to: str) -> None:
        """
        Issue a recovery token and hand the link to the notifier.

        Unknown emails are accepted silently so the endpoint cannot be used to
        probe which addresses are registered.
        """
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None:
            logger.info("[AUTH] Password reset requested for unknown email")
            return
        token = create_access_token(user.id, expires_minutes=RECOVERY_EXPIRES_MINUTES, scope="recovery")
        separator = "&" if "?" in redirect_to else "?"
        self.notifier(user.email, f"{redirect_to}{separator}token={token}")
        self._emit(PASSWORD_RECOVERY, None)

    def update_password(self, password: str) -> User:
        return self.update_user(password=password)

    def update_user(self, email: Optional[str] = None, password: Optional[str] = None) -> User:
        """Change the current user's email and/or password. Requires a session (or recovery token)."""
        user = self._require_user()
        try:
            if email:
                user.email = email.strip().lower()
            if password:
                if user.credential is None:
                    user.credential = AuthCredential(user_id=user.id, password_hash=get_password_hash(password))
                else:
                    user.credential.password_hash = get_password_hash(password)
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AuthApiError(str(getattr(exc, "orig", exc)), status=400) from exc

        logger.info("[AUTH] User updated: %s", user.id)
        self._emit(USER_UPDATED, self.get_session())
        return user
