"""Authenticated identity and session lifecycle.

SessionStore holds at most one current session. Every mutating call goes to the
backend first and only changes local state once the backend has answered, so
a failed call leaves the store exactly as it was. Asynchronous invalidation
(token refresh, forced expiry) arrives through a single listener channel
registered on the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import jwt

from neuralagent.errors import NotAuthenticatedError, ProviderError, Result
from neuralagent.providers.base import AuthEvent, BaseBackend, Unsubscribe
from neuralagent.providers.config import ClientConfig, get_config
from neuralagent.providers.supabase_client import get_backend

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_user(cls, user: Mapping[str, Any]) -> "Identity":
        return cls(
            user_id=str(user["id"]),
            email=user.get("email"),
            metadata=dict(user.get("user_metadata") or {}),
        )

    @property
    def full_name(self) -> str:
        return str(self.metadata.get("full_name") or "")


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _token_claims(access_token: str) -> Dict[str, Any]:
    """Read the access token's claims without verifying the signature.

    The client is not the token's audience; the backend verifies it.
    """
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}


@dataclass(frozen=True)
class Session:
    identity: Identity
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Session":
        access_token = str(payload.get("access_token") or "")
        claims = _token_claims(access_token) if access_token else {}
        return cls(
            identity=Identity.from_user(payload["user"]),
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token") or ""),
            expires_at=_epoch_to_datetime(payload.get("expires_at") or claims.get("exp")),
            issued_at=_epoch_to_datetime(claims.get("iat")),
        )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return not self.expires_within(0, now)

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at - timedelta(seconds=seconds) <= now


@dataclass(frozen=True)
class AuthOutcome:
    """What a sign-up or sign-in produced.

    session is None when the backend still needs email confirmation, or when
    it handed back a redirect_url to finish the sign-in in a browser.
    """

    identity: Optional[Identity] = None
    session: Optional[Session] = None
    redirect_url: Optional[str] = None


SessionListener = Callable[[str, Optional[Session]], None]


class SessionStore:
    """The current identity and session, and the transitions between states."""

    def __init__(self, backend: BaseBackend, config: Optional[ClientConfig] = None):
        self._backend = backend
        self._config = config or ClientConfig()
        self.state = SessionState.UNAUTHENTICATED
        self._session: Optional[Session] = None
        self._listeners: List[SessionListener] = []
        self._unsubscribe_backend = backend.on_auth_state_change(self._handle_auth_event)

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._session.identity if self._session else None

    def is_authenticated(self, now: Optional[datetime] = None) -> bool:
        return (
            self.state is SessionState.AUTHENTICATED
            and self._session is not None
            and self._session.is_valid(now)
        )

    def close(self) -> None:
        self._unsubscribe_backend()

    # Transitions

    def _set_authenticated(self, session: Session) -> None:
        self._session = session
        self.state = SessionState.AUTHENTICATED

    def _clear(self, state: SessionState) -> None:
        self._session = None
        self.state = state

    def _handle_auth_event(self, event: str, payload: Optional[Dict[str, Any]]) -> None:
        session = Session.from_payload(payload) if payload and payload.get("user") else None

        if event == AuthEvent.SIGNED_OUT:
            self._clear(SessionState.UNAUTHENTICATED)
        elif event == AuthEvent.SESSION_EXPIRED:
            self._clear(SessionState.EXPIRED)
        elif session is not None:
            self._set_authenticated(session)
        logger.info("Session change: %s (state=%s)", event, self.state.value)

        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception:
                logger.exception("Session listener failed for %s", event)

    def on_session_change(self, listener: SessionListener) -> Unsubscribe:
        """Register a listener; listeners run in registration order."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def initialize(self) -> Result[Optional[Session]]:
        """Recover a persisted session, if the backend has one."""
        try:
            payload = self._backend.get_session()
        except ProviderError as e:
            # The persisted session survives transient failures; state is left as it was.
            logger.error("Auth initialization error: %s", e)
            return Result.failure(e)

        if not payload:
            self._clear(SessionState.UNAUTHENTICATED)
            return Result.success(None)

        session = Session.from_payload(payload)
        self._set_authenticated(session)
        return Result.success(session)

    def _authenticate(self, operation: str, call: Callable[[], Any]) -> Result[AuthOutcome]:
        previous = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            response = call()
        except ProviderError as e:
            logger.error("%s error: %s", operation, e)
            if self.state is SessionState.AUTHENTICATING:
                self.state = previous
            return Result.failure(e)

        session = Session.from_payload(response.session) if response.session else None
        if session is not None:
            self._set_authenticated(session)
        elif self.state is SessionState.AUTHENTICATING:
            self.state = previous

        identity = session.identity if session else None
        if identity is None and response.user:
            identity = Identity.from_user(response.user)
        return Result.success(
            AuthOutcome(identity=identity, session=session, redirect_url=response.url)
        )

    def sign_up(
        self,
        email: str,
        password: str,
        profile: Optional[Mapping[str, Any]] = None,
    ) -> Result[AuthOutcome]:
        profile = dict(profile or {})
        data = {
            "full_name": profile.pop("full_name", ""),
            "avatar_url": profile.pop("avatar_url", ""),
            **profile,
        }
        return self._authenticate(
            "Sign up", lambda: self._backend.sign_up(email, password, data)
        )

    def sign_in(self, email: str, password: str) -> Result[AuthOutcome]:
        return self._authenticate(
            "Sign in", lambda: self._backend.sign_in_with_password(email, password)
        )

    def sign_in_with_provider(self, provider_id: str) -> Result[AuthOutcome]:
        """Start a third-party sign-in.

        Most providers answer with a redirect_url; the session then arrives
        through on_session_change as SIGNED_IN.
        """
        return self._authenticate(
            f"{provider_id} sign in",
            lambda: self._backend.sign_in_with_oauth(provider_id, self._config.auth_callback_url),
        )

    def sign_out(self) -> Result[None]:
        try:
            self._backend.sign_out()
        except ProviderError as e:
            logger.error("Sign out error: %s", e)
            return Result.failure(e)

        self._clear(SessionState.UNAUTHENTICATED)
        return Result.success(None)

    def refresh(self) -> Result[Session]:
        if self._session is None:
            return Result.failure(NotAuthenticatedError())
        try:
            response = self._backend.refresh_session(self._session.refresh_token)
        except ProviderError as e:
            logger.error("Session refresh error: %s", e)
            if e.rejected:
                self._clear(SessionState.EXPIRED)
            return Result.failure(e)

        session = Session.from_payload(response.session or {})
        self._set_authenticated(session)
        return Result.success(session)

    def active_identity(self, now: Optional[datetime] = None) -> Result[Identity]:
        """Identity for a backend call, refreshing a session close to expiry first.

        Refresh happens here, on demand, instead of on a timer.
        """
        if self.state is not SessionState.AUTHENTICATED or self._session is None:
            return Result.failure(NotAuthenticatedError())
        if self._session.expires_within(self._config.refresh_margin_seconds, now):
            refreshed = self.refresh()
            if not refreshed.ok:
                return Result.failure(refreshed.error)
        return Result.success(self._session.identity)

    def reset_password(self, email: str) -> Result[None]:
        try:
            self._backend.reset_password_for_email(email, self._config.password_reset_url)
        except ProviderError as e:
            logger.error("Reset password error: %s", e)
            return Result.failure(e)
        return Result.success(None)

    def _update_user(self, operation: str, fields: Mapping[str, Any]) -> Result[Identity]:
        if self.state is not SessionState.AUTHENTICATED or self._session is None:
            return Result.failure(NotAuthenticatedError())
        try:
            user = self._backend.update_user(fields)
        except ProviderError as e:
            logger.error("%s error: %s", operation, e)
            return Result.failure(e)

        identity = Identity.from_user(user)
        self._set_authenticated(replace(self._session, identity=identity))
        return Result.success(identity)

    def update_profile(self, updates: Mapping[str, Any]) -> Result[Identity]:
        return self._update_user("Update profile", {"data": dict(updates)})

    def change_password(self, new_password: str) -> Result[Identity]:
        return self._update_user("Update password", {"password": new_password})


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get or create the process-wide session store."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore(get_backend(), get_config())
        _session_store.initialize()
    return _session_store


def reset_session_store() -> None:
    """Forget the process-wide session store."""
    global _session_store
    if _session_store is not None:
        _session_store.close()
    _session_store = None
