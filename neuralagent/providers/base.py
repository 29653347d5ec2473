"""Base class for the identity and data backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence


class AuthEvent(str, Enum):
    """Session-change notifications emitted by the backend."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    SESSION_EXPIRED = "SESSION_EXPIRED"


# (event, session payload or None)
AuthStateListener = Callable[[str, Optional[Dict[str, Any]]], None]
Unsubscribe = Callable[[], None]


@dataclass
class AuthResponse:
    """Raw result of an identity operation.

    user and session are the provider's JSON payloads. url is set when the
    provider hands back an authorization URL instead of a session.
    """

    user: Optional[Dict[str, Any]] = None
    session: Optional[Dict[str, Any]] = None
    url: Optional[str] = None


class BaseBackend(ABC):
    """Abstract identity, record and remote-procedure backend.

    Implementations raise ProviderError for every failure, carrying the
    backend's message verbatim.
    """

    # Identity operations

    @abstractmethod
    def get_session(self) -> Optional[Dict[str, Any]]:
        """Return the persisted session payload, refreshing it if needed."""
        pass

    @abstractmethod
    def sign_up(self, email: str, password: str, data: Mapping[str, Any]) -> AuthResponse:
        pass

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        pass

    @abstractmethod
    def sign_in_with_oauth(self, provider_id: str, redirect_to: str) -> AuthResponse:
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    @abstractmethod
    def refresh_session(self, refresh_token: str) -> AuthResponse:
        pass

    @abstractmethod
    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        pass

    @abstractmethod
    def update_user(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Update the signed-in user and return the new user payload."""
        pass

    @abstractmethod
    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe:
        pass

    # Record operations

    @abstractmethod
    def fetch_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] = ("*",),
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    def insert(self, table: str, values: Mapping[str, Any]) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def query(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] = ("*",),
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        pass

    # Remote procedures

    @abstractmethod
    def invoke(self, procedure: str, args: Mapping[str, Any]) -> Any:
        pass
