"""Identity and session lifecycle."""

from neuralagent.auth.session import (
    AuthOutcome,
    Identity,
    Session,
    SessionState,
    SessionStore,
    get_session_store,
)

__all__ = [
    "AuthOutcome",
    "Identity",
    "Session",
    "SessionState",
    "SessionStore",
    "get_session_store",
]
