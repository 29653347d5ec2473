"""Authentication API routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from neuralagent.api.errors import unwrap_or_raise
from neuralagent.auth.session import (
    AuthOutcome,
    Identity,
    Session,
    SessionStore,
    get_session_store,
)

router = APIRouter(prefix="/auth", tags=["auth"])


class IdentityResponse(BaseModel):
    user_id: str
    email: Optional[str]
    metadata: Dict[str, Any]


class SessionResponse(BaseModel):
    state: str
    authenticated: bool
    identity: Optional[IdentityResponse] = None
    expires_at: Optional[datetime] = None


class AuthOutcomeResponse(BaseModel):
    identity: Optional[IdentityResponse] = None
    authenticated: bool
    redirect_url: Optional[str] = None


class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""
    avatar_url: str = ""


class SignInRequest(BaseModel):
    email: str
    password: str


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    new_password: str


class PasswordResetRequest(BaseModel):
    email: str


def _identity(identity: Optional[Identity]) -> Optional[IdentityResponse]:
    if identity is None:
        return None
    return IdentityResponse(
        user_id=identity.user_id,
        email=identity.email,
        metadata=dict(identity.metadata),
    )


def _session_response(store: SessionStore) -> SessionResponse:
    session: Optional[Session] = store.current_session
    return SessionResponse(
        state=store.state.value,
        authenticated=store.is_authenticated(),
        identity=_identity(store.current_identity),
        expires_at=session.expires_at if session else None,
    )


def _outcome(outcome: AuthOutcome) -> AuthOutcomeResponse:
    return AuthOutcomeResponse(
        identity=_identity(outcome.identity),
        authenticated=outcome.session is not None,
        redirect_url=outcome.redirect_url,
    )


@router.get("/session", response_model=SessionResponse)
def get_session(store: SessionStore = Depends(get_session_store)):
    """Current session state."""
    return _session_response(store)


@router.post("/signup", response_model=AuthOutcomeResponse)
def sign_up(body: SignUpRequest, store: SessionStore = Depends(get_session_store)):
    profile = {"full_name": body.full_name, "avatar_url": body.avatar_url}
    return _outcome(unwrap_or_raise(store.sign_up(body.email, body.password, profile)))


@router.post("/signin", response_model=AuthOutcomeResponse)
def sign_in(body: SignInRequest, store: SessionStore = Depends(get_session_store)):
    return _outcome(unwrap_or_raise(store.sign_in(body.email, body.password)))


@router.post("/signin/{provider_id}", response_model=AuthOutcomeResponse)
def sign_in_with_provider(provider_id: str, store: SessionStore = Depends(get_session_store)):
    """Start a third-party sign-in; the UI opens redirect_url."""
    return _outcome(unwrap_or_raise(store.sign_in_with_provider(provider_id)))


@router.post("/signout", response_model=SessionResponse)
def sign_out(store: SessionStore = Depends(get_session_store)):
    unwrap_or_raise(store.sign_out())
    return _session_response(store)


@router.post("/refresh", response_model=SessionResponse)
def refresh(store: SessionStore = Depends(get_session_store)):
    unwrap_or_raise(store.refresh())
    return _session_response(store)


@router.patch("/profile", response_model=IdentityResponse)
def update_profile(body: ProfileUpdateRequest, store: SessionStore = Depends(get_session_store)):
    updates = body.model_dump(exclude_none=True)
    return _identity(unwrap_or_raise(store.update_profile(updates)))


@router.post("/password", response_model=IdentityResponse)
def change_password(body: PasswordChangeRequest, store: SessionStore = Depends(get_session_store)):
    return _identity(unwrap_or_raise(store.change_password(body.new_password)))


@router.post("/reset-password")
def reset_password(body: PasswordResetRequest, store: SessionStore = Depends(get_session_store)):
    unwrap_or_raise(store.reset_password(body.email))
    return {"status": "sent"}
