from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from neuralagent import __version__
from neuralagent.auth.session import SessionStore, get_session_store
from neuralagent.providers.config import get_config

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    backend_configured: bool
    session_state: str
    authenticated: bool


@router.get("/health", response_model=HealthResponse)
def health_check(store: SessionStore = Depends(get_session_store)):
    """Check that the backend is configured and report the session state."""
    config = get_config()
    return HealthResponse(
        status="ok",
        version=__version__,
        backend_configured=config.is_configured,
        session_state=store.state.value,
        authenticated=store.is_authenticated(),
    )
