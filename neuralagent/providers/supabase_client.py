"""Supabase backend client.

Talks to GoTrue for identity, PostgREST for records and PostgREST RPC for the
server-side policy checks. Every failure is raised as ProviderError with the
backend's own message.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from neuralagent.errors import ProviderError
from neuralagent.providers.base import (
    AuthEvent,
    AuthResponse,
    AuthStateListener,
    BaseBackend,
    Unsubscribe,
)
from neuralagent.providers.config import (
    DEFAULT_REFRESH_MARGIN_SECONDS,
    DEFAULT_REQUEST_TIMEOUT,
    SessionPersistence,
    get_config,
)

logger = logging.getLogger(__name__)

SINGLE_OBJECT = "application/vnd.pgrst.object+json"


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _filter_params(filters: Mapping[str, Any]) -> Dict[str, str]:
    return {column: _eq(value) for column, value in filters.items()}


def _error_message(response: httpx.Response) -> str:
    """Pull the backend's message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text


class SupabaseBackend(BaseBackend):
    """BaseBackend over the Supabase HTTP APIs."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        persistence: Optional[SessionPersistence] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._persistence = persistence
        self._refresh_margin = refresh_margin_seconds
        self._client = httpx.Client(
            base_url=self._url,
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key},
        )
        self._session: Optional[Dict[str, Any]] = None
        self._listeners: List[AuthStateListener] = []

    def close(self) -> None:
        self._client.close()

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        token = self._session.get("access_token") if self._session else None
        headers = {"Authorization": f"Bearer {token or self._anon_key}"}
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(
                method, path, json=json, params=params, headers=self._headers(headers)
            )
        except httpx.HTTPError as e:
            raise ProviderError(str(e)) from e
        if response.status_code >= 400:
            raise ProviderError(_error_message(response), status_code=response.status_code)
        return response

    # Session bookkeeping

    def _emit(self, event: AuthEvent, session: Optional[Dict[str, Any]]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed for %s", event)

    def _store_session(self, session: Dict[str, Any]) -> Dict[str, Any]:
        if session.get("expires_at") is None and session.get("expires_in") is not None:
            session = {**session, "expires_at": int(time.time()) + int(session["expires_in"])}
        self._session = session
        if self._persistence is not None:
            self._persistence.save(session)
        return session

    def _drop_session(self) -> None:
        self._session = None
        if self._persistence is not None:
            self._persistence.clear()

    def _needs_refresh(self, session: Mapping[str, Any]) -> bool:
        expires_at = session.get("expires_at")
        if expires_at is None:
            return False
        return float(expires_at) - self._refresh_margin <= time.time()

    def _auth_response(self, body: Dict[str, Any]) -> AuthResponse:
        if body.get("access_token"):
            session = self._store_session(body)
            self._emit(AuthEvent.SIGNED_IN, session)
            return AuthResponse(user=session.get("user"), session=session)
        return AuthResponse(user=body.get("user", body))

    # Identity operations

    def get_session(self) -> Optional[Dict[str, Any]]:
        session = self._session
        if session is None and self._persistence is not None:
            session = self._persistence.load()
            self._session = session
        if session is None:
            return None
        if self._needs_refresh(session):
            return self.refresh_session(session.get("refresh_token", "")).session
        return session

    def sign_up(self, email: str, password: str, data: Mapping[str, Any]) -> AuthResponse:
        body = self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": dict(data)},
        ).json()
        return self._auth_response(body)

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        body = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        ).json()
        return self._auth_response(body)

    def sign_in_with_oauth(self, provider_id: str, redirect_to: str) -> AuthResponse:
        url = httpx.URL(
            f"{self._url}/auth/v1/authorize",
            params={"provider": provider_id, "redirect_to": redirect_to},
        )
        return AuthResponse(url=str(url))

    def sign_out(self) -> None:
        if self._session is not None:
            self._request("POST", "/auth/v1/logout")
        self._drop_session()
        self._emit(AuthEvent.SIGNED_OUT, None)

    def refresh_session(self, refresh_token: str) -> AuthResponse:
        try:
            body = self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
            ).json()
        except ProviderError as e:
            # Transport errors and 5xx keep the session so a later refresh can succeed.
            if e.rejected:
                self._drop_session()
                self._emit(AuthEvent.SESSION_EXPIRED, None)
            raise
        session = self._store_session(body)
        self._emit(AuthEvent.TOKEN_REFRESHED, session)
        return AuthResponse(user=session.get("user"), session=session)

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        self._request(
            "POST",
            "/auth/v1/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    def update_user(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        if self._session is None:
            raise ProviderError("Auth session missing!")
        user = self._request("PUT", "/auth/v1/user", json=dict(fields)).json()
        session = self._store_session({**self._session, "user": user})
        self._emit(AuthEvent.USER_UPDATED, session)
        return user

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Record operations

    def fetch_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] = ("*",),
    ) -> Dict[str, Any]:
        params = {"select": ",".join(columns), **_filter_params(filters)}
        response = self._request(
            "GET", f"/rest/v1/{table}", params=params, headers={"Accept": SINGLE_OBJECT}
        )
        return response.json()

    def insert(self, table: str, values: Mapping[str, Any]) -> List[Dict[str, Any]]:
        response = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        response = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            json=dict(values),
            params=_filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    def query(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] = ("*",),
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        params = {"select": ",".join(columns), **_filter_params(filters)}
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        return self._request("GET", f"/rest/v1/{table}", params=params).json()

    # Remote procedures

    def invoke(self, procedure: str, args: Mapping[str, Any]) -> Any:
        response = self._request("POST", f"/rest/v1/rpc/{procedure}", json=dict(args))
        if not response.content:
            return None
        return response.json()


_backend: Optional[SupabaseBackend] = None


def get_backend() -> SupabaseBackend:
    """Get or create the global backend client."""
    global _backend
    if _backend is None:
        config = get_config()
        _backend = SupabaseBackend(
            url=config.supabase_url,
            anon_key=config.supabase_anon_key or "",
            persistence=SessionPersistence(),
            timeout=config.request_timeout,
            refresh_margin_seconds=config.refresh_margin_seconds,
        )
    return _backend


def reset_backend() -> None:
    """Close and forget the global backend client."""
    global _backend
    if _backend is not None:
        _backend.close()
    _backend = None
