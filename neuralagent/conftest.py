"""Shared fixtures: an in-memory backend standing in for Supabase."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pytest

from neuralagent.auth.session import SessionStore
from neuralagent.errors import ProviderError
from neuralagent.providers.base import AuthEvent, AuthResponse, BaseBackend
from neuralagent.providers.config import ClientConfig
from neuralagent.subscription.manager import SubscriptionService

EMAIL = "ada@example.com"
PASSWORD = "correct horse"


class FakeBackend(BaseBackend):
    """Tables and RPCs held in memory; any operation can be made to fail."""

    def __init__(self):
        self.user: Dict[str, Any] = {
            "id": "user-1",
            "email": EMAIL,
            "user_metadata": {"full_name": "Ada Lovelace", "avatar_url": ""},
        }
        self.session: Optional[Dict[str, Any]] = None
        self.require_confirmation = False
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "users": [],
            "tasks": [],
            "subscription_history": [],
        }
        self.rpc: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "upgrade_subscription": self._upgrade_subscription,
        }
        self.failures: Dict[str, ProviderError] = {}
        self.calls: List[tuple] = []
        self._listeners: List[Callable] = []

    # Test helpers

    def fail(
        self,
        operation: str,
        message: str = "Service unavailable",
        status_code: Optional[int] = None,
    ) -> None:
        self.failures[operation] = ProviderError(message, status_code=status_code)

    def set_subscription(
        self,
        tier: str = "free",
        tasks_used_today: int = 0,
        tasks_reset_date: str = "2024-06-16T00:00:00+00:00",
        expires_at: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        self.tables["users"] = [{
            "id": user_id or self.user["id"],
            "email": self.user["email"],
            "subscription_tier": tier,
            "subscription_expires_at": expires_at,
            "tasks_used_today": tasks_used_today,
            "tasks_reset_date": tasks_reset_date,
        }]

    def emit(self, event: AuthEvent, session: Optional[Dict[str, Any]]) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    def _check(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def _new_session(self) -> Dict[str, Any]:
        self.session = {
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expires_at": int(time.time()) + 3600,
            "user": dict(self.user),
        }
        return self.session

    def _upgrade_subscription(self, args: Mapping[str, Any]) -> None:
        for row in self.tables["users"]:
            if row["id"] == args["user_uuid"]:
                self.tables["subscription_history"].append({
                    "user_id": row["id"],
                    "old_tier": row["subscription_tier"],
                    "new_tier": args["new_tier"],
                    "changed_at": "2024-06-15T12:00:00+00:00",
                    "expires_at": args["expires_at"],
                })
                row["subscription_tier"] = args["new_tier"]
                row["subscription_expires_at"] = args["expires_at"]

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in filters.items())

    @staticmethod
    def _select(row: Mapping[str, Any], columns: Sequence[str]) -> Dict[str, Any]:
        if "*" in columns:
            return dict(row)
        return {column: row.get(column) for column in columns}

    # Identity operations

    def get_session(self):
        self._check("get_session")
        return self.session

    def sign_up(self, email, password, data):
        self._check("sign_up", email, dict(data))
        self.user = {**self.user, "email": email, "user_metadata": dict(data)}
        if self.require_confirmation:
            return AuthResponse(user=dict(self.user))
        session = self._new_session()
        self.emit(AuthEvent.SIGNED_IN, session)
        return AuthResponse(user=session["user"], session=session)

    def sign_in_with_password(self, email, password):
        self._check("sign_in_with_password", email)
        if email != self.user["email"] or password != PASSWORD:
            raise ProviderError("Invalid login credentials", status_code=400)
        session = self._new_session()
        self.emit(AuthEvent.SIGNED_IN, session)
        return AuthResponse(user=session["user"], session=session)

    def sign_in_with_oauth(self, provider_id, redirect_to):
        self._check("sign_in_with_oauth", provider_id, redirect_to)
        return AuthResponse(
            url=f"https://project.supabase.co/auth/v1/authorize?provider={provider_id}"
        )

    def sign_out(self):
        self._check("sign_out")
        self.session = None
        self.emit(AuthEvent.SIGNED_OUT, None)

    def refresh_session(self, refresh_token):
        try:
            self._check("refresh_session", refresh_token)
        except ProviderError as e:
            if e.rejected:
                self.session = None
                self.emit(AuthEvent.SESSION_EXPIRED, None)
            raise
        session = self._new_session()
        session["access_token"] = "refreshed-token"
        self.emit(AuthEvent.TOKEN_REFRESHED, session)
        return AuthResponse(user=session["user"], session=session)

    def reset_password_for_email(self, email, redirect_to):
        self._check("reset_password_for_email", email, redirect_to)

    def update_user(self, fields):
        self._check("update_user", dict(fields))
        if self.session is None:
            raise ProviderError("Auth session missing!")
        if "data" in fields:
            metadata = {**self.user["user_metadata"], **fields["data"]}
            self.user = {**self.user, "user_metadata": metadata}
        self.session = {**self.session, "user": dict(self.user)}
        self.emit(AuthEvent.USER_UPDATED, self.session)
        return dict(self.user)

    def on_auth_state_change(self, listener):
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Record operations

    def fetch_one(self, table, filters, columns=("*",)):
        self._check("fetch_one", table, dict(filters))
        rows = [r for r in self.tables[table] if self._matches(r, filters)]
        if len(rows) != 1:
            raise ProviderError(
                "JSON object requested, multiple (or no) rows returned", status_code=406
            )
        return self._select(rows[0], columns)

    def insert(self, table, values):
        self._check("insert", table)
        self.tables[table].append(dict(values))
        return [dict(values)]

    def update(self, table, values, filters):
        self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    def query(self, table, filters, columns=("*",), order=None, descending=False):
        self._check("query", table, dict(filters))
        rows = [self._select(r, columns) for r in self.tables[table] if self._matches(r, filters)]
        if order:
            rows.sort(key=lambda r: r.get(order) or "", reverse=descending)
        return rows

    def invoke(self, procedure, args):
        self._check(f"rpc:{procedure}", dict(args))
        handler = self.rpc.get(procedure)
        if handler is None:
            raise ProviderError(f"Could not find the function public.{procedure}", status_code=404)
        return handler(args)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return ClientConfig(
        supabase_url="https://project.supabase.co",
        supabase_anon_key="anon-key",
        site_url="https://app.example.com",
    )


@pytest.fixture
def store(backend, config):
    session_store = SessionStore(backend, config)
    session_store.initialize()
    return session_store


@pytest.fixture
def signed_in_store(store):
    store.sign_in(EMAIL, PASSWORD).unwrap()
    return store


@pytest.fixture
def service(signed_in_store, backend):
    return SubscriptionService(signed_in_store, backend)
