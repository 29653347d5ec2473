"""Configuration management for the identity backend and local settings."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

ENV_PREFIX = "NEURALAGENT"
KEYRING_SERVICE = "neuralagent"
SESSION_KEY = "auth_session"

DEFAULT_SITE_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_REFRESH_MARGIN_SECONDS = 60
DEFAULT_DB_PATH = "./data/neuralagent.db"


def _env(suffix: str) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}_{suffix}")


@dataclass
class ClientConfig:
    """Configuration for the identity/data backend client."""

    supabase_url: str = ""
    site_url: str = DEFAULT_SITE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS

    supabase_anon_key: Optional[str] = field(default=None, repr=False)

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def auth_callback_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/auth/callback"

    @property
    def password_reset_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/auth/reset-password"


class ConfigStore:
    """SQLite-based configuration storage."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_tables()

    def _init_tables(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a setting value by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row["value"] if row else default

    def set(self, key: str, value: str) -> None:
        """Set a setting value."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO settings (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = CURRENT_TIMESTAMP
        """, (key, value))
        self.conn.commit()

    def delete(self, key: str) -> None:
        """Delete a setting."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM settings WHERE key = ?", (key,))
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()


_config_store: Optional[ConfigStore] = None


def _get_config_store() -> ConfigStore:
    """Get or create the global config store."""
    global _config_store
    if _config_store is None:
        _config_store = ConfigStore(_env("DB_PATH") or DEFAULT_DB_PATH)
    return _config_store


def get_config(store: Optional[ConfigStore] = None) -> ClientConfig:
    """Load configuration from environment, then the local settings store."""
    store = store or _get_config_store()

    return ClientConfig(
        supabase_url=_env("SUPABASE_URL") or store.get("supabase_url", ""),
        site_url=_env("SITE_URL") or store.get("site_url", DEFAULT_SITE_URL),
        request_timeout=float(
            _env("REQUEST_TIMEOUT") or store.get("request_timeout", str(DEFAULT_REQUEST_TIMEOUT))
        ),
        refresh_margin_seconds=int(
            _env("REFRESH_MARGIN_SECONDS")
            or store.get("refresh_margin_seconds", str(DEFAULT_REFRESH_MARGIN_SECONDS))
        ),
        supabase_anon_key=_env("SUPABASE_ANON_KEY") or store.get("supabase_anon_key"),
    )


def save_config(config: ClientConfig, store: Optional[ConfigStore] = None) -> None:
    """Save non-secret configuration to the settings store."""
    store = store or _get_config_store()
    store.set("supabase_url", config.supabase_url)
    store.set("site_url", config.site_url)
    store.set("request_timeout", str(config.request_timeout))
    store.set("refresh_margin_seconds", str(config.refresh_margin_seconds))


class SessionPersistence:
    """Keeps the signed-in session between runs.

    Uses the OS keyring, falling back to the settings store when no keyring
    backend is available.
    """

    def __init__(self, store: Optional[ConfigStore] = None, use_keyring: bool = True):
        self._store = store
        self._use_keyring = use_keyring

    @property
    def store(self) -> ConfigStore:
        return self._store or _get_config_store()

    def load(self) -> Optional[Dict[str, Any]]:
        raw = None
        if self._use_keyring:
            try:
                raw = keyring.get_password(KEYRING_SERVICE, SESSION_KEY)
            except KeyringError as e:
                logger.warning("Keyring unavailable, using settings store: %s", e)
        if raw is None:
            raw = self.store.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable persisted session")
            self.clear()
            return None

    def save(self, session: Dict[str, Any]) -> None:
        raw = json.dumps(session)
        if self._use_keyring:
            try:
                keyring.set_password(KEYRING_SERVICE, SESSION_KEY, raw)
                return
            except KeyringError as e:
                logger.warning("Keyring unavailable, using settings store: %s", e)
        self.store.set(SESSION_KEY, raw)

    def clear(self) -> None:
        if self._use_keyring:
            try:
                keyring.delete_password(KEYRING_SERVICE, SESSION_KEY)
            except PasswordDeleteError:
                pass
            except KeyringError as e:
                logger.warning("Keyring unavailable, using settings store: %s", e)
        self.store.delete(SESSION_KEY)
