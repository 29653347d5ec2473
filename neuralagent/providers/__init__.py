"""Identity and data backend for session and subscription state."""

from neuralagent.providers.base import AuthEvent, AuthResponse, BaseBackend
from neuralagent.providers.config import ClientConfig, get_config
from neuralagent.providers.supabase_client import SupabaseBackend, get_backend

__all__ = [
    "AuthEvent",
    "AuthResponse",
    "BaseBackend",
    "ClientConfig",
    "get_config",
    "SupabaseBackend",
    "get_backend",
]
