"""Error taxonomy and result type for session and entitlement operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class EntitlementError(Exception):
    """Base class for errors returned by session and entitlement operations."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotAuthenticatedError(EntitlementError):
    """Operation requires a current identity but none exists."""

    code = "not_authenticated"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class InvalidTierError(EntitlementError):
    """Tier identifier outside the enumeration."""

    code = "invalid_tier"

    def __init__(self, tier: object):
        self.tier = tier
        super().__init__(f"Invalid subscription tier: {tier!r}")


class UnknownTierError(EntitlementError):
    """Catalog lookup miss."""

    code = "unknown_tier"

    def __init__(self, tier: object):
        self.tier = tier
        super().__init__(f"Unknown tier: {tier!r}")


class ProviderError(EntitlementError):
    """Failure surfaced from the identity/data backend, message kept verbatim."""

    code = "provider_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    @property
    def rejected(self) -> bool:
        """The backend refused the credentials, as opposed to a transport or server failure."""
        return self.status_code in (400, 401)


class StaleUsageError(EntitlementError):
    """Usage counter is past its reset boundary. Non-fatal."""

    code = "stale"


class IdentityMismatchError(EntitlementError):
    """Subscription record does not belong to the signed-in identity."""

    code = "identity_mismatch"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Explicit success/error outcome of a fallible operation."""

    value: Optional[T] = None
    error: Optional[EntitlementError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: EntitlementError) -> "Result[T]":
        return cls(error=error)
