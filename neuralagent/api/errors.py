"""Mapping from entitlement errors to HTTP responses."""

from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException

from neuralagent.errors import EntitlementError, ProviderError, Result

T = TypeVar("T")

STATUS_BY_CODE = {
    "not_authenticated": 401,
    "invalid_tier": 400,
    "unknown_tier": 404,
    "identity_mismatch": 409,
    "provider_error": 502,
}


def status_for(error: EntitlementError) -> int:
    # Backend rejections of the request itself (bad credentials, rate limits) pass through.
    if isinstance(error, ProviderError) and error.status_code and 400 <= error.status_code < 500:
        return error.status_code
    return STATUS_BY_CODE.get(error.code, 500)


def to_http_exception(error: EntitlementError) -> HTTPException:
    return HTTPException(
        status_code=status_for(error),
        detail={"code": error.code, "message": error.message},
    )


def unwrap_or_raise(result: Result[T]) -> T:
    """Return the result's value or raise the matching HTTPException."""
    if result.error is not None:
        raise to_http_exception(result.error)
    return result.value  # type: ignore[return-value]
