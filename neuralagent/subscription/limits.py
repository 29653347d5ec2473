"""Tagged numeric limits: either a bounded count or unlimited."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

# Wire encoding used by the backend tables and RPCs.
UNLIMITED_SENTINEL = -1


class Unlimited(Enum):
    UNLIMITED = "unlimited"

    def __repr__(self) -> str:
        return "UNLIMITED"


UNLIMITED = Unlimited.UNLIMITED


@dataclass(frozen=True)
class Limited:
    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"Limit must be non-negative, got {self.value}")


Limit = Union[Limited, Unlimited]


def is_unlimited(limit: Limit) -> bool:
    return limit is UNLIMITED


def limit_from_wire(raw: Optional[int]) -> Limit:
    """Decode a backend integer, where -1 (or null) means unlimited."""
    if raw is None or raw == UNLIMITED_SENTINEL:
        return UNLIMITED
    return Limited(int(raw))


def limit_to_wire(limit: Limit) -> int:
    if limit is UNLIMITED:
        return UNLIMITED_SENTINEL
    return limit.value


def describe_limit(limit: Limit, unit: str = "") -> str:
    """Human readable form, e.g. "5 tasks" or "Unlimited"."""
    if limit is UNLIMITED:
        return "Unlimited"
    return f"{limit.value} {unit}".strip()
