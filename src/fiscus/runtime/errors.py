from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ConstructionError(ApplyError):
    """Invalid component wiring (null address, zero epoch length)."""

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("construction", reason, details)


class AuthorizationError(ApplyError):
    """Caller does not hold the role or capability an operation requires."""

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("forbidden", reason, details)


class LockedError(ApplyError):
    """The caller holds a self-lock, so it may only stake or claim for itself."""

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("locked", reason, details)


class LimitExceededError(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("limit_exceeded", reason, details)


class StateError(ApplyError):
    """Operation not valid in the current component state."""

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invalid_state", reason, details)


__all__ = [
    "ApplyError",
    "AuthorizationError",
    "ConstructionError",
    "LimitExceededError",
    "LockedError",
    "StateError",
]
