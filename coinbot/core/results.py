"""
Typed outcomes for economy operations.

Expected business failures (bad input, rate limits, insufficient balance,
duplicate redemptions...) are returned as ``Err`` values instead of being
raised. Only storage faults raise, as ``PersistenceError``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    RATE_LIMITED = "rate_limit_exceeded"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    DUPLICATE_CODE = "duplicate_code"
    DUPLICATE_REDEMPTION = "duplicate_redemption"
    UNAUTHORIZED = "unauthorized"
    PERSISTENCE = "persistence_error"


class PersistenceError(Exception):
    """Storage-layer failure. The surrounding transaction has been rolled back."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
