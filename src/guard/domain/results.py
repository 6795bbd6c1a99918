from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class DeclineReason(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """Outcome of an operation that may be declined without raising.

    Declined results never carry a mutated record; ``record`` holds the
    unchanged record when one was found.
    """

    ok: bool
    record: Optional[T] = None
    reason: Optional[DeclineReason] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def accepted(cls, record: T) -> "MutationResult[T]":
        return cls(ok=True, record=record)

    @classmethod
    def declined(cls, reason: DeclineReason, message: str, record: Optional[T] = None) -> "MutationResult[T]":
        return cls(ok=False, record=record, reason=DeclineReason(reason), message=str(message))

    @classmethod
    def invalid(cls, message: str, record: Optional[T] = None) -> "MutationResult[T]":
        return cls.declined(DeclineReason.VALIDATION, message, record)

    @classmethod
    def not_found(cls, kind: str, record_id: str) -> "MutationResult[T]":
        return cls.declined(DeclineReason.NOT_FOUND, f"{kind} not found: {record_id}")


class CascadeError(RuntimeError):
    """A multi-record operation failed part way and was rolled back."""

    def __init__(self, operation: str, record_id: str) -> None:
        super().__init__(f"{operation} failed for {record_id}; changes were rolled back")
        self.operation = operation
        self.record_id = record_id
