"""
Student Progress Engine - Operation Results
Tagged Ok/Err values returned by the progress service and stores
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"       # Malformed event, rejected before any store call
    NOT_FOUND = "not_found"         # Strict operations on a record that was never persisted
    CONFLICT = "conflict"           # Stored version moved since load
    TRANSIENT = "transient"         # Store I/O failure, timeout, or conflicts exhausted


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


class ProgressCorruptionError(RuntimeError):
    """A stored progress record breaks an invariant. Never retried or swallowed."""

    def __init__(self, user_id: str, problems: Any):
        self.user_id = user_id
        self.problems = list(problems)
        super().__init__(f"Corrupt progress record for user={user_id}: {'; '.join(self.problems)}")
