"""Tagged result type returned by every call that crosses the store boundary.

Callers branch on ``isinstance(result, Ok)`` instead of inspecting status codes
or response bodies.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, List, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    CONFLICT = "conflict"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"


RETRYABLE_KINDS = {ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    fields: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self):
        return f"{self.kind.value}: {self.message}"


Result = Union[Ok[T], Err]
