"""
Tagged lookup results.

Reference-data lookups never fail on an unknown key. They return either a
Resolved value (a real match, with how it matched) or a Defaulted value (the
conservative fallback, with the reason), so callers can tell the two apart
and warn instead of silently degrading.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Resolved(Generic[T]):
    value: T
    matched_by: str

    @property
    def is_default(self) -> bool:
        return False


@dataclass(frozen=True)
class Defaulted(Generic[T]):
    value: T
    reason: str

    @property
    def is_default(self) -> bool:
        return True

    @property
    def matched_by(self) -> str:
        return "default"


Resolution = Union[Resolved[T], Defaulted[T]]
