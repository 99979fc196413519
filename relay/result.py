"""
Result type

Explicit success/failure values returned by every fallible operation in the
relay pipeline. Callers match on ``Ok``/``Err`` instead of catching
exceptions across component boundaries.

Usage:
    from relay.result import Ok, Err, Result

    def lookup(key: str) -> Result[str, str]:
        if key in table:
            return Ok(table[key])
        return Err("missing")

    match lookup("a"):
        case Ok(value):
            ...
        case Err(error):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class UnwrapError(Exception):
    """Raised when unwrap() is called on an Err."""

    def __init__(self, error: object):
        super().__init__(f"unwrap called on Err: {error!r}")
        self.error = error


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


def is_ok(result: Result[T, E]) -> bool:
    return isinstance(result, Ok)


def is_err(result: Result[T, E]) -> bool:
    return isinstance(result, Err)


def unwrap(result: Result[T, E]) -> T:
    """Return the success value, raising UnwrapError on failure."""
    if isinstance(result, Ok):
        return result.value
    raise UnwrapError(result.error)
