"""Outcome types shared by the validation layer, the store and the API.

``NotFound`` and ``Invalid`` are ordinary return values; only
``StorageError`` is raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


class StorageError(Exception):
    """The backing store failed or aborted the transaction."""


@dataclass(frozen=True)
class FieldError:
    loc: str
    message: str


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    errors: list[FieldError] = field(default_factory=list)

    def as_dict(self) -> list[dict[str, str]]:
        return [{"loc": e.loc, "message": e.message} for e in self.errors]


@dataclass(frozen=True)
class NotFound:
    board_id: str


@dataclass(frozen=True)
class Replaced:
    board_id: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
