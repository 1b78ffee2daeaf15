from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field

from .utils import ID_MAX_LENGTH

DEFAULT_BOARD_TITLE = "My Kanban Board"
DEFAULT_COLUMNS = ("Todo", "In Progress", "Done")

EntityId = Annotated[str, Field(min_length=1, max_length=ID_MAX_LENGTH)]
# fits a 32-bit INTEGER column on every backend
ORDER_MAX = 2**31 - 1
Order = Annotated[int, Field(ge=0, le=ORDER_MAX, strict=True)]


# === Requests ===


class BoardCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=100)


class CardIn(BaseModel):
    id: EntityId
    content: str = Field(min_length=1, max_length=500)
    order: Order


class ColumnIn(BaseModel):
    id: EntityId
    title: str = Field(min_length=1, max_length=50)
    order: Order
    cards: list[CardIn]


class BoardReplace(BaseModel):
    """Complete desired state of a board, as built by the client."""

    title: str = Field(min_length=1, max_length=100)
    columns: list[ColumnIn]


# === Responses / persisted tree ===


class BoardSummary(BaseModel):
    id: str
    title: str
    createdAt: datetime


class CardOut(BaseModel):
    id: str
    content: str
    order: int


class ColumnOut(BaseModel):
    id: str
    title: str
    order: int
    cards: list[CardOut]


class BoardTree(BaseModel):
    id: str
    title: str
    createdAt: datetime
    columns: list[ColumnOut]
