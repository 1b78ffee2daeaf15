"""Whole-board reconciliation.

``plan_replace`` compares the persisted tree with the tree a client wants and
returns the row writes that turn one into the other. Rows are matched by id
only: a known id is updated in place, an unknown id is inserted, and a
persisted id missing from the desired tree is deleted. Cards are matched
across the whole board, so a card listed under a different column is a move
(an update of ``column_id``), not a delete plus insert.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import BoardReplace, BoardTree, CardOut


@dataclass(frozen=True)
class ColumnWrite:
    id: str
    title: str
    order: int


@dataclass(frozen=True)
class CardWrite:
    id: str
    content: str
    order: int
    column_id: str


@dataclass
class ReplacePlan:
    title: str
    column_inserts: list[ColumnWrite] = field(default_factory=list)
    column_updates: list[ColumnWrite] = field(default_factory=list)
    column_deletes: list[str] = field(default_factory=list)
    card_inserts: list[CardWrite] = field(default_factory=list)
    card_updates: list[CardWrite] = field(default_factory=list)
    card_deletes: list[str] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return len(self.column_inserts) + len(self.card_inserts)

    @property
    def updated(self) -> int:
        return len(self.column_updates) + len(self.card_updates)

    @property
    def deleted(self) -> int:
        return len(self.column_deletes) + len(self.card_deletes)

    @property
    def is_empty(self) -> bool:
        """True when no column or card row changes (the title is always written)."""
        return not (self.inserted or self.updated or self.deleted)


def plan_replace(previous: BoardTree, desired: BoardReplace) -> ReplacePlan:
    plan = ReplacePlan(title=desired.title)

    old_columns = {column.id: column for column in previous.columns}
    old_cards: dict[str, tuple[CardOut, str]] = {
        card.id: (card, column.id) for column in previous.columns for card in column.cards
    }

    for column in desired.columns:
        write = ColumnWrite(id=column.id, title=column.title, order=column.order)
        old = old_columns.pop(column.id, None)
        if old is None:
            plan.column_inserts.append(write)
        elif (old.title, old.order) != (column.title, column.order):
            plan.column_updates.append(write)

        for card in column.cards:
            card_write = CardWrite(
                id=card.id, content=card.content, order=card.order, column_id=column.id
            )
            found = old_cards.pop(card.id, None)
            if found is None:
                plan.card_inserts.append(card_write)
                continue
            old_card, old_column_id = found
            if (old_card.content, old_card.order, old_column_id) != (
                card.content,
                card.order,
                column.id,
            ):
                plan.card_updates.append(card_write)

    # cards of dropped columns are listed here too; the FK cascade is not relied on
    plan.column_deletes = list(old_columns)
    plan.card_deletes = list(old_cards)
    return plan
