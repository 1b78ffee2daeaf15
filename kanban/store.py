from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db import BoardRow, CardRow, ColumnRow, init_db, make_engine, make_session_factory, now_utc
from .errors import FieldError, Invalid, NotFound, Replaced, StorageError
from .models import (
    DEFAULT_BOARD_TITLE,
    DEFAULT_COLUMNS,
    BoardSummary,
    BoardTree,
    CardOut,
    ColumnOut,
)
from .reconcile import ReplacePlan, plan_replace
from .utils import new_id
from .validation import parse_create, parse_replace

logger = logging.getLogger(__name__)

Loaded = tuple[BoardRow, list[ColumnRow], list[CardRow]]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def board_summary(board: BoardRow) -> BoardSummary:
    return BoardSummary(id=board.id, title=board.title, createdAt=_as_utc(board.created_at))


def board_tree(board: BoardRow, columns: list[ColumnRow], cards: list[CardRow]) -> BoardTree:
    by_column: dict[str, list[CardOut]] = {column.id: [] for column in columns}
    for card in cards:
        by_column[card.column_id].append(CardOut(id=card.id, content=card.content, order=card.order))
    return BoardTree(
        id=board.id,
        title=board.title,
        createdAt=_as_utc(board.created_at),
        columns=[
            ColumnOut(id=column.id, title=column.title, order=column.order, cards=by_column[column.id])
            for column in columns
        ],
    )


class TreeStore:
    """Board → column → card persistence with whole-tree replace."""

    def __init__(self, sessions: sessionmaker) -> None:
        self._sessions = sessions

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("%s failed; transaction rolled back", action)
            raise StorageError(f"{action} failed") from exc

    def _load(self, session: Session, board_id: str) -> Optional[Loaded]:
        board = session.get(BoardRow, board_id)
        if board is None:
            return None
        columns = session.scalars(
            select(ColumnRow)
            .where(ColumnRow.board_id == board_id)
            .order_by(ColumnRow.order, ColumnRow.id)
        ).all()
        cards = session.scalars(
            select(CardRow)
            .join(ColumnRow, CardRow.column_id == ColumnRow.id)
            .where(ColumnRow.board_id == board_id)
            .order_by(CardRow.order, CardRow.id)
        ).all()
        return board, list(columns), list(cards)

    # === Board operations ===

    def create_board(self, title: Optional[str] = None) -> Union[BoardSummary, Invalid]:
        """Create a board with the default Todo / In Progress / Done columns."""
        parsed = parse_create({"title": title})
        if isinstance(parsed, Invalid):
            return parsed
        board = BoardRow(
            id=new_id(),
            title=parsed.value.title or DEFAULT_BOARD_TITLE,
            created_at=now_utc(),
        )
        board.columns = [
            ColumnRow(id=new_id(), title=name, order=order)
            for order, name in enumerate(DEFAULT_COLUMNS)
        ]
        with self._transaction("create board") as session:
            session.add(board)
        logger.info("created board %s", board.id)
        return board_summary(board)

    def board_exists(self, board_id: str) -> bool:
        with self._transaction("look up board") as session:
            return session.get(BoardRow, board_id) is not None

    def fetch_full_tree(self, board_id: str) -> Optional[BoardTree]:
        """Return the whole tree sorted by ``order``, or None when the board is unknown."""
        with self._transaction("fetch board") as session:
            loaded = self._load(session, board_id)
            if loaded is None:
                return None
            return board_tree(*loaded)

    def replace_full_tree(self, board_id: str, desired: Any) -> Union[Replaced, NotFound, Invalid]:
        """Make the stored tree equal ``desired`` in one transaction.

        ``desired`` is a ``BoardReplace`` or its plain-data form. The previous
        tree is read inside the same transaction as the writes; concurrent
        replaces are last-write-wins.
        """
        parsed = parse_replace(desired)
        if isinstance(parsed, Invalid):
            logger.info("rejected replace of board %s: %d field error(s)", board_id, len(parsed.errors))
            return parsed

        with self._transaction("replace board") as session:
            loaded = self._load(session, board_id)
            if loaded is None:
                return NotFound(board_id)
            board, columns, cards = loaded
            plan = plan_replace(board_tree(board, columns, cards), parsed.value)
            conflicts = self._foreign_ids(session, plan)
            if conflicts:
                logger.info("rejected replace of board %s: ids owned elsewhere", board_id)
                return Invalid(conflicts)
            self._apply(
                session,
                board,
                {column.id: column for column in columns},
                {card.id: card for card in cards},
                plan,
            )

        if plan.is_empty:
            logger.info("replaced board %s: no column or card changes", board_id)
        else:
            logger.info(
                "replaced board %s: %d inserted, %d updated, %d deleted",
                board_id,
                plan.inserted,
                plan.updated,
                plan.deleted,
            )
        return Replaced(board_id, inserted=plan.inserted, updated=plan.updated, deleted=plan.deleted)

    def delete_board(self, board_id: str) -> bool:
        with self._transaction("delete board") as session:
            board = session.get(BoardRow, board_id)
            if board is None:
                return False
            session.delete(board)
        logger.info("deleted board %s", board_id)
        return True

    # === Reconciliation ===

    def _foreign_ids(self, session: Session, plan: ReplacePlan) -> list[FieldError]:
        """Ids the client sent as new that already exist under another board."""
        errors: list[FieldError] = []
        new_columns = [write.id for write in plan.column_inserts]
        if new_columns:
            taken = session.scalars(select(ColumnRow.id).where(ColumnRow.id.in_(new_columns))).all()
            errors.extend(FieldError("columns", f"column id {cid!r} is already in use") for cid in taken)
        new_cards = [write.id for write in plan.card_inserts]
        if new_cards:
            taken = session.scalars(select(CardRow.id).where(CardRow.id.in_(new_cards))).all()
            errors.extend(FieldError("cards", f"card id {cid!r} is already in use") for cid in taken)
        return errors

    def _apply(
        self,
        session: Session,
        board: BoardRow,
        columns: dict[str, ColumnRow],
        cards: dict[str, CardRow],
        plan: ReplacePlan,
    ) -> None:
        board.title = plan.title

        for write in plan.column_inserts:
            session.add(ColumnRow(id=write.id, title=write.title, order=write.order, board_id=board.id))
        for write in plan.column_updates:
            row = columns[write.id]
            row.title = write.title
            row.order = write.order
        session.flush()

        # moves out of a dropped column land before that column is deleted
        for write in plan.card_inserts:
            session.add(
                CardRow(id=write.id, content=write.content, order=write.order, column_id=write.column_id)
            )
        for write in plan.card_updates:
            row = cards[write.id]
            row.content = write.content
            row.order = write.order
            row.column_id = write.column_id
        session.flush()

        for card_id in plan.card_deletes:
            session.delete(cards[card_id])
        session.flush()
        for column_id in plan.column_deletes:
            session.delete(columns[column_id])


def open_store(url: str, echo: bool = False) -> TreeStore:
    """Build a store on a fresh engine, creating the tables if needed."""
    engine = make_engine(url, echo=echo)
    init_db(engine)
    return TreeStore(make_session_factory(engine))
