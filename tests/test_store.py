import re

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from kanban.db import CardRow, ColumnRow
from kanban.errors import Invalid, NotFound, Replaced, StorageError
from kanban.models import BoardReplace

ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{21}$")


def card(id, content, order):
    return {"id": id, "content": content, "order": order}


def payload(tree):
    return tree.model_dump()


def count(sessions, model):
    with sessions() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_create_board_round_trip(store):
    board = store.create_board("X")
    tree = store.fetch_full_tree(board.id)
    assert tree.title == "X"
    assert tree.createdAt == board.createdAt
    assert [(c.title, c.order) for c in tree.columns] == [
        ("Todo", 0),
        ("In Progress", 1),
        ("Done", 2),
    ]
    assert all(c.cards == [] for c in tree.columns)


def test_create_board_defaults_title(store):
    assert store.create_board().title == "My Kanban Board"
    assert store.create_board("").title == "My Kanban Board"


def test_create_board_mints_url_safe_ids(store):
    first = store.create_board()
    second = store.create_board()
    assert ID_PATTERN.match(first.id)
    assert first.id != second.id
    column_ids = [c.id for c in store.fetch_full_tree(first.id).columns]
    assert len(set(column_ids)) == 3
    assert all(ID_PATTERN.match(cid) for cid in column_ids)


def test_create_board_rejects_long_title(store, sessions):
    result = store.create_board("x" * 101)
    assert isinstance(result, Invalid)
    assert count(sessions, ColumnRow) == 0


def test_fetch_unknown_board_returns_none(store):
    assert store.fetch_full_tree("non-existent-id") is None


def test_replace_unknown_board_is_not_found(store):
    result = store.replace_full_tree("non-existent-id", {"title": "T", "columns": []})
    assert result == NotFound("non-existent-id")


def test_replace_accepts_validated_model(store):
    board = store.create_board()
    desired = BoardReplace(title="Model", columns=[])
    assert isinstance(store.replace_full_tree(board.id, desired), Replaced)
    assert store.fetch_full_tree(board.id).columns == []


def test_replace_is_idempotent(store, sessions):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][0]["cards"] = [card("c1", "write spec", 0), card("c2", "ship", 5)]

    first = store.replace_full_tree(board.id, tree)
    after_first = store.fetch_full_tree(board.id)
    second = store.replace_full_tree(board.id, tree)

    assert first.inserted == 2
    assert (second.inserted, second.updated, second.deleted) == (0, 0, 0)
    assert store.fetch_full_tree(board.id) == after_first
    assert count(sessions, CardRow) == 2
    assert count(sessions, ColumnRow) == 3


def test_replace_preserves_identity_across_moves(store):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][0]["cards"] = [card("c1", "draft", 0)]
    store.replace_full_tree(board.id, tree)

    tree["columns"][0]["cards"] = []
    tree["columns"][2]["cards"] = [card("c1", "final", 4)]
    result = store.replace_full_tree(board.id, tree)

    assert result.updated == 1
    done = store.fetch_full_tree(board.id).columns[2]
    assert [(c.id, c.content, c.order) for c in done.cards] == [("c1", "final", 4)]


def test_replace_never_touches_created_at(store):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["title"] = "Renamed"
    tree["createdAt"] = "1999-01-01T00:00:00Z"
    store.replace_full_tree(board.id, tree)
    fetched = store.fetch_full_tree(board.id)
    assert fetched.title == "Renamed"
    assert fetched.createdAt == board.createdAt


def test_replace_sorts_by_order_on_read(store):
    board = store.create_board()
    result = store.replace_full_tree(
        board.id,
        {
            "title": "Sparse",
            "columns": [
                {"id": "late", "title": "Late", "order": 30, "cards": []},
                {
                    "id": "early",
                    "title": "Early",
                    "order": 10,
                    "cards": [card("z", "last", 99), card("y", "first", 7)],
                },
            ],
        },
    )
    assert result.deleted == 3
    tree = store.fetch_full_tree(board.id)
    assert [c.id for c in tree.columns] == ["early", "late"]
    assert [c.id for c in tree.columns[0].cards] == ["y", "z"]


def test_omitted_column_is_deleted_with_its_cards(store, sessions):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][1]["cards"] = [card("c1", "a", 0), card("c2", "b", 1)]
    store.replace_full_tree(board.id, tree)

    doomed = tree["columns"].pop(1)
    store.replace_full_tree(board.id, tree)

    fetched = store.fetch_full_tree(board.id)
    assert doomed["id"] not in [c.id for c in fetched.columns]
    assert count(sessions, CardRow) == 0


def test_card_moved_out_of_dropped_column_survives(store, sessions):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][0]["cards"] = [card("c1", "keep me", 0), card("c2", "drop me", 1)]
    store.replace_full_tree(board.id, tree)

    dropped = tree["columns"].pop(0)
    tree["columns"][0]["cards"] = [card("c1", "keep me", 0)]
    result = store.replace_full_tree(board.id, tree)

    assert isinstance(result, Replaced)
    fetched = store.fetch_full_tree(board.id)
    assert dropped["id"] not in [c.id for c in fetched.columns]
    assert [c.id for c in fetched.columns[0].cards] == ["c1"]
    assert count(sessions, CardRow) == 1


def test_huge_order_is_rejected_before_writing(store):
    board = store.create_board()
    before = store.fetch_full_tree(board.id)
    tree = payload(before)
    tree["columns"][0]["order"] = 2**63

    result = store.replace_full_tree(board.id, tree)

    assert isinstance(result, Invalid)
    assert [e.loc for e in result.errors] == ["columns.0.order"]
    assert store.fetch_full_tree(board.id) == before


def test_card_listed_under_two_columns_is_rejected(store):
    board = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][0]["cards"] = [card("c1", "a", 0)]
    store.replace_full_tree(board.id, tree)
    before = store.fetch_full_tree(board.id)

    tree["columns"][1]["cards"] = [card("c1", "a", 0)]
    result = store.replace_full_tree(board.id, tree)

    assert isinstance(result, Invalid)
    assert store.fetch_full_tree(board.id) == before


def test_ids_owned_by_another_board_are_rejected(store):
    first = store.create_board("First")
    second = store.create_board("Second")
    foreign_column = store.fetch_full_tree(first.id).columns[0]
    before = store.fetch_full_tree(second.id)

    tree = payload(before)
    tree["columns"].append({"id": foreign_column.id, "title": "Stolen", "order": 9, "cards": []})
    result = store.replace_full_tree(second.id, tree)

    assert isinstance(result, Invalid)
    assert [e.loc for e in result.errors] == ["columns"]
    assert store.fetch_full_tree(second.id) == before
    assert store.fetch_full_tree(first.id).columns[0].title == "Todo"


def test_failed_replace_leaves_previous_tree(store):
    board = store.create_board("Atomic")
    before = store.fetch_full_tree(board.id)
    tree = payload(before)
    tree["title"] = "Changed"
    tree["columns"][0]["title"] = "Changed too"
    tree["columns"][0]["cards"] = [card(f"new-{i}", f"task {i}", i) for i in range(4)]

    inserted = []

    def fail_third_insert(mapper, connection, target):
        inserted.append(target.id)
        if len(inserted) == 3:
            raise OperationalError("INSERT INTO cards", {}, Exception("disk I/O error"))

    event.listen(CardRow, "before_insert", fail_third_insert)
    try:
        with pytest.raises(StorageError):
            store.replace_full_tree(board.id, tree)
    finally:
        event.remove(CardRow, "before_insert", fail_third_insert)

    assert store.fetch_full_tree(board.id) == before


def test_delete_board_cascades(store, sessions):
    board = store.create_board()
    keep = store.create_board()
    tree = payload(store.fetch_full_tree(board.id))
    tree["columns"][0]["cards"] = [card("c1", "a", 0)]
    store.replace_full_tree(board.id, tree)

    assert store.delete_board(board.id) is True
    assert store.fetch_full_tree(board.id) is None
    assert count(sessions, CardRow) == 0
    assert count(sessions, ColumnRow) == 3
    assert store.fetch_full_tree(keep.id) is not None
    assert store.delete_board(board.id) is False


def test_board_exists(store):
    board = store.create_board()
    assert store.board_exists(board.id)
    assert not store.board_exists("missing")


def test_move_scenario(store):
    board = store.create_board()
    tree = store.fetch_full_tree(board.id)
    assert tree.title == "My Kanban Board"
    assert len(tree.columns) == 3

    data = payload(tree)
    data["columns"][0]["cards"] = [card("mover", "drag me", 0)]
    store.replace_full_tree(board.id, data)

    data["columns"][0]["cards"] = []
    data["columns"][1]["cards"] = [card("mover", "drag me", 0)]
    store.replace_full_tree(board.id, data)
    tree = store.fetch_full_tree(board.id)
    assert tree.columns[0].cards == []
    assert [(c.id, c.order) for c in tree.columns[1].cards] == [("mover", 0)]

    gone = data["columns"].pop(1)
    store.replace_full_tree(board.id, data)
    tree = store.fetch_full_tree(board.id)
    assert gone["id"] not in [c.id for c in tree.columns]
    assert all(c.cards == [] for c in tree.columns)

    data["columns"][1]["order"] = data["columns"][0]["order"]
    result = store.replace_full_tree(board.id, data)
    assert isinstance(result, Invalid)
    assert store.fetch_full_tree(board.id) == tree
