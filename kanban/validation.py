"""Boundary parsing of untrusted board payloads.

Both parsers return a tagged result instead of raising, so callers branch on
``Valid`` / ``Invalid`` and the reconciler only ever sees well-formed trees.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import ValidationError

from .errors import FieldError, Invalid, Valid
from .models import BoardCreate, BoardReplace


def _flatten(exc: ValidationError) -> list[FieldError]:
    return [
        FieldError(".".join(str(part) for part in err["loc"]) or "body", err["msg"])
        for err in exc.errors()
    ]


def parse_create(data: Any) -> Union[Valid[BoardCreate], Invalid]:
    try:
        request = BoardCreate.model_validate(data if data is not None else {})
    except ValidationError as exc:
        return Invalid(_flatten(exc))
    return Valid(request)


def parse_replace(data: Any) -> Union[Valid[BoardReplace], Invalid]:
    try:
        desired = BoardReplace.model_validate(data)
    except ValidationError as exc:
        return Invalid(_flatten(exc))
    errors = sibling_errors(desired)
    if errors:
        return Invalid(errors)
    return Valid(desired)


def sibling_errors(desired: BoardReplace) -> list[FieldError]:
    """Report order ties within a sibling set and ids used more than once.

    A card id listed under two columns is rejected rather than resolved.
    """
    errors: list[FieldError] = []
    column_orders: dict[int, int] = {}
    column_ids: set[str] = set()
    card_ids: dict[str, str] = {}

    for i, column in enumerate(desired.columns):
        loc = f"columns.{i}"
        if column.order in column_orders:
            errors.append(
                FieldError(
                    f"{loc}.order",
                    f"order {column.order} already used by columns.{column_orders[column.order]}",
                )
            )
        else:
            column_orders[column.order] = i
        if column.id in column_ids:
            errors.append(FieldError(f"{loc}.id", f"duplicate column id {column.id!r}"))
        column_ids.add(column.id)

        card_orders: dict[int, int] = {}
        for j, card in enumerate(column.cards):
            card_loc = f"{loc}.cards.{j}"
            if card.order in card_orders:
                errors.append(
                    FieldError(
                        f"{card_loc}.order",
                        f"order {card.order} already used by {loc}.cards.{card_orders[card.order]}",
                    )
                )
            else:
                card_orders[card.order] = j
            if card.id in card_ids:
                errors.append(
                    FieldError(f"{card_loc}.id", f"card id {card.id!r} already listed at {card_ids[card.id]}")
                )
            else:
                card_ids[card.id] = card_loc
    return errors
