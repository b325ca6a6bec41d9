"""Detail operation: read one record by primary key."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.context import (
    DbContext,
    JoinCond,
    apply_joins,
    hidden_columns,
    incomplete_pk_error,
    load_row,
    parse_join_conds,
    pk_values,
    pk_where,
    resolve_model,
    select_columns,
    undefined_pk_error,
)
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record, redact
from metacrud.models.registry import HIDDEN_DETAIL
from metacrud.params import Params

logger = logging.getLogger(__name__)


def detail(
    ctx: DbContext,
    model: Record | str,
    params: Params,
    join_conds: Sequence[JoinCond] | None = None,
) -> dict[str, Any] | ApiError:
    """Fetch the record whose primary key values are in params.

    Returns ``{MainModelName: item}``; item is the populated record, or a
    flat dict without the hidden fields when the model hides any.
    """
    joins = parse_join_conds(join_conds)
    if isinstance(joins, ApiError):
        return joins

    resolved = resolve_model(ctx, model)
    if isinstance(resolved, ApiError):
        return resolved
    definition, record = resolved

    if not definition.primary_keys:
        return undefined_pk_error()
    pk = pk_values(definition, params)
    if pk is None:
        return incomplete_pk_error()

    session = ctx.session
    table = definition.table_name(session.mapper)
    hidden_fields, omit = hidden_columns(session, definition, HIDDEN_DETAIL)

    query = apply_joins(session.query(table), joins)
    query.omit(*omit).where(pk_where(session, definition, table), *pk)
    try:
        row = query.get(select_columns(session, definition, table, include_refs=bool(joins)))
    except SQLAlchemyError as exc:
        logger.error("[GetFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "GetFailed", definition.main_model_name).with_message(
            "Get failed."
        )
    if row is None:
        return new_error(ErrorType.OBJECT_NOT_EXIST, definition.main_model_name)

    load_row(record, row)
    item: Record | dict[str, Any] = record
    if hidden_fields:
        item = redact(record, hidden_fields)
    return {definition.main_model_name: item}
