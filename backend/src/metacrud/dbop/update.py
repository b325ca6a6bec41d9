"""Update operation: partial update by primary key."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.autofill import timestamp, to_column_value
from metacrud.dbop.conditions import EXPR, find_define, parse_query_settings, substitute_expr
from metacrud.dbop.context import DbContext, incomplete_pk_error, pk_values, pk_where, resolve_model
from metacrud.dbop.session import Expr
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record
from metacrud.params import Params

logger = logging.getLogger(__name__)


def update(
    ctx: DbContext,
    model: Record | str,
    params: Params,
    query_settings: Mapping[str, str] | None = None,
) -> dict[str, int] | ApiError:
    """Update the non-key fields present in params.

    Primary key params only identify the row. Absent ``updatetime``
    fields are refreshed. Returns ``{"Affected": n}``.
    """
    resolved = resolve_model(ctx, model)
    if isinstance(resolved, ApiError):
        return resolved
    definition, record = resolved

    if not definition.primary_keys:
        logger.error("[NoPrimaryKey] %s", definition.name)
        return new_error(ErrorType.INTERNAL_ERROR, "NoPrimaryKey").with_message("No primary key.")

    session = ctx.session
    mapper = session.mapper
    defines = parse_query_settings(query_settings)
    values: dict[str, Any] = {}

    for field in definition.fields:
        name = field.name
        if definition.field_has_tag(name, "pk"):
            continue

        column = definition.column_name(name, mapper)
        value = params.get(name)
        if value is not None:
            expr = find_define(defines.get(name), EXPR)
            if expr is not None:
                values[column] = Expr(substitute_expr(expr, value))
            else:
                record.set(name, to_column_value(value))
                values[column] = record.get(name)
        elif definition.field_has_tag(name, "updatetime"):
            record.set(name, timestamp())
            values[column] = record.get(name)

    if not values:
        return {"Affected": 0}

    pk = pk_values(definition, params)
    if pk is None:
        return incomplete_pk_error()

    try:
        affected = session.update(
            definition.table_name(mapper), values, pk_where(session, definition), pk
        )
    except SQLAlchemyError as exc:
        logger.error("[UpdateFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "UpdateFailed", definition.name).with_message(
            "Update failed."
        )
    return {"Affected": affected}
