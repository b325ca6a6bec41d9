"""Delete operation: soft delete when the model has deletetime fields."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.autofill import timestamp
from metacrud.dbop.context import (
    DbContext,
    incomplete_pk_error,
    pk_values,
    pk_where,
    resolve_model,
    undefined_pk_error,
)
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record
from metacrud.params import Params

logger = logging.getLogger(__name__)


def delete(ctx: DbContext, model: Record | str, params: Params) -> dict[str, int] | ApiError:
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
    mapper = session.mapper
    table = definition.table_name(mapper)
    where = pk_where(session, definition)

    delete_fields = definition.tag_fields("deletetime")
    try:
        if delete_fields:
            now = timestamp()
            values = {}
            for name in delete_fields:
                record.set(name, now)
                values[definition.column_name(name, mapper)] = now
            affected = session.update(table, values, where, pk)
        else:
            affected = session.delete(table, where, pk)
    except SQLAlchemyError as exc:
        logger.error("[DeleteFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "DeleteFailed", definition.name).with_message(
            "Delete failed."
        )
    return {"Affected": affected}
